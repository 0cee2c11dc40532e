"""Command-line entry point."""

import logging
import os
import threading

from dotenv import load_dotenv

from llm_gateway.app import config_path_from_env, create_app
from llm_gateway.control import ControlPlane
from llm_gateway.errors import GatewayError

logger = logging.getLogger(__name__)

__all__ = ["create_app", "main"]


def main():
    """Run the gateway until interrupted."""
    # Load .env file if it exists
    load_dotenv()

    logging.basicConfig(
        level=os.environ.get("LLM_GATEWAY_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path = config_path_from_env()
    control = ControlPlane.open(config_path)
    try:
        status = control.start_proxy_service()
    except GatewayError as e:
        logger.error(f"Could not start gateway: {e.message}")
        raise SystemExit(1) from e

    logger.info(f"Config: {config_path.resolve()}")
    logger.info(f"Base URL: {status.base_url} ({status.active_accounts} active accounts)")

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        control.stop_proxy_service()


if __name__ == "__main__":
    main()
