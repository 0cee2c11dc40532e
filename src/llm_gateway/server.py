"""Gateway listener lifecycle."""

import logging
import socket
import threading
import time
from enum import Enum
from typing import Callable

import uvicorn
from fastapi import FastAPI

from llm_gateway.accounts.pool import AccountPool
from llm_gateway.config import validate_proxy_config
from llm_gateway.errors import AlreadyRunning, GatewayError, PortInUse
from llm_gateway.models.config import ProxyConfig, ProxyStatus, pending_restart_changes

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5.0
STARTUP_TIMEOUT = 10.0


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so bind errors surface synchronously.

    Raises:
        PortInUse: If the address cannot be bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise PortInUse(f"Cannot bind {host}:{port}: {e.strerror or e}") from e
    return sock


class GatewayServer:
    """
    Runs the gateway app under uvicorn in a background thread.

    State moves STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED, or
    STARTING -> FAILED -> STOPPED when the listener cannot come up.
    Transitions are serialized; ``status()`` only reads.
    """

    def __init__(
        self,
        app_factory: Callable[[], FastAPI],
        pool: AccountPool,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ):
        self.app_factory = app_factory
        self.pool = pool
        self.grace_period = grace_period
        self.state = ServerState.STOPPED
        self._config: ProxyConfig | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._socket: socket.socket | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.state == ServerState.RUNNING

    def start(self, config: ProxyConfig | dict) -> ProxyStatus:
        """
        Start listening with the given proxy settings.

        Raises:
            InvalidConfig: If port or timeout are out of range.
            PortInUse: If the port cannot be bound. A running instance on
                that port keeps running.
            AlreadyRunning: If already listening on a different port.
        """
        data = config.model_dump() if isinstance(config, ProxyConfig) else config
        config = validate_proxy_config(data)

        with self._lock:
            if self.state == ServerState.RUNNING:
                if config.port == self._config.port:
                    raise PortInUse(f"Port {config.port} is already in use by the gateway")
                raise AlreadyRunning(
                    f"Gateway already running on port {self._config.port}; stop it first"
                )

            self.state = ServerState.STARTING
            try:
                self._socket = bind_socket(config.bind_host, config.port)
                self._launch(config)
            except GatewayError:
                self._fail()
                raise

            self._config = config
            self.state = ServerState.RUNNING

        logger.info(f"Gateway listening on {config.bind_host}:{config.port}")
        return self.status()

    def _launch(self, config: ProxyConfig) -> None:
        uvicorn_config = uvicorn.Config(
            self.app_factory(),
            log_config=None,
            timeout_graceful_shutdown=max(1, int(self.grace_period)),
        )
        server = uvicorn.Server(uvicorn_config)
        thread = threading.Thread(
            target=server.run,
            kwargs={"sockets": [self._socket]},
            name=f"gateway-{config.port}",
            daemon=True,
        )
        self._server, self._thread = server, thread
        thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not server.started:
            if not thread.is_alive() or time.monotonic() > deadline:
                raise GatewayError(f"Gateway failed to start on port {config.port}")
            time.sleep(0.05)

    def _fail(self) -> None:
        self.state = ServerState.FAILED
        logger.error("Gateway failed to start, cleaning up")
        self._shutdown()
        self.state = ServerState.STOPPED

    def stop(self) -> ProxyStatus:
        """Drain in-flight requests up to the grace period, then force exit."""
        with self._lock:
            if self.state != ServerState.RUNNING:
                return self.status()
            self.state = ServerState.STOPPING
            logger.info("Stopping gateway")
            try:
                self._shutdown()
            finally:
                self._config = None
                self.state = ServerState.STOPPED
        logger.info("Gateway stopped")
        return self.status()

    def _shutdown(self) -> None:
        server, thread = self._server, self._thread
        if server is not None and thread is not None:
            server.should_exit = True
            thread.join(self.grace_period + 1)
            if thread.is_alive():
                logger.warning("Grace period elapsed, forcing shutdown")
                server.force_exit = True
                thread.join(self.grace_period)
        if self._socket is not None:
            self._socket.close()
        self._server = self._thread = self._socket = None

    def status(self) -> ProxyStatus:
        """Snapshot of listener and pool state. Never blocks."""
        config = self._config
        if self.state != ServerState.RUNNING or config is None:
            return ProxyStatus(
                running=False, port=0, base_url="", active_accounts=self.pool.active_count
            )
        return ProxyStatus(
            running=True,
            port=config.port,
            base_url=f"http://{config.bind_host}:{config.port}",
            active_accounts=self.pool.active_count,
            local_url=f"http://127.0.0.1:{config.port}",
        )

    def pending_restart(self, config: ProxyConfig) -> list[str]:
        """Listener fields in ``config`` that differ from the running instance."""
        if self._config is None:
            return []
        changed = pending_restart_changes(self._config, config)
        if changed:
            logger.warning(
                f"Changes to {', '.join(changed)} take effect after restarting the gateway"
            )
        return changed
