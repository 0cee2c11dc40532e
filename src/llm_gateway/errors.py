"""Gateway error taxonomy.

Every error carries an HTTP status and a protocol-neutral ``code``. Protocol
adapters translate the code into their own native error shape, so internal
exception types never cross a protocol boundary.
"""


class GatewayError(Exception):
    """Base class for all gateway errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# Control plane


class InvalidConfig(GatewayError):
    """Raised when a proxy configuration fails validation."""

    status_code = 400
    code = "invalid_config"


class PortInUse(GatewayError):
    """Raised when the listener port cannot be bound."""

    status_code = 409
    code = "port_in_use"


class AlreadyRunning(GatewayError):
    """Raised when starting a server that is already listening elsewhere."""

    status_code = 409
    code = "already_running"


# Request validation


class Unauthorized(GatewayError):
    status_code = 401
    code = "unauthorized"


class InvalidRequest(GatewayError):
    status_code = 400
    code = "invalid_request"


class UnsupportedCapability(GatewayError):
    """Raised when a protocol cannot serve the requested model capability."""

    status_code = 400
    code = "unsupported_capability"


class NoAvailableAccount(GatewayError):
    status_code = 503
    code = "no_available_account"


# Upstream


class UpstreamError(GatewayError):
    """Generic upstream failure."""

    status_code = 502
    code = "upstream_error"


class UpstreamTimeout(UpstreamError):
    """No response (or first stream chunk) within the request timeout."""

    status_code = 504
    code = "upstream_timeout"


class UpstreamStreamInterrupted(UpstreamError):
    """The upstream stream failed or stalled after it had started."""

    code = "upstream_stream_interrupted"


class UpstreamProtocolError(UpstreamError):
    """The upstream returned a response that could not be interpreted."""

    code = "upstream_protocol_error"


class UpstreamUnavailable(UpstreamError):
    """Network-level failure reaching the upstream (DNS, TLS, refused)."""

    code = "upstream_unavailable"


class UnknownModel(UpstreamError):
    status_code = 404
    code = "unknown_model"


class AccountFailure(UpstreamError):
    """Auth or quota failure tied to the credential used for the call.

    Args:
        message: Upstream error message.
        account_id: The account that failed.
        reason: ``"auth"`` or ``"quota"``.
    """

    def __init__(self, message: str, *, account_id: str, reason: str):
        super().__init__(message, status_code=429 if reason == "quota" else 502)
        self.account_id = account_id
        self.reason = reason
        self.code = "account_quota" if reason == "quota" else "account_auth"
