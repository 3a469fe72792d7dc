"""Error taxonomy for the daemon client."""


class YcmError(RuntimeError):
    """Base class for every error raised by ycmlink."""


class ConfigError(YcmError):
    """Options or settings file is missing, unreadable or malformed."""


class ProcessError(YcmError):
    """Daemon failed to spawn or is not running when expected."""


class PortNotFound(YcmError):
    """Daemon output does not announce a listening port (yet)."""


class NoActiveSecret(YcmError):
    """Request attempted outside a running session."""


class SigningFailure(YcmError):
    """HMAC could not be computed from the given key or message."""


class HmacMismatch(YcmError):
    """Response signature is missing or does not match its body."""


class ParseError(YcmError):
    """Daemon response body is not the expected JSON document."""


class TransportError(YcmError):
    """Network-level failure talking to the daemon."""


class ServerError(TransportError):
    """Daemon answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, exception_type: str | None = None):
        self.status_code = status_code
        self.message = message
        self.exception_type = exception_type
        detail = f"{exception_type}: {message}" if exception_type else message
        super().__init__(f"Daemon returned HTTP {status_code}: {detail}")
