"""Clear exceptions for pyplc-poller: configuration, connection, timeout and driver errors."""

from enum import Enum


class ConfigErrorKind(str, Enum):
    """Reasons a configuration is rejected at initialization."""

    MISSING_SCHEMA = "missing_schema"
    MISSING_DOMAIN = "missing_domain"
    NO_METRICS = "no_metrics"
    UNSUPPORTED_SCHEMA = "unsupported_schema"
    INVALID_TIMEOUT = "invalid_timeout"
    INVALID_CONFIG = "invalid_config"
    MISSING_MEASUREMENT_FIELDS = "missing_measurement_fields"
    UNNAMED_FIELD = "unnamed_field"
    DUPLICATE_FIELD = "duplicate_field"
    NO_FIELDS_AT_ALL = "no_fields_at_all"


class ConnectionErrorKind(str, Enum):
    """Stage of the connection lifecycle that failed."""

    CONNECT_FAILED = "connect_failed"
    UNSUPPORTED = "unsupported"
    BUILD_FAILED = "build_failed"
    EXECUTE_FAILED = "execute_failed"
    CLOSED = "closed"


class PyPLCPollerError(Exception):
    """Base exception for pyplc-poller."""

    pass


class ConfigError(PyPLCPollerError):
    """Raised when the poller configuration is invalid. Fatal at startup."""

    def __init__(
        self,
        kind: ConfigErrorKind,
        message: str,
        *,
        metric: str | None = None,
        field: str | None = None,
    ) -> None:
        self.kind = kind
        self.metric = metric
        self.field = field
        super().__init__(message)


class PLCConnectionError(PyPLCPollerError):
    """Raised when connecting, building the read request or executing it fails."""

    def __init__(
        self,
        kind: ConnectionErrorKind,
        message: str,
        *,
        url: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.kind = kind
        self.url = url
        self.cause = cause
        super().__init__(message)


class ReadTimeoutError(PyPLCPollerError, TimeoutError):
    """Raised when a read cycle does not complete before its deadline."""

    def __init__(self, timeout: float, message: str | None = None) -> None:
        self.timeout = timeout
        super().__init__(message or f"Read fields timeout after {timeout:g}s")


class TransportError(PyPLCPollerError):
    """Raised by drivers when the link to the controller fails mid-request."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class InvalidAddressError(PyPLCPollerError):
    """Raised by drivers when a tag address expression cannot be parsed."""

    def __init__(self, address: str, message: str | None = None) -> None:
        self.address = address
        self._msg = message or f"Invalid tag address: {address!r}"
        super().__init__(self._msg)
