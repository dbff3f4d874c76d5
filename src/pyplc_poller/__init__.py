"""pyplc-poller: poll PLC tags through protocol drivers and group them into timestamped metrics."""

__version__ = "0.1.0"

from .config import PollerConfig, build_connection_url, load_config, parse_duration
from .drivers import DriverManager, get_default_driver_manager
from .errors import (
    ConfigError,
    ConfigErrorKind,
    ConnectionErrorKind,
    InvalidAddressError,
    PLCConnectionError,
    PyPLCPollerError,
    ReadTimeoutError,
    TransportError,
)
from .fields import build_field_table, build_read_request
from .grouper import SeriesGrouper
from .normalize import normalize_value
from .poller import Poller
from .session import Session, SessionState
from .types import (
    FieldMapping,
    Metric,
    MetricDefinition,
    MetricFieldDefinition,
    NormalizedValue,
    PlcValue,
    PlcValueType,
    ResponseCode,
    ValueKind,
)

__all__ = [
    "__version__",
    "PollerConfig",
    "build_connection_url",
    "load_config",
    "parse_duration",
    "DriverManager",
    "get_default_driver_manager",
    "ConfigError",
    "ConfigErrorKind",
    "ConnectionErrorKind",
    "InvalidAddressError",
    "PLCConnectionError",
    "PyPLCPollerError",
    "ReadTimeoutError",
    "TransportError",
    "build_field_table",
    "build_read_request",
    "SeriesGrouper",
    "normalize_value",
    "Poller",
    "Session",
    "SessionState",
    "FieldMapping",
    "Metric",
    "MetricDefinition",
    "MetricFieldDefinition",
    "NormalizedValue",
    "PlcValue",
    "PlcValueType",
    "ResponseCode",
    "ValueKind",
]
