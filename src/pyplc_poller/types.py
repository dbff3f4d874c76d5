"""Core data model: field mappings, metric definitions, protocol values and output metrics."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class PlcValueType(str, Enum):
    """Protocol value types reported by drivers (IEC 61131-3 names)."""

    NULL = "NULL"
    BOOL = "BOOL"
    BYTE = "BYTE"
    WORD = "WORD"
    DWORD = "DWORD"
    LWORD = "LWORD"
    USINT = "USINT"
    UINT = "UINT"
    UDINT = "UDINT"
    ULINT = "ULINT"
    SINT = "SINT"
    INT = "INT"
    DINT = "DINT"
    LINT = "LINT"
    REAL = "REAL"
    LREAL = "LREAL"
    CHAR = "CHAR"
    WCHAR = "WCHAR"
    STRING = "STRING"
    WSTRING = "WSTRING"
    TIME = "TIME"
    LTIME = "LTIME"
    DATE = "DATE"
    LDATE = "LDATE"
    TIME_OF_DAY = "TIME_OF_DAY"
    LTIME_OF_DAY = "LTIME_OF_DAY"
    DATE_AND_TIME = "DATE_AND_TIME"
    LDATE_AND_TIME = "LDATE_AND_TIME"
    LIST = "LIST"
    STRUCT = "STRUCT"
    RAW_BYTE_ARRAY = "RAW_BYTE_ARRAY"


class ValueKind(str, Enum):
    """Scalar kinds a protocol value can be normalized to."""

    NULL = "null"
    BOOL = "bool"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    TIME = "time"
    DURATION = "duration"
    DATE = "date"
    DATETIME = "datetime"


class ResponseCode(str, Enum):
    """Per-tag status of a batched read."""

    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_DATATYPE = "INVALID_DATATYPE"
    INVALID_DATA = "INVALID_DATA"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    REMOTE_BUSY = "REMOTE_BUSY"
    REMOTE_ERROR = "REMOTE_ERROR"
    UNSUPPORTED = "UNSUPPORTED"
    RESPONSE_PENDING = "RESPONSE_PENDING"


@dataclass(frozen=True)
class PlcValue:
    """A single-kind value as returned by a driver for one tag."""

    type: PlcValueType
    value: Any = None

    def is_null(self) -> bool:
        return self.type == PlcValueType.NULL or self.value is None


@dataclass(frozen=True)
class NormalizedValue:
    """A protocol value converted to a generic scalar, tagged with its kind."""

    kind: ValueKind
    value: Any

    @property
    def is_null(self) -> bool:
        return self.kind == ValueKind.NULL


@dataclass(frozen=True)
class FieldMapping:
    """Where a tag's value lands in the output: measurement, field name and tag set."""

    measurement: str
    field: str
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Shared by every cycle; keep a private read-only copy
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))


@dataclass(frozen=True)
class MetricFieldDefinition:
    """One configured tag: unique name, protocol address and (after table building) its mapping."""

    name: str
    address: str
    mapping: FieldMapping | None = None


@dataclass(frozen=True)
class MetricDefinition:
    """Configuration-time metric block: measurement name, its fields and static tags."""

    name: str
    fields: tuple[MetricFieldDefinition, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Metric:
    """A finished output record: all fields sharing measurement, tags and timestamp."""

    measurement: str
    tags: dict[str, str]
    timestamp: datetime
    fields: dict[str, NormalizedValue]

    @property
    def field_values(self) -> dict[str, Any]:
        """Field name -> plain Python value, for sinks that do not care about kinds."""
        return {name: nv.value for name, nv in self.fields.items()}

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation; time-family values are rendered as strings."""
        return {
            "measurement": self.measurement,
            "tags": dict(self.tags),
            "timestamp": self.timestamp.isoformat(),
            "fields": {name: _jsonable(nv.value) for name, nv in self.fields.items()},
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)
