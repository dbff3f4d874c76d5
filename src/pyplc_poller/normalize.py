"""Convert protocol-typed values into generic scalars via an ordered dispatch table."""

import struct
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable

from .types import NormalizedValue, PlcValue, PlcValueType, ValueKind

NULL_VALUE = NormalizedValue(ValueKind.NULL, None)


def _to_bool(raw: Any) -> bool | None:
    if isinstance(raw, (bool, int)):
        return bool(raw)
    return None


def _integer(bits: int, signed: bool) -> Callable[[Any], int | None]:
    """Extractor for one integer width; values outside the width are rejected."""
    if signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1

    def extract(raw: Any) -> int | None:
        if isinstance(raw, bool) or not isinstance(raw, int):
            return None
        return raw if lo <= raw <= hi else None

    extract.__name__ = f"_{'int' if signed else 'uint'}{bits}"
    return extract


def _to_float32(raw: Any) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        return struct.unpack("<f", struct.pack("<f", float(raw)))[0]
    except OverflowError:
        return None


def _to_float64(raw: Any) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    return float(raw)


def _to_string(raw: Any) -> str | None:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


def _to_time(raw: Any) -> time | None:
    return raw if isinstance(raw, time) else None


def _to_duration(raw: Any) -> timedelta | None:
    return raw if isinstance(raw, timedelta) else None


def _to_date(raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    return raw if isinstance(raw, date) else None


def _to_datetime(raw: Any) -> datetime | None:
    return raw if isinstance(raw, datetime) else None


@dataclass(frozen=True)
class _Rule:
    kind: ValueKind
    types: frozenset[PlcValueType]
    extract: Callable[[Any], Any]


# Precedence order: the first rule claiming a PlcValueType wins.
_RULES: tuple[_Rule, ...] = (
    _Rule(ValueKind.BOOL, frozenset({PlcValueType.BOOL}), _to_bool),
    _Rule(ValueKind.UINT8, frozenset({PlcValueType.BYTE, PlcValueType.USINT}), _integer(8, signed=False)),
    _Rule(ValueKind.UINT16, frozenset({PlcValueType.WORD, PlcValueType.UINT}), _integer(16, signed=False)),
    _Rule(ValueKind.UINT32, frozenset({PlcValueType.DWORD, PlcValueType.UDINT}), _integer(32, signed=False)),
    _Rule(ValueKind.UINT64, frozenset({PlcValueType.LWORD, PlcValueType.ULINT}), _integer(64, signed=False)),
    _Rule(ValueKind.INT8, frozenset({PlcValueType.SINT}), _integer(8, signed=True)),
    _Rule(ValueKind.INT16, frozenset({PlcValueType.INT}), _integer(16, signed=True)),
    _Rule(ValueKind.INT32, frozenset({PlcValueType.DINT}), _integer(32, signed=True)),
    _Rule(ValueKind.INT64, frozenset({PlcValueType.LINT}), _integer(64, signed=True)),
    _Rule(ValueKind.FLOAT32, frozenset({PlcValueType.REAL}), _to_float32),
    _Rule(ValueKind.FLOAT64, frozenset({PlcValueType.LREAL}), _to_float64),
    _Rule(
        ValueKind.STRING,
        frozenset({PlcValueType.CHAR, PlcValueType.WCHAR, PlcValueType.STRING, PlcValueType.WSTRING}),
        _to_string,
    ),
    _Rule(ValueKind.TIME, frozenset({PlcValueType.TIME_OF_DAY, PlcValueType.LTIME_OF_DAY}), _to_time),
    _Rule(ValueKind.DURATION, frozenset({PlcValueType.TIME, PlcValueType.LTIME}), _to_duration),
    _Rule(ValueKind.DATE, frozenset({PlcValueType.DATE, PlcValueType.LDATE}), _to_date),
    _Rule(
        ValueKind.DATETIME,
        frozenset({PlcValueType.DATE_AND_TIME, PlcValueType.LDATE_AND_TIME}),
        _to_datetime,
    ),
)

_DISPATCH: dict[PlcValueType, _Rule] = {}
for _rule in _RULES:
    for _type in _rule.types:
        _DISPATCH.setdefault(_type, _rule)
del _rule, _type

SUPPORTED_TYPES: frozenset[PlcValueType] = frozenset(_DISPATCH) | {PlcValueType.NULL}
UNSUPPORTED_TYPES: frozenset[PlcValueType] = frozenset(PlcValueType) - SUPPORTED_TYPES


def normalize_value(value: PlcValue | None) -> NormalizedValue | None:
    """
    Normalize a protocol value to a tagged scalar.

    - Explicit null (None, or PlcValueType.NULL) -> NormalizedValue(NULL, None).
    - Supported types -> NormalizedValue of the matching kind and width.
    - LIST/STRUCT/RAW_BYTE_ARRAY, or a payload that does not fit the declared
      type -> None ("no value"). Callers skip both null and None.
    """
    if value is None or value.is_null():
        return NULL_VALUE
    rule = _DISPATCH.get(value.type)
    if rule is None:
        return None
    extracted = rule.extract(value.value)
    if extracted is None:
        return None
    return NormalizedValue(rule.kind, extracted)
