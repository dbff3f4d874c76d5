"""Modbus TCP driver: plc4x-style tag addresses read through pymodbus' async client."""

import logging
import re
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import parse_qsl, urlsplit

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from ..errors import InvalidAddressError, TransportError
from ..types import PlcValue, PlcValueType, ResponseCode

logger = logging.getLogger(__name__)

DEFAULT_PORT = 502
DEFAULT_UNIT_ID = 1
DEFAULT_REQUEST_TIMEOUT_MS = 5000


class ModbusTable(str, Enum):
    """Modbus tables (memory areas) used for pymodbus dispatch."""

    COIL = "coil"
    DISCRETE_INPUT = "discrete_input"
    INPUT_REGISTER = "input_register"
    HOLDING_REGISTER = "holding_register"

    @property
    def is_bit(self) -> bool:
        return self in (ModbusTable.COIL, ModbusTable.DISCRETE_INPUT)


_AREA_NAMES: dict[str, ModbusTable] = {
    "coil": ModbusTable.COIL,
    "coils": ModbusTable.COIL,
    "discrete-input": ModbusTable.DISCRETE_INPUT,
    "discrete-inputs": ModbusTable.DISCRETE_INPUT,
    "input-register": ModbusTable.INPUT_REGISTER,
    "input-registers": ModbusTable.INPUT_REGISTER,
    "holding-register": ModbusTable.HOLDING_REGISTER,
    "holding-registers": ModbusTable.HOLDING_REGISTER,
}

# Shorthand prefixes: 0x00001 coil, 1x00001 discrete input, 3x00001 input register, 4x00001 holding register
_SHORTHAND_PATTERN = re.compile(r"^([0134])x(\d{1,5})$", re.IGNORECASE)
_SHORTHAND_TABLE: dict[str, ModbusTable] = {
    "0": ModbusTable.COIL,
    "1": ModbusTable.DISCRETE_INPUT,
    "3": ModbusTable.INPUT_REGISTER,
    "4": ModbusTable.HOLDING_REGISTER,
}
_REFERENCE_PATTERN = re.compile(r"^\d{6}$")

_READ_FUNCTION: dict[ModbusTable, str] = {
    ModbusTable.COIL: "read_coils",
    ModbusTable.DISCRETE_INPUT: "read_discrete_inputs",
    ModbusTable.INPUT_REGISTER: "read_input_registers",
    ModbusTable.HOLDING_REGISTER: "read_holding_registers",
}


@dataclass(frozen=True)
class _RegisterType:
    plc_type: PlcValueType
    registers: int
    fmt: str  # struct format applied to the trailing bytes of the big-endian register block


_REGISTER_TYPES: dict[str, _RegisterType] = {
    "BOOL": _RegisterType(PlcValueType.BOOL, 1, ">H"),
    "BYTE": _RegisterType(PlcValueType.BYTE, 1, ">B"),
    "USINT": _RegisterType(PlcValueType.USINT, 1, ">B"),
    "SINT": _RegisterType(PlcValueType.SINT, 1, ">b"),
    "WORD": _RegisterType(PlcValueType.WORD, 1, ">H"),
    "UINT": _RegisterType(PlcValueType.UINT, 1, ">H"),
    "INT": _RegisterType(PlcValueType.INT, 1, ">h"),
    "DWORD": _RegisterType(PlcValueType.DWORD, 2, ">I"),
    "UDINT": _RegisterType(PlcValueType.UDINT, 2, ">I"),
    "DINT": _RegisterType(PlcValueType.DINT, 2, ">i"),
    "LWORD": _RegisterType(PlcValueType.LWORD, 4, ">Q"),
    "ULINT": _RegisterType(PlcValueType.ULINT, 4, ">Q"),
    "LINT": _RegisterType(PlcValueType.LINT, 4, ">q"),
    "REAL": _RegisterType(PlcValueType.REAL, 2, ">f"),
    "LREAL": _RegisterType(PlcValueType.LREAL, 4, ">d"),
}


@dataclass(frozen=True)
class ModbusTag:
    """Parsed tag address: table, 0-based offset and data type."""

    address: str
    table: ModbusTable
    offset: int
    data_type: str

    @property
    def count(self) -> int:
        """Number of coils/registers spanned by this tag."""
        if self.table.is_bit:
            return 1
        return _REGISTER_TYPES[self.data_type].registers


def _ref_to_table_offset(ref: int) -> tuple[ModbusTable, int]:
    """Convert a 6-digit Modbus reference number to (table, 0-based offset)."""
    if 1 <= ref <= 99_999:
        return ModbusTable.COIL, ref - 1
    if 100_001 <= ref <= 199_999:
        return ModbusTable.DISCRETE_INPUT, ref - 100_001
    if 300_001 <= ref <= 399_999:
        return ModbusTable.INPUT_REGISTER, ref - 300_001
    if 400_001 <= ref <= 499_999:
        return ModbusTable.HOLDING_REGISTER, ref - 400_001
    raise ValueError(f"Invalid Modbus reference: {ref}")


def parse_address(address: str) -> ModbusTag:
    """
    Parse a plc4x-style Modbus address (1-based).

    Accepted forms:
    - holding-register:1[:REAL], input-register:3[:UINT], coil:12, discrete-input:5
    - 4x00001[:REAL], 3x00010, 0x00012, 1x00005
    - 400001[:DINT] (6-digit reference number)

    Bit areas only hold BOOL; register areas default to INT.
    Raises InvalidAddressError for anything else.
    """
    s = address.strip()
    parts = [p.strip() for p in s.split(":")]
    head = parts[0].lower()

    if head in _AREA_NAMES:
        if len(parts) not in (2, 3) or not parts[1].isdigit():
            raise InvalidAddressError(address, f"Malformed Modbus address: {address!r}")
        table = _AREA_NAMES[head]
        number = int(parts[1])
        if number < 1:
            raise InvalidAddressError(address, f"Modbus addresses are 1-based: {address!r}")
        offset = number - 1
        type_part = parts[2] if len(parts) == 3 else None
    else:
        if len(parts) > 2:
            raise InvalidAddressError(address, f"Malformed Modbus address: {address!r}")
        m = _SHORTHAND_PATTERN.match(head)
        if m:
            table = _SHORTHAND_TABLE[m.group(1)]
            number = int(m.group(2))
            if number < 1:
                raise InvalidAddressError(address, f"Modbus addresses are 1-based: {address!r}")
            offset = number - 1
        elif _REFERENCE_PATTERN.match(head):
            try:
                table, offset = _ref_to_table_offset(int(head))
            except ValueError as e:
                raise InvalidAddressError(address, str(e)) from None
        else:
            raise InvalidAddressError(address, f"Unknown Modbus memory area in {address!r}")
        type_part = parts[1] if len(parts) == 2 else None

    if type_part is None:
        data_type = "BOOL" if table.is_bit else "INT"
    else:
        data_type = type_part.upper()
    if data_type not in _REGISTER_TYPES:
        raise InvalidAddressError(address, f"Unsupported Modbus data type {data_type!r}")
    if table.is_bit and data_type != "BOOL":
        raise InvalidAddressError(address, f"{table.value} only holds BOOL, got {data_type}")

    tag = ModbusTag(address=address, table=table, offset=offset, data_type=data_type)
    if tag.offset + tag.count > 65_536:
        raise InvalidAddressError(address, f"Modbus address out of range: {address!r}")
    return tag


def decode_registers(registers: list[int], data_type: str) -> PlcValue:
    """Decode big-endian registers into a PlcValue of the tag's data type."""
    spec = _REGISTER_TYPES[data_type]
    if len(registers) < spec.registers:
        raise ValueError(f"{data_type} needs {spec.registers} registers, got {len(registers)}")
    raw = b"".join(int(r).to_bytes(2, "big") for r in registers[: spec.registers])
    (value,) = struct.unpack(spec.fmt, raw[-struct.calcsize(spec.fmt):])
    if data_type == "BOOL":
        value = bool(value)
    return PlcValue(spec.plc_type, value)


def _exception_to_response_code(code: int | None) -> ResponseCode:
    if code == 1:
        return ResponseCode.UNSUPPORTED
    if code == 2:
        return ResponseCode.INVALID_ADDRESS
    if code == 3:
        return ResponseCode.INVALID_DATA
    if code == 6:
        return ResponseCode.REMOTE_BUSY
    return ResponseCode.REMOTE_ERROR


class ModbusReadResponse:
    """Per-tag response codes and decoded values of one executed read."""

    def __init__(self, codes: dict[str, ResponseCode], values: dict[str, PlcValue]) -> None:
        self._codes = codes
        self._values = values

    def response_code(self, name: str) -> ResponseCode:
        return self._codes.get(name, ResponseCode.NOT_FOUND)

    def value(self, name: str) -> PlcValue | None:
        return self._values.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._codes)


class ModbusReadRequest:
    """Reads each tag with its own pymodbus call; exception responses become response codes."""

    def __init__(self, client: Any, unit_id: int, tags: dict[str, ModbusTag]) -> None:
        self._client = client
        self._unit_id = unit_id
        self._tags = tags

    @property
    def tags(self) -> dict[str, ModbusTag]:
        return dict(self._tags)

    async def execute(self) -> ModbusReadResponse:
        codes: dict[str, ResponseCode] = {}
        values: dict[str, PlcValue] = {}
        for name, tag in self._tags.items():
            read = getattr(self._client, _READ_FUNCTION[tag.table])
            try:
                rr = await read(tag.offset, count=tag.count, device_id=self._unit_id)
            except PymodbusException as e:
                raise TransportError(str(e), cause=e) from e
            if rr.isError():
                codes[name] = _exception_to_response_code(getattr(rr, "exception_code", None))
                logger.debug("Modbus exception response for %s (%s): %s", name, tag.address, rr)
                continue
            try:
                if tag.table.is_bit:
                    bits = getattr(rr, "bits", None)
                    if not bits:
                        raise ValueError("Empty bit response")
                    values[name] = PlcValue(PlcValueType.BOOL, bool(bits[0]))
                else:
                    values[name] = decode_registers(getattr(rr, "registers", None) or [], tag.data_type)
            except ValueError as e:
                logger.debug("Short or malformed response for %s (%s): %s", name, tag.address, e)
                codes[name] = ResponseCode.INVALID_DATA
                continue
            codes[name] = ResponseCode.OK
        return ModbusReadResponse(codes, values)


class ModbusReadRequestBuilder:
    def __init__(self, client: Any, unit_id: int) -> None:
        self._client = client
        self._unit_id = unit_id
        self._addresses: dict[str, str] = {}

    def add_tag_address(self, name: str, address: str) -> "ModbusReadRequestBuilder":
        self._addresses[name] = address
        return self

    def build(self) -> ModbusReadRequest:
        """Parse every registered address; raises InvalidAddressError on the first bad one."""
        tags = {name: parse_address(address) for name, address in self._addresses.items()}
        return ModbusReadRequest(self._client, self._unit_id, tags)


class ModbusTcpConnection:
    """An open pymodbus TCP client bound to one unit id."""

    def __init__(self, client: Any, unit_id: int) -> None:
        self._client = client
        self._unit_id = unit_id

    @property
    def can_read(self) -> bool:
        return True

    @property
    def unit_id(self) -> int:
        return self._unit_id

    def read_request_builder(self) -> ModbusReadRequestBuilder:
        return ModbusReadRequestBuilder(self._client, self._unit_id)

    async def close(self) -> None:
        try:
            self._client.close()
        except Exception as e:
            logger.warning("Error closing Modbus client: %s", e)


class ModbusTcpDriver:
    """
    Opens modbus-tcp:// URLs, e.g. modbus-tcp://192.168.1.10:502?unit-identifier=1&request-timeout=3000.
    """

    def __init__(self, client_factory: Callable[..., Any] = AsyncModbusTcpClient) -> None:
        self._client_factory = client_factory

    async def connect(self, url: str) -> ModbusTcpConnection:
        parts = urlsplit(url)
        host = parts.hostname
        if not host:
            raise TransportError(f"No host in connection URL {url!r}")
        params = dict(parse_qsl(parts.query))
        try:
            port = parts.port or DEFAULT_PORT
            unit_id = int(params.get("unit-identifier", DEFAULT_UNIT_ID))
            timeout_ms = int(params.get("request-timeout", DEFAULT_REQUEST_TIMEOUT_MS))
        except ValueError as e:
            raise TransportError(f"Invalid connection URL {url!r}: {e}", cause=e) from e

        client = self._client_factory(host, port=port, timeout=timeout_ms / 1000)
        try:
            connected = await client.connect()
        except (PymodbusException, OSError) as e:
            raise TransportError(f"Failed to connect to {host}:{port}: {e}", cause=e) from e
        if not connected:
            raise TransportError(f"Failed to connect to {host}:{port}")
        logger.debug("Modbus TCP connected to %s:%d (unit %d)", host, port, unit_id)
        return ModbusTcpConnection(client, unit_id)
