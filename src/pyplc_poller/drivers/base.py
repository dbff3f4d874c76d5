"""Capability interface the poller needs from a protocol driver."""

from typing import Protocol

from ..types import PlcValue, ResponseCode


class ReadResponse(Protocol):
    """Outcome of one executed read request, addressable by tag name."""

    def response_code(self, name: str) -> ResponseCode: ...

    def value(self, name: str) -> PlcValue | None: ...


class ReadRequest(Protocol):
    """A prepared batched read. Drivers raise TransportError when the link fails."""

    async def execute(self) -> ReadResponse: ...


class ReadRequestBuilder(Protocol):
    def add_tag_address(self, name: str, address: str) -> "ReadRequestBuilder": ...

    def build(self) -> ReadRequest: ...


class Connection(Protocol):
    """An open link to one controller."""

    @property
    def can_read(self) -> bool: ...

    def read_request_builder(self) -> ReadRequestBuilder: ...

    async def close(self) -> None: ...


class Driver(Protocol):
    """Opens connections for one schema (e.g. modbus-tcp)."""

    async def connect(self, url: str) -> Connection: ...
