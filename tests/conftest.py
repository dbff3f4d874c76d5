"""Shared fixtures: an in-memory driver implementing the connection capability interface."""

import asyncio
from typing import Any

import pytest

from pyplc_poller import (
    DriverManager,
    MetricDefinition,
    MetricFieldDefinition,
    PlcValue,
    PlcValueType,
    PollerConfig,
    ResponseCode,
    build_field_table,
)

HANG = "hang"


class FakeResponse:
    def __init__(self, results: dict[str, tuple[ResponseCode, PlcValue | None]]) -> None:
        self._results = results

    def response_code(self, name: str) -> ResponseCode:
        return self._results[name][0]

    def value(self, name: str) -> PlcValue | None:
        return self._results[name][1]


class FakeRequest:
    def __init__(self, connection: "FakeConnection", addresses: dict[str, str]) -> None:
        self.connection = connection
        self.addresses = addresses

    async def execute(self) -> FakeResponse:
        driver = self.connection.driver
        driver.executions += 1
        outcome = driver.execute_outcomes.pop(0) if driver.execute_outcomes else None
        if outcome == HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return FakeResponse(
            {name: driver.results.get(name, (ResponseCode.NOT_FOUND, None)) for name in self.addresses}
        )


class FakeBuilder:
    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.addresses: dict[str, str] = {}

    def add_tag_address(self, name: str, address: str) -> "FakeBuilder":
        if self.connection.driver.register_error is not None:
            raise self.connection.driver.register_error
        self.addresses[name] = address
        return self

    def build(self) -> FakeRequest:
        driver = self.connection.driver
        driver.builds += 1
        if driver.build_error is not None:
            raise driver.build_error
        return FakeRequest(self.connection, dict(self.addresses))


class FakeConnection:
    def __init__(self, driver: "FakeDriver", url: str) -> None:
        self.driver = driver
        self.url = url
        self.closed = False

    @property
    def can_read(self) -> bool:
        return self.driver.can_read

    def read_request_builder(self) -> FakeBuilder:
        return FakeBuilder(self)

    async def close(self) -> None:
        self.closed = True


class FakeDriver:
    """
    Scriptable driver. execute_outcomes is consumed one entry per execute():
    an exception is raised, HANG blocks forever, None (or empty queue) returns results.
    connect_delays is consumed one entry per connect(): seconds to wait before connecting.
    """

    def __init__(
        self,
        results: dict[str, tuple[ResponseCode, PlcValue | None]] | None = None,
        *,
        can_read: bool = True,
        connect_error: BaseException | None = None,
        build_error: BaseException | None = None,
    ) -> None:
        self.results = results or {}
        self.can_read = can_read
        self.connect_error = connect_error
        self.build_error = build_error
        self.execute_outcomes: list[Any] = []
        self.connect_delays: list[float] = []
        self.register_error: BaseException | None = None
        self.connections: list[FakeConnection] = []
        self.builds = 0
        self.executions = 0

    @property
    def connects(self) -> int:
        return len(self.connections)

    async def connect(self, url: str) -> FakeConnection:
        if self.connect_delays:
            await asyncio.sleep(self.connect_delays.pop(0))
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(self, url)
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver(
        {
            "temp": (ResponseCode.OK, PlcValue(PlcValueType.REAL, 21.5)),
            "pressure": (ResponseCode.INVALID_ADDRESS, None),
        }
    )


@pytest.fixture
def fake_manager(fake_driver: FakeDriver) -> DriverManager:
    manager = DriverManager()
    manager.register("modbus-tcp", fake_driver)
    return manager


@pytest.fixture
def metric_definitions() -> list[MetricDefinition]:
    return [
        MetricDefinition(
            name="m",
            fields=(
                MetricFieldDefinition("temp", "holding-register:1:REAL"),
                MetricFieldDefinition("pressure", "holding-register:99:INT"),
            ),
            tags={"unit": "1"},
        )
    ]


@pytest.fixture
def field_table(metric_definitions: list[MetricDefinition]) -> tuple[MetricFieldDefinition, ...]:
    return build_field_table(metric_definitions)


@pytest.fixture
def poller_config(metric_definitions: list[MetricDefinition]) -> PollerConfig:
    return PollerConfig(
        schema="modbus-tcp",
        domain_name="10.0.0.5:502",
        parameters=[{"unit-identifier": "1"}],
        timeout=1.0,
        metrics=metric_definitions,
    )
