"""Session: owns one controller connection and its read request, and runs read cycles."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from .drivers.base import Connection, ReadRequest, ReadResponse
from .drivers.manager import DriverManager
from .errors import ConnectionErrorKind, PLCConnectionError, ReadTimeoutError, TransportError
from .fields import build_read_request
from .grouper import SeriesGrouper
from .normalize import normalize_value
from .types import Metric, MetricFieldDefinition, ResponseCode

logger = logging.getLogger(__name__)

# Errors a driver may raise when the link itself fails.
_LINK_ERRORS = (TransportError, OSError)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    READY = "ready"
    CLOSED = "closed"


def _consume_outcome(task: "asyncio.Future[Any]") -> None:
    """Retrieve an abandoned execution's outcome so it is never reported as unhandled."""
    if not task.cancelled():
        task.exception()


def _close_abandoned(task: "asyncio.Future[Any]") -> None:
    """Close a connection that arrived after its connect attempt was abandoned."""
    if task.cancelled() or task.exception() is not None:
        return
    closing = asyncio.ensure_future(task.result().close())
    closing.add_done_callback(_consume_outcome)


class Session:
    """
    Connection lifecycle: connect -> build_request -> execute_cycle* -> close.

    Only the session reads or replaces its connection and read request. Cycles
    must not overlap: a reconnect always completes before the next read starts.
    """

    def __init__(self, manager: DriverManager, url: str, fields: Sequence[MetricFieldDefinition]) -> None:
        missing = [f.name for f in fields if f.mapping is None]
        if missing:
            raise ValueError(f"Fields without mapping (use build_field_table): {missing}")
        self._manager = manager
        self._url = url
        self._fields = tuple(fields)
        self._connection: Connection | None = None
        self._request: ReadRequest | None = None
        self._state = SessionState.DISCONNECTED

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def url(self) -> str:
        return self._url

    @property
    def fields(self) -> tuple[MetricFieldDefinition, ...]:
        return self._fields

    def _ensure_open(self) -> None:
        if self._state == SessionState.CLOSED:
            raise PLCConnectionError(ConnectionErrorKind.CLOSED, "Session is closed", url=self._url)

    def _connect_failed(self, e: BaseException) -> PLCConnectionError:
        return PLCConnectionError(
            ConnectionErrorKind.CONNECT_FAILED,
            f"Error connecting to PLC: {e}",
            url=self._url,
            cause=e,
        )

    def _adopt(self, connection: Connection) -> None:
        self._connection = connection
        self._state = SessionState.CONNECTED

    async def connect(self) -> None:
        """Open the connection; on failure the session stays disconnected."""
        self._ensure_open()
        if self._connection is not None:
            return
        logger.debug("Connecting to %r...", self._url)
        try:
            connection = await self._manager.get_connection(self._url)
        except _LINK_ERRORS as e:
            raise self._connect_failed(e) from e
        self._adopt(connection)

    def build_request(self) -> None:
        """Prepare the batched read request for all fields on the current connection."""
        self._ensure_open()
        if self._connection is None:
            raise PLCConnectionError(
                ConnectionErrorKind.CONNECT_FAILED,
                "Not connected",
                url=self._url,
            )
        if not self._connection.can_read:
            raise PLCConnectionError(
                ConnectionErrorKind.UNSUPPORTED,
                f"This connection {self._url} doesn't support read operations",
                url=self._url,
            )
        try:
            self._request = build_read_request(self._connection, self._fields)
        except PLCConnectionError as e:
            e.url = self._url
            raise
        self._state = SessionState.READY
        logger.info("Connected to %s, read request prepared for %d fields", self._url, len(self._fields))

    async def open(self) -> None:
        await self.connect()
        self.build_request()

    async def _teardown(self) -> None:
        connection = self._connection
        self._connection = None
        self._request = None
        if self._state != SessionState.CLOSED:
            self._state = SessionState.DISCONNECTED
        if connection is None:
            return
        try:
            await connection.close()
        except _LINK_ERRORS as e:
            logger.warning("Error closing connection to %s: %s", self._url, e)

    async def _race(
        self,
        start: Callable[[], Awaitable[Any]],
        deadline: float,
        timeout: float,
        on_abandon: Callable[["asyncio.Future[Any]"], None] = _consume_outcome,
    ) -> Any:
        """Await start() until the deadline; on expiry abandon it, drop the connection and raise ReadTimeoutError."""
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            await self._teardown()
            raise ReadTimeoutError(timeout)

        task = asyncio.ensure_future(start())
        done, _ = await asyncio.wait({task}, timeout=remaining)
        if task not in done:
            task.cancel()
            task.add_done_callback(on_abandon)
            logger.debug("Pending operation on %s abandoned after %gs", self._url, timeout)
            await self._teardown()
            raise ReadTimeoutError(timeout)
        return task.result()

    async def _reconnect(self, deadline: float, timeout: float) -> None:
        """Drop the connection, then connect and rebuild the request within the cycle deadline."""
        await self._teardown()
        logger.debug("Reconnecting to %r...", self._url)
        try:
            connection = await self._race(
                lambda: self._manager.get_connection(self._url),
                deadline,
                timeout,
                on_abandon=_close_abandoned,
            )
        except ReadTimeoutError:
            raise
        except _LINK_ERRORS as e:
            raise self._connect_failed(e) from e
        self._adopt(connection)
        self.build_request()

    async def _execute(self, deadline: float, timeout: float) -> ReadResponse:
        assert self._request is not None
        try:
            return await self._race(self._request.execute, deadline, timeout)
        except ReadTimeoutError:
            raise
        except _LINK_ERRORS as e:
            raise PLCConnectionError(
                ConnectionErrorKind.EXECUTE_FAILED,
                f"Error executing read-request: {e}",
                url=self._url,
                cause=e,
            ) from e

    async def execute_cycle(self, timeout: float) -> list[Metric]:
        """
        Run one read cycle and return its metrics.

        All fields share one timestamp taken at cycle start. A transport error
        triggers one reconnect-and-rebuild and one retry within the same deadline;
        a second failure is raised. Reconnecting counts against the deadline too.
        Raises ReadTimeoutError when the deadline passes first (no partial metrics).
        """
        self._ensure_open()
        timestamp = datetime.now(timezone.utc)
        deadline = asyncio.get_running_loop().time() + timeout

        if self._state != SessionState.READY:
            await self._reconnect(deadline, timeout)

        try:
            response = await self._execute(deadline, timeout)
        except PLCConnectionError as e:
            logger.error("%s; reconnecting and retrying once", e)
            await self._reconnect(deadline, timeout)
            try:
                response = await self._execute(deadline, timeout)
            except PLCConnectionError:
                await self._teardown()
                raise

        return self._collect(response, timestamp)

    def _collect(self, response: ReadResponse, timestamp: datetime) -> list[Metric]:
        grouper = SeriesGrouper()
        for f in self._fields:
            code = response.response_code(f.name)
            if code != ResponseCode.OK:
                logger.debug("Read tag %s error %s", f.name, getattr(code, "value", code))
                continue
            raw = response.value(f.name)
            normalized = normalize_value(raw)
            if normalized is None or normalized.is_null:
                logger.debug("Tag %s value is unsupported or null: %r", f.name, raw)
                continue
            mapping = f.mapping
            assert mapping is not None
            grouper.add(mapping.measurement, mapping.tags, timestamp, mapping.field, normalized)
        return grouper.drain()

    async def close(self) -> None:
        """Release the connection. Idempotent; safe from any state."""
        if self._state == SessionState.CLOSED:
            return
        if self._connection is not None:
            logger.debug("Disconnecting from %r...", self._url)
        await self._teardown()
        self._state = SessionState.CLOSED

    async def __aenter__(self) -> "Session":
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
