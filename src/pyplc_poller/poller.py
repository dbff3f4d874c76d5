"""Poller: configuration-driven facade over Session with the cycle error policy applied."""

import asyncio
import logging
from typing import Any, AsyncIterator

from .config import PollerConfig
from .drivers.manager import DriverManager, get_default_driver_manager
from .errors import ReadTimeoutError
from .fields import build_field_table
from .session import Session, SessionState
from .types import Metric, MetricFieldDefinition

logger = logging.getLogger(__name__)


class Poller:
    """
    Polls one controller as described by a PollerConfig.

    init() validates and prepares the field table (ConfigError is fatal), start()
    opens the session (PLCConnectionError is fatal), gather() runs one cycle.
    A cycle timeout yields no metrics; unrecoverable connection errors propagate.
    """

    def __init__(self, config: PollerConfig, manager: DriverManager | None = None) -> None:
        self._config = config
        self._manager = manager if manager is not None else get_default_driver_manager()
        self._fields: tuple[MetricFieldDefinition, ...] = ()
        self._url: str | None = None
        self._session: Session | None = None

    @property
    def config(self) -> PollerConfig:
        return self._config

    @property
    def fields(self) -> tuple[MetricFieldDefinition, ...]:
        return self._fields

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def session(self) -> Session | None:
        return self._session

    def init(self) -> None:
        """Validate the configuration, build the field table and the connection URL."""
        self._config.validate()
        self._url = self._config.url
        self._fields = build_field_table(self._config.metrics)
        # Fail at init rather than at start when no driver serves the schema
        self._manager.get_driver(self._config.schema)

    async def start(self) -> Session:
        """Open a session (connect + build request). Calls init() if needed; an open session is returned as is."""
        if self._session is not None and self._session.state != SessionState.CLOSED:
            return self._session
        if self._url is None:
            self.init()
        assert self._url is not None
        session = Session(self._manager, self._url, self._fields)
        try:
            await session.open()
        except Exception:
            await session.close()
            raise
        self._session = session
        return session

    async def gather(self) -> list[Metric]:
        """Run one read cycle; a timed-out cycle is logged and yields no metrics."""
        if self._session is None:
            await self.start()
        assert self._session is not None
        try:
            return await self._session.execute_cycle(self._config.timeout)
        except ReadTimeoutError as e:
            logger.warning("%s: %s", self._url, e)
            return []

    async def stop(self) -> None:
        """Close the session. Idempotent."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def poll_iter(self, interval_s: float) -> AsyncIterator[list[Metric]]:
        """
        Yield gather() every interval_s seconds indefinitely.
        The field table and read request are reused across cycles.
        """
        while True:
            yield await self.gather()
            await asyncio.sleep(interval_s)

    async def __aenter__(self) -> "Poller":
        self.init()
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
