"""DriverManager: schema -> driver registry used to open connections by URL."""

import logging
from urllib.parse import urlsplit

from ..errors import ConfigError, ConfigErrorKind
from .base import Connection, Driver

logger = logging.getLogger(__name__)


class DriverManager:
    """
    Maps connection-URL schemas to drivers. Only registered schemas can be opened;
    callers add drivers for protocols that are not bundled.
    """

    def __init__(self) -> None:
        self._drivers: dict[str, Driver] = {}

    def register(self, schema: str, driver: Driver) -> None:
        key = schema.lower()
        if key in self._drivers:
            logger.debug("Replacing driver for schema %s", key)
        self._drivers[key] = driver

    def get_driver(self, schema: str) -> Driver:
        """Return the driver for a schema; raise ConfigError if none is registered."""
        key = schema.lower()
        if key not in self._drivers:
            raise ConfigError(
                ConfigErrorKind.UNSUPPORTED_SCHEMA,
                f"No driver registered for schema {schema!r}",
            )
        return self._drivers[key]

    async def get_connection(self, url: str) -> Connection:
        """Open a connection with the driver matching the URL's schema."""
        schema = urlsplit(url).scheme
        driver = self.get_driver(schema)
        return await driver.connect(url)

    @property
    def schemas(self) -> list[str]:
        return sorted(self._drivers)

    def __contains__(self, schema: object) -> bool:
        return isinstance(schema, str) and schema.lower() in self._drivers


def get_default_driver_manager() -> DriverManager:
    """Return a DriverManager with the bundled drivers (modbus-tcp) registered."""
    from .modbus import ModbusTcpDriver

    manager = DriverManager()
    manager.register("modbus-tcp", ModbusTcpDriver())
    return manager
