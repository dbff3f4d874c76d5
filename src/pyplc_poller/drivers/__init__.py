"""Protocol drivers: capability interface, schema registry and the bundled Modbus TCP driver."""

from .base import Connection, Driver, ReadRequest, ReadRequestBuilder, ReadResponse
from .manager import DriverManager, get_default_driver_manager

__all__ = [
    "Connection",
    "Driver",
    "ReadRequest",
    "ReadRequestBuilder",
    "ReadResponse",
    "DriverManager",
    "get_default_driver_manager",
]
