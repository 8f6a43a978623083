"""
Drivers package for litemap.

Importing this package registers the psycopg and asyncpg drivers so that
``driver_for`` can resolve their connection types.
"""

from litemap.drivers.abstract import (
    AbstractDriver,
    Driver,
    GridCursor,
    driver_for,
    register_driver,
    unregister_driver,
)
from litemap.drivers.asyncpg_driver import AsyncpgDriver
from litemap.drivers.psycopg_driver import PsycopgDriver

__all__ = [
    # Abstracts
    "AbstractDriver",
    "Driver",
    "GridCursor",
    "driver_for",
    "register_driver",
    "unregister_driver",
    # Concrete drivers
    "AsyncpgDriver",
    "PsycopgDriver",
]
