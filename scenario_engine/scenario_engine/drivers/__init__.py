"""Database engine drivers."""

from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.drivers.registry import get_driver, register_driver
from scenario_engine.drivers.server import MySQLDriver, PostgresDriver
from scenario_engine.drivers.sqlite import SQLiteDriver

__all__ = [
    "DatabaseDriver",
    "MySQLDriver",
    "PostgresDriver",
    "SQLiteDriver",
    "get_driver",
    "register_driver",
]
