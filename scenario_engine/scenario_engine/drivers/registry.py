"""Driver lookup by engine name."""

from __future__ import annotations

from collections.abc import Callable

from scenario_engine.config import DriverName
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.drivers.server import MySQLDriver, PostgresDriver
from scenario_engine.drivers.sqlite import SQLiteDriver
from scenario_engine.errors import DriverUnsupported
from scenario_engine.models.resolved import ResolvedSettings

DriverFactory = Callable[[ResolvedSettings], DatabaseDriver]

_DRIVERS: dict[DriverName, DriverFactory] = {
    DriverName.SQLITE: SQLiteDriver,
    DriverName.POSTGRESQL: PostgresDriver,
    DriverName.MYSQL: MySQLDriver,
}


def register_driver(name: DriverName, factory: DriverFactory) -> None:
    """Replace the driver used for *name*, e.g. with a test double."""
    _DRIVERS[name] = factory


def get_driver(settings: ResolvedSettings) -> DatabaseDriver:
    """Instantiate the driver for ``settings.driver``.

    Raises
    ------
    DriverUnsupported
        If no driver is registered for the engine.
    """
    factory = _DRIVERS.get(settings.driver)
    if factory is None:
        raise DriverUnsupported(str(settings.driver), "scenario builds")
    return factory(settings)
