"""Migration and seeder runners."""

from scenario_engine.migrations.base import MigrationRunner, SeederRunner
from scenario_engine.migrations.runner import CallableSeederRunner, SqlMigrationRunner

__all__ = ["CallableSeederRunner", "MigrationRunner", "SeederRunner", "SqlMigrationRunner"]
