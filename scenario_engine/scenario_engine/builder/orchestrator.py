"""The scenario builder: resolve, decide, then reuse, import or build.

:class:`ScenarioBuilder` is the entry point test harnesses call once per
test.  One instance is meant to live for the whole test run; it owns the
in-process caches (resolved settings, checksum memos, drivers and the
remote client's remembered checksums) and exposes :meth:`ScenarioBuilder.reset`
to clear them between isolated runs.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

from sqlalchemy import Connection

from scenario_engine.builder.resolver import SettingsResolver
from scenario_engine.checksum import ChecksumEngine, canonical_digest
from scenario_engine.checksum.paths import resolve_path
from scenario_engine.config import Settings, load_settings
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.drivers.registry import get_driver
from scenario_engine.errors import ConfigError, DriverUnsupported, OwnershipConflict
from scenario_engine.migrations.base import MigrationRunner, SeederRunner
from scenario_engine.migrations.runner import CallableSeederRunner, SqlMigrationRunner
from scenario_engine.models.fingerprint import BuildFingerprint
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.models.scenario import ScenarioSpec
from scenario_engine.remote.client import RemoteBuildClient
from scenario_engine.remote.payload import RemoteBuildPayload
from scenario_engine.reuse.decision import ReuseDecisionEngine
from scenario_engine.reuse.journal import Journal
from scenario_engine.reuse.metadata_store import ReuseMetadataStore
from scenario_engine.reuse.transaction import TransactionWrapper, WrappedTransaction
from scenario_engine.reuse.verification import data_checksum, structure_checksum
from scenario_engine.snapshot.manager import SnapshotManager

logger = logging.getLogger(__name__)

MigrationRunnerFactory = Callable[[DatabaseDriver, str], MigrationRunner]
SeederRunnerFactory = Callable[[DatabaseDriver, str], SeederRunner]


class BuildOutcome(str, Enum):
    """How the database behind a handle came to be."""

    BUILT = "built"
    REUSED = "reused"
    REMOTE = "remote"


class DatabaseHandle:
    """A database ready for one test.

    When transaction reuse is active the handle holds the open wrapping
    connection; the test must run its queries through :attr:`connection` and
    call :meth:`finish` (or leave the ``with`` block) afterwards.
    """

    def __init__(
        self,
        *,
        name: str,
        url: str,
        outcome: BuildOutcome,
        reason: str,
        fingerprint: BuildFingerprint,
        settings: ResolvedSettings,
        transaction: WrappedTransaction | None = None,
    ) -> None:
        self.name = name
        self.url = url
        self.outcome = outcome
        self.reason = reason
        self.fingerprint = fingerprint
        self.settings = settings
        self.transaction = transaction

    @property
    def connection(self) -> Connection | None:
        return self.transaction.connection if self.transaction is not None else None

    def finish(self) -> None:
        """Discard the test's changes.

        Raises
        ------
        ReuseViolation
            If the test committed the wrapping transaction.
        """
        if self.transaction is not None:
            self.transaction.finish()

    def __enter__(self) -> DatabaseHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finish()

    def __repr__(self) -> str:
        return f"DatabaseHandle(name={self.name!r}, outcome={self.outcome.value!r}, reason={self.reason!r})"


class _Prepared(NamedTuple):
    settings: ResolvedSettings
    driver: DatabaseDriver
    checksums: ChecksumEngine


class ScenarioBuilder:
    """Produces databases for scenarios, reusing them whenever that is safe.

    Parameters
    ----------
    settings:
        Global settings.  Loaded from the environment when omitted.
    migration_runner:
        Factory for the migration collaborator, given the driver and project
        root.  Defaults to :class:`SqlMigrationRunner`.
    seeder_runner:
        Factory for the seeding collaborator.  Defaults to
        :class:`CallableSeederRunner`.
    remote_client:
        Client used when ``remote_build_url`` is set.
    log:
        Logger receiving build progress.  Defaults to this module's logger.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        migration_runner: MigrationRunnerFactory | None = None,
        seeder_runner: SeederRunnerFactory | None = None,
        remote_client: RemoteBuildClient | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._log = log or logger
        self._resolver = SettingsResolver(self._settings, log=self._log)
        self._migration_runner = migration_runner or SqlMigrationRunner
        self._seeder_runner = seeder_runner or CallableSeederRunner
        self._remote_client = remote_client or RemoteBuildClient(log=self._log)
        self._prepared: dict[str, _Prepared] = {}
        self._drivers: dict[tuple[Any, ...], DatabaseDriver] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    def reset(self) -> None:
        """Forget every cached setting, checksum, driver and remote checksum."""
        self._prepared.clear()
        for driver in self._drivers.values():
            driver.dispose()
        self._drivers.clear()
        self._remote_client.reset()

    # -- Entry points ------------------------------------------------------------

    def build(
        self,
        spec: ScenarioSpec | None = None,
        overrides: Mapping[str, Any] | None = None,
        *,
        test_name: str = "",
    ) -> DatabaseHandle:
        """Return a database matching *spec*, reusing or building it.

        Parameters
        ----------
        spec:
            What the database must contain.  An empty scenario when omitted.
        overrides:
            Test-specific setting overrides, applied on top of the global
            settings.
        test_name:
            Name of the test, used in messages.

        Raises
        ------
        ConfigError
            If a path or setting is invalid.
        OwnershipConflict
            If the database belongs to another project.
        RemoteBuildFailed
            If a remote build was requested and failed.
        DriverUnsupported
            If the driver cannot perform a requested operation.
        BuildError
            If a build step fails.
        """
        prepared = self._prepare(spec or ScenarioSpec(), overrides)
        settings = prepared.settings
        if test_name:
            settings = settings.model_copy(update={"test_name": test_name})
        return self._run(settings, prepared.driver, prepared.checksums, wrap=True)

    def build_for_remote(self, payload: RemoteBuildPayload) -> DatabaseHandle:
        """Build the database another installation asked for, without wrapping it."""
        prepared = self._prepare_remote(payload)
        settings = prepared.settings
        if payload.test_name:
            settings = settings.model_copy(update={"test_name": payload.test_name})
        prepared.checksums.accept_precalculated_build_checksum(payload.precalculated_build_checksum)
        return self._run(settings, prepared.driver, prepared.checksums, wrap=False)

    # -- Preparation ---------------------------------------------------------------

    def _prepare(self, spec: ScenarioSpec, overrides: Mapping[str, Any] | None) -> _Prepared:
        key = canonical_digest(
            {
                "spec": spec.model_dump(mode="json"),
                "overrides": json.loads(json.dumps(dict(overrides or {}), sort_keys=True, default=str)),
            }
        )
        return self._prepared_for(key, lambda: self._resolver.resolve(spec, overrides))

    def _prepare_remote(self, payload: RemoteBuildPayload) -> _Prepared:
        # Per-request fields are applied after the lookup.
        recipe = payload.model_dump(mode="json", exclude={"test_name", "precalculated_build_checksum"})
        key = canonical_digest({"remote": recipe})
        return self._prepared_for(key, lambda: self._resolver.resolve_remote(payload))

    def _prepared_for(self, key: str, resolve: Callable[[], ResolvedSettings]) -> _Prepared:
        prepared = self._prepared.get(key)
        if prepared is None:
            settings = resolve()
            driver = self._driver_for(settings)
            settings = self._adjust_for_driver(settings, driver)
            prepared = _Prepared(settings, driver, self._checksum_engine(settings, driver))
            self._prepared[key] = prepared
        return prepared

    def _driver_for(self, settings: ResolvedSettings) -> DatabaseDriver:
        key = (
            settings.driver,
            settings.database,
            settings.database_url,
            settings.base_path,
            settings.storage_dir,
            settings.database_prefix,
            settings.database_modifier,
            settings.snapshot_prefix,
        )
        driver = self._drivers.get(key)
        if driver is None:
            driver = get_driver(settings)
            self._drivers[key] = driver
        return driver

    def _adjust_for_driver(self, settings: ResolvedSettings, driver: DatabaseDriver) -> ResolvedSettings:
        if settings.reuse_journal and not driver.supports_journal:
            self._log.warning(
                "%s databases cannot be journaled, journal based reuse is turned off",
                driver.name.value,
            )
            settings = settings.model_copy(update={"reuse_journal": False})
        return settings

    @staticmethod
    def _checksum_engine(settings: ResolvedSettings, driver: DatabaseDriver) -> ChecksumEngine:
        return ChecksumEngine(
            settings,
            supports_reuse=driver.supports_reuse,
            supports_snapshots=driver.supports_snapshots,
        )

    # -- Build pipeline --------------------------------------------------------------

    def _run(
        self,
        settings: ResolvedSettings,
        driver: DatabaseDriver,
        checksums: ChecksumEngine,
        *,
        wrap: bool,
    ) -> DatabaseHandle:
        store = ReuseMetadataStore(driver)
        if settings.builds_remotely:
            return self._run_remotely(settings, driver, checksums, store, wrap=wrap)

        start = time.monotonic()
        fingerprint = checksums.fingerprint()
        database = self._database_name(settings, driver, checksums)

        decision = ReuseDecisionEngine(driver, store, log=self._log).decide(database, settings, fingerprint)
        if decision.reusable:
            store.mark_used(database)
            outcome = BuildOutcome.REUSED
            self._log.info(
                "Reusing database %s (%s, %.3fs)",
                database,
                decision.reason,
                time.monotonic() - start,
            )
        else:
            self._build_database(settings, driver, checksums, store, database, fingerprint)
            outcome = BuildOutcome.BUILT
            self._log.info(
                "Built database %s (%s, %.3fs)",
                database,
                decision.reason,
                time.monotonic() - start,
            )

        return self._handle(settings, driver, store, database, outcome, decision.reason, fingerprint, wrap=wrap)

    def _run_remotely(
        self,
        settings: ResolvedSettings,
        driver: DatabaseDriver,
        checksums: ChecksumEngine,
        store: ReuseMetadataStore,
        *,
        wrap: bool,
    ) -> DatabaseHandle:
        if not driver.supports_remote_build:
            raise DriverUnsupported(driver.name.value, "remote builds")
        url = settings.remote_build_url or ""
        checksums.accept_precalculated_build_checksum(self._remote_client.remembered_build_checksum(url))

        result = self._remote_client.build(
            settings,
            build_checksum=checksums.build_checksum(),
            supports_remote_build=driver.supports_remote_build,
        )
        checksums.accept_precalculated_build_checksum(result.build_checksum)
        fingerprint = checksums.fingerprint()
        return self._handle(
            settings, driver, store, result.database, BuildOutcome.REMOTE, "remote-build", fingerprint, wrap=wrap
        )

    def _handle(
        self,
        settings: ResolvedSettings,
        driver: DatabaseDriver,
        store: ReuseMetadataStore,
        database: str,
        outcome: BuildOutcome,
        reason: str,
        fingerprint: BuildFingerprint,
        *,
        wrap: bool,
    ) -> DatabaseHandle:
        transaction = None
        if wrap and settings.reuse_transaction and driver.supports_reuse:
            transaction = TransactionWrapper(driver, store).begin(database, settings.test_name)
        return DatabaseHandle(
            name=database,
            url=driver.url(database),
            outcome=outcome,
            reason=reason,
            fingerprint=fingerprint,
            settings=settings,
            transaction=transaction,
        )

    @staticmethod
    def _database_name(settings: ResolvedSettings, driver: DatabaseDriver, checksums: ChecksumEngine) -> str:
        if settings.scenario_test_dbs:
            return driver.scenario_database_name(settings.database, checksums.database_name_part())
        return driver.original_database_name(settings.database)

    def _build_database(
        self,
        settings: ResolvedSettings,
        driver: DatabaseDriver,
        checksums: ChecksumEngine,
        store: ReuseMetadataStore,
        database: str,
        fingerprint: BuildFingerprint,
    ) -> None:
        record = store.read(database)
        if record is not None and record.project_name != settings.project_name:
            raise OwnershipConflict(database, record.project_name, settings.project_name)

        driver.drop_database(database)
        driver.create_database(database)

        snapshots = SnapshotManager(driver, checksums, log=self._log)
        migrator = self._migration_runner(driver, settings.base_path)
        seeder = self._seeder_runner(driver, settings.base_path)
        seeders = settings.scenario.seeders_to_run()

        if snapshots.try_import(database, seeders, seeder.run):
            snapshots.export_after_seeders(database, seeders)
        else:
            self._import_pre_data(settings, driver, database)
            for path in settings.migration_paths():
                migrator.run(database, path)
            snapshots.export_after_migrations(database)
            if seeders:
                seeder.run(database, seeders)
            snapshots.export_after_seeders(database, seeders)

        if settings.reuse_journal:
            Journal(driver, database).start()

        structure = data = None
        if settings.will_verify:
            engine = driver.engine(database)
            structure = structure_checksum(engine) if settings.verify_structure else None
            data = data_checksum(engine) if settings.verify_data else None

        store.write(
            database,
            orig_database=settings.database,
            project_name=settings.project_name,
            build_checksum=fingerprint.build_checksum,
            snapshot_checksum=fingerprint.snapshot_checksum,
            scenario_checksum=fingerprint.scenario_checksum,
            transaction_reusable=True if settings.reuse_transaction else None,
            journal_reusable=True if settings.reuse_journal else None,
            will_verify=settings.will_verify,
            structure_checksum=structure,
            data_checksum=data,
        )

    @staticmethod
    def _import_pre_data(settings: ResolvedSettings, driver: DatabaseDriver, database: str) -> None:
        base_path = Path(settings.base_path)
        for raw in settings.scenario.pick_pre_data_imports(driver.name.value):
            path = resolve_path(raw, base_path)
            if not path.is_file():
                raise ConfigError.path_missing(raw, "pre-data import")
            driver.import_file(database, path)
            logger.debug("Imported %s into %s", raw, database)
