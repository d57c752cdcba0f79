"""Decide whether an existing database can be handed to the next test.

The decision runs once per build request, against the one database name the
current fingerprints point to.  It only trusts durable metadata written after
a successful build, so a database that another process is still building is
never judged reusable.

Order of checks:

1. ``force_rebuild`` or reuse turned off                 -> must build
2. database or metadata missing                          -> must build
3. metadata written by another project                   -> OwnershipConflict
4. build or scenario checksum differs                    -> must build
5. transaction reuse and the wrapper was rolled back     -> reuse as-is
6. transaction reuse and the wrapper was committed       -> must build
7. journal reuse and the journal can revert every change -> revert, reuse
8. anything else                                         -> must build

When verification is required, a database that passes 5 or 7 is also
compared against the structure (and data) fingerprints stored at build time.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import OwnershipConflict
from scenario_engine.models.fingerprint import BuildFingerprint
from scenario_engine.models.records import DatabaseRecord
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.reuse.journal import Journal
from scenario_engine.reuse.metadata_store import ReuseMetadataStore
from scenario_engine.reuse.verification import data_checksum, structure_checksum

logger = logging.getLogger(__name__)


class ReuseState(str, Enum):
    MUST_BUILD = "must_build"
    REUSE_CLEAN = "reuse_clean"
    REUSE_VIA_JOURNAL_REVERT = "reuse_via_journal_revert"


class ReuseDecision(BaseModel):
    """Outcome of one reuse check."""

    model_config = ConfigDict(frozen=True)

    state: ReuseState
    reason: str
    record: DatabaseRecord | None = None

    @property
    def reusable(self) -> bool:
        return self.state is not ReuseState.MUST_BUILD


def _must_build(reason: str, record: DatabaseRecord | None = None) -> ReuseDecision:
    return ReuseDecision(state=ReuseState.MUST_BUILD, reason=reason, record=record)


class ReuseDecisionEngine:
    """Runs the reuse state machine for one driver."""

    def __init__(
        self,
        driver: DatabaseDriver,
        store: ReuseMetadataStore,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self._driver = driver
        self._store = store
        self._log = log or logger

    def decide(
        self,
        database: str,
        settings: ResolvedSettings,
        fingerprint: BuildFingerprint,
    ) -> ReuseDecision:
        """Judge whether *database* can be reused for *fingerprint*.

        Parameters
        ----------
        database:
            The physical database the current fingerprints name.
        settings:
            The resolved settings of the build.
        fingerprint:
            The current build, scenario and snapshot checksums.

        Raises
        ------
        OwnershipConflict
            If the database's metadata names a different project.
        BuildError
            If a journal revert fails part way through.
        """
        if settings.force_rebuild:
            return _must_build("force-rebuild")
        if not self._driver.supports_reuse or not settings.reusing_db:
            return _must_build("reuse-disabled")
        if not self._driver.database_exists(database):
            return _must_build("missing")

        record = self._store.read(database)
        if record is None:
            return _must_build("no-metadata")
        if record.project_name != settings.project_name:
            raise OwnershipConflict(database, record.project_name, settings.project_name)
        if record.build_checksum != fingerprint.build_checksum:
            return _must_build("build-checksum-changed", record)
        if record.scenario_checksum != fingerprint.scenario_checksum:
            return _must_build("scenario-checksum-changed", record)

        if settings.reuse_transaction:
            if record.transaction_reusable is True:
                return self._verified(database, settings, record, ReuseState.REUSE_CLEAN, "transaction-rolled-back")
            if record.transaction_reusable is False:
                self._log.warning(
                    "A previous test committed the wrapping transaction of %s, so it will be rebuilt",
                    database,
                )
                return _must_build("transaction-committed", record)

        if settings.reuse_journal and record.journal_reusable and self._driver.supports_journal:
            journal = Journal(self._driver, database)
            if journal.can_revert():
                journal.revert()
                return self._verified(
                    database, settings, record, ReuseState.REUSE_VIA_JOURNAL_REVERT, "journal-reverted"
                )
            return _must_build("journal-cannot-revert", record)

        return _must_build("not-reusable", record)

    def _verified(
        self,
        database: str,
        settings: ResolvedSettings,
        record: DatabaseRecord,
        state: ReuseState,
        reason: str,
    ) -> ReuseDecision:
        if record.verify_required:
            engine = self._driver.engine(database)
            if settings.verify_structure and record.structure_checksum != structure_checksum(engine):
                self._log.warning("The structure of %s changed after it was built", database)
                return _must_build("structure-changed", record)
            if settings.verify_data and record.data_checksum != data_checksum(engine):
                self._log.warning("The data in %s changed after it was built", database)
                return _must_build("data-changed", record)
        return ReuseDecision(state=state, reason=reason, record=record)
