"""Wrap a built database in a transaction the test is expected to discard.

Right after the wrapping transaction begins, the reuse metadata's
``transaction_reusable`` flag is set to ``False`` *inside* it.  A normal
rollback restores the durable ``True``; a test that commits the wrapper
also commits the ``False``, which every later reader sees as "dirty".
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Connection, RootTransaction
from sqlalchemy.exc import SQLAlchemyError

from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import BuildError, ReuseViolation
from scenario_engine.reuse.metadata_store import ReuseMetadataStore

logger = logging.getLogger(__name__)


class WrappedTransaction:
    """An open wrapping transaction handed to a test."""

    def __init__(
        self,
        connection: Connection,
        transaction: RootTransaction,
        *,
        store: ReuseMetadataStore,
        database: str,
        test_name: str,
    ) -> None:
        self.connection = connection
        self._transaction = transaction
        self._store = store
        self._database = database
        self._test_name = test_name
        self._finished = False

    @property
    def database(self) -> str:
        return self._database

    def was_committed(self) -> bool:
        """Whether the durable flag shows the wrapper was committed."""
        record = self._store.read(self._database)
        return record is not None and record.transaction_reusable is False

    def finish(self) -> None:
        """Roll the wrapper back and close the connection.

        Raises
        ------
        ReuseViolation
            If the test committed the wrapping transaction.
        """
        if self._finished:
            return
        self._finished = True
        try:
            if self._transaction.is_active:
                self._transaction.rollback()
        finally:
            self.connection.close()

        if self.was_committed():
            logger.warning(
                "The %s test committed the wrapping transaction of %s",
                self._test_name or "current",
                self._database,
            )
            raise ReuseViolation(self._test_name, self._database)


class TransactionWrapper:
    """Opens wrapping transactions on freshly built or reused databases."""

    def __init__(self, driver: DatabaseDriver, store: ReuseMetadataStore) -> None:
        self._driver = driver
        self._store = store

    def begin(self, database: str, test_name: str = "") -> WrappedTransaction:
        """Open the wrapping transaction on *database*.

        Raises
        ------
        BuildError
            If the transaction cannot be opened.
        """
        connection = self._driver.engine(database).connect()
        try:
            transaction = connection.begin()
            self._store.set_transaction_reusable(connection, False)
        except SQLAlchemyError as exc:
            connection.close()
            raise BuildError(f"Could not open the wrapping transaction on {database}: {exc}") from exc
        logger.debug("Opened the wrapping transaction on %s", database)
        return WrappedTransaction(
            connection,
            transaction,
            store=self._store,
            database=database,
            test_name=test_name,
        )
