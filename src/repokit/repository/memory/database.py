"""Named in-memory databases with snapshot transactions."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Mapping
from types import TracebackType
from typing import Any, Self

from repokit.repository.exceptions import DatabaseError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "repokit.memory"

# {EntityType: {primary_key: stored_copy}}
Tables = dict[type, dict[Any, Any]]


class InMemoryDatabase:
    """Per-type tables of entities, keyed by primary key.

    The database supports two modes of operation:

    **1. Auto-commit mode** (default, no active transaction):
       - Writes go straight to the committed tables.

    **2. Transaction mode** (after calling begin()):
       - Writes go to a snapshot of the committed tables.
       - commit() swaps the snapshot in, rollback() discards it.

    Stored values are owned by the database. Callers must deep copy what they
    put in and what they hand out.

    Example - Context manager:
        >>> async with get_database("shop") as database:
        ...     database.get_active_table(Customer)[1] = Customer(id=1, name="Alice")
        ...     # Committed on exit, rolled back if the block raises
    """

    def __init__(self, name: str = DEFAULT_DATABASE_NAME) -> None:
        self.name = name
        self._storage: Tables = {}
        self._staging: Tables = {}
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    async def begin(self) -> None:
        """Start a transaction by taking a snapshot of the committed tables.

        Raises:
            DatabaseError: If a transaction is already active.
        """
        if self._in_transaction:
            msg = (
                "Transaction already in progress. "
                "Call commit() or rollback() before starting a new transaction."
            )
            raise DatabaseError(msg)
        self._in_transaction = True
        self._staging = copy.deepcopy(self._storage)
        logger.debug("Began transaction on in-memory database '%s'", self.name)

    async def commit(self) -> None:
        """Apply the snapshot. Does nothing outside a transaction."""
        if not self._in_transaction:
            return
        self._storage = self._staging
        self._staging = {}
        self._in_transaction = False
        logger.debug("Committed transaction on in-memory database '%s'", self.name)

    async def rollback(self) -> None:
        """Discard the snapshot. Does nothing outside a transaction."""
        if not self._in_transaction:
            return
        self._staging = {}
        self._in_transaction = False
        logger.debug("Rolled back transaction on in-memory database '%s'", self.name)

    async def close(self) -> None:
        if self._in_transaction:
            await self.rollback()

    def get_committed_table(self, entity_type: type) -> dict[Any, Any]:
        """Committed rows of ``entity_type``, ignoring any open transaction."""
        return self._storage.setdefault(entity_type, {})

    def get_active_table(self, entity_type: type) -> dict[Any, Any]:
        """Rows of ``entity_type`` as seen by the current transaction, if any."""
        if self._in_transaction:
            return self._staging.setdefault(entity_type, {})
        return self.get_committed_table(entity_type)

    def replace_tables(self, tables: Mapping[type, dict[Any, Any]]) -> None:
        """Swap whole tables into the active storage at once."""
        target = self._staging if self._in_transaction else self._storage
        target.update(tables)

    def clear(self) -> None:
        self._storage = {}
        if self._in_transaction:
            self._staging = {}

    async def __aenter__(self) -> Self:
        await self.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
            else:
                await self.commit()
        finally:
            await self.close()


_databases: dict[str, InMemoryDatabase] = {}
_databases_lock = threading.Lock()


def get_database(name: str | None = None) -> InMemoryDatabase:
    """Return the process-wide database registered under ``name``, creating it if needed."""
    name = name or DEFAULT_DATABASE_NAME
    with _databases_lock:
        database = _databases.get(name)
        if database is None:
            database = InMemoryDatabase(name)
            _databases[name] = database
        return database


def drop_database(name: str | None = None) -> None:
    """Forget the database registered under ``name``."""
    with _databases_lock:
        _databases.pop(name or DEFAULT_DATABASE_NAME, None)
