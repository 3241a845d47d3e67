"""In-memory repository context."""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from typing_extensions import override
from ulid import ULID

from repokit.repository.context import (
    EntityState,
    QueryableContext,
    TransactionManager,
)
from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.conventions.model import PropertyInfo, unwrap_optional
from repokit.repository.conventions.primary_key import combine_key
from repokit.repository.exceptions import (
    DatabaseError,
    EntityAlreadyExistsError,
    EntityKeyGenerationError,
    EntityNotFoundError,
    NotSupportedOperationError,
)
from repokit.repository.memory.database import InMemoryDatabase, get_database
from repokit.repository.query.fetch import FetchStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_unset(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, str)) and not value


class InMemoryTransaction(TransactionManager):
    """Transaction local to one :class:`InMemoryContext`.

    Changes saved while it is active stay in the context. Commit replays them
    on the shared database, rollback forgets them.
    """

    def __init__(self, context: InMemoryContext) -> None:
        self._context = context
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def commit(self) -> None:
        try:
            self._context._commit_transaction()
        finally:
            self._end()

    async def rollback(self) -> None:
        self._context._discard_transaction()
        self._end()

    def _end(self) -> None:
        self._active = False
        if self._context.current_transaction is self:
            self._context.current_transaction = None


@dataclass
class _SaveResult:
    tables: dict[type, dict[Any, Any]] = field(default_factory=dict)
    # (state, stored copy) of every entry, in order
    applied: list[tuple[EntityState, Any]] = field(default_factory=list)
    # (caller's entity, key property, generated value)
    identities: list[tuple[Any, PropertyInfo, Any]] = field(default_factory=list)


class InMemoryContext(QueryableContext):
    """Context storing entities in a named, process-wide :class:`InMemoryDatabase`.

    Contexts created with the same database name share their data. Entities are
    deep copied on the way in and on the way out, so callers never hold a
    reference to a stored object.

    A transaction is private to the context that began it. Until it commits,
    saved changes are only visible through this context, and other contexts on
    the same database keep reading and writing the committed tables.

    Args:
        database_name: Name of the database to use. Defaults to ``"repokit.memory"``.
        ignore_sql_query_warning: Make raw SQL execution a no-op instead of raising
            ``NotSupportedOperationError``.
        conventions: Conventions used to resolve keys and relations.
    """

    supports_transactions = True

    def __init__(
        self,
        database_name: str | None = None,
        *,
        ignore_sql_query_warning: bool = False,
        conventions: RepositoryConventions | None = None,
    ) -> None:
        super().__init__(conventions)
        self.database: InMemoryDatabase = get_database(database_name)
        self.ignore_sql_query_warning = ignore_sql_query_warning
        self._transaction_tables: dict[type, dict[Any, Any]] | None = None
        self._journal: list[tuple[EntityState, Any]] = []

    def _get_table(self, entity_type: type) -> dict[Any, Any]:
        if self._transaction_tables is None:
            return self.database.get_active_table(entity_type)
        table = self._transaction_tables.get(entity_type)
        if table is None:
            table = dict(self.database.get_active_table(entity_type))
            self._transaction_tables[entity_type] = table
        return table

    def _after_save(self, tables: Mapping[type, dict[Any, Any]]) -> None:
        """Hook called once the saved tables were swapped into the database."""

    # ==================== Saving ====================

    @override
    async def save_changes(self) -> int:
        """Write the staged changes to the database.

        All entries are applied to copies of the affected tables, which replace
        the database tables only once every entry succeeded. Generated keys are
        assigned to the staged entities at that point too. Inside a transaction
        the tables are kept by the context until the transaction commits.

        Returns:
            The number of entities written.

        Raises:
            EntityAlreadyExistsError: If an added entity's key is already stored.
            EntityNotFoundError: If an updated or removed entity is not stored.
            EntityKeyGenerationError: If an identity key of an unsupported type is unset.
        """
        entries = [(entry.state, entry.entity) for entry in self._buffer]
        try:
            result = self._apply(entries, self._get_table)
        finally:
            self._buffer.clear()

        if self._transaction_tables is not None:
            self._transaction_tables.update(result.tables)
            self._journal.extend(result.applied)
        else:
            self.database.replace_tables(result.tables)
            self._after_save(result.tables)

        for entity, prop, value in result.identities:
            prop.set_value(entity, value)
        logger.debug(
            "Saved %d change(s) to in-memory database '%s'", len(entries), self.database.name
        )
        return len(entries)

    def _apply(
        self,
        entries: Sequence[tuple[EntityState, Any]],
        get_table: Callable[[type], dict[Any, Any]],
    ) -> _SaveResult:
        """Apply ``entries`` in order to copies of the tables returned by ``get_table``."""
        result = _SaveResult()
        for state, entity in entries:
            entity_type = type(entity)
            if entity_type not in result.tables:
                result.tables[entity_type] = dict(get_table(entity_type))
            table = result.tables[entity_type]
            stored = copy.deepcopy(entity)

            if state is EntityState.ADDED:
                generated = self._generate_identity(stored, table)
                if generated is not None:
                    result.identities.append((entity, *generated))
                key = self.conventions.get_primary_key(stored)
                if key in table:
                    raise EntityAlreadyExistsError(entity_type.__name__, str(key))
                table[key] = stored
            else:
                key = self.conventions.get_primary_key(stored)
                if key not in table:
                    raise EntityNotFoundError(entity_type.__name__, str(key))
                if state is EntityState.MODIFIED:
                    table[key] = stored
                else:
                    del table[key]
            result.applied.append((state, stored))
        return result

    def _generate_identity(
        self, entity: object, table: dict[Any, Any]
    ) -> tuple[PropertyInfo, Any] | None:
        """Assign a new value to an unset single identity key of ``entity``."""
        entity_type = type(entity)
        keys = self.conventions.ensure_primary_key(entity_type)
        if len(keys) != 1:
            return None
        prop = keys[0]
        if not self.conventions.is_column_identity(entity_type, prop):
            return None
        if not _is_unset(prop.get_value(entity)):
            return None
        value = self._next_identity(entity_type, prop, table)
        prop.set_value(entity, value)
        return prop, value

    @staticmethod
    def _next_identity(entity_type: type, prop: PropertyInfo, table: dict[Any, Any]) -> Any:
        key_type = unwrap_optional(prop.annotation)
        if key_type is ULID:
            return ULID()
        if key_type is uuid.UUID:
            return uuid.uuid4()
        if key_type is str:
            return uuid.uuid4().hex
        if key_type is int:
            existing = [key for key in table if isinstance(key, int)]
            return max(existing, default=0) + 1
        raise EntityKeyGenerationError(entity_type.__name__, key_type)

    # ==================== Transactions & SQL ====================

    @override
    async def begin_transaction(self) -> TransactionManager:
        if self.current_transaction is not None:
            msg = "A transaction is already active on this context"
            raise DatabaseError(msg)
        self._transaction_tables = {}
        self._journal = []
        self.current_transaction = InMemoryTransaction(self)
        logger.debug("Began transaction on in-memory database '%s'", self.database.name)
        return self.current_transaction

    def _commit_transaction(self) -> None:
        """Replay the changes saved in the transaction on the committed tables.

        Raises:
            EntityAlreadyExistsError: If another context stored an added key meanwhile.
            EntityNotFoundError: If another context removed an updated or removed entity.
        """
        journal = self._journal
        self._discard_transaction()
        result = self._apply(journal, self.database.get_active_table)
        self.database.replace_tables(result.tables)
        self._after_save(result.tables)
        logger.debug(
            "Committed %d change(s) to in-memory database '%s'", len(journal), self.database.name
        )

    def _discard_transaction(self) -> None:
        self._transaction_tables = None
        self._journal = []

    @override
    async def execute_sql_query(
        self,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        projector: Callable[[Any], T] | None = None,
    ) -> list[T]:
        self._ensure_sql_allowed()
        return []

    @override
    async def execute_sql_command(
        self, sql: str, parameters: Mapping[str, Any] | None = None
    ) -> int:
        self._ensure_sql_allowed()
        return 0

    def _ensure_sql_allowed(self) -> None:
        if not self.ignore_sql_query_warning:
            msg = (
                f"{type(self).__name__} does not support SQL query execution. "
                "Create the context with ignore_sql_query_warning=True to ignore this."
            )
            raise NotSupportedOperationError(msg)

    # ==================== Queries ====================

    @override
    async def _load(self, entity_type: type[T]) -> list[T]:
        return [copy.deepcopy(entity) for entity in self._get_table(entity_type).values()]

    @override
    async def find(
        self,
        entity_type: type[T],
        key_values: Sequence[Any],
        fetch: FetchStrategy[T] | None = None,
    ) -> T | None:
        values = self.conventions.normalize_key_values(entity_type, tuple(key_values))
        stored = self._get_table(entity_type).get(combine_key(values))
        if stored is None:
            return None
        entity = copy.deepcopy(stored)
        if fetch:
            await self._fetch(entity_type, [entity], fetch)
        return entity

    async def ensure_deleted(self) -> None:
        """Drop the staged changes and every table of the database."""
        self.discard_changes()
        self.database.clear()
        if self._transaction_tables is not None:
            self._transaction_tables = {}
            self._journal = []

    @override
    async def close(self) -> None:
        if self.current_transaction is not None and self.current_transaction.is_active:
            await self.current_transaction.rollback()
        await super().close()
