"""Repository contexts: the provider side of a repository.

A context buffers added, modified and removed entities until
:meth:`RepositoryContext.save_changes` writes them to its store, and answers
queries described by :class:`~repokit.repository.query.QueryOptions`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any, ClassVar, Self, TypeVar

from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.conventions.foreign_key import ForeignKeyInfo
from repokit.repository.exceptions import DatabaseError
from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.options import QueryOptions
from repokit.repository.query.queryable import (
    apply_paging,
    apply_sorting,
    apply_specification,
    group_by,
    project,
    to_dict,
)
from repokit.repository.query.result import PagedQueryResult, QueryResult
from repokit.repository.query.specification import by_primary_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

Selector = str | Callable[[Any], Any] | None


class EntityState(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class EntitySet:
    """A staged change waiting for ``save_changes()``."""

    entity: Any
    state: EntityState


class TransactionManager(ABC):
    """A transaction begun by a context.

    Used as an async context manager, it commits on a clean exit and rolls back
    when the block raises.
    """

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """Whether the transaction is still open."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction."""

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if not self.is_active:
            return
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()


class NullTransaction(TransactionManager):
    """Transaction returned by contexts that only pretend to support transactions."""

    def __init__(self, context: RepositoryContext) -> None:
        self._context = context
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def commit(self) -> None:
        self._end()

    async def rollback(self) -> None:
        self._end()

    def _end(self) -> None:
        self._active = False
        if self._context.current_transaction is self:
            self._context.current_transaction = None


class RepositoryContext(ABC):
    """Abstract provider every repository works through.

    Staging (``add``, ``update``, ``remove``) is synchronous and only touches
    the in-process buffer. Everything that reaches the store is a coroutine.

    Attributes:
        conventions: Resolves keys, tables and relations for this context.
        current_transaction: The open transaction, if any.
        supports_transactions: Whether ``begin_transaction()`` gives a real transaction.
    """

    supports_transactions: ClassVar[bool] = False

    def __init__(self, conventions: RepositoryConventions | None = None) -> None:
        self.conventions = conventions or RepositoryConventions.default()
        self.current_transaction: TransactionManager | None = None
        self._buffer: deque[EntitySet] = deque()

    # ==================== Staging ====================

    def add(self, entity: object) -> None:
        self._stage(entity, EntityState.ADDED)

    def update(self, entity: object) -> None:
        self._stage(entity, EntityState.MODIFIED)

    def remove(self, entity: object) -> None:
        self._stage(entity, EntityState.REMOVED)

    def _stage(self, entity: object, state: EntityState) -> None:
        self._buffer.append(EntitySet(entity, state))
        logger.debug("Staged %s as %s", type(entity).__name__, state.value)

    @property
    def pending_changes(self) -> tuple[EntitySet, ...]:
        return tuple(self._buffer)

    def discard_changes(self) -> None:
        """Drop every staged change without writing it."""
        self._buffer.clear()

    # ==================== Store ====================

    @abstractmethod
    async def save_changes(self) -> int:
        """Write the staged changes to the store.

        Returns:
            The number of entities written.
        """

    @abstractmethod
    async def begin_transaction(self) -> TransactionManager:
        """Open a transaction on the store.

        Raises:
            NotSupportedOperationError: If the context has no transaction support.
        """

    @abstractmethod
    async def execute_sql_query(
        self,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        projector: Callable[[Any], T] | None = None,
    ) -> list[T]:
        """Run a raw SQL query and project every row."""

    @abstractmethod
    async def execute_sql_command(
        self, sql: str, parameters: Mapping[str, Any] | None = None
    ) -> int:
        """Run a raw SQL statement and return the affected row count."""

    # ==================== Queries ====================

    @abstractmethod
    async def find(
        self,
        entity_type: type[T],
        key_values: Sequence[Any],
        fetch: FetchStrategy[T] | None = None,
    ) -> T | None:
        """Return the entity whose primary key equals ``key_values``."""

    @abstractmethod
    async def find_one(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> Any | None:
        """Return the first matching entity, projected by ``selector``."""

    @abstractmethod
    async def find_all(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> PagedQueryResult[Any]:
        """Return the matching entities, projected by ``selector``."""

    @abstractmethod
    async def count(self, entity_type: type[T], options: QueryOptions[T]) -> int:
        """Count the entities matching ``options``. Paging is ignored."""

    async def exists(self, entity_type: type[T], options: QueryOptions[T]) -> bool:
        return await self.count(entity_type, options) > 0

    @abstractmethod
    async def to_dict(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        element_selector: Selector = None,
    ) -> QueryResult[dict[Any, Any]]:
        """Return the matching entities keyed by ``key_selector``."""

    @abstractmethod
    async def group_by(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        result_selector: Callable[[Any, list[T]], Any],
    ) -> QueryResult[list[Any]]:
        """Group the matching entities by key and project each group."""

    async def close(self) -> None:
        """Release the resources held by the context."""
        self.discard_changes()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class QueryableContext(RepositoryContext):
    """Context answering queries in memory from the full set of stored entities.

    Subclasses only provide :meth:`_load`. Queries then run as:
    load, fetch navigations, filter, count, sort, page, project.
    """

    @abstractmethod
    async def _load(self, entity_type: type[T]) -> list[T]:
        """Return detached copies of every stored entity of ``entity_type``."""

    async def _query(self, entity_type: type[T], options: QueryOptions[T]) -> tuple[list[T], int]:
        items = await self._load(entity_type)
        if options.fetch_strategy:
            await self._fetch(entity_type, items, options.fetch_strategy)
        items = apply_specification(items, options.specification)
        total = len(items)
        items = apply_sorting(items, options, entity_type, self.conventions)
        items = apply_paging(items, options)
        return items, total

    async def find(
        self,
        entity_type: type[T],
        key_values: Sequence[Any],
        fetch: FetchStrategy[T] | None = None,
    ) -> T | None:
        options: QueryOptions[T] = QueryOptions().satisfy_by(
            by_primary_key(entity_type, key_values, self.conventions)
        )
        if fetch is not None:
            options.include(fetch)
        items, _ = await self._query(entity_type, options)
        return items[0] if items else None

    async def find_one(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> Any | None:
        items, _ = await self._query(entity_type, options)
        if not items:
            return None
        return project(items[:1], selector)[0]

    async def find_all(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> PagedQueryResult[Any]:
        items, total = await self._query(entity_type, options)
        return PagedQueryResult(project(items, selector), total)

    async def count(self, entity_type: type[T], options: QueryOptions[T]) -> int:
        items = await self._load(entity_type)
        if options.fetch_strategy:
            await self._fetch(entity_type, items, options.fetch_strategy)
        return len(apply_specification(items, options.specification))

    async def to_dict(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        element_selector: Selector = None,
    ) -> QueryResult[dict[Any, Any]]:
        items, total = await self._query(entity_type, options)
        return QueryResult(to_dict(items, key_selector, element_selector), total)

    async def group_by(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        result_selector: Callable[[Any, list[T]], Any],
    ) -> QueryResult[list[Any]]:
        items, total = await self._query(entity_type, options)
        return QueryResult(group_by(items, key_selector, result_selector), total)

    # ==================== Fetching ====================

    async def _fetch(
        self, entity_type: type, entities: list[Any], paths: Iterable[str]
    ) -> None:
        """Populate the navigation properties named by ``paths`` on ``entities``."""
        if not entities:
            return
        for path in paths:
            head, _, rest = path.partition(".")
            info = self.conventions.get_foreign_key(entity_type, head)
            if info is None:
                msg = f"Cannot fetch '{path}': '{head}' is not a navigation of {entity_type.__name__}"
                raise DatabaseError(msg)
            loaded = await self._attach(entities, info)
            if rest:
                if info.is_collection or not info.navigation_on_dependent:
                    target = info.dependent_type
                else:
                    target = info.principal_type
                await self._fetch(target, loaded, [rest])

    async def _attach(self, entities: list[Any], info: ForeignKeyInfo) -> list[Any]:
        """Set ``info.navigation`` on every entity and return the attached targets."""

        def values(entity: Any, props: Sequence[Any]) -> tuple[Any, ...] | None:
            key = tuple(prop.get_value(entity) for prop in props)
            return None if any(value is None for value in key) else key

        navigation = info.navigation
        if info.is_collection:
            dependents = await self._load(info.dependent_type)
            groups: dict[tuple[Any, ...], list[Any]] = {}
            for dependent in dependents:
                key = values(dependent, info.dependent_keys)
                if key is not None:
                    groups.setdefault(key, []).append(dependent)
            attached: list[Any] = []
            for entity in entities:
                key = values(entity, info.principal_keys)
                children = groups.get(key, []) if key is not None else []
                children = apply_sorting(children, None, info.dependent_type, self.conventions)
                navigation.set_value(entity, children)
                attached.extend(children)
            return attached

        if info.navigation_on_dependent:
            own_keys, target_type, target_keys = (
                info.dependent_keys, info.principal_type, info.principal_keys
            )
        else:
            own_keys, target_type, target_keys = (
                info.principal_keys, info.dependent_type, info.dependent_keys
            )
        index: dict[tuple[Any, ...], Any] = {}
        for target in await self._load(target_type):
            key = values(target, target_keys)
            if key is not None:
                index.setdefault(key, target)
        attached = []
        for entity in entities:
            key = values(entity, own_keys)
            target = index.get(key) if key is not None else None
            navigation.set_value(entity, target)
            if target is not None:
                attached.append(target)
        return attached
