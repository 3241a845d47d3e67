"""Repository implementation over any repository context."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from types import TracebackType
from typing import Any, Concatenate, Generic, ParamSpec, Self, TypeVar

from typing_extensions import override

from repokit.repository.caching import QueryCache
from repokit.repository.context import RepositoryContext
from repokit.repository.conventions.primary_key import combine_key
from repokit.repository.exceptions import (
    EntityModelError,
    EntityNotFoundError,
    PaginationParameterError,
)
from repokit.repository.interceptors import RepositoryInterceptor
from repokit.repository.options import RepositoryOptions
from repokit.repository.protocols import K, Repository, T
from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.options import Criteria, QueryOptions
from repokit.repository.query.paths import selector_description
from repokit.repository.query.result import CachePagedQueryResult

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")
E = TypeVar("E")

SelectorArg = str | Callable[[Any], Any] | None


def _log_errors(
    method: Callable[Concatenate[ContextRepository[Any, Any], P], Coroutine[Any, Any, R]],
) -> Callable[Concatenate[ContextRepository[Any, Any], P], Coroutine[Any, Any, R]]:
    """Log the failure of a repository operation before re-raising it."""

    @functools.wraps(method)
    async def wrapper(self: ContextRepository[Any, Any], *args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await method(self, *args, **kwargs)
        except Exception:
            logger.error(
                "%s.%s failed on %s",
                type(self).__name__,
                method.__name__,
                self.entity_type.__name__,
                exc_info=True,
            )
            raise

    return wrapper


def _describe_key(key: tuple[Any, ...]) -> str:
    return str(combine_key(key))


class ContextRepository(Repository[T, K], Generic[T, K]):
    """Repository working through a :class:`RepositoryContext`.

    Writes stage the entities on the context. With ``auto_commit`` they are saved
    right away, otherwise the owner of the context (usually a unit of work) saves
    them.

    Type Parameters:
        T: The entity type managed by this repository.
        K: The type of the entity's key.

    Attributes:
        entity_type: The entity type managed by this repository.
        context: The context every operation goes through.
        auto_commit: Whether every write is followed by ``context.save_changes()``.
        interceptors: Hooks run around every staged write, in order.
        cache_used: Whether the last read was answered by the cache.

    Raises:
        MissingPrimaryKeyError: If no primary key can be resolved for ``entity_type``.
    """

    def __init__(
        self,
        entity_type: type[T],
        context: RepositoryContext,
        *,
        auto_commit: bool = True,
        interceptors: Sequence[RepositoryInterceptor] = (),
        cache: QueryCache | None = None,
    ) -> None:
        context.conventions.ensure_primary_key(entity_type)
        self.entity_type = entity_type
        self.context = context
        self.auto_commit = auto_commit
        self.interceptors = tuple(interceptors)
        self.cache = cache
        self.cache_used = False
        self._owns_context = False

    @classmethod
    def from_options(
        cls, entity_type: type[T], options: RepositoryOptions, *, auto_commit: bool = True
    ) -> ContextRepository[T, Any]:
        """Create a repository with its own context, closed by :meth:`close`."""
        repository: ContextRepository[T, Any] = cls(
            entity_type,
            options.create_context(),
            auto_commit=auto_commit,
            interceptors=options.interceptors,
            cache=QueryCache(options.cache_provider) if options.cache_provider else None,
        )
        repository._owns_context = True
        return repository

    def _ensure_entity_model(self, entity: object) -> None:
        if not isinstance(entity, self.entity_type):
            msg = (
                f"Expected an entity of type {self.entity_type.__name__}, "
                f"got {type(entity).__name__}"
            )
            raise EntityModelError(msg)

    # ==================== Writes ====================

    async def _write(self, action: str, entities: Sequence[T]) -> None:
        """Stage ``entities`` for ``action`` (add, update or delete) around the interceptors."""
        for entity in entities:
            self._ensure_entity_model(entity)
        stage = {
            "add": self.context.add,
            "update": self.context.update,
            "delete": self.context.remove,
        }[action]

        try:
            for entity in entities:
                for interceptor in self.interceptors:
                    getattr(interceptor, f"{action}_executing")(entity)
                stage(entity)
        except Exception:
            if self.auto_commit:
                self.context.discard_changes()
            raise

        await self._commit_if_enabled()
        for entity in entities:
            for interceptor in self.interceptors:
                getattr(interceptor, f"{action}_executed")(entity)

    async def _commit_if_enabled(self) -> None:
        """Save the staged changes if auto_commit is enabled.

        Note:
            When auto_commit=False, this method only invalidates the cache. Errors are
            detected when the context is saved externally (e.g., by a Unit of Work).
        """
        try:
            if self.auto_commit:
                await self.context.save_changes()
        finally:
            await self.invalidate_cache()

    async def invalidate_cache(self) -> None:
        if self.cache is not None:
            await self.cache.invalidate(self.entity_type)

    @override
    @_log_errors
    async def insert_one(self, entity: T) -> T:
        await self._write("add", [entity])
        return entity

    @override
    @_log_errors
    async def insert_many(self, entities: Sequence[T]) -> list[T]:
        if not entities:
            return []
        await self._write("add", entities)
        return list(entities)

    @override
    @_log_errors
    async def update(self, entity: T) -> T:
        await self._write("update", [entity])
        return entity

    @override
    @_log_errors
    async def update_many(self, entities: Sequence[T]) -> list[T]:
        if not entities:
            return []
        await self._write("update", entities)
        return list(entities)

    @override
    @_log_errors
    async def delete(self, entity: T) -> None:
        await self._write("delete", [entity])

    @override
    @_log_errors
    async def delete_many(self, entities: Sequence[T]) -> None:
        if entities:
            await self._write("delete", entities)

    @override
    @_log_errors
    async def delete_by_id(self, *key: Any) -> None:
        entity = await self.context.find(self.entity_type, key)
        if entity is None:
            raise EntityNotFoundError(self.entity_type.__name__, _describe_key(key))
        await self._write("delete", [entity])

    @override
    @_log_errors
    async def delete_where(self, criteria: Criteria) -> None:
        await self._delete_where(criteria)

    @override
    @_log_errors
    async def delete_all(self) -> None:
        await self._delete_where(None)

    async def _delete_where(self, criteria: Criteria) -> None:
        result = await self.context.find_all(self.entity_type, QueryOptions.of(criteria))
        if result.items:
            await self._write("delete", result.items)

    # ==================== Reads ====================

    async def _cached(self, key: str | None, getter: Callable[[], Awaitable[E]]) -> E:
        if self.cache is None:
            self.cache_used = False
            return await getter()
        cached = await self.cache.get_or_set(self.entity_type, key, getter)
        self.cache_used = cached.cache_used
        return cached.result

    @staticmethod
    def _query_key(operation: str, options: QueryOptions[Any], *selectors: SelectorArg) -> str | None:
        parts = [options.cache_key, *(selector_description(selector) for selector in selectors)]
        if any(part is None for part in parts):
            return None
        return f"{operation}({', '.join(str(part) for part in parts)})"

    async def _find_by_id(self, key: tuple[Any, ...], fetch: FetchStrategy[T] | None) -> T | None:
        key = self.context.conventions.normalize_key_values(self.entity_type, key)
        return await self._cached(
            f"find_by_id({key!r}, fetch={fetch or ''})",
            lambda: self.context.find(self.entity_type, key, fetch),
        )

    @override
    @_log_errors
    async def get_by_id(self, *key: Any, fetch: FetchStrategy[T] | None = None) -> T:
        entity = await self._find_by_id(key, fetch)
        if entity is None:
            raise EntityNotFoundError(self.entity_type.__name__, _describe_key(key))
        return entity

    @override
    @_log_errors
    async def find_by_id(self, *key: Any, fetch: FetchStrategy[T] | None = None) -> T | None:
        return await self._find_by_id(key, fetch)

    @override
    @_log_errors
    async def find(self, criteria: Criteria, selector: SelectorArg = None) -> Any | None:
        options = QueryOptions.of(criteria)
        return await self._cached(
            self._query_key("find", options, selector),
            lambda: self.context.find_one(self.entity_type, options, selector),
        )

    @override
    @_log_errors
    async def find_all(
        self, criteria: Criteria = None, selector: SelectorArg = None
    ) -> CachePagedQueryResult[Any]:
        options = QueryOptions.of(criteria)
        result = await self._cached(
            self._query_key("find_all", options, selector),
            lambda: self.context.find_all(self.entity_type, options, selector),
        )
        return CachePagedQueryResult(list(result.items), result.total, cache_used=self.cache_used)

    @override
    @_log_errors
    async def get_all(self, limit: int | None = None, offset: int = 0) -> list[T]:
        if limit is not None and limit < 0:
            raise PaginationParameterError("limit", limit)
        if offset < 0:
            raise PaginationParameterError("offset", offset)
        result = await self._cached(
            f"get_all(limit={limit}, offset={offset})",
            lambda: self.context.find_all(self.entity_type, QueryOptions()),
        )
        end = None if limit is None else offset + limit
        return list(result.items[offset:end])

    @override
    @_log_errors
    async def exists(self, criteria: Criteria) -> bool:
        options = QueryOptions.of(criteria)
        return await self._cached(
            self._query_key("exists", options),
            lambda: self.context.exists(self.entity_type, options),
        )

    @override
    @_log_errors
    async def count(self, criteria: Criteria = None) -> int:
        options = QueryOptions.of(criteria)
        return await self._cached(
            self._query_key("count", options),
            lambda: self.context.count(self.entity_type, options),
        )

    @override
    @_log_errors
    async def to_dict(
        self,
        key_selector: str | Callable[[T], Any],
        element_selector: SelectorArg = None,
        criteria: Criteria = None,
    ) -> dict[Any, Any]:
        options = QueryOptions.of(criteria)
        result = await self._cached(
            self._query_key("to_dict", options, key_selector, element_selector),
            lambda: self.context.to_dict(self.entity_type, options, key_selector, element_selector),
        )
        return result.result

    @override
    @_log_errors
    async def group_by(
        self,
        key_selector: str | Callable[[T], Any],
        result_selector: Callable[[Any, list[T]], Any],
        criteria: Criteria = None,
    ) -> list[Any]:
        options = QueryOptions.of(criteria)
        result = await self._cached(
            self._query_key("group_by", options, key_selector, result_selector),
            lambda: self.context.group_by(self.entity_type, options, key_selector, result_selector),
        )
        return result.result

    # ==================== Lifetime ====================

    async def close(self) -> None:
        """Close the context if this repository created it."""
        if self._owns_context:
            await self.context.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class RepositoryFactory:
    """Creates repositories from one set of options, each with its own context."""

    def __init__(self, options: RepositoryOptions) -> None:
        self.options = options

    def create(self, entity_type: type[T], *, auto_commit: bool = True) -> ContextRepository[T, Any]:
        return ContextRepository.from_options(entity_type, self.options, auto_commit=auto_commit)
