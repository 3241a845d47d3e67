"""Relational repository context on SQLAlchemy's async ORM."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import ColumnProperty, InstrumentedAttribute, selectinload
from sqlalchemy.sql import Select
from typing_extensions import override

from repokit._internal.mapper import ErrorContext
from repokit.repository.context import (
    EntityState,
    RepositoryContext,
    Selector,
    TransactionManager,
)
from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.conventions.primary_key import combine_key
from repokit.repository.exceptions import (
    DatabaseError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
)
from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.options import QueryOptions, SortOrder
from repokit.repository.query.queryable import (
    apply_paging,
    apply_sorting,
    apply_specification,
    group_by,
    project,
    to_dict,
)
from repokit.repository.query.result import PagedQueryResult, QueryResult
from repokit.repository.sqlalchemy.commit_manager import SqlAlchemyCommitManager
from repokit.repository.sqlalchemy.mapper import SqlAlchemyExceptionMapper

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlAlchemyTransaction(TransactionManager):
    """Transaction driving the context's session."""

    def __init__(self, context: SqlAlchemyContext) -> None:
        self._context = context
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def commit(self) -> None:
        try:
            await self._context.commit_manager.safe_commit(ErrorContext(operation="commit"))
        finally:
            self._end()

    async def rollback(self) -> None:
        try:
            await self._context.session.rollback()
        finally:
            self._end()

    def _end(self) -> None:
        self._active = False
        if self._context.current_transaction is self:
            self._context.current_transaction = None


class SqlAlchemyContext(RepositoryContext):
    """Context over one ``AsyncSession``, created on first use.

    Outside a transaction every ``save_changes()`` commits. Inside one it only
    flushes, and the transaction's ``commit()`` makes the changes durable.

    Queries run in SQL when the filter is made of field specifications and
    every sort path is a plain column. Otherwise the rows are loaded and the
    options are applied in memory.

    Args:
        session_factory: Factory of the session used by this context.
        conventions: Conventions used to resolve keys.
    """

    supports_transactions = True

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        conventions: RepositoryConventions | None = None,
    ) -> None:
        super().__init__(conventions)
        self.session_factory = session_factory
        self._session: AsyncSession | None = None
        self._primary_key_columns: set[str] = set()
        self._exception_mapper = SqlAlchemyExceptionMapper(self._primary_key_columns)

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    @property
    def commit_manager(self) -> SqlAlchemyCommitManager:
        return SqlAlchemyCommitManager(self.session, self._exception_mapper)

    def _register_table(self, entity_type: type) -> None:
        mapper = sa_inspect(entity_type)
        for column in mapper.primary_key:
            self._primary_key_columns.add(f"{column.table.name}.{column.name}")

    # ==================== Saving ====================

    @override
    async def save_changes(self) -> int:
        """Write the staged changes through the session.

        Returns:
            The number of entities written.

        Raises:
            EntityAlreadyExistsError: If an added entity's key is already stored.
            EntityNotFoundError: If an updated or removed entity is not stored.
            DatabaseError: If the store rejects the changes.
        """
        session = self.session
        written = 0
        added: set[tuple[type, Any]] = set()
        error_context = ErrorContext(operation="save_changes")
        try:
            with session.no_autoflush:
                for entry in self._buffer:
                    entity = entry.entity
                    entity_type = type(entity)
                    self._register_table(entity_type)
                    key_values = self.conventions.get_primary_key_values(entity)
                    has_key = all(value is not None for value in key_values)
                    key = combine_key(key_values)
                    error_context = ErrorContext(
                        entity_type=entity_type.__name__,
                        entity_id=str(key) if has_key else None,
                        operation="save_changes",
                    )

                    if entry.state is EntityState.ADDED:
                        if has_key and (
                            (entity_type, key) in added
                            or await session.get(entity_type, key) is not None
                        ):
                            raise EntityAlreadyExistsError(entity_type.__name__, str(key))
                        if has_key:
                            added.add((entity_type, key))
                        session.add(entity)
                    else:
                        existing = await session.get(entity_type, key) if has_key else None
                        if existing is None:
                            raise EntityNotFoundError(entity_type.__name__, str(key))
                        if entry.state is EntityState.MODIFIED:
                            if existing is not entity:
                                await session.merge(entity)
                        else:
                            await session.delete(existing)
                    written += 1
        except DatabaseError:
            if self.current_transaction is None:
                await session.rollback()
            raise
        finally:
            self._buffer.clear()

        if self.current_transaction is None:
            await self.commit_manager.safe_commit(error_context)
        else:
            await self.commit_manager.safe_flush(error_context)
        logger.debug("Saved %d change(s) through SQLAlchemy", written)
        return written

    # ==================== Transactions & SQL ====================

    @override
    async def begin_transaction(self) -> TransactionManager:
        if self.current_transaction is not None:
            msg = "A transaction is already active on this context"
            raise DatabaseError(msg)
        self.current_transaction = SqlAlchemyTransaction(self)
        return self.current_transaction

    @override
    async def execute_sql_query(
        self,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        projector: Callable[[Any], T] | None = None,
    ) -> list[T]:
        try:
            result = await self.session.execute(text(sql), dict(parameters or {}))
        except Exception as e:
            raise self._exception_mapper.map(e, ErrorContext(operation="execute_sql_query")) from e
        rows = result.mappings().all()
        if projector is None:
            return [dict(row) for row in rows]  # type: ignore[misc]
        return [projector(row) for row in rows]

    @override
    async def execute_sql_command(
        self, sql: str, parameters: Mapping[str, Any] | None = None
    ) -> int:
        error_context = ErrorContext(operation="execute_sql_command")
        try:
            result = await self.session.execute(text(sql), dict(parameters or {}))
        except Exception as e:
            raise self._exception_mapper.map(e, error_context) from e
        if self.current_transaction is None:
            await self.commit_manager.safe_commit(error_context)
        return result.rowcount

    # ==================== Queries ====================

    @staticmethod
    def _loader_options(entity_type: type, fetch: FetchStrategy[Any] | None) -> list[Any]:
        loaders = []
        for path in fetch or ():
            owner = entity_type
            loader = None
            for part in path.split("."):
                attribute = getattr(owner, part, None)
                if not isinstance(attribute, InstrumentedAttribute) or isinstance(
                    attribute.property, ColumnProperty
                ):
                    msg = f"Cannot fetch '{path}': '{part}' is not a relationship of {owner.__name__}"
                    raise DatabaseError(msg)
                loader = selectinload(attribute) if loader is None else loader.selectinload(attribute)
                owner = attribute.property.mapper.class_
            loaders.append(loader)
        return loaders

    def _order_by(self, entity_type: type, options: QueryOptions[Any]) -> list[Any] | None:
        """SQL ORDER BY clauses, ``None`` when a sort path is not a plain column."""
        sorting = dict(options.sorting)
        if not sorting:
            sorting = {
                prop.name: SortOrder.ASCENDING
                for prop in self.conventions.get_primary_key_properties(entity_type)
            }
        clauses = []
        for path, order in sorting.items():
            column = getattr(entity_type, path, None) if "." not in path else None
            if not isinstance(column, InstrumentedAttribute) or not isinstance(
                column.property, ColumnProperty
            ):
                return None
            if order is SortOrder.DESCENDING:
                clauses.append(column.desc().nulls_last())
            else:
                clauses.append(column.asc().nulls_first())
        return clauses

    def _translate(
        self, entity_type: type, options: QueryOptions[Any]
    ) -> tuple[Any | None, list[Any]] | None:
        """The WHERE and ORDER BY of ``options``, ``None`` when they must run in memory."""
        where = None
        if options.specification is not None:
            where = options.specification.to_sqlalchemy(entity_type)
            if where is None:
                return None
        order_by = self._order_by(entity_type, options)
        if order_by is None:
            return None
        return where, order_by

    async def _query(
        self, entity_type: type[T], options: QueryOptions[T]
    ) -> tuple[list[T], int]:
        statement: Select[Any] = select(entity_type).options(
            *self._loader_options(entity_type, options.fetch_strategy)
        )
        translated = self._translate(entity_type, options)

        if translated is None:
            logger.debug("Running the query on %s in memory", entity_type.__name__)
            rows = list((await self.session.execute(statement)).scalars().all())
            items = apply_specification(rows, options.specification)
            total = len(items)
            items = apply_sorting(items, options, entity_type, self.conventions)
            return apply_paging(items, options), total

        where, order_by = translated
        if where is not None:
            statement = statement.where(where)
        total = await self._count_sql(entity_type, where)
        statement = statement.order_by(*order_by)
        if options.page_index is not None and options.page_size is not None:
            statement = statement.offset((options.page_index - 1) * options.page_size).limit(
                options.page_size
            )
        items = list((await self.session.execute(statement)).scalars().all())
        return items, total

    async def _count_sql(self, entity_type: type, where: Any | None) -> int:
        statement = select(func.count()).select_from(entity_type)
        if where is not None:
            statement = statement.where(where)
        return int((await self.session.execute(statement)).scalar_one())

    @override
    async def find(
        self,
        entity_type: type[T],
        key_values: Sequence[Any],
        fetch: FetchStrategy[T] | None = None,
    ) -> T | None:
        values = self.conventions.normalize_key_values(entity_type, tuple(key_values))
        return await self.session.get(
            entity_type,
            combine_key(values),
            options=self._loader_options(entity_type, fetch),
            populate_existing=bool(fetch),
        )

    @override
    async def find_one(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> Any | None:
        if not options.is_paged:
            options = options.clone().page(1, 1)
        items, _ = await self._query(entity_type, options)
        if not items:
            return None
        return project(items[:1], selector)[0]

    @override
    async def find_all(
        self, entity_type: type[T], options: QueryOptions[T], selector: Selector = None
    ) -> PagedQueryResult[Any]:
        items, total = await self._query(entity_type, options)
        return PagedQueryResult(project(items, selector), total)

    @override
    async def count(self, entity_type: type[T], options: QueryOptions[T]) -> int:
        if options.specification is None:
            return await self._count_sql(entity_type, None)
        where = options.specification.to_sqlalchemy(entity_type)
        if where is not None:
            return await self._count_sql(entity_type, where)
        statement = select(entity_type).options(
            *self._loader_options(entity_type, options.fetch_strategy)
        )
        rows = (await self.session.execute(statement)).scalars().all()
        return len(apply_specification(rows, options.specification))

    @override
    async def to_dict(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        element_selector: Selector = None,
    ) -> QueryResult[dict[Any, Any]]:
        items, total = await self._query(entity_type, options)
        return QueryResult(to_dict(items, key_selector, element_selector), total)

    @override
    async def group_by(
        self,
        entity_type: type[T],
        options: QueryOptions[T],
        key_selector: str | Callable[[T], Any],
        result_selector: Callable[[Any, list[T]], Any],
    ) -> QueryResult[list[Any]]:
        items, total = await self._query(entity_type, options)
        return QueryResult(group_by(items, key_selector, result_selector), total)

    @override
    async def close(self) -> None:
        await super().close()
        if self._session is not None:
            if self.current_transaction is not None and self.current_transaction.is_active:
                await self.current_transaction.rollback()
            await self._session.close()
            self._session = None
