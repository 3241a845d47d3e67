"""Unit of work sharing one context between several repositories."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType
from typing import Any, Self

from typing_extensions import override

from repokit.repository.caching import QueryCache
from repokit.repository.context import RepositoryContext, TransactionManager
from repokit.repository.options import RepositoryOptions
from repokit.repository.protocols import UnitOfWork
from repokit.repository.repository import ContextRepository

logger = logging.getLogger(__name__)


class ContextUnitOfWork(UnitOfWork):
    """Unit of work implementation over a repository context.

    This implementation follows the explicit commit principle: changes are not
    automatically persisted. The commit() method must be called explicitly to
    persist changes or rollback() to discard them. Leaving the ``async with``
    block without committing rolls back.

    Example::

        async with ContextUnitOfWork(options, [Customer, Order]) as uow:
            await uow.get_repository(Customer).insert_one(customer)
            await uow.get_repository(Order).insert_one(order)
            await uow.commit()
    """

    def __init__(self, options: RepositoryOptions, entity_models: Sequence[type[Any]]) -> None:
        """Initialize the unit of work with repository options and entity models.

        Args:
            options: Options used to create the shared context and the repositories.
            entity_models: Entity model classes that will have repositories created.
        """
        self.options = options
        self.entity_models = list(entity_models)
        self.repositories: dict[type[Any], ContextRepository[Any, Any]] = {}
        self._context: RepositoryContext | None = None
        self._transaction: TransactionManager | None = None

    @property
    def context(self) -> RepositoryContext:
        if self._context is None:
            msg = "The unit of work must be entered with 'async with' first"
            raise RuntimeError(msg)
        return self._context

    async def __aenter__(self) -> Self:
        """Create the shared context and one repository per entity model.

        A transaction is begun when the context supports transactions.
        """
        context = self.options.create_context()
        cache_provider = self.options.cache_provider
        try:
            self.repositories = {
                entity_model: ContextRepository(
                    entity_model,
                    context,
                    auto_commit=False,
                    interceptors=self.options.interceptors,
                    cache=QueryCache(cache_provider) if cache_provider else None,
                )
                for entity_model in self.entity_models
            }
            if context.supports_transactions:
                self._transaction = await context.begin_transaction()
        except Exception:
            await context.close()
            raise
        self._context = context
        return self

    @override
    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Roll back anything not committed and close the context."""
        try:
            await super().__aexit__(exc_type, exc_val, exc_tb)
        finally:
            await self.context.close()
            self._context = None
            self._transaction = None

    @override
    async def commit(self) -> None:
        """Save every pending change and commit the transaction.

        A new transaction is begun afterwards, so the unit of work stays usable.
        """
        context = self.context
        try:
            written = await context.save_changes()
            if self._transaction is not None and self._transaction.is_active:
                await self._transaction.commit()
        finally:
            for repository in self.repositories.values():
                await repository.invalidate_cache()
        logger.debug("Unit of work committed %d change(s)", written)
        if context.supports_transactions:
            self._transaction = await context.begin_transaction()

    @override
    async def rollback(self) -> None:
        """Discard pending changes and roll back the transaction."""
        context = self.context
        context.discard_changes()
        if self._transaction is not None and self._transaction.is_active:
            await self._transaction.rollback()
        self._transaction = None
