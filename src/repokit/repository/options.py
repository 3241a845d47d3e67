"""Repository configuration."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repokit.repository.caching import CacheProvider
from repokit.repository.context import RepositoryContext
from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.file.csv import CsvContext
from repokit.repository.file.json import JsonContext
from repokit.repository.file.xml import XmlContext
from repokit.repository.interceptors import RepositoryInterceptor
from repokit.repository.memory.context import InMemoryContext
from repokit.repository.sqlalchemy.context import SqlAlchemyContext
from repokit.repository.sqlalchemy.session_factory import create_default_session_factory

ContextFactory = Callable[[], RepositoryContext]


@dataclass(frozen=True)
class RepositoryOptions:
    """Everything a repository needs to create and run its context.

    Attributes:
        context_factory: Creates a new context. Called once per repository or unit of work.
        interceptors: Hooks run around every write, in this order.
        cache_provider: Cache for read results, or ``None`` to disable caching.
        conventions: Conventions shared by the contexts and the repositories.
    """

    context_factory: ContextFactory
    interceptors: tuple[RepositoryInterceptor, ...] = ()
    cache_provider: CacheProvider | None = None
    conventions: RepositoryConventions = field(default_factory=RepositoryConventions.default)

    def create_context(self) -> RepositoryContext:
        return self.context_factory()


class RepositoryOptionsBuilder:
    """Fluent builder of :class:`RepositoryOptions`.

    Example::

        options = (
            RepositoryOptionsBuilder()
            .use_json_database("./data")
            .use_caching(InMemoryCacheProvider(expiry=60))
            .use_interceptor(AuditInterceptor())
            .options
        )

    The ``use_*_database`` methods and :meth:`use_sqlalchemy` replace each other:
    the last one called wins.
    """

    def __init__(self) -> None:
        self._context_builder: Callable[[RepositoryConventions], RepositoryContext] | None = None
        self._interceptors: list[RepositoryInterceptor] = []
        self._cache_provider: CacheProvider | None = None
        self._conventions: RepositoryConventions | None = None

    @property
    def is_configured(self) -> bool:
        return self._context_builder is not None

    def use_in_memory_database(
        self, name: str | None = None, *, ignore_sql_query_warning: bool = False
    ) -> Self:
        """Use the in-memory database ``name``, shared by every context opened on it."""
        self._context_builder = lambda conventions: InMemoryContext(
            name, ignore_sql_query_warning=ignore_sql_query_warning, conventions=conventions
        )
        return self

    def use_json_database(
        self, path: str | Path, *, ignore_transaction_warning: bool = False
    ) -> Self:
        """Store every table as a JSON file under the directory ``path``."""
        self._context_builder = lambda conventions: JsonContext(
            path, ignore_transaction_warning=ignore_transaction_warning, conventions=conventions
        )
        return self

    def use_xml_database(
        self, path: str | Path, *, ignore_transaction_warning: bool = False
    ) -> Self:
        """Store every table as an XML file under the directory ``path``."""
        self._context_builder = lambda conventions: XmlContext(
            path, ignore_transaction_warning=ignore_transaction_warning, conventions=conventions
        )
        return self

    def use_csv_database(
        self, path: str | Path, *, ignore_transaction_warning: bool = False
    ) -> Self:
        """Store every table as a CSV file under the directory ``path``."""
        self._context_builder = lambda conventions: CsvContext(
            path, ignore_transaction_warning=ignore_transaction_warning, conventions=conventions
        )
        return self

    def use_sqlalchemy(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> Self:
        """Use a relational database through SQLAlchemy.

        Without ``session_factory``, the database URL is read from the environment
        (see :func:`~repokit.repository.sqlalchemy.database_url_from_env`).
        """
        if session_factory is None:
            _, session_factory = create_default_session_factory()
        factory = session_factory
        self._context_builder = lambda conventions: SqlAlchemyContext(
            factory, conventions=conventions
        )
        return self

    def use_context_factory(self, factory: ContextFactory) -> Self:
        """Use contexts created by ``factory``. Configured conventions are not passed on."""
        self._context_builder = lambda _conventions: factory()
        return self

    def use_interceptor(self, interceptor: RepositoryInterceptor) -> Self:
        self._interceptors.append(interceptor)
        return self

    def use_caching(self, provider: CacheProvider) -> Self:
        self._cache_provider = provider
        return self

    def use_conventions(self, conventions: RepositoryConventions) -> Self:
        self._conventions = conventions
        return self

    @property
    def options(self) -> RepositoryOptions:
        """The configured options.

        Raises:
            ValueError: If no database or context factory was configured.
        """
        if self._context_builder is None:
            msg = (
                "No context configured: call one of the use_*_database methods, "
                "use_sqlalchemy or use_context_factory first"
            )
            raise ValueError(msg)
        conventions = self._conventions or RepositoryConventions.default()
        builder = self._context_builder
        return RepositoryOptions(
            context_factory=lambda: builder(conventions),
            interceptors=tuple(self._interceptors),
            cache_provider=self._cache_provider,
            conventions=conventions,
        )
