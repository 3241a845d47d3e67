"""Repository pattern implementations.

Provides a unified interface for data access across different storage backends:
in-memory, JSON/XML/CSV files and relational databases through SQLAlchemy.
"""

from repokit.repository.exceptions import (
    DatabaseError,
    EntityAlreadyExistsError,
    EntityKeyGenerationError,
    EntityModelError,
    EntityNotFoundError,
    ForeignKeyConventionError,
    MissingPrimaryKeyError,
    NotSupportedOperationError,
    PaginationParameterError,
    PrimaryKeyValuesMismatchError,
)

# Building blocks
from repokit.repository.caching import CacheProvider, InMemoryCacheProvider, QueryCache
from repokit.repository.context import RepositoryContext, TransactionManager
from repokit.repository.conventions import (
    Column,
    DatabaseGenerated,
    ForeignKey,
    GeneratedOption,
    Key,
    NotMapped,
    RepositoryConventions,
)
from repokit.repository.interceptors import RepositoryInterceptor
from repokit.repository.query import (
    ComparisonOperator,
    FetchStrategy,
    PagedQueryResult,
    QueryOptions,
    SortOrder,
    Specification,
    where,
)

# Contexts
from repokit.repository.file import CsvContext, JsonContext, XmlContext
from repokit.repository.memory import InMemoryContext
from repokit.repository.sqlalchemy import SqlAlchemyContext

# Facades
from repokit.repository.options import RepositoryOptions, RepositoryOptionsBuilder
from repokit.repository.protocols import Repository, UnitOfWork
from repokit.repository.repository import ContextRepository, RepositoryFactory
from repokit.repository.unit_of_work import ContextUnitOfWork

__all__ = [  # noqa: RUF022
    # Core
    "Repository",
    "UnitOfWork",
    "ContextRepository",
    "ContextUnitOfWork",
    "RepositoryFactory",
    "RepositoryOptions",
    "RepositoryOptionsBuilder",
    # Exceptions
    "DatabaseError",
    "EntityAlreadyExistsError",
    "EntityKeyGenerationError",
    "EntityModelError",
    "EntityNotFoundError",
    "ForeignKeyConventionError",
    "MissingPrimaryKeyError",
    "NotSupportedOperationError",
    "PaginationParameterError",
    "PrimaryKeyValuesMismatchError",
    # Model conventions
    "Column",
    "DatabaseGenerated",
    "ForeignKey",
    "GeneratedOption",
    "Key",
    "NotMapped",
    "RepositoryConventions",
    # Queries
    "ComparisonOperator",
    "FetchStrategy",
    "PagedQueryResult",
    "QueryOptions",
    "SortOrder",
    "Specification",
    "where",
    # Caching & interceptors
    "CacheProvider",
    "InMemoryCacheProvider",
    "QueryCache",
    "RepositoryInterceptor",
    # Contexts
    "RepositoryContext",
    "TransactionManager",
    "CsvContext",
    "InMemoryContext",
    "JsonContext",
    "SqlAlchemyContext",
    "XmlContext",
]
