"""SQLAlchemy exception mapper."""

from collections.abc import Collection

from typing_extensions import override

from repokit._internal.mapper import ErrorContext, ExceptionMapper
from repokit._internal.registry import StrategyRegistry
from repokit.repository.exceptions import DatabaseError
from repokit.repository.sqlalchemy._strategies.stale_data import SqlAlchemyStaleDataStrategy
from repokit.repository.sqlalchemy._strategies.unique_violation import (
    SqlAlchemyUniqueViolationStrategy,
)


class SqlAlchemyExceptionMapper(ExceptionMapper):
    """Maps SQLAlchemy exceptions to repository exceptions.

    Strategies are tried in registration order: primary key violations
    first, then stale rows.

    Args:
        primary_key_columns: Qualified ``table.column`` names of the mapped primary keys.
    """

    def __init__(self, primary_key_columns: Collection[str] = ()) -> None:
        self._registry = StrategyRegistry()
        self._registry.register(SqlAlchemyUniqueViolationStrategy(primary_key_columns))
        self._registry.register(SqlAlchemyStaleDataStrategy())

    @override
    def map(self, error: Exception, context: ErrorContext | None = None) -> DatabaseError:
        return self._registry.map(error, context)
