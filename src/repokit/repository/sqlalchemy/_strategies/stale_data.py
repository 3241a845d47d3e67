"""Strategy for rows that vanished between load and flush."""

from sqlalchemy.orm.exc import StaleDataError
from typing_extensions import override

from repokit._internal.mapper import ErrorContext, MappingStrategy
from repokit.repository.exceptions import DatabaseError, EntityNotFoundError


class SqlAlchemyStaleDataStrategy(MappingStrategy):
    """Maps ``StaleDataError`` (an UPDATE or DELETE matched no row) to ``EntityNotFoundError``."""

    @override
    def can_handle(self, error: Exception) -> bool:
        return isinstance(error, StaleDataError)

    @override
    def map(self, error: Exception, context: ErrorContext) -> DatabaseError | None:
        return EntityNotFoundError(context.entity_type or "Entity", context.entity_id or "unknown")
