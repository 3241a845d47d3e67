"""Strategy for primary key violations raised on insert."""

import re
from collections.abc import Collection
from typing import cast

from sqlalchemy.exc import IntegrityError
from typing_extensions import override

from repokit._internal.mapper import ErrorContext, MappingStrategy
from repokit.repository.exceptions import DatabaseError, EntityAlreadyExistsError

# PostgreSQL: sqlstate 23505, primary key constraints end with "_pkey"
_POSTGRES_CONSTRAINT = re.compile(r'violates unique constraint "([^"]+)"')
# SQLite: "UNIQUE constraint failed: customers.id, customers.tenant"
_SQLITE_COLUMNS = re.compile(r"UNIQUE constraint failed: (.+)$")


class SqlAlchemyUniqueViolationStrategy(MappingStrategy):
    """Maps primary key violations to ``EntityAlreadyExistsError``.

    Violations of other unique constraints are declined and end up as a
    generic ``DatabaseError``.

    Args:
        primary_key_columns: Qualified ``table.column`` names of the primary
            keys of the mapped tables, used to recognise SQLite key violations.
    """

    def __init__(self, primary_key_columns: Collection[str] = ()) -> None:
        self._primary_key_columns = primary_key_columns

    @override
    def can_handle(self, error: Exception) -> bool:
        return isinstance(error, IntegrityError)

    @override
    def map(self, error: Exception, context: ErrorContext) -> DatabaseError | None:
        integrity_error = cast("IntegrityError", error)
        if not self._is_primary_key_violation(integrity_error):
            return None
        return EntityAlreadyExistsError(context.entity_type or "Entity", context.entity_id or "unknown")

    def _is_primary_key_violation(self, error: IntegrityError) -> bool:
        message = str(error.orig)

        if getattr(error.orig, "sqlstate", None) == "23505":
            match = _POSTGRES_CONSTRAINT.search(message)
            return bool(match) and match.group(1).endswith("_pkey")

        match = _SQLITE_COLUMNS.search(message)
        if match:
            columns = {column.strip() for column in match.group(1).split(",")}
            return all(column in self._primary_key_columns for column in columns)
        return False
