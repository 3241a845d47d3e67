"""SQLAlchemy repository context."""

from repokit.repository.sqlalchemy.context import SqlAlchemyContext, SqlAlchemyTransaction
from repokit.repository.sqlalchemy.session_factory import (
    create_default_session_factory,
    create_session_factory,
    database_url_from_env,
)

__all__ = [
    "SqlAlchemyContext",
    "SqlAlchemyTransaction",
    "create_default_session_factory",
    "create_session_factory",
    "database_url_from_env",
]
