"""In-memory repository context."""

from repokit.repository.memory.context import InMemoryContext, InMemoryTransaction
from repokit.repository.memory.database import (
    DEFAULT_DATABASE_NAME,
    InMemoryDatabase,
    drop_database,
    get_database,
)

__all__ = [
    "DEFAULT_DATABASE_NAME",
    "InMemoryContext",
    "InMemoryDatabase",
    "InMemoryTransaction",
    "drop_database",
    "get_database",
]
