"""Repository and unit of work interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from types import TracebackType
from typing import Any, Generic, TypeVar

from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.options import Criteria
from repokit.repository.query.result import PagedQueryResult

T = TypeVar("T")
K = TypeVar("K")


class Repository(ABC, Generic[T, K]):
    """Abstract base class for implementing the Repository pattern.

    Provides a generic interface for data access operations (CRUD and queries)
    that can be implemented for various storage backends.

    Type Parameters:
        T: The entity type managed by this repository.
        K: The type of the entity's key. Composite keys are passed as several values.
    """

    entity_type: type[T]

    # ==================== Writes ====================

    @abstractmethod
    async def insert_one(self, entity: T) -> T:
        """Insert a single entity into the repository.

        Args:
            entity: The entity to insert.

        Returns:
            The inserted entity, with its identity key generated when the store does it.

        Raises:
            EntityAlreadyExistsError: If an entity with the same key already exists.
        """

    @abstractmethod
    async def insert_many(self, entities: Sequence[T]) -> list[T]:
        """Insert multiple entities into the repository in a single save.

        Raises:
            EntityAlreadyExistsError: If one or more entities with the same keys already exist.
        """

    @abstractmethod
    async def update(self, entity: T) -> T:
        """Update an existing entity in the repository.

        Args:
            entity: The entity with updated values. Must have a valid key.

        Returns:
            The updated entity.

        Raises:
            EntityNotFoundError: If no entity exists with the given key.
        """

    @abstractmethod
    async def update_many(self, entities: Sequence[T]) -> list[T]:
        """Update multiple existing entities in a single save."""

    @abstractmethod
    async def delete(self, entity: T) -> None:
        """Delete an entity from the repository.

        Raises:
            EntityNotFoundError: If the entity is not stored.
        """

    @abstractmethod
    async def delete_many(self, entities: Sequence[T]) -> None:
        """Delete multiple entities in a single save."""

    @abstractmethod
    async def delete_by_id(self, *key: Any) -> None:
        """Delete an entity from the repository by its key.

        Raises:
            EntityNotFoundError: If no entity exists with the given key.
        """

    @abstractmethod
    async def delete_where(self, criteria: Criteria) -> None:
        """Delete every entity matching ``criteria``."""

    @abstractmethod
    async def delete_all(self) -> None:
        """Delete all entities from the repository.

        This operation clears the entire repository.
        """

    # ==================== Reads ====================

    @abstractmethod
    async def get_by_id(self, *key: Any, fetch: FetchStrategy[T] | None = None) -> T:
        """Retrieve an entity by its key.

        Args:
            key: The key values, in primary key order.
            fetch: Navigation properties to load along with the entity.

        Returns:
            The entity matching the given key.

        Raises:
            EntityNotFoundError: If no entity exists with the given key.
            PrimaryKeyValuesMismatchError: If the number of values does not match the key.
        """

    @abstractmethod
    async def find_by_id(self, *key: Any, fetch: FetchStrategy[T] | None = None) -> T | None:
        """Retrieve an entity by its key, or ``None`` if it is not stored."""

    @abstractmethod
    async def find(self, criteria: Criteria, selector: str | Callable[[T], Any] | None = None) -> Any | None:
        """Return the first entity matching ``criteria``, projected by ``selector``."""

    @abstractmethod
    async def find_all(
        self, criteria: Criteria = None, selector: str | Callable[[T], Any] | None = None
    ) -> PagedQueryResult[Any]:
        """Return the entities matching ``criteria`` along with the total before paging."""

    @abstractmethod
    async def get_all(self, limit: int | None = None, offset: int = 0) -> list[T]:
        """Retrieve all entities from the repository, in primary key order.

        Args:
            limit: Maximum number of entities to retrieve. None returns all entities.
            offset: Number of entities to skip before starting retrieval.

        Raises:
            PaginationParameterError: If limit or offset is negative.
        """

    @abstractmethod
    async def exists(self, criteria: Criteria) -> bool:
        """Whether at least one entity matches ``criteria``."""

    @abstractmethod
    async def count(self, criteria: Criteria = None) -> int:
        """Count the entities matching ``criteria``. Paging is ignored."""

    @abstractmethod
    async def to_dict(
        self,
        key_selector: str | Callable[[T], Any],
        element_selector: str | Callable[[T], Any] | None = None,
        criteria: Criteria = None,
    ) -> dict[Any, Any]:
        """Return the matching entities keyed by ``key_selector``.

        Raises:
            ValueError: If two entities have the same key.
        """

    @abstractmethod
    async def group_by(
        self,
        key_selector: str | Callable[[T], Any],
        result_selector: Callable[[Any, list[T]], Any],
        criteria: Criteria = None,
    ) -> list[Any]:
        """Group the matching entities by key and project each group."""


class UnitOfWork(ABC):
    """Represents a unit of work for database operations.

    A unit of work encapsulates a set of database operations that should be treated as a single logical transaction.
    Nothing is persisted until :meth:`commit` is called. Leaving the ``async with`` block without committing
    discards every pending change.
    """

    repositories: Mapping[type[Any], Repository[Any, Any]]

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.rollback()

    def get_repository(self, entity_type: type[T]) -> Repository[T, Any]:
        """Return the repository of ``entity_type``.

        Raises:
            KeyError: If ``entity_type`` is not one of the unit's entity models.
        """
        try:
            return self.repositories[entity_type]
        except KeyError:
            msg = f"{entity_type.__name__} is not managed by this unit of work"
            raise KeyError(msg) from None

    @abstractmethod
    async def commit(self) -> None:
        """Commit the changes made within this unit of work.

        This method should be called to finalize the unit of work and persist the changes to the database.
        If any operation within the unit fails, the entire unit is rolled back.
        """

    @abstractmethod
    async def rollback(self) -> None:
        """Discard every change made within this unit of work that was not committed."""
