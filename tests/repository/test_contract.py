"""
Abstract test suite for Repository contract.

This module defines the contract that ALL repository contexts must satisfy.
Each backend (in-memory, JSON, XML, CSV, SQLAlchemy) must inherit from
RepositoryContractTests and implement the abstract verification methods.

The verification methods ensure that we never test code with itself:
- For SQLAlchemy: use plain SQL
- For in-memory: use direct access to the database tables
- For files: read the files directly
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

import pytest
from pydantic import BaseModel
from ulid import ULID

from repokit.repository import ContextRepository
from repokit.repository.exceptions import (
    DatabaseError,
    EntityAlreadyExistsError,
    EntityModelError,
    EntityNotFoundError,
    PaginationParameterError,
)
from repokit.repository.query import ComparisonOperator, QueryOptions, where

# Type variables for generic test class
EntityType = TypeVar("EntityType")
IDType = TypeVar("IDType")


class Company(BaseModel):
    id: str
    company_name: str


class RepositoryContractTests(ABC, Generic[EntityType, IDType]):
    """
    Abstract base class defining the Repository contract tests.

    All repository contexts must pass these tests to be considered compliant
    with the Repository interface.

    Subclasses must implement:
    - All abstract fixtures (repository, entity_factory, etc.)
    - All abstract verification methods (_verify_*)

    Entities must expose ``id`` and ``name``. Pre-populated entities are named
    ``User 0`` to ``User 9``.
    """

    # ==================== Abstract Fixtures ====================

    @pytest.fixture
    @abstractmethod
    def repository(self) -> ContextRepository[EntityType, IDType]:
        """Return an empty, auto-committing repository instance to test."""

    @pytest.fixture
    @abstractmethod
    def entity_factory(self) -> Callable[..., EntityType]:
        """
        Return a factory function to create test entities.

        The factory should accept optional parameters:
        - entity_id: The ID to assign (or generate if None)
        - name: The name/label for the entity
        """

    @pytest.fixture
    @abstractmethod
    async def repository_with_entities(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> ContextRepository[EntityType, IDType]:
        """
        Return a repository pre-populated with 10 entities.

        CRITICAL: Entities MUST be inserted WITHOUT using repository methods.
        """

    @pytest.fixture
    @abstractmethod
    def entity_ids(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> list[IDType]:
        """
        Return the list of entity IDs from repository_with_entities.

        CRITICAL: Must retrieve IDs WITHOUT using repository methods.
        """

    # ==================== Abstract Verification Methods ====================

    @abstractmethod
    async def _verify_entity_exists(
        self, repo: ContextRepository[EntityType, IDType], entity_id: IDType
    ) -> bool:
        """Verify that an entity exists WITHOUT using repository methods."""

    @abstractmethod
    async def _verify_entity_count(self, repo: ContextRepository[EntityType, IDType]) -> int:
        """Count entities WITHOUT using repository methods."""

    @abstractmethod
    async def _verify_entity_data(
        self, repo: ContextRepository[EntityType, IDType], entity_id: IDType, expected_name: str
    ) -> bool:
        """
        Verify entity data WITHOUT using repository methods.

        Returns:
            True if entity exists and name matches
        """

    # ==================== Contract Tests: get_by_id / find_by_id ====================

    @pytest.mark.asyncio
    async def test_get_by_id_success(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
    ) -> None:
        """get_by_id() should return the entity with the given ID."""
        entity = await repository_with_entities.get_by_id(entity_ids[0])
        assert entity.id == entity_ids[0]

    @pytest.mark.asyncio
    async def test_get_by_id_not_found(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_by_id() should raise EntityNotFoundError if ID doesn't exist."""
        with pytest.raises(EntityNotFoundError, match="not found"):
            await repository.get_by_id(str(ULID()))

    @pytest.mark.asyncio
    async def test_find_by_id_returns_none_when_missing(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        assert await repository.find_by_id(str(ULID())) is None

    # ==================== Contract Tests: get_all ====================

    @pytest.mark.asyncio
    async def test_get_all_returns_all_entities(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all() without parameters should return all entities."""
        all_result = await repository_with_entities.get_all()
        assert len(all_result) == 10

    @pytest.mark.asyncio
    async def test_get_all_is_ordered_by_primary_key(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
    ) -> None:
        all_result = await repository_with_entities.get_all()
        assert [entity.id for entity in all_result] == sorted(entity_ids)

    @pytest.mark.asyncio
    async def test_get_all_with_limit_0(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(limit=0) should return an empty list."""
        all_result = await repository_with_entities.get_all(limit=0)
        assert len(all_result) == 0

    @pytest.mark.asyncio
    async def test_get_all_with_limit_5(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(limit=5) should return exactly 5 entities."""
        all_result = await repository_with_entities.get_all(limit=5)
        assert len(all_result) == 5
        for entity in all_result:
            assert hasattr(entity, "id")
            assert hasattr(entity, "name")

    @pytest.mark.asyncio
    async def test_get_all_with_limit_superior_to_len_entities(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(limit=15) when only 10 exist should return 10 entities."""
        all_result = await repository_with_entities.get_all(limit=15)
        assert len(all_result) == 10

    @pytest.mark.asyncio
    async def test_get_all_with_limit_negative(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(limit=-1) should raise PaginationParameterError."""
        with pytest.raises(PaginationParameterError, match="limit must be non-negative"):
            await repository_with_entities.get_all(limit=-1)

    @pytest.mark.asyncio
    async def test_get_all_with_offset(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(offset=6) should skip first 6 entities."""
        all_result = await repository_with_entities.get_all(offset=6)
        assert len(all_result) == 4

    @pytest.mark.asyncio
    async def test_get_all_with_offset_superior_to_len_entities(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(offset=15) when only 10 exist should return empty list."""
        all_result = await repository_with_entities.get_all(offset=15)
        assert len(all_result) == 0

    @pytest.mark.asyncio
    async def test_get_all_with_offset_negative(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """get_all(offset=-1) should raise PaginationParameterError."""
        with pytest.raises(PaginationParameterError, match="offset must be non-negative"):
            await repository_with_entities.get_all(offset=-1)

    @pytest.mark.asyncio
    async def test_get_all_limit_with_offset(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
    ) -> None:
        """get_all(limit=5, offset=8) should return only the last 2 entities."""
        all_result = await repository_with_entities.get_all(limit=5, offset=8)
        assert [entity.id for entity in all_result] == sorted(entity_ids)[8:]

    # ==================== Contract Tests: insert_one ====================

    @pytest.mark.asyncio
    async def test_insert_one_empty_entities(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """insert_one() on empty repository should succeed."""
        entity = entity_factory(name="Test Entity")
        result = await repository.insert_one(entity)

        assert result.id == entity.id
        assert result.name == "Test Entity"

        # Verify using abstract method (not repository.get_by_id!)
        assert await self._verify_entity_exists(repository, entity.id)
        assert await self._verify_entity_count(repository) == 1

    @pytest.mark.asyncio
    async def test_insert_one_with_id_taken(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """insert_one() with existing ID should raise EntityAlreadyExistsError."""
        duplicate_entity = entity_factory(entity_id=entity_ids[0], name="Duplicate")

        with pytest.raises(EntityAlreadyExistsError, match="already exists"):
            await repository_with_entities.insert_one(duplicate_entity)

    # ==================== Contract Tests: insert_many ====================

    @pytest.mark.asyncio
    async def test_insert_many_success(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """insert_many() with valid entities should insert all."""
        entities = [entity_factory(name=f"Entity {i}") for i in range(5)]
        result = await repository_with_entities.insert_many(entities)

        assert len(result) == 5
        assert await self._verify_entity_count(repository_with_entities) == 15  # 10 initial + 5 new

    @pytest.mark.asyncio
    async def test_insert_many_with_duplicates_in_list(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """insert_many() with duplicates in input list should raise EntityAlreadyExistsError."""
        entity1 = entity_factory(name="First")
        entity2 = entity_factory(entity_id=entity1.id, name="Duplicate")

        with pytest.raises(EntityAlreadyExistsError, match="already exists"):
            await repository.insert_many([entity1, entity2])

        assert await self._verify_entity_count(repository) == 0

    @pytest.mark.asyncio
    async def test_insert_many_atomicity(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """insert_many() should be atomic: failure means no entities inserted."""
        initial_count = await self._verify_entity_count(repository_with_entities)

        entities = [
            entity_factory(name="Valid Entity"),
            entity_factory(entity_id=entity_ids[0], name="Duplicate"),  # Will fail
        ]

        with pytest.raises(EntityAlreadyExistsError):
            await repository_with_entities.insert_many(entities)

        assert await self._verify_entity_count(repository_with_entities) == initial_count

    @pytest.mark.asyncio
    async def test_insert_many_empty_list(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        """insert_many([]) should return empty list and insert nothing."""
        result = await repository.insert_many([])
        assert result == []
        assert await self._verify_entity_count(repository) == 0

    # ==================== Contract Tests: update ====================

    @pytest.mark.asyncio
    async def test_update_success(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """update() on existing entity should modify it."""
        updated_entity = entity_factory(entity_id=entity_ids[0], name="Updated Name")
        result = await repository_with_entities.update(updated_entity)

        assert result.name == "Updated Name"
        assert await self._verify_entity_data(
            repository_with_entities, entity_ids[0], "Updated Name"
        )

    @pytest.mark.asyncio
    async def test_update_fail(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """update() on non-existent entity should raise EntityNotFoundError."""
        entity = entity_factory(name="Non-existent")

        with pytest.raises(EntityNotFoundError, match="not found"):
            await repository.update(entity)

    @pytest.mark.asyncio
    async def test_update_many(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        entities = [entity_factory(entity_id=entity_id, name="Renamed") for entity_id in entity_ids[:3]]
        await repository_with_entities.update_many(entities)

        for entity_id in entity_ids[:3]:
            assert await self._verify_entity_data(repository_with_entities, entity_id, "Renamed")
        assert await self._verify_entity_count(repository_with_entities) == 10

    # ==================== Contract Tests: delete ====================

    @pytest.mark.asyncio
    async def test_delete_by_id_success(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
    ) -> None:
        """delete_by_id() should remove the entity."""
        await repository_with_entities.delete_by_id(entity_ids[0])

        assert not await self._verify_entity_exists(repository_with_entities, entity_ids[0])
        assert await self._verify_entity_count(repository_with_entities) == 9

    @pytest.mark.asyncio
    async def test_delete_by_id_failed(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        """delete_by_id() on non-existent ID should raise EntityNotFoundError."""
        with pytest.raises(EntityNotFoundError, match="not found"):
            await repository.delete_by_id("nonexistent_id_67890")

    @pytest.mark.asyncio
    async def test_delete_entity(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        await repository_with_entities.delete(entity_factory(entity_id=entity_ids[1]))

        assert not await self._verify_entity_exists(repository_with_entities, entity_ids[1])
        assert await self._verify_entity_count(repository_with_entities) == 9

    @pytest.mark.asyncio
    async def test_delete_missing_entity(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        with pytest.raises(EntityNotFoundError, match="not found"):
            await repository.delete(entity_factory(name="Ghost"))

    @pytest.mark.asyncio
    async def test_delete_many(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        await repository_with_entities.delete_many(
            [entity_factory(entity_id=entity_id) for entity_id in entity_ids[:4]]
        )
        assert await self._verify_entity_count(repository_with_entities) == 6

    @pytest.mark.asyncio
    async def test_delete_where(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        await repository_with_entities.delete_where(
            where("name", ComparisonOperator.IN, ["User 1", "User 2"])
        )
        assert await self._verify_entity_count(repository_with_entities) == 8

    @pytest.mark.asyncio
    async def test_delete_all_success(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        """delete_all() should remove all entities."""
        await repository_with_entities.delete_all()
        assert await self._verify_entity_count(repository_with_entities) == 0

    @pytest.mark.asyncio
    async def test_delete_all_empty(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        """delete_all() on empty repository should succeed."""
        await repository.delete_all()
        assert await self._verify_entity_count(repository) == 0

    # ==================== Contract Tests: queries ====================

    @pytest.mark.asyncio
    async def test_find_with_specification(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        entity = await repository_with_entities.find(where("name", value="User 3"))
        assert entity is not None
        assert entity.name == "User 3"

    @pytest.mark.asyncio
    async def test_find_with_predicate_and_selector(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        name = await repository_with_entities.find(lambda entity: entity.name == "User 7", "name")
        assert name == "User 7"

    @pytest.mark.asyncio
    async def test_find_returns_none_without_match(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        assert await repository_with_entities.find(where("name", value="Nobody")) is None

    @pytest.mark.asyncio
    async def test_find_all_sorted_and_paged(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        options: QueryOptions[Any] = QueryOptions().order_by_descending("name").page(2, 3)
        result = await repository_with_entities.find_all(options, "name")

        assert result.items == ["User 6", "User 5", "User 4"]
        assert result.total == 10

    @pytest.mark.asyncio
    async def test_find_all_filter_total_is_counted_before_paging(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        options: QueryOptions[Any] = (
            QueryOptions()
            .satisfy_by(where("name", ComparisonOperator.NOT_EQUALS, "User 0"))
            .order_by("name")
            .page(1, 4)
        )
        result = await repository_with_entities.find_all(options)

        assert [entity.name for entity in result] == ["User 1", "User 2", "User 3", "User 4"]
        assert result.total == 9

    @pytest.mark.asyncio
    async def test_count_and_exists(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        assert await repository_with_entities.count() == 10
        assert await repository_with_entities.count(
            where("name", ComparisonOperator.IN, ["User 1", "User 8", "Nobody"])
        ) == 2
        assert await repository_with_entities.exists(where("name", value="User 9"))
        assert not await repository_with_entities.exists(where("name", value="Nobody"))

    @pytest.mark.asyncio
    async def test_to_dict(
        self,
        repository_with_entities: ContextRepository[EntityType, IDType],
        entity_ids: list[IDType],
    ) -> None:
        names = await repository_with_entities.to_dict("id", "name")

        assert set(names) == set(entity_ids)
        assert sorted(names.values()) == [f"User {i}" for i in range(10)]

    @pytest.mark.asyncio
    async def test_group_by(
        self, repository_with_entities: ContextRepository[EntityType, IDType]
    ) -> None:
        groups = await repository_with_entities.group_by(
            lambda entity: int(entity.name.split()[-1]) % 2,
            lambda key, group: (key, len(group)),
        )
        assert sorted(groups) == [(0, 5), (1, 5)]

    # ==================== Contract Tests: Integration ====================

    @pytest.mark.asyncio
    async def test_complete_crud_cycle(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """Full CRUD cycle: Create, Read, Update, Delete."""
        # Create
        entity = entity_factory(name="Original Name")
        await repository.insert_one(entity)
        assert await self._verify_entity_exists(repository, entity.id)
        assert await self._verify_entity_data(repository, entity.id, "Original Name")

        # Update
        entity.name = "Updated Name"
        await repository.update(entity)
        assert await self._verify_entity_data(repository, entity.id, "Updated Name")

        # Delete
        await repository.delete_by_id(entity.id)
        assert not await self._verify_entity_exists(repository, entity.id)
        assert await self._verify_entity_count(repository) == 0

    # ==================== Contract Tests: Errors ====================

    @pytest.mark.asyncio
    async def test_entity_model_raise_error(
        self, repository: ContextRepository[EntityType, IDType]
    ) -> None:
        """Writes should reject entities that are not of the repository's type."""
        new_company = Company(id=str(ULID()), company_name="Acme Corp")
        message = "Expected an entity of type .+, got Company"

        with pytest.raises(EntityModelError, match=message):
            await repository.insert_one(new_company)  # type: ignore[arg-type]
        with pytest.raises(EntityModelError, match=message):
            await repository.insert_many([new_company])  # type: ignore[list-item]
        with pytest.raises(EntityModelError, match=message):
            await repository.update(new_company)  # type: ignore[arg-type]
        with pytest.raises(EntityModelError, match=message):
            await repository.delete(new_company)  # type: ignore[arg-type]

        assert await self._verify_entity_count(repository) == 0

    @pytest.mark.asyncio
    async def test_repository_error_hierarchy(
        self,
        repository: ContextRepository[EntityType, IDType],
        entity_factory: Callable[..., EntityType],
    ) -> None:
        """All repository exceptions should inherit from DatabaseError."""
        with pytest.raises(DatabaseError):
            await repository.get_by_id("nonexistent")

        entity = entity_factory(name="Test")
        await repository.insert_one(entity)
        # Create a NEW instance with the SAME ID to trigger duplicate error
        duplicate = entity_factory(entity_id=entity.id, name="Duplicate")
        with pytest.raises(DatabaseError):
            await repository.insert_one(duplicate)
