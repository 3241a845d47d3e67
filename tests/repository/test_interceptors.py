from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from pydantic import BaseModel
from ulid import ULID

from repokit.repository import ContextRepository, InMemoryContext, RepositoryInterceptor
from repokit.repository.exceptions import EntityNotFoundError
from repokit.repository.memory import drop_database, get_database


class User(BaseModel):
    id: int = 0
    name: str
    updated_at: datetime | None = None


class RecordingInterceptor(RepositoryInterceptor):
    def __init__(self, label: str, calls: list[str]) -> None:
        self.label = label
        self.calls = calls

    def add_executing(self, entity: User) -> None:
        self.calls.append(f"{self.label}:add_executing:{entity.name}")

    def add_executed(self, entity: User) -> None:
        self.calls.append(f"{self.label}:add_executed:{entity.name}")

    def update_executing(self, entity: User) -> None:
        self.calls.append(f"{self.label}:update_executing:{entity.name}")

    def update_executed(self, entity: User) -> None:
        self.calls.append(f"{self.label}:update_executed:{entity.name}")

    def delete_executing(self, entity: User) -> None:
        self.calls.append(f"{self.label}:delete_executing:{entity.name}")

    def delete_executed(self, entity: User) -> None:
        self.calls.append(f"{self.label}:delete_executed:{entity.name}")


class TimestampInterceptor(RepositoryInterceptor):
    def update_executing(self, entity: User) -> None:
        entity.updated_at = datetime(2024, 1, 1, tzinfo=timezone.utc)


class RejectingInterceptor(RepositoryInterceptor):
    def add_executing(self, entity: User) -> None:
        if not entity.name:
            msg = "name is required"
            raise ValueError(msg)


@pytest.fixture(name="database_name")
def create_database_name() -> Generator[str, None, None]:
    name = f"interceptors-{ULID()}"
    yield name
    drop_database(name)


class TestRepositoryInterceptors:
    @pytest.mark.asyncio
    async def test_hooks_run_in_order_for_each_entity(self, database_name: str) -> None:
        calls: list[str] = []
        repository = ContextRepository(
            User,
            InMemoryContext(database_name),
            interceptors=[RecordingInterceptor("a", calls), RecordingInterceptor("b", calls)],
        )

        await repository.insert_many([User(name="Alice"), User(name="Bob")])

        assert calls == [
            "a:add_executing:Alice",
            "b:add_executing:Alice",
            "a:add_executing:Bob",
            "b:add_executing:Bob",
            "a:add_executed:Alice",
            "b:add_executed:Alice",
            "a:add_executed:Bob",
            "b:add_executed:Bob",
        ]

    @pytest.mark.asyncio
    async def test_update_and_delete_hooks(self, database_name: str) -> None:
        calls: list[str] = []
        repository = ContextRepository(
            User, InMemoryContext(database_name), interceptors=[RecordingInterceptor("a", calls)]
        )
        user = await repository.insert_one(User(name="Alice"))
        calls.clear()

        await repository.update(user)
        await repository.delete_by_id(user.id)

        assert calls == [
            "a:update_executing:Alice",
            "a:update_executed:Alice",
            "a:delete_executing:Alice",
            "a:delete_executed:Alice",
        ]

    @pytest.mark.asyncio
    async def test_executing_hook_can_modify_the_entity(self, database_name: str) -> None:
        repository = ContextRepository(
            User, InMemoryContext(database_name), interceptors=[TimestampInterceptor()]
        )
        user = await repository.insert_one(User(name="Alice"))
        assert user.updated_at is None

        await repository.update(User(id=user.id, name="Alicia"))

        stored = get_database(database_name).get_committed_table(User)[user.id]
        assert stored.updated_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_raising_hook_aborts_the_whole_batch(self, database_name: str) -> None:
        calls: list[str] = []
        context = InMemoryContext(database_name)
        repository = ContextRepository(
            User, context, interceptors=[RejectingInterceptor(), RecordingInterceptor("a", calls)]
        )

        with pytest.raises(ValueError, match="name is required"):
            await repository.insert_many([User(name="Alice"), User(name="")])

        assert context.pending_changes == ()
        assert get_database(database_name).get_committed_table(User) == {}
        assert calls == ["a:add_executing:Alice"]

    @pytest.mark.asyncio
    async def test_executed_hooks_skipped_when_save_fails(self, database_name: str) -> None:
        calls: list[str] = []
        repository = ContextRepository(
            User, InMemoryContext(database_name), interceptors=[RecordingInterceptor("a", calls)]
        )

        with pytest.raises(EntityNotFoundError):
            await repository.update(User(id=99, name="Ghost"))

        assert calls == ["a:update_executing:Ghost"]

    @pytest.mark.asyncio
    async def test_without_auto_commit_executed_runs_once_staged(self, database_name: str) -> None:
        calls: list[str] = []
        context = InMemoryContext(database_name)
        repository = ContextRepository(
            User, context, auto_commit=False, interceptors=[RecordingInterceptor("a", calls)]
        )

        await repository.insert_one(User(name="Alice"))

        assert calls == ["a:add_executing:Alice", "a:add_executed:Alice"]
        assert len(context.pending_changes) == 1
        assert get_database(database_name).get_committed_table(User) == {}
