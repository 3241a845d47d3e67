"""Fetch strategies: which navigation properties to load with an entity."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Generic, Self, TypeVar

from repokit.repository.conventions.foreign_key import is_navigation, navigation_target
from repokit.repository.conventions.model import get_properties

T = TypeVar("T")


class FetchStrategy(Generic[T]):
    """An ordered set of dotted navigation paths, such as ``"orders.lines"``."""

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths: list[str] = []
        for path in paths:
            self.fetch(path)

    @classmethod
    def default(cls, entity_type: type[T]) -> FetchStrategy[T]:
        """Fetch every reference navigation of ``entity_type`` whose type has a key."""
        paths = []
        for prop in get_properties(entity_type):
            _, is_collection = navigation_target(prop)
            if not is_collection and is_navigation(prop):
                paths.append(prop.name)
        return cls(paths)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._paths)

    def fetch(self, path: str) -> Self:
        if not path:
            msg = "path must not be empty"
            raise ValueError(msg)
        if path not in self._paths:
            self._paths.append(path)
        return self

    def merge(self, other: FetchStrategy[T]) -> Self:
        for path in other.paths:
            self.fetch(path)
        return self

    def copy(self) -> FetchStrategy[T]:
        return type(self)(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __str__(self) -> str:
        return f"FetchStrategy({', '.join(self._paths)})"

    __repr__ = __str__
