"""Query result containers."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar

R = TypeVar("R")


@dataclass
class QueryResult(Generic[R]):
    """A single query result with an optional total."""

    result: R
    total: int | None = None


@dataclass
class PagedQueryResult(Generic[R]):
    """One page of items along with the count of every matching item.

    ``total`` is counted before paging is applied.
    """

    items: list[R] = field(default_factory=list)
    total: int = 0

    def __iter__(self) -> Iterator[R]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> R:
        return self.items[index]


@dataclass
class CacheQueryResult(QueryResult[R]):
    cache_used: bool = False


@dataclass
class CachePagedQueryResult(PagedQueryResult[R]):
    cache_used: bool = False
