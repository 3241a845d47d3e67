"""Fluent query options: filtering, sorting, paging and fetching."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Generic, Self, TypeVar

from repokit.repository.exceptions import PaginationParameterError
from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.specification import Specification

T = TypeVar("T")


class SortOrder(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class QueryOptions(Generic[T]):
    """Describes which entities a query returns and how.

    Every builder method mutates and returns the instance, so calls chain::

        options = (
            QueryOptions[Customer]()
            .satisfy_by(where("city", ComparisonOperator.EQUALS, "Paris"))
            .order_by_descending("created_at")
            .page(2, 20)
            .fetch("orders")
        )

    Attributes:
        specification: Combined filter, or ``None`` to match everything.
        fetch_strategy: Navigation paths to load, or ``None``.
        sorting: Sort paths and their direction, in priority order.
        page_index: One-based page index, or ``None`` when not paged.
        page_size: Page size, or ``None`` when not paged.
    """

    DEFAULT_PAGE_SIZE = 100

    def __init__(self) -> None:
        self.specification: Specification[T] | None = None
        self.fetch_strategy: FetchStrategy[T] | None = None
        self._sorting: dict[str, SortOrder] = {}
        self.page_index: int | None = None
        self.page_size: int | None = None

    @classmethod
    def of(cls, criteria: Criteria = None) -> QueryOptions[Any]:
        """Normalize ``None``, a predicate, a specification or options into options."""
        if isinstance(criteria, QueryOptions):
            return criteria
        options: QueryOptions[Any] = cls()
        if criteria is not None:
            options.satisfy_by(criteria)
        return options

    @property
    def sorting(self) -> Mapping[str, SortOrder]:
        return dict(self._sorting)

    @property
    def is_paged(self) -> bool:
        return self.page_index is not None

    def satisfy_by(self, criteria: Specification[T] | Callable[[T], bool]) -> Self:
        """AND-combine ``criteria`` with the current specification."""
        spec = criteria if isinstance(criteria, Specification) else Specification(criteria)
        self.specification = spec if self.specification is None else self.specification & spec
        return self

    def include(self, component: Specification[T] | FetchStrategy[T]) -> Self:
        """Merge a specification or a fetch strategy into the options."""
        if isinstance(component, FetchStrategy):
            if self.fetch_strategy is None:
                self.fetch_strategy = FetchStrategy()
            self.fetch_strategy.merge(component)
            return self
        return self.satisfy_by(component)

    def fetch(self, path: str) -> Self:
        if self.fetch_strategy is None:
            self.fetch_strategy = FetchStrategy()
        self.fetch_strategy.fetch(path)
        return self

    def order_by(self, path: str) -> Self:
        self._sorting[path] = SortOrder.ASCENDING
        return self

    def order_by_descending(self, path: str) -> Self:
        self._sorting[path] = SortOrder.DESCENDING
        return self

    def page(self, index: int, size: int | None = None) -> Self:
        """Restrict the result to one page.

        Raises:
            PaginationParameterError: If ``index`` is below 1 or ``size`` is not positive.
        """
        if index < 1:
            raise PaginationParameterError("page_index", index, "greater than or equal to 1")
        if size is None:
            size = self.page_size or self.DEFAULT_PAGE_SIZE
        if size < 1:
            raise PaginationParameterError("page_size", size, "greater than 0")
        self.page_index = index
        self.page_size = size
        return self

    def clone(self) -> QueryOptions[T]:
        other: QueryOptions[T] = type(self)()
        other.specification = self.specification
        other.fetch_strategy = None if self.fetch_strategy is None else self.fetch_strategy.copy()
        other._sorting = dict(self._sorting)
        other.page_index = self.page_index
        other.page_size = self.page_size
        return other

    @property
    def cache_key(self) -> str | None:
        """Deterministic key for caching, ``None`` when built from a bare callable."""
        if self.specification is not None and self.specification.description is None:
            return None
        return str(self)

    def __str__(self) -> str:
        sorting = ", ".join(f"{path} {order.value}" for path, order in self._sorting.items())
        return (
            "QueryOptions("
            f"specification={self.specification or ''}, "
            f"fetch={self.fetch_strategy or ''}, "
            f"sorting=[{sorting}], "
            f"page_index={self.page_index}, page_size={self.page_size})"
        )

    __repr__ = __str__


Criteria = Specification[Any] | Callable[[Any], bool] | QueryOptions[Any] | None
