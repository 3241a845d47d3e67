"""Applies query options to in-memory sequences of entities."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.query.options import QueryOptions, SortOrder
from repokit.repository.query.paths import as_selector, get_path_value
from repokit.repository.query.specification import Specification

T = TypeVar("T")
K = TypeVar("K")


def _sort_key(path: str) -> Callable[[Any], tuple[Any, ...]]:
    # None sorts before every other value
    def key(entity: Any) -> tuple[Any, ...]:
        value = get_path_value(entity, path)
        return (0,) if value is None else (1, value)

    return key


def apply_specification(
    items: Iterable[T], specification: Specification[T] | None
) -> list[T]:
    if specification is None:
        return list(items)
    return specification.satisfying_entities_from(items)


def apply_sorting(
    items: Iterable[T],
    options: QueryOptions[T] | None,
    entity_type: type[T],
    conventions: RepositoryConventions | None = None,
) -> list[T]:
    """Sort by the option's sort paths, falling back to the primary key ascending.

    The sort is stable. Keys are applied from the least significant one so each
    earlier path takes precedence over the later ones.
    """
    result = list(items)
    sorting = dict(options.sorting) if options is not None else {}
    if not sorting:
        conventions = conventions or RepositoryConventions.default()
        sorting = {
            prop.name: SortOrder.ASCENDING
            for prop in conventions.get_primary_key_properties(entity_type)
        }
    for path, order in reversed(sorting.items()):
        result.sort(key=_sort_key(path), reverse=order is SortOrder.DESCENDING)
    return result


def apply_paging(items: list[T], options: QueryOptions[T] | None) -> list[T]:
    if options is None or options.page_index is None or options.page_size is None:
        return items
    start = (options.page_index - 1) * options.page_size
    return items[start : start + options.page_size]


def project(items: Iterable[T], selector: str | Callable[[T], Any] | None) -> list[Any]:
    select = as_selector(selector)
    return [select(item) for item in items]


def to_dict(
    items: Iterable[T],
    key_selector: str | Callable[[T], K],
    element_selector: str | Callable[[T], Any] | None = None,
) -> dict[K, Any]:
    """Build a dictionary from ``items``.

    Raises:
        ValueError: If two items produce the same key.
    """
    select_key = as_selector(key_selector)
    select_element = as_selector(element_selector)
    result: dict[K, Any] = {}
    for item in items:
        key = select_key(item)
        if key in result:
            msg = f"An item with the same key has already been added: {key!r}"
            raise ValueError(msg)
        result[key] = select_element(item)
    return result


def group_by(
    items: Iterable[T],
    key_selector: str | Callable[[T], K],
    result_selector: Callable[[K, list[T]], Any],
) -> list[Any]:
    """Group ``items`` by key, in first-seen key order, and project each group."""
    select_key = as_selector(key_selector)
    groups: dict[K, list[T]] = {}
    for item in items:
        groups.setdefault(select_key(item), []).append(item)
    return [result_selector(key, group) for key, group in groups.items()]
