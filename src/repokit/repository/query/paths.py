"""Dotted attribute paths and selectors."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


def get_path_value(entity: object, path: str) -> Any:
    """Read ``a.b.c`` from ``entity``, stopping at the first ``None``."""
    value: Any = entity
    for part in path.split("."):
        if value is None:
            return None
        value = getattr(value, part, None)
    return value


def as_selector(selector: str | Callable[[Any], Any] | None) -> Callable[[Any], Any]:
    """Turn a dotted path, a callable or ``None`` (identity) into a callable."""
    if selector is None:
        return lambda entity: entity
    if isinstance(selector, str):
        path = selector
        return lambda entity: get_path_value(entity, path)
    return selector


def selector_description(selector: str | Callable[[Any], Any] | None) -> str | None:
    """Deterministic text for a selector, ``None`` when it is an arbitrary callable."""
    if selector is None:
        return ""
    if isinstance(selector, str):
        return selector
    return None
