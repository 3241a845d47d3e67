"""Primary key resolution by convention."""

from __future__ import annotations

import functools
import sys
from typing import Any

from repokit.repository.conventions.markers import Column, DatabaseGenerated, GeneratedOption, Key
from repokit.repository.conventions.model import (
    PropertyInfo,
    sqlalchemy_mapper,
    get_properties,
    snake_case,
)
from repokit.repository.exceptions import MissingPrimaryKeyError, PrimaryKeyValuesMismatchError


def _marker_order(prop: PropertyInfo) -> int:
    column = prop.marker(Column)
    if column is not None and column.order is not None and column.order > 0:
        return column.order
    return sys.maxsize


@functools.cache
def get_primary_key_properties(entity_type: type) -> tuple[PropertyInfo, ...]:
    """Return the primary key properties of ``entity_type``, in key order.

    Resolution order:
        1. Attributes marked ``Key()``, ordered by ``Column(order=...)``.
        2. The primary key columns of a SQLAlchemy mapper.
        3. An attribute named ``id`` or ``<snake_case_type_name>_id``.

    Returns:
        The key properties, or an empty tuple when none could be resolved.
    """
    properties = get_properties(entity_type)
    by_name = {prop.name: prop for prop in properties}

    keyed = [prop for prop in properties if prop.marker(Key) is not None]
    if keyed:
        # sorted() is stable, unordered keys keep their declaration order
        return tuple(sorted(keyed, key=_marker_order))

    mapper = sqlalchemy_mapper(entity_type)
    if mapper is not None:
        mapped: list[PropertyInfo] = []
        for column in mapper.primary_key:
            attr = mapper.get_property_by_column(column)
            if attr.key in by_name:
                mapped.append(by_name[attr.key])
        if mapped:
            return tuple(mapped)

    for candidate in ("id", f"{snake_case(entity_type.__name__)}_id"):
        if candidate in by_name:
            return (by_name[candidate],)
    return ()


def ensure_primary_key(
    entity_type: type, keys: tuple[PropertyInfo, ...] | None = None
) -> tuple[PropertyInfo, ...]:
    """Return the primary key properties or raise ``MissingPrimaryKeyError``.

    ``keys`` are the already resolved key properties, looked up when omitted.
    """
    if keys is None:
        keys = get_primary_key_properties(entity_type)
    if not keys:
        raise MissingPrimaryKeyError(entity_type.__name__)
    return keys


def get_primary_key_values(entity: object) -> tuple[Any, ...]:
    """Return the key values of ``entity`` in key order."""
    return tuple(prop.get_value(entity) for prop in ensure_primary_key(type(entity)))


def combine_key(values: tuple[Any, ...]) -> Any:
    """Collapse key values into the form used to index an entity.

    A single key is its own value, a composite key is a tuple.
    """
    return values[0] if len(values) == 1 else tuple(values)


def get_primary_key(entity: object) -> Any:
    return combine_key(get_primary_key_values(entity))


def normalize_key_values(
    entity_type: type,
    key_values: tuple[Any, ...],
    keys: tuple[PropertyInfo, ...] | None = None,
) -> tuple[Any, ...]:
    """Validate the number of key values passed for ``entity_type``.

    A single tuple argument is unpacked so ``find(Type, (a, b))`` and
    ``find(Type, a, b)`` behave the same.

    Raises:
        MissingPrimaryKeyError: If the type has no primary key.
        PrimaryKeyValuesMismatchError: If the count does not match the key definition.
    """
    keys = ensure_primary_key(entity_type, keys)
    if len(key_values) == 1 and isinstance(key_values[0], tuple) and len(keys) > 1:
        key_values = key_values[0]
    if len(key_values) != len(keys):
        raise PrimaryKeyValuesMismatchError(entity_type.__name__, len(keys), len(key_values))
    return tuple(key_values)


def get_column_order(
    prop: PropertyInfo, keys: tuple[PropertyInfo, ...] | None = None
) -> int | None:
    """Return the explicit column order, ``-1`` for a single primary key, else ``None``."""
    column = prop.marker(Column)
    if column is not None and column.order is not None and column.order > 0:
        return column.order
    if keys is None:
        keys = get_primary_key_properties(prop.declaring_type)
    if len(keys) == 1 and keys[0].name == prop.name:
        return -1
    return None


def get_column_order_or_default(
    prop: PropertyInfo, keys: tuple[PropertyInfo, ...] | None = None
) -> int:
    order = get_column_order(prop, keys)
    return sys.maxsize if order is None else order


def is_column_identity(
    entity_type: type, prop: PropertyInfo, keys: tuple[PropertyInfo, ...] | None = None
) -> bool:
    """Whether the store generates the value of ``prop``.

    An explicit ``DatabaseGenerated`` marker wins. Without one, only a single
    (non-composite) primary key is an identity.
    """
    generated = prop.marker(DatabaseGenerated)
    if generated is not None:
        return generated.option is GeneratedOption.IDENTITY
    if keys is None:
        keys = get_primary_key_properties(entity_type)
    return len(keys) == 1 and keys[0].name == prop.name
