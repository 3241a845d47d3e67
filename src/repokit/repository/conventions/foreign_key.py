"""Foreign key resolution between navigation properties and key columns."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from repokit.repository.conventions.markers import ForeignKey
from repokit.repository.conventions.model import (
    PropertyInfo,
    collection_item_type,
    get_column_name,
    get_properties,
    get_property,
    is_scalar_type,
    snake_case,
    unwrap_optional,
)
from repokit.repository.conventions.primary_key import get_primary_key_properties
from repokit.repository.exceptions import ForeignKeyConventionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForeignKeyInfo:
    """How a navigation property joins two entity types.

    ``dependent_keys`` hold the foreign key values on ``dependent_type`` and line
    up one to one with ``principal_keys``, the primary key of ``principal_type``.

    Attributes:
        navigation: The navigation property the relation was resolved from.
        dependent_type: The type holding the foreign key.
        dependent_keys: The foreign key properties on ``dependent_type``.
        principal_type: The type referenced by the foreign key.
        principal_keys: The primary key properties of ``principal_type``.
        is_collection: Whether ``navigation`` holds a list of dependents.
    """

    navigation: PropertyInfo
    dependent_type: type
    dependent_keys: tuple[PropertyInfo, ...]
    principal_type: type
    principal_keys: tuple[PropertyInfo, ...]
    is_collection: bool = False

    @property
    def navigation_on_dependent(self) -> bool:
        """Whether the navigation belongs to the type holding the foreign key."""
        return self.navigation.declaring_type is self.dependent_type


def navigation_target(prop: PropertyInfo) -> tuple[type | None, bool]:
    """Return the entity type a navigation points to and whether it is a collection."""
    item_type = collection_item_type(prop.annotation)
    if item_type is not None:
        item_type = unwrap_optional(item_type)
        if isinstance(item_type, type) and not is_scalar_type(item_type):
            return item_type, True
        return None, True
    target = unwrap_optional(prop.annotation)
    if isinstance(target, type) and not is_scalar_type(target):
        return target, False
    return None, False


def is_navigation(prop: PropertyInfo) -> bool:
    target, _ = navigation_target(prop)
    return target is not None and bool(get_primary_key_properties(target))


def _split_names(names: str) -> list[str]:
    return [name.strip() for name in names.split(",") if name.strip()]


def _find_column(entity_type: type, name: str) -> PropertyInfo | None:
    for prop in get_properties(entity_type):
        if prop.name == name or get_column_name(prop) == name:
            return prop
    return None


def _scalar_properties(entity_type: type) -> list[PropertyInfo]:
    return [prop for prop in get_properties(entity_type) if is_scalar_type(prop.annotation)]


def _validate_markers(entity_type: type) -> None:
    """Fail on ``ForeignKey`` markers naming attributes that do not exist."""
    for prop in get_properties(entity_type):
        marker = prop.marker(ForeignKey)
        if marker is None:
            continue
        for name in _split_names(marker.name):
            if _find_column(entity_type, name) is None:
                msg = (
                    f"The ForeignKey marker on '{prop.name}' of '{entity_type.__name__}' "
                    f"names '{name}', which is not an attribute of that type"
                )
                raise ForeignKeyConventionError(msg)


def _keys_from_markers(
    dependent_type: type, navigation: PropertyInfo | None
) -> tuple[PropertyInfo, ...]:
    """Find foreign key columns on ``dependent_type`` declared through markers.

    Either the scalar columns name the navigation, or the navigation names the columns.
    """
    _validate_markers(dependent_type)
    if navigation is None:
        return ()
    on_columns = [
        prop
        for prop in _scalar_properties(dependent_type)
        if (marker := prop.marker(ForeignKey)) is not None and marker.name == navigation.name
    ]
    if on_columns:
        return tuple(on_columns)
    marker = navigation.marker(ForeignKey)
    if marker is None:
        return ()
    columns = [_find_column(dependent_type, name) for name in _split_names(marker.name)]
    return tuple(column for column in columns if column is not None)


def _keys_from_names(
    dependent_type: type, prefix: str, principal_keys: tuple[PropertyInfo, ...]
) -> tuple[PropertyInfo, ...]:
    """Match ``<prefix>_<key column>`` on the dependent type for every principal key."""
    matched: list[PropertyInfo] = []
    for key in principal_keys:
        key_name = get_column_name(key)
        column = _find_column(dependent_type, f"{prefix}_{key_name}")
        if column is None and key_name.startswith(f"{prefix}_"):
            column = _find_column(dependent_type, key_name)
        if column is None:
            return ()
        matched.append(column)
    return tuple(matched)


def _inverse_navigation(owner: type, target: type, exclude: str | None = None) -> PropertyInfo | None:
    """Return the single reference navigation on ``target`` that points back at ``owner``."""
    candidates = []
    for prop in get_properties(target):
        if prop.name == exclude and target is owner:
            continue
        nav_type, is_collection = navigation_target(prop)
        if nav_type is owner and not is_collection:
            candidates.append(prop)
    return candidates[0] if len(candidates) == 1 else None


def _resolve_reference(
    entity_type: type, navigation: PropertyInfo, target: type
) -> ForeignKeyInfo | None:
    principal_keys = get_primary_key_properties(target)
    if principal_keys:
        keys = _keys_from_markers(entity_type, navigation)
        if not keys:
            keys = _keys_from_names(entity_type, navigation.name, principal_keys)
        if keys and len(keys) == len(principal_keys):
            return ForeignKeyInfo(navigation, entity_type, keys, target, principal_keys)

    # One-to-one where the referenced type holds the key
    own_keys = get_primary_key_properties(entity_type)
    if not own_keys:
        return None
    inverse = _inverse_navigation(entity_type, target, exclude=navigation.name)
    keys = _keys_from_markers(target, inverse)
    if not keys and inverse is not None:
        keys = _keys_from_names(target, inverse.name, own_keys)
    if not keys:
        keys = _keys_from_names(target, snake_case(entity_type.__name__), own_keys)
    if keys and len(keys) == len(own_keys):
        return ForeignKeyInfo(navigation, target, keys, entity_type, own_keys)
    return None


def _resolve_collection(
    entity_type: type, navigation: PropertyInfo, target: type
) -> ForeignKeyInfo | None:
    principal_keys = get_primary_key_properties(entity_type)
    if not principal_keys:
        return None
    _validate_markers(target)
    keys: tuple[PropertyInfo, ...] = ()
    marker = navigation.marker(ForeignKey)
    if marker is not None:
        columns = [_find_column(target, name) for name in _split_names(marker.name)]
        if any(column is None for column in columns):
            msg = (
                f"The ForeignKey marker on '{navigation.name}' of '{entity_type.__name__}' "
                f"names columns missing from '{target.__name__}'"
            )
            raise ForeignKeyConventionError(msg)
        keys = tuple(column for column in columns if column is not None)
    if not keys:
        inverse = _inverse_navigation(entity_type, target)
        if inverse is not None:
            keys = _keys_from_markers(target, inverse)
            if not keys:
                keys = _keys_from_names(target, inverse.name, principal_keys)
    if not keys:
        keys = _keys_from_names(target, snake_case(entity_type.__name__), principal_keys)
    if keys and len(keys) == len(principal_keys):
        return ForeignKeyInfo(
            navigation, target, keys, entity_type, principal_keys, is_collection=True
        )
    return None


@functools.cache
def get_foreign_key(entity_type: type, navigation_name: str) -> ForeignKeyInfo | None:
    """Resolve how ``entity_type.<navigation_name>`` joins to its target type.

    Returns:
        The relation, or ``None`` when the attribute is not a navigation or no
        foreign key could be matched.

    Raises:
        ForeignKeyConventionError: If a ``ForeignKey`` marker names a missing attribute.
    """
    navigation = get_property(entity_type, navigation_name)
    if navigation is None:
        return None
    target, is_collection = navigation_target(navigation)
    if target is None:
        return None
    if is_collection:
        info = _resolve_collection(entity_type, navigation, target)
    else:
        info = _resolve_reference(entity_type, navigation, target)
    if info is None:
        logger.debug(
            "No foreign key found for %s.%s", entity_type.__name__, navigation_name
        )
    return info
