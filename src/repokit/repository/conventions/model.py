"""Reflection over entity types: properties, table and column names."""

from __future__ import annotations

import datetime
import decimal
import enum
import functools
import logging
import re
import types
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, ClassVar, TypeVar, Union, get_args, get_origin, get_type_hints

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import ColumnProperty, Mapped, Mapper, RelationshipProperty
from ulid import ULID

from repokit.repository.conventions.markers import Column, NotMapped

logger = logging.getLogger(__name__)

M = TypeVar("M")

SCALAR_TYPES: tuple[type, ...] = (
    str,
    int,
    float,
    bool,
    bytes,
    decimal.Decimal,
    datetime.datetime,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
    ULID,
)

_COLLECTION_ORIGINS = (list, set, frozenset, tuple, Sequence, Iterable)


@dataclass(frozen=True)
class PropertyInfo:
    """Metadata about one persisted attribute of an entity type.

    Attributes:
        name: The attribute name on the entity.
        declaring_type: The entity type the attribute was resolved on.
        annotation: The attribute type with ``Annotated`` and ``Mapped`` wrappers removed.
        markers: The annotation metadata attached to the attribute.
        column_name: The storage column name.
    """

    name: str
    declaring_type: type
    annotation: Any
    markers: tuple[object, ...] = ()
    column_name: str = field(default="")

    def marker(self, marker_type: type[M]) -> M | None:
        """Return the first marker of the given type, if any."""
        for marker in self.markers:
            if isinstance(marker, marker_type):
                return marker
        return None

    def get_value(self, entity: object) -> Any:
        return getattr(entity, self.name, None)

    def set_value(self, entity: object, value: Any) -> None:
        setattr(entity, self.name, value)


def snake_case(name: str) -> str:
    """Convert ``CamelCase`` to ``snake_case``."""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def pluralize(word: str) -> str:
    """Naive English pluralization used for default table names."""
    if re.search(r"[^aeiou]y$", word, re.IGNORECASE):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word, re.IGNORECASE):
        return word + "es"
    return word + "s"


def unwrap_optional(annotation: Any) -> Any:
    """Strip ``None`` from ``X | None`` / ``Optional[X]``."""
    origin = get_origin(annotation)
    if origin in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def allows_none(annotation: Any) -> bool:
    """Whether ``None`` is a valid value for ``annotation``."""
    if annotation is Any or annotation is None or annotation is type(None):
        return True
    return get_origin(annotation) in (Union, types.UnionType) and type(None) in get_args(annotation)


def collection_item_type(annotation: Any) -> Any | None:
    """Return ``X`` for ``list[X]``-like annotations, otherwise ``None``."""
    annotation = unwrap_optional(annotation)
    origin = get_origin(annotation)
    if origin is None or not isinstance(origin, type):
        return None
    if not any(origin is c or issubclass(origin, c) for c in _COLLECTION_ORIGINS):
        return None
    if issubclass(origin, (str, bytes, Mapping)):
        return None
    args = [arg for arg in get_args(annotation) if arg is not Ellipsis]
    return args[0] if args else None


def is_scalar_type(annotation: Any) -> bool:
    annotation = unwrap_optional(annotation)
    if not isinstance(annotation, type):
        return False
    return issubclass(annotation, SCALAR_TYPES) or issubclass(annotation, enum.Enum)


def is_complex(prop: PropertyInfo) -> bool:
    """Whether the property references a single object (not a scalar, not a collection)."""
    annotation = unwrap_optional(prop.annotation)
    if not isinstance(annotation, type) or annotation is Any:
        return False
    if collection_item_type(prop.annotation) is not None:
        return False
    return not is_scalar_type(annotation)


def sqlalchemy_mapper(entity_type: type) -> Mapper[Any] | None:
    mapper = sa_inspect(entity_type, raiseerr=False)
    return mapper if isinstance(mapper, Mapper) else None


def _type_hints(entity_type: type) -> dict[str, Any]:
    try:
        return get_type_hints(entity_type, include_extras=True)
    except (NameError, TypeError):
        logger.debug(
            "Could not resolve type hints of %s, using raw annotations.",
            entity_type.__name__,
            exc_info=True,
        )
        hints: dict[str, Any] = {}
        for klass in reversed(entity_type.__mro__):
            hints.update(getattr(klass, "__annotations__", {}))
        return hints


def _split_annotation(hint: Any) -> tuple[Any, tuple[object, ...]]:
    """Separate an annotation into its base type and ``Annotated`` metadata."""
    markers: tuple[object, ...] = ()
    if get_origin(hint) is Annotated:
        markers = tuple(hint.__metadata__)
        hint = hint.__origin__
    if get_origin(hint) is Mapped:
        hint = get_args(hint)[0]
        if get_origin(hint) is Annotated:
            markers += tuple(hint.__metadata__)
            hint = hint.__origin__
    return hint, markers


def _column_name(name: str, markers: tuple[object, ...]) -> str:
    for marker in markers:
        if isinstance(marker, Column) and marker.name:
            return marker.name
    return name


def _mapped_properties(entity_type: type, mapper: Mapper[Any]) -> tuple[PropertyInfo, ...]:
    hints = _type_hints(entity_type)
    properties: list[PropertyInfo] = []
    for attr in mapper.attrs:
        annotation, markers = _split_annotation(hints.get(attr.key, Any))
        column_name = attr.key
        if isinstance(attr, ColumnProperty):
            column = attr.columns[0]
            column_name = getattr(column, "name", None) or attr.key
            if annotation is Any:
                try:
                    annotation = column.type.python_type
                except NotImplementedError:
                    annotation = Any
        elif isinstance(attr, RelationshipProperty) and annotation is Any:
            target = attr.mapper.class_
            annotation = list[target] if attr.uselist else target  # type: ignore[valid-type]
        properties.append(
            PropertyInfo(
                name=attr.key,
                declaring_type=entity_type,
                annotation=annotation,
                markers=markers,
                column_name=column_name,
            )
        )
    return tuple(properties)


@functools.cache
def get_properties(entity_type: type) -> tuple[PropertyInfo, ...]:
    """Return every attribute of ``entity_type`` that takes part in persistence.

    ``ClassVar`` attributes, private names and attributes marked ``NotMapped()``
    are excluded. SQLAlchemy mapped classes are described by their mapper.
    """
    mapper = sqlalchemy_mapper(entity_type)
    if mapper is not None:
        return _mapped_properties(entity_type, mapper)

    hints = _type_hints(entity_type)
    model_fields = getattr(entity_type, "model_fields", None)
    names = list(model_fields) if isinstance(model_fields, dict) else list(hints)

    properties: list[PropertyInfo] = []
    for name in names:
        if name.startswith("_") or name not in hints:
            continue
        hint = hints[name]
        if hint is ClassVar or get_origin(hint) is ClassVar:
            continue
        annotation, markers = _split_annotation(hint)
        if any(isinstance(marker, NotMapped) for marker in markers):
            continue
        properties.append(
            PropertyInfo(
                name=name,
                declaring_type=entity_type,
                annotation=annotation,
                markers=markers,
                column_name=_column_name(name, markers),
            )
        )
    return tuple(properties)


def get_property(entity_type: type, name: str) -> PropertyInfo | None:
    for prop in get_properties(entity_type):
        if prop.name == name:
            return prop
    return None


def is_column_mapped(prop: PropertyInfo) -> bool:
    return prop.marker(NotMapped) is None


def get_column_name(prop: PropertyInfo) -> str:
    return prop.column_name or prop.name


@functools.cache
def get_table_name(entity_type: type) -> str:
    """Return ``__tablename__`` when declared, otherwise the pluralized class name."""
    table_name = getattr(entity_type, "__tablename__", None)
    if isinstance(table_name, str) and table_name:
        return table_name
    return pluralize(entity_type.__name__)
