"""Composable query specifications.

A specification is a predicate over entities. It can be combined with ``&``,
``|`` and ``~``, evaluated in memory, and, when built from field comparisons,
translated into a SQLAlchemy ``WHERE`` clause::

    adults = where("age", ComparisonOperator.GREATER_THAN_OR_EQUAL, 18)
    named = where("name", ComparisonOperator.STARTS_WITH, "A")
    spec = adults & ~named
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, false, func, not_, or_
from sqlalchemy.orm import ColumnProperty, InstrumentedAttribute
from sqlalchemy.sql.elements import ColumnElement

from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.query.paths import get_path_value

T = TypeVar("T")


class ComparisonOperator(Enum):
    """Comparison operators for field specifications."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


_ORDERING = {
    ComparisonOperator.GREATER_THAN: operator.gt,
    ComparisonOperator.GREATER_THAN_OR_EQUAL: operator.ge,
    ComparisonOperator.LESS_THAN: operator.lt,
    ComparisonOperator.LESS_THAN_OR_EQUAL: operator.le,
}


class Specification(Generic[T]):
    """A predicate over entities of type ``T``.

    Args:
        predicate: The callable deciding whether an entity matches.
        description: A deterministic text for the predicate. Leave it ``None``
            for arbitrary callables: queries built from them are never cached.
    """

    def __init__(self, predicate: Callable[[T], bool], description: str | None = None) -> None:
        self.predicate = predicate
        self.description = description

    def is_satisfied_by(self, entity: T) -> bool:
        return bool(self.predicate(entity))

    def satisfying_entities_from(self, entities: Iterable[T]) -> list[T]:
        return [entity for entity in entities if self.is_satisfied_by(entity)]

    def to_sqlalchemy(self, entity_type: type) -> ColumnElement[bool] | None:
        """Translate to a SQLAlchemy expression, or ``None`` when not translatable."""
        return None

    def and_(self, other: Specification[T]) -> Specification[T]:
        return AndSpecification(self, other)

    def or_(self, other: Specification[T]) -> Specification[T]:
        return OrSpecification(self, other)

    def not_(self) -> Specification[T]:
        return NotSpecification(self)

    def __and__(self, other: Specification[T]) -> Specification[T]:
        return self.and_(other)

    def __or__(self, other: Specification[T]) -> Specification[T]:
        return self.or_(other)

    def __invert__(self) -> Specification[T]:
        return self.not_()

    def __str__(self) -> str:
        if self.description is not None:
            return self.description
        return repr(self.predicate)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"


class AndSpecification(Specification[T]):
    def __init__(self, left: Specification[T], right: Specification[T]) -> None:
        self.left = left
        self.right = right
        description = None
        if left.description is not None and right.description is not None:
            description = f"({left.description} AND {right.description})"
        super().__init__(
            lambda entity: left.is_satisfied_by(entity) and right.is_satisfied_by(entity),
            description,
        )

    def to_sqlalchemy(self, entity_type: type) -> ColumnElement[bool] | None:
        left = self.left.to_sqlalchemy(entity_type)
        right = self.right.to_sqlalchemy(entity_type)
        if left is None or right is None:
            return None
        return and_(left, right)


class OrSpecification(Specification[T]):
    def __init__(self, left: Specification[T], right: Specification[T]) -> None:
        self.left = left
        self.right = right
        description = None
        if left.description is not None and right.description is not None:
            description = f"({left.description} OR {right.description})"
        super().__init__(
            lambda entity: left.is_satisfied_by(entity) or right.is_satisfied_by(entity),
            description,
        )

    def to_sqlalchemy(self, entity_type: type) -> ColumnElement[bool] | None:
        left = self.left.to_sqlalchemy(entity_type)
        right = self.right.to_sqlalchemy(entity_type)
        if left is None or right is None:
            return None
        return or_(left, right)


class NotSpecification(Specification[T]):
    def __init__(self, inner: Specification[T]) -> None:
        self.inner = inner
        description = None if inner.description is None else f"NOT {inner.description}"
        super().__init__(lambda entity: not inner.is_satisfied_by(entity), description)

    def to_sqlalchemy(self, entity_type: type) -> ColumnElement[bool] | None:
        inner = self.inner.to_sqlalchemy(entity_type)
        if inner is None:
            return None
        # A comparison with NULL is unknown in SQL but false in memory
        return not_(func.coalesce(inner, false()))


class FieldSpecification(Specification[T]):
    """Compares the value at a dotted attribute path with a constant.

    Ordering comparisons never match a ``None`` on either side.
    """

    def __init__(self, path: str, operator: ComparisonOperator, value: Any = None) -> None:
        self.path = path
        self.operator = operator
        self.value = value
        if operator in (ComparisonOperator.IS_NULL, ComparisonOperator.IS_NOT_NULL):
            description = f"{path} {operator.value}"
        else:
            description = f"{path} {operator.value} {value!r}"
        super().__init__(self._matches, description)

    def _matches(self, entity: T) -> bool:  # noqa: C901
        actual = get_path_value(entity, self.path)
        expected = self.value

        match self.operator:
            case ComparisonOperator.EQUALS:
                return actual == expected
            case ComparisonOperator.NOT_EQUALS:
                return actual != expected
            case ComparisonOperator.IS_NULL:
                return actual is None
            case ComparisonOperator.IS_NOT_NULL:
                return actual is not None
            case ComparisonOperator.IN:
                return actual in expected
            case ComparisonOperator.NOT_IN:
                return actual not in expected

        if actual is None or expected is None:
            return False

        match self.operator:
            case ComparisonOperator.CONTAINS:
                return expected in actual
            case ComparisonOperator.STARTS_WITH:
                return str(actual).startswith(expected)
            case ComparisonOperator.ENDS_WITH:
                return str(actual).endswith(expected)

        return bool(_ORDERING[self.operator](actual, expected))

    def to_sqlalchemy(self, entity_type: type) -> ColumnElement[bool] | None:  # noqa: C901
        if "." in self.path:
            return None
        column = getattr(entity_type, self.path, None)
        if not isinstance(column, InstrumentedAttribute) or not isinstance(
            column.property, ColumnProperty
        ):
            return None
        value = self.value

        match self.operator:
            case ComparisonOperator.EQUALS:
                return column.is_(None) if value is None else column == value
            case ComparisonOperator.NOT_EQUALS:
                if value is None:
                    return column.is_not(None)
                return or_(column != value, column.is_(None))
            case ComparisonOperator.IS_NULL:
                return column.is_(None)
            case ComparisonOperator.IS_NOT_NULL:
                return column.is_not(None)
            case ComparisonOperator.IN:
                return column.in_(list(value))
            case ComparisonOperator.NOT_IN:
                return or_(column.not_in(list(value)), column.is_(None))
            case ComparisonOperator.CONTAINS:
                return column.contains(value, autoescape=True)
            case ComparisonOperator.STARTS_WITH:
                return column.startswith(value, autoescape=True)
            case ComparisonOperator.ENDS_WITH:
                return column.endswith(value, autoescape=True)
            case ComparisonOperator.GREATER_THAN:
                return column > value
            case ComparisonOperator.GREATER_THAN_OR_EQUAL:
                return column >= value
            case ComparisonOperator.LESS_THAN:
                return column < value
            case ComparisonOperator.LESS_THAN_OR_EQUAL:
                return column <= value

        msg = f"Unsupported operator: {self.operator}"
        raise ValueError(msg)


def where(
    path: str, operator: ComparisonOperator = ComparisonOperator.EQUALS, value: Any = None
) -> FieldSpecification[Any]:
    """Shortcut for ``FieldSpecification(path, operator, value)``."""
    return FieldSpecification(path, operator, value)


def by_primary_key(
    entity_type: type,
    key_values: Sequence[Any],
    conventions: RepositoryConventions | None = None,
) -> Specification[Any]:
    """Build the specification matching the entity whose key equals ``key_values``.

    Keys are resolved through ``conventions``, the built-in ones by default.

    Raises:
        MissingPrimaryKeyError: If ``entity_type`` has no primary key.
        PrimaryKeyValuesMismatchError: If the number of values is wrong.
    """
    conventions = conventions or RepositoryConventions.default()
    values = conventions.normalize_key_values(entity_type, tuple(key_values))
    keys = conventions.ensure_primary_key(entity_type)
    spec: Specification[Any] = FieldSpecification(keys[0].name, ComparisonOperator.EQUALS, values[0])
    for prop, value in zip(keys[1:], values[1:], strict=True):
        spec = spec & FieldSpecification(prop.name, ComparisonOperator.EQUALS, value)
    return spec
