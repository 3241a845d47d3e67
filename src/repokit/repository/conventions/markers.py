"""Annotation markers describing how entity attributes are persisted.

Markers are attached with :data:`typing.Annotated`::

    @dataclass
    class OrderLine:
        order_id: Annotated[int, Key(), Column(order=1)]
        line_no: Annotated[int, Key(), Column(order=2)]
        order: Annotated[Order | None, ForeignKey("order_id")] = None
        note: Annotated[str, NotMapped()] = ""

They work the same on dataclasses, pydantic models and plain annotated classes.
"""

from dataclasses import dataclass
from enum import Enum


class GeneratedOption(Enum):
    """How the store produces a value for a column."""

    NONE = "none"
    IDENTITY = "identity"
    COMPUTED = "computed"


@dataclass(frozen=True)
class Key:
    """Marks an attribute as (part of) the primary key."""


@dataclass(frozen=True)
class Column:
    """Overrides the column name and/or gives the column an explicit order."""

    name: str | None = None
    order: int | None = None


@dataclass(frozen=True)
class NotMapped:
    """Excludes an attribute from persistence."""


@dataclass(frozen=True)
class ForeignKey:
    """Links a foreign key column with its navigation attribute.

    On a scalar attribute, ``name`` is the navigation attribute the key belongs to.
    On a navigation attribute, ``name`` is the foreign key column.
    """

    name: str


@dataclass(frozen=True)
class DatabaseGenerated:
    """Declares whether the store generates the column value."""

    option: GeneratedOption = GeneratedOption.IDENTITY
