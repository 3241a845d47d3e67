"""JSON file context."""

from __future__ import annotations

import functools
from typing import Any, TypeVar

from pydantic import TypeAdapter
from typing_extensions import override

from repokit.repository.file.context import FileContext, stored_field_names

T = TypeVar("T")


@functools.cache
def _list_adapter(entity_type: type) -> TypeAdapter[list[Any]]:
    return TypeAdapter(list[entity_type])  # type: ignore[valid-type]


class JsonContext(FileContext):
    """Stores each table as an indented JSON array of objects."""

    extension = ".json"

    @override
    def _read_entities(self, entity_type: type[T], content: str) -> list[T]:
        return _list_adapter(entity_type).validate_json(content)

    @override
    def _write_entities(self, entity_type: type[T], entities: list[T]) -> str:
        data = _list_adapter(entity_type).dump_json(
            entities, indent=2, include={"__all__": set(stored_field_names(entity_type))}
        )
        return data.decode("utf-8")
