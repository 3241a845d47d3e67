"""CSV file context."""

from __future__ import annotations

import csv
import io
from typing import Any, TypeVar

from typing_extensions import override

from repokit.repository.conventions.model import PropertyInfo, is_scalar_type
from repokit.repository.file.context import FileContext, entity_adapter, stored_field_names

T = TypeVar("T")


class CsvContext(FileContext):
    """Stores each table as a CSV file with a header row.

    Only scalar columns are written, ordered by column order: the single primary
    key first, then explicit ``Column(order=...)`` values, then declaration order.
    Empty cells are read back as ``None`` (``""`` for plain ``str`` columns).
    """

    extension = ".csv"

    def _columns(self, entity_type: type) -> list[PropertyInfo]:
        names = stored_field_names(entity_type)
        columns = [
            prop
            for prop in self.conventions.get_properties(entity_type)
            if prop.name in names and is_scalar_type(prop.annotation)
        ]
        return sorted(columns, key=self.conventions.get_column_order_or_default)

    @override
    def _read_entities(self, entity_type: type[T], content: str) -> list[T]:
        columns = {self.conventions.get_column_name(prop): prop for prop in self._columns(entity_type)}
        adapter = entity_adapter(entity_type)
        entities = []
        for row in csv.DictReader(io.StringIO(content, newline="")):
            data: dict[str, Any] = {}
            for header, cell in row.items():
                prop = columns.get(header)
                if prop is None:
                    continue
                if cell == "":
                    data[prop.name] = "" if prop.annotation is str else None
                else:
                    data[prop.name] = cell
            entities.append(adapter.validate_python(data))
        return entities

    @override
    def _write_entities(self, entity_type: type[T], entities: list[T]) -> str:
        columns = self._columns(entity_type)
        adapter = entity_adapter(entity_type)
        include = {prop.name for prop in columns}
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer)
        writer.writerow([self.conventions.get_column_name(prop) for prop in columns])
        for entity in entities:
            data = adapter.dump_python(entity, mode="json", include=include)
            writer.writerow(["" if data.get(prop.name) is None else data[prop.name] for prop in columns])
        return buffer.getvalue()
