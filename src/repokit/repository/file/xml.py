"""XML file context.

Layout of a table file::

    <Customers>
      <Customer>
        <id>1</id>
        <name>Alice</name>
        <tags><item>vip</item></tags>
      </Customer>
    </Customers>

Nested objects become nested elements, lists become repeated ``<item>``
elements and ``None`` values are left out.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, TypeVar

from typing_extensions import override

from repokit.repository.conventions.model import (
    allows_none,
    collection_item_type,
    get_properties,
    is_scalar_type,
    unwrap_optional,
)
from repokit.repository.file.context import FileContext, entity_adapter, stored_field_names

T = TypeVar("T")

ITEM_TAG = "item"


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _write_value(parent: ET.Element, tag: str, value: Any) -> None:
    if value is None:
        return
    element = ET.SubElement(parent, tag)
    if isinstance(value, dict):
        for key, item in value.items():
            _write_value(element, str(key), item)
    elif isinstance(value, list):
        for item in value:
            _write_value(element, ITEM_TAG, item)
    else:
        element.text = _to_text(value)


def _annotations_of(annotation: Any) -> dict[str, Any]:
    annotation = unwrap_optional(annotation)
    if not isinstance(annotation, type) or is_scalar_type(annotation):
        return {}
    return {prop.name: prop.annotation for prop in get_properties(annotation)}


def _read_fields(element: ET.Element, fields: dict[str, Any]) -> dict[str, Any]:
    data = {child.tag: _read_value(child, fields.get(child.tag, Any)) for child in element}
    # None values are written as absent elements
    for name, annotation in fields.items():
        if name not in data and allows_none(annotation):
            data[name] = None
    return data


def _read_value(element: ET.Element, annotation: Any) -> Any:
    item_type = collection_item_type(annotation)
    if item_type is not None:
        return [_read_value(child, item_type) for child in element]
    fields = _annotations_of(annotation)
    if len(element) or fields:
        return _read_fields(element, fields)
    return element.text or ""


class XmlContext(FileContext):
    """Stores each table as an XML document named after the table."""

    extension = ".xml"

    @override
    def _read_entities(self, entity_type: type[T], content: str) -> list[T]:
        root = ET.fromstring(content)
        stored = stored_field_names(entity_type)
        fields = {
            prop.name: prop.annotation
            for prop in get_properties(entity_type)
            if prop.name in stored
        }
        adapter = entity_adapter(entity_type)
        entities = []
        for row in root:
            entities.append(adapter.validate_python(_read_fields(row, fields)))
        return entities

    @override
    def _write_entities(self, entity_type: type[T], entities: list[T]) -> str:
        root = ET.Element(self.conventions.get_table_name(entity_type))
        adapter = entity_adapter(entity_type)
        names = set(stored_field_names(entity_type))
        for entity in entities:
            row = ET.SubElement(root, entity_type.__name__)
            for name, value in adapter.dump_python(entity, mode="json", include=names).items():
                _write_value(row, name, value)
        ET.indent(root)
        return ET.tostring(root, encoding="unicode", xml_declaration=True)
