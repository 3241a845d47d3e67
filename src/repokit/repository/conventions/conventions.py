"""Overridable bundle of the convention resolvers."""

from __future__ import annotations

from typing import Any, ClassVar

from repokit.repository.conventions import foreign_key, model, primary_key
from repokit.repository.conventions.foreign_key import ForeignKeyInfo
from repokit.repository.conventions.model import PropertyInfo


class RepositoryConventions:
    """Resolves model metadata for a repository context.

    Every context holds one instance. Subclass and override a method to change
    how a single convention is resolved, for example table names::

        class PrefixedConventions(RepositoryConventions):
            def get_table_name(self, entity_type: type) -> str:
                return "app_" + super().get_table_name(entity_type)
    """

    _default: ClassVar[RepositoryConventions | None] = None

    @classmethod
    def default(cls) -> RepositoryConventions:
        """Return the shared instance using the built-in conventions."""
        if RepositoryConventions._default is None:
            RepositoryConventions._default = RepositoryConventions()
        return RepositoryConventions._default

    def get_properties(self, entity_type: type) -> tuple[PropertyInfo, ...]:
        return model.get_properties(entity_type)

    def get_primary_key_properties(self, entity_type: type) -> tuple[PropertyInfo, ...]:
        return primary_key.get_primary_key_properties(entity_type)

    def ensure_primary_key(self, entity_type: type) -> tuple[PropertyInfo, ...]:
        return primary_key.ensure_primary_key(entity_type, self.get_primary_key_properties(entity_type))

    def normalize_key_values(self, entity_type: type, key_values: tuple[Any, ...]) -> tuple[Any, ...]:
        return primary_key.normalize_key_values(
            entity_type, key_values, self.get_primary_key_properties(entity_type)
        )

    def get_primary_key_values(self, entity: object) -> tuple[Any, ...]:
        keys = self.ensure_primary_key(type(entity))
        return tuple(prop.get_value(entity) for prop in keys)

    def get_primary_key(self, entity: object) -> Any:
        return primary_key.combine_key(self.get_primary_key_values(entity))

    def get_foreign_key(self, entity_type: type, navigation_name: str) -> ForeignKeyInfo | None:
        return foreign_key.get_foreign_key(entity_type, navigation_name)

    def get_table_name(self, entity_type: type) -> str:
        return model.get_table_name(entity_type)

    def get_column_name(self, prop: PropertyInfo) -> str:
        return model.get_column_name(prop)

    def get_column_order(self, prop: PropertyInfo) -> int | None:
        return primary_key.get_column_order(
            prop, self.get_primary_key_properties(prop.declaring_type)
        )

    def get_column_order_or_default(self, prop: PropertyInfo) -> int:
        return primary_key.get_column_order_or_default(
            prop, self.get_primary_key_properties(prop.declaring_type)
        )

    def is_column_identity(self, entity_type: type, prop: PropertyInfo) -> bool:
        return primary_key.is_column_identity(
            entity_type, prop, self.get_primary_key_properties(entity_type)
        )

    def is_column_mapped(self, prop: PropertyInfo) -> bool:
        return model.is_column_mapped(prop)
