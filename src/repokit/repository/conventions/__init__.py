"""Model conventions: primary keys, foreign keys, table and column mapping."""

from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.conventions.foreign_key import ForeignKeyInfo, get_foreign_key, is_navigation
from repokit.repository.conventions.markers import (
    Column,
    DatabaseGenerated,
    ForeignKey,
    GeneratedOption,
    Key,
    NotMapped,
)
from repokit.repository.conventions.model import (
    PropertyInfo,
    get_column_name,
    get_properties,
    get_property,
    get_table_name,
    is_column_mapped,
)
from repokit.repository.conventions.primary_key import (
    get_column_order,
    get_column_order_or_default,
    get_primary_key,
    get_primary_key_properties,
    get_primary_key_values,
    is_column_identity,
)

__all__ = [
    "Column",
    "DatabaseGenerated",
    "ForeignKey",
    "ForeignKeyInfo",
    "GeneratedOption",
    "Key",
    "NotMapped",
    "PropertyInfo",
    "RepositoryConventions",
    "get_column_name",
    "get_column_order",
    "get_column_order_or_default",
    "get_foreign_key",
    "get_primary_key",
    "get_primary_key_properties",
    "get_primary_key_values",
    "get_properties",
    "get_property",
    "get_table_name",
    "is_column_identity",
    "is_column_mapped",
    "is_navigation",
]
