"""Base class of the file-backed repository contexts.

Each entity type is stored in one file, ``<directory>/<table name><extension>``,
which is rewritten entirely whenever that type is saved. Files are read back
into the in-memory database the first time a type is queried and again whenever
their modification time changed since the last write.
"""

from __future__ import annotations

import functools
import logging
from abc import abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter
from typing_extensions import override

from repokit.repository.context import NullTransaction, TransactionManager
from repokit.repository.conventions.conventions import RepositoryConventions
from repokit.repository.conventions.foreign_key import is_navigation
from repokit.repository.conventions.model import get_properties
from repokit.repository.exceptions import NotSupportedOperationError
from repokit.repository.memory.context import InMemoryContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


@functools.cache
def entity_adapter(entity_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(entity_type)


@functools.cache
def stored_field_names(entity_type: type) -> frozenset[str]:
    """Names of the attributes written to files: mapped, and not a navigation."""
    return frozenset(
        prop.name for prop in get_properties(entity_type) if not is_navigation(prop)
    )


class FileContext(InMemoryContext):
    """In-memory context mirrored to one file per entity type.

    Args:
        path: Directory holding the files. Created if it does not exist.
        ignore_transaction_warning: Return a no-op transaction from
            ``begin_transaction()`` instead of raising ``NotSupportedOperationError``.
        ignore_sql_query_warning: Make raw SQL execution a no-op.
        conventions: Conventions used to resolve keys, tables and relations.

    Raises:
        ValueError: If ``path`` looks like a file name or the extension is invalid.
    """

    extension: str = ""
    supports_transactions = False

    def __init__(
        self,
        path: str | Path,
        *,
        ignore_transaction_warning: bool = False,
        ignore_sql_query_warning: bool = False,
        conventions: RepositoryConventions | None = None,
    ) -> None:
        if not self.extension.startswith(".") or len(self.extension) < 2:
            msg = f"Invalid file extension {self.extension!r} for {type(self).__name__}"
            raise ValueError(msg)
        directory = Path(path)
        if directory.suffix:
            msg = f"The path '{path}' must be a directory, not a file name"
            raise ValueError(msg)
        directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory.resolve()
        self.ignore_transaction_warning = ignore_transaction_warning
        self._file_mtimes: dict[type, int | None] = {}
        super().__init__(
            str(self.directory),
            ignore_sql_query_warning=ignore_sql_query_warning,
            conventions=conventions,
        )

    def get_file_path(self, entity_type: type) -> Path:
        return self.directory / f"{self.conventions.get_table_name(entity_type)}{self.extension}"

    @abstractmethod
    def _read_entities(self, entity_type: type[T], content: str) -> list[T]:
        """Parse the content of a non-empty file."""

    @abstractmethod
    def _write_entities(self, entity_type: type[T], entities: list[T]) -> str:
        """Serialize every entity of a table."""

    # ==================== Synchronization ====================

    @override
    def _get_table(self, entity_type: type) -> dict[Any, Any]:
        self._sync_from_file(entity_type)
        return super()._get_table(entity_type)

    def _sync_from_file(self, entity_type: type) -> None:
        file_path = self.get_file_path(entity_type)
        if not file_path.exists():
            # A missing file is an empty table
            self.database.replace_tables({entity_type: {}})
            self._file_mtimes[entity_type] = None
            return

        mtime = file_path.stat().st_mtime_ns
        if entity_type in self._file_mtimes and mtime == self._file_mtimes[entity_type]:
            return

        content = file_path.read_text(encoding="utf-8")
        entities = self._read_entities(entity_type, content) if content.strip() else []
        table = {self.conventions.get_primary_key(entity): entity for entity in entities}
        self.database.replace_tables({entity_type: table})
        self._file_mtimes[entity_type] = mtime
        logger.debug("Loaded %d %s from %s", len(table), entity_type.__name__, file_path)

    @override
    def _after_save(self, tables: Mapping[type, dict[Any, Any]]) -> None:
        for entity_type, table in tables.items():
            file_path = self.get_file_path(entity_type)
            file_path.write_text(
                self._write_entities(entity_type, list(table.values())), encoding="utf-8"
            )
            self._file_mtimes[entity_type] = file_path.stat().st_mtime_ns
            logger.debug("Wrote %d %s to %s", len(table), entity_type.__name__, file_path)

    # ==================== Transactions ====================

    @override
    async def begin_transaction(self) -> TransactionManager:
        if not self.ignore_transaction_warning:
            msg = (
                f"{type(self).__name__} does not support transactions. "
                "Create the context with ignore_transaction_warning=True to ignore this."
            )
            raise NotSupportedOperationError(msg)
        self.current_transaction = NullTransaction(self)
        return self.current_transaction

    @override
    async def ensure_deleted(self) -> None:
        """Drop the staged changes, the in-memory tables and every file of this context."""
        await super().ensure_deleted()
        for file_path in self.directory.glob(f"*{self.extension}"):
            file_path.unlink()
        self._file_mtimes.clear()
