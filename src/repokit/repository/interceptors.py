"""Hooks run by repositories around every staged write."""

from __future__ import annotations

from typing import Any


class RepositoryInterceptor:
    """Base interceptor. Every hook is a no-op, override the ones you need.

    ``*_executing`` hooks run before the entity is staged on the context and may
    modify it. ``*_executed`` hooks run once it is staged (and saved, when the
    repository auto-commits). Raising from a hook aborts the operation.

    Hooks are plain functions: they run inline within the repository's coroutine.
    """

    def add_executing(self, entity: Any) -> None:
        pass

    def add_executed(self, entity: Any) -> None:
        pass

    def update_executing(self, entity: Any) -> None:
        pass

    def update_executed(self, entity: Any) -> None:
        pass

    def delete_executing(self, entity: Any) -> None:
        pass

    def delete_executed(self, entity: Any) -> None:
        pass
