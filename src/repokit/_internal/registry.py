"""Ordered registry of exception mapping strategies."""

import logging

from repokit._internal.mapper import ErrorContext, MappingStrategy
from repokit.repository.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Tries strategies in registration order until one translates the error."""

    def __init__(self, strategies: list[MappingStrategy] | None = None) -> None:
        self._strategies: list[MappingStrategy] = list(strategies or [])

    def register(self, strategy: MappingStrategy) -> None:
        self._strategies.append(strategy)

    @property
    def strategies(self) -> tuple[MappingStrategy, ...]:
        return tuple(self._strategies)

    def map(self, error: Exception, context: ErrorContext | None = None) -> DatabaseError:
        """Translate ``error`` with the first strategy able to.

        Returns:
            The translated exception. A generic ``DatabaseError`` describing the
            operation when no strategy produced one.
        """
        context = context or ErrorContext()
        for strategy in self._strategies:
            if not strategy.can_handle(error):
                continue
            try:
                mapped = strategy.map(error, context)
            except Exception:  # noqa: BLE001
                # A failing strategy must not hide the original error
                logger.debug(
                    "Strategy %s failed to map, try the next strategy.",
                    type(strategy).__name__,
                    exc_info=True,
                )
                continue
            if mapped is not None:
                return mapped
            logger.debug("Strategy %s declined %r", type(strategy).__name__, error)

        operation = f" during {context.operation}" if context.operation else ""
        return DatabaseError(
            f"Database error{operation} on {context.entity_type or 'unknown entity'}: {error}"
        )
