"""Translation of store exceptions into repository exceptions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from repokit.repository.exceptions import DatabaseError


@dataclass(frozen=True)
class ErrorContext:
    """What the context was doing when the store raised.

    Attributes:
        entity_type: Name of the entity type involved, if known.
        entity_id: Text form of the primary key involved, if known.
        operation: Short name of the failing operation (``"save_changes"``, ...).
    """

    entity_type: str | None = None
    entity_id: str | None = None
    operation: str | None = None


class MappingStrategy(ABC):
    """Translates one family of store errors.

    Strategies are small and single-purpose: one handles unique key violations,
    another stale rows, and so on.
    """

    @abstractmethod
    def can_handle(self, error: Exception) -> bool:
        """Check whether ``error`` belongs to the family this strategy translates."""

    @abstractmethod
    def map(self, error: Exception, context: ErrorContext) -> DatabaseError | None:
        """Translate ``error``.

        Args:
            error: The store exception, accepted by :meth:`can_handle`.
            context: What was being done when it was raised.

        Returns:
            The repository exception, or ``None`` to let the next strategy try.
        """


class ExceptionMapper(ABC):
    """Translates any store exception into a :class:`DatabaseError`.

    Each store-backed context owns a mapper holding its own strategies.
    """

    @abstractmethod
    def map(self, error: Exception, context: ErrorContext | None = None) -> DatabaseError:
        """Translate ``error``, falling back to a generic ``DatabaseError``."""
