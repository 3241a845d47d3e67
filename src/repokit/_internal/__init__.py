"""Internal utilities for repokit.

Exception mapping shared by the store-backed contexts.
It is not part of the public API.
"""

from repokit._internal.mapper import ExceptionMapper, MappingStrategy
from repokit._internal.registry import StrategyRegistry

__all__ = [
    "ExceptionMapper",
    "MappingStrategy",
    "StrategyRegistry",
]
