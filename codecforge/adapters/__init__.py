"""Adapters — bindings to upstream build systems.

Public re-exports for convenient access.
"""

from codecforge.adapters.base import BuildAdapter, BuildContext, ConsumerContext
from codecforge.adapters.mock import MockAdapter
from codecforge.adapters.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "BuildAdapter",
    "BuildContext",
    "ConsumerContext",
    "MockAdapter",
]
