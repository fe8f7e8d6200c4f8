"""
Lease registries (coordination backends) for KohakuNet.

Re-exports the registry classes:
    from kohakunet.registry import MemoryRegistry, SqliteRegistry
"""

from kohakunet.registry.base import LeaseRegistry, cursor_in_window
from kohakunet.registry.memory import MemoryRegistry
from kohakunet.registry.sqlite import SqliteRegistry

__all__ = ["LeaseRegistry", "MemoryRegistry", "SqliteRegistry", "cursor_in_window"]
