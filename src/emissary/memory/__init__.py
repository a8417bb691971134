from emissary.memory.base import MemoryStore
from emissary.memory.entry import (
    MemoryEntry,
    MemoryImportance,
    MemoryMetadata,
    MemoryQuery,
    MemoryStats,
    MemoryType,
)
from emissary.memory.file_store import FileStore
from emissary.memory.in_memory import InMemoryStore
from emissary.memory.manager import (
    ManagerState,
    MemoryManager,
    MemoryTier,
    create_memory_manager,
    default_route,
)

__all__ = [
    "FileStore",
    "InMemoryStore",
    "ManagerState",
    "MemoryEntry",
    "MemoryImportance",
    "MemoryManager",
    "MemoryMetadata",
    "MemoryQuery",
    "MemoryStats",
    "MemoryStore",
    "MemoryTier",
    "MemoryType",
    "create_memory_manager",
    "default_route",
]
