"""Memory store interface and the filtering rules shared by every tier."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timedelta

from emissary.memory.entry import (
    JsonValue,
    MemoryEntry,
    MemoryImportance,
    MemoryQuery,
    MemoryStats,
    MemoryType,
)


class MemoryStore(ABC):
    """A keyed record store for memory entries.

    Reads are not side-effect free: ``retrieve`` and ``query`` both count
    as an access for every entry they return. ``select`` is the pure half
    of ``query``; ``touch`` records the access afterwards.
    """

    @abstractmethod
    async def store(
        self,
        type: MemoryType,
        content: JsonValue,
        importance: MemoryImportance = MemoryImportance.MEDIUM,
        tags: list[str] | None = None,
    ) -> MemoryEntry:
        """Insert a new entry with a fresh id."""

    @abstractmethod
    async def retrieve(self, id: str) -> MemoryEntry | None:
        """Point lookup; records an access on hit."""

    @abstractmethod
    async def select(self, query: MemoryQuery) -> list[MemoryEntry]:
        """Filter, sort by last access (newest first) and limit, touching nothing."""

    @abstractmethod
    async def touch(self, entries: list[MemoryEntry]) -> None:
        """Record one access on each of ``entries`` this store holds."""

    async def query(self, query: MemoryQuery) -> list[MemoryEntry]:
        entries = await self.select(query)
        await self.touch(entries)
        return entries

    @abstractmethod
    async def delete(self, id: str) -> bool: ...

    @abstractmethod
    async def clear(self, type: MemoryType | None = None) -> int: ...

    @abstractmethod
    async def get_stats(self) -> MemoryStats: ...

    @abstractmethod
    async def prune(
        self,
        max_age: timedelta | None = None,
        min_importance: MemoryImportance = MemoryImportance.LOW,
    ) -> int:
        """Delete entries below ``min_importance`` (older than ``max_age`` if given)."""

    async def consolidate(self) -> int:
        """Tiers do not consolidate on their own; see ``MemoryManager``."""
        return 0


def matches_metadata(
    query: MemoryQuery,
    *,
    type: MemoryType,
    importance: MemoryImportance,
    tags: list[str],
    created_at: datetime,
    now: datetime,
) -> bool:
    """Apply every metadata predicate of ``query`` (everything but search_text)."""
    if query.type is not None and type != query.type:
        return False
    if query.tags and not any(tag in tags for tag in query.tags):
        return False
    if query.min_importance is not None and importance < query.min_importance:
        return False
    if query.max_age is not None and now - created_at > query.max_age:
        return False
    return True


def matches_text(query: MemoryQuery, content: JsonValue) -> bool:
    if not query.search_text:
        return True
    serialized = json.dumps(content, ensure_ascii=False, separators=(",", ":"), default=str)
    return query.search_text.lower() in serialized.lower()


def should_prune(
    *,
    importance: MemoryImportance,
    created_at: datetime,
    max_age: timedelta | None,
    min_importance: MemoryImportance,
    now: datetime,
) -> bool:
    # Without an age bound pruning is importance-only.
    if max_age is not None:
        return now - created_at > max_age and importance < min_importance
    return importance < min_importance


def apply_limit(items: list, limit: int | None) -> list:
    if limit is not None and limit > 0:
        return items[:limit]
    return items


def compute_stats(
    rows: Iterable[tuple[MemoryType, MemoryImportance, datetime, int]],
) -> MemoryStats:
    """Build stats from ``(type, importance, created_at, access_count)`` rows."""
    stats = MemoryStats()
    total_access = 0

    for type, importance, created_at, access_count in rows:
        stats.total_entries += 1
        stats.by_type[type] += 1
        stats.by_importance[importance] += 1
        total_access += access_count

        if stats.oldest_entry is None or created_at < stats.oldest_entry:
            stats.oldest_entry = created_at
        if stats.newest_entry is None or created_at > stats.newest_entry:
            stats.newest_entry = created_at

    if stats.total_entries:
        stats.average_access_count = total_access / stats.total_entries
    return stats
