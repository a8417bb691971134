"""Volatile memory tier — a dict in process memory."""

from __future__ import annotations

import itertools
import logging
from datetime import timedelta

from emissary.memory.base import (
    MemoryStore,
    apply_limit,
    compute_stats,
    matches_metadata,
    matches_text,
    should_prune,
)
from emissary.memory.entry import (
    JsonValue,
    MemoryEntry,
    MemoryImportance,
    MemoryMetadata,
    MemoryQuery,
    MemoryStats,
    MemoryType,
    utcnow,
)

logger = logging.getLogger(__name__)


class InMemoryStore(MemoryStore):
    """Short-term memory. Nothing survives the process."""

    def __init__(self, id_prefix: str = "stm") -> None:
        self._id_prefix = id_prefix
        self._ids = itertools.count(1)
        self._memories: dict[str, MemoryEntry] = {}

    async def store(
        self,
        type: MemoryType,
        content: JsonValue,
        importance: MemoryImportance = MemoryImportance.MEDIUM,
        tags: list[str] | None = None,
    ) -> MemoryEntry:
        entry_id = f"{self._id_prefix}-{next(self._ids)}"
        now = utcnow()
        entry = MemoryEntry(
            id=entry_id,
            type=MemoryType(type),
            content=content,
            metadata=MemoryMetadata(
                created_at=now,
                accessed_at=now,
                importance=MemoryImportance(importance),
                tags=list(tags or []),
            ),
        )
        self._memories[entry_id] = entry
        logger.debug(
            "Stored memory %s (type: %s, importance: %s)",
            entry_id,
            entry.type.value,
            entry.importance.name,
        )
        return entry

    async def retrieve(self, id: str) -> MemoryEntry | None:
        entry = self._memories.get(id)
        if entry is not None:
            entry.record_access()
            logger.debug("Retrieved memory %s", id)
        return entry

    async def select(self, query: MemoryQuery) -> list[MemoryEntry]:
        now = utcnow()
        results = [
            entry
            for entry in self._memories.values()
            if matches_metadata(
                query,
                type=entry.type,
                importance=entry.importance,
                tags=entry.tags,
                created_at=entry.metadata.created_at,
                now=now,
            )
            and matches_text(query, entry.content)
        ]

        results.sort(key=lambda e: e.metadata.accessed_at, reverse=True)
        results = apply_limit(results, query.limit)
        logger.debug("Query matched %d memories", len(results))
        return results

    async def touch(self, entries: list[MemoryEntry]) -> None:
        now = utcnow()
        for entry in entries:
            if self._memories.get(entry.id) is entry:
                entry.record_access(now)

    async def delete(self, id: str) -> bool:
        deleted = self._memories.pop(id, None) is not None
        logger.debug("Deleted memory %s: %s", id, deleted)
        return deleted

    async def clear(self, type: MemoryType | None = None) -> int:
        if type is None:
            count = len(self._memories)
            self._memories.clear()
        else:
            doomed = [i for i, e in self._memories.items() if e.type == type]
            for entry_id in doomed:
                del self._memories[entry_id]
            count = len(doomed)

        logger.info(
            "Cleared %d memories%s", count, f" of type {type.value}" if type else ""
        )
        return count

    async def get_stats(self) -> MemoryStats:
        return compute_stats(
            (e.type, e.importance, e.metadata.created_at, e.metadata.access_count)
            for e in self._memories.values()
        )

    async def prune(
        self,
        max_age: timedelta | None = None,
        min_importance: MemoryImportance = MemoryImportance.LOW,
    ) -> int:
        now = utcnow()
        doomed = [
            entry_id
            for entry_id, entry in self._memories.items()
            if should_prune(
                importance=entry.importance,
                created_at=entry.metadata.created_at,
                max_age=max_age,
                min_importance=min_importance,
                now=now,
            )
        ]
        for entry_id in doomed:
            del self._memories[entry_id]

        logger.info("Pruned %d memories", len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        return len(self._memories)
