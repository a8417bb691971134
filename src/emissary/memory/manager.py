"""Memory manager — composes the short-term and long-term tiers.

The manager owns everything that spans tiers: routing writes, fanning
out queries, promoting important short-term entries to long-term
storage (consolidation), and the optional background prune of the
short-term tier.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from emissary.errors import MemoryManagerStoppedError
from emissary.memory.base import MemoryStore, apply_limit
from emissary.memory.entry import (
    JsonValue,
    MemoryEntry,
    MemoryImportance,
    MemoryQuery,
    MemoryStats,
    MemoryType,
)
from emissary.memory.file_store import FileStore
from emissary.memory.in_memory import InMemoryStore

if TYPE_CHECKING:
    from emissary.config import MemoryConfig

logger = logging.getLogger(__name__)


class MemoryTier(str, enum.Enum):
    SHORT_TERM = "short-term"
    LONG_TERM = "long-term"


RoutingStrategy = Callable[[MemoryType], MemoryTier]


def default_route(type: MemoryType) -> MemoryTier:
    """Long-term and semantic entries are durable; everything else is volatile."""
    if type in (MemoryType.LONG_TERM, MemoryType.SEMANTIC):
        return MemoryTier.LONG_TERM
    return MemoryTier.SHORT_TERM


class ManagerState(str, enum.Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


class MemoryManager(MemoryStore):
    """Two-tier memory behind the ``MemoryStore`` interface.

    Storing into the short-term tier may trigger consolidation before
    ``store`` returns, so writes are not constant time. Consolidation and
    pruning share one lock; a background prune never interleaves with a
    consolidation pass.

    Once ``cleanup`` has run the manager is stopped for good and every
    operation raises ``MemoryManagerStoppedError``.
    """

    def __init__(
        self,
        short_term: MemoryStore,
        long_term: MemoryStore,
        *,
        route: RoutingStrategy = default_route,
        consolidation_threshold: int = 100,
        consolidation_importance: MemoryImportance = MemoryImportance.HIGH,
        prune_interval: float | None = None,
        short_term_max_age: timedelta = timedelta(hours=24),
    ) -> None:
        self.short_term = short_term
        self.long_term = long_term
        self.route = route
        self.consolidation_threshold = consolidation_threshold
        self.consolidation_importance = consolidation_importance
        self.prune_interval = prune_interval
        self.short_term_max_age = short_term_max_age

        self.state = ManagerState.ACTIVE
        self._lock = asyncio.Lock()
        self._prune_task: asyncio.Task[None] | None = None

        # Without a running loop the timer starts on the first async call
        if prune_interval:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                pass
            else:
                self._start_auto_prune()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MemoryManager:
        self._ensure_active()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.cleanup()

    async def cleanup(self) -> None:
        """Stop the background prune. Safe to call more than once."""
        if self.state is ManagerState.STOPPED:
            return
        self.state = ManagerState.STOPPED

        task, self._prune_task = self._prune_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Memory manager stopped")

    @property
    def auto_prune_running(self) -> bool:
        return self._prune_task is not None and not self._prune_task.done()

    def _ensure_active(self) -> None:
        if self.state is ManagerState.STOPPED:
            raise MemoryManagerStoppedError("Memory manager has been stopped")
        if self.prune_interval and self._prune_task is None:
            self._start_auto_prune()

    def _start_auto_prune(self) -> None:
        self._prune_task = asyncio.get_running_loop().create_task(self._auto_prune_loop())
        logger.debug("Auto-prune every %ss", self.prune_interval)

    async def _auto_prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self.prune_interval)
            await self._auto_prune()

    async def _auto_prune(self) -> None:
        # Runs unattended; a failing tick must not kill the loop
        try:
            async with self._lock:
                count = await self.short_term.prune(
                    self.short_term_max_age, MemoryImportance.MEDIUM
                )
            if count > 0:
                logger.info("Auto-pruned %d short-term memories", count)
        except Exception:
            logger.error("Auto-prune failed", exc_info=True)

    # ------------------------------------------------------------------
    # MemoryStore API
    # ------------------------------------------------------------------

    def tier(self, tier: MemoryTier) -> MemoryStore:
        return self.long_term if tier is MemoryTier.LONG_TERM else self.short_term

    async def store(
        self,
        type: MemoryType,
        content: JsonValue,
        importance: MemoryImportance = MemoryImportance.MEDIUM,
        tags: list[str] | None = None,
    ) -> MemoryEntry:
        self._ensure_active()

        target = self.route(MemoryType(type))
        entry = await self.tier(target).store(type, content, importance, tags)

        if target is MemoryTier.SHORT_TERM:
            async with self._lock:
                await self._maybe_consolidate()
        return entry

    async def retrieve(self, id: str) -> MemoryEntry | None:
        self._ensure_active()
        entry = await self.short_term.retrieve(id)
        if entry is not None:
            return entry
        return await self.long_term.retrieve(id)

    async def select(self, query: MemoryQuery) -> list[MemoryEntry]:
        self._ensure_active()
        return [entry for _store, entry in await self._select_from_tiers(query)]

    async def touch(self, entries: list[MemoryEntry]) -> None:
        self._ensure_active()
        await self.short_term.touch(entries)
        await self.long_term.touch(entries)

    async def query(self, query: MemoryQuery) -> list[MemoryEntry]:
        """Query the tier(s) the type routes to; both when no type is given.

        The limit applies to the combined result, ordered by each entry's
        last access before this query. Only returned entries count an access.
        """
        self._ensure_active()
        selected = await self._select_from_tiers(query)

        for store in self._tiers_for(query):
            await store.touch([entry for owner, entry in selected if owner is store])
        return [entry for _store, entry in selected]

    async def _select_from_tiers(
        self, query: MemoryQuery
    ) -> list[tuple[MemoryStore, MemoryEntry]]:
        selected = [
            (store, entry)
            for store in self._tiers_for(query)
            for entry in await store.select(query)
        ]
        selected.sort(key=lambda pair: pair[1].metadata.accessed_at, reverse=True)
        return apply_limit(selected, query.limit)

    def _tiers_for(self, query: MemoryQuery) -> list[MemoryStore]:
        if query.type is None:
            return [self.short_term, self.long_term]
        return [self.tier(self.route(query.type))]

    async def delete(self, id: str) -> bool:
        self._ensure_active()
        deleted_short = await self.short_term.delete(id)
        deleted_long = await self.long_term.delete(id)
        return deleted_short or deleted_long

    async def clear(self, type: MemoryType | None = None) -> int:
        self._ensure_active()
        if type is None:
            return await self.short_term.clear() + await self.long_term.clear()
        return await self.tier(self.route(type)).clear(type)

    async def get_stats(self) -> MemoryStats:
        self._ensure_active()
        short_stats = await self.short_term.get_stats()
        long_stats = await self.long_term.get_stats()
        return short_stats.merge(long_stats)

    async def prune(
        self,
        max_age: timedelta | None = None,
        min_importance: MemoryImportance = MemoryImportance.LOW,
    ) -> int:
        self._ensure_active()
        async with self._lock:
            total = await self.short_term.prune(max_age, min_importance)
            total += await self.long_term.prune(max_age, min_importance)
        return total

    async def consolidate(self) -> int:
        """Move short-term entries at or above the importance floor to long-term."""
        self._ensure_active()
        async with self._lock:
            return await self._consolidate()

    # ------------------------------------------------------------------
    # Consolidation (caller holds the lock)
    # ------------------------------------------------------------------

    async def _maybe_consolidate(self) -> None:
        stats = await self.short_term.get_stats()
        if stats.total_entries >= self.consolidation_threshold:
            logger.info(
                "Short-term memory threshold reached (%d/%d), consolidating",
                stats.total_entries,
                self.consolidation_threshold,
            )
            await self._consolidate()

    async def _consolidate(self) -> int:
        logger.info("Starting memory consolidation")

        candidates = await self.short_term.select(
            MemoryQuery(min_importance=self.consolidation_importance)
        )

        consolidated = 0
        for entry in candidates:
            try:
                await self.long_term.store(
                    MemoryType.LONG_TERM,
                    entry.content,
                    entry.importance,
                    list(entry.tags),
                )
            except Exception:
                # Left in short-term for the next pass
                logger.error("Failed to consolidate memory %s", entry.id, exc_info=True)
                continue
            await self.short_term.delete(entry.id)
            consolidated += 1

        logger.info("Consolidated %d memories to long-term storage", consolidated)
        return consolidated


def create_memory_manager(
    config: MemoryConfig, storage_dir: str | Path | None = None
) -> MemoryManager:
    """Default pair: in-process short-term, file-backed long-term."""
    return MemoryManager(
        InMemoryStore(),
        FileStore(storage_dir or config.storage_dir),
        consolidation_threshold=config.consolidation_threshold,
        consolidation_importance=config.consolidation_importance,
        prune_interval=config.prune_interval,
        short_term_max_age=config.short_term_max_age,
    )
