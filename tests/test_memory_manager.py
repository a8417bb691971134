"""Tests for emissary.memory.manager.MemoryManager."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from emissary.config import MemoryConfig
from emissary.errors import MemoryManagerStoppedError, MemoryStoreError
from emissary.memory import (
    FileStore,
    InMemoryStore,
    ManagerState,
    MemoryImportance,
    MemoryManager,
    MemoryQuery,
    MemoryTier,
    MemoryType,
    create_memory_manager,
    default_route,
)


class _RejectingStore(InMemoryStore):
    """Long-term tier that refuses to store some content."""

    def __init__(self, reject: set[str]) -> None:
        super().__init__(id_prefix="ltm")
        self.reject = reject

    async def store(self, type, content, importance=MemoryImportance.MEDIUM, tags=None):
        if content in self.reject:
            raise MemoryStoreError(f"disk full while writing {content}")
        return await super().store(type, content, importance, tags)


class _FlakyPruneStore(InMemoryStore):
    """Short-term tier whose first prune fails."""

    def __init__(self) -> None:
        super().__init__()
        self.prune_calls = 0

    async def prune(self, max_age=None, min_importance=MemoryImportance.LOW):
        self.prune_calls += 1
        if self.prune_calls == 1:
            raise RuntimeError("transient failure")
        return await super().prune(max_age, min_importance)


def _manager(**kwargs) -> MemoryManager:
    return MemoryManager(InMemoryStore(), InMemoryStore(id_prefix="ltm"), **kwargs)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    @pytest.mark.parametrize(
        ("type", "tier"),
        [
            (MemoryType.SHORT_TERM, MemoryTier.SHORT_TERM),
            (MemoryType.EPISODIC, MemoryTier.SHORT_TERM),
            (MemoryType.LONG_TERM, MemoryTier.LONG_TERM),
            (MemoryType.SEMANTIC, MemoryTier.LONG_TERM),
        ],
    )
    def test_default_route(self, type: MemoryType, tier: MemoryTier) -> None:
        assert default_route(type) is tier

    async def test_store_routes_by_type(self) -> None:
        manager = _manager()
        episodic = await manager.store(MemoryType.EPISODIC, "event")
        semantic = await manager.store(MemoryType.SEMANTIC, "fact")
        assert len(manager.short_term) == 1
        assert len(manager.long_term) == 1
        assert episodic.id.startswith("stm-")
        assert semantic.id.startswith("ltm-")

    async def test_custom_route(self) -> None:
        manager = _manager(route=lambda _type: MemoryTier.LONG_TERM)
        await manager.store(MemoryType.EPISODIC, "event")
        assert len(manager.short_term) == 0
        assert len(manager.long_term) == 1


# ---------------------------------------------------------------------------
# Reads across tiers
# ---------------------------------------------------------------------------


class TestFanOut:
    async def test_retrieve_checks_both_tiers(self) -> None:
        manager = _manager()
        short = await manager.store(MemoryType.SHORT_TERM, "s")
        long = await manager.store(MemoryType.LONG_TERM, "l")
        assert (await manager.retrieve(short.id)).content == "s"
        assert (await manager.retrieve(long.id)).content == "l"
        assert await manager.retrieve("nope") is None

    async def test_query_without_type_spans_tiers(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "e")
        await manager.store(MemoryType.SEMANTIC, "s")
        results = await manager.query(MemoryQuery())
        assert sorted(e.content for e in results) == ["e", "s"]

    async def test_query_with_type_hits_routed_tier(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "e")
        await manager.store(MemoryType.SEMANTIC, "s")
        await manager.store(MemoryType.LONG_TERM, "l")
        results = await manager.query(MemoryQuery(type=MemoryType.SEMANTIC))
        assert [e.content for e in results] == ["s"]

    async def test_limit_applies_to_combined_results(self) -> None:
        manager = _manager()
        short = [await manager.store(MemoryType.EPISODIC, f"e{i}") for i in range(3)]
        long = [await manager.store(MemoryType.SEMANTIC, f"s{i}") for i in range(3)]
        # Interleave access times: s2 newest, then e2, then s1, ...
        for minutes, entry in enumerate([long[2], short[2], long[1], short[1], long[0], short[0]]):
            entry.metadata.accessed_at -= timedelta(minutes=minutes + 1)

        results = await manager.query(MemoryQuery(limit=3))
        assert [e.content for e in results] == ["s2", "e2", "s1"]
        assert [e.metadata.access_count for e in results] == [1, 1, 1]
        assert [e.metadata.access_count for e in (short[0], short[1], long[0])] == [0, 0, 0]

    async def test_recent_entry_wins_across_tiers(self) -> None:
        manager = _manager()
        fresh = await manager.store(MemoryType.EPISODIC, "fresh-episodic")
        stale = await manager.store(MemoryType.SEMANTIC, "stale-semantic")
        stale.metadata.accessed_at -= timedelta(days=1)

        results = await manager.query(MemoryQuery(limit=1))

        assert [e.content for e in results] == ["fresh-episodic"]
        assert fresh.metadata.access_count == 1
        assert stale.metadata.access_count == 0

    async def test_dropped_durable_entries_stay_untouched(self, tmp_path: Path) -> None:
        manager = MemoryManager(InMemoryStore(), FileStore(tmp_path))
        await manager.store(MemoryType.SEMANTIC, "older-semantic")
        await manager.store(MemoryType.EPISODIC, "newer-episodic")

        results = await manager.query(MemoryQuery(limit=1))
        assert [e.content for e in results] == ["newer-episodic"]
        assert (await FileStore(tmp_path).get_stats()).average_access_count == 0

        await manager.query(MemoryQuery(type=MemoryType.SEMANTIC))
        assert (await FileStore(tmp_path).get_stats()).average_access_count == 1

    async def test_stats_are_combined(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "e", MemoryImportance.LOW)
        await manager.store(MemoryType.SEMANTIC, "s", MemoryImportance.HIGH)
        stats = await manager.get_stats()
        assert stats.total_entries == 2
        assert stats.by_type[MemoryType.EPISODIC] == 1
        assert stats.by_type[MemoryType.SEMANTIC] == 1
        assert stats.by_importance[MemoryImportance.LOW] == 1
        assert stats.by_importance[MemoryImportance.HIGH] == 1


# ---------------------------------------------------------------------------
# Writes across tiers
# ---------------------------------------------------------------------------


class TestRemoval:
    async def test_delete_either_tier(self) -> None:
        manager = _manager()
        short = await manager.store(MemoryType.SHORT_TERM, "s")
        long = await manager.store(MemoryType.LONG_TERM, "l")
        assert await manager.delete(short.id) is True
        assert await manager.delete(long.id) is True
        assert await manager.delete(long.id) is False

    async def test_delete_unknown_id_keeps_durable_index(self, tmp_path: Path) -> None:
        manager = MemoryManager(InMemoryStore(), FileStore(tmp_path))
        await manager.store(MemoryType.SEMANTIC, "fact")

        assert await manager.delete("index") is False
        assert (tmp_path / "index.json").exists()

        reopened = FileStore(tmp_path)
        assert [e.content for e in await reopened.query(MemoryQuery())] == ["fact"]

    async def test_clear_routes_by_type(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "e")
        await manager.store(MemoryType.SHORT_TERM, "s")
        await manager.store(MemoryType.SEMANTIC, "f")
        assert await manager.clear(MemoryType.EPISODIC) == 1
        assert len(manager.short_term) == 1
        assert await manager.clear() == 2

    async def test_prune_spans_tiers(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "e", MemoryImportance.LOW)
        await manager.store(MemoryType.SEMANTIC, "s", MemoryImportance.LOW)
        await manager.store(MemoryType.SEMANTIC, "k", MemoryImportance.HIGH)
        assert await manager.prune(None, MemoryImportance.MEDIUM) == 2
        assert await manager.prune(None, MemoryImportance.MEDIUM) == 0
        assert (await manager.get_stats()).total_entries == 1


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


class TestConsolidation:
    async def test_threshold_triggers_inside_store(self) -> None:
        manager = _manager(consolidation_threshold=5)
        for i in range(4):
            await manager.store(MemoryType.SHORT_TERM, f"m{i}", MemoryImportance.HIGH)
        assert len(manager.short_term) == 4
        assert len(manager.long_term) == 0

        await manager.store(MemoryType.SHORT_TERM, "m4", MemoryImportance.HIGH)

        stats = await manager.get_stats()
        assert stats.by_type[MemoryType.SHORT_TERM] == 0
        assert stats.by_type[MemoryType.LONG_TERM] == 5
        assert stats.total_entries == 5

    async def test_long_term_stores_do_not_trigger(self) -> None:
        manager = _manager(consolidation_threshold=1)
        await manager.store(MemoryType.SEMANTIC, "fact", MemoryImportance.CRITICAL)
        assert len(manager.long_term) == 1
        assert len(manager.short_term) == 0

    async def test_only_important_entries_move(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.SHORT_TERM, "low", MemoryImportance.LOW)
        await manager.store(MemoryType.SHORT_TERM, "high", MemoryImportance.HIGH)
        await manager.store(MemoryType.EPISODIC, "crit", MemoryImportance.CRITICAL, ["t"])

        assert await manager.consolidate() == 2

        moved = await manager.long_term.query(MemoryQuery())
        assert sorted(e.content for e in moved) == ["crit", "high"]
        assert all(e.type is MemoryType.LONG_TERM for e in moved)
        crit = next(e for e in moved if e.content == "crit")
        assert crit.importance is MemoryImportance.CRITICAL
        assert crit.tags == ["t"]
        assert [e.content for e in await manager.short_term.query(MemoryQuery())] == ["low"]

    async def test_failed_write_stays_in_short_term(self) -> None:
        manager = MemoryManager(InMemoryStore(), _RejectingStore({"b"}))
        for content in ("a", "b", "c"):
            await manager.store(MemoryType.SHORT_TERM, content, MemoryImportance.HIGH)

        assert await manager.consolidate() == 2

        left = await manager.short_term.query(MemoryQuery())
        assert [e.content for e in left] == ["b"]
        assert len(manager.long_term) == 2
        # Nothing lost: total count unchanged
        assert (await manager.get_stats()).total_entries == 3

    async def test_consolidation_into_file_store(self, tmp_path: Path) -> None:
        manager = MemoryManager(
            InMemoryStore(), FileStore(tmp_path), consolidation_threshold=2
        )
        await manager.store(MemoryType.SHORT_TERM, {"k": 1}, MemoryImportance.HIGH)
        await manager.store(MemoryType.SHORT_TERM, {"k": 2}, MemoryImportance.CRITICAL)

        reopened = FileStore(tmp_path)
        results = await reopened.query(MemoryQuery(type=MemoryType.LONG_TERM))
        assert sorted(e.content["k"] for e in results) == [1, 2]


# ---------------------------------------------------------------------------
# Auto-prune and lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_auto_prune_removes_old_unimportant(self) -> None:
        manager = _manager(prune_interval=0.01, short_term_max_age=timedelta(0))
        try:
            assert manager.auto_prune_running
            low = await manager.store(MemoryType.EPISODIC, "low", MemoryImportance.LOW)
            keep = await manager.store(MemoryType.EPISODIC, "keep", MemoryImportance.MEDIUM)
            low.metadata.created_at -= timedelta(seconds=1)
            keep.metadata.created_at -= timedelta(seconds=1)

            await asyncio.sleep(0.1)

            assert await manager.short_term.retrieve(low.id) is None
            assert await manager.short_term.retrieve(keep.id) is not None
        finally:
            await manager.cleanup()

    async def test_auto_prune_survives_failures(self) -> None:
        short = _FlakyPruneStore()
        manager = MemoryManager(short, InMemoryStore(id_prefix="ltm"), prune_interval=0.01)
        try:
            await asyncio.sleep(0.1)
            assert short.prune_calls >= 2
            assert manager.auto_prune_running
        finally:
            await manager.cleanup()

    async def test_cleanup_stops_everything(self) -> None:
        manager = _manager(prune_interval=60)
        assert manager.auto_prune_running
        await manager.cleanup()
        assert manager.state is ManagerState.STOPPED
        assert not manager.auto_prune_running

        with pytest.raises(MemoryManagerStoppedError):
            await manager.store(MemoryType.EPISODIC, "x")
        with pytest.raises(MemoryManagerStoppedError):
            await manager.query(MemoryQuery())

        # Idempotent
        await manager.cleanup()

    async def test_async_context_manager(self) -> None:
        async with _manager(prune_interval=60) as manager:
            assert manager.state is ManagerState.ACTIVE
        assert manager.state is ManagerState.STOPPED

    async def test_no_timer_without_interval(self) -> None:
        manager = _manager()
        await manager.store(MemoryType.EPISODIC, "x")
        assert not manager.auto_prune_running
        await manager.cleanup()


class TestCreateMemoryManager:
    async def test_builds_from_config(self, tmp_path: Path) -> None:
        config = MemoryConfig(
            storage_dir=str(tmp_path),
            consolidation_threshold=7,
            consolidation_importance=MemoryImportance.CRITICAL,
        )
        manager = create_memory_manager(config)
        assert isinstance(manager.short_term, InMemoryStore)
        assert isinstance(manager.long_term, FileStore)
        assert manager.long_term.storage_dir == tmp_path
        assert manager.consolidation_threshold == 7
        assert manager.consolidation_importance is MemoryImportance.CRITICAL
        await manager.cleanup()
