"""Durable memory tier — one JSON file per entry plus a shared index.

Layout of ``storage_dir``::

    index.json      {"memories": [{id, type, importance, tags,
                                   createdAt, accessedAt, accessCount}, ...]}
    <id>.json       {id, type, content, metadata}

Queries filter on the index alone and only read the entry files they
need to return (or to match ``search_text`` against).
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from emissary.errors import MemoryStoreError
from emissary.memory.base import (
    MemoryStore,
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
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"


@dataclass
class IndexRecord:
    """Metadata of one entry as kept in the index."""

    id: str
    type: MemoryType
    importance: MemoryImportance
    created_at: datetime
    accessed_at: datetime
    access_count: int = 0
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: MemoryEntry) -> IndexRecord:
        return cls(
            id=entry.id,
            type=entry.type,
            importance=entry.importance,
            created_at=entry.metadata.created_at,
            accessed_at=entry.metadata.accessed_at,
            access_count=entry.metadata.access_count,
            tags=list(entry.tags),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "importance": int(self.importance),
            "tags": self.tags,
            "createdAt": self.created_at.isoformat(),
            "accessedAt": self.accessed_at.isoformat(),
            "accessCount": self.access_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexRecord:
        return cls(
            id=data["id"],
            type=MemoryType(data["type"]),
            importance=MemoryImportance(data["importance"]),
            created_at=parse_timestamp(data["createdAt"]),
            accessed_at=parse_timestamp(data["accessedAt"]),
            access_count=int(data.get("accessCount", 0)),
            tags=list(data.get("tags") or []),
        )


@contextlib.contextmanager
def _io_errors(action: str) -> Iterator[None]:
    try:
        yield
    except OSError as e:
        raise MemoryStoreError(f"Failed to {action}: {e}") from e


class FileStore(MemoryStore):
    """Long-term memory persisted under ``storage_dir``.

    The directory and index are loaded lazily on first use. A missing or
    unreadable index means an empty store, not an error.
    """

    def __init__(
        self,
        storage_dir: str | Path,
        index_file: str | Path | None = None,
        id_prefix: str = "ltm",
    ) -> None:
        self.storage_dir = Path(storage_dir).expanduser()
        self.index_file = Path(index_file) if index_file else self.storage_dir / INDEX_FILENAME
        self._id_prefix = id_prefix
        self._next_id = 1
        self._records: dict[str, IndexRecord] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # MemoryStore API
    # ------------------------------------------------------------------

    async def store(
        self,
        type: MemoryType,
        content: JsonValue,
        importance: MemoryImportance = MemoryImportance.MEDIUM,
        tags: list[str] | None = None,
    ) -> MemoryEntry:
        async with self._lock:
            await self._initialize()

            entry_id = f"{self._id_prefix}-{self._next_id}"
            self._next_id += 1
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

            await self._write_entry(entry)
            self._records[entry_id] = IndexRecord.from_entry(entry)
            await self._save_index()

            logger.debug(
                "Stored memory %s to file (type: %s, importance: %s)",
                entry_id,
                entry.type.value,
                entry.importance.name,
            )
            return entry

    async def retrieve(self, id: str) -> MemoryEntry | None:
        async with self._lock:
            await self._initialize()

            if id not in self._records:
                return None
            entry = await self._read_entry(id)
            if entry is None:
                return None

            entry.record_access()
            self._records[id] = IndexRecord.from_entry(entry)
            await self._write_entry(entry)
            await self._save_index()

            logger.debug("Retrieved memory %s from file", id)
            return entry

    async def select(self, query: MemoryQuery) -> list[MemoryEntry]:
        async with self._lock:
            await self._initialize()

            now = utcnow()
            candidates = [
                r
                for r in self._records.values()
                if matches_metadata(
                    query,
                    type=r.type,
                    importance=r.importance,
                    tags=r.tags,
                    created_at=r.created_at,
                    now=now,
                )
            ]
            candidates.sort(key=lambda r: r.accessed_at, reverse=True)

            limit = query.limit if query.limit and query.limit > 0 else None
            entries: list[MemoryEntry] = []
            for record in candidates:
                if limit is not None and len(entries) >= limit:
                    break
                entry = await self._read_entry(record.id)
                if entry is None:
                    logger.warning("Index lists %s but its file is missing", record.id)
                    continue
                if matches_text(query, entry.content):
                    entries.append(entry)

            logger.debug("Query matched %d memories in file store", len(entries))
            return entries

    async def touch(self, entries: list[MemoryEntry]) -> None:
        async with self._lock:
            await self._initialize()

            now = utcnow()
            touched = 0
            for entry in entries:
                if entry.id not in self._records:
                    continue
                entry.record_access(now)
                self._records[entry.id] = IndexRecord.from_entry(entry)
                await self._write_entry(entry)
                touched += 1
            if touched:
                await self._save_index()

    async def delete(self, id: str) -> bool:
        async with self._lock:
            await self._initialize()

            if self._records.pop(id, None) is None:
                logger.debug("Memory %s not in file store", id)
                return False

            if not await self._remove_entry_file(id):
                logger.warning("File for memory %s was already gone", id)
            await self._save_index()
            logger.debug("Deleted memory %s from file", id)
            return True

    async def clear(self, type: MemoryType | None = None) -> int:
        async with self._lock:
            await self._initialize()

            doomed = [r.id for r in self._records.values() if type is None or r.type == type]
            for entry_id in doomed:
                if not await self._remove_entry_file(entry_id):
                    logger.warning("File for memory %s was already gone", entry_id)
                del self._records[entry_id]

            await self._save_index()
            logger.info(
                "Cleared %d memories%s from files",
                len(doomed),
                f" of type {type.value}" if type else "",
            )
            return len(doomed)

    async def get_stats(self) -> MemoryStats:
        async with self._lock:
            await self._initialize()
            return compute_stats(
                (r.type, r.importance, r.created_at, r.access_count)
                for r in self._records.values()
            )

    async def prune(
        self,
        max_age: timedelta | None = None,
        min_importance: MemoryImportance = MemoryImportance.LOW,
    ) -> int:
        async with self._lock:
            await self._initialize()

            now = utcnow()
            doomed = [
                r.id
                for r in self._records.values()
                if should_prune(
                    importance=r.importance,
                    created_at=r.created_at,
                    max_age=max_age,
                    min_importance=min_importance,
                    now=now,
                )
            ]
            for entry_id in doomed:
                await self._remove_entry_file(entry_id)
                del self._records[entry_id]

            if doomed:
                await self._save_index()
            logger.info("Pruned %d memories from files", len(doomed))
            return len(doomed)

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _valid_id(self, entry_id: str) -> bool:
        # Ids become file names directly under storage_dir
        if not entry_id or entry_id in (".", "..") or any(c in entry_id for c in "/\\\0"):
            return False
        return self.storage_dir / f"{entry_id}.json" != self.index_file

    def _entry_path(self, entry_id: str) -> Path:
        if not self._valid_id(entry_id):
            raise MemoryStoreError(f"Invalid memory id: {entry_id!r}", {"id": entry_id})
        return self.storage_dir / f"{entry_id}.json"

    async def _initialize(self) -> None:
        if self._initialized:
            return

        with _io_errors(f"create memory directory {self.storage_dir}"):
            await aiofiles.os.makedirs(self.storage_dir, exist_ok=True)

        try:
            async with aiofiles.open(self.index_file, "r", encoding="utf-8") as f:
                raw = json.loads(await f.read())
            rows = raw.get("memories", []) if isinstance(raw, dict) else raw
            self._records = {}
            for row in rows:
                record = IndexRecord.from_dict(row)
                if not self._valid_id(record.id):
                    logger.warning("Skipping index row with invalid id %r", record.id)
                    continue
                self._records[record.id] = record
        except FileNotFoundError:
            logger.debug("No existing index at %s, starting fresh", self.index_file)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable memory index %s: %s", self.index_file, e)
            self._records = {}

        for entry_id in self._records:
            _prefix, _, suffix = entry_id.rpartition("-")
            if suffix.isdigit() and int(suffix) >= self._next_id:
                self._next_id = int(suffix) + 1

        self._initialized = True

    async def _save_index(self) -> None:
        payload = {"memories": [r.to_dict() for r in self._records.values()]}
        await self._write_json(self.index_file, payload)

    async def _write_entry(self, entry: MemoryEntry) -> None:
        await self._write_json(self._entry_path(entry.id), entry.to_dict())

    async def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        # Readers only ever see complete files
        tmp = path.with_suffix(f"{path.suffix}.tmp")
        with _io_errors(f"write {path}"):
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, ensure_ascii=False, indent=2, default=str))
            await aiofiles.os.replace(tmp, path)

    async def _read_entry(self, entry_id: str) -> MemoryEntry | None:
        path = self._entry_path(entry_id)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.warning("Skipping corrupt memory file %s: %s", path, e)
            return None
        except OSError as e:
            raise MemoryStoreError(f"Failed to read {path}: {e}") from e

        try:
            return MemoryEntry.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed memory file %s: %s", path, e)
            return None

    async def _remove_entry_file(self, entry_id: str) -> bool:
        path = self._entry_path(entry_id)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise MemoryStoreError(f"Failed to delete {path}: {e}") from e
        return True
