"""Memory data model — entries, queries, and statistics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

JsonValue = Any  # None | bool | int | float | str | list | dict, arbitrarily nested


class MemoryType(str, enum.Enum):
    SHORT_TERM = "short-term"
    LONG_TERM = "long-term"
    EPISODIC = "episodic"
    SEMANTIC = "semantic"


class MemoryImportance(enum.IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``. Naive means UTC."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class MemoryMetadata:
    created_at: datetime
    accessed_at: datetime
    access_count: int = 0
    importance: MemoryImportance = MemoryImportance.MEDIUM
    tags: list[str] = field(default_factory=list)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "createdAt": self.created_at.isoformat(),
            "accessedAt": self.accessed_at.isoformat(),
            "accessCount": self.access_count,
            "importance": int(self.importance),
            "tags": list(self.tags),
        }
        if self.source is not None:
            data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryMetadata:
        return cls(
            created_at=parse_timestamp(data["createdAt"]),
            accessed_at=parse_timestamp(data["accessedAt"]),
            access_count=int(data.get("accessCount", 0)),
            importance=MemoryImportance(data.get("importance", MemoryImportance.MEDIUM)),
            tags=list(data.get("tags") or []),
            source=data.get("source"),
        )


@dataclass
class MemoryEntry:
    """A single piece of stored information.

    ``content`` is arbitrary JSON. ``accessed_at`` never moves backwards
    and never precedes ``created_at``; ``access_count`` only grows.
    """

    id: str
    type: MemoryType
    content: JsonValue
    metadata: MemoryMetadata

    @property
    def importance(self) -> MemoryImportance:
        return self.metadata.importance

    @property
    def tags(self) -> list[str]:
        return self.metadata.tags

    def record_access(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        self.metadata.accessed_at = max(now, self.metadata.accessed_at)
        self.metadata.access_count += 1

    def is_important(self) -> bool:
        return self.metadata.importance >= MemoryImportance.HIGH

    def is_stale(self, max_age: timedelta) -> bool:
        """True if the entry has not been accessed within ``max_age``."""
        return utcnow() - self.metadata.accessed_at > max_age

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.metadata.created_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryEntry:
        return cls(
            id=data["id"],
            type=MemoryType(data["type"]),
            content=data.get("content"),
            metadata=MemoryMetadata.from_dict(data["metadata"]),
        )


@dataclass
class MemoryQuery:
    """Filter for ``MemoryStore.query``. Every supplied predicate must hold."""

    type: MemoryType | None = None
    tags: list[str] | None = None  # entry matches if it has any of these
    min_importance: MemoryImportance | None = None
    max_age: timedelta | None = None
    search_text: str | None = None  # case-insensitive, over serialized content
    limit: int | None = None


def _empty_by_type() -> dict[MemoryType, int]:
    return {t: 0 for t in MemoryType}


def _empty_by_importance() -> dict[MemoryImportance, int]:
    return {i: 0 for i in MemoryImportance}


@dataclass
class MemoryStats:
    total_entries: int = 0
    by_type: dict[MemoryType, int] = field(default_factory=_empty_by_type)
    by_importance: dict[MemoryImportance, int] = field(default_factory=_empty_by_importance)
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    average_access_count: float = 0.0

    def merge(self, other: MemoryStats) -> MemoryStats:
        """Combine two tiers' stats; the average is weighted by entry count."""
        total = self.total_entries + other.total_entries
        average = 0.0
        if total > 0:
            average = (
                self.average_access_count * self.total_entries
                + other.average_access_count * other.total_entries
            ) / total

        oldest = [d for d in (self.oldest_entry, other.oldest_entry) if d is not None]
        newest = [d for d in (self.newest_entry, other.newest_entry) if d is not None]

        return MemoryStats(
            total_entries=total,
            by_type={t: self.by_type[t] + other.by_type[t] for t in MemoryType},
            by_importance={
                i: self.by_importance[i] + other.by_importance[i] for i in MemoryImportance
            },
            oldest_entry=min(oldest) if oldest else None,
            newest_entry=max(newest) if newest else None,
            average_access_count=average,
        )
