"""Delta synchronization between the cache and a consumer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .cache_service import PrefetchCache
from .loader_service import CacheEntry


class BatchMarker(str, Enum):
    END_OF_BATCH = "endOfBatch"


END_OF_BATCH = BatchMarker.END_OF_BATCH


@dataclass(frozen=True, slots=True)
class DeltaBatch:
    entries: tuple[CacheEntry, ...]
    retention: tuple[int, int]
    marker: BatchMarker = END_OF_BATCH

    @property
    def indices(self) -> list[int]:
        return [entry.index for entry in self.entries]

    def messages(self) -> list[dict[str, object]]:
        """Render the batch as consumer messages, terminated by ``endOfBatch``.

        Evictions are never announced; the trailing message repeats the
        retention radii so the consumer can trim its own copy.
        """

        messages: list[dict[str, object]] = [entry_message(entry) for entry in self.entries]
        behind, ahead = self.retention
        messages.append(
            {
                "command": self.marker.value,
                "count": len(self.entries),
                "retention": {"prev": behind, "next": ahead},
            }
        )
        return messages


def entry_message(entry: CacheEntry) -> dict[str, object]:
    return {
        "command": "cacheEntry",
        "index": entry.index,
        "path": str(entry.path),
        "filename": entry.filename,
        "dataUri": entry.data_uri,
        "labels": [label.to_dict() for label in entry.labels],
        "labelMtime": entry.label_mtime,
        "detections": [detection.to_dict() for detection in entry.detections],
    }


def delta_since(cache: PrefetchCache, known_indices: Iterable[int]) -> DeltaBatch:
    """Return the cached entries the consumer does not hold yet, in index order."""

    known = set(known_indices)
    entries = tuple(entry for entry in cache.entries() if entry.index not in known)
    return DeltaBatch(entries=entries, retention=cache.window.retention)


def session_handshake(cache: PrefetchCache) -> dict[str, object]:
    """Message sent once at session start so both sides share the retention window."""

    behind, ahead = cache.window.retention
    return {
        "command": "sessionStart",
        "total": len(cache.items),
        "cursor": cache.cursor,
        "retention": {"prev": behind, "next": ahead},
    }
