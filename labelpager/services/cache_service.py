"""Prefetching cache that keeps the current image and its neighbours warm.

The cache owns the cursor, the prefetch window and an index-ordered list of
entries. Every move runs a prefetch pass: the missing indices around the
cursor are loaded concurrently, inserted in order, and everything outside the
retention window is evicted. Only one pass runs at a time; a pass requested
while another is in flight is dropped, so fast paging may skip preloading
some intermediate items.
"""

from __future__ import annotations

import bisect
import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Lock, RLock
from typing import Callable, Sequence

from ..config import (
    DEFAULT_KEEP_BUFFER,
    DEFAULT_LOAD_CONCURRENCY,
    DEFAULT_NEXT_RADIUS,
    DEFAULT_PREV_RADIUS,
)
from ..errors import LabelPagerError, ReadFailure
from ..records import Detection, Label, read_detections
from ..text import Messages
from .index_service import MediaItem, find_item_index, index_collection
from .loader_service import CacheEntry, load_entry, refresh_labels
from .sidecar_service import detections_path, labels_path

LOGGER = logging.getLogger("labelpager.cache")

EntryLoader = Callable[[MediaItem], CacheEntry]


@dataclass(frozen=True, slots=True)
class Window:
    prev_radius: int = DEFAULT_PREV_RADIUS
    next_radius: int = DEFAULT_NEXT_RADIUS
    keep_buffer: int = DEFAULT_KEEP_BUFFER

    def __post_init__(self) -> None:
        for name in ("prev_radius", "next_radius", "keep_buffer"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(Messages.ERROR_WINDOW_INVALID.format(field=name, value=value))

    @property
    def retention(self) -> tuple[int, int]:
        """Distances kept behind and ahead of the cursor before eviction."""
        return (self.prev_radius + self.keep_buffer, self.next_radius + self.keep_buffer)

    @property
    def max_entries(self) -> int:
        return self.prev_radius + self.next_radius + 2 * self.keep_buffer + 1

    def targets(self, cursor: int, total: int) -> list[int]:
        """Indices a pass wants loaded: cursor first, then ahead, then behind."""
        indices = [cursor]
        indices.extend(range(cursor + 1, min(cursor + self.next_radius, total - 1) + 1))
        indices.extend(range(cursor - 1, max(cursor - self.prev_radius, 0) - 1, -1))
        return indices

    def keeps(self, cursor: int, index: int) -> bool:
        behind, ahead = self.retention
        return cursor - behind <= index <= cursor + ahead


@dataclass(frozen=True, slots=True)
class CacheStatus:
    cached_count: int
    total_count: int
    current_is_cached: bool


@dataclass(frozen=True, slots=True)
class PassReport:
    cursor: int
    requested: int
    loaded: int
    failed: int
    evicted: int


class PassOutcome(str, Enum):
    COMPLETED = "completed"
    SCHEDULED = "scheduled"
    DROPPED = "dropped"


@dataclass(slots=True)
class EntryRef:
    """What a navigation call hands back: the cached entry or a deferred one."""

    item: MediaItem
    entry: CacheEntry | None
    loader: EntryLoader = load_entry

    @property
    def is_cached(self) -> bool:
        return self.entry is not None

    @property
    def index(self) -> int:
        return self.item.index

    @property
    def path(self) -> Path:
        return self.item.path

    def resolve(self) -> CacheEntry:
        """Return the entry, loading it outside the cache when it was not cached."""
        if self.entry is not None:
            return self.entry
        return self.loader(self.item)


class PrefetchCache:
    """Ordered, bounded cache of the items around a cursor."""

    def __init__(
        self,
        window: Window | None = None,
        *,
        load_concurrency: int = DEFAULT_LOAD_CONCURRENCY,
        background: bool = False,
        loader: EntryLoader = load_entry,
    ) -> None:
        self._window = window or Window()
        self.load_concurrency = max(int(load_concurrency or 1), 1)
        self.background = background
        self._loader = loader
        self._items: tuple[MediaItem, ...] = ()
        self._cursor = -1
        self._entries: list[CacheEntry] = []
        self._pass_guard = Lock()
        self._state_lock = RLock()
        self._load_executor: ThreadPoolExecutor | None = None
        self._pass_executor: ThreadPoolExecutor | None = None
        self._closed = False
        self.last_report: PassReport | None = None

    # ------------------------------------------------------------------ setup

    def initialize(
        self,
        directory: Path | str,
        start_path: Path | str | None = None,
        window: Window | None = None,
    ) -> EntryRef:
        """Index *directory*, place the cursor on *start_path* and warm the cache.

        The first pass runs on the caller's thread even in background mode.
        """

        self._ensure_open()
        items = tuple(index_collection(directory))
        start = find_item_index(items, start_path)
        with self._pass_guard:
            with self._state_lock:
                self._items = items
                self._cursor = start if start is not None else 0
                self._entries = []
                if window is not None:
                    self._window = window
            self.last_report = self._prefetch_pass()
        return self.current_entry()

    def close(self) -> None:
        """Stop the workers and release every cached entry."""
        if self._closed:
            return
        self._closed = True
        for executor in (self._pass_executor, self._load_executor):
            if executor is not None:
                executor.shutdown(wait=True)
        self._pass_executor = None
        self._load_executor = None
        with self._state_lock:
            self._entries = []
            self._items = ()
            self._cursor = -1

    def __enter__(self) -> "PrefetchCache":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    # ------------------------------------------------------------- accessors

    @property
    def items(self) -> tuple[MediaItem, ...]:
        return self._items

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def window(self) -> Window:
        return self._window

    @property
    def is_initialized(self) -> bool:
        return bool(self._items)

    @property
    def current_item(self) -> MediaItem:
        self._ensure_ready()
        return self._items[self._cursor]

    def entries(self) -> list[CacheEntry]:
        """Snapshot of the cached entries in ascending index order."""
        with self._state_lock:
            return list(self._entries)

    def cached_indices(self) -> list[int]:
        with self._state_lock:
            return [entry.index for entry in self._entries]

    def entry_for(self, index: int) -> CacheEntry | None:
        with self._state_lock:
            pos = self._position(index)
            if pos is None:
                return None
            return self._entries[pos]

    def current_entry(self) -> EntryRef:
        item = self.current_item
        return EntryRef(item=item, entry=self.entry_for(item.index), loader=self._loader)

    def status(self) -> CacheStatus:
        with self._state_lock:
            current_cached = (
                self._cursor >= 0 and self._position(self._cursor) is not None
            )
            return CacheStatus(
                cached_count=len(self._entries),
                total_count=len(self._items),
                current_is_cached=current_cached,
            )

    def set_window(self, prev_radius: int, next_radius: int, keep_buffer: int) -> Window:
        """Replace the window; the next pass and sweep use the new radii."""
        window = Window(prev_radius, next_radius, keep_buffer)
        with self._state_lock:
            self._window = window
        return window

    # ------------------------------------------------------------ navigation

    def navigate_next(self) -> EntryRef:
        self._ensure_ready()
        return self._move(self._cursor + 1)

    def navigate_previous(self) -> EntryRef:
        self._ensure_ready()
        return self._move(self._cursor - 1)

    def goto_index(self, index: int) -> EntryRef:
        """Move to *index*; an in-range index always runs a pass, even the current one."""
        self._ensure_ready()
        return self._move(index)

    def _move(self, index: int) -> EntryRef:
        with self._state_lock:
            in_range = 0 <= index < len(self._items)
            if in_range:
                self._cursor = index
        if in_range:
            self.request_pass()
        return self.current_entry()

    # ------------------------------------------------------------ labels

    def get_current_labels(self) -> list[Label]:
        """Labels of the current item, re-read only when the sidecar is newer."""
        item = self.current_item
        entry = self.entry_for(item.index)
        path = labels_path(item.path)
        if entry is None:
            labels, _mtime = refresh_labels(path, None, None)
            return labels
        try:
            labels, mtime = refresh_labels(path, entry.labels, entry.label_mtime)
        except ReadFailure as exc:
            LOGGER.warning("Keeping cached labels for %s: %s", item.path, exc)
            return list(entry.labels)
        if mtime != entry.label_mtime:
            with self._state_lock:
                entry.labels = labels
                entry.label_mtime = mtime
        return labels

    def get_current_detections(self) -> list[Detection]:
        item = self.current_item
        entry = self.entry_for(item.index)
        if entry is not None:
            return list(entry.detections)
        return read_detections(detections_path(item.path))

    def replace_labels(
        self, index: int, labels: Sequence[Label], label_mtime: float | None
    ) -> CacheEntry | None:
        """Patch a cached entry after its sidecar was written; None when not cached."""
        with self._state_lock:
            pos = self._position(index)
            if pos is None:
                return None
            entry = self._entries[pos]
            entry.labels = list(labels)
            entry.label_mtime = label_mtime
            return entry

    # ------------------------------------------------------------ passes

    def request_pass(self, wait: bool | None = None) -> PassOutcome:
        """Run a prefetch pass unless one is already in flight.

        ``wait`` defaults to the opposite of ``background``. A dropped request
        is not queued.
        """

        self._ensure_ready()
        blocking_caller = (not self.background) if wait is None else wait
        if not self._pass_guard.acquire(blocking=False):
            LOGGER.debug("Prefetch pass already running; dropping request at %d", self._cursor)
            return PassOutcome.DROPPED
        if blocking_caller:
            try:
                self.last_report = self._prefetch_pass()
            finally:
                self._pass_guard.release()
            return PassOutcome.COMPLETED
        try:
            executor = self._ensure_pass_executor()
            future = executor.submit(self._guarded_background_pass)
        except RuntimeError:
            self._pass_guard.release()
            raise
        future.add_done_callback(_log_pass_failure)
        return PassOutcome.SCHEDULED

    def wait_for_pass(self, timeout: float | None = None) -> bool:
        """Block until no pass is in flight; False when *timeout* expires first."""
        acquired = self._pass_guard.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._pass_guard.release()
        return acquired

    def _guarded_background_pass(self) -> PassReport:
        try:
            report = self._prefetch_pass()
            self.last_report = report
            return report
        finally:
            self._pass_guard.release()

    def _prefetch_pass(self) -> PassReport:
        with self._state_lock:
            cursor = self._cursor
            window = self._window
            cached = {entry.index for entry in self._entries}
            wanted = [
                self._items[idx]
                for idx in window.targets(cursor, len(self._items))
                if idx not in cached
            ]
        loaded, failed = self._load_items(wanted)
        with self._state_lock:
            for entry in loaded:
                self._insert(entry)
            evicted = self._evict()
        report = PassReport(
            cursor=cursor,
            requested=len(wanted),
            loaded=len(loaded),
            failed=failed,
            evicted=evicted,
        )
        if report.requested or report.evicted:
            LOGGER.debug(
                "Prefetch around %d: loaded %d/%d, failed %d, evicted %d",
                cursor,
                report.loaded,
                report.requested,
                report.failed,
                report.evicted,
            )
        return report

    def _load_items(self, items: Sequence[MediaItem]) -> tuple[list[CacheEntry], int]:
        if not items:
            return [], 0
        loaded: list[CacheEntry] = []
        failed = 0
        if self.load_concurrency <= 1 or len(items) == 1:
            for item in items:
                try:
                    loaded.append(self._loader(item))
                except (LabelPagerError, OSError) as exc:
                    failed += 1
                    LOGGER.warning("Failed to preload %s: %s", item.path, exc)
            return loaded, failed
        executor = self._ensure_load_executor()
        future_map = {executor.submit(self._loader, item): item for item in items}
        for future in as_completed(future_map):
            item = future_map[future]
            try:
                loaded.append(future.result())
            except (LabelPagerError, OSError) as exc:
                failed += 1
                LOGGER.warning("Failed to preload %s: %s", item.path, exc)
        return loaded, failed

    def _insert(self, entry: CacheEntry) -> None:
        keys = [cached.index for cached in self._entries]
        pos = bisect.bisect_left(keys, entry.index)
        if pos < len(keys) and keys[pos] == entry.index:
            return
        self._entries.insert(pos, entry)

    def _evict(self) -> int:
        cursor = self._cursor
        window = self._window
        kept = [entry for entry in self._entries if window.keeps(cursor, entry.index)]
        evicted = len(self._entries) - len(kept)
        self._entries = kept
        return evicted

    def _position(self, index: int) -> int | None:
        keys = [entry.index for entry in self._entries]
        pos = bisect.bisect_left(keys, index)
        if pos < len(keys) and keys[pos] == index:
            return pos
        return None

    # ------------------------------------------------------------ helpers

    def _ensure_load_executor(self) -> ThreadPoolExecutor:
        executor = self._load_executor
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=self.load_concurrency,
                thread_name_prefix="labelpager-load",
            )
            self._load_executor = executor
        return executor

    def _ensure_pass_executor(self) -> ThreadPoolExecutor:
        executor = self._pass_executor
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="labelpager-pass",
            )
            self._pass_executor = executor
        return executor

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(Messages.ERROR_SESSION_CLOSED)

    def _ensure_ready(self) -> None:
        self._ensure_open()
        if not self._items:
            raise RuntimeError(Messages.ERROR_SESSION_NOT_INITIALIZED)


def _log_pass_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Background prefetch pass failed: %s", exc, exc_info=exc)
