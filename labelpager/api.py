"""Public Python API for labelpager."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .config import Config, config_dir_context, load_config
from .errors import ReadFailure
from .records import Detection, Label
from .services.cache_service import (
    CacheStatus,
    EntryLoader,
    EntryRef,
    PrefetchCache,
    Window,
)
from .services.loader_service import load_entry
from .services.save_service import SaveResult, save_labels
from .services.sidecar_service import find_classes_file, load_class_names
from .services.sync_service import DeltaBatch, delta_since, session_handshake

LOGGER = logging.getLogger("labelpager.api")


@dataclass(frozen=True, slots=True)
class ItemInfo:
    path: Path
    index: int
    total: int
    filename: str


class PagerSession:
    """One paging session over an image directory.

    All cache state lives on the instance; ``close()`` (or leaving a ``with``
    block) releases it. Window radii default to the stored user config.
    """

    def __init__(
        self,
        *,
        config: Config | None = None,
        config_dir: Path | str | None = None,
        loader: EntryLoader = load_entry,
    ) -> None:
        if config is None:
            with config_dir_context(config_dir):
                config = load_config()
        self.config = config
        self._cache = PrefetchCache(
            Window(config.prev_radius, config.next_radius, config.keep_buffer),
            load_concurrency=config.load_concurrency,
            background=config.background_prefetch,
            loader=loader,
        )
        self._class_names: list[str] = []

    def __enter__(self) -> "PagerSession":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    @property
    def cache(self) -> PrefetchCache:
        return self._cache

    @property
    def class_names(self) -> list[str]:
        return list(self._class_names)

    def initialize(
        self,
        directory: Path | str,
        start_item_path: Path | str | None = None,
        prev_radius: int | None = None,
        next_radius: int | None = None,
        keep_buffer: int | None = None,
    ) -> EntryRef:
        """Index *directory* and warm the cache around *start_item_path*."""

        current = self._cache.window
        window = Window(
            current.prev_radius if prev_radius is None else prev_radius,
            current.next_radius if next_radius is None else next_radius,
            current.keep_buffer if keep_buffer is None else keep_buffer,
        )
        ref = self._cache.initialize(directory, start_item_path, window)
        self._class_names = _discover_class_names(Path(directory))
        return ref

    def close(self) -> None:
        self._cache.close()
        self._class_names = []

    def navigate_next(self) -> EntryRef:
        return self._cache.navigate_next()

    def navigate_previous(self) -> EntryRef:
        return self._cache.navigate_previous()

    def goto_index(self, index: int) -> EntryRef:
        return self._cache.goto_index(index)

    def get_current_entry(self) -> EntryRef:
        return self._cache.current_entry()

    def get_current_labels(self) -> list[Label]:
        return self._cache.get_current_labels()

    def get_current_detections(self) -> list[Detection]:
        return self._cache.get_current_detections()

    def get_current_item_info(self) -> ItemInfo:
        item = self._cache.current_item
        return ItemInfo(
            path=item.path,
            index=item.index,
            total=len(self._cache.items),
            filename=item.filename,
        )

    def save_labels(
        self,
        item_filename: Path | str,
        labels: Iterable[Label | Mapping[str, object]],
    ) -> SaveResult:
        return save_labels(self._cache, item_filename, labels)

    def delta_since(self, known_indices: Iterable[int]) -> DeltaBatch:
        return delta_since(self._cache, known_indices)

    def handshake(self) -> dict[str, object]:
        return session_handshake(self._cache)

    def get_cache_status(self) -> CacheStatus:
        return self._cache.status()

    def set_window(self, prev_radius: int, next_radius: int, keep_buffer: int) -> Window:
        return self._cache.set_window(prev_radius, next_radius, keep_buffer)


def _discover_class_names(directory: Path) -> list[str]:
    classes_file = find_classes_file(directory)
    if classes_file is None:
        return []
    try:
        names = load_class_names(classes_file)
    except ReadFailure as exc:
        LOGGER.warning("Ignoring class names: %s", exc)
        return []
    if not names:
        LOGGER.warning("%s contains no class names", classes_file)
    return names


@contextmanager
def open_session(
    directory: Path | str,
    start_item_path: Path | str | None = None,
    *,
    prev_radius: int | None = None,
    next_radius: int | None = None,
    keep_buffer: int | None = None,
    config: Config | None = None,
    config_dir: Path | str | None = None,
) -> Iterator[PagerSession]:
    """Initialize a session for the duration of a ``with`` block."""

    session = PagerSession(config=config, config_dir=config_dir)
    try:
        session.initialize(
            directory,
            start_item_path,
            prev_radius=prev_radius,
            next_radius=next_radius,
            keep_buffer=keep_buffer,
        )
        yield session
    finally:
        session.close()
