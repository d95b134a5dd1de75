"""Write-through persistence of edited labels."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from ..errors import MalformedRecord, WriteFailure
from ..records import Label, coerce_labels, normalize_labels, serialize_labels
from ..text import Messages
from .cache_service import PrefetchCache
from .index_service import find_item_index
from .loader_service import CacheEntry
from .sidecar_service import labels_path

LOGGER = logging.getLogger("labelpager.save")


@dataclass(frozen=True, slots=True)
class SaveResult:
    success: bool
    entry: CacheEntry | None = None
    path: Path | None = None
    error: str | None = None


def write_labels(path: Path, labels: Sequence[Label]) -> float:
    """Atomically replace *path* with *labels* and return the new mtime."""

    path = Path(path)
    content = serialize_labels(labels)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(content)
        os.replace(tmp_name, path)
        tmp_name = None
        return path.stat().st_mtime
    except OSError as exc:
        raise WriteFailure(f"Unable to write labels to {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


def save_labels(
    cache: PrefetchCache,
    item: Path | str,
    labels: Iterable[Label | Mapping[str, object]],
) -> SaveResult:
    """Persist *labels* for *item* (filename or path) and patch the cached entry.

    Failures come back as an unsuccessful result; the cached entry is only
    touched after the sidecar has been replaced on disk.
    """

    index = find_item_index(cache.items, item)
    if index is None:
        return SaveResult(
            success=False, error=Messages.ERROR_ITEM_NOT_FOUND.format(item=item)
        )
    try:
        validated = normalize_labels(coerce_labels(labels))
    except MalformedRecord as exc:
        return SaveResult(success=False, error=str(exc))
    media = cache.items[index]
    target = labels_path(media.path)
    try:
        mtime = write_labels(target, validated)
    except WriteFailure as exc:
        LOGGER.warning("Save failed for %s: %s", media.path, exc)
        return SaveResult(success=False, path=target, error=str(exc))
    entry = cache.replace_labels(index, validated, mtime)
    LOGGER.info("Saved %d labels for %s", len(validated), media.filename)
    return SaveResult(success=True, entry=entry, path=target)
