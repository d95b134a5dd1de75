"""Build the ordered image sequence a paging session walks through."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..config import IMAGE_EXTENSIONS
from ..errors import EmptyCollection, ItemNotFound
from ..text import Messages
from ..utils import collect_files, normalize_extensions

LOGGER = logging.getLogger("labelpager.index")


@dataclass(frozen=True, slots=True)
class MediaItem:
    path: Path
    index: int

    @property
    def filename(self) -> str:
        return self.path.name


def index_collection(
    directory: Path | str,
    *,
    extensions: Sequence[str] | None = None,
) -> list[MediaItem]:
    """Scan *directory* once and return its images in natural order.

    Only files directly inside *directory* whose extension is in the image
    set are kept. The result is never refreshed implicitly; call this again
    to rescan.
    """

    exts = normalize_extensions(extensions) or IMAGE_EXTENSIONS
    try:
        files = collect_files(directory, extensions=exts)
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise ItemNotFound(str(exc)) from exc
    if not files:
        raise EmptyCollection(Messages.ERROR_EMPTY_COLLECTION.format(path=directory))
    items = [MediaItem(path=path, index=idx) for idx, path in enumerate(files)]
    LOGGER.info("Indexed %d images under %s", len(items), directory)
    return items


def find_item_index(items: Sequence[MediaItem], target: Path | str | None) -> int | None:
    """Return the ordinal of *target* (full path or bare filename) in *items*."""

    if target is None:
        return None
    raw = str(target)
    if not raw:
        return None
    candidate = Path(raw).expanduser()
    if candidate.name == raw:
        for item in items:
            if item.filename == raw:
                return item.index
        return None
    resolved = candidate.parent.resolve() / candidate.name
    for item in items:
        if item.path == resolved:
            return item.index
    return None
