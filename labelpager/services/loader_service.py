"""Load one collection item into a cache entry."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from ..errors import ReadFailure
from ..records import Detection, Label, read_detections, read_labels
from .index_service import MediaItem
from .sidecar_service import detections_path, labels_path

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".gif": "image/gif",
}
DEFAULT_MIME_TYPE = "image/jpeg"

PathResolver = Callable[[Path], Path]


@dataclass(slots=True)
class CacheEntry:
    path: Path
    index: int
    payload: str
    mime_type: str
    labels: list[Label] = field(default_factory=list)
    label_mtime: float | None = None
    detections: Sequence[Detection] = ()

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.payload}"


def mime_type_for(path: Path) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def encode_payload(path: Path) -> str:
    """Read *path* and return its bytes as base64 text."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ReadFailure(f"Unable to read image {path}: {exc}") from exc
    return base64.b64encode(raw).decode("ascii")


def sidecar_mtime(path: Path) -> float | None:
    """Return the modification time of *path*, or None when it does not exist."""
    try:
        return Path(path).stat().st_mtime
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ReadFailure(f"Unable to stat sidecar {path}: {exc}") from exc


def refresh_labels(
    path: Path,
    cached_labels: Sequence[Label] | None,
    cached_mtime: float | None,
) -> tuple[list[Label], float | None]:
    """Return labels for *path*, skipping the read when the cache is current.

    The cached labels are reused when ``cached_mtime >= disk mtime``. A missing
    sidecar always yields ``([], None)``.
    """

    disk_mtime = sidecar_mtime(path)
    if disk_mtime is None:
        return [], None
    if cached_labels is not None and cached_mtime is not None and cached_mtime >= disk_mtime:
        return list(cached_labels), cached_mtime
    labels = read_labels(path)
    return labels, disk_mtime


def load_entry(
    item: MediaItem,
    *,
    labels_path_for: PathResolver = labels_path,
    detections_path_for: PathResolver = detections_path,
) -> CacheEntry:
    """Load the payload, labels, label mtime and detections of *item*."""

    payload = encode_payload(item.path)
    labels, label_mtime = refresh_labels(labels_path_for(item.path), None, None)
    detections = tuple(read_detections(detections_path_for(item.path)))
    return CacheEntry(
        path=item.path,
        index=item.index,
        payload=payload,
        mime_type=mime_type_for(item.path),
        labels=labels,
        label_mtime=label_mtime,
        detections=detections,
    )
