"""Locate the label, detection and class-name files that belong to an image."""

from __future__ import annotations

import os
from pathlib import Path

from ..errors import ReadFailure

IMAGES_SEGMENT = "images"
LABELS_SEGMENT = "labels"
DETECTIONS_SEGMENT = "detections"
LABEL_SUFFIX = ".txt"
DETECTION_SUFFIX = ".det.txt"
CLASSES_FILENAME = "classes.txt"


def _swap_last_segment(directory: Path, old: str, new: str) -> Path | None:
    parts = list(directory.parts)
    for idx in range(len(parts) - 1, -1, -1):
        if parts[idx] == old:
            parts[idx] = new
            return Path(*parts)
    return None


def _resolve_sidecar(media_path: Path, suffix: str, segment: str) -> Path:
    media_path = Path(media_path)
    filename = f"{media_path.stem}{suffix}"
    sibling = media_path.with_name(filename)
    if sibling.is_file():
        return sibling
    swapped = _swap_last_segment(media_path.parent, IMAGES_SEGMENT, segment)
    if swapped is None:
        return sibling
    return swapped / filename


def labels_path(media_path: Path) -> Path:
    """Return the label sidecar for *media_path*.

    A sibling ``<stem>.txt`` wins. Otherwise the last directory segment named
    exactly ``images`` is replaced with ``labels``. Without such a segment the
    sibling path is returned so a save creates the file beside the image.
    """

    return _resolve_sidecar(media_path, LABEL_SUFFIX, LABELS_SEGMENT)


def detections_path(media_path: Path) -> Path:
    """Return the detection sidecar for *media_path* (``<stem>.det.txt``)."""

    return _resolve_sidecar(media_path, DETECTION_SUFFIX, DETECTIONS_SEGMENT)


def predict_labels_dir(directory: Path) -> Path:
    """Guess the labels directory for a whole image directory.

    A directory that already holds ``.txt`` files keeps its own labels.
    """

    directory = Path(directory)
    if directory.is_dir() and any(
        entry.is_file() and entry.suffix.lower() == LABEL_SUFFIX
        for entry in directory.iterdir()
    ):
        return directory
    parts = [
        LABELS_SEGMENT if part == IMAGES_SEGMENT else part for part in directory.parts
    ]
    return Path(*parts)


def find_classes_file(path: Path) -> Path | None:
    """Search the dataset root above the first ``images`` segment for classes.txt."""

    resolved = Path(path).expanduser().resolve()
    parts = resolved.parts
    if IMAGES_SEGMENT not in parts:
        return None
    root = Path(*parts[: parts.index(IMAGES_SEGMENT)])
    if not root.is_dir():
        return None
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        if CLASSES_FILENAME in filenames:
            return Path(dirpath) / CLASSES_FILENAME
    return None


def load_class_names(classes_file: Path) -> list[str]:
    try:
        content = Path(classes_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ReadFailure(f"Unable to read class names from {classes_file}: {exc}") from exc
    return [line.strip() for line in content.splitlines() if line.strip()]
