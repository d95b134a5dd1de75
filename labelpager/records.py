"""Label and detection records stored in sidecar text files.

A sidecar holds one record per line and no header. Labels are
``<class_id> <cx> <cy> <w> <h>`` with normalized box center and size;
detections append a confidence column. Lines that fail the field count,
parse or range checks are dropped while the rest of the file is kept.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from .errors import MalformedRecord, ReadFailure

LOGGER = logging.getLogger("labelpager.records")

LABEL_FIELDS = 5
DETECTION_FIELDS = 6


@dataclass(frozen=True, slots=True)
class Label:
    class_id: int
    cx: float
    cy: float
    w: float
    h: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Label":
        """Build a label from a consumer payload (``classId`` or ``class_id``)."""
        raw_class = data.get("classId", data.get("class_id"))
        try:
            label = cls(
                class_id=_coerce_class_id(raw_class),
                cx=_coerce_float(data.get("cx")),
                cy=_coerce_float(data.get("cy")),
                w=_coerce_float(data.get("w")),
                h=_coerce_float(data.get("h")),
            )
        except (TypeError, ValueError) as exc:
            raise MalformedRecord(f"Invalid label payload: {dict(data)!r}") from exc
        _check_box(label.class_id, label.cx, label.cy, label.w, label.h)
        return label

    def to_dict(self) -> dict[str, object]:
        return {
            "classId": self.class_id,
            "cx": self.cx,
            "cy": self.cy,
            "w": self.w,
            "h": self.h,
        }


@dataclass(frozen=True, slots=True)
class Detection:
    class_id: int
    cx: float
    cy: float
    w: float
    h: float
    conf: float

    def to_dict(self) -> dict[str, object]:
        return {
            "classId": self.class_id,
            "cx": self.cx,
            "cy": self.cy,
            "w": self.w,
            "h": self.h,
            "conf": self.conf,
        }


def _coerce_class_id(value: object) -> int:
    if isinstance(value, bool) or value is None:
        raise TypeError("class id must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("class id must be an integer")
        return int(value)
    return int(value)  # type: ignore[arg-type]


def _coerce_float(value: object) -> float:
    if isinstance(value, bool) or value is None:
        raise TypeError("coordinate must be a number")
    return float(value)  # type: ignore[arg-type]


def _check_box(class_id: int, cx: float, cy: float, w: float, h: float) -> None:
    if class_id < 0:
        raise MalformedRecord(f"class id must be >= 0, got {class_id}")
    for name, value in (("cx", cx), ("cy", cy), ("w", w), ("h", h)):
        if not math.isfinite(value) or value < 0.0 or value > 1.0:
            raise MalformedRecord(f"{name} out of range: {value}")
    if w <= 0.0 or h <= 0.0:
        raise MalformedRecord(f"box has zero size: w={w} h={h}")


def _parse_box(fields: list[str], line: str) -> tuple[int, float, float, float, float]:
    try:
        class_id = int(fields[0])
        cx, cy, w, h = (float(token) for token in fields[1:5])
    except ValueError as exc:
        raise MalformedRecord(f"Unparseable record: {line!r}") from exc
    _check_box(class_id, cx, cy, w, h)
    return class_id, cx, cy, w, h


def parse_label_line(line: str) -> Label:
    """Parse one label line or raise :class:`MalformedRecord`."""
    fields = line.split()
    if len(fields) != LABEL_FIELDS:
        raise MalformedRecord(
            f"Expected {LABEL_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    return Label(*_parse_box(fields, line))


def parse_detection_line(line: str) -> Detection:
    """Parse one detection line or raise :class:`MalformedRecord`."""
    fields = line.split()
    if len(fields) != DETECTION_FIELDS:
        raise MalformedRecord(
            f"Expected {DETECTION_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    box = _parse_box(fields, line)
    try:
        conf = float(fields[5])
    except ValueError as exc:
        raise MalformedRecord(f"Unparseable confidence: {line!r}") from exc
    if not math.isfinite(conf):
        raise MalformedRecord(f"Confidence is not finite: {line!r}")
    return Detection(*box, conf=conf)


def format_label_line(label: Label) -> str:
    return (
        f"{label.class_id} {label.cx:.6f} {label.cy:.6f} "
        f"{label.w:.6f} {label.h:.6f}"
    )


def serialize_labels(labels: Iterable[Label]) -> str:
    return "\n".join(format_label_line(label) for label in labels)


def coerce_labels(values: Iterable[Label | Mapping[str, object]]) -> list[Label]:
    """Validate labels handed in by a consumer before they are written."""
    labels: list[Label] = []
    for value in values:
        if isinstance(value, Label):
            labels.append(Label.from_mapping(value.to_dict()))
        elif isinstance(value, Mapping):
            labels.append(Label.from_mapping(value))
        else:
            raise MalformedRecord(f"Unsupported label value: {value!r}")
    return labels


def normalize_labels(labels: Iterable[Label]) -> list[Label]:
    """Round labels to their serialized precision, re-checking the rounded boxes."""
    return [parse_label_line(format_label_line(label)) for label in labels]


def _read_lines(path: Path) -> list[str] | None:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise ReadFailure(f"Unable to read sidecar {path}: {exc}") from exc
    return [line for line in content.splitlines() if line.strip()]


def read_labels(path: Path) -> List[Label]:
    """Return the valid labels stored in *path*; a missing file yields ``[]``."""
    lines = _read_lines(path)
    if lines is None:
        return []
    labels: List[Label] = []
    for line in lines:
        try:
            labels.append(parse_label_line(line))
        except MalformedRecord as exc:
            LOGGER.debug("Dropping label line in %s: %s", path, exc)
    return labels


def read_detections(path: Path) -> List[Detection]:
    """Return the valid detections stored in *path*; a missing file yields ``[]``."""
    lines = _read_lines(path)
    if lines is None:
        return []
    detections: List[Detection] = []
    for line in lines:
        try:
            detections.append(parse_detection_line(line))
        except MalformedRecord as exc:
            LOGGER.debug("Dropping detection line in %s: %s", path, exc)
    return detections
