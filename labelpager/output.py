"""Formatting helpers for labelpager CLI output."""

from __future__ import annotations

import sys
from typing import Iterable, Sequence

from rich.console import Console

from .records import Detection, Label

_CACHED_MARK = "✓"
_MISSING_MARK = "✗"


def _encoding_supports(text: str, encoding: str | None) -> bool:
    if not encoding:
        return False
    try:
        text.encode(encoding)
    except (LookupError, UnicodeEncodeError):
        return False
    return True


def supports_unicode_output(console: Console | None = None) -> bool:
    sample = _CACHED_MARK + _MISSING_MARK
    if console is not None and _encoding_supports(sample, console.encoding):
        return True
    return _encoding_supports(sample, sys.stdout.encoding)


def format_status_icon(cached: bool, console: Console | None = None) -> str:
    if supports_unicode_output(console):
        return f"[green]{_CACHED_MARK}[/green]" if cached else f"[red]{_MISSING_MARK}[/red]"
    return "[green]yes[/green]" if cached else "[red]no[/red]"


def format_index_ranges(indices: Iterable[int]) -> str:
    """Collapse indices into runs, e.g. ``[0, 1, 2, 7]`` becomes ``"0-2, 7"``."""

    ordered = sorted(set(indices))
    if not ordered:
        return "-"
    runs: list[tuple[int, int]] = []
    start = last = ordered[0]
    for value in ordered[1:]:
        if value == last + 1:
            last = value
            continue
        runs.append((start, last))
        start = last = value
    runs.append((start, last))
    return ", ".join(str(a) if a == b else f"{a}-{b}" for a, b in runs)


def format_class(class_id: int, class_names: Sequence[str]) -> str:
    if 0 <= class_id < len(class_names):
        return f"{class_id} ({class_names[class_id]})"
    return str(class_id)


def format_box(record: Label | Detection) -> str:
    return f"{record.cx:.3f} {record.cy:.3f} {record.w:.3f} {record.h:.3f}"
