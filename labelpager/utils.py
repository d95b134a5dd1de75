"""Filesystem and path helpers shared by the indexer and the CLI."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Sequence

_DIGITS = re.compile(r"(\d+)")


def resolve_directory(path: Path | str) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser().resolve()
    if not dir_path.exists():
        raise FileNotFoundError(f"Directory does not exist: {dir_path}")
    if not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    return dir_path


def normalize_extensions(values: Iterable[str | None] | None) -> tuple[str, ...]:
    """Lower-case, dot-prefix and deduplicate extensions (``"PNG"`` -> ``".png"``)."""

    normalized: set[str] = set()
    for raw in values or ():
        token = (raw or "").strip().lower().lstrip(".")
        if token:
            normalized.add(f".{token}")
    return tuple(sorted(normalized))


def natural_sort_key(name: str) -> tuple:
    """Key that orders digit runs numerically, so ``img2`` sorts before ``img10``.

    Ties between names that only differ in case fall back to the raw name,
    which keeps the ordering total.
    """

    parts: list[tuple[int, object]] = []
    for chunk in _DIGITS.split(name.casefold()):
        if not chunk:
            continue
        if chunk.isdecimal():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return (tuple(parts), name)


def collect_files(
    root: Path | str,
    include_hidden: bool = False,
    extensions: Sequence[str] | None = None,
) -> List[Path]:
    """Collect the files directly under *root*, naturally sorted by name.

    *extensions* are matched case-insensitively against the end of the name
    and must already be normalized.
    """

    directory = resolve_directory(root)
    suffixes = tuple(extensions or ())
    files = [
        entry
        for entry in directory.iterdir()
        if entry.is_file()
        and (include_hidden or not entry.name.startswith("."))
        and (not suffixes or entry.name.lower().endswith(suffixes))
    ]
    return sorted(files, key=lambda path: natural_sort_key(path.name))


def format_path(path: Path, base: Path | None = None) -> str:
    """Show *path* as ``./relative`` under *base*, or in full when it lies elsewhere."""
    if base is None:
        return str(path)
    try:
        return f"./{path.relative_to(base).as_posix()}"
    except ValueError:
        return str(path)


def ensure_non_negative(value: int, name: str) -> int:
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value
