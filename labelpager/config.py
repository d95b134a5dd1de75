"""User configuration for labelpager, stored as JSON under ``~/.labelpager``."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".labelpager"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "labelpager_config_dir",
    default=None,
)
DEFAULT_PREV_RADIUS = 2
DEFAULT_NEXT_RADIUS = 3
DEFAULT_KEEP_BUFFER = 5
DEFAULT_LOAD_CONCURRENCY = 4
IMAGE_EXTENSIONS: tuple[str, ...] = (".bmp", ".jpeg", ".jpg", ".png", ".webp")

_TRUE_TOKENS = {"1", "true", "yes", "on"}
_FALSE_TOKENS = {"0", "false", "no", "off"}


@dataclass
class Config:
    prev_radius: int = DEFAULT_PREV_RADIUS
    next_radius: int = DEFAULT_NEXT_RADIUS
    keep_buffer: int = DEFAULT_KEEP_BUFFER
    load_concurrency: int = DEFAULT_LOAD_CONCURRENCY
    background_prefetch: bool = False


def config_path() -> Path:
    """Location of the active config file, honouring ``config_dir_context``."""
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


@contextmanager
def config_dir_context(path: Path | str | None) -> Iterator[None]:
    """Read and write the config under *path* for the duration of the block."""

    if path is None:
        yield
        return
    directory = Path(path).expanduser().resolve()
    if directory.exists() and not directory.is_dir():
        raise NotADirectoryError(f"Config path is not a directory: {directory}")
    token = _CONFIG_DIR_OVERRIDE.set(directory)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def load_config() -> Config:
    """Return the stored config; stored values that fail validation use defaults."""

    path = config_path()
    if not path.exists():
        return Config()
    raw = json.loads(path.read_text(encoding="utf-8"))
    config = Config()
    if not isinstance(raw, Mapping):
        return config
    for name, value in raw.items():
        coerce = _COERCERS.get(name)
        if coerce is None:
            continue
        try:
            setattr(config, name, coerce(value, name))
        except ValueError:
            continue
    return config


def save_config(config: Config) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = asdict(config)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def config_from_json(
    payload: str | Mapping[str, object], *, base: Config | None = None
) -> Config:
    """Validate a JSON string or mapping and merge it into *base* without saving."""

    data = _parse_payload(payload)
    unknown = sorted(set(data) - set(_COERCERS))
    if unknown:
        raise ValueError(Messages.ERROR_CONFIG_UNKNOWN_FIELDS.format(fields=", ".join(unknown)))
    updates = {name: _COERCERS[name](value, name) for name, value in data.items()}
    return replace(base or Config(), **updates)


def update_config(**changes: object) -> Config:
    """Merge validated *changes* into the stored config and persist the result."""

    config = config_from_json(changes, base=load_config())
    save_config(config)
    return config


def _parse_payload(payload: object) -> Mapping[str, object]:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID) from exc
    if not isinstance(payload, Mapping):
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    return payload


def _coerce_count(value: object, field: str) -> int:
    """Accept non-negative ints, integral floats and digit strings."""
    number: int | None = None
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.strip().isdecimal():
        number = int(value.strip())
    if number is None or number < 0:
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    return number


def _coerce_concurrency(value: object, field: str) -> int:
    return max(_coerce_count(value, field), 1)


def _coerce_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


_COERCERS: dict[str, Callable[[object, str], Any]] = {
    "prev_radius": _coerce_count,
    "next_radius": _coerce_count,
    "keep_buffer": _coerce_count,
    "load_concurrency": _coerce_concurrency,
    "background_prefetch": _coerce_bool,
}
