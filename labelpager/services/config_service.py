"""Logic helpers for the `labelpager config` command."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import Config, load_config, save_config, update_config


@dataclass(frozen=True, slots=True)
class ConfigUpdateResult:
    updated_fields: tuple[str, ...] = ()
    reset: bool = False

    @property
    def fields_set(self) -> bool:
        return bool(self.updated_fields)

    @property
    def changed(self) -> bool:
        return self.reset or self.fields_set


def apply_config_updates(
    *,
    prev_radius: int | None = None,
    next_radius: int | None = None,
    keep_buffer: int | None = None,
    load_concurrency: int | None = None,
    background_prefetch: bool | None = None,
    reset: bool = False,
) -> ConfigUpdateResult:
    """Apply config mutations and report which fields were updated.

    A reset is written first, so fields given alongside it land on top of the
    defaults.
    """

    if reset:
        save_config(Config())
    candidates = {
        "prev_radius": prev_radius,
        "next_radius": next_radius,
        "keep_buffer": keep_buffer,
        "load_concurrency": load_concurrency,
        "background_prefetch": background_prefetch,
    }
    changes = {name: value for name, value in candidates.items() if value is not None}
    if changes:
        update_config(**changes)
    return ConfigUpdateResult(updated_fields=tuple(changes), reset=reset)


def get_config_snapshot() -> Config:
    """Return the current configuration dataclass."""

    return load_config()
