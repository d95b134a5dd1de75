"""Command line interface for labelpager."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn, Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .api import PagerSession
from .config import load_config
from .errors import LabelPagerError
from .output import format_box, format_class, format_index_ranges, format_status_icon
from .records import Detection, Label
from .services.config_service import apply_config_updates, get_config_snapshot
from .services.index_service import index_collection
from .services.sidecar_service import labels_path, predict_labels_dir
from .text import Messages, Styles
from .utils import ensure_non_negative, format_path, resolve_directory

console = Console()

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"labelpager v{__version__}")
        raise typer.Exit()


def _parse_boolean(value: str) -> bool:
    token = value.strip().lower()
    if token in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if token in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(Messages.ERROR_BOOLEAN_INVALID.format(value=value))


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logger = logging.getLogger("labelpager")
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(console=console, show_path=False))
    logger.setLevel(logging.DEBUG)


def _check_window_option(value: int | None, name: str) -> None:
    if value is None:
        return
    try:
        ensure_non_negative(value, name)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _fail(exc: Exception) -> NoReturn:
    console.print(_styled(str(exc), Styles.ERROR))
    raise typer.Exit(code=1)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help=Messages.HELP_VERSION,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help=Messages.HELP_VERBOSE,
    ),
) -> None:
    """Global options."""
    _configure_logging(verbose)


@app.command()
def index(
    path: Path = typer.Option(
        Path.cwd(),
        "--path",
        "-p",
        help=Messages.HELP_INDEX_PATH,
    ),
    limit: int = typer.Option(0, "--limit", "-n", help=Messages.HELP_INDEX_LIMIT),
) -> None:
    """List the images of a directory in paging order."""
    try:
        items = index_collection(path)
    except LabelPagerError as exc:
        _fail(exc)
    base = resolve_directory(path)
    console.print(
        _styled(
            Messages.INFO_INDEX_SUMMARY.format(count=len(items), path=base),
            Styles.TITLE,
        )
    )
    console.print(
        _styled(
            Messages.INFO_LABELS_DIR.format(path=predict_labels_dir(base)),
            Styles.INFO,
        )
    )
    shown = items[:limit] if limit > 0 else items
    table = Table(
        title=Messages.TABLE_TITLE_INDEX,
        show_header=True,
        header_style=Styles.TABLE_HEADER,
    )
    table.add_column(Messages.TABLE_HEADER_INDEX, justify="right")
    table.add_column(Messages.TABLE_HEADER_FILE, overflow="fold")
    table.add_column(Messages.TABLE_HEADER_SIDECAR, overflow="fold")
    for item in shown:
        sidecar = labels_path(item.path)
        table.add_row(
            str(item.index),
            item.filename,
            format_path(sidecar, base.parent) if sidecar.exists() else "-",
        )
    console.print(table)


@app.command()
def status(
    path: Path = typer.Option(
        Path.cwd(),
        "--path",
        "-p",
        help=Messages.HELP_STATUS_PATH,
    ),
    start: str | None = typer.Option(
        None,
        "--start",
        "-s",
        help=Messages.HELP_STATUS_START,
    ),
    goto: int | None = typer.Option(
        None,
        "--goto",
        "-g",
        help=Messages.HELP_STATUS_GOTO,
    ),
    prev_radius: int | None = typer.Option(
        None, "--prev", help=Messages.HELP_PREV_RADIUS
    ),
    next_radius: int | None = typer.Option(
        None, "--next", help=Messages.HELP_NEXT_RADIUS
    ),
    keep_buffer: int | None = typer.Option(
        None, "--keep", help=Messages.HELP_KEEP_BUFFER
    ),
) -> None:
    """Open a paging session and report what the cache holds."""
    _check_window_option(prev_radius, "prev")
    _check_window_option(next_radius, "next")
    _check_window_option(keep_buffer, "keep")
    with PagerSession(config=load_config()) as session:
        try:
            session.initialize(
                path,
                start,
                prev_radius=prev_radius,
                next_radius=next_radius,
                keep_buffer=keep_buffer,
            )
        except LabelPagerError as exc:
            _fail(exc)
        if goto is not None:
            total = session.get_cache_status().total_count
            if not 0 <= goto < total:
                console.print(
                    _styled(
                        Messages.ERROR_INDEX_OUT_OF_RANGE.format(index=goto, last=total - 1),
                        Styles.WARNING,
                    )
                )
            session.goto_index(goto)
            session.cache.wait_for_pass()
        _print_session_status(session)


def _print_session_status(session: PagerSession) -> None:
    info = session.get_current_item_info()
    cache_status = session.get_cache_status()
    window = session.cache.window
    console.print(
        _styled(
            Messages.INFO_CURRENT_ITEM.format(
                filename=info.filename,
                position=info.index + 1,
                total=info.total,
            ),
            Styles.TITLE,
        )
    )
    console.print(
        Messages.INFO_CACHE_STATUS.format(
            cached=cache_status.cached_count,
            total=cache_status.total_count,
            icon=format_status_icon(cache_status.current_is_cached, console),
        )
    )
    console.print(
        _styled(
            Messages.INFO_WINDOW.format(
                prev=window.prev_radius,
                next=window.next_radius,
                keep=window.keep_buffer,
                max_entries=window.max_entries,
            ),
            Styles.INFO,
        )
    )
    indices = format_index_ranges(session.cache.cached_indices())
    console.print(_styled(Messages.INFO_CACHED_INDICES.format(indices=indices), Styles.INFO))


@app.command()
def labels(
    image: Path = typer.Argument(..., help=Messages.HELP_LABELS_IMAGE),
) -> None:
    """Show the labels and detections stored for one image."""
    image = image.expanduser()
    with PagerSession(config=load_config()) as session:
        try:
            session.initialize(image.parent, image, prev_radius=0, next_radius=0, keep_buffer=0)
        except LabelPagerError as exc:
            _fail(exc)
        info = session.get_current_item_info()
        if info.path.name != image.name:
            _fail(LabelPagerError(Messages.ERROR_ITEM_NOT_FOUND.format(item=image.name)))
        class_names = session.class_names
        if class_names:
            console.print(
                _styled(Messages.INFO_CLASSES_FOUND.format(count=len(class_names)), Styles.INFO)
            )
        current_labels = session.get_current_labels()
        if current_labels:
            _print_records(Messages.TABLE_TITLE_LABELS, current_labels, class_names)
        else:
            console.print(
                _styled(Messages.INFO_NO_LABELS.format(filename=info.filename), Styles.INFO)
            )
        detections = session.get_current_detections()
        if detections:
            _print_records(Messages.TABLE_TITLE_DETECTIONS, detections, class_names)
        else:
            console.print(
                _styled(Messages.INFO_NO_DETECTIONS.format(filename=info.filename), Styles.INFO)
            )


def _print_records(
    title: str,
    records: Sequence[Label | Detection],
    class_names: Sequence[str],
) -> None:
    with_conf = any(isinstance(record, Detection) for record in records)
    table = Table(title=title, show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_INDEX, justify="right")
    table.add_column(Messages.TABLE_HEADER_CLASS)
    table.add_column(Messages.TABLE_HEADER_BOX)
    if with_conf:
        table.add_column(Messages.TABLE_HEADER_CONF, justify="right")
    for idx, record in enumerate(records, start=1):
        row = [
            str(idx),
            format_class(record.class_id, class_names),
            format_box(record),
        ]
        if with_conf:
            row.append(f"{record.conf:.2f}")
        table.add_row(*row)
    console.print(table)


@app.command()
def config(
    set_prev_radius_option: int | None = typer.Option(
        None, "--set-prev-radius", help=Messages.HELP_SET_PREV_RADIUS
    ),
    set_next_radius_option: int | None = typer.Option(
        None, "--set-next-radius", help=Messages.HELP_SET_NEXT_RADIUS
    ),
    set_keep_buffer_option: int | None = typer.Option(
        None, "--set-keep-buffer", help=Messages.HELP_SET_KEEP_BUFFER
    ),
    set_load_concurrency_option: int | None = typer.Option(
        None, "--set-load-concurrency", help=Messages.HELP_SET_LOAD_CONCURRENCY
    ),
    set_background_option: str | None = typer.Option(
        None, "--set-background-prefetch", help=Messages.HELP_SET_BACKGROUND
    ),
    reset: bool = typer.Option(False, "--reset", help=Messages.HELP_RESET_CONFIG),
    show: bool = typer.Option(False, "--show", help=Messages.HELP_SHOW_CONFIG),
) -> None:
    """Manage labelpager configuration stored in ~/.labelpager/config.json."""
    _check_window_option(set_prev_radius_option, "prev_radius")
    _check_window_option(set_next_radius_option, "next_radius")
    _check_window_option(set_keep_buffer_option, "keep_buffer")
    if set_load_concurrency_option is not None and set_load_concurrency_option < 1:
        raise typer.BadParameter(
            Messages.ERROR_CONFIG_VALUE_INVALID.format(field="load_concurrency")
        )
    background: bool | None = None
    if set_background_option is not None:
        try:
            background = _parse_boolean(set_background_option)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    result = apply_config_updates(
        prev_radius=set_prev_radius_option,
        next_radius=set_next_radius_option,
        keep_buffer=set_keep_buffer_option,
        load_concurrency=set_load_concurrency_option,
        background_prefetch=background,
        reset=reset,
    )
    if result.reset:
        console.print(_styled(Messages.INFO_CONFIG_RESET, Styles.SUCCESS))
    if result.fields_set:
        console.print(_styled(Messages.INFO_CONFIG_UPDATED, Styles.SUCCESS))

    if show or not result.changed:
        cfg = get_config_snapshot()
        console.print(
            Messages.INFO_CONFIG_SUMMARY.format(
                prev=cfg.prev_radius,
                next=cfg.next_radius,
                keep=cfg.keep_buffer,
                concurrency=cfg.load_concurrency,
                background="yes" if cfg.background_prefetch else "no",
            )
        )


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    if argv is None:
        app()
    else:
        app(args=list(argv), prog_name="labelpager")


if __name__ == "__main__":  # pragma: no cover
    run(sys.argv[1:])
