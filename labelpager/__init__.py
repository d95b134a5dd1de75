"""labelpager package initialization."""

from __future__ import annotations

from .api import ItemInfo, PagerSession, open_session
from .errors import (
    EmptyCollection,
    ItemNotFound,
    LabelPagerError,
    MalformedRecord,
    ReadFailure,
    WriteFailure,
)
from .records import Detection, Label

__all__ = [
    "__version__",
    "Detection",
    "EmptyCollection",
    "ItemInfo",
    "ItemNotFound",
    "Label",
    "LabelPagerError",
    "MalformedRecord",
    "PagerSession",
    "ReadFailure",
    "WriteFailure",
    "get_version",
    "open_session",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
