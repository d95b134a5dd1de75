"""Exception types raised by the labelpager engine."""

from __future__ import annotations


class LabelPagerError(Exception):
    """Base class for every labelpager failure."""


class EmptyCollection(LabelPagerError):
    """Raised when indexing a directory finds no supported images."""


class ItemNotFound(LabelPagerError):
    """Raised when an index, path or filename does not name a collection item."""


class ReadFailure(LabelPagerError):
    """Raised when an image payload or sidecar file cannot be read."""


class WriteFailure(LabelPagerError):
    """Raised when a label sidecar cannot be written."""


class MalformedRecord(LabelPagerError, ValueError):
    """Raised by the record parsers; readers drop the offending line."""
