"""Exception hierarchy raised by marzdata."""

from __future__ import annotations

__all__ = [
    "MarzdataError",
    "MalformedGeometryError",
    "ReprojectionUnavailableError",
    "InvalidBoundingBoxError",
    "StoreUnavailableError",
]


class MarzdataError(Exception):
    """Base class for all marzdata errors."""


class MalformedGeometryError(MarzdataError):
    """A source feature has missing, unparsable or out-of-range geometry."""


class ReprojectionUnavailableError(MarzdataError):
    """Projected coordinates were found but no usable transformation exists."""


class InvalidBoundingBoxError(MarzdataError, ValueError):
    """A viewport bounding box is malformed or degenerate."""


class StoreUnavailableError(MarzdataError):
    """The boundary/entity database could not be reached."""
