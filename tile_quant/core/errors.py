"""
Error taxonomy for tile analysis.

Only RegionReadError is expected to reach the caller of a unit of work;
the other conditions are handled where they occur (tile skipped, polygon
discarded, unit abandoned).
"""

from __future__ import annotations

from ..addons.geometry import GeometryError  # noqa: F401  (raised by PolygonROI)


class ConfigurationError(ValueError):
    """Invalid or degenerate processing parameters."""


class RegionReadError(OSError):
    """Pixels for a region could not be read by any available path."""


class Cancelled:
    """Result marker for a unit of work interrupted before completion."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CANCELLED"


CANCELLED = Cancelled()


def is_cancelled(cancel_cb) -> bool:
    """Poll an optional cancellation callback."""
    return bool(cancel_cb and cancel_cb())
