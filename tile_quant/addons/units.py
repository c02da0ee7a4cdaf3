"""
Unit conversion utilities.

Provides functions for:
- Building pixel calibrations from isotropic or per-axis sizes
- Computing effective isotropic pixel size (geometric mean)
- Converting physical tile diameters and filter sizes to pixels
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

MICRONS = "µm"


@dataclass(frozen=True)
class PixelCalibration:
    """Pixel width and height in µm; either may be None when uncalibrated."""
    pixel_width_microns: Optional[float] = None
    pixel_height_microns: Optional[float] = None

    @property
    def has_pixel_size_microns(self) -> bool:
        pw, ph = self.pixel_width_microns, self.pixel_height_microns
        return bool(pw and ph and pw > 0 and ph > 0)

    @property
    def averaged_pixel_size_microns(self) -> float:
        if not self.has_pixel_size_microns:
            return math.nan
        return 0.5 * (self.pixel_width_microns + self.pixel_height_microns)


UNCALIBRATED = PixelCalibration()


def calibration_from_sizes(
    pixel_size: Optional[float] = None,
    pixel_width: Optional[float] = None,
    pixel_height: Optional[float] = None,
) -> Optional[PixelCalibration]:
    """
    Calibration from an isotropic pixel size, optionally overridden per axis (µm).

    Returns None when no size is given so callers can fall back to image
    metadata. Raises ValueError when an axis ends up without a positive size.
    """
    if pixel_size is None and pixel_width is None and pixel_height is None:
        return None
    pw = pixel_width if pixel_width is not None else pixel_size
    ph = pixel_height if pixel_height is not None else pixel_size
    if not (pw and ph and pw > 0 and ph > 0):
        raise ValueError(f"Pixel width and height must both be > 0 µm (got {pw!r}, {ph!r})")
    return PixelCalibration(float(pw), float(ph))


def effective_um_per_px_for_isotropic_kernels(umx: float, umy: float) -> float:
    """Return geometric mean for isotropic quantities (perimeter, axis lengths)."""
    return math.sqrt(umx * umy)


def preferred_tile_size_px(cal: PixelCalibration, tile_size_microns: float, tile_size_px: float) -> Tuple[int, int]:
    """Tile (width, height) in full-resolution pixels."""
    if cal.has_pixel_size_microns:
        w = int(tile_size_microns / cal.pixel_width_microns + 0.5)
        h = int(tile_size_microns / cal.pixel_height_microns + 0.5)
        return w, h
    w = int(tile_size_px + 0.5)
    return w, w


def diameter_label(cal: PixelCalibration, tile_size_microns: float, tile_size_px: float) -> str:
    """Human-readable tile diameter, e.g. '25.0 µm' or '200 px'."""
    if cal.has_pixel_size_microns:
        return f"{tile_size_microns:.1f} {MICRONS}"
    return f"{int(tile_size_px + 0.5)} px"


class NucleiSizes(NamedTuple):
    """Filter sizes in processed (downsampled) pixels."""
    median_radius: int
    gaussian_sigma: float
    opening_radius: int
    min_area_px: float   # processed px²
    min_area: float      # output units: µm² if calibrated, full-resolution px² otherwise


def resolve_nuclei_sizes(cal: PixelCalibration, params, downsample: float) -> NucleiSizes:
    """
    Convert configured nucleus sizes to processed-pixel units.

    Calibrated values are in µm; the processed pixel size is
    0.5 * downsample * (pixel width + pixel height). Uncalibrated values are
    full-resolution pixels and are divided by the downsample.
    """
    if cal.has_pixel_size_microns:
        pixel_size = 0.5 * downsample * (cal.pixel_width_microns + cal.pixel_height_microns)
    else:
        pixel_size = float(downsample)
    sizes = NucleiSizes(
        median_radius=int(params.median_radius / pixel_size + 0.5),
        gaussian_sigma=params.gaussian_sigma / pixel_size,
        opening_radius=int(params.opening_radius / pixel_size + 0.5),
        min_area_px=params.min_area / (pixel_size * pixel_size),
        min_area=float(params.min_area),
    )
    logger.debug("Sizes: %d, %.2f, %d, %.2f", sizes.median_radius, sizes.gaussian_sigma,
                 sizes.opening_radius, sizes.min_area_px)
    return sizes
