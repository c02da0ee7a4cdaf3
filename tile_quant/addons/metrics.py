"""
Shape measurements for detected polygons.

Area, perimeter, circularity, solidity and min/max axis of the
minimum-area bounding rectangle, in µm when the image is calibrated and
full-resolution pixels otherwise.
"""

from __future__ import annotations
from typing import Dict
import cv2
import numpy as np

from .geometry import PolygonROI
from .units import PixelCalibration, effective_um_per_px_for_isotropic_kernels


def area_in_units(polygon: PolygonROI, cal: PixelCalibration) -> float:
    """Polygon area in µm² (calibrated) or full-resolution px²."""
    if cal.has_pixel_size_microns:
        return polygon.area * cal.pixel_width_microns * cal.pixel_height_microns
    return polygon.area


def shape_measurements(
    polygon: PolygonROI,
    contour_px: np.ndarray,
    downsample: float,
    cal: PixelCalibration,
) -> Dict[str, float]:
    """
    Shape measurements for one object.

    Args:
        polygon: object outline in full-resolution image coordinates.
        contour_px: the same outline in processed (downsampled) pixels.
        downsample: processed-to-full-resolution scale factor.
        cal: pixel calibration of the full-resolution image.
    """
    if cal.has_pixel_size_microns:
        length_scale = effective_um_per_px_for_isotropic_kernels(
            cal.pixel_width_microns, cal.pixel_height_microns)
    else:
        length_scale = 1.0

    # Square pixels assumed for the rotated rectangle
    (_, _), (rw, rh), _ = cv2.minAreaRect(np.asarray(contour_px, dtype=np.float32).reshape(-1, 1, 2))
    axis_scale = downsample * length_scale

    return {
        "Area": area_in_units(polygon, cal),
        "Perimeter": polygon.perimeter * length_scale,
        "Circularity": polygon.circularity,
        "Solidity": polygon.solidity,
        "Min axis": min(rw, rh) * axis_scale,
        "Max axis": max(rw, rh) * axis_scale,
    }
