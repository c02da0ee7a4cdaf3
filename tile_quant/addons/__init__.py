"""
Add-ons package for tile analysis.

Provides helper functions for:
- pixel calibration and unit conversion
- polygon geometry and contour conversion
- shape measurements
- measurement containers and detected objects
- CSV export
"""

# ---- Units ----
from .units import (
    PixelCalibration,
    UNCALIBRATED,
    NucleiSizes,
    calibration_from_sizes,
    effective_um_per_px_for_isotropic_kernels,
    preferred_tile_size_px,
    diameter_label,
    resolve_nuclei_sizes,
)

# ---- Geometry helpers ----
from .geometry import (
    GeometryError,
    PolygonROI,
    contour_to_image,
    image_to_contour,
)

# ---- Shape metrics ----
from .metrics import area_in_units, shape_measurements

# ---- Measurements / objects ----
from .measurements import MeasurementList, PathObject

# ---- CSV export ----
from .csv_ext import measurement_columns, write_measurements_csv


__all__ = [
    # units
    "PixelCalibration", "UNCALIBRATED", "NucleiSizes", "calibration_from_sizes",
    "effective_um_per_px_for_isotropic_kernels", "preferred_tile_size_px", "diameter_label",
    "resolve_nuclei_sizes",
    # geometry
    "GeometryError", "PolygonROI", "contour_to_image", "image_to_contour",
    # metrics
    "area_in_units", "shape_measurements",
    # measurements
    "MeasurementList", "PathObject",
    # csv
    "measurement_columns", "write_measurements_csv",
]
