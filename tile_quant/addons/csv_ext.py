"""
CSV export utilities.

Writes one row per object: kind, name, ROI centroid and every
measurement, to a UTF-8 CSV file. Columns are the union of measurement
names in first-seen order; missing values are left empty.
"""

from __future__ import annotations
from typing import Iterable, List
import csv
import math

from .measurements import PathObject


def measurement_columns(objects: Iterable[PathObject]) -> List[str]:
    """Union of measurement names, in first-seen order."""
    seen: dict = {}
    for obj in objects:
        for name in obj.measurements:
            seen.setdefault(name, None)
    return list(seen)


def _fmt(value: float) -> str:
    return "" if value is None or math.isnan(value) else repr(float(value))


def write_measurements_csv(path: str, objects: List[PathObject]) -> None:
    """Write a CSV file with object centroids and measurements."""
    columns = measurement_columns(objects)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        # Header
        writer.writerow(["idx", "kind", "name", "centroid_x", "centroid_y", *columns])
        # Data rows
        for idx, obj in enumerate(objects, start=1):
            if obj.roi is not None:
                cx, cy = obj.roi.centroid
            else:
                cx = cy = math.nan
            ml = obj.measurements
            writer.writerow([
                idx,
                obj.kind,
                obj.name or "",
                _fmt(cx),
                _fmt(cy),
                *(_fmt(ml.get(name)) for name in columns),
            ])
