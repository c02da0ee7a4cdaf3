"""
Polygon geometry in full-resolution image coordinates.

- PolygonROI: vertices, area, perimeter, centroid, bounds, containment
- Conversion between OpenCV contours in a downsampled region and image
  coordinates
- Rasterisation of polygons into a region's pixel grid
"""

from __future__ import annotations
import math
from typing import Tuple
import cv2
import numpy as np


class GeometryError(ValueError):
    """Polygon is empty or degenerate."""


def contour_to_image(cnt: np.ndarray, downsample: float, x0: float, y0: float) -> np.ndarray:
    """Map an OpenCV contour in region pixels to (N, 2) image coordinates."""
    pts = np.asarray(cnt, dtype=np.float64).reshape(-1, 2).copy()
    pts[:, 0] = pts[:, 0] * downsample + x0
    pts[:, 1] = pts[:, 1] * downsample + y0
    return pts


def image_to_contour(points: np.ndarray, downsample: float, x0: float, y0: float) -> np.ndarray:
    """Map (N, 2) image coordinates to an int32 OpenCV contour in region pixels."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    px = (pts[:, 0] - x0) / downsample
    py = (pts[:, 1] - y0) / downsample
    return np.round(np.stack([px, py], axis=1)).astype(np.int32).reshape(-1, 1, 2)


def perimeter(pts: np.ndarray) -> float:
    """Closed polygon perimeter."""
    d = np.diff(np.vstack([pts, pts[:1]]), axis=0)
    return float(np.hypot(d[:, 0], d[:, 1]).sum())


def signed_area(pts: np.ndarray) -> float:
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


class PolygonROI:
    """
    Closed polygon with plane indices.

    Consecutive duplicate vertices are removed; fewer than 3 distinct
    vertices raise GeometryError.
    """

    def __init__(self, points, z: int = 0, t: int = 0, is_rectangle: bool = False) -> None:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if len(pts) > 1:
            keep = np.any(pts != np.roll(pts, 1, axis=0), axis=1)
            keep[0] = True
            pts = pts[keep]
            if len(pts) > 1 and np.all(pts[0] == pts[-1]):
                pts = pts[:-1]
        if len(np.unique(pts, axis=0)) < 3:
            raise GeometryError("Polygon needs at least 3 distinct vertices")
        self.points = pts
        self.z = int(z)
        self.t = int(t)
        self.is_rectangle = bool(is_rectangle)

    @classmethod
    def rectangle(cls, x: float, y: float, w: float, h: float, z: int = 0, t: int = 0) -> "PolygonROI":
        pts = [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]
        return cls(pts, z=z, t=t, is_rectangle=True)

    @classmethod
    def ellipse(cls, cx: float, cy: float, rx: float, ry: float, z: int = 0, t: int = 0,
                step_deg: int = 3) -> "PolygonROI":
        cnt = cv2.ellipse2Poly((int(round(cx)), int(round(cy))),
                               (int(round(rx)), int(round(ry))), 0, 0, 360, step_deg)
        return cls(cnt, z=z, t=t)

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        kind = "Rectangle" if self.is_rectangle else "Polygon"
        return f"{kind}ROI(n={len(self)}, area={self.area:.1f}, centroid={self.centroid})"

    @property
    def area(self) -> float:
        return abs(signed_area(self.points))

    @property
    def perimeter(self) -> float:
        return perimeter(self.points)

    @property
    def centroid(self) -> Tuple[float, float]:
        pts = self.points
        a = signed_area(pts)
        if abs(a) < 1e-12:
            c = pts.mean(axis=0)
            return float(c[0]), float(c[1])
        x, y = pts[:, 0], pts[:, 1]
        x1, y1 = np.roll(x, -1), np.roll(y, -1)
        cross = x * y1 - x1 * y
        cx = float(np.sum((x + x1) * cross) / (6.0 * a))
        cy = float(np.sum((y + y1) * cross) / (6.0 * a))
        return cx, cy

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """Integer bounding box (x, y, w, h) enclosing the polygon."""
        x0, y0 = np.floor(self.points.min(axis=0))
        x1, y1 = np.ceil(self.points.max(axis=0))
        return int(x0), int(y0), max(1, int(x1 - x0)), max(1, int(y1 - y0))

    @property
    def convex_area(self) -> float:
        hull = cv2.convexHull(self.points.astype(np.float32))
        return float(cv2.contourArea(hull))

    @property
    def solidity(self) -> float:
        return self.area / max(self.convex_area, 1e-12)

    @property
    def circularity(self) -> float:
        p = self.perimeter
        return (4.0 * math.pi * self.area) / (p * p + 1e-12)

    def contains_point(self, x: float, y: float) -> bool:
        if self.is_rectangle:
            x0, y0 = self.points.min(axis=0)
            x1, y1 = self.points.max(axis=0)
            return x0 <= x <= x1 and y0 <= y <= y1
        cnt = self.points.astype(np.float32).reshape(-1, 1, 2)
        return cv2.pointPolygonTest(cnt, (float(x), float(y)), False) >= 0

    def contains(self, other: "PolygonROI") -> bool:
        """True if every vertex of `other` lies inside or on this polygon."""
        return all(self.contains_point(x, y) for x, y in other.points)

    def to_contour(self, downsample: float = 1.0, x0: float = 0.0, y0: float = 0.0) -> np.ndarray:
        return image_to_contour(self.points, downsample, x0, y0)

    def mask(self, shape: Tuple[int, int], downsample: float = 1.0,
             x0: float = 0.0, y0: float = 0.0) -> np.ndarray:
        """Filled uint8 mask (255 inside) in the pixel grid of a region."""
        m = np.zeros(shape, np.uint8)
        cv2.fillPoly(m, [self.to_contour(downsample, x0, y0)], 255)
        return m

    def outline_mask(self, shape: Tuple[int, int], downsample: float = 1.0,
                     x0: float = 0.0, y0: float = 0.0, thickness: int = 2) -> np.ndarray:
        """Polygon boundary drawn with the given line width (255 on the line)."""
        m = np.zeros(shape, np.uint8)
        cv2.polylines(m, [self.to_contour(downsample, x0, y0)], True, 255, thickness=thickness)
        return m
