"""
Watershed nucleus detection.

Pipeline (per parent ROI):
  1) read the ROI at a resolution close to the preferred pixel size
  2) hematoxylin channel (RGB mean when no stains are set)
  3) median + Gaussian smoothing, closing by reconstruction
  4) background subtraction by opening by reconstruction
  5) LoG filter; foreground = LoG > 0
  6) intensity watershed on the LoG, keep basins brighter than the threshold
  7) optional distance-transform split of touching nuclei
  8) polygons with shape and stain intensity measurements
"""

from __future__ import annotations
import logging
from typing import Callable, List, Optional, Tuple
import cv2
import numpy as np
from scipy import ndimage as ndi

from .color import ColorTransformMethod, StainSet, transform_rgb
from .errors import CANCELLED, ConfigurationError, GeometryError, is_cancelled
from .log_detect import log_response
from .morphology import (
    closing_by_reconstruction,
    fill_small_holes,
    separated_mask,
    subtract_background,
    watershed_distance_split,
    watershed_intensity_split,
)
from .params import NucleiParams
from .region import ArrayImageServer, RegionRequest, RegionStore, read_region
from .stats import label_statistics
from ..addons.geometry import PolygonROI, contour_to_image
from ..addons.measurements import PathObject
from ..addons.metrics import area_in_units, shape_measurements
from ..addons.units import NucleiSizes, PixelCalibration, resolve_nuclei_sizes

logger = logging.getLogger(__name__)

NO_ROI = "No ROI selected!"


def nuclei_downsample(cal: PixelCalibration, preferred_microns: float) -> float:
    """Downsample reaching the preferred pixel size, never below 1."""
    if not cal.has_pixel_size_microns:
        return 1.0
    pixel_size = cal.averaged_pixel_size_microns
    return max(max(preferred_microns, pixel_size) / pixel_size, 1.0)


def nucleus_channels(
    tile: np.ndarray,
    stains: Optional[StainSet],
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Hematoxylin and optional DAB optical densities.

    Without stains the nucleus channel is the RGB mean scaled to [0, 1]
    and there is no DAB channel.
    """
    if stains is None:
        return transform_rgb(tile, ColorTransformMethod.RGB_MEAN) / 255.0, None
    hematoxylin = transform_rgb(tile, ColorTransformMethod.STAIN_1, stains)
    dab = transform_rgb(tile, ColorTransformMethod.STAIN_2, stains) if stains.is_h_dab else None
    return hematoxylin, dab


def enhance_nuclei(channel: np.ndarray, sizes: NucleiSizes) -> np.ndarray:
    """Smoothed, background-subtracted nucleus channel (float32)."""
    mat = channel.astype(np.float32)
    if sizes.median_radius > 0:
        mat = ndi.median_filter(mat, size=2 * sizes.median_radius + 1)
    mat = cv2.GaussianBlur(mat, (5, 5), 0.75)
    mat = closing_by_reconstruction(mat, 1)
    return subtract_background(mat, max(1, sizes.opening_radius))


def detect_foreground(
    channel: np.ndarray,
    log: np.ndarray,
    threshold: float,
    hole_area: float,
) -> np.ndarray:
    """
    Foreground mask of nuclei brighter than the threshold (uint8, 255 = nucleus).

    Basins of the LoG watershed are kept when the mean of the raw channel
    inside their filled contour exceeds `threshold`.
    """
    binary_log = (log > 0).astype(np.uint8) * 255
    split = separated_mask(watershed_intensity_split(binary_log, log, 1))
    contours, _ = cv2.findContours(split, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    labels = np.zeros(split.shape, np.int32)
    for label, cnt in enumerate(contours, start=1):
        cv2.drawContours(labels, [cnt], -1, label, thickness=-1)
    stats = label_statistics(channel, labels, len(contours))

    binary = np.zeros(split.shape, np.uint8)
    for cnt, s in zip(contours, stats):
        if s.mean > threshold:
            cv2.drawContours(binary, [cnt], -1, 255, thickness=-1)

    binary = cv2.dilate(binary, cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3)))
    binary = np.minimum(binary, binary_log)
    return fill_small_holes(binary, hole_area)


class NucleiWatershedSegmenter:
    """Detect nuclei inside a parent ROI using LoG and watershed splitting."""

    def __init__(self, params: Optional[NucleiParams] = None, polygon_factory=PolygonROI) -> None:
        self.params = params or NucleiParams()
        self.polygon_factory = polygon_factory
        self.last_result_summary: Optional[str] = None

    def run(
        self,
        server: ArrayImageServer,
        roi: Optional[PolygonROI],
        stains: Optional[StainSet] = None,
        store: Optional[RegionStore] = None,
        cancel_cb: Optional[Callable[[], bool]] = None,
    ):
        """
        Detect nuclei in one ROI.

        Returns a list of detection PathObjects (measurement lists closed),
        None when there is no ROI, or CANCELLED. Raises RegionReadError when
        the region cannot be read.
        """
        if roi is None:
            self.last_result_summary = NO_ROI
            return None

        cal = server.calibration
        downsample = nuclei_downsample(cal, self.params.preferred_microns)
        sizes = resolve_nuclei_sizes(cal, self.params, downsample)
        try:
            region = RegionRequest.from_roi(server.path, downsample, roi).clip(server.width, server.height)
        except ConfigurationError as e:
            logger.debug("Skipping ROI: %s", e)
            return []

        tile = read_region(server, region, store=store, cancel_cb=cancel_cb)
        if tile is CANCELLED:
            return CANCELLED

        hematoxylin, dab = nucleus_channels(tile, stains)
        enhanced = enhance_nuclei(hematoxylin, sizes)
        log = log_response(enhanced, sizes.gaussian_sigma)
        if is_cancelled(cancel_cb):
            return CANCELLED

        binary = detect_foreground(hematoxylin, log, self.params.threshold, sizes.min_area_px * 4)
        if self.params.split_shape:
            binary = watershed_distance_split(binary, sizes.opening_radius // 4)
        if is_cancelled(cancel_cb):
            return CANCELLED

        objects = self._build_objects(binary, hematoxylin, dab, region, roi, cal, sizes)
        self.last_result_summary = f"Detected {len(objects)} nuclei"
        logger.info("Found %d contours", len(objects))
        return objects

    def _build_objects(
        self,
        binary: np.ndarray,
        hematoxylin: np.ndarray,
        dab: Optional[np.ndarray],
        region: RegionRequest,
        roi: PolygonROI,
        cal: PixelCalibration,
        sizes: NucleiSizes,
    ) -> List[PathObject]:
        ds = region.downsample
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        labels = np.zeros(binary.shape, np.int32)
        objects: List[PathObject] = []

        for cnt in contours:
            # Single pixels and lines
            if len(cnt) <= 2:
                continue
            approx = cv2.approxPolyDP(cnt.astype(np.float32), 0.5, True)
            try:
                polygon = self.polygon_factory(contour_to_image(approx, ds, region.x, region.y),
                                               z=roi.z, t=roi.t)
            except GeometryError:
                continue
            if not (area_in_units(polygon, cal) >= sizes.min_area):
                continue
            if not roi.is_rectangle and not roi.contains(polygon):
                continue

            obj = PathObject(polygon, kind="detection")
            for name, value in shape_measurements(polygon, approx, ds, cal).items():
                obj.measurements.put(name, value)
            objects.append(obj)
            cv2.drawContours(labels, [cnt], -1, len(objects), thickness=-1)

        stats_h = label_statistics(hematoxylin, labels, len(objects))
        stats_d = label_statistics(dab, labels, len(objects)) if dab is not None else None
        for i, obj in enumerate(objects):
            add_intensity_measurements(obj, "Hematoxylin", stats_h[i])
            if stats_d is not None:
                add_intensity_measurements(obj, "DAB", stats_d[i])
            obj.measurements.close()
        return objects


def add_intensity_measurements(obj: PathObject, name: str, stats) -> None:
    ml = obj.measurements
    ml.put(f"{name} mean", stats.mean)
    ml.put(f"{name} std dev", stats.std_dev)
    ml.put(f"{name} min", stats.min)
    ml.put(f"{name} max", stats.max)
    ml.put(f"{name} range", stats.range)
