"""
Difference-of-Gaussians superpixels.

The ROI's bounding region is read at a fixed downsample, smoothed at two
scales, and the absolute DoG response is flooded from its regional maxima.
Each watershed basin becomes one tile object; basins whose mean intensity
falls outside [min_threshold, max_threshold] are dropped.
"""

from __future__ import annotations
import logging
import math
from typing import Callable, List, Optional
import cv2
import numpy as np
from scipy import ndimage as ndi
from skimage.segmentation import relabel_sequential, watershed

from .color import transform_rgb
from .errors import CANCELLED, ConfigurationError, GeometryError, is_cancelled
from .log_detect import dog_response, regional_maxima
from .morphology import fill_label_gaps
from .params import SuperpixelParams
from .region import ArrayImageServer, RegionRequest, RegionStore, read_region
from ..addons.geometry import PolygonROI, contour_to_image
from ..addons.measurements import PathObject
from ..addons.units import PixelCalibration

logger = logging.getLogger(__name__)

NO_ROI = "No ROI selected!"


def threshold_bounds(min_threshold: float, max_threshold: float) -> tuple[float, float, bool]:
    """
    Normalise intensity bounds.

    Non-finite bounds become -inf / +inf. Filtering is disabled when the
    bounds are equal or when neither is finite.
    """
    lo = min_threshold if math.isfinite(min_threshold) else -math.inf
    hi = max_threshold if math.isfinite(max_threshold) else math.inf
    active = lo != hi and (math.isfinite(lo) or math.isfinite(hi))
    return lo, hi, active


def label_regions(response: np.ndarray, noise_threshold: float) -> np.ndarray:
    """Watershed basins of a response image, gap-free (int32, labels >= 1)."""
    seeds = regional_maxima(response, noise_threshold)
    markers, n = ndi.label(seeds)
    if n == 0:
        return np.ones(response.shape, np.int32)
    labels = watershed(-response.astype(np.float64), markers, watershed_line=True)
    return fill_label_gaps(labels.astype(np.int32))


class DoGSuperpixelSegmenter:
    """Partition an ROI into irregular tiles using intensity and boundary information."""

    def __init__(self, params: Optional[SuperpixelParams] = None, polygon_factory=PolygonROI) -> None:
        self.params = params or SuperpixelParams()
        self.polygon_factory = polygon_factory
        self.last_result_summary: Optional[str] = None

    def sigma(self, cal: PixelCalibration) -> float:
        """DoG σ in processed pixels."""
        p = self.params
        if cal.has_pixel_size_microns:
            return p.sigma_microns / (cal.averaged_pixel_size_microns * p.downsample_factor)
        return p.sigma_pixels / p.downsample_factor

    def region_for(self, server: ArrayImageServer, roi: PolygonROI) -> RegionRequest:
        ds = self.params.downsample_factor
        _, _, w, h = roi.bounds
        if int(w / ds) < 1 or int(h / ds) < 1:
            raise ConfigurationError(f"ROI {w}x{h} px is smaller than one pixel at downsample {ds}")
        return RegionRequest.from_roi(server.path, ds, roi).clip(server.width, server.height)

    def run(
        self,
        server: ArrayImageServer,
        roi: Optional[PolygonROI],
        store: Optional[RegionStore] = None,
        cancel_cb: Optional[Callable[[], bool]] = None,
    ):
        """
        Segment one ROI.

        Returns a list of tile PathObjects, None when there is no ROI, an
        empty list when the ROI is degenerate at the downsample, or CANCELLED.
        """
        if roi is None:
            self.last_result_summary = NO_ROI
            return None
        try:
            region = self.region_for(server, roi)
        except ConfigurationError as e:
            logger.debug("Skipping ROI: %s", e)
            return []

        tile = read_region(server, region, store=store, cancel_cb=cancel_cb)
        if tile is CANCELLED:
            return CANCELLED

        img = transform_rgb(tile, self.params.channel)
        dog = dog_response(img, self.sigma(server.calibration))
        if is_cancelled(cancel_cb):
            return CANCELLED
        labels = label_regions(dog, self.params.noise_threshold)

        ds = region.downsample
        if not roi.is_rectangle:
            inside = roi.mask(labels.shape, ds, region.x, region.y) > 0
            labels[~inside] = 0
            labels[roi.outline_mask(labels.shape, ds, region.x, region.y, thickness=2) > 0] = 0
        labels, _, _ = relabel_sequential(labels)
        if is_cancelled(cancel_cb):
            return CANCELLED

        objects = self._labels_to_tiles(labels, img, region, roi)
        self.last_result_summary = f"{len(objects)} tiles created"
        logger.info(self.last_result_summary)
        return objects

    def _labels_to_tiles(
        self,
        labels: np.ndarray,
        img: np.ndarray,
        region: RegionRequest,
        roi: PolygonROI,
    ) -> List[PathObject]:
        lo, hi, active = threshold_bounds(self.params.min_threshold, self.params.max_threshold)
        objects: List[PathObject] = []
        for lab, sl in enumerate(ndi.find_objects(labels), start=1):
            if sl is None:
                continue
            local = (labels[sl] == lab).astype(np.uint8)
            contours, _ = cv2.findContours(local, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
            if not contours:
                continue
            cnt = max(contours, key=cv2.contourArea)

            if active:
                filled = np.zeros_like(local)
                cv2.drawContours(filled, [cnt], -1, 1, thickness=-1)
                values = img[sl][filled > 0]
                mean = float(np.nanmean(values)) if values.size else math.nan
                if not (lo <= mean <= hi):
                    continue

            cnt = cnt + np.array([sl[1].start, sl[0].start], dtype=cnt.dtype)
            pts = contour_to_image(cnt, region.downsample, region.x, region.y)
            try:
                polygon = self.polygon_factory(pts, z=roi.z, t=roi.t)
            except GeometryError:
                continue
            objects.append(PathObject(polygon, kind="tile"))
        return objects
