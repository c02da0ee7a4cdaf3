"""
Tile texture features around parent objects.

For each parent a square tile centred on its ROI centroid is read at the
requested magnification and transformed into one or more stain channels.
Per channel the following measurements can be added:
- basic statistics: "<channel> (<diameter>) Mean|Min|Max|Range|Std.dev."
- structure-tensor coherence: "<channel> (<diameter>) coherence"
- LBP histogram: "<channel> (<diameter>) LBP 1..16"

Measurements are staged and only committed to the parent once every
channel has been processed.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional
import numpy as np

from .color import StainSet, stain_channels, transform_rgb
from .errors import CANCELLED, is_cancelled
from .params import FeatureParams
from .region import ArrayImageServer, RegionRequest, RegionStore, read_region
from .stats import compute_running_statistics
from .texture import apply_circular_mask, compute_coherence, local_binary_pattern_histogram
from ..addons.measurements import MeasurementList, PathObject
from ..addons.units import diameter_label, preferred_tile_size_px

logger = logging.getLogger(__name__)


def tile_downsample(server: ArrayImageServer, magnification: float) -> float:
    """Downsample reaching the target magnification (1 if the server has none)."""
    if not server.magnification:
        return 1.0
    return server.magnification / magnification


def tile_request(
    server: ArrayImageServer,
    parent: PathObject,
    params: FeatureParams,
) -> Optional[RegionRequest]:
    """
    Region centred on the parent's centroid, aligned to the downsample grid.

    Returns None when the tile would be smaller than one pixel at the
    downsample or lies entirely outside the image.
    """
    roi = parent.roi
    if roi is None:
        return None
    downsample = tile_downsample(server, params.magnification)
    w, h = preferred_tile_size_px(server.calibration, params.tile_size_microns, params.tile_size_px)
    if w / downsample < 1 or h / downsample < 1:
        return None

    cx, cy = roi.centroid
    x_start = int(int(cx / downsample + .5) * downsample) - w // 2
    y_start = int(int(cy / downsample + .5) * downsample) - h // 2
    width = min(server.width, x_start + w) - x_start
    height = min(server.height, y_start + h) - y_start
    if width < 1 or height < 1 or x_start + width <= 0 or y_start + height <= 0:
        return None
    return RegionRequest(server.path, downsample, x_start, y_start, width, height, roi.z, roi.t)


def add_basic_statistics(img: np.ndarray, measurements: MeasurementList, name: str) -> None:
    stats = compute_running_statistics(img)
    measurements.put(f"{name} Mean", stats.mean)
    measurements.put(f"{name} Min", stats.min)
    measurements.put(f"{name} Max", stats.max)
    measurements.put(f"{name} Range", stats.range)
    measurements.put(f"{name} Std.dev.", stats.std_dev)


def process_channel(
    img: np.ndarray,
    measurements: MeasurementList,
    name: str,
    params: FeatureParams,
) -> None:
    """Add the enabled features of one transformed channel."""
    if params.do_circular:
        apply_circular_mask(img)
    if params.include_stats:
        add_basic_statistics(img, measurements, name)
    if params.coherence:
        measurements.put(f"{name} coherence", compute_coherence(img))
    if params.lbp:
        hist = local_binary_pattern_histogram(img, params.lbp_radius)
        for k, value in enumerate(hist, start=1):
            measurements.put(f"{name} LBP {k}", value)


def measure_tile_features(
    parent: PathObject,
    server: ArrayImageServer,
    params: FeatureParams,
    stains: Optional[StainSet] = None,
    store: Optional[RegionStore] = None,
    cancel_cb: Optional[Callable[[], bool]] = None,
):
    """
    Compute tile features for one parent object.

    Returns the staged MeasurementList after committing it to the parent,
    None if the parent has no ROI or the tile is degenerate, or CANCELLED.
    Raises RegionReadError when the tile cannot be read.
    """
    request = tile_request(server, parent, params)
    if request is None:
        logger.debug("No tile for %s", parent.name or parent.kind)
        return None

    tile = read_region(server, request, store=store, cancel_cb=cancel_cb)
    if tile is CANCELLED:
        return CANCELLED

    staged = MeasurementList()
    postfix = f" ({diameter_label(server.calibration, params.tile_size_microns, params.tile_size_px)})"
    for channel_name, method in stain_channels(params.stain_choice):
        if is_cancelled(cancel_cb):
            return CANCELLED
        img = transform_rgb(tile, method, stains)
        process_channel(img, staged, channel_name + postfix, params)

    parent.measurements.update(staged)
    return staged
