"""
Region requests, in-memory image servers and a shared region store.

The store is safe for concurrent use: each identical request is fetched
at most once, later callers reuse the cached (read-only) raster, and
listeners subscribed for an image path are told when a tile arrives.
"""

from __future__ import annotations
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple
import cv2
import numpy as np

from .color import as_rgb
from .errors import CANCELLED, ConfigurationError, RegionReadError, is_cancelled
from .io_utils import calibration_from_metadata, dump_tiff_metadata_text, imread_rgb, \
    parse_magnification_from_text
from ..addons.units import UNCALIBRATED, PixelCalibration

logger = logging.getLogger(__name__)

TileListener = Callable[["RegionRequest", np.ndarray], None]


@dataclass(frozen=True)
class RegionRequest:
    """Full-resolution bounding box, read at a downsample, on plane (z, t)."""
    path: str
    downsample: float
    x: int
    y: int
    width: int
    height: int
    z: int = 0
    t: int = 0

    def __post_init__(self) -> None:
        if not (self.downsample > 0):
            raise ConfigurationError(f"Downsample must be > 0 (got {self.downsample!r})")
        if self.width < 1 or self.height < 1:
            raise ConfigurationError(f"Region size must be >= 1 px (got {self.width}x{self.height})")

    @classmethod
    def from_roi(cls, path: str, downsample: float, roi) -> "RegionRequest":
        x, y, w, h = roi.bounds
        return cls(path, float(downsample), x, y, w, h, roi.z, roi.t)

    def clip(self, image_width: int, image_height: int) -> "RegionRequest":
        """Intersect with the image bounds; empty intersections are rejected."""
        x0 = max(0, self.x)
        y0 = max(0, self.y)
        x1 = min(image_width, self.x + self.width)
        y1 = min(image_height, self.y + self.height)
        return RegionRequest(self.path, self.downsample, x0, y0, x1 - x0, y1 - y0, self.z, self.t)

    @property
    def output_size(self) -> Tuple[int, int]:
        """(width, height) of the raster returned for this request."""
        return (max(1, int(round(self.width / self.downsample))),
                max(1, int(round(self.height / self.downsample))))


class ArrayImageServer:
    """
    Image server backed by an in-memory RGB array.

    `pixels` is (h, w[, c]) for a single plane or (t, z, h, w[, c]).
    """

    def __init__(
        self,
        pixels: np.ndarray,
        path: str = "memory",
        calibration: PixelCalibration = UNCALIBRATED,
        magnification: Optional[float] = None,
    ) -> None:
        pixels = np.asarray(pixels)
        if pixels.ndim in (2, 3):
            pixels = pixels[None, None]
        self._planes = pixels
        self.path = path
        self.calibration = calibration
        self.magnification = magnification

    @classmethod
    def from_file(
        cls,
        path: str,
        calibration: Optional[PixelCalibration] = None,
        magnification: Optional[float] = None,
    ) -> "ArrayImageServer":
        """Load an image file; calibration and magnification default to TIFF metadata."""
        if calibration is None:
            calibration = calibration_from_metadata(path)
        if magnification is None:
            magnification = parse_magnification_from_text(dump_tiff_metadata_text(path))
        return cls(imread_rgb(path), path=path, calibration=calibration, magnification=magnification)

    @property
    def width(self) -> int:
        return int(self._planes.shape[3])

    @property
    def height(self) -> int:
        return int(self._planes.shape[2])

    def read_region(self, request: RegionRequest) -> np.ndarray:
        """Return the requested region as an (h, w, 3) uint8 RGB array."""
        region = request.clip(self.width, self.height)
        plane = self._planes[region.t, region.z]
        crop = as_rgb(plane[region.y:region.y + region.height, region.x:region.x + region.width])
        if region.downsample == 1.0:
            return np.ascontiguousarray(crop)
        return cv2.resize(crop, region.output_size, interpolation=cv2.INTER_AREA)


class RegionStore:
    """Thread-safe region cache with at-most-one fetch per identical request."""

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self.fetch_count = 0
        self._lock = threading.Lock()
        self._cache: "OrderedDict[RegionRequest, np.ndarray]" = OrderedDict()
        self._pending: Dict[RegionRequest, Future] = {}
        self._listeners: List[Tuple[TileListener, Optional[str]]] = []

    def get_image(self, server: ArrayImageServer, request: RegionRequest) -> np.ndarray:
        with self._lock:
            tile = self._cache.get(request)
            if tile is not None:
                self._cache.move_to_end(request)
                return tile
            fut = self._pending.get(request)
            owner = fut is None
            if owner:
                fut = Future()
                self._pending[request] = fut
        if not owner:
            return fut.result()

        try:
            tile = server.read_region(request)
        except BaseException as e:
            with self._lock:
                self._pending.pop(request, None)
            fut.set_exception(e)
            raise
        tile.flags.writeable = False

        with self._lock:
            self.fetch_count += 1
            self._cache[request] = tile
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
            self._pending.pop(request, None)
        fut.set_result(tile)
        self._notify(request, tile)
        return tile

    def subscribe(self, listener: TileListener, path: Optional[str] = None) -> None:
        """Call `listener(request, tile)` for new tiles of `path` (all images if None)."""
        with self._lock:
            self._listeners.append((listener, path))

    def unsubscribe(self, listener: TileListener) -> None:
        with self._lock:
            self._listeners = [(l, p) for l, p in self._listeners if l is not listener]

    @contextmanager
    def listening(self, listener: Optional[TileListener], path: Optional[str] = None) -> Iterator[None]:
        """Subscribe for the duration of a block; always unsubscribes."""
        if listener is None:
            yield
            return
        self.subscribe(listener, path)
        try:
            yield
        finally:
            self.unsubscribe(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _notify(self, request: RegionRequest, tile: np.ndarray) -> None:
        with self._lock:
            targets = [l for l, p in self._listeners if p is None or p == request.path]
        for listener in targets:
            try:
                listener(request, tile)
            except Exception:
                logger.exception("Tile listener failed for %s", request)


def read_region(
    server: ArrayImageServer,
    request: RegionRequest,
    store: Optional[RegionStore] = None,
    cancel_cb: Optional[Callable[[], bool]] = None,
):
    """
    Read a region through the store, falling back to a direct server read.

    Returns the raster, or CANCELLED if cancellation was requested before or
    after the read. Raises RegionReadError when both paths fail.
    """
    if is_cancelled(cancel_cb):
        return CANCELLED
    img = None
    if store is not None:
        try:
            img = store.get_image(server, request)
        except Exception as e:
            logger.warning("Failed to read %s with region store: %s", request, e)
    if img is None:
        if is_cancelled(cancel_cb):
            return CANCELLED
        try:
            img = server.read_region(request)
        except Exception as e:
            raise RegionReadError(f"Cannot read region {request} from {server.path}") from e
    if is_cancelled(cancel_cb):
        return CANCELLED
    return img
