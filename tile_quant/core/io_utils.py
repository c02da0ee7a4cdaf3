"""
Image I/O and metadata utilities.

Provides robust RGB image loading and extraction of the pixel
calibration (µm/px) from TIFF metadata.
"""

from __future__ import annotations
import logging
import re
from typing import Optional
import cv2
import numpy as np
from PIL import Image

from ..addons.units import PixelCalibration

logger = logging.getLogger(__name__)


def _to_uint8(arr: np.ndarray) -> np.ndarray:
    if arr.dtype == np.uint8:
        return arr
    return cv2.normalize(arr, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


def imread_rgb(path: str) -> np.ndarray:
    """Read an image and return it as an 8-bit (h, w, 3) RGB array."""
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        # Fallback: use Pillow if OpenCV fails
        pil = Image.open(path)
        if pil.mode not in ("L", "RGB", "I;16", "I;16B", "I;16L"):
            pil = pil.convert("RGB")
        arr = _to_uint8(np.array(pil))
        if arr.ndim == 2:
            arr = cv2.cvtColor(arr, cv2.COLOR_GRAY2RGB)
        return arr

    img = _to_uint8(img)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def dump_tiff_metadata_text(image_path: str) -> str:
    """Return TIFF metadata as concatenated text for regex parsing."""
    try:
        pil = Image.open(image_path)
    except OSError as e:
        logger.warning("Cannot open %s for metadata: %s", image_path, e)
        return ""

    out = []
    for tag, val in getattr(pil, "tag_v2", {}).items():
        if isinstance(val, bytes):
            s = val.decode(errors="ignore")
        elif isinstance(val, (list, tuple)):
            s = " ".join([v.decode(errors="ignore") if isinstance(v, bytes) else str(v) for v in val])
        else:
            s = str(val)
        out.append(f"[{tag}] {s}")

    # Include general info fields
    for k, v in (pil.info or {}).items():
        if isinstance(v, bytes):
            v = v.decode(errors="ignore")
        out.append(f"[{k}] {v}")

    return "\n".join(out)


def _positive_float(s: str) -> Optional[float]:
    try:
        v = float(s)
    except ValueError:
        return None
    return v if v > 0 else None


def parse_um_per_px_from_text(txt: str) -> Optional[float]:
    """Extract µm/px scale from metadata text."""
    if not txt:
        return None

    # OME-style physical size (already in µm)
    m = re.search(r'PhysicalSizeX\s*=\s*"?([0-9eE\.\-\+]+)', txt)
    if m:
        um = _positive_float(m.group(1))
        if um:
            return um

    # Direct PixelWidth field (in meters)
    m = re.search(r"PixelWidth\s*=\s*([0-9eE\.\-\+]+)", txt)
    if m:
        px_m = _positive_float(m.group(1))
        if px_m:
            return px_m * 1e6

    # Aperio-style microns per pixel
    m = re.search(r"MPP\s*=\s*([0-9eE\.\-\+]+)", txt)
    if m:
        um = _positive_float(m.group(1))
        if um:
            return um
    return None


def parse_magnification_from_text(txt: str) -> Optional[float]:
    """Extract the objective magnification (e.g. Aperio 'AppMag = 20')."""
    if not txt:
        return None
    m = re.search(r"AppMag\s*=\s*([0-9eE\.\-\+]+)", txt)
    return _positive_float(m.group(1)) if m else None


def calibration_from_metadata(image_path: str) -> PixelCalibration:
    """Read a TIFF file and return its (isotropic) pixel calibration."""
    um = parse_um_per_px_from_text(dump_tiff_metadata_text(image_path))
    return PixelCalibration(um, um)
