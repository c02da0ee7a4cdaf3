"""
Blob-enhancing filters and peak detection.

- LoG response (negated Laplacian of a Gaussian, bright blobs positive)
- Absolute Difference-of-Gaussians response
- Local maxima via dilation comparison and h-maxima seeds
"""

from __future__ import annotations
import math
import cv2
import numpy as np
from scipy import ndimage as ndi
from skimage.morphology import h_maxima


def gaussian_kernel_size(sigma: float) -> int:
    """Odd kernel width covering ±3σ."""
    return int(math.ceil(sigma * 3)) * 2 + 1


def log_response(img_float: np.ndarray, sigma: float) -> np.ndarray:
    """LoG response, positive inside bright blobs on a dark background."""
    k = gaussian_kernel_size(sigma)
    blur = cv2.GaussianBlur(img_float.astype(np.float32), (k, k), sigmaX=sigma, sigmaY=sigma)
    return cv2.Laplacian(blur, cv2.CV_32F, ksize=1, scale=-1)


def dog_response(img_float: np.ndarray, sigma: float, ratio: float = 1.6) -> np.ndarray:
    """|G(σ) - G(ratio·σ)|; zero on flat regions."""
    img = img_float.astype(np.float32)
    blur1 = cv2.GaussianBlur(img, (0, 0), sigmaX=sigma, sigmaY=sigma)
    blur2 = cv2.GaussianBlur(img, (0, 0), sigmaX=ratio * sigma, sigmaY=ratio * sigma)
    return np.abs(blur1 - blur2)


def disk_kernel(radius: int) -> np.ndarray:
    """Elliptical structuring element of the given radius."""
    k = 2 * max(0, int(radius)) + 1
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (k, k))


def nms2d(resp: np.ndarray, radius_px: int) -> np.ndarray:
    """2D non-maximum suppression via dilation comparison."""
    radius_px = max(1, int(radius_px))
    dil = cv2.dilate(resp, disk_kernel(radius_px))
    return resp >= dil


def seed_markers(peaks: np.ndarray, mask: np.ndarray | None = None, grow: int = 2) -> tuple[np.ndarray, int]:
    """
    Label peak pixels as watershed markers.

    Peaks are dilated by `grow` pixels and restricted to `mask`, so that
    plateau maxima collapse into one marker.
    """
    seeds = peaks.astype(np.uint8)
    if grow > 0:
        seeds = cv2.dilate(seeds, disk_kernel(grow))
    if mask is not None:
        seeds[~mask.astype(bool)] = 0
    markers, n = ndi.label(seeds)
    return markers.astype(np.int32), int(n)


def regional_maxima(resp: np.ndarray, h: float) -> np.ndarray:
    """Regional maxima with prominence of at least h (boolean)."""
    if h <= 0:
        flat = ndi.maximum_filter(resp, size=3)
        return (resp >= flat) & (resp > resp.min())
    return h_maxima(resp.astype(np.float64), h).astype(bool)
