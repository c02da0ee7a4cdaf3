"""
Morphology utilities: grey-level reconstruction, hole filling,
watershed splitting and label gap filling.
"""

from __future__ import annotations
import cv2
import numpy as np
from scipy import ndimage as ndi
from skimage.morphology import reconstruction
from skimage.segmentation import watershed

from .log_detect import disk_kernel, nms2d, seed_markers


def morphological_reconstruction(marker: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Reconstruction by dilation of `marker` under `mask`.

    The marker is clipped to the mask first; the result is a fixed point,
    so reconstructing it again under the same mask changes nothing.
    """
    mask = mask.astype(np.float32)
    seed = np.minimum(marker.astype(np.float32), mask)
    return reconstruction(seed, mask, method="dilation").astype(np.float32)


def closing_by_reconstruction(img: np.ndarray, radius: int = 1) -> np.ndarray:
    """Grow the image under its own closing; fills narrow dark gaps."""
    closed = cv2.morphologyEx(img.astype(np.float32), cv2.MORPH_CLOSE, disk_kernel(radius))
    return morphological_reconstruction(img, closed)


def opening_by_reconstruction(img: np.ndarray, radius: int) -> np.ndarray:
    """Opening with a disk, reconstructed under the original image."""
    opened = cv2.morphologyEx(img.astype(np.float32), cv2.MORPH_OPEN, disk_kernel(radius))
    return morphological_reconstruction(opened, img)


def subtract_background(img: np.ndarray, radius: int) -> np.ndarray:
    """Top-hat by reconstruction: remove structures wider than `radius`."""
    img = img.astype(np.float32)
    return img - opening_by_reconstruction(img, radius)


def fill_small_holes(mask: np.ndarray, max_area: float) -> np.ndarray:
    """
    Fill holes whose area is below max_area (px²).

    Args:
        mask: binary image (nonzero = foreground).
        max_area: holes with a smaller contour area are filled.
    """
    filled = (mask > 0).astype(np.uint8) * 255
    contours, hier = cv2.findContours((mask > 0).astype(np.uint8), cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE)
    if hier is None:
        return filled
    hier = hier[0]
    for cnt, h in zip(contours, hier):
        if h[3] != -1:  # only top-level components
            continue
        child = h[2]
        while child != -1:
            hole_cnt = contours[child]
            if cv2.contourArea(hole_cnt) < max_area:
                cv2.drawContours(filled, [hole_cnt], -1, 255, thickness=-1)
            child = hier[child][0]
    return filled


def watershed_intensity_split(binary: np.ndarray, intensity: np.ndarray, radius: int = 1) -> np.ndarray:
    """
    Split a binary mask along valleys of an intensity image.

    Seeds are local maxima of `intensity` inside the mask, dilated by 2 px;
    flooding proceeds from high to low values with 1 px watershed lines.
    Returns an int32 label image (0 = background and lines).
    """
    inside = binary > 0
    peaks = nms2d(intensity.astype(np.float32), radius) & inside
    markers, n = seed_markers(peaks, inside, grow=2)
    if n == 0:
        return np.zeros(binary.shape, np.int32)
    labels = watershed(-intensity.astype(np.float64), markers, mask=inside, watershed_line=True)
    return labels.astype(np.int32)


def separated_mask(labels: np.ndarray) -> np.ndarray:
    """
    Foreground mask (uint8, 255) of a label image in which differently
    labelled regions do not touch, even diagonally.
    """
    lab = labels.astype(np.int32)
    hi = ndi.grey_dilation(lab, size=(3, 3))
    lo = ndi.grey_erosion(np.where(lab > 0, lab, np.iinfo(np.int32).max), size=(3, 3))
    keep = (lab > 0) & (hi <= lab) & (lo >= lab)
    return keep.astype(np.uint8) * 255


def watershed_distance_split(binary: np.ndarray, radius: int) -> np.ndarray:
    """
    Split touching objects at the necks of their distance transform.

    Returns the split mask (uint8, 255 = foreground).
    """
    obj = (binary > 0).astype(np.uint8)
    if obj.max() == 0:
        return obj * 255
    dist = cv2.distanceTransform(obj, cv2.DIST_L2, 5).astype(np.float32)
    peaks = nms2d(dist, max(1, int(radius))) & (obj > 0)
    markers, n = seed_markers(peaks, obj, grow=2)
    if n < 2:
        return obj * 255
    labels = watershed(-dist.astype(np.float64), markers, mask=obj > 0, watershed_line=True)
    return separated_mask(labels)


def fill_label_gaps(labels: np.ndarray) -> np.ndarray:
    """Assign unlabeled pixels the maximum label in their 3×3 neighbourhood."""
    grown = ndi.grey_dilation(labels, size=(3, 3))
    out = labels.copy()
    gaps = labels == 0
    out[gaps] = grown[gaps]
    return out
