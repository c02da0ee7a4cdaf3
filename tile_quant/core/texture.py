"""
Tile texture descriptors on NaN-masked scalar images.

- apply_circular_mask: blank pixels outside the inscribed circle
- compute_coherence: structure-tensor coherence
- local_binary_pattern_histogram: 16-bin LBP histogram (4 neighbours)
"""

from __future__ import annotations
import math
import numpy as np

LBP_BINS = 16


def apply_circular_mask(img: np.ndarray) -> np.ndarray:
    """
    Set pixels outside the circle inscribed in the image to NaN (in place).

    Center is ((w-1)/2, (h-1)/2) and radius max(w, h)/2.
    """
    h, w = img.shape[:2]
    cx = (w - 1) / 2.0
    cy = (h - 1) / 2.0
    radius = max(w, h) * 0.5
    yy, xx = np.mgrid[0:h, 0:w]
    outside = (xx - cx) ** 2 + (yy - cy) ** 2 > radius * radius
    img[outside] = np.nan
    return img


def compute_coherence(img: np.ndarray) -> float:
    """
    Coherence of the mean structure tensor, ((λ1 - λ2) / (λ1 + λ2))².

    Central differences are taken at interior pixels; pixels where either
    derivative is NaN are skipped. Returns 0 when the eigenvalues are equal
    (including a constant image) and for images smaller than 3×3.
    """
    h, w = img.shape[:2]
    if w < 3 or h < 3:
        return 0.0
    f = np.asarray(img, dtype=np.float64)
    dx = (f[1:-1, 2:] - f[1:-1, :-2]) / 2.0
    dy = (f[2:, 1:-1] - f[:-2, 1:-1]) / 2.0
    valid = ~(np.isnan(dx) | np.isnan(dy))
    dx = dx[valid]
    dy = dy[valid]

    scale = 1.0 / ((w - 2.0) * (h - 2.0))
    fxx = scale * float(np.sum(dx * dx))
    fyy = scale * float(np.sum(dy * dy))
    fxy = scale * float(np.sum(dx * dy))

    trace = fxx + fyy
    det = fxx * fyy - fxy * fxy
    disc = math.sqrt(max(trace * trace / 4.0 - det, 0.0))
    l1 = trace / 2.0 + disc
    l2 = trace / 2.0 - disc
    if l1 == l2:
        return 0.0
    ratio = (l1 - l2) / (l1 + l2)
    return ratio * ratio


def local_binary_pattern_histogram(img: np.ndarray, radius: float = 2) -> np.ndarray:
    """
    Normalised 16-bin local binary pattern histogram.

    Each interior pixel (border = radius) is compared with the four
    neighbours at (+r, 0), (0, +r), (-r, 0), (0, -r); bit k is set when
    neighbour k >= centre. Pixels where the centre or any neighbour is NaN
    are excluded. Returns frequencies summing to 1, or zeros if no pixel
    qualifies.
    """
    r = max(1, int(round(radius)))
    f = np.asarray(img, dtype=np.float64)
    h, w = f.shape[:2]
    hist = np.zeros(LBP_BINS, dtype=np.float64)
    if h <= 2 * r or w <= 2 * r:
        return hist

    center = f[r:h - r, r:w - r]
    neighbours = (
        f[r:h - r, 2 * r:],       # right
        f[2 * r:, r:w - r],       # down
        f[r:h - r, :w - 2 * r],   # left
        f[:h - 2 * r, r:w - r],   # up
    )
    valid = ~np.isnan(center)
    code = np.zeros(center.shape, dtype=np.int64)
    for bit, nb in enumerate(neighbours):
        valid &= ~np.isnan(nb)
        with np.errstate(invalid="ignore"):
            code |= (nb >= center).astype(np.int64) << bit

    counts = np.bincount(code[valid], minlength=LBP_BINS).astype(np.float64)
    total = counts.sum()
    if total > 0:
        hist = counts / total
    return hist
