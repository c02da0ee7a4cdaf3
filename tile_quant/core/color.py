"""
Colour transforms for packed-RGB pixel buffers.

Maps RGB pixels to scalar channels: optical density sum, colour
deconvolved stains (float or 8-bit), raw channels and grayscale.
Every transform is applied per pixel with no cross-pixel state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple
import numpy as np


class ColorTransformMethod(Enum):
    OPTICAL_DENSITY_SUM = "Optical density sum"
    HEMATOXYLIN_H_DAB = "Hematoxylin (H-DAB)"
    DAB_H_DAB = "DAB (H-DAB)"
    HEMATOXYLIN_H_E = "Hematoxylin (H&E)"
    EOSIN_H_E = "Eosin (H&E)"
    HEMATOXYLIN_H_DAB_8_BIT = "Hematoxylin 8-bit (H-DAB)"
    DAB_H_DAB_8_BIT = "DAB 8-bit (H-DAB)"
    HEMATOXYLIN_H_E_8_BIT = "Hematoxylin 8-bit (H&E)"
    EOSIN_H_E_8_BIT = "Eosin 8-bit (H&E)"
    STAIN_1 = "Stain 1"
    STAIN_2 = "Stain 2"
    STAIN_3 = "Stain 3"
    RED = "Red"
    GREEN = "Green"
    BLUE = "Blue"
    RGB_MEAN = "RGB mean"


@dataclass(frozen=True)
class StainVector:
    """Named stain colour as a unit-length optical density vector (r, g, b)."""
    name: str
    r: float
    g: float
    b: float

    @classmethod
    def normalized(cls, name: str, r: float, g: float, b: float) -> "StainVector":
        n = float(np.sqrt(r * r + g * g + b * b))
        if n <= 0:
            raise ValueError(f"Stain vector {name!r} has zero length")
        return cls(name, r / n, g / n, b / n)

    def as_array(self) -> np.ndarray:
        return np.array([self.r, self.g, self.b], dtype=np.float64)


@dataclass(frozen=True)
class StainSet:
    """
    Up to three stain vectors used for colour deconvolution.

    When the third stain is omitted, a residual stain orthogonal to the
    first two is used so the stain matrix is invertible.
    """
    name: str
    stain1: StainVector
    stain2: StainVector
    stain3: Optional[StainVector] = None

    @property
    def stains(self) -> Tuple[StainVector, StainVector, StainVector]:
        s3 = self.stain3
        if s3 is None:
            c = np.cross(self.stain1.as_array(), self.stain2.as_array())
            s3 = StainVector.normalized("Residual", *c)
        return self.stain1, self.stain2, s3

    @property
    def is_h_dab(self) -> bool:
        return self.stain1.name == "Hematoxylin" and self.stain2.name == "DAB"

    @property
    def is_h_e(self) -> bool:
        return self.stain1.name == "Hematoxylin" and self.stain2.name == "Eosin"

    def matrix(self) -> np.ndarray:
        """3×3 stain matrix, one stain per row."""
        return np.vstack([s.as_array() for s in self.stains])

    def inverse(self) -> np.ndarray:
        return np.linalg.inv(self.matrix())


H_DAB_DEFAULT = StainSet(
    "H-DAB default",
    StainVector.normalized("Hematoxylin", 0.651, 0.701, 0.290),
    StainVector.normalized("DAB", 0.269, 0.568, 0.778),
)

H_E_DEFAULT = StainSet(
    "H&E default",
    StainVector.normalized("Hematoxylin", 0.651, 0.701, 0.290),
    StainVector.normalized("Eosin", 0.216, 0.801, 0.558),
)

# Optical density of each 8-bit channel value; 0 is treated as 1 to stay finite
OD_LUT = -np.log10(np.maximum(np.arange(256, dtype=np.float64), 1.0) / 255.0)

# method -> (default stains, stain index, 8-bit output)
_DECONV: Dict[ColorTransformMethod, Tuple[Optional[StainSet], int, bool]] = {
    ColorTransformMethod.HEMATOXYLIN_H_DAB: (H_DAB_DEFAULT, 0, False),
    ColorTransformMethod.DAB_H_DAB: (H_DAB_DEFAULT, 1, False),
    ColorTransformMethod.HEMATOXYLIN_H_E: (H_E_DEFAULT, 0, False),
    ColorTransformMethod.EOSIN_H_E: (H_E_DEFAULT, 1, False),
    ColorTransformMethod.HEMATOXYLIN_H_DAB_8_BIT: (H_DAB_DEFAULT, 0, True),
    ColorTransformMethod.DAB_H_DAB_8_BIT: (H_DAB_DEFAULT, 1, True),
    ColorTransformMethod.HEMATOXYLIN_H_E_8_BIT: (H_E_DEFAULT, 0, True),
    ColorTransformMethod.EOSIN_H_E_8_BIT: (H_E_DEFAULT, 1, True),
    ColorTransformMethod.STAIN_1: (None, 0, False),
    ColorTransformMethod.STAIN_2: (None, 1, False),
    ColorTransformMethod.STAIN_3: (None, 2, False),
}

# Stain choice -> ordered (channel name, method) pairs
STAIN_CHOICES: Dict[str, List[Tuple[str, ColorTransformMethod]]] = {
    "Optical density": [("OD sum", ColorTransformMethod.OPTICAL_DENSITY_SUM)],
    "H-DAB": [("Hematoxylin", ColorTransformMethod.HEMATOXYLIN_H_DAB),
              ("DAB", ColorTransformMethod.DAB_H_DAB)],
    "H&E": [("Hematoxylin", ColorTransformMethod.HEMATOXYLIN_H_E),
            ("Eosin", ColorTransformMethod.EOSIN_H_E)],
    "H-DAB (8-bit)": [("Hematoxylin 8-bit", ColorTransformMethod.HEMATOXYLIN_H_DAB_8_BIT),
                      ("DAB 8-bit", ColorTransformMethod.DAB_H_DAB_8_BIT)],
    "H&E (8-bit)": [("Hematoxylin 8-bit", ColorTransformMethod.HEMATOXYLIN_H_E_8_BIT),
                    ("Eosin 8-bit", ColorTransformMethod.EOSIN_H_E_8_BIT)],
    "RGB": [("Red", ColorTransformMethod.RED),
            ("Green", ColorTransformMethod.GREEN),
            ("Blue", ColorTransformMethod.BLUE)],
    "Grayscale": [("Grayscale", ColorTransformMethod.RGB_MEAN)],
}


def is_deconvolution(method: ColorTransformMethod) -> bool:
    return method in _DECONV


def _matching_stains(default: Optional[StainSet], stains: Optional[StainSet]) -> StainSet:
    """
    Stains to deconvolve with: the caller's set when it is the same stain
    pair as the method, otherwise the method's default set.
    """
    if stains is None:
        return default or H_DAB_DEFAULT
    if default is None:
        return stains
    if (default.is_h_dab and stains.is_h_dab) or (default.is_h_e and stains.is_h_e):
        return stains
    return default


def pack_rgb(rgb: np.ndarray) -> np.ndarray:
    """Pack an (..., 3) uint8 RGB array into 0xRRGGBB integers."""
    rgb = np.asarray(rgb, dtype=np.uint32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """Unpack 0xRRGGBB integers into an (..., 3) uint8 array."""
    p = np.asarray(packed).astype(np.uint32)
    return np.stack([(p >> 16) & 0xFF, (p >> 8) & 0xFF, p & 0xFF], axis=-1).astype(np.uint8)


def as_rgb(img: np.ndarray) -> np.ndarray:
    """Return an (h, w, 3) uint8 view of a grayscale or RGB(A) raster."""
    img = np.asarray(img)
    if img.ndim == 2:
        img = np.repeat(img[..., None], 3, axis=2)
    elif img.shape[-1] == 4:
        img = img[..., :3]
    if img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)
    return img


def transform_rgb(
    rgb: np.ndarray,
    method: ColorTransformMethod,
    stains: Optional[StainSet] = None,
) -> np.ndarray:
    """
    Transform an (..., 3) uint8 RGB array into a float32 scalar channel.

    Deconvolution methods use `stains` when it is the method's stain pair
    (H-DAB or H&E) and the method's default set otherwise; the generic
    STAIN_n methods use any `stains` and fall back to H-DAB defaults.
    Other methods ignore `stains`.
    """
    rgb = np.asarray(rgb)
    r = rgb[..., 0]
    g = rgb[..., 1]
    b = rgb[..., 2]

    if method is ColorTransformMethod.RED:
        return r.astype(np.float32)
    if method is ColorTransformMethod.GREEN:
        return g.astype(np.float32)
    if method is ColorTransformMethod.BLUE:
        return b.astype(np.float32)
    if method is ColorTransformMethod.RGB_MEAN:
        return ((r.astype(np.float32) + g + b) / 3.0).astype(np.float32)

    od_r, od_g, od_b = OD_LUT[r], OD_LUT[g], OD_LUT[b]
    if method is ColorTransformMethod.OPTICAL_DENSITY_SUM:
        return (od_r + od_g + od_b).astype(np.float32)

    default, idx, eight_bit = _DECONV[method]
    inv = _matching_stains(default, stains).inverse()
    od = od_r * inv[0, idx] + od_g * inv[1, idx] + od_b * inv[2, idx]
    if eight_bit:
        return np.clip(255.0 * np.power(10.0, -od), 0.0, 255.0).astype(np.float32)
    return od.astype(np.float32)


def transform_pixels(
    packed: np.ndarray,
    method: ColorTransformMethod,
    stains: Optional[StainSet] = None,
) -> np.ndarray:
    """Transform packed 0xRRGGBB integers (any shape) into a float32 channel."""
    return transform_rgb(unpack_rgb(packed), method, stains)


def transform_pixel(rgb: int, method: ColorTransformMethod, stains: Optional[StainSet] = None) -> float:
    """Transform a single packed 0xRRGGBB value."""
    return float(transform_pixels(np.array([rgb], dtype=np.uint32), method, stains)[0])


def stain_channels(choice: str) -> List[Tuple[str, ColorTransformMethod]]:
    """Ordered (channel name, method) pairs for a stain choice."""
    return list(STAIN_CHOICES[choice])
