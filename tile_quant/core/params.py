"""
Analysis parameter data structures.

One static configuration per component, validated at construction.
Defaults follow the values used for brightfield whole-slide images.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict, fields

from .color import ColorTransformMethod, STAIN_CHOICES
from .errors import ConfigurationError


class _FromDict:
    """Mixin adding dict round-tripping that ignores unknown keys."""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})


def _require_positive(name: str, value: float) -> None:
    if not (value > 0):
        raise ConfigurationError(f"{name} must be > 0 (got {value!r})")


def _require_non_negative(name: str, value: float) -> None:
    if not (value >= 0):
        raise ConfigurationError(f"{name} must be >= 0 (got {value!r})")


@dataclass
class FeatureParams(_FromDict):
    """Tile texture features computed around each parent object."""

    # Resolution
    magnification: float = 5.0

    # Channels
    stain_choice: str = "Optical density"

    # Tile diameter (µm when calibrated, full-resolution px otherwise)
    tile_size_microns: float = 25.0
    tile_size_px: float = 200.0

    # Outputs
    include_stats: bool = True
    do_circular: bool = False
    coherence: bool = True
    lbp: bool = False
    lbp_radius: int = 2

    def __post_init__(self) -> None:
        _require_positive("magnification", self.magnification)
        _require_positive("tile_size_microns", self.tile_size_microns)
        _require_positive("tile_size_px", self.tile_size_px)
        if self.stain_choice not in STAIN_CHOICES:
            raise ConfigurationError(
                f"Unknown stain choice {self.stain_choice!r}; expected one of {sorted(STAIN_CHOICES)}"
            )
        if int(self.lbp_radius) < 1:
            raise ConfigurationError("lbp_radius must be >= 1")


@dataclass
class SuperpixelParams(_FromDict):
    """Difference-of-Gaussians superpixel parameters."""

    downsample_factor: float = 8.0
    sigma_pixels: float = 10.0
    sigma_microns: float = 10.0

    # Region mean intensity must lie within [min_threshold, max_threshold]
    min_threshold: float = 10.0
    max_threshold: float = 230.0

    # Minimum prominence of a DoG maximum to seed a region
    noise_threshold: float = 1.0

    channel: ColorTransformMethod = ColorTransformMethod.RGB_MEAN

    def __post_init__(self) -> None:
        _require_positive("downsample_factor", self.downsample_factor)
        _require_positive("sigma_pixels", self.sigma_pixels)
        _require_positive("sigma_microns", self.sigma_microns)
        _require_non_negative("noise_threshold", self.noise_threshold)
        if isinstance(self.channel, str):
            self.channel = ColorTransformMethod[self.channel]


@dataclass
class NucleiParams(_FromDict):
    """
    Watershed nucleus detection parameters.

    Sizes are in µm (µm² for min_area) when the image is calibrated,
    otherwise in full-resolution pixels.
    """

    preferred_microns: float = 0.5
    median_radius: float = 1.0
    gaussian_sigma: float = 1.5
    opening_radius: float = 8.0
    threshold: float = 0.1
    min_area: float = 25.0
    split_shape: bool = True

    def __post_init__(self) -> None:
        _require_positive("preferred_microns", self.preferred_microns)
        _require_non_negative("median_radius", self.median_radius)
        _require_positive("gaussian_sigma", self.gaussian_sigma)
        _require_positive("opening_radius", self.opening_radius)
        _require_non_negative("min_area", self.min_area)

    @classmethod
    def for_pixels(cls, **overrides) -> "NucleiParams":
        """Defaults for uncalibrated images, in pixels."""
        values = dict(median_radius=1.0, gaussian_sigma=2.0, opening_radius=20.0,
                      threshold=0.1, min_area=100.0)
        values.update(overrides)
        return cls(**values)
