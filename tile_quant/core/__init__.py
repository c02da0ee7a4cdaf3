# Public API of the core package (re-export)
from .errors import (
    ConfigurationError,
    RegionReadError,
    GeometryError,
    Cancelled,
    CANCELLED,
    is_cancelled,
)
from .params import FeatureParams, SuperpixelParams, NucleiParams
from .color import (
    ColorTransformMethod,
    StainVector,
    StainSet,
    H_DAB_DEFAULT,
    H_E_DEFAULT,
    STAIN_CHOICES,
    pack_rgb,
    unpack_rgb,
    transform_rgb,
    transform_pixels,
    transform_pixel,
    stain_channels,
)
from .io_utils import (
    imread_rgb,
    dump_tiff_metadata_text,
    parse_um_per_px_from_text,
    parse_magnification_from_text,
    calibration_from_metadata,
)
from .region import RegionRequest, ArrayImageServer, RegionStore, read_region
from .stats import RunningStatistics, compute_running_statistics, label_statistics
from .texture import apply_circular_mask, compute_coherence, local_binary_pattern_histogram
from .log_detect import log_response, dog_response, nms2d, regional_maxima
from .morphology import (
    morphological_reconstruction,
    opening_by_reconstruction,
    subtract_background,
    fill_small_holes,
    watershed_intensity_split,
    watershed_distance_split,
    fill_label_gaps,
    separated_mask,
)
from .features import measure_tile_features
from .superpixels import DoGSuperpixelSegmenter
from .nuclei import NucleiWatershedSegmenter

__all__ = [
    # errors
    "ConfigurationError", "RegionReadError", "GeometryError", "Cancelled", "CANCELLED", "is_cancelled",
    # params
    "FeatureParams", "SuperpixelParams", "NucleiParams",
    # colour transforms
    "ColorTransformMethod", "StainVector", "StainSet", "H_DAB_DEFAULT", "H_E_DEFAULT", "STAIN_CHOICES",
    "pack_rgb", "unpack_rgb", "transform_rgb", "transform_pixels", "transform_pixel", "stain_channels",
    # io / meta
    "imread_rgb", "dump_tiff_metadata_text", "parse_um_per_px_from_text", "parse_magnification_from_text",
    "calibration_from_metadata",
    # regions
    "RegionRequest", "ArrayImageServer", "RegionStore", "read_region",
    # statistics & texture
    "RunningStatistics", "compute_running_statistics", "label_statistics",
    "apply_circular_mask", "compute_coherence", "local_binary_pattern_histogram",
    # filters & morphology
    "log_response", "dog_response", "nms2d", "regional_maxima",
    "morphological_reconstruction", "opening_by_reconstruction", "subtract_background",
    "fill_small_holes", "watershed_intensity_split", "watershed_distance_split", "fill_label_gaps", "separated_mask",
    # analyses
    "measure_tile_features", "DoGSuperpixelSegmenter", "NucleiWatershedSegmenter",
]
