import math

import numpy as np
import pytest

from tile_quant.addons import (
    GeometryError,
    NucleiSizes,
    calibration_from_sizes,
    PixelCalibration,
    PolygonROI,
    UNCALIBRATED,
    contour_to_image,
    diameter_label,
    effective_um_per_px_for_isotropic_kernels,
    image_to_contour,
    preferred_tile_size_px,
    resolve_nuclei_sizes,
    shape_measurements,
)
from tile_quant.core import NucleiParams


def test_preferred_tile_size_calibrated_and_pixels():
    cal = PixelCalibration(0.5, 0.25)
    assert preferred_tile_size_px(cal, 25.0, 200.0) == (50, 100)
    assert preferred_tile_size_px(UNCALIBRATED, 25.0, 199.6) == (200, 200)


def test_diameter_label():
    assert diameter_label(PixelCalibration(0.5, 0.5), 12.34, 200) == "12.3 µm"
    assert diameter_label(UNCALIBRATED, 12.34, 200) == "200 px"


def test_scale_helpers():
    assert calibration_from_sizes() is None
    assert calibration_from_sizes(0.2) == PixelCalibration(0.2, 0.2)
    assert calibration_from_sizes(None, 0.1, 0.4) == PixelCalibration(0.1, 0.4)
    assert calibration_from_sizes(0.2, pixel_height=0.4) == PixelCalibration(0.2, 0.4)
    assert effective_um_per_px_for_isotropic_kernels(0.1, 0.4) == pytest.approx(0.2)
    with pytest.raises(ValueError):
        calibration_from_sizes(None, pixel_width=0.1)
    with pytest.raises(ValueError):
        calibration_from_sizes(-1.0)


def test_resolve_nuclei_sizes_calibrated():
    cal = PixelCalibration(0.25, 0.25)
    sizes = resolve_nuclei_sizes(cal, NucleiParams(), downsample=2.0)
    # processed pixel size 0.5 µm
    assert isinstance(sizes, NucleiSizes)
    assert sizes.median_radius == 2
    assert sizes.gaussian_sigma == pytest.approx(3.0)
    assert sizes.opening_radius == 16
    assert sizes.min_area_px == pytest.approx(100.0)
    assert sizes.min_area == 25.0


def test_resolve_nuclei_sizes_pixels():
    sizes = resolve_nuclei_sizes(UNCALIBRATED, NucleiParams.for_pixels(), downsample=1.0)
    assert (sizes.median_radius, sizes.opening_radius) == (1, 20)
    assert sizes.gaussian_sigma == pytest.approx(2.0)
    assert sizes.min_area_px == pytest.approx(100.0)


def test_polygon_rectangle_properties():
    r = PolygonROI.rectangle(10, 20, 30, 40)
    assert r.area == pytest.approx(1200.0)
    assert r.perimeter == pytest.approx(140.0)
    assert r.centroid == pytest.approx((25.0, 40.0))
    assert r.bounds == (10, 20, 30, 40)
    assert r.solidity == pytest.approx(1.0)
    assert r.contains_point(10, 20) and not r.contains_point(9.5, 20)


def test_polygon_rejects_degenerate():
    with pytest.raises(GeometryError):
        PolygonROI([(0, 0), (1, 1), (0, 0)])
    with pytest.raises(GeometryError):
        PolygonROI([(0, 0), (0, 0), (0, 0), (0, 0)])


def test_ellipse_containment_and_circularity():
    e = PolygonROI.ellipse(50, 50, 30, 30)
    inner = PolygonROI.rectangle(45, 45, 10, 10)
    outer = PolygonROI.rectangle(15, 15, 10, 10)
    assert e.contains(inner)
    assert not e.contains(outer)
    assert 0.9 < e.circularity <= 1.0
    assert e.area == pytest.approx(math.pi * 900, rel=0.01)


def test_contour_conversion_roundtrip():
    cnt = np.array([[[1, 2]], [[5, 2]], [[5, 6]]], np.int32)
    pts = contour_to_image(cnt, 4.0, 100, 200)
    assert pts[1].tolist() == [120.0, 208.0]
    assert np.array_equal(image_to_contour(pts, 4.0, 100, 200), cnt)


def test_polygon_masks():
    r = PolygonROI.rectangle(0, 0, 20, 20)
    m = r.mask((10, 10), downsample=2.0)
    assert m.dtype == np.uint8 and m.max() == 255
    outline = r.outline_mask((12, 12), downsample=2.0, thickness=2)
    assert outline[5, 5] == 0 and outline[0, 5] == 255


def test_shape_measurements_calibrated():
    poly = PolygonROI.rectangle(0, 0, 20, 10)
    contour_px = np.array([[0, 0], [10, 0], [10, 5], [0, 5]], np.float32)
    m = shape_measurements(poly, contour_px, 2.0, PixelCalibration(0.5, 0.5))
    assert m["Area"] == pytest.approx(50.0)
    assert m["Perimeter"] == pytest.approx(30.0)
    assert m["Min axis"] == pytest.approx(5.0)
    assert m["Max axis"] == pytest.approx(10.0)
    assert 0 < m["Circularity"] <= 1 and m["Solidity"] == pytest.approx(1.0)
