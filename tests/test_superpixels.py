import math

import numpy as np
import pytest

from tile_quant.addons import PixelCalibration, PolygonROI
from tile_quant.core import CANCELLED, ArrayImageServer, DoGSuperpixelSegmenter, SuperpixelParams
from tile_quant.core.superpixels import threshold_bounds


def test_constant_roi_polygon_means_equal_constant(constant_server):
    server = constant_server(100)
    seg = DoGSuperpixelSegmenter(SuperpixelParams(downsample_factor=2))
    roi = PolygonROI.rectangle(0, 0, 96, 96)
    tiles = seg.run(server, roi)
    assert len(tiles) >= 1
    full = np.full((96, 96), 100.0)
    for t in tiles:
        inside = t.roi.mask(full.shape) > 0
        assert full[inside].mean() == pytest.approx(100.0)
    assert all(t.kind == "tile" and len(t.measurements) == 0 for t in tiles)
    # a flat response has no seeds: the whole region is one tile
    assert len(tiles) == 1
    assert seg.last_result_summary == "1 tiles created"


def test_constant_roi_out_of_range_is_empty(constant_server):
    server = constant_server(250)
    seg = DoGSuperpixelSegmenter(SuperpixelParams(downsample_factor=2))
    assert seg.run(server, PolygonROI.rectangle(0, 0, 96, 96)) == []


def test_threshold_short_circuit(constant_server):
    server = constant_server(250)
    roi = PolygonROI.rectangle(0, 0, 96, 96)
    equal = DoGSuperpixelSegmenter(SuperpixelParams(downsample_factor=2, min_threshold=5, max_threshold=5))
    assert len(equal.run(server, roi)) == 1
    unbounded = DoGSuperpixelSegmenter(
        SuperpixelParams(downsample_factor=2, min_threshold=math.nan, max_threshold=math.inf))
    assert len(unbounded.run(server, roi)) == 1


def test_threshold_bounds():
    assert threshold_bounds(10, 230) == (10, 230, True)
    assert threshold_bounds(math.nan, 230) == (-math.inf, 230, True)
    assert threshold_bounds(7, 7)[2] is False
    assert threshold_bounds(math.inf, math.nan)[2] is False


def test_textured_image_gives_many_tiles_inside_roi(rng):
    img = (rng.random((128, 128)) * 40 + 100).astype(np.uint8)
    img = np.repeat(np.kron(img[::8, ::8], np.ones((8, 8), np.uint8))[..., None], 3, axis=2)
    server = ArrayImageServer(img, path="texture.tif")
    roi = PolygonROI.ellipse(64, 64, 50, 40)
    seg = DoGSuperpixelSegmenter(SuperpixelParams(downsample_factor=2, sigma_pixels=4, noise_threshold=0.5))
    tiles = seg.run(server, roi)
    assert len(tiles) > 1
    roi_mask = roi.mask((128, 128)) > 0
    for t in tiles:
        assert roi.contains(t.roi)
        tile_mask = t.roi.mask((128, 128)) > 0
        assert tile_mask.any()
        assert not (tile_mask & ~roi_mask).any()
    # the bounding box corners outside the ellipse are not covered
    covered = np.zeros((128, 128), bool)
    for t in tiles:
        covered |= t.roi.mask((128, 128)) > 0
    x0, y0, _, _ = roi.bounds
    assert not covered[y0, x0]


def test_sigma_units():
    seg = DoGSuperpixelSegmenter(SuperpixelParams(downsample_factor=4, sigma_pixels=8, sigma_microns=10))
    assert seg.sigma(PixelCalibration(0.5, 0.5)) == pytest.approx(5.0)
    assert seg.sigma(PixelCalibration()) == pytest.approx(2.0)


def test_no_roi_degenerate_and_cancel(constant_server):
    server = constant_server(100)
    seg = DoGSuperpixelSegmenter()
    assert seg.run(server, None) is None
    assert seg.last_result_summary == "No ROI selected!"
    # 4 px wide at downsample 8
    assert seg.run(server, PolygonROI.rectangle(0, 0, 4, 40)) == []
    assert seg.run(server, PolygonROI.rectangle(0, 0, 96, 96), cancel_cb=lambda: True) is CANCELLED
