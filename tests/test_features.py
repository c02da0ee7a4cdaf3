import math

import numpy as np
import pytest

from tile_quant.addons import PathObject, PixelCalibration, PolygonROI
from tile_quant.core import CANCELLED, H_DAB_DEFAULT, ArrayImageServer, FeatureParams, measure_tile_features
from tile_quant.core.features import tile_downsample, tile_request


def _parent(x=22, y=22, w=20, h=20):
    return PathObject(PolygonROI.rectangle(x, y, w, h), kind="annotation")


def test_grayscale_statistics_and_coherence(disk_server):
    parent = _parent()
    params = FeatureParams(stain_choice="Grayscale", tile_size_px=32)
    staged = measure_tile_features(parent, disk_server, params)
    ml = parent.measurements
    assert staged.names() == ml.names()
    assert ml.names()[:5] == tuple(f"Grayscale (32 px) {s}" for s in ("Mean", "Min", "Max", "Range", "Std.dev."))
    assert ml["Grayscale (32 px) Min"] == pytest.approx(50)
    assert ml["Grayscale (32 px) Max"] == pytest.approx(200)
    assert ml["Grayscale (32 px) Range"] == pytest.approx(150)
    assert 50 < ml["Grayscale (32 px) Mean"] < 200
    assert 0.0 <= ml["Grayscale (32 px) coherence"] <= 1.0


def test_tile_is_centred_and_clipped(disk_server):
    request = tile_request(disk_server, _parent(), FeatureParams(tile_size_px=32))
    assert (request.x, request.y, request.width, request.height) == (16, 16, 32, 32)
    # near the right edge the tile is cut at the image border
    edge = tile_request(disk_server, _parent(50, 22, 10, 20), FeatureParams(tile_size_px=32))
    assert edge.x + edge.width == 64


def test_lbp_histogram_names(disk_server):
    parent = _parent()
    params = FeatureParams(stain_choice="Grayscale", tile_size_px=32, include_stats=False,
                           coherence=False, lbp=True)
    measure_tile_features(parent, disk_server, params)
    names = parent.measurements.names()
    assert names == tuple(f"Grayscale (32 px) LBP {k}" for k in range(1, 17))
    assert sum(parent.measurements[n] for n in names) == pytest.approx(1.0)


def test_existing_measurements_are_kept(disk_server):
    parent = _parent()
    parent.measurements.put("Area", 400.0)
    measure_tile_features(parent, disk_server, FeatureParams(stain_choice="H-DAB", tile_size_px=32))
    names = parent.measurements.names()
    assert names[0] == "Area"
    assert "Hematoxylin (32 px) Mean" in names and "DAB (32 px) coherence" in names


def test_calibrated_label_and_magnification(disk_rgb):
    server = ArrayImageServer(disk_rgb, calibration=PixelCalibration(0.5, 0.5), magnification=20.0)
    assert tile_downsample(server, 5.0) == pytest.approx(4.0)
    assert tile_downsample(ArrayImageServer(disk_rgb), 5.0) == 1.0

    parent = _parent()
    measure_tile_features(parent, server, FeatureParams(magnification=20.0))
    assert "OD sum (25.0 µm) Mean" in parent.measurements


def test_degenerate_and_cancelled(disk_server):
    params = FeatureParams(tile_size_px=32)
    assert measure_tile_features(PathObject(None), disk_server, params) is None
    outside = _parent(1000, 1000, 10, 10)
    assert measure_tile_features(outside, disk_server, params) is None
    assert len(outside.measurements) == 0

    parent = _parent()
    result = measure_tile_features(parent, disk_server, params, cancel_cb=lambda: True)
    assert result is CANCELLED
    assert len(parent.measurements) == 0


def test_circular_mask_changes_statistics(disk_server):
    plain, masked = _parent(), _parent()
    measure_tile_features(plain, disk_server, FeatureParams(stain_choice="Grayscale", tile_size_px=32))
    measure_tile_features(masked, disk_server,
                          FeatureParams(stain_choice="Grayscale", tile_size_px=32, do_circular=True))
    name = "Grayscale (32 px) Mean"
    assert not math.isclose(plain.measurements[name], masked.measurements[name])


def test_h_e_channels_ignore_h_dab_stains(rng):
    img = rng.integers(60, 230, size=(64, 64, 3), dtype=np.uint8)
    server = ArrayImageServer(img, path="he.tif")
    params = FeatureParams(stain_choice="H&E", tile_size_px=40)
    with_dab, plain = _parent(), _parent()
    measure_tile_features(with_dab, server, params, stains=H_DAB_DEFAULT)
    measure_tile_features(plain, server, params)
    assert with_dab.measurements.as_dict() == pytest.approx(plain.measurements.as_dict(), nan_ok=True)
