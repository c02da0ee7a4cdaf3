import numpy as np
from pathlib import Path

import pytest
from PIL import Image, TiffImagePlugin
from tile_quant.core import (
    ArrayImageServer,
    calibration_from_metadata,
    imread_rgb,
    parse_magnification_from_text,
    parse_um_per_px_from_text,
)


def test_imread_rgb_uint16(tmp_path: Path):
    # 16-bit grayscale TIFF
    p = tmp_path / "u16.tif"
    arr = (np.linspace(0, 65535, 64 * 64, dtype=np.uint16).reshape(64, 64))
    Image.fromarray(arr).save(p)
    img = imread_rgb(str(p))
    assert img.dtype == np.uint8
    assert img.shape == (64, 64, 3)
    assert img.max() == 255


def test_imread_rgb_channel_order(tmp_path: Path):
    p = tmp_path / "red.png"
    rgb = np.zeros((8, 8, 3), np.uint8)
    rgb[..., 0] = 200
    Image.fromarray(rgb).save(p)
    img = imread_rgb(str(p))
    assert img[0, 0].tolist() == [200, 0, 0]


def test_parse_um_per_px_from_text_variants():
    assert parse_um_per_px_from_text("PixelWidth = 1.25e-07") == pytest.approx(0.125, rel=1e-6)
    assert parse_um_per_px_from_text('PhysicalSizeX="0.325"') == pytest.approx(0.325)
    assert parse_um_per_px_from_text("Aperio Image |MPP = 0.2527|AppMag = 20") == pytest.approx(0.2527)
    assert parse_um_per_px_from_text("nothing here") is None
    assert parse_magnification_from_text("Aperio Image |MPP = 0.2527|AppMag = 20") == 20.0


def test_server_from_tiff_metadata(tmp_path: Path):
    p = tmp_path / "meta.tif"
    img = Image.new("RGB", (40, 30), (10, 20, 30))

    # Calibration text in the ImageDescription tag (270)
    tiffinfo = TiffImagePlugin.ImageFileDirectory_v2()
    tiffinfo[270] = "Aperio Image |MPP = 0.5|AppMag = 20"
    img.save(p, tiffinfo=tiffinfo)

    cal = calibration_from_metadata(str(p))
    assert cal.pixel_width_microns == pytest.approx(0.5)
    server = ArrayImageServer.from_file(str(p))
    assert (server.width, server.height) == (40, 30)
    assert server.magnification == 20.0
    assert server.calibration.has_pixel_size_microns
