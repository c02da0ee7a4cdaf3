import numpy as np
import cv2
import pytest

from tile_quant.core import ArrayImageServer


@pytest.fixture
def rng():
    return np.random.default_rng(0)


def _gray_to_rgb(img: np.ndarray) -> np.ndarray:
    return np.repeat(img[..., None], 3, axis=2)


@pytest.fixture
def disk_rgb():
    # 64x64 tile: one bright disk (200) on a dark background (50)
    img = np.full((64, 64), 50, np.uint8)
    cv2.circle(img, (32, 32), 12, 200, -1)
    return _gray_to_rgb(img)


@pytest.fixture
def disk_server(disk_rgb):
    return ArrayImageServer(disk_rgb, path="disk.tif")


@pytest.fixture
def blobs_server(rng):
    # 160x160 tile with five separated disks and light noise
    img = np.full((160, 160), 40, np.int16)
    for (x, y) in [(30, 30), (80, 30), (130, 40), (40, 110), (110, 115)]:
        cv2.circle(img, (x, y), 10, 210, -1)
    img = np.clip(img + rng.normal(0, 3, img.shape), 0, 255).astype(np.uint8)
    return ArrayImageServer(_gray_to_rgb(img), path="blobs.tif")


@pytest.fixture
def constant_server():
    def make(value: int, shape=(96, 96), path="constant.tif"):
        return ArrayImageServer(np.full(shape + (3,), value, np.uint8), path=path)
    return make
