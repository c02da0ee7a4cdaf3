import numpy as np
import cv2
from tile_quant.core import (
    dog_response,
    fill_label_gaps,
    fill_small_holes,
    log_response,
    morphological_reconstruction,
    nms2d,
    opening_by_reconstruction,
    subtract_background,
    watershed_distance_split,
    watershed_intensity_split,
)


def test_reconstruction_is_idempotent(rng):
    mask = cv2.GaussianBlur(rng.random((64, 64)).astype(np.float32), (0, 0), 2)
    marker = mask - 0.05
    once = morphological_reconstruction(marker, mask)
    twice = morphological_reconstruction(once, mask)
    assert np.allclose(once, twice)
    assert np.all(once <= mask + 1e-6)


def test_opening_by_reconstruction_removes_small_peak():
    img = np.zeros((60, 60), np.float32)
    cv2.rectangle(img, (5, 5), (40, 40), 1.0, -1)   # wide plateau
    cv2.circle(img, (50, 50), 3, 1.0, -1)           # narrow peak
    opened = opening_by_reconstruction(img, 6)
    assert opened[20, 20] == 1.0
    assert opened[50, 50] == 0.0
    tophat = subtract_background(img, 6)
    assert tophat[50, 50] == 1.0 and tophat[20, 20] == 0.0


def test_fill_small_holes_absolute_area():
    bw = np.zeros((100, 100), np.uint8)
    cv2.rectangle(bw, (10, 10), (90, 90), 255, -1)
    cv2.circle(bw, (30, 30), 3, 0, -1)     # small hole
    cv2.rectangle(bw, (50, 50), (80, 80), 0, -1)   # large hole
    filled = fill_small_holes(bw, max_area=100)
    assert filled[30, 30] == 255
    assert filled[65, 65] == 0


def test_watershed_distance_split_two_disks():
    bw = np.zeros((80, 120), np.uint8)
    cv2.circle(bw, (40, 40), 20, 255, -1)
    cv2.circle(bw, (72, 40), 20, 255, -1)   # overlapping pair
    split = watershed_distance_split(bw, radius=4)
    n, _ = cv2.connectedComponents((split > 0).astype(np.uint8))
    assert n - 1 == 2
    assert split.sum() <= bw.sum()


def test_watershed_intensity_split_two_blobs():
    img = np.zeros((60, 100), np.float32)
    cv2.circle(img, (30, 30), 12, 1.0, -1)
    cv2.circle(img, (70, 30), 12, 1.0, -1)
    log = log_response(img, 4.0)
    binary = (log > 0).astype(np.uint8) * 255
    labels = watershed_intensity_split(binary, log, 1)
    assert labels.dtype == np.int32
    left = set(np.unique(labels[:, :50])) - {0}
    right = set(np.unique(labels[:, 50:])) - {0}
    assert left and right and not (left & right)
    assert labels[~(binary > 0)].max() == 0


def test_log_and_dog_responses():
    img = np.zeros((41, 41), np.float32)
    cv2.circle(img, (20, 20), 5, 1.0, -1)
    log = log_response(img, 2.0)
    assert log[20, 20] > 0 and log[20, 35] <= 1e-6
    dog = dog_response(np.full((20, 20), 3.0, np.float32), 2.0)
    assert np.allclose(dog, 0.0, atol=1e-5)


def test_nms2d_peaks():
    resp = np.zeros((9, 9), np.float32)
    resp[4, 4] = 2.0
    resp[1, 1] = 1.0
    peaks = nms2d(resp, 1)
    assert peaks[4, 4] and peaks[1, 1]
    assert not peaks[4, 5]


def test_fill_label_gaps():
    labels = np.array([[1, 0, 2], [1, 0, 2]], np.int32)
    filled = fill_label_gaps(labels)
    assert filled.min() > 0
    assert filled[0, 0] == 1 and filled[0, 2] == 2
