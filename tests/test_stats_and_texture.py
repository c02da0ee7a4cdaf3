import math

import numpy as np
import pytest

from tile_quant.core import (
    RunningStatistics,
    apply_circular_mask,
    compute_coherence,
    compute_running_statistics,
    label_statistics,
    local_binary_pattern_histogram,
)


def test_running_statistics_ignores_nan():
    s = RunningStatistics()
    for v in [1.0, float("nan"), 3.0, 5.0]:
        s.add_value(v)
    assert s.count == 3
    assert s.mean == pytest.approx(3.0)
    assert s.min == 1.0 and s.max == 5.0 and s.range == 4.0
    assert s.std_dev == pytest.approx(math.sqrt(8 / 3))


def test_running_statistics_order_independent(rng):
    values = rng.normal(10, 3, 500)
    a = RunningStatistics()
    for v in values:
        a.add_value(v)
    b = RunningStatistics()
    b.add_values(values[::-1][:200])
    b.add_values(values[::-1][200:])
    assert a.count == b.count
    assert a.mean == pytest.approx(b.mean, rel=1e-12)
    assert a.std_dev == pytest.approx(b.std_dev, rel=1e-9)
    assert a.std_dev == pytest.approx(np.std(values), rel=1e-9)


def test_running_statistics_empty_is_nan():
    s = compute_running_statistics(np.full((3, 3), np.nan))
    assert s.count == 0
    assert all(math.isnan(x) for x in (s.mean, s.min, s.max, s.range, s.std_dev))


def test_label_statistics_per_label():
    values = np.array([[1, 2, 10], [3, np.nan, 20]], np.float32)
    labels = np.array([[1, 1, 2], [1, 1, 2]], np.int32)
    s1, s2 = label_statistics(values, labels, 2)
    assert s1.count == 3 and s1.mean == pytest.approx(2.0)
    assert s2.min == 10 and s2.max == 20 and s2.std_dev == pytest.approx(5.0)


def test_circular_mask_10x10():
    img = np.ones((10, 10), np.float32)
    apply_circular_mask(img)
    masked = int(np.isnan(img).sum())
    assert masked == 20
    assert abs(masked - (100 - 25 * math.pi)) < 2
    assert np.all(img[~np.isnan(img)] == 1.0)


def test_coherence_ramp_constant_and_isotropic():
    ramp = np.tile(np.arange(32, dtype=np.float64), (32, 1))
    assert compute_coherence(ramp) == pytest.approx(1.0)
    assert compute_coherence(np.full((16, 16), 7.0)) == 0.0
    # cone: constant gradient magnitude in every direction
    yy, xx = np.mgrid[0:41, 0:41]
    cone = np.hypot(xx - 20.0, yy - 20.0)
    assert compute_coherence(cone) == pytest.approx(0.0, abs=1e-9)
    assert compute_coherence(np.ones((2, 5))) == 0.0


def test_coherence_bounded_with_nan(rng):
    img = rng.random((20, 20))
    img[5:8, 5:8] = np.nan
    c = compute_coherence(img)
    assert 0.0 <= c <= 1.0


def test_lbp_histogram_shape_and_sum(rng):
    hist = local_binary_pattern_histogram(rng.random((30, 30)), radius=2)
    assert hist.shape == (16,)
    assert np.all(hist >= 0)
    assert hist.sum() == pytest.approx(1.0)


def test_lbp_constant_and_masked():
    hist = local_binary_pattern_histogram(np.ones((10, 10)), radius=1)
    # every neighbour >= centre: all four bits set
    assert hist[15] == pytest.approx(1.0)
    empty = local_binary_pattern_histogram(np.full((10, 10), np.nan), radius=1)
    assert np.all(empty == 0)
