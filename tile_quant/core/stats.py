"""
Streaming intensity statistics.

- RunningStatistics: NaN-skipping accumulator (count, mean, min, max,
  range, population std. dev.) with a numerically stable update
- label_statistics: one accumulator per label in a single pass over a
  labelled pixel buffer
"""

from __future__ import annotations
import math
from typing import Iterable, List
import numpy as np


class RunningStatistics:
    """
    Accumulate values one at a time or in arrays, ignoring NaN.

    Scalars use Welford's update; arrays and other accumulators are
    combined with Chan's pairwise merge, so the result does not depend on
    accumulation order. With no values, every statistic is NaN.
    """

    __slots__ = ("_n", "_mean", "_m2", "_min", "_max")

    def __init__(self) -> None:
        self._n = 0
        self._mean = 0.0
        self._m2 = 0.0
        self._min = math.inf
        self._max = -math.inf

    @classmethod
    def from_moments(cls, count: int, mean: float, m2: float, vmin: float, vmax: float) -> "RunningStatistics":
        s = cls()
        if count > 0:
            s._n = int(count)
            s._mean = float(mean)
            s._m2 = float(m2)
            s._min = float(vmin)
            s._max = float(vmax)
        return s

    def add_value(self, value: float) -> None:
        v = float(value)
        if math.isnan(v):
            return
        self._n += 1
        delta = v - self._mean
        self._mean += delta / self._n
        self._m2 += delta * (v - self._mean)
        if v < self._min:
            self._min = v
        if v > self._max:
            self._max = v

    def add_values(self, values: Iterable[float] | np.ndarray) -> None:
        """Accumulate an array (any shape); NaN entries are skipped."""
        a = np.asarray(values, dtype=np.float64).ravel()
        a = a[~np.isnan(a)]
        if a.size == 0:
            return
        mean = float(a.mean())
        m2 = float(((a - mean) ** 2).sum())
        self.merge(RunningStatistics.from_moments(a.size, mean, m2, float(a.min()), float(a.max())))

    def merge(self, other: "RunningStatistics") -> None:
        if other._n == 0:
            return
        if self._n == 0:
            self._n, self._mean, self._m2 = other._n, other._mean, other._m2
            self._min, self._max = other._min, other._max
            return
        n = self._n + other._n
        delta = other._mean - self._mean
        self._mean += delta * other._n / n
        self._m2 += other._m2 + delta * delta * self._n * other._n / n
        self._n = n
        self._min = min(self._min, other._min)
        self._max = max(self._max, other._max)

    @property
    def count(self) -> int:
        return self._n

    @property
    def sum(self) -> float:
        return self._mean * self._n if self._n else math.nan

    @property
    def mean(self) -> float:
        return self._mean if self._n else math.nan

    @property
    def min(self) -> float:
        return self._min if self._n else math.nan

    @property
    def max(self) -> float:
        return self._max if self._n else math.nan

    @property
    def range(self) -> float:
        return self._max - self._min if self._n else math.nan

    @property
    def variance(self) -> float:
        return self._m2 / self._n if self._n else math.nan

    @property
    def std_dev(self) -> float:
        return math.sqrt(max(self.variance, 0.0)) if self._n else math.nan

    def __repr__(self) -> str:
        return (f"RunningStatistics(count={self.count}, mean={self.mean:.6g}, "
                f"std_dev={self.std_dev:.6g}, min={self.min:.6g}, max={self.max:.6g})")


def compute_running_statistics(img: np.ndarray) -> RunningStatistics:
    """Statistics of every non-NaN pixel in an image."""
    stats = RunningStatistics()
    stats.add_values(img)
    return stats


def label_statistics(values: np.ndarray, labels: np.ndarray, n_labels: int) -> List[RunningStatistics]:
    """
    Per-label statistics for labels 1..n_labels in one pass over the buffer.

    Pixels labelled 0 or above n_labels, and NaN values, are ignored.
    Returns a list where entry i holds the statistics for label i + 1.
    """
    v = np.asarray(values, dtype=np.float64).ravel()
    lab = np.asarray(labels).ravel().astype(np.int64)
    keep = (lab > 0) & (lab <= n_labels) & ~np.isnan(v)
    v = v[keep]
    lab = lab[keep]

    n_bins = n_labels + 1
    counts = np.bincount(lab, minlength=n_bins)
    sums = np.bincount(lab, weights=v, minlength=n_bins)
    with np.errstate(invalid="ignore", divide="ignore"):
        means = np.where(counts > 0, sums / np.maximum(counts, 1), 0.0)
    # Second pass on deviations from the per-label mean keeps the variance stable
    m2 = np.bincount(lab, weights=(v - means[lab]) ** 2, minlength=n_bins)

    mins = np.full(n_bins, np.inf)
    maxs = np.full(n_bins, -np.inf)
    np.minimum.at(mins, lab, v)
    np.maximum.at(maxs, lab, v)

    return [
        RunningStatistics.from_moments(int(counts[i]), means[i], m2[i], mins[i], maxs[i])
        for i in range(1, n_bins)
    ]
