# dubsync_core/analysis/correlation/_base.py
"""
Shared correlation helpers.

All delays produced here follow one convention: positive = target behind
(later than) the reference.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.signal import correlate


def zscore(x: NDArray) -> NDArray[np.float64]:
    """Zero-mean, unit-variance copy of a signal (all zeros if it is flat)."""
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return x
    std = x.std()
    if std < 1e-12:
        return np.zeros_like(x)
    return (x - x.mean()) / std


def parabolic_offset(values: NDArray, k: int) -> float:
    """Sub-sample position of the maximum at index k (0 when k is at an edge)."""
    if k <= 0 or k >= len(values) - 1:
        return 0.0
    y1, y2, y3 = values[k - 1 : k + 2]
    if not (np.isfinite(y1) and np.isfinite(y3)):
        return 0.0
    denom = y1 - 2.0 * y2 + y3
    if abs(denom) < 1e-12:
        return 0.0
    delta = 0.5 * (y1 - y3) / denom
    return float(delta) if -1.0 < delta < 1.0 else 0.0


def normalized_sliding_correlation(template: NDArray, search: NDArray) -> NDArray[np.float64]:
    """
    Pearson correlation of `template` against every same-length slice of `search`.

    Returns an array of len(search) - len(template) + 1 values in [-1, 1];
    slices with no energy score 0.
    """
    t = np.asarray(template, dtype=np.float64)
    s = np.asarray(search, dtype=np.float64)
    m = len(t)
    if m == 0 or len(s) < m:
        return np.zeros(0)

    t = t - t.mean()
    t_norm = np.sqrt(np.sum(t * t))
    if t_norm < 1e-12:
        return np.zeros(len(s) - m + 1)

    num = correlate(s, t, mode="valid", method="fft")
    c1 = np.concatenate(([0.0], np.cumsum(s)))
    c2 = np.concatenate(([0.0], np.cumsum(s * s)))
    win_sum = c1[m:] - c1[:-m]
    win_sq = c2[m:] - c2[:-m]
    local_var = np.maximum(win_sq - win_sum * win_sum / m, 0.0)
    denom = t_norm * np.sqrt(local_var)
    out = np.zeros_like(num)
    ok = denom > 1e-9 * t_norm
    out[ok] = num[ok] / denom[ok]
    return np.clip(out, -1.0, 1.0)




def runner_up(values: NDArray, k: int, exclusion: int) -> float:
    """
    Largest value more than `exclusion` indices away from index k.

    Used as the competing lag when judging how distinct a correlation peak
    is; 0.0 when nothing lies outside the exclusion zone.
    """
    values = np.asarray(values, dtype=np.float64)
    mask = np.ones(len(values), dtype=bool)
    mask[max(0, k - exclusion) : k + exclusion + 1] = False
    if not np.any(mask):
        return 0.0
    return max(0.0, float(np.max(values[mask])))
