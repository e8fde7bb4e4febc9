# dubsync_core/analysis/correlation/scc.py
"""
SCC (Standard Cross-Correlation) primitives.

Full-lag correlation of z-scored signals and Pearson correlation of the
overlap at one lag.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.signal import correlate

from ._base import zscore


def full_correlation(
    ref: NDArray, target: NDArray
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """
    Cross-correlate two z-scored signals over every lag.

    Returns (lags, values) where lag L means target[n + L] lines up with ref[n].
    """
    r = zscore(ref)
    t = zscore(target)
    if r.size == 0 or t.size == 0:
        return np.zeros(0, dtype=np.int64), np.zeros(0)
    c = correlate(t, r, mode="full", method="fft")
    lags = np.arange(len(c), dtype=np.int64) - (len(r) - 1)
    return lags, c


def overlap_pearson(ref: NDArray, target: NDArray, lag: int) -> float:
    """Pearson correlation of ref[n] against target[n + lag] over their overlap."""
    ref = np.asarray(ref, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    if lag >= 0:
        n = min(len(ref), len(target) - lag)
        a, b = ref[:n], target[lag : lag + n]
    else:
        n = min(len(ref) + lag, len(target))
        a, b = ref[-lag : -lag + n], target[:n]
    if n < 2:
        return 0.0
    a = a - a.mean()
    b = b - b.mean()
    denom = np.sqrt(np.sum(a * a) * np.sum(b * b))
    if denom < 1e-12:
        return 0.0
    return float(np.sum(a * b) / denom)

