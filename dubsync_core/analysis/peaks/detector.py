# dubsync_core/analysis/peaks/detector.py
"""
Adaptive-threshold peak detection on an amplitude envelope.

Peaks are strict local maxima that clear both a fixed amplitude floor and a
threshold derived from the statistics of the surrounding +/- 2 s, so quiet
dialogue scenes and loud action scenes both yield anchors.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ...models.audio import AudioPeak, Envelope
from ...models.enums import PeakType

_EPS = 1e-3


def _local_stats(x: np.ndarray, half_window: int) -> tuple[np.ndarray, np.ndarray]:
    """Mean and population std over [i - half_window, i + half_window) for every i."""
    n = len(x)
    c1 = np.concatenate(([0.0], np.cumsum(x)))
    c2 = np.concatenate(([0.0], np.cumsum(x * x)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half_window)
    hi = np.minimum(n, idx + half_window)
    count = (hi - lo).astype(np.float64)
    mean = (c1[hi] - c1[lo]) / count
    var = (c2[hi] - c2[lo]) / count - mean * mean
    return mean, np.sqrt(np.maximum(var, 0.0))


def detect_peaks(
    envelope: Envelope,
    min_amplitude: float = 0.1,
    min_peak_distance_ms: float = 50.0,
    sensitivity: float = 0.5,
    local_window_ms: float = 2000.0,
    log: Callable[[str], None] | None = None,
) -> list[AudioPeak]:
    """
    Find transient and sustained peaks in an envelope.

    Args:
        envelope: Envelope to scan (normally `Envelope.normalized()`).
        min_amplitude: Absolute amplitude floor for a peak.
        min_peak_distance_ms: Closer peaks are resolved in favour of the louder one.
        sensitivity: 0-1; higher lowers the adaptive threshold.
        local_window_ms: Half-width of the window used for local statistics.
        log: Optional logging callback.

    Returns:
        Peaks in chronological order. Empty for envelopes shorter than 3 frames.
    """
    x = np.asarray(envelope.samples, dtype=np.float64)
    n = len(x)
    if n < 3:
        return []

    frame_ms = envelope.frame_ms
    half_window = max(1, int(round(local_window_ms / frame_ms)))
    mean, std = _local_stats(x, half_window)
    threshold = mean + std * (2.0 - sensitivity)

    cur = x[1:-1]
    is_candidate = (cur > x[:-2]) & (cur > x[2:]) & (cur >= min_amplitude) & (cur >= threshold[1:-1])
    candidates = np.flatnonzero(is_candidate) + 1

    peaks: list[AudioPeak] = []
    for i in candidates:
        amp = float(x[i])
        ts = envelope.start_ms + i * frame_ms

        if peaks and ts - peaks[-1].timestamp_ms < min_peak_distance_ms:
            # Keep the higher peak
            if amp > peaks[-1].amplitude:
                peaks.pop()
            else:
                continue

        prev = float(x[i - 1])
        if amp - prev > amp * 0.3:
            peak_type = PeakType.TRANSIENT
        elif prev < min_amplitude:
            peak_type = PeakType.SILENCE_BREAK
        else:
            peak_type = PeakType.SUSTAINED

        # Duration: frames staying above half the threshold, bounded by the local window
        thr = threshold[i]
        tail = x[i : min(n, i + half_window)]
        below = np.flatnonzero(tail <= thr * 0.5)
        duration_frames = int(below[0]) if below.size else len(tail)

        prominence = (amp - mean[i]) / (std[i] + _EPS)
        peaks.append(
            AudioPeak(
                timestamp_ms=float(ts),
                amplitude=amp,
                duration_ms=duration_frames * frame_ms,
                type=peak_type,
                confidence=float(min(1.0, max(0.0, prominence / 3.0))),
            )
        )

    if log:
        n_transient = sum(1 for p in peaks if p.type is PeakType.TRANSIENT)
        minutes = envelope.duration_ms / 60000.0
        rate = n_transient / minutes if minutes > 0 else 0.0
        log(f"[PEAKS] {len(peaks)} peaks ({n_transient} transients, {rate:.1f}/min) from {n} frames")
    return peaks
