# dubsync_core/analysis/boundaries.py
# -*- coding: utf-8 -*-
"""
Structural break localisation.

Given two adjacent segments with different offsets, find where on the
reference timeline the target stops following the first offset and starts
following the second. The alignment error under each offset is computed
per envelope frame; their difference changes mean at the break, which a
single ruptures change point recovers. A cut leaves a stretch of reference
that follows neither offset, so there only the error under the first
offset is used: it rises exactly where the removed material starts.
"""
from __future__ import annotations

from typing import Callable, Optional

import numpy as np
import ruptures as rpt

from ..models.audio import Envelope


def alignment_error(ref: np.ndarray, tgt: np.ndarray, frames: np.ndarray, lag: int) -> np.ndarray:
    """|ref[n] - tgt[n + lag]| for each n in frames; 1.0 where the target has no frame."""
    idx = frames + lag
    inside = (idx >= 0) & (idx < len(tgt))
    err = np.ones(len(frames), dtype=np.float64)
    err[inside] = np.abs(ref[frames[inside]] - tgt[idx[inside]])
    return err


def localize_break(
    ref_env: Envelope,
    tgt_env: Envelope,
    delay_before_ms: float,
    delay_after_ms: float,
    search_start_ms: float,
    search_end_ms: float,
    log: Optional[Callable[[str], None]] = None,
) -> float:
    """
    Reference position (ms) where the offset switches from delay_before to delay_after.

    Both envelopes should be normalized. Falls back to the middle of the
    search span when it is too short to hold a change point.
    """
    frame_ms = ref_env.frame_ms
    a = max(0, int(search_start_ms / frame_ms))
    b = min(len(ref_env), int(np.ceil(search_end_ms / frame_ms)))
    fallback = (search_start_ms + search_end_ms) / 2.0
    if b - a < 4:
        return fallback

    ref = ref_env.samples.astype(np.float64)
    tgt = tgt_env.samples.astype(np.float64)
    frames = np.arange(a, b)
    e0 = alignment_error(ref, tgt, frames, int(round(delay_before_ms / frame_ms)))
    e1 = alignment_error(ref, tgt, frames, int(round(delay_after_ms / frame_ms)))
    if delay_after_ms < delay_before_ms:
        signal = e0
    else:
        signal = e0 - e1
    signal = signal.reshape(-1, 1)

    algo = rpt.Binseg(model="l2", min_size=2, jump=1).fit(signal)
    change_indices = algo.predict(n_bkps=1)
    bp = change_indices[0] if len(change_indices) > 1 else (b - a) // 2
    position_ms = (a + bp) * frame_ms

    if log:
        log(
            f"  [Boundaries] Break {delay_before_ms:+.0f}ms -> {delay_after_ms:+.0f}ms "
            f"localized at {position_ms / 1000.0:.2f}s "
            f"(searched {search_start_ms / 1000.0:.1f}s - {search_end_ms / 1000.0:.1f}s)"
        )
    return float(position_ms)
