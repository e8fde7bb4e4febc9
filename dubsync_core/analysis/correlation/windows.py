# dubsync_core/analysis/correlation/windows.py
"""
Windowed offset scan.

Cuts the reference envelope into overlapping windows and locates each one
in the target envelope. Every window searches the whole allowed offset
range (plus the neighbourhood of the global estimate and of the last
accepted window), and is only accepted when its best lag stands clear of
the runner-up. The per-window offsets are what drift regression and break
localisation run on.

A target that plays at a different speed decorrelates inside long windows,
so the target envelope can first be resampled by a tempo factor found with
`estimate_tempo`; offsets are always reported on the real target timeline.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ...models.audio import Envelope
from ..types import ChunkResult, TempoEstimate
from ._base import normalized_sliding_correlation, parabolic_offset, runner_up

MARGIN_EXCLUSION_MS = 500.0

# Frame-rate conversions seen in practice: NTSC pulldown and PAL speed-up
KNOWN_TEMPO_RATIOS = (
    1001 / 1000,
    1000 / 1001,
    25.0 / (24000 / 1001),
    (24000 / 1001) / 25.0,
    25.0 / 24.0,
    24.0 / 25.0,
)
TEMPO_COARSE_STEP = 0.002
TEMPO_FINE_STEP = 0.0002
TEMPO_MIN_GAIN = 0.1
TEMPO_MIN_SIMILARITY = 0.5


def window_starts(n_frames: int, window_frames: int, step_frames: int) -> list[int]:
    """Start frames of every full window that fits in n_frames."""
    if window_frames <= 0 or n_frames < window_frames:
        return []
    return list(range(0, n_frames - window_frames + 1, max(1, step_frames)))


def tempo_compensated(samples: np.ndarray, factor: float, lo: int = 0, hi: int | None = None) -> np.ndarray:
    """
    Frames lo..hi of a target envelope resampled by `factor`.

    A target that runs `factor` times longer than its reference lines up
    frame-for-frame with it after compensation.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = int(len(samples) / factor)
    hi = n if hi is None else min(hi, n)
    if hi <= lo:
        return np.zeros(0)
    return np.interp(np.arange(lo, hi) * factor, np.arange(len(samples)), samples)


def estimate_tempo(
    ref_env: Envelope,
    tgt_env: Envelope,
    max_offset_ms: float,
    max_deviation: float = 0.15,
    excerpt_s: float = 60.0,
    log: Callable[[str], None] | None = None,
) -> TempoEstimate:
    """
    Find the speed ratio between target and reference.

    A central reference excerpt is correlated against the target resampled
    by each candidate factor (a coarse grid, the common frame-rate ratios,
    then a fine grid around the best). A factor other than 1.0 is only
    returned when it is clearly better than leaving the target alone.
    """
    frame_ms = ref_env.frame_ms
    ref = np.asarray(ref_env.samples, dtype=np.float64)
    tgt = np.asarray(tgt_env.samples, dtype=np.float64)
    rate = ref_env.sample_rate

    length = min(int(excerpt_s * rate), len(ref) // 2)
    if length < rate or len(tgt) < length:
        return TempoEstimate(1.0, 0.0, 0.0)
    a = (len(ref) - length) // 2
    template = ref[a : a + length]
    max_lag = int(round(max_offset_ms / frame_ms))

    def score(factor: float) -> tuple[float, float]:
        lo = max(0, a - max_lag)
        segment = tempo_compensated(tgt, factor, lo, a + length + max_lag)
        ncc = normalized_sliding_correlation(template, segment)
        if ncc.size == 0:
            return 0.0, 0.0
        k = int(np.argmax(ncc))
        return float(ncc[k]), (lo + k - a) * frame_ms

    lo_f, hi_f = 1.0 - max_deviation, 1.0 + max_deviation
    steps = int(round(max_deviation / TEMPO_COARSE_STEP))
    candidates = {round(1.0 + i * TEMPO_COARSE_STEP, 6) for i in range(-steps, steps + 1)}
    candidates.update(r for r in KNOWN_TEMPO_RATIOS if lo_f <= r <= hi_f)
    scores = {f: score(f) for f in sorted(candidates)}
    coarse_best = max(scores, key=lambda f: (scores[f][0], -abs(f - 1.0)))

    for i in range(-10, 11):
        f = round(coarse_best + i * TEMPO_FINE_STEP, 6)
        if lo_f <= f <= hi_f and f not in scores:
            scores[f] = score(f)
    best = max(scores, key=lambda f: (scores[f][0], -abs(f - 1.0)))

    baseline, baseline_offset = scores[1.0]
    similarity, offset = scores[best]
    if best != 1.0 and (similarity - baseline < TEMPO_MIN_GAIN or similarity < TEMPO_MIN_SIMILARITY):
        best, similarity, offset = 1.0, baseline, baseline_offset

    if log:
        log(
            f"[TEMPO] factor={best:.6f} (similarity {similarity:.3f}, "
            f"{baseline:.3f} uncompensated, {len(scores)} candidates)"
        )
    return TempoEstimate(
        factor=float(best),
        similarity=float(similarity),
        baseline_similarity=float(baseline),
        offset_ms=float(offset),
    )


def scan_window_offsets(
    ref_env: Envelope,
    tgt_env: Envelope,
    initial_delay_ms: float,
    window_s: float = 5.0,
    step_s: float = 2.0,
    search_radius_s: float = 10.0,
    min_match: float = 0.5,
    noise_db: float = -50.0,
    max_offset_ms: float | None = None,
    min_margin: float = 0.15,
    tempo_factor: float = 1.0,
    log: Callable[[str], None] | None = None,
) -> list[ChunkResult]:
    """
    Measure the target - reference offset of each reference window.

    Args:
        ref_env: Reference envelope (raw RMS, not normalized).
        tgt_env: Target envelope at the same rate.
        initial_delay_ms: Global estimate; always part of the search range.
        window_s: Window length.
        step_s: Distance between window starts.
        search_radius_s: Search +/- this much around the estimate and the
            last accepted offset.
        min_match: Normalized correlation needed to accept a window.
        noise_db: Windows quieter than this (RMS dBFS) are skipped.
        max_offset_ms: When given, every window also searches +/- this range.
        min_margin: Lead the best lag needs over the runner-up lag.
        tempo_factor: Resample the target by this factor before correlating.
        log: Optional logging callback.

    Returns:
        One ChunkResult per window that was correlated, in reference order.
        `delay_ms` is measured at the window midpoint on the real target
        timeline.
    """
    frame_ms = ref_env.frame_ms
    rate = ref_env.sample_rate
    ref = np.asarray(ref_env.samples, dtype=np.float64)
    tgt = np.asarray(tgt_env.samples, dtype=np.float64)
    if tempo_factor != 1.0:
        tgt = tempo_compensated(tgt, tempo_factor)

    w = int(round(window_s * rate))
    step = int(round(step_s * rate))
    radius = int(round(search_radius_s * rate))
    exclusion = int(round(MARGIN_EXCLUSION_MS / frame_ms))
    max_lag = int(round(max_offset_ms / frame_ms)) if max_offset_ms is not None else None

    results: list[ChunkResult] = []
    last_delay_ms = float(initial_delay_ms)
    skipped_quiet = 0

    for index, s in enumerate(window_starts(len(ref), w, step)):
        win = ref[s : s + w]
        level_db = 20.0 * np.log10(max(float(np.sqrt(np.mean(win * win))), 1e-10))
        if level_db < noise_db:
            skipped_quiet += 1
            continue

        centres = (initial_delay_ms, last_delay_ms)
        lag_lo = int(np.floor(min(centres) / frame_ms)) - radius
        lag_hi = int(np.ceil(max(centres) / frame_ms)) + radius
        if max_lag is not None:
            lag_lo, lag_hi = min(lag_lo, -max_lag), max(lag_hi, max_lag)
        lo = max(0, s + lag_lo)
        hi = min(len(tgt), s + lag_hi + w)
        if hi - lo < w:
            continue

        ncc = normalized_sliding_correlation(win, tgt[lo:hi])
        k = int(np.argmax(ncc))
        match = float(ncc[k])
        margin = match - runner_up(ncc, k, exclusion)
        position = lo + k + parabolic_offset(ncc, k)
        # Midpoint of the window on the real target timeline
        delay_ms = ((position + w / 2.0) * tempo_factor - (s + w / 2.0)) * frame_ms
        accepted = match >= min_match and margin >= min_margin

        results.append(
            ChunkResult(
                index=index,
                start_ms=ref_env.start_ms + s * frame_ms,
                end_ms=ref_env.start_ms + (s + w) * frame_ms,
                delay_ms=float(delay_ms),
                match=match,
                accepted=accepted,
                margin=float(margin),
            )
        )
        if accepted:
            last_delay_ms = (position - s) * frame_ms

    if log:
        n_acc = sum(1 for r in results if r.accepted)
        tempo = f", tempo x{tempo_factor:.6f}" if tempo_factor != 1.0 else ""
        log(
            f"[WINDOWS] {len(results)} windows correlated ({window_s:g}s every {step_s:g}s{tempo}), "
            f"{n_acc} accepted, {skipped_quiet} skipped below {noise_db:g} dBFS"
        )
    return results
