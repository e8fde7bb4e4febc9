# dubsync_core/analysis/drift_detection.py
# -*- coding: utf-8 -*-
"""
Segment / drift analysis.

Turns per-window offsets, peak-match segments and the global estimate into
one classification: in sync, constant offset, linear drift, structural
difference (cut / insertion) or unsyncable.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from ..models.audio import Envelope, OffsetSegment
from ..models.enums import DifferenceType, EventType, SyncStatus
from ..models.results import StructuralDifference, SyncEvent
from ..models.settings import AnalysisSettings
from .boundaries import localize_break
from .types import ChunkResult, DriftFit, GlobalEstimate, PeakMatchResult, SegmentAnalysis

logger = logging.getLogger(__name__)

CONSENSUS_BUCKET_MS = 50.0
CONSENSUS_RATIO = 0.7
SILENCE_VOTE_WEIGHT = 0.1
MIN_PEAK_SEGMENT_MATCHES = 3
DISAGREEMENT_MIN_CONFIDENCE = 0.5


# --- Segmentation ---

def local_slope(chunks: Sequence[ChunkResult], min_points: int = 5) -> float:
    """
    Median delay change per second between consecutive accepted windows.

    A drifting target moves every step by the same amount while a cut or
    insertion moves a single step, so the median follows drift and ignores
    jumps. Returns 0.0 with fewer than min_points accepted windows.
    """
    accepted = [c for c in chunks if c.accepted]
    if len(accepted) < max(2, min_points):
        return 0.0
    slopes = [
        (cur.delay_ms - prev.delay_ms) / (cur.midpoint_s - prev.midpoint_s)
        for prev, cur in zip(accepted, accepted[1:])
        if cur.midpoint_s > prev.midpoint_s
    ]
    return float(np.median(slopes)) if slopes else 0.0


def _level(chunk: ChunkResult, slope: float) -> float:
    return chunk.delay_ms - slope * chunk.midpoint_s


def window_runs(
    chunks: Sequence[ChunkResult],
    break_ms: float = 200.0,
    min_windows: int = 2,
    slope_ms_per_s: float = 0.0,
) -> list[list[ChunkResult]]:
    """
    Group consecutive accepted windows whose offsets agree within break_ms.

    Offsets are compared after removing `slope_ms_per_s` of drift. Runs
    shorter than min_windows are discarded as outliers, then neighbours
    that agree again are merged.
    """
    accepted = [c for c in chunks if c.accepted]
    if not accepted:
        return []

    def agree(a: ChunkResult, b: ChunkResult) -> bool:
        return abs(_level(a, slope_ms_per_s) - _level(b, slope_ms_per_s)) <= break_ms

    runs: list[list[ChunkResult]] = [[accepted[0]]]
    for prev, cur in zip(accepted, accepted[1:]):
        if agree(prev, cur):
            runs[-1].append(cur)
        else:
            runs.append([cur])

    merged: list[list[ChunkResult]] = []
    for run in runs:
        if len(run) < min_windows:
            continue
        if merged and agree(merged[-1][-1], run[0]):
            merged[-1].extend(run)
        else:
            merged.append(run)
    return merged


def _run_segment(run: list[ChunkResult]) -> OffsetSegment:
    return OffsetSegment(
        start_ms=run[0].start_ms,
        end_ms=run[-1].end_ms,
        offset_ms=float(np.median([c.delay_ms for c in run])),
        match_count=len(run),
    )


def _run_level(run: list[ChunkResult], slope: float) -> float:
    return float(np.median([_level(c, slope) for c in run]))


def segment_windows(
    chunks: Sequence[ChunkResult], break_ms: float = 200.0, min_windows: int = 2
) -> list[OffsetSegment]:
    """Offset segments of the windowed scan, in reference order."""
    return [_run_segment(run) for run in window_runs(chunks, break_ms, min_windows)]


def window_confidence(chunks: Sequence[ChunkResult]) -> float:
    """Share of correlated windows that were accepted, times their median match."""
    accepted = [c.match for c in chunks if c.accepted]
    if not chunks or not accepted:
        return 0.0
    return len(accepted) / len(chunks) * float(np.median(accepted))


# --- Drift regression ---

def fit_drift(
    times_s: np.ndarray,
    delays_ms: np.ndarray,
    slope_threshold: float = 0.5,
    r2_threshold: float = 0.7,
    severe_threshold: float = 50.0,
) -> DriftFit:
    """Least-squares line through (time, delay) with an R-squared gate."""
    times_s = np.asarray(times_s, dtype=np.float64)
    delays_ms = np.asarray(delays_ms, dtype=np.float64)
    n = len(times_s)
    if n < 2 or np.ptp(times_s) <= 0:
        mean = float(delays_ms.mean()) if n else 0.0
        return DriftFit(0.0, mean, 0.0, n, False, False)

    slope, intercept = np.polyfit(times_s, delays_ms, 1)
    y_predicted = slope * times_s + intercept
    if np.std(delays_ms) < 1e-9 or np.std(y_predicted) < 1e-9:
        r_squared = 0.0
    else:
        correlation_matrix = np.corrcoef(delays_ms, y_predicted)
        r_squared = float(correlation_matrix[0, 1] ** 2)

    has_drift = abs(slope) > slope_threshold and r_squared > r2_threshold
    return DriftFit(
        slope_ms_per_s=float(slope),
        intercept_ms=float(intercept),
        r_squared=r_squared,
        point_count=n,
        has_drift=bool(has_drift),
        is_severe=bool(has_drift and abs(slope) > severe_threshold),
    )


def _drift_points(
    runs: list[list[ChunkResult]],
    peak_result: PeakMatchResult,
    min_points: int,
) -> tuple[np.ndarray, np.ndarray, str]:
    if runs:
        # Regress inside the longest run only; breaks are not drift
        longest = max(runs, key=lambda r: r[-1].end_ms - r[0].start_ms)
        if len(longest) >= min_points:
            return (
                np.array([c.midpoint_s for c in longest]),
                np.array([c.delay_ms for c in longest]),
                "windows",
            )
    matches = peak_result.matches
    return (
        np.array([m.reference_peak.timestamp_ms / 1000.0 for m in matches]),
        np.array([m.offset_ms for m in matches]),
        "peaks",
    )


# --- Global delay selection ---

def segment_consensus(segments: Sequence[OffsetSegment]) -> float | None:
    """
    Delay most segments agree on, weighted by their match counts.

    Buckets of 50 ms; among buckets scoring within 70% of the best, the one
    closest to zero wins.
    """
    if not segments:
        return None
    buckets: dict[int, list[OffsetSegment]] = {}
    for seg in segments:
        buckets.setdefault(int(round(seg.offset_ms / CONSENSUS_BUCKET_MS)), []).append(seg)
    scores = {b: sum(s.match_count for s in segs) for b, segs in buckets.items()}
    best_score = max(scores.values())
    contenders = [b for b, score in scores.items() if score >= best_score * CONSENSUS_RATIO]
    chosen = min(contenders, key=lambda b: (abs(b), b))
    segs = buckets[chosen]
    total = sum(s.match_count for s in segs)
    return sum(s.offset_ms * s.match_count for s in segs) / total


def weighted_delay(votes: Sequence[tuple[float, float]]) -> float | None:
    """Confidence-weighted mean of (delay, weight) votes."""
    total = sum(w for _, w in votes if w > 0)
    if total <= 0:
        return None
    return sum(d * w for d, w in votes if w > 0) / total


def combine_confidence(correlation_confidence: float | None, peak_confidence: float | None) -> float:
    """0.6 x correlation + 0.4 x peaks; a single available path is used as-is."""
    if correlation_confidence is not None and peak_confidence is not None:
        return 0.6 * correlation_confidence + 0.4 * peak_confidence
    if correlation_confidence is not None:
        return correlation_confidence
    if peak_confidence is not None:
        return peak_confidence
    return 0.0


# --- Main entry point ---

def analyze_segments(
    peak_result: PeakMatchResult,
    chunks: Sequence[ChunkResult],
    estimate: GlobalEstimate,
    settings: AnalysisSettings,
    ref_env: Optional[Envelope] = None,
    tgt_env: Optional[Envelope] = None,
    silence_offset_ms: float | None = None,
    log: Optional[Callable[[str], None]] = None,
) -> SegmentAnalysis:
    """
    Classify the reference/target relationship.

    Args:
        peak_result: Output of the peak matcher.
        chunks: Windowed scan results in reference order.
        estimate: Global correlation estimate.
        settings: Thresholds.
        ref_env, tgt_env: Normalized envelopes for break localisation (optional).
        silence_offset_ms: Leading-silence difference (target - reference), weak vote.
        log: Optional logging callback.
    """
    log = log or logger.info
    events: list[SyncEvent] = []
    reasoning: list[str] = []
    warnings: list[str] = []
    break_ms = settings.structural_break_ms
    tol = settings.sync_tolerance_ms

    corr_conf = float(estimate.confidence)
    peak_conf = float(peak_result.confidence) if peak_result.match_count else 0.0
    win_conf = window_confidence(chunks)
    reasoning.append(
        f"Correlation estimate {estimate.delay_ms:+.1f}ms (confidence {corr_conf:.2f}); "
        f"peak matching {peak_result.average_offset_ms:+.1f}ms from "
        f"{peak_result.match_count} matches (confidence {peak_conf:.2f})"
    )

    # --- Segments: windows first, peak segments as fallback ---
    slope = local_slope(chunks, settings.min_drift_points)
    if abs(slope) <= settings.drift_threshold_ms_per_s:
        slope = 0.0
    runs = window_runs(chunks, break_ms, settings.min_segment_windows, slope)
    segments = [_run_segment(run) for run in runs]
    levels = [_run_level(run, slope) for run in runs]
    segment_source = "windows"
    if not segments:
        segments = [s for s in peak_result.segments if s.match_count >= MIN_PEAK_SEGMENT_MATCHES]
        levels = [s.offset_ms for s in segments]
        segment_source = "peaks"
        slope = 0.0
    detrended = f", detrended by {slope:+.3f} ms/s" if slope else ""
    log(f"[DRIFT] {len(segments)} offset segment(s) from {segment_source}{detrended}")

    # --- Structural breaks ---
    differences: list[StructuralDifference] = []
    window_ms = chunks[0].end_ms - chunks[0].start_ms if chunks else settings.quick_window_s * 1000.0
    for i in range(len(segments) - 1):
        prev, nxt = segments[i], segments[i + 1]
        delta = levels[i + 1] - levels[i]
        if abs(delta) <= break_ms:
            continue
        # Offsets either side of the gap, drift included
        before = levels[i] + slope * prev.end_ms / 1000.0
        after = levels[i + 1] + slope * nxt.start_ms / 1000.0
        if ref_env is not None and tgt_env is not None:
            position = localize_break(
                ref_env,
                tgt_env,
                before,
                after,
                max(0.0, prev.end_ms - window_ms),
                nxt.start_ms + window_ms,
                log,
            )
        else:
            position = (prev.end_ms + nxt.start_ms) / 2.0
        kind = DifferenceType.INSERTION if delta > 0 else DifferenceType.CUT
        differences.append(
            StructuralDifference(
                type=kind,
                reference_start_ms=position,
                duration_ms=abs(delta),
                delay_before_ms=before,
                delay_after_ms=after,
            )
        )
        events.append(
            SyncEvent(
                EventType.INSERTION if delta > 0 else EventType.CUT,
                position,
                f"{abs(delta):.0f}ms {kind.value}",
            )
        )
        reasoning.append(
            f"Offset jumps {before:+.0f}ms -> {after:+.0f}ms at "
            f"{position / 1000.0:.2f}s: {abs(delta):.0f}ms {kind.value}"
        )

    # --- Drift ---
    times, delays, drift_source = _drift_points(runs, peak_result, settings.min_drift_points)
    drift: DriftFit | None = None
    if len(times) >= settings.min_drift_points:
        drift = fit_drift(
            times,
            delays,
            settings.drift_threshold_ms_per_s,
            settings.drift_r2_threshold,
            settings.severe_drift_ms_per_s,
        )
        log(
            f"[DRIFT] {drift_source}: slope={drift.slope_ms_per_s:+.3f} ms/s, "
            f"R-squared={drift.r_squared:.3f}, n={drift.point_count}"
        )
        if drift.has_drift:
            events.append(
                SyncEvent(EventType.DRIFT, float(times[0] * 1000.0), f"{drift.slope_ms_per_s:+.3f} ms/s")
            )
            reasoning.append(
                f"Linear drift {drift.slope_ms_per_s:+.3f} ms/s (R-squared {drift.r_squared:.2f}) "
                f"-> tempo factor {drift.tempo_factor:.6f}"
            )
            if drift.is_severe:
                warnings.append(
                    f"Drift of {drift.slope_ms_per_s:+.1f} ms/s exceeds the "
                    f"{settings.severe_drift_ms_per_s:g} ms/s safety limit"
                )

    # --- Confidence ---
    correlation_path = max(corr_conf, win_conf)
    if drift is not None and drift.has_drift and drift_source == "windows" and chunks:
        correlation_path = max(correlation_path, drift.r_squared * drift.point_count / len(chunks))
    confidence = combine_confidence(correlation_path, peak_conf if peak_result.match_count else None)

    # --- Peak vs correlation cross-check ---
    disagreement = None
    if peak_result.match_count and estimate.confidence > 0:
        disagreement = float(peak_result.average_offset_ms - estimate.delay_ms)
        if (
            abs(disagreement) > break_ms
            and corr_conf >= DISAGREEMENT_MIN_CONFIDENCE
            and peak_conf >= DISAGREEMENT_MIN_CONFIDENCE
            and not (drift and drift.has_drift)
        ):
            events.append(
                SyncEvent(EventType.OFFSET_DISAGREEMENT, 0.0, f"{disagreement:+.0f}ms")
            )
            warnings.append(
                f"Peak and correlation offsets disagree by {abs(disagreement):.0f}ms; "
                "possible structural difference"
            )

    # --- Global delay ---
    if corr_conf > settings.trust_correlation_confidence:
        global_delay = estimate.delay_ms
        delay_source = "correlation"
    else:
        consensus = segment_consensus(segments)
        if consensus is not None:
            global_delay = consensus
            delay_source = "segment_consensus"
        else:
            votes = [(estimate.delay_ms, corr_conf), (peak_result.average_offset_ms, peak_conf)]
            if silence_offset_ms is not None:
                votes.append((silence_offset_ms, SILENCE_VOTE_WEIGHT))
            averaged = weighted_delay(votes)
            global_delay = averaged if averaged is not None else 0.0
            delay_source = "weighted_average" if averaged is not None else "none"
    reasoning.append(f"Global delay {global_delay:+.1f}ms from {delay_source}")

    # --- Classification ---
    if correlation_path < settings.unsyncable_confidence and peak_conf < settings.unsyncable_confidence:
        status = SyncStatus.UNSYNCABLE
        reasoning.append(
            f"Both confidences below {settings.unsyncable_confidence:g}; cannot determine sync"
        )
    elif differences:
        status = SyncStatus.STRUCTURAL_DIFFERENCE
    elif drift is not None and drift.has_drift:
        status = SyncStatus.DRIFT
    elif abs(global_delay) <= tol and all(abs(s.offset_ms) <= tol for s in segments):
        status = SyncStatus.IN_SYNC
        reasoning.append(f"All offsets within {tol:g}ms tolerance")
    else:
        status = SyncStatus.OFFSET

    log(
        f"[DRIFT] Status={status.value}, global={global_delay:+.1f}ms ({delay_source}), "
        f"confidence={confidence:.3f}"
    )
    return SegmentAnalysis(
        status=status,
        global_delay_ms=float(global_delay),
        confidence=float(confidence),
        correlation_confidence=correlation_path,
        peak_confidence=peak_conf,
        segments=tuple(segments),
        structural_differences=tuple(differences),
        drift=drift,
        events=tuple(events),
        reasoning=tuple(reasoning),
        warnings=tuple(warnings),
        delay_source=delay_source,
        offset_disagreement_ms=disagreement,
        window_confidence=win_conf,
    )
