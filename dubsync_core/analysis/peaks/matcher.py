# dubsync_core/analysis/peaks/matcher.py
"""
Offset-histogram voting between two peak lists.

Every reference/target pair within the search range votes for its offset
(10 ms buckets). The bucket with the most votes inside +/- match window wins,
then the pairs in that cluster are matched one-to-one, strongest first.
"""

from __future__ import annotations

import bisect
from typing import Callable, Sequence

import numpy as np

from ...models.audio import AudioPeak, OffsetSegment, PeakMatch
from ..types import PeakMatchResult

BUCKET_MS = 10.0
CONSISTENCY_SCALE_MS = 500.0


def _empty_result(n_ref: int, n_tgt: int) -> PeakMatchResult:
    return PeakMatchResult(
        matches=(),
        average_offset_ms=0.0,
        offset_std_ms=0.0,
        segments=(),
        confidence=0.0,
        dominant_offset_ms=0.0,
        reference_count=n_ref,
        target_count=n_tgt,
    )


def _is_claimed(claimed: list[int], key: int, window_ms: float) -> bool:
    """True if any claimed key lies strictly closer than window_ms to key."""
    pos = bisect.bisect_left(claimed, key)
    if pos < len(claimed) and abs(claimed[pos] - key) < window_ms:
        return True
    return pos > 0 and abs(claimed[pos - 1] - key) < window_ms


def group_into_segments(
    matches: Sequence[PeakMatch], break_threshold_ms: float = 200.0
) -> list[OffsetSegment]:
    """Split chronologically ordered matches wherever consecutive offsets jump."""
    if not matches:
        return []

    ordered = sorted(matches, key=lambda m: m.reference_peak.timestamp_ms)
    segments: list[OffsetSegment] = []
    current = [ordered[0]]

    def close(run: list[PeakMatch]) -> None:
        segments.append(
            OffsetSegment(
                start_ms=run[0].reference_peak.timestamp_ms,
                end_ms=run[-1].reference_peak.timestamp_ms,
                offset_ms=float(np.mean([m.offset_ms for m in run])),
                match_count=len(run),
            )
        )

    for prev, cur in zip(ordered, ordered[1:]):
        if abs(cur.offset_ms - prev.offset_ms) > break_threshold_ms:
            close(current)
            current = [cur]
        else:
            current.append(cur)
    close(current)
    return segments


def match_confidence(
    match_count: int,
    reference_count: int,
    target_count: int,
    offset_std_ms: float,
    mean_match_confidence: float,
    min_matches: int,
) -> float:
    """
    Blend of match ratio (0.3), offset consistency (0.4) and mean pair confidence (0.3).

    Below `min_matches` the value is additionally capped at
    match_count / min_matches * 0.5.
    """
    if match_count == 0:
        return 0.0
    ratio = match_count / max(1, min(reference_count, target_count))
    consistency = max(0.0, 1.0 - offset_std_ms / CONSISTENCY_SCALE_MS)
    blend = min(1.0, ratio) * 0.3 + consistency * 0.4 + mean_match_confidence * 0.3
    if min_matches > 0 and match_count < min_matches:
        return min(blend, match_count / min_matches * 0.5)
    return blend


def match_peaks(
    reference_peaks: Sequence[AudioPeak],
    target_peaks: Sequence[AudioPeak],
    max_offset_ms: float = 30000.0,
    match_window_ms: float = 100.0,
    min_matches: int = 5,
    break_threshold_ms: float = 200.0,
    log: Callable[[str], None] | None = None,
) -> PeakMatchResult:
    """
    Vote on the dominant offset and return one-to-one peak matches.

    Args:
        reference_peaks: Peaks of the reference track.
        target_peaks: Peaks of the target track.
        max_offset_ms: Largest |target - reference| offset considered.
        match_window_ms: Cluster half-width and one-to-one exclusion radius.
        min_matches: Matches needed before confidence may exceed the low-evidence cap.
        break_threshold_ms: Offset jump that starts a new segment.
        log: Optional logging callback.
    """
    n_ref, n_tgt = len(reference_peaks), len(target_peaks)
    if n_ref == 0 or n_tgt == 0:
        if log:
            log(f"[MATCH] Nothing to match ({n_ref} reference / {n_tgt} target peaks)")
        return _empty_result(n_ref, n_tgt)

    refs = sorted(reference_peaks, key=lambda p: p.timestamp_ms)
    tgts = sorted(target_peaks, key=lambda p: p.timestamp_ms)
    ref_t = np.array([p.timestamp_ms for p in refs], dtype=np.float64)
    tgt_t = np.array([p.timestamp_ms for p in tgts], dtype=np.float64)

    # --- Enumerate all pairs within +/- max_offset_ms ---
    lo = np.searchsorted(tgt_t, ref_t - max_offset_ms, side="left")
    hi = np.searchsorted(tgt_t, ref_t + max_offset_ms, side="right")
    counts = hi - lo
    total = int(counts.sum())
    if total == 0:
        if log:
            log("[MATCH] No peak pairs inside the search range")
        return _empty_result(n_ref, n_tgt)

    block_start = np.cumsum(counts) - counts
    ref_idx = np.repeat(np.arange(n_ref), counts)
    tgt_idx = np.arange(total) + np.repeat(lo - block_start, counts)
    offsets = tgt_t[tgt_idx] - ref_t[ref_idx]

    # --- Histogram vote with +/- match window neighbourhood ---
    buckets = np.round(offsets / BUCKET_MS).astype(np.int64)
    b_min = int(buckets.min())
    hist = np.bincount(buckets - b_min)
    half = int(match_window_ms // BUCKET_MS)
    csum = np.concatenate(([0], np.cumsum(hist)))
    pos = np.arange(len(hist))
    scores = csum[np.minimum(len(hist), pos + half + 1)] - csum[np.maximum(0, pos - half)]
    scores = np.where(hist > 0, scores, -1)
    best = np.flatnonzero(scores == scores.max()) + b_min
    # Ties: smallest |offset|, then the lower offset
    best_bucket = int(min(best, key=lambda b: (abs(b), b)))
    dominant_ms = best_bucket * BUCKET_MS

    in_cluster = np.flatnonzero(np.abs(buckets - best_bucket) <= half)

    # --- One-to-one refinement, strongest pairs first ---
    ref_conf = np.array([p.confidence for p in refs])
    tgt_conf = np.array([p.confidence for p in tgts])
    pair_conf = (ref_conf[ref_idx[in_cluster]] + tgt_conf[tgt_idx[in_cluster]]) / 2.0
    order = np.lexsort((np.abs(offsets[in_cluster] - dominant_ms), -pair_conf))

    claimed_ref: list[int] = []
    claimed_tgt: list[int] = []
    refined: list[PeakMatch] = []
    for k in order:
        p = in_cluster[k]
        r, t = refs[ref_idx[p]], tgts[tgt_idx[p]]
        ref_key = int(round(r.timestamp_ms))
        tgt_key = int(round(t.timestamp_ms))
        if _is_claimed(claimed_ref, ref_key, match_window_ms) or _is_claimed(
            claimed_tgt, tgt_key, match_window_ms
        ):
            continue
        bisect.insort(claimed_ref, ref_key)
        bisect.insort(claimed_tgt, tgt_key)
        refined.append(
            PeakMatch(
                reference_peak=r,
                target_peak=t,
                offset_ms=float(offsets[p]),
                confidence=float(pair_conf[k]),
            )
        )

    refined.sort(key=lambda m: m.reference_peak.timestamp_ms)
    match_offsets = np.array([m.offset_ms for m in refined])
    avg = float(match_offsets.mean())
    std = float(match_offsets.std())
    segments = group_into_segments(refined, break_threshold_ms)
    confidence = match_confidence(
        len(refined),
        n_ref,
        n_tgt,
        std,
        float(np.mean([m.confidence for m in refined])),
        min_matches,
    )

    if log:
        log(
            f"[MATCH] {len(refined)} matches from {total} candidate pairs; "
            f"dominant={dominant_ms:+.0f}ms, avg={avg:+.1f}ms, std={std:.1f}ms, "
            f"segments={len(segments)}, confidence={confidence:.3f}"
        )

    return PeakMatchResult(
        matches=tuple(refined),
        average_offset_ms=avg,
        offset_std_ms=std,
        segments=tuple(segments),
        confidence=float(confidence),
        dominant_offset_ms=dominant_ms,
        reference_count=n_ref,
        target_count=n_tgt,
    )
