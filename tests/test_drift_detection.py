# tests/test_drift_detection.py
import numpy as np
import pytest

from dubsync_core.analysis.boundaries import alignment_error, localize_break
from dubsync_core.analysis.drift_detection import (
    analyze_segments,
    combine_confidence,
    fit_drift,
    local_slope,
    segment_consensus,
    segment_windows,
    weighted_delay,
    window_confidence,
    window_runs,
)
from dubsync_core.analysis.types import ChunkResult, GlobalEstimate, PeakMatchResult
from dubsync_core.models import (
    AnalysisSettings,
    AudioPeak,
    DifferenceType,
    Envelope,
    EventType,
    OffsetSegment,
    PeakMatch,
    PeakType,
    SyncStatus,
)


def _chunk(i, start_s, delay_ms, accepted=True, window_s=5.0):
    return ChunkResult(i, start_s * 1000.0, (start_s + window_s) * 1000.0, float(delay_ms), 0.9, accepted)


def _chunks(delay_fn, n=28, step_s=2.0):
    return [_chunk(i, i * step_s, delay_fn(i * step_s + 2.5)) for i in range(n)]


def _estimate(delay_ms, confidence):
    return GlobalEstimate(delay_ms, confidence, confidence, 1.0, confidence > 0.3, "envelope")


def _peak_result(offset_fn, confidence=0.8, times_ms=range(1000, 55000, 1500)):
    def peak(t):
        return AudioPeak(float(t), 0.8, 50.0, PeakType.TRANSIENT, 0.8)
    matches = tuple(PeakMatch(peak(t), peak(t + offset_fn(t / 1000.0)), float(offset_fn(t / 1000.0)), 0.8)
                    for t in times_ms)
    offsets = np.array([m.offset_ms for m in matches]) if matches else np.zeros(1)
    return PeakMatchResult(matches, float(offsets.mean()), float(offsets.std()), (), confidence,
                           float(np.median(offsets)), len(matches), len(matches))


EMPTY_PEAKS = PeakMatchResult((), 0.0, 0.0, (), 0.0, 0.0, 0, 0)


# -------- segmentation --------

def test_window_runs_drop_outliers_and_rejoin():
    delays = [0, 2, 1, 5000, 3, 0, 5000, 5001, 4999]
    chunks = [_chunk(i, i * 2.0, d) for i, d in enumerate(delays)]
    chunks.insert(2, _chunk(99, 3.0, 800, accepted=False))
    runs = window_runs(chunks, break_ms=200, min_windows=2)
    assert [len(r) for r in runs] == [5, 3]
    segments = segment_windows(chunks)
    assert [s.offset_ms for s in segments] == [1.0, 5000.0]
    assert segments[0].start_ms == 0.0
    assert segments[1].end_ms == chunks[-1].end_ms


def test_window_runs_empty():
    assert window_runs([]) == []
    assert window_runs([_chunk(0, 0, 10, accepted=False)]) == []


def test_window_runs_follow_drift_when_detrended():
    # 120 ms/s moves each 2s step by 240ms, past the 200ms break threshold
    chunks = _chunks(lambda t: 120.0 * t)
    assert window_runs(chunks, break_ms=200, min_windows=2) == []
    (run,) = window_runs(chunks, break_ms=200, min_windows=2, slope_ms_per_s=120.0)
    assert len(run) == len(chunks)


def test_local_slope_follows_drift_and_ignores_jumps():
    assert local_slope(_chunks(lambda t: 2.0 * t)) == pytest.approx(2.0)
    assert local_slope(_chunks(lambda t: 0.0 if t < 30 else 5000.0)) == pytest.approx(0.0)
    assert local_slope(_chunks(lambda t: 2.0 * t, n=3)) == 0.0


def test_window_confidence():
    chunks = [_chunk(i, i * 2.0, 0.0) for i in range(4)] + [_chunk(4, 8.0, 0.0, accepted=False)]
    assert window_confidence(chunks) == pytest.approx(0.8 * 0.9)
    assert window_confidence([]) == 0.0
    assert window_confidence([_chunk(0, 0, 0.0, accepted=False)]) == 0.0



# -------- drift regression --------

def test_fit_drift_linear():
    t = np.arange(0, 100, 2.0)
    fit = fit_drift(t, 1.0 * t + 20.0)
    assert fit.slope_ms_per_s == pytest.approx(1.0)
    assert fit.intercept_ms == pytest.approx(20.0)
    assert fit.r_squared == pytest.approx(1.0)
    assert fit.has_drift and not fit.is_severe
    assert fit.tempo_factor == pytest.approx(1.001)


def test_fit_drift_constant_is_not_drift():
    t = np.arange(0, 100, 2.0)
    fit = fit_drift(t, np.full_like(t, 437.0))
    assert not fit.has_drift
    assert fit.r_squared == 0.0


def test_fit_drift_noise_fails_r2_gate():
    rng = np.random.default_rng(5)
    t = np.arange(0, 100, 2.0)
    fit = fit_drift(t, rng.normal(0, 200, len(t)), slope_threshold=0.0)
    assert fit.r_squared < 0.7
    assert not fit.has_drift


def test_fit_drift_severe():
    t = np.arange(0, 20, 1.0)
    assert fit_drift(t, 60.0 * t).is_severe


def test_fit_drift_degenerate_inputs():
    assert not fit_drift(np.array([1.0]), np.array([5.0])).has_drift
    assert fit_drift(np.array([]), np.array([])).point_count == 0


# -------- global delay helpers --------

def test_segment_consensus_prefers_smallest_close_contender():
    segs = [OffsetSegment(0, 30000, 0.0, 10), OffsetSegment(30000, 60000, 5000.0, 8)]
    assert segment_consensus(segs) == pytest.approx(0.0)
    segs = [OffsetSegment(0, 10000, 0.0, 3), OffsetSegment(10000, 60000, 5000.0, 10)]
    assert segment_consensus(segs) == pytest.approx(5000.0)
    assert segment_consensus([]) is None


def test_weighted_delay():
    assert weighted_delay([(100.0, 0.5), (200.0, 0.5)]) == pytest.approx(150.0)
    assert weighted_delay([(100.0, 0.0)]) is None


def test_combine_confidence():
    assert combine_confidence(0.9, 0.5) == pytest.approx(0.74)
    assert combine_confidence(None, 0.5) == 0.5
    assert combine_confidence(0.7, None) == 0.7
    assert combine_confidence(None, None) == 0.0


# -------- classification --------

def test_in_sync():
    a = analyze_segments(_peak_result(lambda t: 0.0), _chunks(lambda t: 3.0), _estimate(2.0, 0.95), AnalysisSettings())
    assert a.status is SyncStatus.IN_SYNC
    assert a.delay_source == "correlation"
    assert a.confidence == pytest.approx(0.6 * 0.95 + 0.4 * 0.8)


def test_constant_offset():
    a = analyze_segments(_peak_result(lambda t: 437.0), _chunks(lambda t: 436.0), _estimate(437.0, 0.9), AnalysisSettings())
    assert a.status is SyncStatus.OFFSET
    assert a.global_delay_ms == pytest.approx(437.0)
    assert len(a.segments) == 1
    assert a.drift is not None and not a.drift.has_drift


def test_linear_drift():
    a = analyze_segments(
        _peak_result(lambda t: 1.0 * t),
        _chunks(lambda t: 1.0 * t + 0.5),
        _estimate(30.0, 0.8),
        AnalysisSettings(),
    )
    assert a.status is SyncStatus.DRIFT
    assert a.drift.slope_ms_per_s == pytest.approx(1.0)
    assert any(e.type is EventType.DRIFT for e in a.events)
    assert not any(e.type is EventType.OFFSET_DISAGREEMENT for e in a.events)


def test_severe_drift_warns():
    a = analyze_segments(
        _peak_result(lambda t: 0.0, confidence=0.1),
        _chunks(lambda t: 80.0 * t, n=10, step_s=1.0),
        _estimate(0.0, 0.8),
        AnalysisSettings(structural_break_ms=1000),
    )
    assert a.status is SyncStatus.DRIFT
    assert a.drift.is_severe
    assert any("safety limit" in w for w in a.warnings)


def test_insertion_without_envelopes_uses_gap_midpoint():
    chunks = _chunks(lambda t: 0.0 if t < 30 else 5000.0)
    a = analyze_segments(_peak_result(lambda t: 0.0), chunks, _estimate(0.0, 0.4), AnalysisSettings())
    assert a.status is SyncStatus.STRUCTURAL_DIFFERENCE
    (diff,) = a.structural_differences
    assert diff.type is DifferenceType.INSERTION
    assert diff.duration_ms == pytest.approx(5000.0)
    assert diff.delay_before_ms == 0.0 and diff.delay_after_ms == 5000.0
    assert a.segments[0].end_ms <= diff.reference_start_ms + 5000
    assert a.delay_source == "segment_consensus"
    assert any(e.type is EventType.INSERTION for e in a.events)


def test_cut_is_negative_jump():
    chunks = _chunks(lambda t: 2000.0 if t < 30 else 0.0)
    a = analyze_segments(EMPTY_PEAKS, chunks, _estimate(2000.0, 0.5), AnalysisSettings())
    assert a.structural_differences[0].type is DifferenceType.CUT


def test_unsyncable_when_both_paths_are_weak():
    a = analyze_segments(EMPTY_PEAKS, [], _estimate(0.0, 0.1), AnalysisSettings())
    assert a.status is SyncStatus.UNSYNCABLE
    assert a.segments == ()


def test_peak_segments_used_when_no_windows():
    peaks = _peak_result(lambda t: 250.0)
    peaks = PeakMatchResult(peaks.matches, 250.0, 0.0, (OffsetSegment(1000, 50000, 250.0, 30),), 0.9, 250.0, 30, 30)
    a = analyze_segments(peaks, [], _estimate(0.0, 0.0), AnalysisSettings())
    assert a.segments == peaks.segments
    assert a.status is SyncStatus.OFFSET
    assert a.global_delay_ms == pytest.approx(250.0)


def test_silence_vote_only_in_weighted_fallback():
    a = analyze_segments(EMPTY_PEAKS, [], _estimate(100.0, 0.35), AnalysisSettings(), silence_offset_ms=400.0)
    assert a.delay_source == "weighted_average"
    assert a.global_delay_ms == pytest.approx((100.0 * 0.35 + 400.0 * 0.1) / 0.45)


def test_disagreement_warning():
    a = analyze_segments(_peak_result(lambda t: 1000.0, confidence=0.9), [], _estimate(0.0, 0.9), AnalysisSettings())
    assert a.offset_disagreement_ms == pytest.approx(1000.0)
    assert any(e.type is EventType.OFFSET_DISAGREEMENT for e in a.events)
    assert any("disagree" in w for w in a.warnings)


# -------- break localisation --------

@pytest.fixture(scope="module")
def inserted_envelopes():
    rng = np.random.default_rng(7)
    ref = rng.uniform(0.0, 1.0, 6000).astype(np.float32)
    insert = rng.uniform(0.0, 1.0, 500).astype(np.float32)
    tgt = np.concatenate([ref[:3000], insert, ref[3000:]])
    return Envelope(ref, 100), Envelope(tgt, 100)


def test_localize_insertion(inserted_envelopes, capture_log):
    logs, log_cb = capture_log
    ref, tgt = inserted_envelopes
    pos = localize_break(ref, tgt, 0.0, 5000.0, 26000.0, 35000.0, log_cb)
    assert pos == pytest.approx(30000.0, abs=100)
    assert any('[Boundaries]' in line for line in logs)


def test_localize_falls_back_on_short_span(inserted_envelopes):
    ref, tgt = inserted_envelopes
    assert localize_break(ref, tgt, 0.0, 5000.0, 1000.0, 1020.0) == pytest.approx(1010.0)


def test_alignment_error_outside_target_is_one():
    ref = np.array([0.5, 0.5, 0.5])
    tgt = np.array([0.5, 0.25])
    err = alignment_error(ref, tgt, np.arange(3), 0)
    assert err.tolist() == [0.0, 0.25, 1.0]


def test_analyze_segments_localizes_with_envelopes(inserted_envelopes):
    ref, tgt = inserted_envelopes
    chunks = [_chunk(i, i * 2.0, 0.0 if i * 2.0 + 5 <= 30 else 5000.0) for i in range(27)]
    a = analyze_segments(EMPTY_PEAKS, chunks, _estimate(0.0, 0.5), AnalysisSettings(), ref, tgt)
    (diff,) = a.structural_differences
    assert diff.reference_start_ms == pytest.approx(30000.0, abs=100)


def test_localize_cut_on_first_offset_error():
    rng = np.random.default_rng(7)
    ref = rng.uniform(0.0, 1.0, 6000).astype(np.float32)
    tgt = np.concatenate([ref[:3000], ref[3500:]])
    pos = localize_break(Envelope(ref, 100), Envelope(tgt, 100), 0.0, -5000.0, 26000.0, 39000.0)
    assert pos == pytest.approx(30000.0, abs=100)


# -------- drift with breaks --------

def test_fast_drift_stays_one_segment():
    a = analyze_segments(EMPTY_PEAKS, _chunks(lambda t: 120.0 * t), _estimate(0.0, 0.2), AnalysisSettings())
    assert a.status is SyncStatus.DRIFT
    assert len(a.segments) == 1
    assert a.structural_differences == ()
    assert a.drift.slope_ms_per_s == pytest.approx(120.0)
    assert a.drift.is_severe


def test_good_drift_fit_raises_confidence():
    a = analyze_segments(EMPTY_PEAKS, _chunks(lambda t: 42.7 * t), _estimate(0.0, 0.2), AnalysisSettings())
    assert a.status is SyncStatus.DRIFT
    assert not a.drift.is_severe
    assert a.correlation_confidence == pytest.approx(1.0)
    assert a.confidence == pytest.approx(1.0)


def test_insertion_measured_on_detrended_offsets():
    chunks = _chunks(lambda t: 120.0 * t + (5000.0 if t > 30 else 0.0))
    a = analyze_segments(EMPTY_PEAKS, chunks, _estimate(0.0, 0.5), AnalysisSettings())
    assert a.status is SyncStatus.STRUCTURAL_DIFFERENCE
    (diff,) = a.structural_differences
    assert diff.type is DifferenceType.INSERTION
    assert diff.duration_ms == pytest.approx(5000.0)
    assert diff.delay_after_ms - diff.delay_before_ms == pytest.approx(5000.0, abs=500)
