# tests/test_correlation.py
import numpy as np
import pytest

from dubsync_core.analysis.correlation import (
    AudioFingerprinter,
    estimate_global_offset,
    full_correlation,
    overlap_pearson,
    refine_on_pcm,
    estimate_tempo,
    scan_window_offsets,
    tempo_compensated,
    window_starts,
)
from dubsync_core.analysis.correlation._base import (
    normalized_sliding_correlation,
    parabolic_offset,
    runner_up,
)
from dubsync_core.analysis.preprocessing import compute_envelope
from dubsync_core.models import AnalysisSettings
from tests.fakes import SR, delayed, make_burst_track, stretched


@pytest.fixture(scope="module")
def track_40s():
    return make_burst_track(40.0, seed=3)


def _env(samples):
    return compute_envelope(samples, SR, 100)


# -------- primitives --------

def test_parabolic_offset_edges_and_peak():
    values = np.array([0.0, 1.0, 3.0, 2.0, 0.0])
    assert parabolic_offset(values, 0) == 0.0
    assert parabolic_offset(values, 4) == 0.0
    assert 0.0 < parabolic_offset(values, 2) < 0.5
    assert parabolic_offset(np.array([1.0, 1.0, 1.0]), 1) == 0.0


def test_sliding_correlation_locates_template():
    rng = np.random.default_rng(0)
    search = rng.standard_normal(500)
    ncc = normalized_sliding_correlation(search[200:250] * 3.0 + 1.0, search)
    assert len(ncc) == 451
    assert int(np.argmax(ncc)) == 200
    assert ncc[200] == pytest.approx(1.0)
    assert np.all(np.abs(ncc) <= 1.0)


def test_sliding_correlation_flat_template():
    assert not np.any(normalized_sliding_correlation(np.ones(10), np.arange(50.0)))
    assert normalized_sliding_correlation(np.ones(10), np.ones(5)).size == 0


def test_full_correlation_lag_convention():
    rng = np.random.default_rng(1)
    ref = rng.standard_normal(300)
    tgt = np.concatenate([np.zeros(25), ref])
    lags, corr = full_correlation(ref, tgt)
    assert lags[int(np.argmax(corr))] == 25
    assert overlap_pearson(ref, tgt, 25) == pytest.approx(1.0)
    assert overlap_pearson(tgt, ref, -25) == pytest.approx(1.0)


def test_runner_up_skips_the_peak_neighbourhood():
    values = np.array([0.0, 0.2, 1.0, 0.9, 0.1, 0.3, 0.0, 0.0])
    assert runner_up(values, 2, 1) == pytest.approx(0.3)
    assert runner_up(values, 2, 0) == pytest.approx(0.9)
    assert runner_up(values, 2, 10) == 0.0
    assert runner_up(-np.ones(6), 0, 1) == 0.0


# -------- fingerprint --------

def test_fingerprint_finds_hop_aligned_offset(track_40s, capture_log):
    logs, log_cb = capture_log
    fp = AudioFingerprinter(SR, log_cb)
    shift = 16 * fp.hop_size  # 1024ms
    ref_fp = fp.generate(track_40s)
    tgt_fp = fp.generate(np.concatenate([np.zeros(shift), track_40s]))
    assert len(ref_fp) >= fp.min_hashes
    cmp = fp.compare(ref_fp, tgt_fp, max_offset_ms=5000)
    assert cmp.is_same_source
    assert cmp.offset_ms == pytest.approx(1024.0, abs=fp.frame_ms)
    assert any('[FINGERPRINT]' in line for line in logs)


def test_fingerprint_rejects_unrelated_material(track_40s):
    fp = AudioFingerprinter(SR)
    other = make_burst_track(40.0, seed=44)
    cmp = fp.compare(fp.generate(track_40s), fp.generate(other), max_offset_ms=5000)
    assert not cmp.is_same_source
    assert cmp.similarity < 0.1


def test_fingerprint_of_short_audio_is_empty():
    fp = AudioFingerprinter(SR)
    short = fp.generate(np.zeros(100))
    assert len(short) == 0
    cmp = fp.compare(short, short, 1000)
    assert cmp.similarity == 0.0
    assert not cmp.is_same_source


def test_fingerprint_duration_limit(track_40s):
    fp = AudioFingerprinter(SR)
    full = fp.generate(track_40s)
    limited = fp.generate(track_40s, duration_limit_s=10)
    assert len(limited) < len(full)
    assert limited.times.max() < full.times.max()


# -------- global estimate --------

def test_pcm_refinement_is_sample_accurate(track_40s):
    tgt = delayed(track_40s, 123.375)  # 987 samples
    refined = refine_on_pcm(track_40s, tgt, _env(track_40s), SR, coarse_delay_ms=120.0)
    assert refined is not None
    delay, match = refined
    assert delay == pytest.approx(123.375, abs=0.2)
    assert match > 0.9


def test_refinement_without_room_returns_none(track_40s):
    short = track_40s[: SR // 2]
    assert refine_on_pcm(short, short, _env(short), SR, 0.0) is None


@pytest.mark.parametrize("use_fp", [True, False])
def test_global_estimate_recovers_delay(track_40s, use_fp, capture_log):
    _, log_cb = capture_log
    tgt = delayed(track_40s, 437)
    est = estimate_global_offset(
        track_40s, tgt, _env(track_40s), _env(tgt), SR, AnalysisSettings(), 30000, use_fp, log_cb
    )
    assert est.delay_ms == pytest.approx(437, abs=1)
    assert est.confidence > 0.6
    assert est.is_same_source
    assert est.method.endswith("envelope+pcm")
    assert ("fingerprint" in est.method) is use_fp


def test_global_estimate_negative_delay(track_40s):
    tgt = delayed(track_40s, -250)
    est = estimate_global_offset(
        track_40s, tgt, _env(track_40s), _env(tgt), SR, AnalysisSettings(), 30000, False
    )
    assert est.delay_ms == pytest.approx(-250, abs=1)


def test_global_estimate_on_silence_is_empty(track_40s):
    silent = np.zeros_like(track_40s)
    est = estimate_global_offset(
        track_40s, silent, _env(track_40s), _env(silent), SR, AnalysisSettings(), 30000, True
    )
    assert est.confidence == 0.0
    assert not est.is_same_source
    assert est.delay_ms == 0.0


# -------- windowed scan --------

def test_window_starts():
    assert window_starts(100, 20, 10) == [0, 10, 20, 30, 40, 50, 60, 70, 80]
    assert window_starts(10, 20, 5) == []


def test_window_scan_tracks_delay(track_40s, capture_log):
    logs, log_cb = capture_log
    tgt = delayed(track_40s, 437)
    chunks = scan_window_offsets(_env(track_40s), _env(tgt), 400.0, window_s=5, step_s=2, log=log_cb)
    accepted = [c for c in chunks if c.accepted]
    assert len(accepted) >= 10
    assert [c.index for c in chunks] == sorted(c.index for c in chunks)
    for c in accepted:
        assert c.delay_ms == pytest.approx(437, abs=10)
        assert c.end_ms - c.start_ms == pytest.approx(5000)
    assert any('[WINDOWS]' in line for line in logs)


def test_window_scan_skips_silent_reference(track_40s):
    silent = np.zeros_like(track_40s)
    assert scan_window_offsets(_env(silent), _env(track_40s), 0.0) == []


def test_window_scan_rejects_missing_material_after_a_cut(track_40s):
    # 5s removed from the target at 20s
    tgt = np.concatenate([track_40s[: 20 * SR], track_40s[25 * SR :]])
    chunks = scan_window_offsets(_env(track_40s), _env(tgt), 0.0, max_offset_ms=10000)
    before = [c for c in chunks if c.end_ms <= 20000]
    after = [c for c in chunks if c.start_ms >= 25500]
    assert before and after
    for c in before:
        assert c.accepted
        assert c.delay_ms == pytest.approx(0, abs=20)
    for c in after:
        assert c.accepted
        assert c.delay_ms == pytest.approx(-5000, abs=20)
        assert c.margin >= 0.15


def test_window_scan_follows_a_tempo_ratio(track_40s, capture_log):
    logs, log_cb = capture_log
    factor = 25.0 / 24.0
    tgt = stretched(track_40s, factor)
    chunks = scan_window_offsets(
        _env(track_40s), _env(tgt), 0.0, max_offset_ms=2000, tempo_factor=factor, log=log_cb
    )
    accepted = [c for c in chunks if c.accepted]
    assert len(accepted) >= 10
    for c in accepted:
        mid_s = (c.start_ms + c.end_ms) / 2000.0
        assert c.delay_ms == pytest.approx(mid_s * (factor - 1.0) * 1000.0, abs=30)
    assert any('tempo x1.041667' in line for line in logs)


# -------- tempo --------

def test_tempo_compensated_resamples_frames():
    assert np.allclose(tempo_compensated(np.arange(10.0), 2.0), [0, 2, 4, 6, 8])
    assert np.allclose(tempo_compensated(np.arange(10.0), 2.0, 1, 3), [2, 4])
    assert tempo_compensated(np.arange(10.0), 2.0, 4, 2).size == 0


def test_tempo_estimate_finds_pal_speedup(track_40s, capture_log):
    logs, log_cb = capture_log
    factor = 25.0 / (24000 / 1001)
    tgt = stretched(track_40s, factor)
    tempo = estimate_tempo(_env(track_40s), _env(tgt), 2000, log=log_cb)
    assert tempo.is_compensated
    assert tempo.factor == pytest.approx(factor, abs=0.001)
    assert tempo.similarity > tempo.baseline_similarity + 0.1
    assert any('[TEMPO]' in line for line in logs)


def test_tempo_estimate_keeps_unit_factor_for_plain_delay(track_40s):
    tgt = delayed(track_40s, 437)
    tempo = estimate_tempo(_env(track_40s), _env(tgt), 2000)
    assert tempo.factor == 1.0
    assert not tempo.is_compensated
    assert tempo.offset_ms == pytest.approx(437, abs=10)
    assert tempo.similarity > 0.9


def test_tempo_estimate_on_unrelated_material(track_40s):
    other = make_burst_track(40.0, seed=44)
    tempo = estimate_tempo(_env(track_40s), _env(other), 2000)
    assert tempo.factor == 1.0
    assert tempo.similarity < 0.5
