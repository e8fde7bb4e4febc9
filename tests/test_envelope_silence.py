# tests/test_envelope_silence.py
import numpy as np
import pytest

from dubsync_core.analysis.preprocessing import compute_envelope, detect_silence, envelope_db
from dubsync_core.models import Envelope


def test_envelope_rms_per_frame():
    x = np.concatenate([np.full(80, 0.5), np.full(80, -0.25)])
    env = compute_envelope(x, 8000, 100)
    assert env.sample_rate == 100
    assert env.frame_ms == 10.0
    assert env.samples.tolist() == pytest.approx([0.5, 0.25])


def test_envelope_drops_partial_frame():
    env = compute_envelope(np.ones(250), 8000, 100)
    assert len(env) == 3
    assert env.duration_ms == 30.0


def test_envelope_of_too_short_input_is_empty():
    env = compute_envelope(np.ones(10), 8000, 100)
    assert env.is_empty
    assert env.duration_ms == 0.0


def test_normalized_scales_loudest_frame_to_one():
    env = Envelope(np.array([0.1, 0.4, 0.2], dtype=np.float32), 100)
    norm = env.normalized()
    assert norm.samples.max() == pytest.approx(1.0)
    assert norm.samples[0] == pytest.approx(0.25)
    silent = Envelope(np.zeros(5, dtype=np.float32), 100)
    assert silent.normalized() is silent


def test_envelope_db_floor():
    env = Envelope(np.array([0.0, 1.0, 0.1], dtype=np.float32), 100)
    db = envelope_db(env)
    assert db[0] == pytest.approx(-200.0)
    assert db[1] == pytest.approx(0.0)
    assert db[2] == pytest.approx(-20.0, abs=1e-3)


def _env(levels_and_frames):
    parts = [np.full(n, level, dtype=np.float32) for level, n in levels_and_frames]
    return Envelope(np.concatenate(parts), 100)


def test_leading_and_trailing_silence_bound_the_content():
    env = _env([(0.0, 50), (0.3, 200), (0.0, 30)])
    report = detect_silence(env, noise_db=-50, min_duration_ms=100)
    assert [(r.start_ms, r.end_ms) for r in report.regions] == [(0.0, 500.0), (2500.0, 2800.0)]
    assert report.audio_start_ms == 500.0
    assert report.audio_end_ms == 2500.0
    assert report.total_silence_ms == 800.0
    assert report.has_content


def test_short_gaps_are_not_silence():
    env = _env([(0.3, 100), (0.0, 5), (0.3, 100)])
    report = detect_silence(env, min_duration_ms=100)
    assert report.regions == ()
    assert report.audio_start_ms == 0.0
    assert report.audio_end_ms == env.duration_ms


def test_all_silent_track_has_no_content():
    env = _env([(0.0, 300)])
    report = detect_silence(env)
    assert not report.has_content


def test_empty_envelope_report():
    report = detect_silence(Envelope(np.zeros(0, dtype=np.float32), 100))
    assert report.regions == ()
    assert report.total_duration_ms == 0.0
