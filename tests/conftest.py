# tests/conftest.py
from pathlib import Path

import numpy as np
import pytest

from tests.fakes import FakeCommandRunner, make_burst_track


@pytest.fixture
def capture_log():
    lines = []
    def cb(msg: str):
        lines.append(msg)
    return lines, cb


@pytest.fixture
def media(tmp_path: Path):
    """Create empty placeholder files; decoding is served by FakeCommandRunner."""
    def make(name: str) -> str:
        path = tmp_path / name
        path.write_bytes(b"")
        return str(path)
    return make


@pytest.fixture
def fake_runner(capture_log):
    _, log_cb = capture_log
    return FakeCommandRunner({'log_error_tail': 20}, log_cb)


@pytest.fixture
def load_pair(media, fake_runner):
    """Register a reference/target pair with the fake runner and return their paths."""
    def load(ref_samples: np.ndarray, tgt_samples: np.ndarray):
        ref = media("REF.mka")
        tgt = media("TGT.mka")
        fake_runner.add_audio(ref, ref_samples)
        fake_runner.add_audio(tgt, tgt_samples)
        return ref, tgt
    return load


@pytest.fixture(scope="session")
def track_60s() -> np.ndarray:
    return make_burst_track(60.0, seed=1, lead_silence_s=0.5)


@pytest.fixture(scope="session")
def track_120s() -> np.ndarray:
    return make_burst_track(120.0, seed=2)
