# tests/fakes.py
from typing import Callable, Dict, List, Optional
from datetime import datetime
from pathlib import Path

import numpy as np

from dubsync_core.errors import CommandTimeoutError


class FakeCommandRunner:
    """
    Stand-in for dubsync_core.io.runner.CommandRunner used by tests.
    - Captures all calls in self.calls
    - Serves int16 PCM for registered file names, honouring -ss / -t / -ar
    - Can simulate decoder failures and timeouts per file name
    """
    def __init__(self, config: Optional[dict] = None, log_callback: Optional[Callable[[str], None]] = None):
        self.config = config or {}
        self.log = log_callback or (lambda msg: None)
        self.calls: List[List[str]] = []
        self.audio: Dict[str, np.ndarray] = {}
        self.sample_rate = 8000
        self.fail_files: set = set()
        self.timeout_files: set = set()

    def add_audio(self, path, samples: np.ndarray):
        self.audio[Path(path).name] = np.asarray(samples, dtype=np.float64)

    def _log_message(self, message: str):
        ts = datetime.now().strftime('%H:%M:%S')
        self.log(f'[{ts}] {message}')

    @staticmethod
    def _arg(cmd: List[str], flag: str) -> Optional[str]:
        if flag in cmd:
            return cmd[cmd.index(flag) + 1]
        return None

    def run(self, cmd: List[str], tool_paths: dict, is_binary: bool = False, timeout: Optional[float] = None):
        self.calls.append(cmd)
        self._log_message('$ ' + ' '.join(str(c) for c in cmd))
        if not cmd or cmd[0] != 'ffmpeg':
            return None

        name = Path(self._arg(cmd, '-i') or '').name
        if name in self.timeout_files:
            raise CommandTimeoutError('ffmpeg', timeout or 0.0)
        if name in self.fail_files or name not in self.audio:
            return None

        samples = self.audio[name]
        rate = int(self._arg(cmd, '-ar') or self.sample_rate)
        start = self._arg(cmd, '-ss')
        duration = self._arg(cmd, '-t')
        lo = int(round(float(start) * rate)) if start else 0
        hi = lo + int(round(float(duration) * rate)) if duration else len(samples)
        chunk = samples[lo:hi]

        pcm = np.clip(np.round(chunk * 32767.0), -32768, 32767).astype('<i2').tobytes()
        return pcm if is_binary else pcm.decode('latin-1')


# -------- synthetic audio --------

SR = 8000


def make_burst_track(duration_s: float, seed: int = 0, sr: int = SR, lead_silence_s: float = 0.0,
                     noise_level: float = 0.005) -> np.ndarray:
    """Tone bursts (Hann-shaped, random pitch/length/gap) over a low noise bed."""
    rng = np.random.default_rng(seed)
    n = int(duration_s * sr)
    x = rng.standard_normal(n) * noise_level
    t = lead_silence_s + rng.uniform(0.1, 0.3)
    while True:
        length = rng.uniform(0.08, 0.35)
        start, stop = int(t * sr), int((t + length) * sr)
        if stop >= n:
            break
        m = stop - start
        f1 = rng.uniform(300.0, 2500.0)
        ts = np.arange(m) / sr
        tone = 0.7 * np.sin(2 * np.pi * f1 * ts) + 0.3 * np.sin(2 * np.pi * f1 * 1.5 * ts)
        x[start:stop] += rng.uniform(0.5, 0.9) * np.hanning(m) * tone
        t += length + rng.uniform(0.15, 0.6)
    if lead_silence_s > 0:
        x[:int(lead_silence_s * sr)] = 0.0
    return np.clip(x, -1.0, 1.0)


def delayed(samples: np.ndarray, delay_ms: float, sr: int = SR) -> np.ndarray:
    """Positive delay prepends silence; negative delay drops the start."""
    k = int(round(delay_ms * sr / 1000.0))
    if k >= 0:
        return np.concatenate([np.zeros(k), samples])
    return samples[-k:].copy()


def stretched(samples: np.ndarray, factor: float) -> np.ndarray:
    """Play `samples` slower by `factor` (> 1 means the result is longer)."""
    n_out = int(len(samples) * factor)
    return np.interp(np.arange(n_out) / factor, np.arange(len(samples)), samples)


def with_insert(samples: np.ndarray, at_s: float, insert: np.ndarray, sr: int = SR) -> np.ndarray:
    k = int(at_s * sr)
    return np.concatenate([samples[:k], insert, samples[k:]])
