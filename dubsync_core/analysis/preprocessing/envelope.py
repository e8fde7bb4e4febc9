# dubsync_core/analysis/preprocessing/envelope.py
"""
RMS envelope extraction.

The envelope is the low-rate (default 100 Hz) amplitude-over-time signal
that the peak detector, silence detector and envelope correlation work on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from ...models.audio import Envelope
from .decode import DEFAULT_SR, decode_pcm

if TYPE_CHECKING:
    from ...io.runner import CommandRunner

DEFAULT_ENVELOPE_RATE = 100


def compute_envelope(
    samples: np.ndarray,
    sample_rate: int,
    envelope_rate: int = DEFAULT_ENVELOPE_RATE,
    start_ms: float = 0.0,
) -> Envelope:
    """
    RMS over non-overlapping windows of sample_rate / envelope_rate samples.

    A trailing partial window is dropped so every frame covers the same span.
    """
    hop = max(1, sample_rate // envelope_rate)
    n_frames = len(samples) // hop
    if n_frames == 0:
        return Envelope(np.zeros(0, dtype=np.float32), envelope_rate, start_ms)

    frames = np.asarray(samples[: n_frames * hop], dtype=np.float64).reshape(n_frames, hop)
    rms = np.sqrt(np.mean(frames * frames, axis=1))
    return Envelope(rms.astype(np.float32), envelope_rate, start_ms)


def extract_envelope(
    file_path: str,
    runner: CommandRunner,
    tool_paths: dict[str, str | None],
    start_ms: float | None = None,
    end_ms: float | None = None,
    sample_rate: int = DEFAULT_SR,
    envelope_rate: int = DEFAULT_ENVELOPE_RATE,
    stream_index: int = 0,
    timeout_s: float | None = None,
) -> Envelope:
    """Decode the `[start_ms, end_ms)` window of a file and return its envelope."""
    duration_ms = None
    if end_ms is not None:
        duration_ms = max(0.0, end_ms - (start_ms or 0.0))
    samples = decode_pcm(
        file_path,
        runner,
        tool_paths,
        sample_rate=sample_rate,
        start_ms=start_ms,
        duration_ms=duration_ms,
        stream_index=stream_index,
        timeout_s=timeout_s,
    )
    return compute_envelope(samples, sample_rate, envelope_rate, start_ms=start_ms or 0.0)
