# dubsync_core/analysis/preprocessing/silence.py
"""
Silence region detection on an RMS envelope.

Regions are frames whose level stays below a noise floor (dBFS) for at least
a minimum duration. Leading silence marks where content actually begins,
which the analyzer compares between tracks.
"""

from __future__ import annotations

import numpy as np

from ...models.audio import Envelope, SilenceRegion, SilenceReport


def envelope_db(envelope: Envelope) -> np.ndarray:
    """Envelope level in dBFS, floored at -200 dB."""
    return 20.0 * np.log10(np.maximum(envelope.samples.astype(np.float64), 1e-10))


def detect_silence(
    envelope: Envelope,
    noise_db: float = -50.0,
    min_duration_ms: float = 100.0,
) -> SilenceReport:
    """Return every run of frames below `noise_db` lasting `min_duration_ms` or more."""
    frame_ms = envelope.frame_ms
    total_ms = envelope.duration_ms
    if envelope.is_empty:
        return SilenceReport((), 0.0, frame_ms)

    quiet = envelope_db(envelope) < noise_db
    # Run boundaries: +1 where a quiet run starts, -1 one past where it ends
    edges = np.diff(np.concatenate(([0], quiet.astype(np.int8), [0])))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)

    regions = []
    for s, e in zip(starts, ends):
        start_ms = envelope.start_ms + s * frame_ms
        end_ms = envelope.start_ms + e * frame_ms
        if end_ms - start_ms >= min_duration_ms:
            regions.append(SilenceRegion(float(start_ms), float(end_ms)))

    return SilenceReport(tuple(regions), float(envelope.start_ms + total_ms), frame_ms)
