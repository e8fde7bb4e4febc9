# dubsync_core/models/audio.py
"""
Signal-level models shared by the extraction, peak and segment stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .enums import PeakType


@dataclass(frozen=True, eq=False)
class Envelope:
    """Mono amplitude envelope sampled at a low fixed rate."""

    samples: np.ndarray  # RMS amplitude per frame, float32
    sample_rate: int  # Frames per second (default 100)
    start_ms: float = 0.0  # Position of frame 0 in the source file

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def frame_ms(self) -> float:
        return 1000.0 / self.sample_rate

    @property
    def duration_ms(self) -> float:
        return len(self.samples) * self.frame_ms

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0

    def normalized(self) -> Envelope:
        """Return a copy scaled so the loudest frame is 1.0."""
        if self.is_empty:
            return self
        peak = float(np.max(self.samples))
        if peak <= 0.0:
            return self
        return Envelope(
            samples=(self.samples / peak).astype(np.float32),
            sample_rate=self.sample_rate,
            start_ms=self.start_ms,
        )


@dataclass(frozen=True, slots=True)
class AudioPeak:
    """A transient or sustained maximum in one track's envelope."""

    timestamp_ms: float
    amplitude: float  # 0-1
    duration_ms: float
    type: PeakType
    confidence: float  # 0-1

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "amplitude": self.amplitude,
            "duration_ms": self.duration_ms,
            "type": self.type.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class PeakMatch:
    """One reference peak paired with one target peak."""

    reference_peak: AudioPeak
    target_peak: AudioPeak
    offset_ms: float  # target.timestamp - reference.timestamp
    confidence: float


@dataclass(frozen=True, slots=True)
class OffsetSegment:
    """Contiguous run of observations sharing one offset."""

    start_ms: float
    end_ms: float
    offset_ms: float
    match_count: int

    @property
    def midpoint_ms(self) -> float:
        return (self.start_ms + self.end_ms) / 2.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_ms": round(self.start_ms, 1),
            "end_ms": round(self.end_ms, 1),
            "offset_ms": round(self.offset_ms, 2),
            "match_count": self.match_count,
        }


@dataclass(frozen=True, slots=True)
class SilenceRegion:
    start_ms: float
    end_ms: float

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class SilenceReport:
    """Ordered silence regions of one track plus derived content boundaries."""

    regions: tuple[SilenceRegion, ...]
    total_duration_ms: float
    frame_ms: float = 10.0

    @property
    def audio_start_ms(self) -> float:
        """First non-silent position."""
        if self.regions and self.regions[0].start_ms <= 0.0:
            return self.regions[0].end_ms
        return 0.0

    @property
    def audio_end_ms(self) -> float:
        """Last non-silent position."""
        if self.regions and self.total_duration_ms - self.regions[-1].end_ms < self.frame_ms:
            return self.regions[-1].start_ms
        return self.total_duration_ms

    @property
    def total_silence_ms(self) -> float:
        return sum(r.duration_ms for r in self.regions)

    @property
    def has_content(self) -> bool:
        return self.audio_end_ms > self.audio_start_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "audio_start_ms": self.audio_start_ms,
            "audio_end_ms": self.audio_end_ms,
            "total_silence_ms": self.total_silence_ms,
            "total_duration_ms": self.total_duration_ms,
            "regions": [r.to_dict() for r in self.regions],
        }
