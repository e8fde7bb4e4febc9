# dubsync_core/analysis/types.py
"""
Analysis-specific result types.

These dataclasses represent the output of analysis module functions.
They are local to the analysis package; the public result value is
`dubsync_core.models.SyncAnalysisResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..models.audio import OffsetSegment, PeakMatch
from ..models.enums import SyncStatus
from ..models.results import StructuralDifference, SyncEvent


@dataclass(frozen=True, slots=True)
class ChunkResult:
    """Result from correlating one reference window against the target."""

    index: int  # Window number in scan order
    start_ms: float  # Window start on the reference timeline
    end_ms: float  # Window end on the reference timeline
    delay_ms: float  # Target - reference offset found for this window
    match: float  # Normalized correlation at the best lag (0-1)
    accepted: bool  # True if match and margin clear their thresholds
    margin: float = 0.0  # match minus the best competing lag

    @property
    def midpoint_s(self) -> float:
        return (self.start_ms + self.end_ms) / 2000.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "delay_ms": round(self.delay_ms, 2),
            "match": round(self.match, 4),
            "margin": round(self.margin, 4),
            "accepted": self.accepted,
        }


@dataclass(frozen=True, slots=True)
class PeakMatchResult:
    """Outcome of offset-histogram voting between two peak lists."""

    matches: tuple[PeakMatch, ...]
    average_offset_ms: float
    offset_std_ms: float
    segments: tuple[OffsetSegment, ...]
    confidence: float  # 0-1
    dominant_offset_ms: float  # Centre of the winning histogram cluster
    reference_count: int  # Peaks available on each side
    target_count: int

    @property
    def match_count(self) -> int:
        return len(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_count": self.match_count,
            "average_offset_ms": round(self.average_offset_ms, 2),
            "offset_std_ms": round(self.offset_std_ms, 2),
            "dominant_offset_ms": self.dominant_offset_ms,
            "confidence": round(self.confidence, 4),
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass(frozen=True, slots=True)
class FingerprintComparison:
    """Landmark-hash comparison of two tracks."""

    offset_ms: float  # Most voted target - reference hash offset
    similarity: float  # Agreeing hashes / smaller hash count (0-1)
    matched_hashes: int
    reference_hashes: int
    target_hashes: int
    is_same_source: bool


@dataclass(frozen=True, slots=True)
class GlobalEstimate:
    """Single whole-signal delay estimate plus same-source verdict."""

    delay_ms: float  # target - reference; positive = target late
    confidence: float  # similarity x distinctiveness (0-1)
    similarity: float  # Normalized correlation at the best lag (0-1)
    distinctiveness: float  # Margin of the peak over the runner-up (0-1)
    is_same_source: bool
    method: str  # "envelope", "envelope+pcm", "fingerprint+envelope+pcm", ...
    fingerprint: FingerprintComparison | None = None

    def to_dict(self) -> dict[str, Any]:
        d = {
            "delay_ms": round(self.delay_ms, 2),
            "confidence": round(self.confidence, 4),
            "similarity": round(self.similarity, 4),
            "distinctiveness": round(self.distinctiveness, 4),
            "is_same_source": self.is_same_source,
            "method": self.method,
        }
        if self.fingerprint is not None:
            d["fingerprint_similarity"] = round(self.fingerprint.similarity, 4)
            d["fingerprint_offset_ms"] = self.fingerprint.offset_ms
        return d


@dataclass(frozen=True, slots=True)
class TempoEstimate:
    """Speed ratio that best lines the target envelope up with the reference."""

    factor: float  # Target duration / reference duration; 1.0 = same speed
    similarity: float  # Normalized correlation after compensating the factor
    baseline_similarity: float  # Same measure at factor 1.0
    offset_ms: float = 0.0  # Offset on the compensated timeline

    @property
    def is_compensated(self) -> bool:
        return self.factor != 1.0


@dataclass(frozen=True, slots=True)
class DriftFit:
    """Linear regression of delay against time."""

    slope_ms_per_s: float
    intercept_ms: float  # Delay at t=0 of the fitted line
    r_squared: float
    point_count: int
    has_drift: bool
    is_severe: bool

    @property
    def tempo_factor(self) -> float:
        """Speed factor that removes the drift when applied to the target."""
        return 1.0 + self.slope_ms_per_s / 1000.0


@dataclass(frozen=True, slots=True)
class SegmentAnalysis:
    """Classification produced by the segment/drift analyzer."""

    status: SyncStatus
    global_delay_ms: float
    confidence: float
    correlation_confidence: float
    peak_confidence: float
    segments: tuple[OffsetSegment, ...]
    structural_differences: tuple[StructuralDifference, ...]
    drift: DriftFit | None
    events: tuple[SyncEvent, ...]
    reasoning: tuple[str, ...]
    warnings: tuple[str, ...]
    delay_source: str  # "correlation", "segment_consensus", "weighted_average", "none"
    offset_disagreement_ms: float | None = None
    window_confidence: float = 0.0
