# dubsync_core/models/results.py
"""
Root output values of an analysis call.

`SyncAnalysisResult` is created once per analysis and never mutated; the
analyzer attaches the planned correction with `dataclasses.replace`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .audio import OffsetSegment
from .correction import Correction, NoCorrection
from .enums import CorrectionType, DifferenceType, EventType, SyncStatus


@dataclass(frozen=True, slots=True)
class StructuralDifference:
    """A cut or insertion localized on the reference timeline."""

    type: DifferenceType
    reference_start_ms: float
    duration_ms: float
    delay_before_ms: float  # Offset of the segment before the break
    delay_after_ms: float  # Offset of the segment after the break

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "reference_start_ms": round(self.reference_start_ms, 1),
            "duration_ms": round(self.duration_ms, 1),
            "delay_before_ms": round(self.delay_before_ms, 1),
            "delay_after_ms": round(self.delay_after_ms, 1),
        }


@dataclass(frozen=True, slots=True)
class SyncEvent:
    """One entry of the ordered detection audit trail."""

    type: EventType
    timestamp_ms: float
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type.value, "timestamp_ms": round(self.timestamp_ms, 1)}
        if self.detail:
            d["detail"] = self.detail
        return d


@dataclass(frozen=True, slots=True)
class AnalysisMetadata:
    reference_file: str
    target_file: str
    reference_duration_ms: float
    target_duration_ms: float
    analysis_time_ms: float = 0.0
    methods_used: tuple[str, ...] = ()
    deep_analysis: bool = False
    min_confidence: float = 0.0  # Caller's confidence gate for decide()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference_file": self.reference_file,
            "target_file": self.target_file,
            "reference_duration_ms": round(self.reference_duration_ms, 1),
            "target_duration_ms": round(self.target_duration_ms, 1),
            "analysis_time_ms": round(self.analysis_time_ms, 1),
            "methods_used": list(self.methods_used),
            "deep_analysis": self.deep_analysis,
            "min_confidence": self.min_confidence,
        }


@dataclass(frozen=True)
class SyncAnalysisResult:
    """Complete verdict on how the target relates to the reference."""

    status: SyncStatus
    global_delay_ms: int  # target - reference; positive = target late
    confidence: float
    similarity: float
    is_same_source: bool
    has_drift: bool
    drift_rate_ms_per_sec: float
    structural_differences: tuple[StructuralDifference, ...]
    segments: tuple[OffsetSegment, ...]
    metadata: AnalysisMetadata
    events: tuple[SyncEvent, ...] = ()
    correction: Correction = field(default_factory=NoCorrection)
    tempo_factor: float = 1.0
    drift_intercept_ms: float = 0.0
    correlation_confidence: float = 0.0
    peak_confidence: float = 0.0
    offset_disagreement_ms: float | None = None
    leading_silence_diff_ms: float = 0.0  # target - reference content start
    reasoning: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def has_structural_differences(self) -> bool:
        return bool(self.structural_differences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "global_delay_ms": self.global_delay_ms,
            "confidence": round(self.confidence, 4),
            "similarity": round(self.similarity, 4),
            "is_same_source": self.is_same_source,
            "has_drift": self.has_drift,
            "drift_rate_ms_per_sec": round(self.drift_rate_ms_per_sec, 4),
            "tempo_factor": self.tempo_factor,
            "has_structural_differences": self.has_structural_differences,
            "structural_differences": [d.to_dict() for d in self.structural_differences],
            "segments": [s.to_dict() for s in self.segments],
            "correlation_confidence": round(self.correlation_confidence, 4),
            "peak_confidence": round(self.peak_confidence, 4),
            "offset_disagreement_ms": (
                None if self.offset_disagreement_ms is None else round(self.offset_disagreement_ms, 1)
            ),
            "leading_silence_diff_ms": round(self.leading_silence_diff_ms, 1),
            "metadata": self.metadata.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "reasoning": list(self.reasoning),
            "warnings": list(self.warnings),
            "correction": self.correction.to_dict(),
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


@dataclass(frozen=True)
class SyncDecision:
    """Data handed to the execution layer. Carries no behaviour."""

    result: SyncAnalysisResult
    should_correct: bool
    correction: Correction
    confidence: float
    reasoning: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def correction_type(self) -> CorrectionType:
        return self.correction.type

    @property
    def parameters(self) -> dict[str, Any]:
        return self.correction.parameters()

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_correct": self.should_correct,
            "correction_type": self.correction_type.value,
            "parameters": self.parameters,
            "confidence": round(self.confidence, 4),
            "reasoning": list(self.reasoning),
            "warnings": list(self.warnings),
            "result": self.result.to_dict(),
        }
