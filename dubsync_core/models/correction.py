# dubsync_core/models/correction.py
"""
Correction plan variants.

Each variant only carries the parameters that are meaningful for it. The
execution layer switches on the class (or on `type`) and builds its own
filter chain; nothing here executes anything.

Sign convention: delays are measured as target time minus reference time,
so a positive delay means the target lags the reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from .enums import CorrectionType


@dataclass(frozen=True, slots=True)
class SegmentCorrection:
    """Delay to apply to one reference-timeline span."""

    start_ms: float
    end_ms: float
    delay_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {"start_ms": self.start_ms, "end_ms": self.end_ms, "delay_ms": self.delay_ms}


@dataclass(frozen=True, slots=True)
class NoCorrection:
    type: ClassVar[CorrectionType] = CorrectionType.NONE

    is_safe: bool = True
    warnings: tuple[str, ...] = ()

    @property
    def target_shift_ms(self) -> float:
        return 0.0

    def parameters(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass(frozen=True, slots=True)
class DelayCorrection:
    """Target lags by `delay_ms`; advance it by that amount."""

    type: ClassVar[CorrectionType] = CorrectionType.DELAY

    delay_ms: int
    is_safe: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def target_shift_ms(self) -> float:
        return -float(self.delay_ms)

    def parameters(self) -> dict[str, Any]:
        return {"delay_ms": self.delay_ms}

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass(frozen=True, slots=True)
class TrimPadCorrection:
    """Target runs early: pad its start with silence, or trim the reference start."""

    type: ClassVar[CorrectionType] = CorrectionType.TRIM_PAD

    pad_start_ms: int
    trim_start_ms: int
    is_safe: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def target_shift_ms(self) -> float:
        return float(self.pad_start_ms)

    def parameters(self) -> dict[str, Any]:
        return {"pad_start_ms": self.pad_start_ms, "trim_start_ms": self.trim_start_ms}

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass(frozen=True, slots=True)
class StretchCorrection:
    """Speed the target up by `tempo_factor`, then remove the residual `delay_ms`."""

    type: ClassVar[CorrectionType] = CorrectionType.STRETCH

    tempo_factor: float
    delay_ms: int = 0
    is_safe: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def target_shift_ms(self) -> float:
        return -float(self.delay_ms)

    def parameters(self) -> dict[str, Any]:
        return {"tempo_factor": self.tempo_factor, "delay_ms": self.delay_ms}

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass(frozen=True, slots=True)
class SegmentRepairCorrection:
    """
    Per-segment delays, applied by an execution layer that can splice audio.

    plan_correction never emits this variant: multi-segment results go to
    manual review. Once a reviewer approves the segment plan, `from_manual`
    turns the ManualCorrection into this variant.
    """

    type: ClassVar[CorrectionType] = CorrectionType.SEGMENT_REPAIR

    segments: tuple[SegmentCorrection, ...]
    is_safe: bool = False
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_manual(cls, manual: ManualCorrection) -> SegmentRepairCorrection:
        """Approve the segment plan attached to a manual-review correction."""
        if len(manual.segments) < 2:
            raise ValueError("segment repair needs at least two segments")
        return cls(segments=manual.segments, warnings=(manual.reason, *manual.warnings))

    @property
    def target_shift_ms(self) -> float:
        return -float(self.segments[0].delay_ms) if self.segments else 0.0

    def parameters(self) -> dict[str, Any]:
        return {"segment_corrections": [s.to_dict() for s in self.segments]}

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass(frozen=True, slots=True)
class ManualCorrection:
    """Automatic correction rejected; a human has to look at it."""

    type: ClassVar[CorrectionType] = CorrectionType.MANUAL

    reason: str
    segments: tuple[SegmentCorrection, ...] = field(default_factory=tuple)
    is_safe: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def target_shift_ms(self) -> float:
        return 0.0

    def parameters(self) -> dict[str, Any]:
        params: dict[str, Any] = {"reason": self.reason}
        if self.segments:
            params["segment_corrections"] = [s.to_dict() for s in self.segments]
        return params

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


Correction = (
    NoCorrection
    | DelayCorrection
    | TrimPadCorrection
    | StretchCorrection
    | SegmentRepairCorrection
    | ManualCorrection
)


def _as_dict(correction: Correction) -> dict[str, Any]:
    return {
        "type": correction.type.value,
        "parameters": correction.parameters(),
        "is_safe": correction.is_safe,
        "warnings": list(correction.warnings),
    }
