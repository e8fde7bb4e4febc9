# dubsync_core/correction/decision.py
# -*- coding: utf-8 -*-
"""
Correction decision engine.

Pure mapping from a finished SyncAnalysisResult to a correction plan and a
go / no-go verdict. Conservative by construction: anything uncertain ends in
a Manual correction or should_correct=False, never in a guessed fix.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from ..models.correction import (
    Correction,
    DelayCorrection,
    ManualCorrection,
    NoCorrection,
    SegmentCorrection,
    StretchCorrection,
    TrimPadCorrection,
)
from ..models.enums import SyncStatus
from ..models.results import SyncAnalysisResult, SyncDecision
from ..models.settings import AnalysisSettings

logger = logging.getLogger(__name__)

SEVERE_DRIFT_REASON = "drift too severe for safe automatic correction"
MULTI_SEGMENT_REASON = "multiple segments with different offsets require manual review"
UNSYNCABLE_REASON = "tracks could not be aligned with sufficient confidence"


def _delay_is_safe(delay_ms: float, confidence: float, settings: AnalysisSettings) -> bool:
    return confidence > settings.safe_delay_confidence and abs(delay_ms) < settings.safe_delay_limit_ms


def _delay_warnings(delay_ms: float, confidence: float, settings: AnalysisSettings) -> tuple[str, ...]:
    warnings = []
    if abs(delay_ms) >= settings.safe_delay_limit_ms:
        warnings.append(f"Delay of {abs(delay_ms):.0f}ms exceeds the {settings.safe_delay_limit_ms:g}ms safety limit")
    if confidence <= settings.safe_delay_confidence:
        warnings.append(f"Confidence {confidence:.2f} is below {settings.safe_delay_confidence:g}")
    return tuple(warnings)


def _offset_correction(delay_ms: int, confidence: float, settings: AnalysisSettings) -> Correction:
    safe = _delay_is_safe(delay_ms, confidence, settings)
    warnings = _delay_warnings(delay_ms, confidence, settings)
    if delay_ms > 0:
        return DelayCorrection(delay_ms=delay_ms, is_safe=safe, warnings=warnings)
    if delay_ms < 0:
        return TrimPadCorrection(
            pad_start_ms=-delay_ms, trim_start_ms=-delay_ms, is_safe=safe, warnings=warnings
        )
    return NoCorrection(warnings=("Segment offsets deviate although the global delay is zero",))


def plan_correction(
    result: SyncAnalysisResult, settings: Optional[AnalysisSettings] = None
) -> Correction:
    """Map an analysis result to the correction variant for its status."""
    settings = settings or AnalysisSettings()
    status = result.status

    if status is SyncStatus.IN_SYNC:
        return NoCorrection()

    if status is SyncStatus.OFFSET:
        return _offset_correction(result.global_delay_ms, result.confidence, settings)

    if status is SyncStatus.DRIFT:
        if abs(result.drift_rate_ms_per_sec) > settings.severe_drift_ms_per_s:
            return ManualCorrection(
                reason=SEVERE_DRIFT_REASON,
                warnings=(
                    SEVERE_DRIFT_REASON,
                    f"Drift of {result.drift_rate_ms_per_sec:+.1f} ms/s cannot be fixed by a delay "
                    "and is too large for a safe tempo change",
                ),
            )
        deviation = abs(result.tempo_factor - 1.0)
        safe = deviation < settings.safe_tempo_deviation
        warnings = () if safe else (
            f"Tempo change of {deviation * 100:.2f}% exceeds the "
            f"{settings.safe_tempo_deviation * 100:g}% safety limit",
        )
        return StretchCorrection(
            tempo_factor=result.tempo_factor,
            delay_ms=int(round(result.drift_intercept_ms)),
            is_safe=safe,
            warnings=warnings,
        )

    if status is SyncStatus.STRUCTURAL_DIFFERENCE:
        if len(result.segments) <= 1:
            # A single segment degrades to a plain delay
            delay = int(round(result.segments[0].offset_ms)) if result.segments else result.global_delay_ms
            return _offset_correction(delay, result.confidence, settings)
        segments = tuple(
            SegmentCorrection(s.start_ms, s.end_ms, int(round(s.offset_ms))) for s in result.segments
        )
        return ManualCorrection(
            reason=MULTI_SEGMENT_REASON,
            segments=segments,
            warnings=tuple(
                f"{d.type.value} of {d.duration_ms:.0f}ms at {d.reference_start_ms / 1000.0:.2f}s"
                for d in result.structural_differences
            ),
        )

    return ManualCorrection(reason=UNSYNCABLE_REASON)


def decide(
    result: SyncAnalysisResult,
    min_confidence: float = 0.5,
    settings: Optional[AnalysisSettings] = None,
    log: Optional[Callable[[str], None]] = None,
) -> SyncDecision:
    """
    Combine a result and its correction plan into the final verdict.

    should_correct requires an actionable status and a non-manual plan. The
    confidence has to exceed the strictest of decision_confidence, the
    min_confidence argument and the gate recorded by the analyzer. The
    tracks must also be from the same source.
    """
    settings = settings or AnalysisSettings()
    log = log or logger.info
    correction = plan_correction(result, settings)
    gate = max(settings.decision_confidence, min_confidence, result.metadata.min_confidence)

    reasoning = list(result.reasoning)
    reasoning.append(f"Status: {result.status.value} (confidence {result.confidence:.2f})")
    warnings = list(result.warnings) + [w for w in correction.warnings if w not in result.warnings]

    actionable = result.status not in (SyncStatus.IN_SYNC, SyncStatus.UNSYNCABLE)
    confident = result.confidence > gate
    automatic = not isinstance(correction, ManualCorrection)

    if result.status is SyncStatus.IN_SYNC:
        reasoning.append("Tracks are already in sync; nothing to do")
    elif result.status is SyncStatus.UNSYNCABLE:
        reasoning.append("Neither peak matching nor correlation produced usable evidence")
    else:
        reasoning.append(f"Global delay {result.global_delay_ms:+d}ms")
        if result.has_drift:
            reasoning.append(
                f"Drift {result.drift_rate_ms_per_sec:+.3f} ms/s, tempo factor {result.tempo_factor:.6f}"
            )
        if result.has_structural_differences:
            reasoning.append(f"{len(result.structural_differences)} structural difference(s) detected")

    reasoning.append(f"Planned correction: {correction.type.value} {correction.parameters()}")

    if actionable and not confident:
        reasoning.append(f"Confidence {result.confidence:.2f} does not exceed {gate:g}; not correcting")
        warnings.append(f"Low confidence ({result.confidence:.2f})")
    if actionable and not automatic:
        reasoning.append(f"Automatic correction rejected: {correction.reason}")
    if not result.is_same_source:
        reasoning.append("Same-source check failed; refusing to correct different material")
        warnings.append("Tracks do not appear to come from the same source")
    if actionable and automatic and not correction.is_safe:
        warnings.append("Correction is outside the safe limits; review recommended")

    should_correct = actionable and confident and automatic and result.is_same_source
    reasoning.append("Decision: apply correction" if should_correct else "Decision: do not correct")

    log(
        f"[DECISION] should_correct={should_correct}, type={correction.type.value}, "
        f"confidence={result.confidence:.3f}"
    )
    return SyncDecision(
        result=result,
        should_correct=should_correct,
        correction=correction,
        confidence=result.confidence,
        reasoning=tuple(reasoning),
        warnings=tuple(warnings),
    )
