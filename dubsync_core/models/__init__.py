# dubsync_core/models/__init__.py
"""
Centralized model definitions for the sync analysis engine.

    from dubsync_core.models import (
        # Signal models
        Envelope, AudioPeak, PeakMatch, OffsetSegment, SilenceRegion, SilenceReport,
        # Corrections
        Correction, NoCorrection, DelayCorrection, TrimPadCorrection,
        StretchCorrection, SegmentRepairCorrection, ManualCorrection,
        # Results
        SyncAnalysisResult, SyncDecision, StructuralDifference, SyncEvent,
        # Settings
        AnalysisSettings, AnalysisOptions,
    )

Model Organization:
    - enums.py: Status, peak, correction, difference and event enums
    - audio.py: Envelope, peaks, matches, segments, silence
    - correction.py: Correction tagged union
    - results.py: SyncAnalysisResult, SyncDecision and their parts
    - settings.py: AnalysisSettings, AnalysisOptions
"""

from .audio import AudioPeak, Envelope, OffsetSegment, PeakMatch, SilenceRegion, SilenceReport
from .correction import (
    Correction,
    DelayCorrection,
    ManualCorrection,
    NoCorrection,
    SegmentCorrection,
    SegmentRepairCorrection,
    StretchCorrection,
    TrimPadCorrection,
)
from .enums import CorrectionType, DifferenceType, EventType, PeakType, SyncStatus
from .results import (
    AnalysisMetadata,
    StructuralDifference,
    SyncAnalysisResult,
    SyncDecision,
    SyncEvent,
)
from .settings import AnalysisOptions, AnalysisSettings

__all__ = [
    # Enums
    "SyncStatus",
    "PeakType",
    "CorrectionType",
    "DifferenceType",
    "EventType",
    # Signal
    "Envelope",
    "AudioPeak",
    "PeakMatch",
    "OffsetSegment",
    "SilenceRegion",
    "SilenceReport",
    # Correction
    "Correction",
    "NoCorrection",
    "DelayCorrection",
    "TrimPadCorrection",
    "StretchCorrection",
    "SegmentRepairCorrection",
    "ManualCorrection",
    "SegmentCorrection",
    # Results
    "StructuralDifference",
    "SyncEvent",
    "AnalysisMetadata",
    "SyncAnalysisResult",
    "SyncDecision",
    # Settings
    "AnalysisSettings",
    "AnalysisOptions",
]
