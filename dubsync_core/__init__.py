# dubsync_core/__init__.py
"""Audio synchronization analysis engine."""

from .analysis.analyzer import SyncAnalyzer
from .cancellation import CancellationToken
from .correction.decision import decide, plan_correction
from .errors import (
    AnalysisCancelledError,
    DecodeError,
    DecodeTimeoutError,
    InsufficientDataError,
    SyncEngineError,
)
from .models import AnalysisOptions, AnalysisSettings, SyncAnalysisResult, SyncDecision

__all__ = [
    "SyncAnalyzer",
    "CancellationToken",
    "decide",
    "plan_correction",
    "AnalysisOptions",
    "AnalysisSettings",
    "SyncAnalysisResult",
    "SyncDecision",
    "SyncEngineError",
    "DecodeError",
    "DecodeTimeoutError",
    "InsufficientDataError",
    "AnalysisCancelledError",
]
