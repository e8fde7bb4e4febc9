# dubsync_core/analysis/peaks/__init__.py
"""Peak detection and peak-offset voting."""

from .detector import detect_peaks
from .matcher import group_into_segments, match_confidence, match_peaks

__all__ = ["detect_peaks", "match_peaks", "match_confidence", "group_into_segments"]
