# dubsync_core/analysis/correlation/__init__.py
"""Global cross-correlation, fingerprinting, tempo search and windowed offset scan."""

from .estimator import estimate_global_offset, refine_on_pcm
from .fingerprint import AudioFingerprinter, Fingerprint
from .scc import full_correlation, overlap_pearson
from .windows import estimate_tempo, scan_window_offsets, tempo_compensated, window_starts

__all__ = [
    "estimate_global_offset",
    "refine_on_pcm",
    "AudioFingerprinter",
    "Fingerprint",
    "full_correlation",
    "overlap_pearson",
    "estimate_tempo",
    "scan_window_offsets",
    "tempo_compensated",
    "window_starts",
]
