# dubsync_core/analysis/preprocessing/__init__.py
"""Decoding, envelope extraction and silence detection."""

from .decode import DEFAULT_SR, build_decode_command, decode_pcm
from .envelope import compute_envelope, extract_envelope
from .silence import detect_silence, envelope_db

__all__ = [
    "DEFAULT_SR",
    "build_decode_command",
    "decode_pcm",
    "compute_envelope",
    "extract_envelope",
    "detect_silence",
    "envelope_db",
]
