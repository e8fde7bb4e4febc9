# dubsync_core/errors.py
"""
Error taxonomy for the sync analysis engine.

Only decoding problems are fatal. Everything that makes a pair of tracks
hard to align is reported through the analysis result (status/confidence),
never through an exception.
"""

from __future__ import annotations


class SyncEngineError(Exception):
    """Base class for all engine errors."""


class CommandTimeoutError(SyncEngineError):
    """An external command exceeded its timeout."""

    def __init__(self, tool: str, timeout_s: float):
        super().__init__(f"{tool} did not finish within {timeout_s:.1f}s")
        self.tool = tool
        self.timeout_s = timeout_s


class DecodeError(SyncEngineError):
    """Missing file, unsupported codec or decoder failure."""

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(message)
        self.file_path = file_path


class DecodeTimeoutError(SyncEngineError, TimeoutError):
    """Decoding did not finish in time. Callers may retry with a shorter window."""

    def __init__(self, file_path: str, timeout_s: float):
        super().__init__(f"Decoding {file_path} timed out after {timeout_s:.1f}s")
        self.file_path = file_path
        self.timeout_s = timeout_s


class InsufficientDataError(SyncEngineError):
    """Track too short or too quiet to extract an envelope or peaks.

    Raised inside the analyzer only; it is converted into an UNSYNCABLE result.
    """


class AnalysisCancelledError(SyncEngineError):
    """The caller cancelled the analysis between stages."""

    def __init__(self, stage: str):
        super().__init__(f"Analysis cancelled before stage '{stage}'")
        self.stage = stage
