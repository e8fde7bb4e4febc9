# dubsync_core/cancellation.py
"""Cooperative cancellation for long-running analyses."""

from __future__ import annotations

import threading

from .errors import AnalysisCancelledError


class CancellationToken:
    """Thread-safe flag checked by the analyzer between major stages."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise AnalysisCancelledError(stage)
