# dubsync_core/analysis/__init__.py
"""Sync analysis pipeline."""

from .analyzer import SyncAnalyzer

__all__ = ["SyncAnalyzer"]
