# dubsync_core/correction/__init__.py
"""Correction planning and go / no-go decisions."""

from .decision import decide, plan_correction

__all__ = ["decide", "plan_correction"]
