# dubsync_core/io/__init__.py
from .runner import CommandRunner

__all__ = ["CommandRunner"]
