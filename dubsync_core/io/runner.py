# dubsync_core/io/runner.py

# -*- coding: utf-8 -*-

"""
Wrapper for running external command-line processes (ffmpeg decoding).
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections import deque
from datetime import datetime
from typing import Callable, Optional, Union

from ..errors import CommandTimeoutError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Executes external commands and logs what happened."""

    def __init__(self, config: dict | None = None, log_callback: Callable[[str], None] | None = None):
        self.config = config or {}
        self.log = log_callback or logger.info

    def _log_message(self, message: str):
        """Formats and sends a message to the log callback."""
        ts = datetime.now().strftime('%H:%M:%S')
        self.log(f'[{ts}] {message}')

    def run(
        self,
        cmd: list[str],
        tool_paths: dict,
        is_binary: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[Union[str, bytes]]:
        """
        Executes a command and returns its captured stdout.

        Returns stdout as a string, or bytes if is_binary=True.
        Returns None when the command fails or cannot be started.
        Raises CommandTimeoutError when `timeout` seconds elapse first.
        """
        if not cmd:
            return None

        tool_name = cmd[0]
        full_cmd = [tool_paths.get(tool_name) or tool_name] + list(map(str, cmd[1:]))
        pretty_cmd = ' '.join(shlex.quote(c) for c in full_cmd)
        self._log_message(f'$ {pretty_cmd}')

        err_tail = int(self.config.get('log_error_tail', 20))

        try:
            proc = subprocess.Popen(full_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            self._log_message(f'[!] Failed to execute command: {e}')
            return None

        try:
            stdout_data, stderr_data = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            self._log_message(f'[!] {tool_name} timed out after {timeout:.1f}s')
            raise CommandTimeoutError(tool_name, timeout)

        rc = proc.returncode or 0
        if rc != 0:
            self._log_message(f'[!] Command failed with exit code {rc}')
            if err_tail > 0 and stderr_data:
                text = stderr_data.decode('utf-8', errors='replace')
                tail = deque(text.splitlines(), maxlen=err_tail)
                if tail:
                    self._log_message('[stderr/tail]\n' + '\n'.join(tail))
            return None

        if is_binary:
            return stdout_data
        return stdout_data.decode('utf-8', errors='replace')
