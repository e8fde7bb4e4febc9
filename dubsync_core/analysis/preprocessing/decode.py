# dubsync_core/analysis/preprocessing/decode.py
"""
Audio decoding for analysis.

Decodes one audio stream of a media file to a mono float32 NumPy array by
piping 16-bit little-endian PCM out of ffmpeg.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ...errors import CommandTimeoutError, DecodeError, DecodeTimeoutError

if TYPE_CHECKING:
    from ...io.runner import CommandRunner

# Default sample rate for all analysis work
DEFAULT_SR = 8000


def build_decode_command(
    file_path: str,
    sample_rate: int,
    start_ms: float | None = None,
    duration_ms: float | None = None,
    stream_index: int = 0,
) -> list[str]:
    """Build the ffmpeg command line that writes s16le mono PCM to stdout."""
    cmd: list[str] = ["ffmpeg", "-nostdin", "-v", "error"]
    if start_ms:
        cmd.extend(["-ss", f"{start_ms / 1000.0:.3f}"])
    cmd.extend(["-i", str(file_path)])
    if duration_ms is not None:
        cmd.extend(["-t", f"{duration_ms / 1000.0:.3f}"])
    cmd.extend(
        [
            "-map",
            f"0:a:{stream_index}",
            "-vn",
            "-ac",
            "1",
            "-ar",
            str(sample_rate),
            "-f",
            "s16le",
            "-acodec",
            "pcm_s16le",
            "-",
        ]
    )
    return cmd


def decode_pcm(
    file_path: str,
    runner: CommandRunner,
    tool_paths: dict[str, str | None],
    sample_rate: int = DEFAULT_SR,
    start_ms: float | None = None,
    duration_ms: float | None = None,
    stream_index: int = 0,
    timeout_s: float | None = None,
) -> np.ndarray:
    """
    Decode one audio stream to a mono float32 NumPy array in [-1, 1).

    Args:
        file_path: Path to the media file.
        runner: CommandRunner for executing ffmpeg.
        tool_paths: Tool path dictionary.
        sample_rate: Target sample rate in Hz.
        start_ms: Optional start of the decode window.
        duration_ms: Optional length of the decode window.
        stream_index: 0-based audio stream index.
        timeout_s: Seconds before the decoder is killed.

    Returns:
        1-D float32 NumPy array of audio samples.

    Raises:
        DecodeError: Missing file, decoder failure or no audio produced.
        DecodeTimeoutError: The decoder exceeded `timeout_s`.
    """
    name = Path(file_path).name
    if not Path(file_path).exists():
        raise DecodeError(f"Input file not found: {file_path}", file_path)

    cmd = build_decode_command(file_path, sample_rate, start_ms, duration_ms, stream_index)
    try:
        pcm_bytes = runner.run(cmd, tool_paths, is_binary=True, timeout=timeout_s)
    except CommandTimeoutError as e:
        raise DecodeTimeoutError(str(file_path), e.timeout_s) from e

    if pcm_bytes is None:
        raise DecodeError(f"ffmpeg decode failed for {name}", file_path)
    if not isinstance(pcm_bytes, bytes) or not pcm_bytes:
        raise DecodeError(f"ffmpeg produced no audio for {name}", file_path)

    log = getattr(runner, "_log_message", None)

    # Ensure buffer size is a multiple of element size (2 bytes for int16)
    element_size = np.dtype("<i2").itemsize
    aligned_size = (len(pcm_bytes) // element_size) * element_size
    if aligned_size != len(pcm_bytes):
        if log:
            log(f"[BUFFER ALIGNMENT] Trimmed {len(pcm_bytes) - aligned_size} bytes from {name}")
        pcm_bytes = pcm_bytes[:aligned_size]

    # astype() copies, so the array does not keep a view over the pipe buffer
    samples = np.frombuffer(pcm_bytes, dtype="<i2").astype(np.float32) / 32768.0
    if log:
        log(f"[DECODE] {name}: {len(samples)} samples ({len(samples) / sample_rate:.1f}s @ {sample_rate} Hz)")
    return samples
