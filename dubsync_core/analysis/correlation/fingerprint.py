# dubsync_core/analysis/correlation/fingerprint.py
# -*- coding: utf-8 -*-
"""
Landmark audio fingerprinting using spectrogram peak pairs.

Each fingerprint is a set of integer hashes built from (freq1, freq2, dt)
of nearby spectrogram peaks, each tagged with its anchor frame. Two tracks
from the same recording share many hashes at one consistent frame offset;
unrelated material only produces scattered collisions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy import signal
from scipy.ndimage import maximum_filter

from ..types import FingerprintComparison

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Fingerprint:
    """Landmark hashes of one track."""

    hashes: np.ndarray  # int64 landmark hashes
    times: np.ndarray  # int64 anchor frame of each hash
    frame_ms: float  # Duration of one STFT hop

    def __len__(self) -> int:
        return len(self.hashes)


class AudioFingerprinter:
    """Generate and compare landmark fingerprints."""

    def __init__(self, sample_rate: int, log_func: Optional[Callable[[str], None]] = None):
        self.sample_rate = sample_rate
        self.log = log_func or logger.info

        # Spectrogram parameters
        self.fft_window_size = 1024  # 128ms at 8kHz
        self.hop_size = self.fft_window_size // 2

        # Peak detection parameters
        self.peak_neighborhood = (15, 5)  # (freq bins, frames) of the local maxima filter
        self.min_peak_amplitude = 0.05  # Absolute floor on the log-magnitude scale
        self.max_peaks_per_frame = 5

        # Hash parameters
        self.target_zone_size = 5  # Number of following peaks paired with each anchor
        self.min_time_delta = 1
        self.max_time_delta = 63  # Frames; must fit in 8 bits

        # Comparison parameters
        self.max_hash_occurrences = 20  # Reference anchors kept per hash value
        self.min_hashes = 10

    @property
    def frame_ms(self) -> float:
        return self.hop_size / self.sample_rate * 1000.0

    def generate(self, audio: np.ndarray, duration_limit_s: Optional[float] = None) -> Fingerprint:
        """Fingerprint the first `duration_limit_s` seconds of a mono signal."""
        if duration_limit_s is not None:
            audio = audio[: int(duration_limit_s * self.sample_rate)]
        if len(audio) < self.fft_window_size * 2:
            return Fingerprint(np.zeros(0, np.int64), np.zeros(0, np.int64), self.frame_ms)

        spectrogram = self._generate_spectrogram(audio)
        peak_times, peak_freqs = self._find_peaks(spectrogram)
        hashes, times = self._generate_hashes(peak_times, peak_freqs)
        return Fingerprint(hashes, times, self.frame_ms)

    def _generate_spectrogram(self, audio: np.ndarray) -> np.ndarray:
        """Log-magnitude STFT, shape (freq, time)."""
        audio_float = audio.astype(np.float32) / (np.abs(audio).max() + 1e-9)
        window = signal.windows.hann(self.fft_window_size)
        _, _, Zxx = signal.stft(
            audio_float,
            fs=self.sample_rate,
            window=window,
            nperseg=self.fft_window_size,
            noverlap=self.fft_window_size - self.hop_size,
        )
        return np.log1p(np.abs(Zxx) * 100)

    def _find_peaks(self, spectrogram: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Local maxima of the spectrogram, strongest `max_peaks_per_frame` per frame.

        Returns (time_idx, freq_idx) arrays sorted by time, then frequency.
        """
        local_max = maximum_filter(spectrogram, size=self.peak_neighborhood, mode='constant')
        threshold = max(self.min_peak_amplitude, float(spectrogram.mean() + spectrogram.std()))
        is_peak = (spectrogram == local_max) & (spectrogram > threshold)

        freq_idx, time_idx = np.nonzero(is_peak)
        if freq_idx.size == 0:
            return np.zeros(0, np.int64), np.zeros(0, np.int64)
        amps = spectrogram[freq_idx, time_idx]

        # Rank peaks inside each frame by amplitude
        order = np.lexsort((-amps, time_idx))
        t_sorted = time_idx[order]
        first_of_frame = np.flatnonzero(np.r_[True, t_sorted[1:] != t_sorted[:-1]])
        frame_sizes = np.diff(np.r_[first_of_frame, len(t_sorted)])
        rank = np.arange(len(t_sorted)) - np.repeat(first_of_frame, frame_sizes)
        keep = order[rank < self.max_peaks_per_frame]

        t_keep = time_idx[keep].astype(np.int64)
        f_keep = freq_idx[keep].astype(np.int64)
        final = np.lexsort((f_keep, t_keep))
        return t_keep[final], f_keep[final]

    def _generate_hashes(self, times: np.ndarray, freqs: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Pair each anchor peak with the next peaks in its target zone.
        Hash layout: freq1 << 20 | freq2 << 8 | time_delta.
        """
        all_hashes = []
        all_times = []
        for j in range(1, self.target_zone_size + 1):
            if len(times) <= j:
                break
            t1, t2 = times[:-j], times[j:]
            f1, f2 = freqs[:-j], freqs[j:]
            dt = t2 - t1
            valid = (dt >= self.min_time_delta) & (dt <= self.max_time_delta)
            all_hashes.append((f1[valid] << 20) | (f2[valid] << 8) | dt[valid])
            all_times.append(t1[valid])
        if not all_hashes:
            return np.zeros(0, np.int64), np.zeros(0, np.int64)
        return np.concatenate(all_hashes), np.concatenate(all_times)

    def compare(
        self,
        ref_fp: Fingerprint,
        target_fp: Fingerprint,
        max_offset_ms: float,
        same_source_threshold: float = 0.1,
    ) -> FingerprintComparison:
        """
        Vote on the frame offset shared by matching hashes.

        similarity = hashes agreeing on the best offset (+/- 1 frame) divided
        by the smaller fingerprint size.
        """
        n_ref, n_tgt = len(ref_fp), len(target_fp)
        if min(n_ref, n_tgt) < self.min_hashes:
            self.log(f"[FINGERPRINT] Too few hashes to compare ({n_ref} / {n_tgt})")
            return FingerprintComparison(0.0, 0.0, 0, n_ref, n_tgt, False)

        order = np.argsort(ref_fp.hashes, kind='stable')
        ref_h = ref_fp.hashes[order]
        ref_t = ref_fp.times[order]

        lo = np.searchsorted(ref_h, target_fp.hashes, side='left')
        hi = np.searchsorted(ref_h, target_fp.hashes, side='right')
        counts = np.minimum(hi - lo, self.max_hash_occurrences)
        total = int(counts.sum())
        if total == 0:
            return FingerprintComparison(0.0, 0.0, 0, n_ref, n_tgt, False)

        block_start = np.cumsum(counts) - counts
        tgt_idx = np.repeat(np.arange(n_tgt), counts)
        ref_idx = np.arange(total) + np.repeat(lo - block_start, counts)
        diffs = target_fp.times[tgt_idx] - ref_t[ref_idx]

        max_frames = max(1, int(np.ceil(max_offset_ms / self.frame_ms)))
        diffs = diffs[np.abs(diffs) <= max_frames]
        if diffs.size == 0:
            return FingerprintComparison(0.0, 0.0, 0, n_ref, n_tgt, False)

        hist = np.bincount(diffs + max_frames, minlength=2 * max_frames + 1).astype(np.float64)
        smoothed = np.convolve(hist, np.ones(3), mode='same')
        k = int(np.argmax(smoothed))
        lo_k, hi_k = max(0, k - 1), min(len(hist), k + 2)
        weights = hist[lo_k:hi_k]
        centre = float(np.sum(np.arange(lo_k, hi_k) * weights) / max(weights.sum(), 1.0))
        offset_ms = (centre - max_frames) * self.frame_ms

        matched = int(smoothed[k])
        similarity = min(1.0, matched / min(n_ref, n_tgt))
        is_same = similarity >= same_source_threshold
        self.log(
            f"[FINGERPRINT] {matched} of {min(n_ref, n_tgt)} hashes agree on "
            f"{offset_ms:+.0f}ms (similarity={similarity:.3f}, same_source={is_same})"
        )
        return FingerprintComparison(
            offset_ms=offset_ms,
            similarity=similarity,
            matched_hashes=matched,
            reference_hashes=n_ref,
            target_hashes=n_tgt,
            is_same_source=is_same,
        )
