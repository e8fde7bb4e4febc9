# dubsync_core/analysis/correlation/estimator.py
"""
Global offset & same-source estimation.

Independent of the peak path: a coarse fingerprint vote (optional) narrows
a whole-envelope cross-correlation, which is then refined on PCM around the
loudest reference excerpt. Similarity and distinctiveness of the winning
lag give the confidence; similarity (or a confident fingerprint) decides
whether both tracks are the same recording.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import numpy as np

from ...models.audio import Envelope
from ..types import FingerprintComparison, GlobalEstimate
from ._base import normalized_sliding_correlation, parabolic_offset, runner_up
from .fingerprint import AudioFingerprinter
from .scc import full_correlation, overlap_pearson

if TYPE_CHECKING:
    from ...models.settings import AnalysisSettings

logger = logging.getLogger(__name__)

FINGERPRINT_SEARCH_MS = 1000.0
MIN_REFINE_MATCH = 0.3


def _empty_estimate(method: str, fingerprint: FingerprintComparison | None) -> GlobalEstimate:
    same = fingerprint.is_same_source if fingerprint is not None else False
    similarity = fingerprint.similarity if fingerprint is not None else 0.0
    return GlobalEstimate(
        delay_ms=fingerprint.offset_ms if same else 0.0,
        confidence=0.0,
        similarity=similarity,
        distinctiveness=0.0,
        is_same_source=same,
        method=method,
        fingerprint=fingerprint,
    )


def refine_on_pcm(
    ref_pcm: np.ndarray,
    tgt_pcm: np.ndarray,
    ref_env: Envelope,
    sample_rate: int,
    coarse_delay_ms: float,
    excerpt_s: float = 10.0,
    radius_ms: float = 50.0,
) -> tuple[float, float] | None:
    """
    Sample-accurate delay around a coarse estimate.

    Correlates the loudest reference excerpt (that has a full counterpart in
    the target) against target +/- radius_ms. Returns (delay_ms, match) or
    None when no excerpt fits or the match is too weak.
    """
    hop = max(1, sample_rate // ref_env.sample_rate)
    excerpt = min(int(excerpt_s * sample_rate), len(ref_pcm))
    radius = int(round(radius_ms * sample_rate / 1000.0))
    d = int(round(coarse_delay_ms * sample_rate / 1000.0))
    if excerpt < sample_rate:
        return None

    s_min = max(0, radius - d)
    s_max = min(len(ref_pcm) - excerpt, len(tgt_pcm) - excerpt - radius - d)
    if s_max < s_min:
        return None

    # Pick the loudest excerpt from envelope energy (frame granularity)
    energy = np.concatenate(([0.0], np.cumsum(ref_env.samples.astype(np.float64) ** 2)))
    frames = max(1, excerpt // hop)
    f_lo = -(-s_min // hop)
    f_hi = min(s_max // hop, len(energy) - 1 - frames)
    if f_hi >= f_lo:
        candidates = np.arange(f_lo, f_hi + 1)
        sums = energy[candidates + frames] - energy[candidates]
        s = int(candidates[int(np.argmax(sums))] * hop)
    else:
        s = s_min

    template = ref_pcm[s : s + excerpt]
    search = tgt_pcm[s + d - radius : s + d + excerpt + radius]
    ncc = normalized_sliding_correlation(template, search)
    if ncc.size == 0:
        return None
    k = int(np.argmax(ncc))
    match = float(ncc[k])
    if match < MIN_REFINE_MATCH:
        return None
    lag = d - radius + k + parabolic_offset(ncc, k)
    return lag / sample_rate * 1000.0, match


def estimate_global_offset(
    ref_pcm: np.ndarray,
    tgt_pcm: np.ndarray,
    ref_env: Envelope,
    tgt_env: Envelope,
    sample_rate: int,
    settings: AnalysisSettings,
    max_offset_ms: float,
    use_fingerprinting: bool = True,
    log: Callable[[str], None] | None = None,
) -> GlobalEstimate:
    """
    Estimate one global delay and a same-source similarity.

    Never raises for degenerate input; empty or silent tracks produce a
    zero-confidence estimate.
    """
    log = log or logger.info
    methods: list[str] = []

    # --- Coarse fingerprint vote ---
    fingerprint = None
    search_centre_ms = None
    if use_fingerprinting:
        fingerprinter = AudioFingerprinter(sample_rate, log)
        ref_fp = fingerprinter.generate(ref_pcm, settings.fingerprint_duration_s)
        tgt_fp = fingerprinter.generate(
            tgt_pcm, settings.fingerprint_duration_s + max_offset_ms / 1000.0
        )
        fingerprint = fingerprinter.compare(
            ref_fp, tgt_fp, max_offset_ms, settings.fingerprint_same_source_threshold
        )
        methods.append("fingerprint")
        if fingerprint.is_same_source:
            search_centre_ms = fingerprint.offset_ms

    # --- Envelope cross-correlation ---
    frame_ms = ref_env.frame_ms
    lags, corr = full_correlation(ref_env.samples, tgt_env.samples)
    max_lag = int(round(max_offset_ms / frame_ms))
    valid = np.abs(lags) <= max_lag
    if corr.size == 0 or not np.any(valid) or float(np.max(corr[valid])) <= 0.0:
        log("[XCORR] Envelopes carry no usable signal; no global estimate")
        return _empty_estimate("+".join(methods) or "none", fingerprint)

    select = valid
    if search_centre_ms is not None:
        narrowed = valid & (np.abs(lags * frame_ms - search_centre_ms) <= FINGERPRINT_SEARCH_MS)
        if np.any(narrowed):
            select = narrowed
    masked = np.where(select, corr, -np.inf)
    k = int(np.argmax(masked))
    best_lag = int(lags[k])
    delay_ms = (best_lag + parabolic_offset(masked, k)) * frame_ms
    methods.append("envelope")

    env_similarity = max(0.0, overlap_pearson(ref_env.samples, tgt_env.samples, best_lag))

    peak = float(corr[k])
    exclusion = int(round(settings.correlation_exclusion_ms / frame_ms))
    second = runner_up(np.where(valid, corr, 0.0), k, exclusion)
    distinctiveness = float(np.clip((peak - second) / (0.5 * peak), 0.0, 1.0)) if peak > 0 else 0.0
    confidence = env_similarity * distinctiveness

    log(
        f"[XCORR] Envelope lag {delay_ms:+.1f}ms (similarity={env_similarity:.3f}, "
        f"distinctiveness={distinctiveness:.3f}, runner-up={second:.3f})"
    )

    # --- PCM refinement ---
    refined = refine_on_pcm(
        ref_pcm,
        tgt_pcm,
        ref_env,
        sample_rate,
        delay_ms,
        settings.refine_excerpt_s,
        settings.refine_radius_ms,
    )
    if refined is not None:
        log(f"[XCORR] PCM refinement {delay_ms:+.1f}ms -> {refined[0]:+.2f}ms (match={refined[1]:.3f})")
        delay_ms = refined[0]
        methods.append("pcm")

    similarity = env_similarity
    if fingerprint is not None and fingerprint.similarity > similarity:
        similarity = fingerprint.similarity
    is_same_source = env_similarity >= settings.same_source_threshold or (
        fingerprint is not None and fingerprint.is_same_source
    )

    return GlobalEstimate(
        delay_ms=float(delay_ms),
        confidence=float(confidence),
        similarity=float(similarity),
        distinctiveness=distinctiveness,
        is_same_source=bool(is_same_source),
        method="+".join(methods),
        fingerprint=fingerprint,
    )
