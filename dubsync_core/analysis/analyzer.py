# dubsync_core/analysis/analyzer.py
"""
Sync analysis entry point.

Coordinates the full analysis workflow:
1. Decode reference and target (concurrently, under a timeout)
2. Extract envelopes and silence boundaries
3. Detect peaks on both tracks (concurrently)
4. Match peaks and estimate the global offset (concurrently)
5. Estimate the tempo ratio and scan windowed offsets
6. Classify offset / drift / structural differences
7. Attach the planned correction

Decode failures and timeouts propagate. Tracks that simply cannot be
aligned produce an UNSYNCABLE result, never an exception.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import TYPE_CHECKING, Callable

import numpy as np

from ..cancellation import CancellationToken
from ..correction.decision import plan_correction
from ..errors import InsufficientDataError
from ..models.audio import Envelope, SilenceReport
from ..models.correction import ManualCorrection
from ..models.enums import EventType, SyncStatus
from ..models.results import AnalysisMetadata, SyncAnalysisResult, SyncEvent
from ..models.settings import AnalysisOptions, AnalysisSettings
from .correlation.estimator import estimate_global_offset
from .correlation.windows import estimate_tempo, scan_window_offsets
from .drift_detection import analyze_segments
from .peaks.detector import detect_peaks
from .peaks.matcher import match_peaks
from .preprocessing.decode import decode_pcm
from .preprocessing.envelope import compute_envelope
from .preprocessing.silence import detect_silence

if TYPE_CHECKING:
    from ..io.runner import CommandRunner

logger = logging.getLogger(__name__)


class SyncAnalyzer:
    """Analyzes how a target audio track lines up with a reference."""

    def __init__(
        self,
        runner: CommandRunner,
        tool_paths: dict[str, str | None] | None = None,
        settings: AnalysisSettings | None = None,
        log: Callable[[str], None] | None = None,
    ):
        self.runner = runner
        self.tool_paths = tool_paths or {}
        self.settings = settings or AnalysisSettings()
        self.log = log or getattr(runner, "_log_message", None) or logger.info

    # --- Stages ---

    def _decode(self, path: str, duration_ms: float | None, options: AnalysisOptions) -> np.ndarray:
        return decode_pcm(
            path,
            self.runner,
            self.tool_paths,
            sample_rate=self.settings.sample_rate,
            duration_ms=duration_ms,
            stream_index=options.stream_index,
            timeout_s=options.decode_timeout_sec,
        )

    def _check_content(self, label: str, envelope: Envelope, silence: SilenceReport) -> None:
        s = self.settings
        if envelope.duration_ms < s.min_content_ms:
            raise InsufficientDataError(
                f"{label} track is only {envelope.duration_ms:.0f}ms long "
                f"(minimum {s.min_content_ms:.0f}ms)"
            )
        content_ms = silence.audio_end_ms - silence.audio_start_ms
        if not silence.has_content or content_ms < s.min_content_ms:
            raise InsufficientDataError(
                f"{label} track has no audible content above {s.silence_noise_db:g} dBFS"
            )

    def _silence_events(self, label: str, silence: SilenceReport) -> list[SyncEvent]:
        events = []
        if silence.audio_start_ms > 0:
            events.append(
                SyncEvent(EventType.SILENCE_BOUNDARY, silence.audio_start_ms, f"{label} content starts")
            )
        if silence.audio_end_ms < silence.total_duration_ms:
            events.append(
                SyncEvent(EventType.SILENCE_BOUNDARY, silence.audio_end_ms, f"{label} content ends")
            )
        return events

    def _unsyncable(
        self,
        reason: str,
        metadata: AnalysisMetadata,
        events: list[SyncEvent],
    ) -> SyncAnalysisResult:
        self.log(f"[ANALYZER] Unsyncable: {reason}")
        return SyncAnalysisResult(
            status=SyncStatus.UNSYNCABLE,
            global_delay_ms=0,
            confidence=0.0,
            similarity=0.0,
            is_same_source=False,
            has_drift=False,
            drift_rate_ms_per_sec=0.0,
            structural_differences=(),
            segments=(),
            metadata=metadata,
            events=tuple(events),
            correction=ManualCorrection(reason=reason),
            reasoning=(reason,),
            warnings=("Insufficient data for analysis",),
        )

    # --- Entry point ---

    def analyze(
        self,
        reference_path: str,
        target_path: str,
        options: AnalysisOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> SyncAnalysisResult:
        """
        Analyze the sync relationship of target_path against reference_path.

        Raises:
            DecodeError: Either file could not be decoded.
            DecodeTimeoutError: Decoding exceeded options.decode_timeout_sec.
            AnalysisCancelledError: cancel_token fired between stages.
        """
        options = options or AnalysisOptions()
        token = cancel_token or CancellationToken()
        s = self.settings
        log = self.log
        started = time.perf_counter()

        duration_s = options.effective_duration_s(s)
        ref_window_ms = duration_s * 1000.0 if duration_s is not None else None
        # The target may carry up to max_offset of extra lead-in
        tgt_window_ms = ref_window_ms + options.max_offset_ms if ref_window_ms is not None else None
        mode = "deep" if options.deep_analysis else "quick"
        log(
            f"[ANALYZER] {mode} analysis of {target_path} against {reference_path} "
            f"(window={'full' if duration_s is None else f'{duration_s:g}s'}, "
            f"max_offset={options.max_offset_sec:g}s)"
        )

        # --- Decode ---
        token.raise_if_cancelled("decode")
        with ThreadPoolExecutor(max_workers=2) as pool:
            ref_future = pool.submit(self._decode, reference_path, ref_window_ms, options)
            tgt_future = pool.submit(self._decode, target_path, tgt_window_ms, options)
            ref_pcm = ref_future.result()
            tgt_pcm = tgt_future.result()

        ref_env = compute_envelope(ref_pcm, s.sample_rate, s.envelope_rate)
        tgt_env = compute_envelope(tgt_pcm, s.sample_rate, s.envelope_rate)
        ref_silence = detect_silence(ref_env, s.silence_noise_db, s.silence_min_duration_ms)
        tgt_silence = detect_silence(tgt_env, s.silence_noise_db, s.silence_min_duration_ms)

        methods = ["envelope", "silence"]
        events = self._silence_events("reference", ref_silence) + self._silence_events("target", tgt_silence)

        def metadata() -> AnalysisMetadata:
            return AnalysisMetadata(
                reference_file=str(reference_path),
                target_file=str(target_path),
                reference_duration_ms=ref_env.duration_ms,
                target_duration_ms=tgt_env.duration_ms,
                analysis_time_ms=(time.perf_counter() - started) * 1000.0,
                methods_used=tuple(methods),
                deep_analysis=options.deep_analysis,
                min_confidence=options.min_confidence,
            )

        try:
            self._check_content("Reference", ref_env, ref_silence)
            self._check_content("Target", tgt_env, tgt_silence)
        except InsufficientDataError as e:
            return self._unsyncable(str(e), metadata(), events)

        silence_offset = tgt_silence.audio_start_ms - ref_silence.audio_start_ms
        log(
            f"[SILENCE] Content starts at {ref_silence.audio_start_ms:.0f}ms (reference) / "
            f"{tgt_silence.audio_start_ms:.0f}ms (target), difference {silence_offset:+.0f}ms"
        )

        # --- Peak detection ---
        token.raise_if_cancelled("peak_detect")
        ref_norm = ref_env.normalized()
        tgt_norm = tgt_env.normalized()
        peak_args = (s.peak_min_amplitude, s.peak_min_distance_ms, s.peak_sensitivity, s.peak_local_window_ms)
        with ThreadPoolExecutor(max_workers=2) as pool:
            ref_peaks_future = pool.submit(detect_peaks, ref_norm, *peak_args, log)
            tgt_peaks_future = pool.submit(detect_peaks, tgt_norm, *peak_args, log)
            ref_peaks = ref_peaks_future.result()
            tgt_peaks = tgt_peaks_future.result()
        methods.append("peaks")

        if not ref_peaks or not tgt_peaks:
            return self._unsyncable(
                f"No peaks detected ({len(ref_peaks)} reference / {len(tgt_peaks)} target)",
                metadata(),
                events,
            )

        # --- Matching and global correlation ---
        token.raise_if_cancelled("match")
        with ThreadPoolExecutor(max_workers=2) as pool:
            match_future = pool.submit(
                match_peaks,
                ref_peaks,
                tgt_peaks,
                options.max_offset_ms,
                s.match_window_ms,
                s.min_matches,
                s.structural_break_ms,
                log,
            )
            estimate_future = pool.submit(
                estimate_global_offset,
                ref_pcm,
                tgt_pcm,
                ref_env,
                tgt_env,
                s.sample_rate,
                s,
                options.max_offset_ms,
                options.use_fingerprinting,
                log,
            )
            peak_result = match_future.result()
            estimate = estimate_future.result()
        methods.extend(m for m in estimate.method.split("+") if m not in methods)

        for seg in peak_result.segments:
            events.append(
                SyncEvent(
                    EventType.ANCHOR_MATCH,
                    seg.start_ms,
                    f"{seg.match_count} peak matches at {seg.offset_ms:+.0f}ms",
                )
            )

        # --- Windowed scan ---
        token.raise_if_cancelled("correlate")
        if estimate.confidence >= peak_result.confidence:
            initial_delay = estimate.delay_ms
        else:
            initial_delay = peak_result.dominant_offset_ms
        tempo = estimate_tempo(
            ref_env,
            tgt_env,
            options.max_offset_ms,
            s.max_tempo_deviation,
            s.tempo_excerpt_s,
            log,
        )
        if tempo.is_compensated:
            initial_delay = tempo.offset_ms
            methods.append("tempo")
        window_s, step_s = (
            (s.deep_window_s, s.deep_step_s) if options.deep_analysis else (s.quick_window_s, s.quick_step_s)
        )
        chunks = scan_window_offsets(
            ref_env,
            tgt_env,
            initial_delay,
            window_s=window_s,
            step_s=step_s,
            search_radius_s=s.window_search_radius_s,
            min_match=s.min_window_match,
            noise_db=s.silence_noise_db,
            max_offset_ms=options.max_offset_ms,
            min_margin=s.min_window_margin,
            tempo_factor=tempo.factor,
            log=log,
        )
        methods.append("windows")

        # --- Classification ---
        token.raise_if_cancelled("decide")
        analysis = analyze_segments(
            peak_result,
            chunks,
            estimate,
            s,
            ref_norm,
            tgt_norm,
            silence_offset,
            log,
        )
        events.extend(analysis.events)

        drift = analysis.drift
        has_drift = drift is not None and drift.has_drift
        reasoning = list(analysis.reasoning)
        if abs(silence_offset) > s.sync_tolerance_ms:
            reasoning.append(f"Leading silence differs by {silence_offset:+.0f}ms")

        # A stretched copy only lines up once its tempo is compensated
        is_same_source = estimate.is_same_source or tempo.similarity >= s.tempo_same_source_threshold
        if is_same_source and not estimate.is_same_source:
            reasoning.append(
                f"Same source after compensating tempo x{tempo.factor:.6f} "
                f"(similarity {tempo.similarity:.2f})"
            )

        result = SyncAnalysisResult(
            status=analysis.status,
            global_delay_ms=int(round(analysis.global_delay_ms)),
            confidence=analysis.confidence,
            similarity=max(estimate.similarity, tempo.similarity),
            is_same_source=is_same_source,
            has_drift=has_drift,
            drift_rate_ms_per_sec=drift.slope_ms_per_s if drift is not None else 0.0,
            structural_differences=analysis.structural_differences,
            segments=analysis.segments,
            metadata=metadata(),
            events=tuple(events),
            tempo_factor=drift.tempo_factor if has_drift else 1.0,
            drift_intercept_ms=drift.intercept_ms if has_drift else 0.0,
            correlation_confidence=analysis.correlation_confidence,
            peak_confidence=analysis.peak_confidence,
            offset_disagreement_ms=analysis.offset_disagreement_ms,
            leading_silence_diff_ms=silence_offset,
            reasoning=tuple(reasoning),
            warnings=analysis.warnings,
        )
        result = replace(result, correction=plan_correction(result, s))
        log(
            f"[ANALYZER] Done in {result.metadata.analysis_time_ms:.0f}ms: {result.status.value}, "
            f"delay={result.global_delay_ms:+d}ms, confidence={result.confidence:.3f}, "
            f"correction={result.correction.type.value}"
        )
        return result
