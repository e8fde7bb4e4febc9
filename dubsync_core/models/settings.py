# dubsync_core/models/settings.py
"""Analysis settings dataclasses.

`AnalysisSettings` holds every tunable threshold used by the engine, grouped
by stage. `AnalysisOptions` is the per-call options struct supplied by the
caller (search window, quick/deep mode, fingerprinting, confidence gate).

Settings are organized by category:
- Decoding: PCM sample rate, envelope rate, timeouts
- Silence: Noise floor and minimum region length
- Peaks: Detector and matcher parameters
- Windows: Windowed correlation scan
- Classification: Tolerances for in-sync / drift / structural decisions
- Safety: Limits for automatic corrections
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AnalysisSettings:
    """Complete engine settings with typed fields and defaults."""

    # =========================================================================
    # Decoding & Envelope
    # =========================================================================
    sample_rate: int = 8000
    envelope_rate: int = 100
    min_content_ms: float = 1000.0
    quick_duration_s: float = 300.0

    # =========================================================================
    # Silence Detection
    # =========================================================================
    silence_noise_db: float = -50.0
    silence_min_duration_ms: float = 100.0

    # =========================================================================
    # Peak Detection & Matching
    # =========================================================================
    peak_min_amplitude: float = 0.1
    peak_min_distance_ms: float = 50.0
    peak_sensitivity: float = 0.6
    peak_local_window_ms: float = 2000.0
    match_window_ms: float = 100.0
    min_matches: int = 5

    # =========================================================================
    # Global Correlation & Fingerprinting
    # =========================================================================
    correlation_exclusion_ms: float = 1000.0
    refine_excerpt_s: float = 10.0
    refine_radius_ms: float = 50.0
    same_source_threshold: float = 0.35
    fingerprint_same_source_threshold: float = 0.1
    fingerprint_duration_s: float = 120.0

    # =========================================================================
    # Windowed Scan
    # =========================================================================
    quick_window_s: float = 5.0
    quick_step_s: float = 2.0
    deep_window_s: float = 4.0
    deep_step_s: float = 1.0
    window_search_radius_s: float = 10.0
    min_window_match: float = 0.5
    min_window_margin: float = 0.15
    min_segment_windows: int = 2
    max_tempo_deviation: float = 0.15
    tempo_excerpt_s: float = 60.0
    tempo_same_source_threshold: float = 0.6

    # =========================================================================
    # Classification
    # =========================================================================
    sync_tolerance_ms: float = 30.0
    structural_break_ms: float = 200.0
    drift_threshold_ms_per_s: float = 0.5
    drift_r2_threshold: float = 0.7
    severe_drift_ms_per_s: float = 50.0
    min_drift_points: int = 5
    unsyncable_confidence: float = 0.3
    trust_correlation_confidence: float = 0.6
    decision_confidence: float = 0.5

    # =========================================================================
    # Safety Limits
    # =========================================================================
    safe_delay_limit_ms: float = 5000.0
    safe_delay_confidence: float = 0.7
    safe_tempo_deviation: float = 0.02

    @classmethod
    def from_config(cls, cfg: dict) -> AnalysisSettings:
        """Create AnalysisSettings from a config dictionary.

        Absent keys fall back to the dataclass defaults.
        """
        d = cls()
        return cls(
            # Decoding & Envelope
            sample_rate=int(cfg.get("sample_rate", d.sample_rate)),
            envelope_rate=int(cfg.get("envelope_rate", d.envelope_rate)),
            min_content_ms=float(cfg.get("min_content_ms", d.min_content_ms)),
            quick_duration_s=float(cfg.get("quick_duration_s", d.quick_duration_s)),
            # Silence
            silence_noise_db=float(cfg.get("silence_noise_db", d.silence_noise_db)),
            silence_min_duration_ms=float(
                cfg.get("silence_min_duration_ms", d.silence_min_duration_ms)
            ),
            # Peaks
            peak_min_amplitude=float(cfg.get("peak_min_amplitude", d.peak_min_amplitude)),
            peak_min_distance_ms=float(cfg.get("peak_min_distance_ms", d.peak_min_distance_ms)),
            peak_sensitivity=float(cfg.get("peak_sensitivity", d.peak_sensitivity)),
            peak_local_window_ms=float(cfg.get("peak_local_window_ms", d.peak_local_window_ms)),
            match_window_ms=float(cfg.get("match_window_ms", d.match_window_ms)),
            min_matches=int(cfg.get("min_matches", d.min_matches)),
            # Correlation & Fingerprinting
            correlation_exclusion_ms=float(
                cfg.get("correlation_exclusion_ms", d.correlation_exclusion_ms)
            ),
            refine_excerpt_s=float(cfg.get("refine_excerpt_s", d.refine_excerpt_s)),
            refine_radius_ms=float(cfg.get("refine_radius_ms", d.refine_radius_ms)),
            same_source_threshold=float(
                cfg.get("same_source_threshold", d.same_source_threshold)
            ),
            fingerprint_same_source_threshold=float(
                cfg.get(
                    "fingerprint_same_source_threshold",
                    d.fingerprint_same_source_threshold,
                )
            ),
            fingerprint_duration_s=float(
                cfg.get("fingerprint_duration_s", d.fingerprint_duration_s)
            ),
            # Windowed Scan
            quick_window_s=float(cfg.get("quick_window_s", d.quick_window_s)),
            quick_step_s=float(cfg.get("quick_step_s", d.quick_step_s)),
            deep_window_s=float(cfg.get("deep_window_s", d.deep_window_s)),
            deep_step_s=float(cfg.get("deep_step_s", d.deep_step_s)),
            window_search_radius_s=float(
                cfg.get("window_search_radius_s", d.window_search_radius_s)
            ),
            min_window_match=float(cfg.get("min_window_match", d.min_window_match)),
            min_window_margin=float(cfg.get("min_window_margin", d.min_window_margin)),
            min_segment_windows=int(cfg.get("min_segment_windows", d.min_segment_windows)),
            max_tempo_deviation=float(cfg.get("max_tempo_deviation", d.max_tempo_deviation)),
            tempo_excerpt_s=float(cfg.get("tempo_excerpt_s", d.tempo_excerpt_s)),
            tempo_same_source_threshold=float(
                cfg.get("tempo_same_source_threshold", d.tempo_same_source_threshold)
            ),
            # Classification
            sync_tolerance_ms=float(cfg.get("sync_tolerance_ms", d.sync_tolerance_ms)),
            structural_break_ms=float(cfg.get("structural_break_ms", d.structural_break_ms)),
            drift_threshold_ms_per_s=float(
                cfg.get("drift_threshold_ms_per_s", d.drift_threshold_ms_per_s)
            ),
            drift_r2_threshold=float(cfg.get("drift_r2_threshold", d.drift_r2_threshold)),
            severe_drift_ms_per_s=float(
                cfg.get("severe_drift_ms_per_s", d.severe_drift_ms_per_s)
            ),
            min_drift_points=int(cfg.get("min_drift_points", d.min_drift_points)),
            unsyncable_confidence=float(
                cfg.get("unsyncable_confidence", d.unsyncable_confidence)
            ),
            trust_correlation_confidence=float(
                cfg.get("trust_correlation_confidence", d.trust_correlation_confidence)
            ),
            decision_confidence=float(cfg.get("decision_confidence", d.decision_confidence)),
            # Safety
            safe_delay_limit_ms=float(cfg.get("safe_delay_limit_ms", d.safe_delay_limit_ms)),
            safe_delay_confidence=float(
                cfg.get("safe_delay_confidence", d.safe_delay_confidence)
            ),
            safe_tempo_deviation=float(
                cfg.get("safe_tempo_deviation", d.safe_tempo_deviation)
            ),
        )


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-call options for `SyncAnalyzer.analyze`."""

    max_offset_sec: float = 30.0
    deep_analysis: bool = False
    analyze_duration_sec: float | None = None  # None -> quick_duration_s (quick) / full (deep)
    use_fingerprinting: bool = True
    min_confidence: float = 0.5
    decode_timeout_sec: float | None = 300.0
    stream_index: int = 0  # Audio stream index inside each file

    @property
    def max_offset_ms(self) -> float:
        return self.max_offset_sec * 1000.0

    def effective_duration_s(self, settings: AnalysisSettings) -> float | None:
        """Seconds to decode from each file, or None for the whole file."""
        if self.analyze_duration_sec is not None:
            return float(self.analyze_duration_sec)
        if self.deep_analysis:
            return None
        return settings.quick_duration_s

    @classmethod
    def from_config(cls, cfg: dict) -> AnalysisOptions:
        duration = cfg.get("analyze_duration_sec")
        timeout = cfg.get("decode_timeout_sec", 300.0)
        return cls(
            max_offset_sec=float(cfg.get("max_offset_sec", 30.0)),
            deep_analysis=bool(cfg.get("deep_analysis", False)),
            analyze_duration_sec=float(duration) if duration else None,
            use_fingerprinting=bool(cfg.get("use_fingerprinting", True)),
            min_confidence=float(cfg.get("min_confidence", 0.5)),
            decode_timeout_sec=float(timeout) if timeout else None,
            stream_index=int(cfg.get("stream_index", 0)),
        )
