# dubsync_core/config.py
# -*- coding: utf-8 -*-
import json
import logging
from pathlib import Path

from .models.settings import AnalysisOptions, AnalysisSettings

logger = logging.getLogger(__name__)


class AppConfig:
    def __init__(self, settings_path=None, settings_filename='settings.json'):
        self.script_dir = Path(__file__).resolve().parent.parent
        self.settings_path = Path(settings_path) if settings_path else self.script_dir / settings_filename
        self.defaults = {
            # --- Decoding & Envelope ---
            'ffmpeg_path': '',
            'sample_rate': 8000,
            'envelope_rate': 100,
            'min_content_ms': 1000.0,
            'quick_duration_s': 300.0,
            'decode_timeout_sec': 300.0,
            'stream_index': 0,

            # --- Silence Detection ---
            'silence_noise_db': -50.0,
            'silence_min_duration_ms': 100.0,

            # --- Peak Detection & Matching ---
            'peak_min_amplitude': 0.1,
            'peak_min_distance_ms': 50.0,
            'peak_sensitivity': 0.6,
            'peak_local_window_ms': 2000.0,
            'match_window_ms': 100.0,
            'min_matches': 5,

            # --- Global Correlation & Fingerprinting ---
            'max_offset_sec': 30.0,
            'use_fingerprinting': True,
            'correlation_exclusion_ms': 1000.0,
            'refine_excerpt_s': 10.0,
            'refine_radius_ms': 50.0,
            'same_source_threshold': 0.35,
            'fingerprint_same_source_threshold': 0.1,
            'fingerprint_duration_s': 120.0,

            # --- Windowed Scan ---
            'deep_analysis': False,
            'analyze_duration_sec': 0,  # 0 = mode default
            'quick_window_s': 5.0,
            'quick_step_s': 2.0,
            'deep_window_s': 4.0,
            'deep_step_s': 1.0,
            'window_search_radius_s': 10.0,
            'min_window_match': 0.5,
            'min_window_margin': 0.15,
            'min_segment_windows': 2,
            'max_tempo_deviation': 0.15,
            'tempo_excerpt_s': 60.0,
            'tempo_same_source_threshold': 0.6,

            # --- Classification ---
            'sync_tolerance_ms': 30.0,
            'structural_break_ms': 200.0,
            'drift_threshold_ms_per_s': 0.5,
            'drift_r2_threshold': 0.7,
            'severe_drift_ms_per_s': 50.0,
            'min_drift_points': 5,
            'unsyncable_confidence': 0.3,
            'trust_correlation_confidence': 0.6,
            'decision_confidence': 0.5,
            'min_confidence': 0.5,

            # --- Safety Limits ---
            'safe_delay_limit_ms': 5000.0,
            'safe_delay_confidence': 0.7,
            'safe_tempo_deviation': 0.02,

            # --- Logging ---
            'log_error_tail': 20,
        }
        self.settings = self.defaults.copy()
        self.load()

    def load(self):
        changed = False
        if self.settings_path.exists():
            try:
                with open(self.settings_path, 'r', encoding='utf-8') as f:
                    loaded_settings = json.load(f)

                for key, default_value in self.defaults.items():
                    if key not in loaded_settings:
                        loaded_settings[key] = default_value
                        changed = True
                self.settings = loaded_settings
            except (json.JSONDecodeError, IOError):
                self.settings = self.defaults.copy()
                changed = True
        else:
            self.settings = self.defaults.copy()
            changed = True

        if changed:
            self.save()

    def save(self):
        try:
            keys_to_save = self.defaults.keys()
            settings_to_save = {k: self.settings.get(k) for k in keys_to_save if k in self.settings}
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(settings_to_save, f, indent=4)
        except IOError as e:
            logger.warning(f"Error saving settings: {e}")

    def get(self, key, default=None):
        return self.settings.get(key, default)

    def set(self, key, value):
        self.settings[key] = value

    def analysis_settings(self) -> AnalysisSettings:
        return AnalysisSettings.from_config(self.settings)

    def analysis_options(self) -> AnalysisOptions:
        return AnalysisOptions.from_config(self.settings)

    def tool_paths(self) -> dict:
        path = self.settings.get('ffmpeg_path')
        return {'ffmpeg': path} if path else {}
