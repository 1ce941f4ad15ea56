"""Configuration management for extraction diagnostics."""

from .loader import DiagnosticsSettings, load_settings, settings_from_env

__all__ = ["DiagnosticsSettings", "load_settings", "settings_from_env"]
