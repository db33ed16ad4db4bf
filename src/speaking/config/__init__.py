"""Configuration package for the speaking service."""

from speaking.config.app_config import (
    AppConfig,
    AuthConfig,
    ProviderConfig,
    RecordingConfig,
    ScoringConfig,
    TranscriptionConfig,
    clear_config_cache,
    get_provider_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ProviderConfig",
    "RecordingConfig",
    "ScoringConfig",
    "TranscriptionConfig",
    "clear_config_cache",
    "get_provider_config",
    "load_app_config",
]
