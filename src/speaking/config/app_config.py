"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml
(or the file named by SPEAKING_CONFIG) on top of built-in defaults.

Usage:
    from speaking.config.app_config import load_app_config, get_provider_config

    config = load_app_config()
    provider = get_provider_config("azure")
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")
CONFIG_ENV_VAR = "SPEAKING_CONFIG"

DEFAULT_MIME_TYPES = [
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/mp4",
    "audio/ogg;codecs=opus",
    "audio/ogg",
]


@dataclass
class ProviderConfig:
    """Configuration for a single AI inference provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None
    api_version: str | None = None
    transcription_model: str = "whisper-1"
    supports_json_object: bool | None = None

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class ScoringConfig:
    """Configuration for band-score evaluation."""

    provider: str = "openai"
    model: str | None = None
    temperature: float = 0.7
    complete_test_temperature: float = 0.2
    max_tokens: int = 2500


@dataclass
class TranscriptionConfig:
    """Configuration for speech-to-text."""

    provider: str = "openai"
    model: str | None = None
    language: str = "en"
    max_upload_bytes: int = 25 * 1024 * 1024
    remote_fetch_timeout: float = 30.0


@dataclass
class RecordingConfig:
    """Timing windows for audio capture sessions."""

    min_duration_ms: int = 500
    max_duration_seconds: int = 300
    processing_timeout_seconds: float = 7.0
    duplicate_window_ms: int = 1000
    max_audio_bytes: int = 25 * 1024 * 1024
    retention_seconds: int = 600
    supported_mime_types: list[str] = field(default_factory=lambda: list(DEFAULT_MIME_TYPES))


@dataclass
class AuthConfig:
    """Session token verification settings."""

    jwt_secret_env: str = "SPEAKING_JWT_SECRET"
    algorithms: list[str] = field(default_factory=lambda: ["HS256"])
    audience: str | None = None
    required: bool = True
    allow_client_user_id: bool = True

    def get_secret(self) -> str | None:
        """Get the token signing secret from the environment."""
        return os.environ.get(self.jwt_secret_env)


@dataclass
class AppConfig:
    """Application-wide configuration."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db_path", "db/speaking.db"))

    @property
    def storage_dir(self) -> Path:
        return Path(self.paths.get("storage_dir", "data/storage"))

    @property
    def public_storage_url(self) -> str:
        return self.paths.get("public_storage_url", "/storage").rstrip("/")


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "providers": {
            "openai": {
                "base_url": None,
                "default_model": "gpt-4.1",
                "api_key_env": "OPENAI_API_KEY",
                "transcription_model": "whisper-1",
            },
            "azure": {
                "base_url": None,
                "default_model": "gpt-4.1",
                "api_key_env": "AZURE_OPENAI_API_KEY",
                "api_version": "2025-01-01-preview",
                "transcription_model": "whisper",
            },
            "lmstudio": {
                "base_url": "http://localhost:1234/v1",
                "default_model": "llama-3.2-3b-instruct",
                "api_key_env": None,
                "supports_json_object": False,
            },
        },
        "scoring": {
            "provider": "openai",
            "temperature": 0.7,
            "complete_test_temperature": 0.2,
            "max_tokens": 2500,
        },
        "transcription": {
            "provider": "openai",
            "language": "en",
            "max_upload_bytes": 25 * 1024 * 1024,
        },
        "recording": {
            "min_duration_ms": 500,
            "max_duration_seconds": 300,
            "processing_timeout_seconds": 7.0,
            "duplicate_window_ms": 1000,
            "max_audio_bytes": 25 * 1024 * 1024,
            "retention_seconds": 600,
            "supported_mime_types": list(DEFAULT_MIME_TYPES),
        },
        "auth": {
            "jwt_secret_env": "SPEAKING_JWT_SECRET",
            "algorithms": ["HS256"],
            "audience": None,
            "required": True,
            "allow_client_user_id": True,
        },
        "paths": {
            "db_path": "db/speaking.db",
            "storage_dir": "data/storage",
            "public_storage_url": "/storage",
        },
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    providers = {}
    for name, pconfig in data.get("providers", {}).items():
        providers[name] = ProviderConfig(
            base_url=pconfig.get("base_url"),
            default_model=pconfig.get("default_model", "default"),
            api_key_env=pconfig.get("api_key_env"),
            api_version=pconfig.get("api_version"),
            transcription_model=pconfig.get("transcription_model", "whisper-1"),
            supports_json_object=pconfig.get("supports_json_object"),
        )

    scoring_data = data.get("scoring", {})
    scoring = ScoringConfig(
        provider=scoring_data.get("provider", "openai"),
        model=scoring_data.get("model"),
        temperature=float(scoring_data.get("temperature", 0.7)),
        complete_test_temperature=float(scoring_data.get("complete_test_temperature", 0.2)),
        max_tokens=int(scoring_data.get("max_tokens", 2500)),
    )

    transcription_data = data.get("transcription", {})
    transcription = TranscriptionConfig(
        provider=transcription_data.get("provider", "openai"),
        model=transcription_data.get("model"),
        language=transcription_data.get("language", "en"),
        max_upload_bytes=int(transcription_data.get("max_upload_bytes", 25 * 1024 * 1024)),
        remote_fetch_timeout=float(transcription_data.get("remote_fetch_timeout", 30.0)),
    )

    recording_data = data.get("recording", {})
    recording = RecordingConfig(
        min_duration_ms=int(recording_data.get("min_duration_ms", 500)),
        max_duration_seconds=int(recording_data.get("max_duration_seconds", 300)),
        processing_timeout_seconds=float(recording_data.get("processing_timeout_seconds", 7.0)),
        duplicate_window_ms=int(recording_data.get("duplicate_window_ms", 1000)),
        max_audio_bytes=int(recording_data.get("max_audio_bytes", 25 * 1024 * 1024)),
        retention_seconds=int(recording_data.get("retention_seconds", 600)),
        supported_mime_types=list(recording_data.get("supported_mime_types", DEFAULT_MIME_TYPES)),
    )

    auth_data = data.get("auth", {})
    auth = AuthConfig(
        jwt_secret_env=auth_data.get("jwt_secret_env", "SPEAKING_JWT_SECRET"),
        algorithms=list(auth_data.get("algorithms", ["HS256"])),
        audience=auth_data.get("audience"),
        required=bool(auth_data.get("required", True)),
        allow_client_user_id=bool(auth_data.get("allow_client_user_id", True)),
    )

    paths = data.get("paths", {})

    return AppConfig(
        providers=providers,
        scoring=scoring,
        transcription=transcription,
        recording=recording,
        auth=auth,
        paths=paths,
    )


def _config_file() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, merging the YAML file over defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data = _get_defaults()
    config_file = _config_file()

    if config_file.exists():
        logger.debug("loading_app_config", source=str(config_file))
        file_data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        data = _merge(data, file_data)
    else:
        logger.info("using_default_config")

    _cached_config = _parse_config(data)
    return _cached_config


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Get configuration for a specific provider.

    Args:
        provider: Provider name (e.g., "openai", "azure")

    Returns:
        ProviderConfig or None if provider not found.
    """
    config = load_app_config()
    return config.providers.get(provider)


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
