"""Tests for app configuration (F1).

Tests the configuration loading, provider configs, and fallbacks.
"""

from pathlib import Path

import pytest

from speaking.config.app_config import (
    AppConfig,
    AuthConfig,
    ProviderConfig,
    RecordingConfig,
    CONFIG_FILE,
    clear_config_cache,
    get_provider_config,
    load_app_config,
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run every test in an empty directory with a clean config cache."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SPEAKING_CONFIG", raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


def write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Tests for built-in defaults when no config file exists."""

    def test_returns_app_config(self):
        """Loads an AppConfig without a file."""
        config = load_app_config()
        assert isinstance(config, AppConfig)

    def test_default_providers(self):
        """OpenAI, Azure and LM Studio are configured."""
        config = load_app_config()
        assert {"openai", "azure", "lmstudio"} <= set(config.providers)

    def test_default_scoring(self):
        """Scoring uses OpenAI with the per-answer and complete-test temperatures."""
        scoring = load_app_config().scoring
        assert scoring.provider == "openai"
        assert scoring.temperature == 0.7
        assert scoring.complete_test_temperature == 0.2
        assert scoring.max_tokens == 2500

    def test_default_recording_windows(self):
        """Recording timing windows have their defaults."""
        recording = load_app_config().recording
        assert isinstance(recording, RecordingConfig)
        assert recording.min_duration_ms == 500
        assert recording.max_duration_seconds == 300
        assert recording.processing_timeout_seconds == 7.0
        assert recording.duplicate_window_ms == 1000
        assert recording.max_audio_bytes == 25 * 1024 * 1024
        assert recording.retention_seconds == 600
        assert recording.supported_mime_types[0] == "audio/webm;codecs=opus"

    def test_default_auth(self):
        """Auth requires HS256 tokens signed with SPEAKING_JWT_SECRET."""
        auth = load_app_config().auth
        assert isinstance(auth, AuthConfig)
        assert auth.algorithms == ["HS256"]
        assert auth.jwt_secret_env == "SPEAKING_JWT_SECRET"
        assert auth.required is True

    def test_default_paths(self):
        """Paths fall back to db/ and data/storage."""
        config = load_app_config()
        assert config.db_path == Path("db/speaking.db")
        assert config.storage_dir == Path("data/storage")
        assert config.public_storage_url == "/storage"


class TestConfigFile:
    """Tests for YAML overrides."""

    def test_file_overrides_are_merged(self, tmp_path):
        """Values from the file override defaults; siblings are kept."""
        write_config(
            tmp_path / CONFIG_FILE,
            "scoring:\n  temperature: 0.3\nrecording:\n  max_duration_seconds: 120\n",
        )

        config = load_app_config()

        assert config.scoring.temperature == 0.3
        assert config.scoring.complete_test_temperature == 0.2
        assert config.recording.max_duration_seconds == 120
        assert config.recording.min_duration_ms == 500

    def test_provider_override_keeps_other_providers(self, tmp_path):
        """Overriding one provider does not drop the others."""
        write_config(
            tmp_path / CONFIG_FILE,
            "providers:\n  lmstudio:\n    base_url: http://gpu-box:1234/v1\n",
        )

        config = load_app_config()

        assert config.providers["lmstudio"].base_url == "http://gpu-box:1234/v1"
        assert config.providers["lmstudio"].default_model == "llama-3.2-3b-instruct"
        assert "openai" in config.providers

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        """SPEAKING_CONFIG points at another file."""
        custom = write_config(tmp_path / "custom.yaml", "paths:\n  db_path: /var/lib/speaking.db\n")
        monkeypatch.setenv("SPEAKING_CONFIG", str(custom))

        config = load_app_config()

        assert config.db_path == Path("/var/lib/speaking.db")

    def test_empty_file_uses_defaults(self, tmp_path):
        """An empty YAML file is the same as no file."""
        write_config(tmp_path / CONFIG_FILE, "")
        config = load_app_config()
        assert config.scoring.provider == "openai"

    def test_public_storage_url_trailing_slash(self, tmp_path):
        """Trailing slashes are stripped from the storage URL."""
        write_config(tmp_path / CONFIG_FILE, "paths:\n  public_storage_url: /media/\n")
        assert load_app_config().public_storage_url == "/media"


class TestCache:
    """Tests for the config cache."""

    def test_cached_between_calls(self):
        """Second call returns the cached object."""
        assert load_app_config() is load_app_config()

    def test_force_reload(self, tmp_path):
        """force_reload rereads the file."""
        first = load_app_config()
        write_config(tmp_path / CONFIG_FILE, "scoring:\n  max_tokens: 900\n")

        reloaded = load_app_config(force_reload=True)

        assert reloaded is not first
        assert reloaded.scoring.max_tokens == 900


class TestGetProviderConfig:
    """Tests for get_provider_config function."""

    def test_azure_has_api_version(self):
        """Azure carries an api-version and a deployment for transcription."""
        config = get_provider_config("azure")
        assert isinstance(config, ProviderConfig)
        assert config.api_version == "2025-01-01-preview"
        assert config.transcription_model == "whisper"

    def test_unknown_provider(self):
        """Unknown providers return None."""
        assert get_provider_config("nonexistent") is None

    def test_api_key_from_env(self, monkeypatch):
        """API keys are read from the named environment variable."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert get_provider_config("openai").get_api_key() == "sk-test"

    def test_no_api_key_env(self):
        """Providers without api_key_env have no key."""
        assert get_provider_config("lmstudio").get_api_key() is None
