"""Tests for environment-driven settings."""
import dataclasses

import pytest

from report_service.config import DEFAULT_ALLOWED_ORIGINS, DEFAULT_OCR_URL, Settings

ENV_VARS = [
    "GEMINI_API_KEY", "GOOGLE_API_KEY", "GEMINI_MODEL", "GEMINI_BASE_URL", "COMPLETION_BACKEND",
    "COMPLETION_TIMEOUT_SECONDS", "OCR_URL", "OCR_TIMEOUT_SECONDS", "ALLOWED_ORIGINS", "HOST",
    "PORT", "UPLOAD_DIR", "MAX_UPLOAD_BYTES", "MAX_TEXT_LENGTH", "LOG_LEVEL", "LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettingsFromEnv:

    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.gemini_api_key is None
        assert settings.completion_configured is False
        assert settings.ocr_url == DEFAULT_OCR_URL
        assert settings.port == 5000
        assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS
        assert settings.completion_backend == "rest"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "abc")
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("OCR_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example ,")
        monkeypatch.setenv("LOG_JSON", "false")
        monkeypatch.setenv("GEMINI_BASE_URL", "https://proxy.example/v1beta/")

        settings = Settings.from_env()
        assert settings.gemini_api_key == "abc"
        assert settings.completion_configured is True
        assert settings.port == 8080
        assert settings.ocr_timeout_seconds == 12.5
        assert settings.allowed_origins == ("https://a.example", "https://b.example")
        assert settings.log_json is False
        assert settings.gemini_base_url == "https://proxy.example/v1beta"

    def test_google_api_key_fallback(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "from-google")
        assert Settings.from_env().gemini_api_key == "from-google"

    def test_empty_key_is_not_configured(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "")
        assert Settings.from_env().gemini_api_key is None

    def test_wildcard_origin(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "*")
        assert Settings.from_env().allow_any_origin is True

    def test_invalid_port(self, monkeypatch):
        monkeypatch.setenv("PORT", "fivethousand")
        with pytest.raises(ValueError, match="PORT"):
            Settings.from_env()

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("COMPLETION_BACKEND", "openai")
        with pytest.raises(ValueError, match="COMPLETION_BACKEND"):
            Settings.from_env()


class TestSettingsValue:

    def test_is_immutable(self):
        settings = Settings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.port = 1

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            Settings(ocr_timeout_seconds=0)
