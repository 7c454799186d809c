"""
Service configuration.

Settings are read once at startup (environment + optional .env file) into an
immutable value that is passed explicitly to the app and orchestrator.
"""
import os
import tempfile
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_OCR_URL = "https://img-to-text-main-1.onrender.com/extract"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000", "http://localhost:5173")

COMPLETION_BACKENDS = ("rest", "sdk")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _parse_origins(value: Optional[str]) -> Tuple[str, ...]:
    if value is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    completion_backend: str = "rest"
    completion_timeout_seconds: float = 60.0

    ocr_url: str = DEFAULT_OCR_URL
    ocr_timeout_seconds: float = 30.0

    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    host: str = "0.0.0.0"
    port: int = 5000

    upload_dir: str = os.path.join(tempfile.gettempdir(), "report_service_uploads")
    max_upload_bytes: int = 10 * 1024 * 1024
    max_text_length: int = 50000

    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        if self.completion_backend not in COMPLETION_BACKENDS:
            raise ValueError(
                f"COMPLETION_BACKEND must be one of {', '.join(COMPLETION_BACKENDS)}, "
                f"got {self.completion_backend!r}"
            )
        if self.ocr_timeout_seconds <= 0 or self.completion_timeout_seconds <= 0:
            raise ValueError("Timeouts must be positive")

    @property
    def completion_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def allow_any_origin(self) -> bool:
        return "*" in self.allowed_origins

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None
        return cls(
            gemini_api_key=api_key,
            gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL).rstrip("/"),
            completion_backend=os.getenv("COMPLETION_BACKEND", "rest").strip().lower(),
            completion_timeout_seconds=_env_float("COMPLETION_TIMEOUT_SECONDS", 60.0),
            ocr_url=os.getenv("OCR_URL", DEFAULT_OCR_URL),
            ocr_timeout_seconds=_env_float("OCR_TIMEOUT_SECONDS", 30.0),
            allowed_origins=_parse_origins(os.getenv("ALLOWED_ORIGINS")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 5000),
            upload_dir=os.getenv("UPLOAD_DIR") or cls.upload_dir,
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            max_text_length=_env_int("MAX_TEXT_LENGTH", 50000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON", True),
        )


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Load .env (if present) and return the process settings."""
    load_dotenv(dotenv_path)
    return Settings.from_env()
