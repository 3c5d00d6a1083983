"""
Configuration from environment variables.

Usage:
    from pmcopilot.config import get_settings

    settings = get_settings()
    print(settings.observability_enabled, settings.observability_base_url)
"""

from functools import lru_cache
from typing import Optional
import os

from dotenv import load_dotenv

from pmcopilot.exceptions import ConfigError

DEFAULT_OBSERVABILITY_BASE_URL = "https://cloud.langfuse.com"


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _strip_suffix(value: str, suffix: str) -> str:
    if value.endswith(suffix):
        return value[: -len(suffix)]
    return value


def _env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(
            f"{name} must be an integer", details={name: raw}
        ) from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number", details={name: raw}) from exc


class Settings:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        # Server
        self.host: str = os.getenv("PM_COPILOT_HOST", "0.0.0.0")
        self.port: int = _env_int("PM_COPILOT_PORT", 8080)
        self.environment: str = os.getenv("PM_COPILOT_ENV", "production")
        self.log_level: str = os.getenv("PM_COPILOT_LOG_LEVEL", "INFO")

        # LLM provider (OpenAI-compatible, Ollama by default)
        self.llm_base_url: str = os.getenv(
            "PM_COPILOT_LLM_BASE_URL", "http://localhost:11434/v1"
        )
        self.llm_api_key: str = os.getenv("PM_COPILOT_LLM_API_KEY", "ollama")
        self.default_model: str = os.getenv(
            "PM_COPILOT_DEFAULT_MODEL", "llama3.2:latest"
        )
        self.ollama_base_url: str = os.getenv("PM_COPILOT_OLLAMA_BASE_URL") or _strip_suffix(
            self.llm_base_url.rstrip("/"), "/v1"
        )

        # Storage
        self.database_url: str = os.getenv(
            "PM_COPILOT_DATABASE_URL", "sqlite:///prds.db"
        )

        # Observability (Langfuse-compatible tracing service)
        self.observability_public_key: Optional[str] = _first_env(
            "OBSERVABILITY_PUBLIC_KEY", "LANGFUSE_PUBLIC_KEY"
        )
        self.observability_secret_key: Optional[str] = _first_env(
            "OBSERVABILITY_SECRET_KEY", "LANGFUSE_SECRET_KEY"
        )
        self.observability_base_url: str = (
            _first_env("OBSERVABILITY_BASE_URL", "LANGFUSE_HOST")
            or DEFAULT_OBSERVABILITY_BASE_URL
        )
        self.max_retries: int = _env_int("OBSERVABILITY_MAX_RETRIES", 3)
        self.retry_delay_ms: int = _env_int("OBSERVABILITY_RETRY_DELAY_MS", 1000)
        self.health_check_interval_ms: int = _env_int(
            "OBSERVABILITY_HEALTH_CHECK_INTERVAL_MS", 30000
        )
        self.flush_interval_seconds: float = _env_float(
            "OBSERVABILITY_FLUSH_INTERVAL_SECONDS", 5.0
        )

        detailed = os.getenv("OBSERVABILITY_DETAILED_LOGGING")
        if detailed is None:
            self.detailed_logging: bool = self.environment == "development"
        else:
            self.detailed_logging = _env_truthy(detailed)

    @property
    def observability_enabled(self) -> bool:
        """Tracing is enabled only when both keys are set."""
        return bool(self.observability_public_key and self.observability_secret_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    load_dotenv()
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
