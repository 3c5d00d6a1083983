"""Pytest configuration for test discovery."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pmcopilot.config import reset_settings  # noqa: E402

_ISOLATED_ENV = (
    "OBSERVABILITY_PUBLIC_KEY",
    "OBSERVABILITY_SECRET_KEY",
    "OBSERVABILITY_BASE_URL",
    "LANGFUSE_PUBLIC_KEY",
    "LANGFUSE_SECRET_KEY",
    "LANGFUSE_HOST",
    "PM_COPILOT_LLM_BASE_URL",
    "PM_COPILOT_OLLAMA_BASE_URL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    # A developer's .env or shell must not turn tracing on or touch a real database.
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PM_COPILOT_DATABASE_URL", "sqlite://")
    monkeypatch.setattr("pmcopilot.config.load_dotenv", lambda *a, **k: False)
    reset_settings()
    yield
    reset_settings()
