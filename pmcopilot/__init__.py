"""
pmcopilot - AI-assisted PRD authoring backend.

Observability layer:
    from pmcopilot.observability import ObservabilityClient

    client = ObservabilityClient.from_settings()
    trace = await client.create_prd_trace("prd-123", user_id="u1")
    healthy = await client.check_health()

HTTP API:
    uvicorn pmcopilot.server:app
"""

__version__ = "1.0.0"

from pmcopilot.exceptions import (  # noqa: F401,E402
    ConfigError,
    ObservabilityError,
    PMCopilotError,
    ProviderError,
)

__all__ = [
    "__version__",
    "PMCopilotError",
    "ConfigError",
    "ProviderError",
    "ObservabilityError",
]
