"""
Model discovery for a local Ollama server.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

from pmcopilot.exceptions import ProviderError

logger = logging.getLogger(__name__)

OLLAMA_CONTEXT_TOKENS = 8192


def _describe(model: Dict[str, Any]) -> Dict[str, Any]:
    name = model.get("name") or model.get("model") or "unknown"
    return {
        "id": name,
        "name": name,
        "description": f"Local model - {name}",
        "max_tokens": OLLAMA_CONTEXT_TOKENS,
        "supports_streaming": True,
        "cost_per_1m_tokens": {"input": 0, "output": 0},
    }


async def list_ollama_models(http_client: httpx.AsyncClient, base_url: str) -> List[Dict[str, Any]]:
    """
    List the models installed on an Ollama server.

    Args:
        http_client: Client used for the request.
        base_url: Server root, e.g. ``http://localhost:11434``.

    Returns:
        One descriptor per installed model.

    Raises:
        ProviderError: The server is unreachable or answered with an error.
    """
    url = f"{base_url.rstrip('/')}/api/tags"
    try:
        response = await http_client.get(url)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as exc:
        raise ProviderError(
            f"Ollama returned {exc.response.status_code}",
            provider="ollama",
            status_code=exc.response.status_code,
        ) from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise ProviderError(f"Failed to fetch Ollama models: {exc}", provider="ollama") from exc

    models = [_describe(model) for model in payload.get("models") or []]
    logger.debug("Ollama at %s has %d model(s)", base_url, len(models))
    return models
