"""
LLM provider endpoints.

GET  /ollama/models  - Models installed on the Ollama server
POST /test-provider  - Send a short prompt to check the provider answers
"""
import logging
import time
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request

from pmcopilot.exceptions import ProviderError
from pmcopilot.providers import OpenAICompatProvider, list_ollama_models
from pmcopilot.server.deps import get_http_client, get_provider
from pmcopilot.server.exceptions import ModelError
from pmcopilot.server.schemas import ModelInfo, ProviderTestRequest, ProviderTestResponse


logger = logging.getLogger(__name__)

router = APIRouter(tags=["providers"])

TEST_PROMPT = "Say 'Hello from AI provider test!' in exactly those words."


@router.get("/ollama/models", response_model=List[ModelInfo])
async def ollama_models(
    request: Request,
    base_url: Optional[str] = Query(None, alias="baseURL"),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> List[ModelInfo]:
    """List local models; ``baseURL`` overrides the configured server."""
    target = base_url or request.app.state.settings.ollama_base_url
    try:
        models = await list_ollama_models(http_client, target)
    except ProviderError as exc:
        logger.warning("Could not list Ollama models at %s: %s", target, exc.message)
        raise ModelError(exc.message) from exc
    return [ModelInfo(**model) for model in models]


@router.post("/test-provider", response_model=ProviderTestResponse)
async def check_provider(
    body: ProviderTestRequest,
    provider: OpenAICompatProvider = Depends(get_provider),
) -> ProviderTestResponse:
    """
    Check the provider with a tiny completion.

    A provider failure is reported in the body with ``success`` false,
    not as an HTTP error.
    """
    model = body.model or provider.default_model
    start = time.perf_counter()
    try:
        result = await provider.complete(
            [{"role": "user", "content": TEST_PROMPT}],
            model=model,
            temperature=0.1,
            max_tokens=50,
        )
    except ProviderError as exc:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.warning("Provider test for %s/%s failed: %s", provider.name, model, exc.message)
        return ProviderTestResponse(
            success=False,
            provider=provider.name,
            model=model,
            response_time=elapsed_ms,
            error=exc.message,
        )

    elapsed_ms = (time.perf_counter() - start) * 1000
    return ProviderTestResponse(
        success=True,
        provider=provider.name,
        model=result.model,
        response_time=elapsed_ms,
        test_content=result.text,
    )
