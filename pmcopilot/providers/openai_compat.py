from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import APIError, APIStatusError, AsyncOpenAI

from pmcopilot.exceptions import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Text and usage returned by one chat completion."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class OpenAICompatProvider:
    """
    Chat Completions client for any OpenAI-compatible API.

    Defaults target a local Ollama server, which serves the OpenAI API
    under ``/v1``.
    """

    def __init__(
        self,
        name: str = "ollama",
        *,
        default_model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.name = name
        self.default_model = default_model
        if client is None:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        else:
            self._client = client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        params: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
        }
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            response = await self._client.chat.completions.create(**params)
        except APIStatusError as exc:
            raise ProviderError(
                f"{self.name} request failed: {exc.message}",
                provider=self.name,
                status_code=exc.status_code,
            ) from exc
        except APIError as exc:
            raise ProviderError(
                f"{self.name} request failed: {exc.message}", provider=self.name
            ) from exc

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        logger.debug("Completion from %s/%s: %d chars", self.name, response.model, len(text))
        return CompletionResult(
            text=text,
            model=response.model or params["model"],
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )

    async def aclose(self) -> None:
        await self._client.close()
