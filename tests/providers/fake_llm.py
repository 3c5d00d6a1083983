from __future__ import annotations

from typing import Dict, List, Optional

from pmcopilot.exceptions import ProviderError
from pmcopilot.providers import CompletionResult


class FakeLLM:
    """Stands in for OpenAICompatProvider; returns canned text."""

    name = "fake"

    def __init__(self, output: str = "<prd># Generated PRD</prd>", *, fail: bool = False) -> None:
        self.output = output
        self.fail = fail
        self.default_model = "fake-model"
        self.calls: List[List[Dict[str, str]]] = []
        self.closed = False

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        self.calls.append(messages)
        if self.fail:
            raise ProviderError("model offline", provider=self.name, status_code=503)
        return CompletionResult(
            text=self.output,
            model=model or self.default_model,
            input_tokens=10,
            output_tokens=20,
            total_tokens=30,
        )

    async def aclose(self) -> None:
        self.closed = True
