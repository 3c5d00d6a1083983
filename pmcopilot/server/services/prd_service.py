"""
PRD generation, critique and question answering.

Each operation builds prompts, calls the LLM provider, and reports
started/completed/error events, a trace and performance metrics to the
observability client. Tracing returning None never changes the result;
retries and lost tracing calls are summarised on the completed event.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pmcopilot import prompts
from pmcopilot.exceptions import ProviderError
from pmcopilot.observability import ObservabilityClient, TraceHandle, track_tracing_retries
from pmcopilot.providers import CompletionResult, OpenAICompatProvider
from pmcopilot.server.exceptions import ModelError, ValidationError

logger = logging.getLogger(__name__)

_CONVERSATION_ROLES = {"user", "assistant"}


def generate_session_id(user_id: Optional[str] = None) -> str:
    """Session id of the form ``session_<user>_<millis>_<random>``."""
    millis = int(time.time() * 1000)
    return f"session_{user_id or 'anon'}_{millis}_{secrets.token_hex(6)}"


@dataclass
class TraceInfo:
    """Identifiers the frontend needs to submit feedback later."""

    trace_id: str
    user_id: Optional[str]
    session_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceResult:
    """LLM output plus usage and tracing identifiers."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    elapsed_seconds: float
    trace: Optional[TraceInfo] = None
    tracing_degraded: bool = False


class PRDService:
    """Runs PRD operations against one provider and one observability client."""

    def __init__(
        self,
        provider: OpenAICompatProvider,
        observability: ObservabilityClient,
    ) -> None:
        self._provider = provider
        self._observability = observability

    async def generate(
        self,
        prd_id: str,
        prompt: str,
        *,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        tone: str = "professional",
        length: str = "standard",
        model: Optional[str] = None,
        template_outline: str = "",
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ServiceResult:
        if not prompt or not prompt.strip():
            raise ValidationError("No prompt provided. The current user input is missing.")

        history = [
            {"role": msg["role"], "content": msg["content"]}
            for msg in conversation_history or []
            if msg.get("role") in _CONVERSATION_ROLES
        ]
        system_prompt = prompts.interactive_system_prompt(tone, length) + template_outline
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history)
        messages.append({"role": "user", "content": prompt})

        return await self._run(
            operation="prd_generation",
            prd_id=prd_id,
            messages=messages,
            model=model,
            user_id=user_id,
            session_id=session_id,
            create_trace=self._observability.create_prd_trace,
            properties={
                "tone": tone,
                "length": length,
                "prompt_length": len(prompt),
                "conversation_turns": len(history),
                "templated": bool(template_outline),
            },
        )

    async def critique(
        self,
        prd_id: str,
        content: str,
        *,
        include_suggestions: bool = True,
        model: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ServiceResult:
        if not content or not content.strip():
            raise ValidationError("No PRD content provided for critique.")

        messages = [
            {"role": "system", "content": prompts.critique_system_prompt(include_suggestions)},
            {"role": "user", "content": prompts.critique_user_prompt(content)},
        ]
        return await self._run(
            operation="prd_critique",
            prd_id=prd_id,
            messages=messages,
            model=model,
            user_id=user_id,
            session_id=session_id,
            create_trace=self._observability.create_critique_trace,
            properties={
                "include_suggestions": include_suggestions,
                "content_length": len(content),
            },
        )

    async def answer_question(
        self,
        prd_id: str,
        question: str,
        content: str,
        *,
        context: str = "",
        model: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ServiceResult:
        if not question or not question.strip():
            raise ValidationError("No question provided.")

        messages = [
            {"role": "system", "content": prompts.question_system_prompt(context)},
            {"role": "user", "content": prompts.question_user_prompt(content, question)},
        ]
        return await self._run(
            operation="prd_question",
            prd_id=prd_id,
            messages=messages,
            model=model,
            user_id=user_id,
            session_id=session_id,
            create_trace=self._observability.create_question_trace,
            properties={"question_length": len(question), "content_length": len(content)},
        )

    async def _run(
        self,
        *,
        operation: str,
        prd_id: str,
        messages: List[Dict[str, str]],
        model: Optional[str],
        user_id: Optional[str],
        session_id: Optional[str],
        create_trace: Callable[..., Awaitable[Optional[TraceHandle]]],
        properties: Dict[str, Any],
    ) -> ServiceResult:
        obs = self._observability
        session_id = session_id or generate_session_id(user_id)
        model_name = model or self._provider.default_model
        base = {"prd_id": prd_id, "provider": self._provider.name, "model": model_name}

        with track_tracing_retries() as stats:
            start = time.perf_counter()
            await obs.track_event(
                f"{operation}_started", {**base, **properties}, user_id, session_id
            )
            trace = await create_trace(prd_id, user_id, session_id, {**base, **properties})

            try:
                result: CompletionResult = await self._provider.complete(messages, model=model)
            except ProviderError as exc:
                elapsed = time.perf_counter() - start
                await obs.track_event(
                    f"{operation}_error",
                    {
                        **base,
                        **stats.summary(),
                        "error": exc.message,
                        "elapsed_seconds": elapsed,
                    },
                    user_id,
                    session_id,
                    trace.id if trace else None,
                )
                logger.error("%s failed for PRD %s: %s", operation, prd_id, exc.message)
                raise ModelError(f"AI generation failed: {exc.message}") from exc

            elapsed = time.perf_counter() - start
            usage = {
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
            }
            await obs.track_performance_metric(
                "generation_time", elapsed, "seconds", {**base, **usage, "user_id": user_id}
            )
            await obs.track_performance_metric(
                "token_usage", result.total_tokens, "tokens", {**base, **usage, "user_id": user_id}
            )
            await obs.track_event(
                f"{operation}_completed",
                {
                    **base,
                    **usage,
                    **stats.summary(),
                    "elapsed_seconds": elapsed,
                    "output_length": len(result.text),
                },
                user_id,
                session_id,
                trace.id if trace else None,
            )

        logger.info("%s for PRD %s completed in %.2fs", operation, prd_id, elapsed)
        if stats.degraded:
            logger.warning(
                "%s for PRD %s lost tracing data after %d retries: %s",
                operation,
                prd_id,
                stats.retries,
                ", ".join(stats.failed_operations),
            )

        trace_info = None
        if trace is not None:
            trace_info = TraceInfo(
                trace_id=trace.id,
                user_id=user_id,
                session_id=session_id,
                metadata={"prd_id": prd_id},
            )
        return ServiceResult(
            content=result.text,
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_tokens=result.total_tokens,
            elapsed_seconds=elapsed,
            trace=trace_info,
            tracing_degraded=stats.degraded,
        )
