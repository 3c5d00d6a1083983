"""
HTTP API tests.

Uses a fake tracing backend and a fake LLM so no network is touched.
"""

from __future__ import annotations

import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from pmcopilot import __version__
from pmcopilot.config import get_settings
from pmcopilot.observability import ObservabilityClient, RetryPolicy
from pmcopilot.server import create_app
from pmcopilot.server.services import prd_service as prd_service_module
from tests.providers.fake_backend import FakeBackend, RecordingSleep
from tests.providers.fake_llm import FakeLLM


def _app(backend=None, llm=None, http_client=None, **obs_kwargs):
    observability = ObservabilityClient(
        backend,
        policy=RetryPolicy(max_retries=2, retry_delay_ms=1),
        sleep=RecordingSleep(),
        **obs_kwargs,
    )
    llm = llm or FakeLLM()
    app = create_app(
        get_settings(), observability=observability, provider=llm, http_client=http_client
    )
    return app, llm


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


class TestHealth:
    def test_health(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}
        assert response.headers["X-Request-ID"].startswith("req-")

    def test_observability_health_disabled(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            body = client.get("/health/observability").json()

        assert body["status"] == "unhealthy"
        assert body["enabled"] is False
        assert body["healthy"] is False
        assert body["configuration"]["has_public_key"] is False

    def test_observability_health_is_cached(self, backend: FakeBackend) -> None:
        app, _ = _app(backend)
        with TestClient(app) as client:
            first = client.get("/health/observability").json()
            second = client.get("/health/observability").json()

        assert first["status"] == second["status"] == "healthy"
        assert first["last_checked_utc"] == second["last_checked_utc"]
        health_traces = [t for t in backend.traces if t["name"] == "health-check"]
        assert len(health_traces) == 1

    def test_request_id_is_echoed(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.get("/health", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"


class TestFeedback:
    def test_feedback_records_score_and_events(self, backend: FakeBackend) -> None:
        app, _ = _app(backend)
        with TestClient(app) as client:
            response = client.post(
                "/feedback",
                json={"trace_id": "trace-7", "generation_id": "gen-1", "rating": 5, "comment": "nice"},
                headers={"X-User-ID": "user-1", "X-Session-ID": "session-1"},
            )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Feedback submitted successfully"}
        assert backend.scores[0]["trace_id"] == "trace-7"
        assert backend.scores[0]["value"] == 5
        assert backend.event_names() == ["feedback_submitted", "performance_metric"]
        assert backend.events[0]["metadata"]["user_id"] == "user-1"

    def test_feedback_succeeds_when_tracing_fails(self) -> None:
        app, _ = _app(FakeBackend(fail_with=RuntimeError("connection refused")))
        with TestClient(app) as client:
            response = client.post(
                "/feedback", json={"trace_id": "t", "generation_id": "g", "rating": 3}
            )

        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range_is_rejected(self, rating: int) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.post(
                "/feedback", json={"trace_id": "t", "generation_id": "g", "rating": rating}
            )

        assert response.status_code == 422

    def test_generation_id_is_required(self, backend: FakeBackend) -> None:
        app, _ = _app(backend)
        with TestClient(app) as client:
            missing = client.post("/feedback", json={"trace_id": "t", "rating": 4})
            blank = client.post(
                "/feedback", json={"trace_id": "t", "generation_id": "", "rating": 4}
            )

        assert missing.status_code == 422
        assert blank.status_code == 422
        assert backend.scores == []


class TestPRDs:
    def test_generate_returns_content_and_trace(self, backend: FakeBackend) -> None:
        app, llm = _app(backend)
        with TestClient(app) as client:
            response = client.post(
                "/prds/prd-1/generate",
                json={
                    "prompt": "A todo app for teams",
                    "tone": "technical",
                    "conversation_history": [
                        {"role": "user", "content": "hello"},
                        {"role": "assistant", "content": "hi, what's the idea?"},
                    ],
                },
                headers={"X-User-ID": "user-1", "X-Session-ID": "session-1"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "<prd># Generated PRD</prd>"
        assert body["model_used"] == "fake-model"
        assert body["usage"] == {"input_tokens": 10, "output_tokens": 20, "total_tokens": 30}
        assert body["trace"] == {"trace_id": "trace-1", "user_id": "user-1", "session_id": "session-1"}

        messages = llm.calls[0]
        assert messages[0]["role"] == "system"
        assert "technical specifications" in messages[0]["content"]
        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "A todo app for teams"

        assert backend.traces[0]["name"] == "prd-generation"
        assert backend.traces[0]["metadata"]["prd_id"] == "prd-1"
        assert backend.event_names() == [
            "prd_generation_started",
            "performance_metric",
            "performance_metric",
            "prd_generation_completed",
        ]

    def test_generate_without_tracing_has_no_trace(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.post("/prds/prd-1/generate", json={"prompt": "idea"})

        assert response.status_code == 200
        assert response.json()["trace"] is None

    def test_generate_when_tracing_is_broken(self) -> None:
        app, _ = _app(FakeBackend(fail_with=RuntimeError("network down")))
        with TestClient(app) as client:
            response = client.post("/prds/prd-1/generate", json={"prompt": "idea"})

        assert response.status_code == 200
        assert response.json()["content"] == "<prd># Generated PRD</prd>"
        assert response.json()["trace"] is None
        assert response.json()["tracing_degraded"] is True

    def test_blank_prompt_is_a_validation_error(self) -> None:
        app, llm = _app()
        with TestClient(app) as client:
            response = client.post("/prds/prd-1/generate", json={"prompt": "   "})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert llm.calls == []

    def test_provider_failure_is_502_and_tracked(self, backend: FakeBackend) -> None:
        app, _ = _app(backend, llm=FakeLLM(fail=True))
        with TestClient(app) as client:
            response = client.post("/prds/prd-1/critique", json={"existing_content": "# PRD"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "model_error"
        assert backend.event_names() == ["prd_critique_started", "prd_critique_error"]
        assert backend.events[1]["trace_id"] == "trace-1"

    def test_question(self, backend: FakeBackend) -> None:
        app, llm = _app(backend, llm=FakeLLM("The audience is PMs."))
        with TestClient(app) as client:
            response = client.post(
                "/prds/prd-1/question",
                json={"question": "Who is it for?", "prd_content": "# PRD\nFor PMs"},
            )

        assert response.status_code == 200
        assert response.json()["content"] == "The audience is PMs."
        assert "Question: Who is it for?" in llm.calls[0][1]["content"]
        assert backend.traces[0]["name"] == "prd-question"

    def test_shutdown_flushes_and_closes(self, backend: FakeBackend) -> None:
        app, llm = _app(backend)
        with TestClient(app) as client:
            client.post("/feedback", json={"trace_id": "t", "generation_id": "g", "rating": 4})

        assert backend.flush_count >= 1
        assert backend.closed is True
        assert llm.closed is True

    def test_tracing_retries_are_summarised_on_completion(self) -> None:
        backend = FakeBackend(fail_with=[RuntimeError("network blip")])
        app, _ = _app(backend)
        with TestClient(app) as client:
            response = client.post("/prds/prd-1/generate", json={"prompt": "idea"})

        assert response.status_code == 200
        assert response.json()["tracing_degraded"] is False
        completed = backend.events[-1]
        assert completed["name"] == "prd_generation_completed"
        assert completed["metadata"]["tracing_retries"] == 1
        assert completed["metadata"]["tracing_retries_by_kind"] == {"connection_error": 1}
        assert completed["metadata"]["tracing_failed_operations"] == []

    def test_lost_tracing_calls_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        app, _ = _app(FakeBackend(fail_with=RuntimeError("network down")))
        with caplog.at_level(logging.WARNING, logger=prd_service_module.__name__):
            with TestClient(app) as client:
                client.post("/prds/prd-9/critique", json={"existing_content": "# PRD"})

        assert "prd-9 lost tracing data" in caplog.text
        assert "create-trace-prd-critique-prd-9" in caplog.text

    def test_generate_follows_template_sections(self) -> None:
        app, llm = _app()
        with TestClient(app) as client:
            response = client.post(
                "/prds/prd-1/generate", json={"prompt": "idea", "template_id": "feature-brief"}
            )

        assert response.status_code == 200
        system_prompt = llm.calls[0][0]["content"]
        assert '"Feature Brief" template' in system_prompt
        assert "- Acceptance Criteria: Observable conditions for done" in system_prompt
        assert "- Risks (optional)" in system_prompt

    def test_unknown_template_is_ignored(self) -> None:
        app, llm = _app()
        with TestClient(app) as client:
            response = client.post(
                "/prds/prd-1/generate", json={"prompt": "idea", "template_id": "nope"}
            )

        assert response.status_code == 200
        assert "template" not in llm.calls[0][0]["content"]

    def test_critique_uses_saved_content(self) -> None:
        app, llm = _app()
        with TestClient(app) as client:
            prd_id = client.post("/prds", json={"title": "t", "content": "# Saved PRD"}).json()["id"]
            response = client.post(f"/prds/{prd_id}/critique", json={})

        assert response.status_code == 200
        assert "# Saved PRD" in llm.calls[0][1]["content"]

    def test_question_about_unknown_prd_is_404(self) -> None:
        app, llm = _app()
        with TestClient(app) as client:
            response = client.post("/prds/missing/question", json={"question": "Who?"})

        assert response.status_code == 404
        assert response.json()["error"] == {
            "code": "not_found",
            "message": "PRD not found",
            "request_id": response.headers["X-Request-ID"],
        }
        assert llm.calls == []


class TestStoredPRDs:
    def test_crud_round(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            created = client.post(
                "/prds", json={"title": "Team todos", "template_id": "standard-prd"}
            )
            prd_id = created.json()["id"]
            listed = client.get("/prds").json()
            updated = client.put(f"/prds/{prd_id}", json={"content": "# v2"})
            fetched = client.get(f"/prds/{prd_id}").json()
            deleted = client.delete(f"/prds/{prd_id}")
            gone = client.get(f"/prds/{prd_id}")

        assert created.status_code == 201
        assert created.json()["content"] == ""
        assert [p["id"] for p in listed] == [prd_id]
        assert updated.status_code == 200
        assert fetched["title"] == "Team todos"
        assert fetched["content"] == "# v2"
        assert fetched["template_id"] == "standard-prd"
        assert deleted.status_code == 204
        assert gone.status_code == 404

    def test_blank_title_is_rejected(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.post("/prds", json={"title": ""})

        assert response.status_code == 422

    def test_update_and_delete_unknown_prd(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            assert client.put("/prds/nope", json={"title": "x"}).status_code == 404
            assert client.delete("/prds/nope").status_code == 404

    def test_session_is_saved_and_replaced(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            prd_id = client.post("/prds", json={"title": "t"}).json()["id"]
            assert client.get(f"/prds/{prd_id}/session").status_code == 404

            first = client.post(
                f"/prds/{prd_id}/session",
                json={
                    "conversation_history": [{"role": "user", "content": "idea"}],
                    "settings": {"tone": "casual"},
                },
            ).json()
            second = client.post(
                f"/prds/{prd_id}/session", json={"settings": {"tone": "technical"}}
            ).json()
            stored = client.get(f"/prds/{prd_id}/session").json()

        assert first["success"] is True
        assert second["id"] == first["id"]
        assert stored["prd_id"] == prd_id
        assert stored["conversation_history"] == []
        assert stored["settings"] == {"tone": "technical"}

    def test_session_for_unknown_prd_is_404(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            response = client.post("/prds/nope/session", json={})

        assert response.status_code == 404


class TestTemplates:
    def test_list_templates_with_sections(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            templates = client.get("/templates").json()

        assert [t["id"] for t in templates] == ["feature-brief", "standard-prd"]
        sections = templates[1]["sections"]
        assert sections[0] == {
            "id": "standard-prd:overview",
            "name": "Overview",
            "description": "Summary, purpose and value proposition",
            "placeholder": None,
            "required": True,
            "order": 0,
        }
        assert [s["order"] for s in sections] == list(range(len(sections)))

    def test_get_template(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            found = client.get("/templates/feature-brief")
            missing = client.get("/templates/nope")

        assert found.json()["category"] == "feature"
        assert found.json()["is_custom"] is False
        assert missing.status_code == 404


class TestProviders:
    def test_ollama_models(self) -> None:
        seen = []

        def _tags(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}]})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_tags))
        app, _ = _app(http_client=http_client)
        with TestClient(app) as client:
            default = client.get("/ollama/models").json()
            client.get("/ollama/models", params={"baseURL": "http://gpu-box:11434"})

        assert seen == [
            "http://localhost:11434/api/tags",
            "http://gpu-box:11434/api/tags",
        ]
        assert default == [
            {
                "id": "llama3.2:latest",
                "name": "llama3.2:latest",
                "description": "Local model - llama3.2:latest",
                "max_tokens": 8192,
                "supports_streaming": True,
                "cost_per_1m_tokens": {"input": 0, "output": 0},
            }
        ]

    def test_ollama_unreachable_is_502(self) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_refuse))
        app, _ = _app(http_client=http_client)
        with TestClient(app) as client:
            response = client.get("/ollama/models")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "model_error"

    def test_provider_check_succeeds(self) -> None:
        app, llm = _app(llm=FakeLLM("Hello from AI provider test!"))
        with TestClient(app) as client:
            body = client.post("/test-provider", json={}).json()

        assert body["success"] is True
        assert body["provider"] == "fake"
        assert body["model"] == "fake-model"
        assert body["test_content"] == "Hello from AI provider test!"
        assert body["response_time"] >= 0
        assert "Hello from AI provider test!" in llm.calls[0][0]["content"]

    def test_provider_check_reports_failure_in_body(self) -> None:
        app, _ = _app(llm=FakeLLM(fail=True))
        with TestClient(app) as client:
            response = client.post("/test-provider", json={"model": "other"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["model"] == "other"
        assert body["error"] == "model offline"
