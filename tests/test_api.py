"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from src.agent import CarePipeline
from src.config import SUPABASE_SERVICE_ROLE_KEY
from src.errors import UpstreamRateLimited, UpstreamUnavailable
from src.models import HandoffResult
from src.pipeline.persistence import ConversationRecorder
from src.server import app
from src.services.handoff import HttpHandoff

SERVICE_AUTH = {"Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}"}
MEMBER_AUTH = {"Authorization": "Bearer member-token"}
NURSE_AUTH = {"Authorization": "Bearer nurse-token"}


@pytest.fixture
def db(seeded_supabase):
    seeded_supabase.add_agent("clara", agent_id="agent-clara", display_name="Clara")
    seeded_supabase.add_agent("lee", agent_id="agent-lee", display_name="Lee", status="inactive")
    seeded_supabase.users = {
        "member-token": {"id": "user-member"},
        "nurse-token": {"id": "user-nurse"},
        "admin-token": {"id": "user-admin"},
    }
    seeded_supabase.tables["user_roles"].extend(
        [
            {"user_id": "user-member", "role": "member"},
            {"user_id": "user-nurse", "role": "nurse"},
            {"user_id": "user-admin", "role": "admin"},
        ]
    )
    return seeded_supabase


@pytest.fixture
def pipeline(db):
    """Build a pipeline on the in-memory database and attach it to app state (mirrors the lifespan)."""
    gateway = MagicMock()
    gateway.complete.return_value = "Hello! I'm Clara. How can I help you today?"
    handoff = MagicMock()
    handoff.consult.return_value = None
    care = CarePipeline(
        db, gateway, handoff, recorder=ConversationRecorder(db, today=lambda: date(2026, 10, 19)),
    )

    app.state.pipeline = care
    yield care
    # Clean up
    app.state.pipeline = None


@pytest.fixture
def client(pipeline):
    """FastAPI test client with the pipeline wired up."""
    return TestClient(app)


def _chat_body(text: str = "Hello!", **extra) -> dict:
    return {"messages": [{"role": "user", "content": text}], **extra}


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "care-agents"

    def test_root_lists_endpoints(self, client):
        data = client.get("/").json()
        assert data["service"] == "Care Agents API"
        assert data["health"] == "/api/health"


class TestChatEndpoint:
    def test_chat_returns_response(self, client):
        response = client.post(
            "/api/agents/clara-member/chat", json=_chat_body(), headers=MEMBER_AUTH,
        )
        assert response.status_code == 200
        assert response.json() == {
            "message": "Hello! I'm Clara. How can I help you today?",
            "agent": "Clara",
            "handoff": None,
        }

    def test_chat_records_caller_and_session(self, client, db):
        client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body(sessionId="session-42"),
            headers=MEMBER_AUTH,
        )
        [row] = db.tables["ai_agent_conversations"]
        assert row["user_id"] == "user-member"
        assert row["session_id"] == "session-42"

    def test_top_level_ids_reach_the_prompt(self, client, pipeline):
        client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body(memberId="member-1", language="nl"),
            headers=MEMBER_AUTH,
        )
        prompt = pipeline.gateway.complete.call_args[0][1]
        assert "Member: Anna de Vries" in prompt
        assert "Respond in Dutch" in prompt

    def test_nested_context_page_hint(self, client, pipeline):
        response = client.post(
            "/api/agents/clara/chat",
            json=_chat_body(context={"page": "/devices"}, language="es"),
        )
        assert response.status_code == 200
        prompt = pipeline.gateway.complete.call_args[0][1]
        assert "device catalog" in prompt
        assert "You MUST respond in Spanish" in prompt

    def test_handoff_is_reported(self, client, pipeline):
        pipeline.handoff.consult.return_value = HandoffResult(agent="Ineke", message="Take it easy.")
        response = client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body("I have a fever"),
            headers=MEMBER_AUTH,
        )
        assert response.status_code == 200
        assert response.json()["handoff"] == {"agent": "Ineke", "message": "Take it easy."}

    def test_public_agent_without_token(self, client, db):
        response = client.post("/api/agents/clara/chat", json=_chat_body())
        assert response.status_code == 200
        assert db.tables["ai_agent_conversations"][0]["user_id"] is None

    def test_unknown_agent_returns_404(self, client):
        response = client.post("/api/agents/dr-house/chat", json=_chat_body(), headers=MEMBER_AUTH)
        assert response.status_code == 404
        assert response.json() == {"error": "Unknown agent: dr-house"}

    def test_unrouted_path_uses_error_envelope(self, client):
        response = client.get("/api/agents/clara/history")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_wrong_method_uses_error_envelope(self, client):
        response = client.get("/api/agents/clara/chat")
        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/agents/clara/chat",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestValidation:
    def test_empty_messages_rejected_before_any_network_call(self, client, pipeline, db):
        db.calls.clear()
        response = client.post(
            "/api/agents/clara-member/chat", json={"messages": []}, headers=MEMBER_AUTH,
        )
        assert response.status_code == 400
        assert "messages" in response.json()["error"]
        assert db.calls == []
        pipeline.gateway.complete.assert_not_called()

    def test_missing_messages_rejected(self, client):
        response = client.post("/api/agents/clara/chat", json={"language": "en"})
        assert response.status_code == 400

    def test_null_language_falls_back_to_english(self, client, pipeline):
        response = client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body(language=None),
            headers=MEMBER_AUTH,
        )
        assert response.status_code == 200
        assert "Respond in English" in pipeline.gateway.complete.call_args[0][1]

    def test_null_language_accepted_on_handoff(self, client, pipeline):
        body = {"target_agent": "ineke", "message": "Member reports a rash", "language": None}
        response = client.post("/api/agent-handoff", json=body, headers=SERVICE_AUTH)
        assert response.status_code == 200
        assert "Respond in English" in pipeline.gateway.complete.call_args[0][1]

    def test_invalid_role_rejected(self, client):
        response = client.post(
            "/api/agents/clara/chat",
            json={"messages": [{"role": "tool", "content": "x"}]},
        )
        assert response.status_code == 400


class TestAuthorization:
    def test_missing_token(self, client, pipeline):
        response = client.post("/api/agents/clara-member/chat", json=_chat_body())
        assert response.status_code == 401
        assert response.json() == {"error": "Authorization required"}
        pipeline.gateway.complete.assert_not_called()

    def test_invalid_token(self, client):
        response = client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body(),
            headers={"Authorization": "Bearer forged"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_role_required(self, client):
        response = client.post("/api/agents/ineke/chat", json=_chat_body(), headers=MEMBER_AUTH)
        assert response.status_code == 401
        assert response.json() == {"error": "You do not have access to this agent"}

    def test_nurse_may_use_nurse_agent(self, client, db):
        response = client.post("/api/agents/ineke/chat", json=_chat_body(), headers=NURSE_AUTH)
        assert response.status_code == 200
        assert response.json()["agent"] == "Ineke"
        counters = db.analytics[("agent-ineke", "2026-10-19")]
        assert counters["successful_resolutions"] == 1


class TestErrorMapping:
    def test_rate_limit(self, client, pipeline, db):
        pipeline.gateway.complete.side_effect = UpstreamRateLimited()
        response = client.post(
            "/api/agents/clara-member/chat", json=_chat_body(), headers=MEMBER_AUTH,
        )
        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded. Please try again later."}
        assert db.tables["ai_agent_conversations"] == []

    def test_quota_exhausted(self, client, pipeline):
        pipeline.gateway.complete.side_effect = UpstreamUnavailable()
        response = client.post(
            "/api/agents/clara-member/chat", json=_chat_body(), headers=MEMBER_AUTH,
        )
        assert response.status_code == 402
        assert response.json() == {"error": "Service unavailable. Please contact support."}

    def test_inactive_agent_is_configuration_error(self, client):
        response = client.post(
            "/api/agents/lee/chat", json=_chat_body(), headers={"Authorization": "Bearer admin-token"},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Agent lee not configured"}

    def test_unexpected_error_is_generic_500(self, client, pipeline):
        pipeline.gateway.complete.side_effect = RuntimeError("LLM exploded")
        response = client.post(
            "/api/agents/clara-member/chat", json=_chat_body(), headers=MEMBER_AUTH,
        )
        assert response.status_code == 500
        assert response.json() == {"error": "An internal error occurred. Please try again."}
        assert "exploded" not in response.text

    def test_pipeline_not_ready_returns_503(self):
        app.state.pipeline = None
        response = TestClient(app).post("/api/agents/clara/chat", json=_chat_body())
        assert response.status_code == 503
        assert "starting up" in response.json()["error"]


class TestAgentHandoffEndpoint:
    def _body(self) -> dict:
        return {
            "target_agent": "ineke",
            "message": "Member reports dizziness",
            "context": {"memberId": "member-1"},
            "language": "en",
        }

    def test_requires_service_key(self, client, pipeline):
        response = client.post("/api/agent-handoff", json=self._body(), headers=MEMBER_AUTH)
        assert response.status_code == 401
        pipeline.gateway.complete.assert_not_called()

    def test_answers_consultation(self, client, pipeline, db):
        pipeline.gateway.complete.return_value = "Check blood pressure and hydrate."
        response = client.post("/api/agent-handoff", json=self._body(), headers=SERVICE_AUTH)
        assert response.status_code == 200
        assert response.json() == {
            "message": "Check blood pressure and hydrate.",
            "agent": "Ineke",
            "agent_name": "ineke",
        }
        prompt = pipeline.gateway.complete.call_args[0][1]
        assert "Member: Anna de Vries" in prompt
        assert "handoff request from another AI agent" in prompt
        # The consulting agent records the exchange, not the consulted one
        assert db.tables["ai_agent_conversations"] == []

    def test_unknown_target_is_configuration_error(self, client):
        body = {**self._body(), "target_agent": "nobody"}
        response = client.post("/api/agent-handoff", json=body, headers=SERVICE_AUTH)
        assert response.status_code == 500
        assert response.json() == {"error": "Agent nobody not configured"}


class TestHandoffRoundTrip:
    def test_member_question_consults_remote_nurse_route(self, client, pipeline, db):
        def _complete(agent, system_prompt, messages):
            if agent.name == "ineke":
                return "Lie down and measure blood pressure."
            return "I checked with our nurse Ineke: please lie down."

        pipeline.gateway.complete.side_effect = _complete

        # HANDOFF_URL deployment: the nurse answers behind the handoff route
        handoff = HttpHandoff(url="http://testserver/api/agent-handoff")
        handoff._client = TestClient(app)
        handoff._client.headers.update(SERVICE_AUTH)
        pipeline.handoff = handoff
        pipeline.graph = pipeline._build_graph()

        response = client.post(
            "/api/agents/clara-member/chat",
            json=_chat_body("I feel dizzy", memberId="member-1"),
            headers=MEMBER_AUTH,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "I checked with our nurse Ineke: please lie down."
        assert data["handoff"] == {
            "agent": "Ineke",
            "message": "Lie down and measure blood pressure.",
        }
        member_prompt = pipeline.gateway.complete.call_args_list[-1][0][1]
        assert '"Lie down and measure blood pressure."' in member_prompt
        assert len(db.tables["ai_agent_conversations"]) == 1
        assert db.analytics[("agent-clara-member", "2026-10-19")]["escalations"] == 1

    def test_default_pipeline_consults_nurse_in_process(self, db):
        def _complete(agent, system_prompt, messages):
            if agent.name == "ineke":
                return "Lie down and measure blood pressure."
            return "I checked with our nurse Ineke: please lie down."

        gateway = MagicMock()
        gateway.complete.side_effect = _complete
        app.state.pipeline = CarePipeline(
            db, gateway, recorder=ConversationRecorder(db, today=lambda: date(2026, 10, 19)),
        )
        try:
            response = TestClient(app).post(
                "/api/agents/clara-member/chat",
                json=_chat_body("I feel dizzy", memberId="member-1"),
                headers=MEMBER_AUTH,
            )
        finally:
            app.state.pipeline = None

        assert response.status_code == 200
        assert response.json()["handoff"] == {
            "agent": "Ineke",
            "message": "Lie down and measure blood pressure.",
        }
        assert gateway.complete.call_count == 2
        assert db.analytics[("agent-clara-member", "2026-10-19")]["escalations"] == 1
