"""
Tests for the HTTP routes, with the agents mocked out.
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

import api.server as server
from config.settings import settings
from core import ContextAssemblyError, RecordNotFoundError, UserNotFoundError
from schemas import ExtractionStats, ProactiveMessageSchema, ProactiveStats

AUTH = {"Authorization": "Bearer s3cret"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    return TestClient(server.app)


@pytest.fixture
def mock_orchestrator(monkeypatch):
    orchestrator = AsyncMock()
    monkeypatch.setattr(server, "orchestrator", orchestrator)
    return orchestrator


def fake_turn(conversation_id, *chunks):
    async def stream():
        for chunk in chunks:
            yield chunk

    turn = MagicMock()
    turn.conversation_id = conversation_id
    turn.chunks = stream
    return turn


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


class TestChatRoute:

    def test_streams_reply_with_conversation_header(self, client, mock_orchestrator):
        mock_orchestrator.start_turn.return_value = fake_turn(42, "hey ", "sam!")

        response = client.post("/api/chat", json={"message": "hi"}, headers={"X-User-Id": "1"})

        assert response.status_code == 200
        assert response.text == "hey sam!"
        assert response.headers["X-Conversation-Id"] == "42"
        mock_orchestrator.start_turn.assert_awaited_once_with(1, "hi", conversation_id=None)

    def test_missing_identity_is_unauthorized(self, client, mock_orchestrator):
        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 401
        mock_orchestrator.start_turn.assert_not_called()

    @pytest.mark.parametrize("message", ["", "x" * 10001])
    def test_message_length_is_validated(self, client, mock_orchestrator, message):
        response = client.post("/api/chat", json={"message": message}, headers={"X-User-Id": "1"})

        assert response.status_code == 422

    def test_unknown_conversation_is_404(self, client, mock_orchestrator):
        mock_orchestrator.start_turn.side_effect = RecordNotFoundError("Conversation", 9)

        response = client.post("/api/chat", json={"message": "hi", "conversation_id": 9}, headers={"X-User-Id": "1"})

        assert response.status_code == 404

    def test_context_failure_is_500(self, client, mock_orchestrator):
        mock_orchestrator.start_turn.side_effect = ContextAssemblyError(1, "db down")

        response = client.post("/api/chat", json={"message": "hi"}, headers={"X-User-Id": "1"})

        assert response.status_code == 500


class TestOnboardingRoute:

    @pytest.fixture
    def mock_memory(self, monkeypatch):
        memory = AsyncMock()
        monkeypatch.setattr(server, "memory_manager", memory)
        return memory

    def test_saves_answers(self, client, mock_memory):
        body = {"name": "Sam", "life_chapter": "heartbreak", "saturday_night": ["chill"]}

        response = client.post("/api/user/onboarding", json=body, headers={"X-User-Id": "1"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        user_id, answers = mock_memory.complete_onboarding.await_args.args
        assert user_id == 1
        assert answers.life_chapter == "heartbreak"

    def test_unknown_answer_is_rejected(self, client, mock_memory):
        response = client.post(
            "/api/user/onboarding", json={"name": "Sam", "coaching_style": "cheerleader"}, headers={"X-User-Id": "1"}
        )

        assert response.status_code == 422
        mock_memory.complete_onboarding.assert_not_called()

    def test_missing_user_is_404_with_error_body(self, client, mock_memory):
        mock_memory.complete_onboarding.side_effect = UserNotFoundError(5)

        response = client.post("/api/user/onboarding", json={"name": "Sam"}, headers={"X-User-Id": "5"})

        assert response.status_code == 404
        assert response.json() == {
            "error": "USER_NOT_FOUND",
            "message": "User 5 not found",
            "context": {"user_id": 5},
        }


class TestProactiveRoutes:

    def test_lists_pending_messages(self, client, mock_orchestrator):
        mock_orchestrator.get_pending_proactive_messages.return_value = [
            ProactiveMessageSchema(
                id=3,
                user_id=1,
                content="how did it go?",
                trigger_type="date_event",
                status="delivered",
                created_at=datetime(2026, 2, 5, 14, 0),
            )
        ]

        response = client.get("/api/user/proactive-messages", headers={"X-User-Id": "1"})

        assert response.status_code == 200
        assert response.json()[0]["content"] == "how did it go?"

    def test_mark_read_of_foreign_message_is_404(self, client, mock_orchestrator):
        mock_orchestrator.mark_proactive_message_read.side_effect = RecordNotFoundError("ProactiveMessage", 3)

        response = client.patch("/api/user/proactive-messages", json={"id": 3}, headers={"X-User-Id": "2"})

        assert response.status_code == 404
        mock_orchestrator.mark_proactive_message_read.assert_awaited_once_with(3, 2)


class TestCronRoutes:

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "s3cret"}])
    def test_rejects_bad_secret(self, client, headers):
        assert client.get("/api/cron/proactive", headers=headers).status_code == 401

    def test_empty_configured_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "")

        assert client.get("/api/cron/proactive", headers={"Authorization": "Bearer "}).status_code == 401

    def test_returns_stats(self, client, monkeypatch):
        agent = MagicMock()
        agent.run_extraction_batch = AsyncMock(return_value=ExtractionStats(conversations_processed=3))
        monkeypatch.setattr(server, "extraction_agent", agent)

        response = client.get("/api/cron/process-insights", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["conversations_processed"] == 3

    def test_batch_failure_is_500(self, client, monkeypatch):
        agent = MagicMock()
        agent.run_proactive_batch = AsyncMock(side_effect=RuntimeError("db down"))
        monkeypatch.setattr(server, "proactive_agent", agent)

        response = client.get("/api/cron/proactive", headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "db down"}

    def test_per_unit_errors_still_succeed(self, client, monkeypatch):
        agent = MagicMock()
        agent.run_proactive_batch = AsyncMock(return_value=ProactiveStats(generated=1, errors=["User 2: timeout"]))
        monkeypatch.setattr(server, "proactive_agent", agent)

        body = client.get("/api/cron/proactive", headers=AUTH).json()

        assert body["success"] is True
        assert body["errors"] == ["User 2: timeout"]
