"""
POST /turn Endpoint Tests
=========================
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import models
from config import Settings
from database import get_db
from main import app
from coach.conftest import FakeLLM
from coach.router import get_llm_client, get_session_factory


@pytest.fixture
def llm():
    return FakeLLM({"turn": "What would a good week look like?"})


@pytest.fixture
def client(db, session_factory, llm):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with patch.object(Settings, "AUTH_JWT_SECRET", None):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(make_token):
    return {"Authorization": f"Bearer {make_token({'sub': 'user-1', 'email': 'user1@example.com'})}"}


class TestTurnEndpoint:

    def test_1_success_shape(self, client, auth, default_coach):
        response = client.post("/turn", json={"message": "  I feel stuck at work  ",
                                              "skipSentimentAnalysis": True}, headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["conversationId"]
        assert [m["sender"] for m in body["messages"]] == ["user", "coach"]
        assert body["messages"][0]["content"] == "I feel stuck at work"
        assert body["messages"][1]["content"] == "What would a good week look like?"
        assert set(body["messages"][0]) == {"id", "sender", "type", "content", "metadata", "created_at"}

    def test_2_engagement_recorded_after_response(self, client, auth, default_coach, db):
        client.post("/turn", json={"message": "hello", "skipSentimentAnalysis": True}, headers=auth)

        db.expire_all()
        profile = db.get(models.Profile, "user-1")
        assert (profile.streak_count, profile.total_sessions) == (1, 1)

    def test_3_missing_credential(self, client, default_coach):
        response = client.post("/turn", json={"message": "hello"})

        assert response.status_code == 401
        assert response.json()["error"] == "Missing Authorization header"

    def test_4_malformed_credential(self, client, default_coach):
        response = client.post("/turn", json={"message": "hello"}, headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert "details" in response.json()

    @pytest.mark.parametrize("payload", [{"message": "   "}, {}, {"message": 42}])
    def test_5_bad_body(self, client, auth, default_coach, payload):
        response = client.post("/turn", json=payload, headers=auth)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_6_unknown_conversation(self, client, auth, default_coach):
        response = client.post("/turn", json={"message": "hi", "conversationId": "does-not-exist"}, headers=auth)

        assert response.status_code == 404
        assert response.json()["error"] == "Conversation not found"

    def test_7_completion_failure(self, client, auth, default_coach, llm, completion_failure):
        llm.script["turn"] = completion_failure
        response = client.post("/turn", json={"message": "hi", "skipSentimentAnalysis": True}, headers=auth)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to generate coach response",
            "details": "upstream exploded",
            "upstream_status": 503,
        }

    def test_7b_classifier_failure_still_answers(self, client, auth, default_coach, llm, db):
        llm.script["crisis"] = RuntimeError("transport reset")
        llm.script["sentiment"] = RuntimeError("transport reset")
        response = client.post("/turn", json={"message": "hi"}, headers=auth)

        assert response.status_code == 200
        assert response.json()["messages"][1]["content"] == "What would a good week look like?"
        db.expire_all()
        assert db.get(models.Profile, "user-1").total_sessions == 1

    def test_8_health(self, client):
        assert client.get("/").json()["status"] == "healthy"
