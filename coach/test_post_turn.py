"""
Post-Turn Side Work Tests
=========================

Extraction and engagement run independently after the response.
"""
import asyncio
import json
from datetime import datetime
from unittest.mock import AsyncMock, patch

import models
from config import TurnConfig
from coach.conftest import FakeLLM
from coach.extraction import ExtractionEngine
from coach.models import SessionSummary
from coach.post_turn import run_post_turn

NOW = datetime(2025, 3, 10, 12, 0, 0)


def _run(session_factory, llm, conversation_id):
    return asyncio.run(run_post_turn(session_factory, llm, TurnConfig(), "user-1", conversation_id, now=NOW))


def _stats(db):
    db.expire_all()
    row = db.get(models.Profile, "user-1")
    return row.streak_count, row.total_sessions


class TestRunPostTurn:

    def test_1_extraction_and_engagement(self, db, session_factory, profile, default_coach, conversation_factory):
        conversation = conversation_factory(messages=6)
        llm = FakeLLM({"extraction": json.dumps({"summary": {"text": "Talked about work."}})})

        report = _run(session_factory, llm, conversation.id)

        assert report.summary_saved is True
        assert db.query(SessionSummary).count() == 1
        assert _stats(db) == (1, 1)

    def test_2_engagement_recorded_when_extraction_raises(self, db, session_factory, profile, default_coach,
                                                          conversation_factory):
        conversation = conversation_factory(messages=6)

        with patch.object(ExtractionEngine, "run", AsyncMock(side_effect=TypeError("bad payload"))):
            report = _run(session_factory, FakeLLM(), conversation.id)

        assert report is None
        assert _stats(db) == (1, 1)

    def test_3_malformed_extraction_payload(self, db, session_factory, profile, default_coach,
                                            conversation_factory):
        conversation = conversation_factory(messages=6)
        payload = {"summary": {"text": "Good summary"}, "commitments": 5, "memories": 7}

        report = _run(session_factory, FakeLLM({"extraction": json.dumps(payload)}), conversation.id)

        assert report.summary_saved is True
        assert _stats(db) == (1, 1)

    def test_4_client_failure_does_not_block_engagement(self, db, session_factory, profile, default_coach,
                                                        conversation_factory):
        conversation = conversation_factory(messages=6)

        report = _run(session_factory, FakeLLM({"extraction": RuntimeError("transport reset")}), conversation.id)

        assert report.error == "completion failed"
        assert _stats(db) == (1, 1)
