"""
Shared fixtures for coach tests: in-memory database, fake completion client,
token factory.
"""
import os

# Keep tests off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite://")

import asyncio
import base64
import json
from datetime import datetime, timedelta

import pytest
from cryptography.hazmat.primitives import hashes, hmac
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models
from coach.errors import CompletionError
from coach.gemini_client import GenerationResult, TokenUsage
from coach.models import Coach, Conversation, Message
from coach.prompt_library import load_prompt


# ============ Fake completion client ============

class FakeLLM:
    """
    Stand-in for GeminiClient.

    `script` maps a call kind ("crisis", "sentiment", "extraction", "turn") to a
    reply string, an exception instance, or a list of those consumed in order.
    """

    KINDS = {
        "crisis_detection": "crisis",
        "sentiment_analysis": "sentiment",
        "extraction": "extraction",
        "core_system": "turn",
    }

    def __init__(self, script=None, delay: float = 0.0):
        self.script = dict(script or {})
        self.delay = delay
        self.calls = []
        self._instructions = {load_prompt(name): kind for name, kind in self.KINDS.items()}

    def kind_of(self, system_instruction):
        return self._instructions.get(system_instruction, "unknown")

    def calls_of(self, kind):
        return [c for c in self.calls if c["kind"] == kind]

    async def generate(self, prompt, system_instruction=None, model=None, temperature=None, top_p=None):
        kind = self.kind_of(system_instruction)
        self.calls.append({
            "kind": kind,
            "prompt": prompt,
            "model": model,
            "temperature": temperature,
            "top_p": top_p,
        })
        if self.delay:
            await asyncio.sleep(self.delay)

        reply = self.script.get(kind, "Tell me more about that.")
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, Exception):
            raise reply
        return GenerationResult(
            text=reply,
            model=model or "fake-model",
            usage=TokenUsage(input_tokens=len(prompt) // 4, output_tokens=len(reply) // 4, estimated=True),
        )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def completion_failure():
    return CompletionError("upstream exploded", upstream_status=503, model="gemini-3-flash-preview")


# ============ Database ============

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def default_coach(db):
    coach = Coach(
        id="coach-clarity",
        name="Clarity Coach",
        coach_type="system",
        persona_key="clarity",
        style="gentle",
        is_default=True,
    )
    db.add(coach)
    db.commit()
    return coach


@pytest.fixture
def profile(db):
    row = models.Profile(id="user-1", email="user1@example.com", display_name="Sam")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def conversation_factory(db):
    def make(user_id="user-1", coach_id="coach-clarity", session_type="deep_dive", messages=0,
             start=None):
        conversation = Conversation(user_id=user_id, coach_id=coach_id, session_type=session_type)
        db.add(conversation)
        db.commit()

        start = start or datetime(2025, 1, 1, 9, 0, 0)
        for i in range(messages):
            db.add(Message(
                conversation_id=conversation.id,
                sender="user" if i % 2 == 0 else "coach",
                type="text",
                content=f"message-{i:02d}",
                meta={},
                created_at=start + timedelta(minutes=i),
            ))
        db.commit()
        return conversation
    return make


# ============ Tokens ============

def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@pytest.fixture
def make_token():
    def make(payload, secret=None, alg="HS256"):
        header = _b64(json.dumps({"alg": alg, "typ": "JWT"}).encode())
        body = _b64(json.dumps(payload).encode())
        signing_input = f"{header}.{body}".encode("ascii")
        if secret:
            mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
            mac.update(signing_input)
            signature = _b64(mac.finalize())
        else:
            signature = _b64(b"unsigned")
        return f"{header}.{body}.{signature}"
    return make
