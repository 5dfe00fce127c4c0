"""
Coach Module SQLAlchemy Models
Database models for the Compass coach turn pipeline
"""
import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime


def _uuid() -> str:
    return str(uuid.uuid4())


class Coach(Base):
    """
    A coach persona row.
    System coaches point at a catalog persona via persona_key;
    private/creator coaches carry their own style knobs.
    """
    __tablename__ = "coaches"

    id = Column(String(64), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    description = Column(Text, default="")
    philosophy = Column(Text, default="")

    coach_type = Column(String(20), default="system")  # system, private, creator
    persona_key = Column(String(50), nullable=True)
    style = Column(String(20), nullable=True)  # gentle, balanced, direct

    # {"tone": ..., "pacing": ..., "challenge_level": ...}
    style_config = Column(JSON, default=dict)
    # {"advice_policy": ..., "question_depth": ..., "emotional_warmth": ...}
    coaching_rules = Column(JSON, default=dict)

    is_default = Column(Boolean, default=False)
    owner_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Conversation(Base):
    """One coaching conversation. Coach is fixed at creation."""
    __tablename__ = "conversations"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(String(64), ForeignKey("coaches.id"), nullable=False)

    mode = Column(String(20), default="text")
    session_type = Column(String(30), default="deep_dive")

    last_active_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    profile = relationship("Profile", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")


class Message(Base):
    """Append-only chat message. Ordered by created_at."""
    __tablename__ = "messages"

    id = Column(String(64), primary_key=True, default=_uuid)
    conversation_id = Column(String(64), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)

    sender = Column(String(10), nullable=False)  # user, coach
    type = Column(String(10), default="text")    # text, voice
    content = Column(Text, nullable=False)

    # media_url, sentiment, crisis_detected
    meta = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")


class Commitment(Base):
    """Explicit user commitment mined from a transcript."""
    __tablename__ = "commitments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    conversation_id = Column(String(64), ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True)
    session_id = Column(String(64), nullable=True)

    commitment = Column(Text, nullable=False)
    context = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), default="pending")  # pending, completed, rescheduled

    created_at = Column(DateTime, default=datetime.utcnow)


class UserMemory(Base):
    """Durable fact about the user. High importance rows go into every prompt."""
    __tablename__ = "user_memory"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    memory_type = Column(String(20), nullable=False)  # fact, preference, relationship, challenge, win, value
    content = Column(Text, nullable=False)
    importance = Column(String(10), default="normal")  # normal, high (critical accepted on read)
    is_active = Column(Boolean, default=True)
    tags = Column(JSON, default=list)
    source_conversation_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class SessionSummary(Base):
    __tablename__ = "session_summaries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    conversation_id = Column(String(64), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=True)
    session_id = Column(String(64), nullable=True)

    summary = Column(Text, nullable=False)
    key_topics = Column(JSON, default=list)
    emotional_tone = Column(String(50), nullable=True)
    breakthroughs = Column(JSON, default=list)
    action_items = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)


class Insight(Base):
    __tablename__ = "insights"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    conversation_id = Column(String(64), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=True)

    summary = Column(Text, nullable=False)
    user_approved = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class ConversationMemory(Base):
    """
    Rolling summary of a conversation - one row per conversation, upserted.
    """
    __tablename__ = "conversation_memory"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(64), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, unique=True)

    summary = Column(Text, default="")
    themes = Column(JSON, default=list)

    last_updated_at = Column(DateTime, default=datetime.utcnow)


# ============ Personalization (read-only for the turn pipeline) ============

class UserGoal(Base):
    __tablename__ = "user_goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(300), nullable=False)
    category = Column(String(50), nullable=True)
    status = Column(String(20), default="active")
    target_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class UserPattern(Base):
    __tablename__ = "user_patterns"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(300), nullable=False)
    description = Column(Text, default="")
    pattern_type = Column(String(20), nullable=True)  # emotional, behavioral, topic, temporal
    is_active = Column(Boolean, default=True)
    last_observed = Column(DateTime, default=datetime.utcnow)


class MoodEntry(Base):
    __tablename__ = "mood_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    mood_score = Column(Integer, nullable=False)  # 1-10
    mood_label = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
