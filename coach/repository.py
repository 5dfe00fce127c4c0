"""
Repository Layer for the Coach Turn Pipeline
Narrow read/write façade over profiles, coaches, conversations, messages and
the memory tables. Context reads return bounded row sets.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from auth_service import Identity
from coach.errors import StoreError
from coach.models import (
    Coach,
    Conversation,
    Message,
    Commitment,
    UserMemory,
    SessionSummary,
    Insight,
    ConversationMemory,
    UserGoal,
    UserPattern,
    MoodEntry,
)

logger = logging.getLogger(__name__)

# ============ Bounds ============
MAX_GOALS = 5
MAX_PENDING_COMMITMENTS = 5
MAX_PATTERNS = 3
MAX_IMPORTANT_MEMORIES = 10
MAX_RECENT_SUMMARIES = 3
IMPORTANT_LEVELS = ("high", "critical")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.utcnow()


@dataclass
class UserContext:
    """Personalization rows loaded for the user-context block."""
    goals: List[UserGoal] = field(default_factory=list)
    pending_commitments: List[Commitment] = field(default_factory=list)
    recent_patterns: List[UserPattern] = field(default_factory=list)
    important_memories: List[UserMemory] = field(default_factory=list)
    recent_mood: Optional[MoodEntry] = None
    recent_summaries: List[SessionSummary] = field(default_factory=list)


class CoachRepository:
    """
    Repository for coach turn data access.
    Write methods commit immediately and raise StoreError on failure.
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, what: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to {what}: {e}")

    # ============ Profile ============

    def get_profile(self, user_id: str) -> Optional[models.Profile]:
        return self.db.query(models.Profile).filter(models.Profile.id == user_id).first()

    def ensure_profile(self, identity: Identity) -> models.Profile:
        """Load the caller's profile, creating a bare row on first contact."""
        profile = self.get_profile(identity.subject)
        if profile:
            return profile

        profile = models.Profile(id=identity.subject, email=identity.email)
        self.db.add(profile)
        self._commit("create profile")
        self.db.refresh(profile)
        return profile

    def update_engagement(self, user_id: str, streak_count: int, longest_streak: int,
                          total_sessions: int, last_session_at: datetime) -> bool:
        profile = self.get_profile(user_id)
        if not profile:
            return False
        profile.streak_count = streak_count
        profile.longest_streak = longest_streak
        profile.total_sessions = total_sessions
        profile.last_session_at = last_session_at
        self._commit("update profile stats")
        return True

    # ============ User Context ============

    def load_user_context(self, user_id: str) -> UserContext:
        """
        Load goals, commitments, patterns, memories, mood and summaries.
        Best-effort: a failing query leaves that part empty.
        """
        context = UserContext()
        try:
            context.goals = self.db.query(UserGoal).filter(
                UserGoal.user_id == user_id,
                UserGoal.status == "active"
            ).order_by(UserGoal.created_at.desc()).limit(MAX_GOALS).all()

            context.pending_commitments = self.db.query(Commitment).filter(
                Commitment.user_id == user_id,
                Commitment.status == "pending"
            ).order_by(
                Commitment.due_date.is_(None),
                Commitment.due_date.asc(),
                Commitment.created_at.asc()
            ).limit(MAX_PENDING_COMMITMENTS).all()

            context.recent_patterns = self.db.query(UserPattern).filter(
                UserPattern.user_id == user_id,
                UserPattern.is_active.is_(True)
            ).order_by(UserPattern.last_observed.desc()).limit(MAX_PATTERNS).all()

            context.important_memories = self.db.query(UserMemory).filter(
                UserMemory.user_id == user_id,
                UserMemory.is_active.is_(True),
                UserMemory.importance.in_(IMPORTANT_LEVELS)
            ).order_by(UserMemory.created_at.desc()).limit(MAX_IMPORTANT_MEMORIES).all()

            context.recent_mood = self.db.query(MoodEntry).filter(
                MoodEntry.user_id == user_id
            ).order_by(MoodEntry.created_at.desc()).first()

            context.recent_summaries = self.db.query(SessionSummary).filter(
                SessionSummary.user_id == user_id
            ).order_by(SessionSummary.created_at.desc()).limit(MAX_RECENT_SUMMARIES).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"load_user_context: error loading context for {user_id}: {e}")
        return context

    # ============ Coaches ============

    def get_coach(self, coach_id: str) -> Optional[Coach]:
        return self.db.query(Coach).filter(Coach.id == coach_id).first()

    def get_default_coach(self) -> Optional[Coach]:
        return self.db.query(Coach).filter(Coach.is_default.is_(True)).order_by(Coach.created_at.asc()).first()

    # ============ Conversations ============

    def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        """Only returns conversations owned by user_id."""
        return self.db.query(Conversation).filter(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id
        ).first()

    def create_conversation(self, user_id: str, coach_id: str, session_type: str, mode: str = "text") -> Conversation:
        conversation = Conversation(
            user_id=user_id,
            coach_id=coach_id,
            mode=mode,
            session_type=session_type,
        )
        self.db.add(conversation)
        self._commit("create conversation")
        self.db.refresh(conversation)
        return conversation

    def touch_conversation(self, conversation: Conversation, when: Optional[datetime] = None):
        conversation.last_active_at = when or utcnow()
        self._commit("update conversation last_active_at")

    # ============ Messages ============

    def get_recent_messages(self, conversation_id: str, limit: int = 10) -> List[Message]:
        """Last `limit` messages, oldest first."""
        rows = self.db.query(Message).filter(
            Message.conversation_id == conversation_id
        ).order_by(Message.created_at.desc()).limit(limit).all()
        return list(reversed(rows))

    def get_transcript(self, conversation_id: str, limit: int = 50) -> List[Message]:
        return self.get_recent_messages(conversation_id, limit=limit)

    def count_messages(self, conversation_id: str) -> int:
        return self.db.query(func.count(Message.id)).filter(
            Message.conversation_id == conversation_id
        ).scalar() or 0

    def add_message(self, conversation_id: str, sender: str, content: str,
                    message_type: str = "text", metadata: Optional[Dict[str, Any]] = None) -> Message:
        message = Message(
            conversation_id=conversation_id,
            sender=sender,
            type=message_type,
            content=content,
            meta=metadata or {},
            created_at=utcnow(),
        )
        self.db.add(message)
        self._commit(f"insert {sender} message")
        self.db.refresh(message)
        return message

    def update_message_metadata(self, message: Message, extra: Dict[str, Any]):
        # New dict so the JSON column is flagged dirty
        message.meta = {**(message.meta or {}), **extra}
        self._commit("update message metadata")

    # ============ Memory ============

    def get_conversation_memory(self, conversation_id: str) -> Optional[ConversationMemory]:
        return self.db.query(ConversationMemory).filter(
            ConversationMemory.conversation_id == conversation_id
        ).first()

    def upsert_conversation_memory(self, conversation_id: str, summary: str, themes: List[str]) -> ConversationMemory:
        existing = self.get_conversation_memory(conversation_id)
        if existing:
            existing.summary = summary
            existing.themes = list(themes)
            existing.last_updated_at = utcnow()
        else:
            existing = ConversationMemory(
                conversation_id=conversation_id,
                summary=summary,
                themes=list(themes),
                last_updated_at=utcnow(),
            )
            self.db.add(existing)
        self._commit("upsert conversation memory")
        return existing

    def add_session_summary(self, user_id: str, conversation_id: str, summary: str,
                            key_topics: List[str], emotional_tone: Optional[str],
                            breakthroughs: List[str]) -> SessionSummary:
        row = SessionSummary(
            user_id=user_id,
            conversation_id=conversation_id,
            summary=summary,
            key_topics=list(key_topics),
            emotional_tone=emotional_tone,
            breakthroughs=list(breakthroughs),
            action_items=[],
        )
        self.db.add(row)
        self._commit("insert session summary")
        return row

    def add_commitment(self, user_id: str, conversation_id: str, commitment: str,
                       context: Optional[str], due_date: Optional[date]) -> Commitment:
        row = Commitment(
            user_id=user_id,
            conversation_id=conversation_id,
            commitment=commitment,
            context=context,
            due_date=due_date,
            status="pending",
        )
        self.db.add(row)
        self._commit("insert commitment")
        return row

    def add_memory(self, user_id: str, memory_type: str, content: str, importance: str,
                   source_conversation_id: Optional[str] = None) -> UserMemory:
        row = UserMemory(
            user_id=user_id,
            memory_type=memory_type,
            content=content,
            importance=importance,
            source_conversation_id=source_conversation_id,
            tags=[],
        )
        self.db.add(row)
        self._commit("insert memory")
        return row

    def add_insight(self, user_id: str, conversation_id: str, summary: str) -> Insight:
        row = Insight(user_id=user_id, conversation_id=conversation_id, summary=summary, user_approved=False)
        self.db.add(row)
        self._commit("insert insight")
        return row
