"""
Orchestrator for the Coach Turn
Sequences one turn: profile and context reads, persona resolution, user message
persistence, classification, context assembly, completion and coach message
persistence.

Extraction and engagement tracking are not run here; see coach.post_turn.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from auth_service import Identity
from config import TurnConfig
from coach.classifier import MessageClassifier, Classification, render_guidance
from coach.context_builder import (
    ConversationMessage,
    build_context_block,
    build_user_context_block,
    build_memory_summary_block,
    build_session_context_block,
)
from coach.errors import ConversationNotFound, StoreError
from coach.metrics import TurnMetrics
from coach.models import Conversation, Message
from coach.personas import PersonaResolver
from coach.prompt_library import load_prompt, SESSION_TYPES, normalize_session_type
from coach.repository import CoachRepository, utcnow
from coach.schemas import TurnRequest

logger = logging.getLogger(__name__)


class ConversationLocks:
    """
    In-process mutual exclusion per conversation id.
    Entries are dropped once no turn holds or waits on them.
    """

    def __init__(self):
        self._entries: Dict[str, list] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._entries.pop(key, None)

    def __len__(self):
        return len(self._entries)


# Shared by every Orchestrator in the process
conversation_locks = ConversationLocks()


@dataclass
class TurnOutcome:
    conversation: Conversation
    user_message: Message
    coach_message: Message
    classification: Classification = field(default_factory=Classification)
    metrics: Optional[TurnMetrics] = None
    created_conversation: bool = False

    @property
    def conversation_id(self) -> str:
        return self.conversation.id


class Orchestrator:
    """
    Main orchestrator for coach turns.
    """

    def __init__(self, db: Session, client, config: TurnConfig, locks: Optional[ConversationLocks] = None):
        self.db = db
        self.client = client
        self.config = config
        self.repo = CoachRepository(db)
        self.personas = PersonaResolver(self.repo)
        self.classifier = MessageClassifier(client, config)
        self.locks = locks or conversation_locks

    def _effective_session_type(self, conversation: Conversation, requested: Optional[str]) -> str:
        if conversation.session_type in SESSION_TYPES:
            return conversation.session_type
        return normalize_session_type(requested)

    async def handle_turn(self, identity: Identity, request: TurnRequest, now: Optional[datetime] = None) -> TurnOutcome:
        """
        Process a single coach turn.

        Raises:
            ConversationNotFound: conversationId given but not owned by the caller
            NoCoachConfigured: no coach could be resolved
            StoreError: a required read/write failed
            CompletionError: the completion service failed (user message stays persisted)
        """
        metrics = TurnMetrics()
        now = now or utcnow()

        profile = self.repo.ensure_profile(identity)
        user_context = self.repo.load_user_context(identity.subject)

        conversation = None
        if request.conversation_id:
            conversation = self.repo.get_conversation(request.conversation_id, identity.subject)
            if conversation is None:
                raise ConversationNotFound(f"Conversation {request.conversation_id} not found for this user")

        resolved = self.personas.resolve_for_conversation(conversation, profile, request.coach_id)

        created = False
        if conversation is None:
            conversation = self.repo.create_conversation(
                user_id=identity.subject,
                coach_id=resolved.coach.id,
                session_type=normalize_session_type(request.session_type),
            )
            created = True
            logger.info(f"Created conversation {conversation.id} with coach {resolved.coach.id}")

        metrics.conversation_id = conversation.id

        async with self.locks.hold(conversation.id):
            # Prior messages only; the current one is rendered as the Current Turn
            recent_rows = self.repo.get_recent_messages(conversation.id, limit=self.config.recent_window)
            recent = [ConversationMessage.from_row(r) for r in recent_rows]

            metadata = {"media_url": request.voice_message_url} if request.voice_message_url else {}
            user_message = self.repo.add_message(
                conversation.id,
                sender="user",
                content=request.message,
                message_type="voice" if request.voice_message_url else "text",
                metadata=metadata,
            )

            classification = await self.classifier.classify(
                request.message, self.classifier.is_enabled(request.skip_sentiment_analysis)
            )
            metrics.classification_ran = classification.ran
            metrics.crisis_detected = classification.crisis_detected
            if classification.has_result:
                try:
                    self.repo.update_message_metadata(user_message, classification.to_metadata())
                except StoreError as e:
                    logger.warning(f"Failed to write classification onto message {user_message.id}: {e}")

            session_block = build_session_context_block(
                coach_name=resolved.coach.name,
                mode=conversation.mode,
                session_type=self._effective_session_type(conversation, request.session_type),
                guidance=render_guidance(classification),
            )
            context = build_context_block(
                persona_prompt=resolved.prompt,
                user_message=request.message,
                session_context_block=session_block,
                user_context_block=build_user_context_block(identity, profile, user_context, now),
                memory_summary_block=build_memory_summary_block(self.repo.get_conversation_memory(conversation.id)),
                recent_messages=recent,
            )

            result = await self.client.generate(
                prompt=context,
                system_instruction=load_prompt("core_system"),
                model=self.config.model,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
            metrics.record_generation(result)

            coach_message = self.repo.add_message(
                conversation.id,
                sender="coach",
                content=result.text,
                metadata=classification.to_metadata() if classification.has_result else None,
            )

        self.repo.touch_conversation(conversation, when=coach_message.created_at)

        metrics.finish().log()
        return TurnOutcome(
            conversation=conversation,
            user_message=user_message,
            coach_message=coach_message,
            classification=classification,
            metrics=metrics,
            created_conversation=created,
        )
