"""
Post-turn side work: memory extraction and engagement tracking.
Scheduled after the response is sent, with its own database session.
Never raises.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import TurnConfig
from coach.engagement import EngagementTracker
from coach.extraction import ExtractionEngine, ExtractionReport
from coach.repository import CoachRepository, utcnow

logger = logging.getLogger(__name__)


async def run_post_turn(session_factory: Callable[[], Session], client, config: TurnConfig,
                        user_id: str, conversation_id: str,
                        now: Optional[datetime] = None) -> Optional[ExtractionReport]:
    now = now or utcnow()
    report = None
    try:
        db = session_factory()
    except Exception:
        logger.exception(f"Post-turn work skipped for conversation {conversation_id}: no session")
        return None

    try:
        repo = CoachRepository(db)

        # Extraction and engagement are independent; a failure in one never skips the other
        try:
            report = await ExtractionEngine(repo, client, config).run(user_id, conversation_id, today=now.date())
        except Exception:
            db.rollback()
            logger.exception(f"Extraction failed for conversation {conversation_id}")

        try:
            EngagementTracker(repo).record_session(user_id, now)
        except Exception:
            db.rollback()
            logger.exception(f"Engagement update failed for user {user_id}")
    finally:
        db.close()
    return report
