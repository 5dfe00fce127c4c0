"""
FastAPI Router for the Coach Turn
POST /turn runs one turn; extraction and engagement follow as background work.
"""
import logging
from functools import lru_cache

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from auth_service import Identity, get_current_identity
from config import Settings, TurnConfig
from database import get_db, SessionLocal
from coach.gemini_client import GeminiClient, create_client
from coach.orchestrator import Orchestrator
from coach.post_turn import run_post_turn
from coach.schemas import TurnRequest, TurnResponse, MessageOut, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coach"])


@lru_cache(maxsize=1)
def get_llm_client() -> GeminiClient:
    return create_client(Settings)


def get_turn_config() -> TurnConfig:
    return TurnConfig.from_settings(Settings)


def get_session_factory():
    return SessionLocal


# ============ Turn Endpoint ============

@router.post(
    "/turn",
    response_model=TurnResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse},
               404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def coach_turn(
    request: TurnRequest,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    client=Depends(get_llm_client),
    config: TurnConfig = Depends(get_turn_config),
    session_factory=Depends(get_session_factory),
):
    """
    Run one coach turn.
    Errors are CoachError subclasses, rendered by the handlers in main.py.
    """
    orchestrator = Orchestrator(db, client, config)
    outcome = await orchestrator.handle_turn(identity, request)

    background_tasks.add_task(
        run_post_turn,
        session_factory,
        client,
        config,
        identity.subject,
        outcome.conversation_id,
    )

    return TurnResponse(
        conversation_id=outcome.conversation_id,
        messages=[MessageOut.from_row(outcome.user_message), MessageOut.from_row(outcome.coach_message)],
    )
