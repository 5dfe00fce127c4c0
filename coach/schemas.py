"""
Pydantic Schemas for the Coach Turn Endpoint
Request/Response models; JSON field names are camelCase.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


# ============ Request Schemas ============

class TurnRequest(BaseModel):
    """Request for the coach turn endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    coach_id: Optional[str] = Field(default=None, alias="coachId")
    message: str
    voice_message_url: Optional[str] = Field(default=None, alias="voiceMessageUrl")
    session_type: Optional[str] = Field(default=None, alias="sessionType")
    skip_sentiment_analysis: Optional[bool] = Field(default=None, alias="skipSentimentAnalysis")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field 'message' must be a non-empty string")
        return value


# ============ Response Schemas ============

class MessageOut(BaseModel):
    """Persisted message as returned to the caller."""
    id: str
    sender: str
    type: str
    content: str
    metadata: Dict[str, Any] = {}
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "MessageOut":
        return cls(
            id=row.id,
            sender=row.sender,
            type=row.type,
            content=row.content,
            metadata=row.meta or {},
            created_at=row.created_at,
        )


class TurnResponse(BaseModel):
    """Response from the coach turn endpoint: [user message, coach message]."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    messages: List[MessageOut]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    upstream_status: Optional[int] = None
