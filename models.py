from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True, index=True)  # Identity subject (JWT "sub")
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Personalization
    coaching_style_preference = Column(String, nullable=True)
    life_context = Column(Text, nullable=True)
    values = Column(JSON, default=list)
    intake_data = Column(JSON, nullable=True)  # {"goal": ..., "challenge": ...}
    selected_coach_id = Column(String(64), nullable=True)

    # Engagement stats (written by the engagement tracker only)
    streak_count = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    total_sessions = Column(Integer, default=0)
    last_session_at = Column(DateTime, nullable=True)

    conversations = relationship("Conversation", back_populates="profile")
