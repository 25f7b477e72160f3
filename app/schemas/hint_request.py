# app/schemas/hint_request.py
from sqlalchemy import Column, String, Integer, DateTime, Date, Boolean, ForeignKey
from sqlalchemy.sql import func

from app.db.base_class import Base

class AiHintRequest(Base):
    """One row per granted tier-3 hint. Rows are the rate-limit counters."""
    __tablename__ = "ai_hint_requests"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    message_id = Column(Integer, ForeignKey("messages.id"), nullable=False)
    client_ip = Column(String, nullable=True, index=True)
    requested_on = Column(Date, nullable=False, index=True) # UTC day for the per-IP quota
    provider_succeeded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
