# app/schemas/system.py
from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.sql import func
from app.db.base_class import Base

class SystemAlert(Base):
    """ERROR and CRITICAL records kept for operator review."""
    __tablename__ = "systemalerts"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    level = Column(String, default="ERROR")
    logger_name = Column(String, nullable=True)
    game_id = Column(String, nullable=True, index=True) # Set when the record was logged with extra={"game_id": ...}
    message = Column(String, nullable=False)
    details = Column(Text, nullable=True) # Traceback or extra info
