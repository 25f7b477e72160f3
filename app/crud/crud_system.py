# app/crud/crud_system.py
import logging
from sqlalchemy.orm import Session
from app.schemas.system import SystemAlert

logger = logging.getLogger("app.crud.system")

def create_alert(
    db: Session,
    level: str,
    message: str,
    details: str | None = None,
    logger_name: str | None = None,
    game_id: str | None = None,
) -> SystemAlert | None:
    """Persists an alert row. Never raises: failures go to the regular log stream."""
    try:
        alert = SystemAlert(level=level, message=message, details=details, logger_name=logger_name, game_id=game_id)
        db.add(alert)
        db.commit()
        db.refresh(alert)
        logger.info(f"Logged new system alert: [{level}] {message}")
        return alert
    except Exception as e:
        logger.critical(f"FAILED TO LOG ALERT TO DATABASE: {e}")
        logger.critical(f"Original alert: [{level}] {message} | Details: {details}")
        db.rollback()
        return None
