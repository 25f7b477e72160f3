# app/core/db_logging_handler.py
import logging
import traceback
from app.db.session import SessionLocal
from app.crud import crud_system

class DatabaseHandler(logging.Handler):
    """Writes ERROR and CRITICAL records to the systemalerts table."""

    # Failed alert writes are reported by this logger; never loop them back
    SKIPPED_LOGGERS = ("app.crud.system",)

    def emit(self, record: logging.LogRecord):
        if record.levelno < logging.ERROR or record.name.startswith(self.SKIPPED_LOGGERS):
            return

        details = None
        if record.exc_info:
            details = "".join(traceback.format_exception(*record.exc_info))

        # Runs on the queue listener thread, so it gets its own session
        db = SessionLocal()
        try:
            crud_system.create_alert(
                db=db,
                level=record.levelname,
                message=record.getMessage(),
                details=details,
                logger_name=record.name,
                game_id=getattr(record, "game_id", None),
            )
        except Exception:
            self.handleError(record)
        finally:
            db.close()
