# app/main.py
# Start the Postgres server using docker run -d --name cipher_chat_db -e POSTGRES_USER=backend -e POSTGRES_PASSWORD=password -e POSTGRES_DB=cipher_chat_db -p 5432:5432 -v pgdata:/var/lib/postgresql/data postgres:15
# Start backend using uvicorn app.main:app --reload --host 0.0.0.0
import asyncio
import logging
import logging.config
import logging.handlers
import json
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.routing import APIRoute, APIWebSocketRoute
from app.core.config import settings
from app.api import games as games_router
from app.api import websockets as websocket_router
from app.crud import crud_system
from app.db.base import Base # Registers every table on the metadata
from app.db.session import SessionLocal, engine
from app.services import action_handler

_queue_handler_instance: Optional[logging.handlers.QueueHandler] = None # Module-level variable
_deadline_sweeper_task: Optional[asyncio.Task] = None # For the background task

async def alert_middleware(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        db = SessionLocal()
        try:
            crud_system.create_alert(
                db,
                "CRITICAL",
                f"Unhandled exception on {request.method} {request.url.path}",
                f"{type(e).__name__}: {e}",
                logger_name="app.main",
                game_id=request.path_params.get("game_id"),
            )
        finally:
            db.close()
        raise


async def deadline_sweeper_task(interval_seconds: float = 2):
    """Finalizes elapsed solve-proposal windows for games nobody is acting on."""
    while True:
        await asyncio.sleep(interval_seconds) # Sleep first to avoid running on immediate startup
        db = SessionLocal()
        try:
            published = await run_in_threadpool(action_handler.sweep_due_deadlines, db)
            for game_id, events in published:
                await websocket_router.game_manager.publish(game_id, events)
        except Exception as e:
            logger.error(f"Error in deadline sweeper task: {e}", exc_info=True)
            db.rollback()
        finally:
            db.close()


def configure_logging_from_file():
    """Loads logging configuration from the JSON file and identifies the QueueHandler."""
    global _queue_handler_instance
    config_file = pathlib.Path(__file__).parent / "logging_config.json"
    try:
        with open(config_file) as f_in:
            config = json.load(f_in)

        log_dir = pathlib.Path("logs")
        log_dir.mkdir(exist_ok=True)

        logging.config.dictConfig(config)

        # Find the QueueHandler instance to start/stop its listener later
        root_logger = logging.getLogger()
        for handler in root_logger.handlers:
            if isinstance(handler, logging.handlers.QueueHandler):
                _queue_handler_instance = handler
                break

        if not _queue_handler_instance:
            # Use a temporary logger name to avoid conflict if "app.main" isn't configured yet
            temp_logger = logging.getLogger("app.main.logging_setup_check")
            temp_logger.error(
                "QueueHandler not found in root logger. Off-thread logging will not work as intended."
            )
    except FileNotFoundError:
        print(f"ERROR: Logging configuration file not found at {config_file}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("app.main.logging_setup_fallback").error("Logging configuration file missing.", exc_info=True)
    except json.JSONDecodeError as e:
        print(f"ERROR: Failed to parse logging configuration file {config_file}: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("app.main.logging_setup_fallback").error("Logging configuration JSON error.", exc_info=True)
    except Exception as e:
        # Fallback to basic config if file loading or dictConfig fails for other reasons
        print(f"ERROR: Failed to configure logging from file: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("app.main.logging_setup_fallback").error("General logging configuration failed.", exc_info=True)


# Configure logging when the module is loaded. Listener is started/stopped by lifespan.
configure_logging_from_file()
logger = logging.getLogger("app.main") # Logger for this module

def create_tables():
    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _deadline_sweeper_task

    logger.info("Application startup sequence initiated...")
    if _queue_handler_instance and hasattr(_queue_handler_instance, 'listener'):
        try:
            _queue_handler_instance.listener.start()
            logger.info("Logging QueueListener started successfully via lifespan.")
        except Exception as e:
            logger.error(f"Failed to start QueueListener in lifespan: {e}", exc_info=True)
    else:
        logger.warning("QueueHandler or its listener not found during startup; off-thread logging might not be active.")

    create_tables()
    logger.info("Database tables checked/created.")

    logger.info("Starting deadline sweeper background task...")
    _deadline_sweeper_task = asyncio.create_task(deadline_sweeper_task(settings.DEADLINE_SWEEP_INTERVAL_SECONDS))
    yield  # This is where the application will run

    if _deadline_sweeper_task:
        logger.info("Cancelling deadline sweeper background task...")
        _deadline_sweeper_task.cancel()
        try:
            await _deadline_sweeper_task
        except asyncio.CancelledError:
            logger.info("Deadline sweeper task successfully cancelled.")

    logger.info("Application shutdown sequence initiated...")
    if _queue_handler_instance and hasattr(_queue_handler_instance, 'listener'):
        try:
            logger.info("Attempting to stop Logging QueueListener...")
            _queue_handler_instance.listener.stop()
            logger.info("Logging QueueListener stopped successfully via lifespan.")
        except Exception as e:
            logger.error(f"Failed to stop QueueListener gracefully in lifespan: {e}", exc_info=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)
app.middleware("http")(alert_middleware)

# Include Routers
app.include_router(games_router.router, prefix=settings.API_V1_STR + "/games", tags=["Games"])
app.include_router(websocket_router.router, tags=["Game Sockets"]) # WebSockets usually don't have API prefix

logger.info("--- FastAPI Registered Routes ---")
for route in app.routes:
    if isinstance(route, APIRoute):
        logger.info(f"Path: {route.path}, Methods: {route.methods}, Name: {route.name}")
    elif isinstance(route, APIWebSocketRoute):
        logger.info(f"WebSocket Path: {route.path}, Name: {route.name}")
logger.info("--- End Registered Routes ---\n")


@app.get(settings.API_V1_STR + "/health", tags=["Health Check"])
async def health_check():
    return {"status": "healthy", "project": settings.PROJECT_NAME}

# For development with uvicorn: uvicorn app.main:app --reload
