# tests/conftest.py
import pytest
import logging
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.api.deps import get_db
from app.core.security import create_player_token

SQLALCHEMY_DATABASE_URL_TEST = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL_TEST,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

@pytest.fixture(autouse=True)
def setup_test_db():
    """
    Fresh tables for every test. The action handler commits, so a wrapping
    transaction cannot isolate tests here.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

def override_get_db():
    """Dependency override for test database sessions."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def db_session():
    session = TestingSessionLocal()
    yield session
    session.close()

@pytest.fixture(scope="module")
def client() -> TestClient:
    """Provides a TestClient for making API requests."""
    return TestClient(app)

@pytest.fixture
def at():
    """Timestamps relative to a fixed start: at(11) is 11 seconds after T0."""
    def _at(seconds: float = 0) -> datetime:
        return T0 + timedelta(seconds=seconds)
    return _at

@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_player_token(user_id)}"}
    return _headers

@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Clears websocket subscriptions before each test."""
    from app.api.websockets import game_manager

    game_manager.active_connections.clear()
    yield

@pytest.fixture(autouse=True)
def no_real_gemini(mocker):
    """The Gemini client is never reached from tests."""
    mocker.patch("app.services.hint_provider.genai")

def pytest_configure(config):
    """
    Hook to configure logging levels before tests are run.
    This silences noisy third-party libraries.
    """
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
