"""Shared fixtures: in-memory SQLite per test, FastAPI app with get_db overridden, Gemini stubbed."""

from __future__ import annotations

import os

# Keep the app away from real services during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["REDIS_URL"] = ""
os.environ["GEMINI_API_KEY"] = ""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jeevabot.database import Base
import jeevabot.models  # noqa: F401 - register all models with Base
from jeevabot.services.ai_service import ModelReply

# In-memory SQLite; StaticPool ensures all connections share the same DB
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db():
    """Yield a test database session."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def model_reply():
    """Patch the Gemini call made by the relay; returns the AsyncMock for assertions."""
    mock = AsyncMock(return_value=ModelReply(content="The NMC Code sets professional standards.", tokens=120))
    with patch("jeevabot.services.chat_relay.generate_chat_reply", mock):
        yield mock


@pytest.fixture
def app(db):
    from jeevabot.main import app as _app
    from jeevabot.database import get_db
    from jeevabot.core.redis import get_chat_cache_dep

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    async def _no_cache():
        return None

    _app.dependency_overrides[get_db] = _override_get_db
    _app.dependency_overrides[get_chat_cache_dep] = _no_cache
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
