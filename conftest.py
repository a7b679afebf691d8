import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Load .env.test for test settings when present
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Tests always run against a throwaway SQLite file per test; this default
# only satisfies the settings loaded at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./training-test.db")

from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.config import build_engine, build_session_factory
from libs.db.session import get_async_db

# Import all models so metadata includes every table
from services.training_service import models as _training_models  # noqa: F401
from services.training_service.policy_config import PolicyConfig
from services.training_service.routers._shared import get_notifier, get_policy_config
from tests.factories import RecordingNotifier

# Clear cached settings to reload with new env vars
get_settings.cache_clear()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Engine bound to a fresh SQLite database file with all tables created.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'training.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """
    Session factory for tests that need several independent sessions.
    """
    return build_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def policy_config() -> PolicyConfig:
    return PolicyConfig(admin_recipients=("admin@club.local",))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(
    session_factory, policy_config, notifier
) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden dependencies.

    Every request gets its own database session, like in production.
    """
    from services.training_service.app.main import app

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_test_db
    app.dependency_overrides[get_policy_config] = lambda: policy_config
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
