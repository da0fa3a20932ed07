from typing import List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from waitlist.main import app
from waitlist.core.config import Settings, get_settings
from waitlist.core.database import get_db
from waitlist.core.service_dependencies import get_bot_verifier


TEST_TABLE = "waitlist_signups"


class StubVerifier:
    """Stands in for Turnstile; records every call."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def verify(self, token: str, remoteip: Optional[str] = None) -> bool:
        self.calls.append((token, remoteip))
        return self.result


@pytest.fixture
def test_settings():
    """Settings with every secret configured and no email provider."""
    return Settings(
        TURNSTILE_SECRET="turnstile-secret",
        TURNSTILE_SITE_KEY="1x00000000000000000000AA",
        IP_SALT="pepper",
        WAITLIST_STATS_TOKEN="stats-token",
        RESEND_API_KEY="",
        WAITLIST_EMAIL_FROM="",
        WAITLIST_TABLE=TEST_TABLE,
    )


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create an async engine on a throwaway SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waitlist.db'}")

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_maker):
    """Create an async session for testing."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def override_get_db(session_maker):
    """Override the get_db dependency with one session per request."""

    async def _override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _override_get_db


@pytest.fixture
def verifier():
    return StubVerifier(result=True)


@pytest_asyncio.fixture
async def client(override_get_db, test_settings, verifier):
    """Create test client with overridden database, settings and bot check."""
    from httpx import ASGITransport

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_bot_verifier] = lambda: verifier

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def count_rows(session: AsyncSession, where: str = "", **params) -> int:
    sql = f"SELECT COUNT(*) FROM {TEST_TABLE}"
    if where:
        sql += f" WHERE {where}"
    result = await session.execute(text(sql), params)
    return result.scalar()


@pytest.fixture
def signup_payload():
    return {"email": "a@example.com", "turnstileToken": "tok1"}
