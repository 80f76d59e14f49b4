"""
Shared fixtures.

Settings are read at import time, so the environment is pinned here before
anything from ``padel_api`` is imported. Every test gets its own sqlite file
built from ``Base.metadata``; Redis and the push gateway are never touched.
"""
import os

os.environ["DATABASE_URL"]      = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"]    = "test-secret-key"
os.environ["APP_ENV"]           = "test"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["PUSH_ENABLED"]      = "false"

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

import padel_api.models  # noqa: E402,F401
from padel_api.core.deps import get_notifier, get_now  # noqa: E402
from padel_api.core.security import create_access_token  # noqa: E402
from padel_api.db.session import Base, get_db  # noqa: E402
from padel_api.services.cache import available_sessions_cache  # noqa: E402
from padel_api.services.notifications import PushNotifier  # noqa: E402

# Sunday 2025-06-01 18:00 UTC is the anchor session used across the suite
NOW = datetime(2025, 5, 28, 12, 0, tzinfo=timezone.utc)


class FakeNotifier(PushNotifier):
    """Runs the real audience queries, records instead of posting."""

    def __init__(self):
        super().__init__(api_url="http://push.invalid")
        self.sent: list[dict] = []

    async def send_to_users(self, db, user_ids, title, body, data=None):
        ids = sorted(set(user_ids))
        self.sent.append({"user_ids": ids, "title": title, "body": body, "data": data or {}})
        return {"sent": len(ids), "failed": 0}

    def titles(self) -> list[str]:
        return [m["title"] for m in self.sent]


class Clock:
    def __init__(self, now: datetime):
        self.now = now


def _enable_foreign_keys(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(available_sessions_cache, "get",   AsyncMock(return_value=None))
    monkeypatch.setattr(available_sessions_cache, "set",   AsyncMock())
    monkeypatch.setattr(available_sessions_cache, "clear", AsyncMock())
    return available_sessions_cache


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'padel.db'}")
    event.listen(eng.sync_engine, "connect", _enable_foreign_keys)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest_asyncio.fixture
async def client(session_maker, notifier, clock):
    from padel_api.main import app

    async def _get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db]       = _get_db
    app.dependency_overrides[get_now]      = lambda: clock.now
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}
