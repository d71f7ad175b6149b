from datetime import datetime
from typing import Iterable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from chat_analytics.core.config import Settings
from chat_analytics.core.database import init_models
from chat_analytics.main import create_app
from chat_analytics.middleware.rate_limit import MemoryBucketStore, RateLimiter
from chat_analytics.models.event import Event, MESSAGE_SENT
from chat_analytics.services.partners import derive_access_type

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCompletionClient:
    """Records prompts and answers with a canned reply"""

    def __init__(self, reply: str = "I'm here with you."):
        self.reply = reply
        self.messages = []

    async def complete(self, message: str) -> str:
        self.messages.append(message)
        return self.reply

    async def aclose(self) -> None:
        pass


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "admin_token": ADMIN_TOKEN,
        "partner_codes": "PARTNER_A,PARTNER_B",
        "reporting_timezone": "UTC",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def completion():
    return FakeCompletionClient()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def app(settings, clock, completion):
    application = create_app(
        settings,
        rate_limiter=RateLimiter(MemoryBucketStore(), clock=clock),
        completion_client=completion,
    )
    await init_models(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest_asyncio.fixture
async def session(app):
    async with app.state.sessionmaker() as db:
        yield db


async def add_events(db, rows: Iterable[tuple]) -> None:
    """Insert raw rows (user, partner_code, timestamp[, session]) bypassing normalization"""
    for row in rows:
        user, partner_code, timestamp = row[:3]
        session_id: Optional[str] = row[3] if len(row) > 3 else f"s_{user}"
        db.add(Event(
            event_type=MESSAGE_SENT,
            partner_code=partner_code,
            access_type=derive_access_type(partner_code),
            anonymous_user_id=user,
            session_id=session_id,
            timestamp=timestamp,
        ))
    await db.commit()


def at(day: int, hour: int = 12, month: int = 3) -> datetime:
    return datetime(2026, month, day, hour, 0, 0)
