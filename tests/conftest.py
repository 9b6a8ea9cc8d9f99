"""Shared fixtures: a file-backed SQLite store per test and a settable clock."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from core.database import build_engine, build_session_factory, get_session_context, init_db
from patterns.domain_config import ResilienceConfig, StorefrontConfig
from verticals.storefront.coordinator import TransactionCoordinator
from verticals.storefront.identity import Identity
from verticals.storefront.notifications import NotificationSink
from verticals.storefront.reporting import ReportingService
from verticals.storefront.repository import BookRepository


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return StorefrontConfig(
        resilience=ResilienceConfig(max_attempts=5, backoff_base=0.01, backoff_max=0.05),
    )


@pytest.fixture
def sink(session_factory):
    return NotificationSink(session_factory)


@pytest.fixture
def coordinator(session_factory, config, sink, clock):
    return TransactionCoordinator(session_factory, config=config, notifier=sink, clock=clock)


@pytest.fixture
def reporting(session_factory, config, clock):
    return ReportingService(session_factory, config=config, clock=clock)


@pytest.fixture
def alice():
    return Identity(user_id="alice")


@pytest.fixture
def bob():
    return Identity(user_id="bob")


@pytest.fixture
def admin():
    return Identity(user_id="root", is_admin=True)


@pytest.fixture
def make_book(session_factory):
    async def _make(**overrides) -> dict:
        data = {
            "title": "The Master and Margarita",
            "author": "Mikhail Bulgakov",
            "category": "Fiction",
            "year_published": 1967,
            "purchase_price": 1200.0,
            "rental_price_2weeks": 500.0,
            "rental_price_1month": 800.0,
            "rental_price_3months": 1500.0,
            "total_copies": 3,
            "available_copies": 3,
        }
        data.update(overrides)
        async with get_session_context(session_factory) as session:
            return await BookRepository(session).create(data)

    return _make


@pytest.fixture
def load_book(session_factory):
    async def _load(book_id: str) -> dict | None:
        async with get_session_context(session_factory) as session:
            return await BookRepository(session).get(book_id)

    return _load
