"""Shared test fixtures for Mizuhanome."""

from datetime import datetime
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mizuhanome.config import JST
from mizuhanome.ledger.progression import StakePolicy
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.models.database import Base
from mizuhanome.provider.client import RaceResult


@pytest.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite engine so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory) -> LedgerStore:
    return LedgerStore(session_factory)


@pytest.fixture
def policy() -> StakePolicy:
    """Policy with round base stakes so progressions are easy to follow."""
    return StakePolicy(
        cocomo_base_stake=100,
        top_n_base_stake=200,
        store2t_base_stake=100,
        winners_base_stake=100,
    )


@pytest.fixture
def before_cutoff() -> datetime:
    return datetime(2026, 10, 19, 15, 30, tzinfo=JST)


@pytest.fixture
def after_cutoff() -> datetime:
    return datetime(2026, 10, 19, 23, 0, tzinfo=JST)


class FakeResults:
    """In-memory result provider; races without a body read as not yet final."""

    def __init__(self, bodies: Optional[dict[str, dict]] = None):
        self.bodies = dict(bodies or {})
        self.calls: list[str] = []

    def publish(self, race_id: str, body: dict) -> None:
        self.bodies[race_id] = body

    async def __call__(self, race_id: str) -> Optional[RaceResult]:
        self.calls.append(race_id)
        body = self.bodies.get(race_id)
        return RaceResult(race_id, body) if body is not None else None


@pytest.fixture
def results() -> FakeResults:
    return FakeResults()
