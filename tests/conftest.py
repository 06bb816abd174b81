"""Pytest configuration and fixtures."""
import pytest
from datetime import datetime, timedelta
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from tutor_ratings.database import Base, get_db
from tutor_ratings.main import app
from tutor_ratings.models.match import Match
from tutor_ratings.models.tutor_profile import TutorProfile
from tutor_ratings.routers.ratings import get_rating_service
from tutor_ratings.services.coordinator import RatingCoordinator
from tutor_ratings.services.rating_service import RatingService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class TickingClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start=datetime(2026, 1, 1, 9, 0, 0), step=timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self):
        self.current += self.step
        return self.current


@pytest.fixture
async def test_db():
    """Create test database."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    AsyncSessionLocal = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with AsyncSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def coordinator(test_db, clock):
    return RatingCoordinator(test_db, clock=clock)


@pytest.fixture
def service(test_db, coordinator):
    return RatingService(test_db, coordinator)


@pytest.fixture
def make_match(test_db):
    """Factory for matches between a parent and a tutor."""
    async def _make(parent_id="P1", tutor_id="T1", status="completed"):
        match = Match(parent_id=parent_id, tutor_id=tutor_id, status=status)
        test_db.add(match)
        await test_db.commit()
        await test_db.refresh(match)
        return match
    return _make


@pytest.fixture
def make_tutor(test_db):
    """Factory for tutor profiles keyed by their public id."""
    async def _make(custom_id="T1", **fields):
        profile = TutorProfile(custom_id=custom_id, display_name=f"Tutor {custom_id}", **fields)
        test_db.add(profile)
        await test_db.commit()
        await test_db.refresh(profile)
        return profile
    return _make


@pytest.fixture
async def client(test_db, clock):
    """Create test client."""
    async def override_get_db():
        yield test_db

    def override_get_rating_service():
        return RatingService(test_db, RatingCoordinator(test_db, clock=clock))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rating_service] = override_get_rating_service
    app.state.limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    """Identity headers as forwarded by the auth gateway."""
    def _headers(user_id, role):
        return {"X-User-Id": user_id, "X-User-Role": role}
    return _headers
