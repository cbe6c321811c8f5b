"""
Pytest fixtures for testing.
"""
import pytest
import pytest_asyncio
from datetime import timedelta
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Import database module BEFORE app to allow override
import app.database
from app.database import Base
from app.database_types import utcnow
# Import ALL models so Base.metadata knows about all tables
from app.models.user import User, ViewerRole
from app.models.listing import Listing, ListingTier, ListingStatus
from app.models.match_suggestion import MatchSuggestion  # noqa: F401
from app.services.change_channel import ChangeChannel, get_listing_channel

# Now import app (after we can override database)
from app.main import app as fastapi_app


# Test database URL (use in-memory SQLite for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SAMPLE_RESUME = (
    "Senior backend engineer with 7 years of experience building Python services. "
    "Led a team of five shipping FastAPI and PostgreSQL systems on AWS with Docker "
    "and Kubernetes. Bachelor of Science in Computer Science."
)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.
    Ensures cleanup happens even if test fails.
    """
    # Use StaticPool to keep single connection alive and reuse it
    # This ensures all sessions see the same in-memory database
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables FIRST
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # THEN replace the app's engine and sessionmaker
    # This ensures get_db() uses sessions connected to DB with tables
    original_engine = app.database.engine
    original_sessionmaker = app.database.AsyncSessionLocal

    app.database.engine = test_engine
    app.database.AsyncSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    # Create session for direct test use
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    session = async_session()

    try:
        yield session
    finally:
        # Cleanup strategy: Try each step independently
        try:
            await session.close()
        except Exception as e:
            print(f"Warning: Failed to close session: {e}")

        try:
            async with test_engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except Exception as e:
            print(f"Warning: Failed to drop tables: {e}")

        try:
            await test_engine.dispose()
        except Exception as e:
            print(f"Warning: Failed to dispose engine: {e}")

        app.database.engine = original_engine
        app.database.AsyncSessionLocal = original_sessionmaker


@pytest.fixture
def channel() -> ChangeChannel:
    """A private listings change channel, wired into the app for the test."""
    test_channel = ChangeChannel("listings", max_pending=64)
    fastapi_app.dependency_overrides[get_listing_channel] = lambda: test_channel
    yield test_channel
    fastapi_app.dependency_overrides.pop(get_listing_channel, None)
    test_channel.close()


@pytest_asyncio.fixture
async def async_client(db: AsyncSession, channel: ChangeChannel) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing endpoints.

    The db fixture already replaced app.database.engine with test engine,
    so all endpoints will automatically use the test database.
    """
    transport = ASGITransport(app=fastapi_app)

    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True  # Follow 307 redirects for trailing slashes
    ) as client:
        yield client


async def make_user(db: AsyncSession, email: str, role: ViewerRole, **fields) -> User:
    user = User(email=email, role=role.value, **fields)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_listing(
    db: AsyncSession,
    owner: User,
    title: str = "Backend Engineer",
    tier: ListingTier = ListingTier.BASE,
    status: ListingStatus = ListingStatus.ACTIVE,
    age_minutes: int = 0,
    **fields,
) -> Listing:
    created = utcnow() - timedelta(minutes=age_minutes)
    listing = Listing(
        client_id=owner.id,
        title=title,
        company=fields.pop("company", "Acme"),
        description=fields.pop("description", "Build and operate Python APIs"),
        requirements=fields.pop("requirements", "5+ years Python, FastAPI, PostgreSQL"),
        experience_level=fields.pop("experience_level", "senior"),
        skills=fields.pop("skills", ["python", "fastapi", "postgresql"]),
        tier=tier.value,
        status=status.value,
        created_at=created,
        updated_at=created,
        **fields,
    )
    db.add(listing)
    await db.commit()
    await db.refresh(listing)
    return listing


@pytest_asyncio.fixture
async def privileged_user(db: AsyncSession) -> User:
    return await make_user(db, "founder@example.com", ViewerRole.PRIVILEGED, first_name="Fay", last_name="Founder")


@pytest_asyncio.fixture
async def standard_user(db: AsyncSession) -> User:
    return await make_user(db, "member@example.com", ViewerRole.STANDARD, first_name="Sam", last_name="Select")


@pytest_asyncio.fixture
async def client_user(db: AsyncSession) -> User:
    return await make_user(db, "hiring@acme.example.com", ViewerRole.CLIENT, company="Acme")


@pytest_asyncio.fixture
async def candidate_user(db: AsyncSession) -> User:
    return await make_user(
        db,
        "candidate@example.com",
        ViewerRole.CANDIDATE,
        first_name="Casey",
        last_name="Candidate",
        resume_text=SAMPLE_RESUME,
        skills=["python", "fastapi", "postgresql"],
        experience_years=7,
    )


@pytest.fixture
def user_factory(db: AsyncSession):
    async def factory(email: str, role: ViewerRole = ViewerRole.CANDIDATE, **fields) -> User:
        return await make_user(db, email, role, **fields)
    return factory


@pytest.fixture
def listing_factory(db: AsyncSession):
    async def factory(owner: User, **fields) -> Listing:
        return await make_listing(db, owner, **fields)
    return factory
