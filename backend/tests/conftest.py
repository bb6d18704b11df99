"""
Shared pytest fixtures for CrewSync backend tests.

Uses SQLite in-memory with StaticPool so all sessions share one connection,
meaning data written in one session is visible to others (important for HTTP client tests).
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import crewsync.models  # noqa – registers all SQLAlchemy models with Base.metadata
from crewsync.core.database import Base, get_db
from crewsync.core.security import hash_password, create_access_token
from crewsync.main import app
from crewsync.models.assignment import AssignedPersonnel, WorkerStatus
from crewsync.models.company import Company, Job
from crewsync.models.shift import Shift
from crewsync.models.user import User, UserRole

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fester Referenztag für alle Schichten (UTC)
DAY = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
    return DAY + timedelta(days=day_offset, hours=hour, minutes=minute)


# ── Shared engine (function-scoped: fresh DB per test) ───────────────────────

@pytest_asyncio.fixture
async def engine():
    """Creates a fresh in-memory SQLite engine per test with a shared connection pool."""
    eng = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,          # single shared connection → all sessions see same data
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncSession:
    """Async DB session for services and direct data inspection inside tests."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


# ── HTTP client fixture ───────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(engine) -> AsyncClient:
    """
    FastAPI test client with get_db overridden to use the test engine.
    Each request gets its own session but shares the same underlying
    connection via StaticPool.
    """
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ── Company / Job / Shift ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def company(db) -> Company:
    c = Company(id=uuid.uuid4(), name="Stagecraft Events", is_active=True)
    db.add(c)
    await db.commit()
    await db.refresh(c)
    return c


@pytest_asyncio.fixture
async def other_company(db) -> Company:
    c = Company(id=uuid.uuid4(), name="Arena Productions", is_active=True)
    db.add(c)
    await db.commit()
    await db.refresh(c)
    return c


@pytest_asyncio.fixture
async def job(db, company) -> Job:
    j = Job(id=uuid.uuid4(), company_id=company.id, name="Spring Concert Load-In", location="Hall A")
    db.add(j)
    await db.commit()
    await db.refresh(j)
    return j


@pytest.fixture
def make_shift(db, job):
    """Factory: legt eine Schicht des Test-Jobs im gegebenen Zeitfenster an."""
    async def _make(start: datetime, end: datetime, location: str | None = None, job_id=None) -> Shift:
        s = Shift(id=uuid.uuid4(), job_id=job_id or job.id, start_time=start, end_time=end, location=location)
        db.add(s)
        await db.commit()
        await db.refresh(s)
        return s
    return _make


@pytest_asyncio.fixture
async def shift(make_shift) -> Shift:
    """Standard-Schicht 08:00–16:00."""
    return await make_shift(at(8), at(16))


# ── Users ────────────────────────────────────────────────────────────────────

async def _make_user(db, name: str, email: str, role: UserRole, company_id=None) -> User:
    u = User(
        id=uuid.uuid4(),
        company_id=company_id,
        name=name,
        email=email,
        hashed_password=hash_password("testpass123"),
        role=role.value,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(u)
    await db.commit()
    await db.refresh(u)
    return u


@pytest_asyncio.fixture
async def admin_user(db) -> User:
    return await _make_user(db, "Alex Admin", "admin@test.de", UserRole.ADMIN)


@pytest_asyncio.fixture
async def crew_chief_user(db) -> User:
    return await _make_user(db, "Casey Chief", "chief@test.de", UserRole.CREW_CHIEF)


@pytest_asyncio.fixture
async def company_user(db, company) -> User:
    return await _make_user(db, "Pat Principal", "client@test.de", UserRole.COMPANY_USER, company.id)


@pytest_asyncio.fixture
async def other_company_user(db, other_company) -> User:
    return await _make_user(db, "Olli Outsider", "outsider@test.de", UserRole.COMPANY_USER, other_company.id)


@pytest_asyncio.fixture
async def worker(db) -> User:
    return await _make_user(db, "Sam Stagehand", "worker@test.de", UserRole.EMPLOYEE)


@pytest_asyncio.fixture
async def second_worker(db) -> User:
    return await _make_user(db, "Robin Rigger", "rigger@test.de", UserRole.EMPLOYEE)


@pytest_asyncio.fixture
async def crew_chief_assignment(db, shift, crew_chief_user) -> AssignedPersonnel:
    """Crew Chief direkt auf der Standard-Schicht eingeteilt."""
    a = AssignedPersonnel(
        id=uuid.uuid4(),
        shift_id=shift.id,
        user_id=crew_chief_user.id,
        role_code="CC",
        status=WorkerStatus.ASSIGNED.value,
    )
    db.add(a)
    await db.commit()
    await db.refresh(a)
    return a


@pytest_asyncio.fixture
def admin_token(admin_user) -> str:
    return create_access_token(admin_user.id, admin_user.role)


@pytest_asyncio.fixture
def crew_chief_token(crew_chief_user) -> str:
    return create_access_token(crew_chief_user.id, crew_chief_user.role)


@pytest_asyncio.fixture
def company_token(company_user) -> str:
    return create_access_token(company_user.id, company_user.role, company_user.company_id)


@pytest_asyncio.fixture
def worker_token(worker) -> str:
    return create_access_token(worker.id, worker.role)


# ── Helper ────────────────────────────────────────────────────────────────────

def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
