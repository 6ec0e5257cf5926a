"""
Fixtures compartidas para Pytest.
Configura base de datos de test y clientes HTTP.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agrisync.config import get_settings
from agrisync.database import Base, build_engine, get_db
from agrisync.main import app
from agrisync.models.user import User, UserRole

settings = get_settings()


# ── Engine de test: SQLite async en un archivo por test ─
@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Crea el esquema completo en una base SQLite nueva para cada test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa la DB de test."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Usuarios y tokens ────────────────────────────────
def make_token(user_id: str, token_type: str = "access", minutes: int = 15) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Crea un encuestador de test."""
    user = User(
        id="enum-001",
        username="ana.tupou",
        role=UserRole.ENUMERATOR,
        full_name="Ana Tupou",
        email="ana@test.com",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(test_user.id)}"}


# ── Encuestas de ejemplo ─────────────────────────────
@pytest.fixture
def make_survey():
    """Factory de encuestas tal como las envía un dispositivo (camelCase)."""

    def _make(client_id: str = "C1", device_id: str | None = "D1", **overrides) -> dict:
        survey = {
            "clientId": client_id,
            "clientTimestamp": 100,
            "farmerName": "Maria",
            "householdSize": 5,
            "village": "Kolovai",
            "island": "Tongatapu",
            "latitude": -21.10,
            "longitude": -175.33,
            "farmSize": 2.5,
            "crops": ["kava", "taro"],
            "livestock": {"pigs": 4, "chickens": 12},
            "pestIssues": "none",
        }
        if device_id is not None:
            survey["deviceId"] = device_id
        survey.update(overrides)
        return survey

    return _make
