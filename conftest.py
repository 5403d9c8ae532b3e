import os
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

# Tests run against an in-memory SQLite store unless TEST_DATABASE_URL points
# elsewhere. This must happen before any settings are read.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ENVIRONMENT"] = "development"
os.environ["IDENTITY_SCHEMA"] = ""
os.environ["IDENTITY_TABLE"] = "identities"

from libs.auth.models import AuthUser  # noqa: E402
from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()
settings = get_settings()

from libs.db.base import Base  # noqa: E402
from libs.db.config import build_engine, build_sessionmaker  # noqa: E402
from services.store_service.models import AppRole, IdentityRef  # noqa: E402
from services.store_service.roles import Caller, resolve_caller  # noqa: E402
from tests.factories import IdentityFactory  # noqa: E402


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine with the full current schema, foreign keys enforced.

    Each test gets a fresh in-memory database.
    """
    engine = build_engine(settings.DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session bound to the test engine.
    """
    session = build_sessionmaker(test_engine)()
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def reconcile_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Empty database holding only the auth provider's identity table.

    Foreign keys are off, as for every reconciliation run.
    """
    engine = build_engine(settings.DATABASE_URL, sqlite_foreign_keys=False)

    async with engine.begin() as conn:
        await conn.run_sync(IdentityRef.__table__.create)

    yield engine

    await engine.dispose()


@pytest.fixture
def make_caller(db_session) -> Callable:
    """
    Return an async factory: signs up an identity and resolves its caller.

    The profile is created by the identity insert itself.
    """

    async def _make(
        role: AppRole = AppRole.USER, full_name: Optional[str] = "Test User"
    ) -> Caller:
        identity = IdentityFactory.create(role=role.value, full_name=full_name)
        db_session.add(identity)
        await db_session.commit()
        return await resolve_caller(
            db_session, AuthUser(user_id=str(identity.id), email=identity.email)
        )

    return _make


@pytest.fixture
def auth_state() -> dict:
    """
    Holds the AuthUser the test client authenticates as (None = anonymous).
    """
    return {"user": None}


@pytest.fixture
def login(auth_state) -> Callable[[Optional[Caller]], None]:
    def _login(caller: Optional[Caller]) -> None:
        if caller is None:
            auth_state["user"] = None
        else:
            auth_state["user"] = AuthUser(user_id=str(caller.identity_id))

    return _login


@pytest_asyncio.fixture
async def client(db_session, auth_state) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden DB and auth dependencies.
    """
    from fastapi import HTTPException, status
    from libs.auth.dependencies import get_current_user, get_optional_user
    from libs.db.session import get_async_db
    from services.store_service.app.main import app

    async def _db():
        yield db_session

    async def _current_user() -> AuthUser:
        if auth_state["user"] is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
            )
        return auth_state["user"]

    async def _optional_user() -> Optional[AuthUser]:
        return auth_state["user"]

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_current_user] = _current_user
    app.dependency_overrides[get_optional_user] = _optional_user

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
