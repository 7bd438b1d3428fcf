"""Shared test fixtures."""

import os

# Must be set before crewboard.settings is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./crewboard-test.db"

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from crewboard.db import Base, get_db
from crewboard.models.account import Account
from crewboard.services.sessions import Principal
from crewboard.services.teams import TeamService


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        from crewboard import models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_account(db):
    """Create and commit an account, returning its Principal."""

    async def _make(email: str, display_name: str | None = None) -> Principal:
        account = Account(email=email, display_name=display_name or email.split("@")[0])
        db.add(account)
        await db.commit()
        return Principal.from_account(account)

    return _make


@pytest.fixture
def make_team(db):
    """Create and commit a team owned by the given principal."""

    async def _make(owner: Principal, name: str = "Team T") -> int:
        team = await TeamService(db).create_team(owner, name)
        await db.commit()
        return team.id

    return _make


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app, wired to the test database."""
    from crewboard.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as c:
        yield c
    app.dependency_overrides.clear()
