# tests/conftest.py
"""
Test bootstrap:
- Points the app at a throwaway SQLite file (set BEFORE importing watchtracker)
- Plain-HTTP cookies and no rate limiting
- Fresh schema + seeded catalog per test, dropped afterwards
"""

import os
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="watchtracker-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'watchtracker.db'}"
os.environ["CATALOG_SEED_PATH"] = str(_TEST_DIR / "missing-seed.json")
os.environ["COOKIE_SECURE"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from watchtracker.database import async_session, engine, init_db
from watchtracker.main import app
from watchtracker.models import Base, Genre, ListGroup, Title, User


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def prepared_db():
    await init_db()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def session(prepared_db):
    async with async_session() as db:
        yield db


@pytest.fixture()
async def client(prepared_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture()
async def other_client(prepared_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


# A rollback expires every ORM instance in the session, so list tests hold the plain id.
@pytest.fixture()
async def group_id(session):
    user = User(email="owner@example.com", password_hash="not-a-real-hash")
    session.add(user)
    await session.flush()
    genre = (await session.execute(select(Genre).where(Genre.name == "Drama"))).scalar_one()
    group = ListGroup(user_id=user.id, genre_id=genre.id)
    session.add(group)
    await session.commit()
    return group.id


@pytest.fixture()
def make_titles(session):
    async def _make(*names: str) -> dict:
        titles = [Title(title_type="MOVIE", name=name) for name in names]
        session.add_all(titles)
        await session.commit()
        return {title.name: title.id for title in titles}

    return _make
