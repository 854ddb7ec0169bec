"""
Pytest configuration and fixtures.

Each test gets its own file-backed SQLite database (sqlite+aiosqlite with
NullPool, so every session opens its own connection and concurrent gate
checks really contend for the same rows).
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from tests.test_constants import TEST_INTERNAL_JOB_TOKEN

# Never inherit a real DATABASE_URL from .env while testing.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + str(
    Path(tempfile.gettempdir()) / "threatgate_test_default.db"
)
os.environ["INTERNAL_JOB_TOKEN"] = TEST_INTERNAL_JOB_TOKEN
os.environ.pop("PROFILES_DIR", None)

import threatgate.models  # noqa: E402,F401
from threatgate.db.session import Base, build_engine, build_session_factory  # noqa: E402


@pytest.fixture
def profile():
    """Synthetic store profile with small ceilings (review_reply 10/h open, payout 5/h closed)."""
    from tests.factories import make_profile

    return make_profile()


@pytest.fixture(autouse=True)
def _clear_caches() -> None:
    """Clear settings and profile caches so env and file changes don't leak between tests."""
    from threatgate.config import get_settings
    from threatgate.profiles.loader import get_profile

    get_settings.cache_clear()
    get_profile.cache_clear()
    yield
    get_settings.cache_clear()
    get_profile.cache_clear()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Fresh SQLite file with every table created."""
    path = tmp_path / "threatgate_test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def engine(database_url: str):
    return build_engine(database_url, poolclass=NullPool)


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """AsyncSession on the per-test database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def client(session_factory) -> TestClient:
    """TestClient with get_db and get_session_factory bound to the per-test database."""
    from threatgate.db.session import get_db, get_session_factory
    from threatgate.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()
