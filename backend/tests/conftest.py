"""Master test fixtures.

Environment variables are set BEFORE any application imports so that
``config.Settings()`` initialises with test-safe values and never
touches Docker secrets or a production database.
"""

import os

# ── Set test env vars before any app import ──────────────────────────
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite://",
    "POSTGRES_PASSWORD": "testpassword",
    "FILE_ID_OFFSET": "1234",
    "MAX_FILE_SIZE": "1000",
    "MAX_TOTAL_CAPACITY": "1500",
    "RETENTION_DAYS": "1",
})

import pytest

from httpx import ASGITransport, AsyncClient

# Now safe to import application code
from storage.file_store import FileStore

ID_OFFSET = 1234
MAX_FILE_SIZE = 1000
MAX_TOTAL_CAPACITY = 1500


def make_store(database_url: str, **overrides) -> FileStore:
    """Build a store with the small limits used throughout the tests."""
    options = {
        "id_offset": ID_OFFSET,
        "max_file_size": MAX_FILE_SIZE,
        "max_total_capacity": MAX_TOTAL_CAPACITY,
        "retention_days": 1,
        "write_attempts": 3,
        "retry_backoff_seconds": 0,
    }
    options.update(overrides)
    return FileStore(database_url, **options)


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite so every session sees the same data."""
    return f"sqlite+aiosqlite:///{tmp_path / 'files.db'}"


@pytest.fixture
def store_factory(database_url):
    """Build (unopened) stores against this test's database."""
    return lambda **overrides: make_store(database_url, **overrides)


@pytest.fixture
async def store(database_url):
    """An open file store, closed after the test."""
    s = make_store(database_url)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
async def test_client(store: FileStore):
    """HTTPX async client wired to the FastAPI app, with the store overridden.

    The startup event is NOT run, so no sweeper task is started.
    """
    from main import app
    from api.files import get_file_store

    app.dependency_overrides[get_file_store] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
