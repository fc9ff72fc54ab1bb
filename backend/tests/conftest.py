"""Pytest configuration and fixtures."""

import os
import pytest
from typing import Generator
from fastapi.testclient import TestClient
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Set test environment before importing app
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["WORKER_SECRET"] = "test-worker-secret"
os.environ["ENABLE_CRON_JOBS"] = "false"

from tests.fakes import FakeClock, FakeSupabase  # noqa: E402


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    """Empty in-memory stand-in for the Supabase client."""
    return FakeSupabase()


@pytest.fixture
def db(fake_supabase):
    """Database helper bound to the in-memory client."""
    from ledgersync.database import Database

    return Database(fake_supabase)


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic clock advanced only by its own ``sleep``."""
    return FakeClock()


@pytest.fixture(scope="session")
def app():
    """Create test application."""
    from ledgersync.main import app
    return app


@pytest.fixture
def client(app, db) -> Generator:
    """Create test client with storage swapped for the in-memory fake."""
    from ledgersync.dependencies import get_database

    app.dependency_overrides[get_database] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def worker_headers():
    """Bearer header carrying the shared worker secret."""
    return {"Authorization": "Bearer test-worker-secret"}
