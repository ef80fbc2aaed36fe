"""
Complaint Service - Shared Test Fixtures
Provides reusable fixtures for the database, stores, geolocation and HTTP client.
"""

import asyncio
import os
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport

# Configure test environment BEFORE importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_complaints.db"
os.environ["STORE_BACKEND"] = "sql"
os.environ["GEOLOCATION_RETRY_BACKOFF_MS"] = "0"
os.environ["GEOLOCATION_API_KEY"] = "test-key"
os.environ["LOG_LEVEL"] = "DEBUG"

from complaints.main import app
from complaints.core.config import Settings, get_settings
from complaints.models.complaint import UNKNOWN_COUNTRY
from complaints.services.complaint_service import ComplaintService
from complaints.services.complaint_store import InMemoryComplaintStore, SqlComplaintStore


# =============================================================================
# Fakes
# =============================================================================

class FakeGeoLocation:
    """Stands in for GeoLocationClient; answers from a dict, records every call."""

    def __init__(self, countries: Optional[Dict[str, str]] = None):
        self.countries = dict(countries or {})
        self.calls: List[str] = []
        self.closed = False

    async def get_country_from_ip(self, ip_address: str) -> str:
        self.calls.append(ip_address)
        # Give other tasks a chance to run, like a real network call would
        await asyncio.sleep(0)
        return self.countries.get(ip_address, UNKNOWN_COUNTRY)

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Get test settings."""
    return get_settings()


@pytest.fixture
def geo() -> FakeGeoLocation:
    return FakeGeoLocation({
        "1.2.3.4": "Poland",
        "5.6.7.8": "Germany",
        "127.0.0.1": "Localland",
    })


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def setup_test_database():
    """Create database tables before each test and clean up after."""
    from complaints.core.database import Base, close_db, get_engine, init_db

    await init_db()

    yield

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()

    for db_file in ["test_complaints.db", "test_complaints.db-shm", "test_complaints.db-wal"]:
        if os.path.exists(db_file):
            try:
                os.remove(db_file)
            except PermissionError:
                pass


@pytest.fixture
def sql_store(setup_test_database) -> SqlComplaintStore:
    from complaints.core.database import get_session_factory
    return SqlComplaintStore(get_session_factory())


@pytest.fixture
def memory_store() -> InMemoryComplaintStore:
    return InMemoryComplaintStore()


# =============================================================================
# Service / HTTP Fixtures
# =============================================================================

@pytest.fixture
def memory_service(memory_store, geo, settings) -> ComplaintService:
    return ComplaintService(memory_store, geo, settings)


@pytest.fixture
def sql_service(sql_store, geo, settings) -> ComplaintService:
    return ComplaintService(sql_store, geo, settings)


@pytest.fixture
async def client(sql_service) -> AsyncGenerator[AsyncClient, None]:
    """
    Async test client against the SQLite-backed service.
    ASGITransport does not run the lifespan, so the service is wired here.
    """
    app.state.complaint_service = sql_service
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.complaint_service
