"""
pytest configuration and shared fixtures for the EcoWatch API tests.

Key concern: tests must not require Firebase credentials or network access.
We achieve this by:
  1. Setting USE_MOCK_DB=true before anything from ecowatch is imported, so
     Settings selects the in-memory backends and X-User-ID authentication.
  2. Giving every test a fresh InMemoryReportStore / UserService and wiring
     them into the app through FastAPI dependency overrides.
  3. Replacing the Open-Meteo provider with a stub.
"""

import os

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ["USE_MOCK_DB"] = "true"
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("STORE_TIMEOUT_SECONDS", "2")

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from ecowatch.models.environment import EnvironmentalSnapshot
from ecowatch.models.report import DraftReport
from ecowatch.models.user import COUNCIL_ROLE, User
from ecowatch.services.environment import EnvironmentalProvider, EnvironmentService, get_environment_service
from ecowatch.services.image_service import InMemoryObjectStorage, get_object_storage
from ecowatch.services.report_service import ReportService
from ecowatch.services.status_workflow import ReportLifecycleEngine
from ecowatch.services.store import get_report_store
from ecowatch.services.store.memory import InMemoryReportStore
from ecowatch.services.user_service import UserService, get_user_service
from ecowatch.utils.retry import RetryPolicy
from ecowatch.utils.timestamps import utcnow

CITIZEN_ID = "citizen-1"
OTHER_CITIZEN_ID = "citizen-2"
COUNCIL_ID = "council-1"


class StubEnvironmentalProvider(EnvironmentalProvider):
    """Returns fixed readings, or raises `error` when set."""

    name = "stub"

    def __init__(self):
        self.calls = []
        self.error = None

    def fetch(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        if self.error is not None:
            raise self.error
        return EnvironmentalSnapshot(
            latitude=latitude,
            longitude=longitude,
            temperature=22.5,
            humidity=60,
            wind_speed=11.2,
            pm2_5=14.1,
            pm10=30.2,
            co=210.0,
            no2=18.4,
            fetched_at=utcnow(),
            provider=self.name,
        )


@pytest.fixture()
def engine():
    return ReportLifecycleEngine(max_images=5)


@pytest.fixture()
def store(engine):
    return InMemoryReportStore(engine=engine)


@pytest.fixture()
def fast_policy():
    return RetryPolicy(timeout=1.0, max_retries=2, backoff=0)


@pytest.fixture()
def service(store, fast_policy):
    return ReportService(store, retry_policy=fast_policy)


@pytest.fixture()
def citizen():
    return User(uid=CITIZEN_ID, email="citizen@example.com")


@pytest.fixture()
def other_citizen():
    return User(uid=OTHER_CITIZEN_ID)


@pytest.fixture()
def council():
    return User(uid=COUNCIL_ID, email="council@example.com", roles={COUNCIL_ROLE})


@pytest.fixture()
def draft():
    return DraftReport(
        title="Illegal dumping near river",
        description="Construction rubble and plastic bags dumped on the river bank.",
        category="waste_dumping",
        severity=3,
        coords={"lat": -1.29, "lng": 36.82},
    )


@pytest.fixture()
def draft_payload():
    return {
        "title": "Illegal dumping near river",
        "description": "Construction rubble and plastic bags dumped on the river bank.",
        "category": "waste_dumping",
        "severity": 3,
        "coords": {"lat": -1.29, "lng": 36.82},
    }


@pytest.fixture()
def user_service():
    users = UserService(use_memory=True)
    users.set_roles(COUNCIL_ID, [COUNCIL_ROLE], email="council@example.com")
    return users


@pytest.fixture()
def object_storage():
    return InMemoryObjectStorage()


@pytest.fixture()
def environment_provider():
    return StubEnvironmentalProvider()


@pytest.fixture()
def environment_service(environment_provider):
    return EnvironmentService(environment_provider, timeout=2.0)


@pytest.fixture()
def app(store, user_service, object_storage, environment_service):
    """The FastAPI app with every external collaborator replaced."""
    from ecowatch.main import app as fastapi_app

    fastapi_app.dependency_overrides[get_report_store] = lambda: store
    fastapi_app.dependency_overrides[get_user_service] = lambda: user_service
    fastapi_app.dependency_overrides[get_object_storage] = lambda: object_storage
    fastapi_app.dependency_overrides[get_environment_service] = lambda: environment_service

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
async def client(app):
    """
    HTTPX async test client wired to the FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def sync_client(app):
    """Starlette TestClient; needed for WebSocket tests."""
    return TestClient(app)


def as_user(uid):
    return {"X-User-ID": uid}
