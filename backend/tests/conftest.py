"""
DocBridge Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment is overridden before any `app` import so the module-level
       application never touches a real storage directory or Google client.

Fixtures:
    ├── clock:        FakeClock controlling object store time
    ├── store_config: ObjectStoreConfig rooted in a per-test tmp directory
    ├── store:        ObjectStore using store_config + clock
    ├── test_settings: Settings with dummy Google OAuth client values
    ├── sample_pdf:   small PDF generated with reportlab
    └── test_client:  HTTPX AsyncClient talking to a fresh app
"""

import os
import tempfile

# Must run before app modules are imported
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="docbridge_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.services import pdf_service
from app.services.google_service import GoogleWorkspaceService, TokenStore
from app.services.object_store import ObjectStore, ObjectStoreConfig


class FakeClock:
    """Manually advanced clock; starts at a realistic epoch so mtimes compare sensibly."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_config(tmp_path):
    return ObjectStoreConfig(
        directory=tmp_path / "objects",
        retention_seconds=300.0,
        delete_retry_delay=30.0,
        sweep_on_startup=False,
    )


@pytest.fixture
def store(store_config, clock):
    return ObjectStore(store_config, clock=clock)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        storage_root=str(tmp_path),
        google_client_id="test-client-id.apps.googleusercontent.com",
        google_client_secret="test-client-secret",
        google_redirect_uri="http://localhost:8000/auth/callback",
        retry_max_attempts=3,
        log_level="WARNING",
    )


@pytest.fixture
def sample_pdf():
    return pdf_service.create_pdf("Quarterly summary\nRevenue grew in every region.", title="Report")


@pytest.fixture
def google_service(test_settings):
    return GoogleWorkspaceService(test_settings, TokenStore())


@pytest_asyncio.fixture
async def test_client(test_settings, store, google_service):
    """
    HTTPX AsyncClient bound to an app using the per-test store.

    ASGITransport does not run the lifespan, so the expiry loop is not
    started; tests drive expiry with clock.advance() + store.expire_due().
    """
    from app.main import create_app

    app = create_app(test_settings, object_store=store, google_service=google_service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
