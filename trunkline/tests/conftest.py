from __future__ import annotations

import os
import tempfile

# Point settings at a throwaway SQLite file before any trunkline module builds the engine.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'trunkline-test-{os.getpid()}.db')}",
)
os.environ.setdefault("PROVISIONING_PROVIDER", "fake")

import pytest
from httpx import ASGITransport, AsyncClient

from trunkline.apps.api.deps import get_provisioner
from trunkline.apps.api.main import create_app
from trunkline.domain.models import Base
from trunkline.persistence.db import SessionLocal, engine
from trunkline.providers.provisioning.fake import FakeProvisioningProvider


@pytest.fixture(autouse=True)
async def reset_database() -> None:
    # Every test starts from an empty schema built from the ORM metadata.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture
async def session():
    async with SessionLocal() as db_session:
        yield db_session


@pytest.fixture
def provisioner() -> FakeProvisioningProvider:
    return FakeProvisioningProvider()


@pytest.fixture
async def client(provisioner: FakeProvisioningProvider):
    app = create_app()
    app.dependency_overrides[get_provisioner] = lambda: provisioner
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
