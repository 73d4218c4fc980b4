import os
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only-min-32-chars"
os.environ["APP_ENV"] = "testing"
os.environ["APP_DEBUG"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from civicwatch.core.auth.security import Role, create_access_token
from civicwatch.core.geofence.boundary import load_boundary
from civicwatch.core.geofence.service import GeofenceValidator
from civicwatch.core.incidents.models import Incident  # noqa
from civicwatch.core.notifications.models import Notification  # noqa
from civicwatch.db.base import Base
from civicwatch.db.session import build_engine, build_sessionmaker
from civicwatch.dependencies import get_db, get_geofence_validator
from civicwatch.main import app
from civicwatch.settings import DEFAULT_BOUNDARY

INSIDE = (19.05, 49.82)
OUTSIDE = (0.0, 0.0)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'civicwatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="session")
def geofence():
    return GeofenceValidator(load_boundary(str(DEFAULT_BOUNDARY)))


@pytest.fixture
async def client(session_factory, geofence):
    async def override_get_db():
        async with session_factory() as session:
            async with session.begin():
                yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_geofence_validator] = lambda: geofence
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: uuid.UUID, role: Role = Role.OWNER) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def reporter_id():
    return uuid.uuid4()


@pytest.fixture
def admin_id():
    return uuid.uuid4()
