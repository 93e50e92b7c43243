"""
Centralized Test Configuration.
"""

import os
import tempfile

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from civicconnect.app.main import app
from civicconnect.app.db.session import get_db, get_session_factory, Base
from civicconnect.app.core.redis_client import get_redis
from civicconnect.app.core.jwt import create_user_token
from civicconnect.app.core.reliability import media_circuit_breaker
from civicconnect.app.core.security import get_password_hash
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.user import User
from civicconnect.app.services.cache import CacheService
from civicconnect.app.services.media_store import LocalMediaStore, get_media_store
import civicconnect.app.core.redis_client as redis_client_module

# File-backed SQLite so concurrent sessions (dashboard fan-out, bulk
# operations) each get their own connection.
_db_dir = tempfile.mkdtemp(prefix="civicconnect-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"

engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)


@event.listens_for(engine.sync_engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    async def setex(self, key, seconds, value):
        return await self.set(key, value, ex=seconds)

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            self.ttls.pop(key, None)
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}
        self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class BrokenRedis(MockRedis):
    """Every command fails, as when the server is unreachable."""

    async def _fail(self, *args, **kwargs):
        raise ConnectionError("redis unavailable")

    get = set = setex = incr = expire = delete = exists = _fail


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""

    # Patch the global redis client used by token revocation
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    await CacheService.clear()
    media_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def media_store(tmp_path):
    store = LocalMediaStore(str(tmp_path / "media"), "http://test/media")
    app.dependency_overrides[get_media_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_media_store, None)


@pytest.fixture
async def client(media_store):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


# --- Users ---

@pytest.fixture
def make_user(db_session):
    """Factory creating a persisted user; returns the User row."""
    counter = {"n": 0}

    async def _make(role: UserRole = UserRole.USER, email: str = None, is_active: bool = True,
                    first_name: str = "Test", last_name: str = None, password: str = "secret123"):
        counter["n"] += 1
        user = User(
            first_name=first_name,
            last_name=last_name or f"{role.value.title()}{counter['n']}",
            email=email or f"{role.value}{counter['n']}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
async def citizen(make_user):
    return await make_user(UserRole.USER, first_name="Cathy")


@pytest.fixture
async def employee(make_user):
    return await make_user(UserRole.EMPLOYEE, first_name="Eddie")


@pytest.fixture
async def admin_user(make_user):
    return await make_user(UserRole.ADMIN, first_name="Ada")


# --- Reports ---

def report_payload(**overrides) -> dict:
    payload = {
        "title": "Pothole on Main Street",
        "description": "Large pothole near the crossing",
        "category": "road_issue",
        "priority": "medium",
        "location": {
            "coordinates": [-73.9857, 40.7484],
            "address": {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_report(client):
    """Submit a report through the API as `user`; returns the report JSON."""
    async def _create(user: User, **overrides) -> dict:
        response = await client.post("/v1/reports", json=report_payload(**overrides), headers=auth_headers(user))
        assert response.status_code == 201, response.text
        return response.json()["report"]

    return _create


@pytest.fixture
def assign_report(client):
    async def _assign(admin: User, report_id: int, employee: User) -> dict:
        response = await client.patch(
            f"/v1/reports/{report_id}/assign",
            json={"assigned_to": employee.id},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200, response.text
        return response.json()["report"]

    return _assign
