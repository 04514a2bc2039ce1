import os

# Must be set before config/db are imported anywhere
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CACHE_REDIS_URL"] = ""
os.environ["RATE_LIMIT_REDIS_URL"] = ""
os.environ["CACHE_WARM_BASE_URL"] = ""
os.environ.setdefault("AUTH_SECRET", "test-auth-secret-0123456789abcdef0123456789")
os.environ.setdefault("CRON_SECRET", "test-cron-secret-0123456789abcdef")

import httpx
import pytest
import pytest_asyncio

import db
from auth import create_access_token, internal_headers
from config import RATE_LIMITS
from core.activity import ActivityTracker
from core.cache import MemoryCacheStore
from core.rate_limit import RateLimiter
from models import ROLE_ADMIN, ROLE_MAJOR_ADMIN, ROLE_SELLER
from tests.fakes import InMemoryObjectStorage


@pytest.fixture
def test_db():
    """Create all tables before each test and drop them after"""
    db.create_tables()
    session = db.SessionLocal()
    try:
        yield session
    finally:
        session.close()
        db.drop_tables()


@pytest.fixture
def storage():
    return InMemoryObjectStorage()


@pytest.fixture
def cache_store():
    return MemoryCacheStore(max_keys=1000)


@pytest.fixture
def rate_limiter():
    # Generous limits so endpoint tests never trip them; rate limit tests build their own.
    return RateLimiter({kind: (1000, window) for kind, (_, window) in RATE_LIMITS.items()})


@pytest.fixture
def app(test_db, storage, cache_store, rate_limiter):
    from main import create_app

    return create_app(
        cache_store=cache_store,
        rate_limiter=rate_limiter,
        storage=storage,
        activity_tracker=ActivityTracker(window_seconds=300, max_users=100),
    )


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    await app.state.warmer.drain(timeout=5)


def auth_headers(role: str = ROLE_SELLER, *, user_id: str = "user-1", email: str = "user@telasluciana.mx") -> dict:
    token = create_access_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seller_headers():
    return auth_headers(ROLE_SELLER, user_id="seller-1", email="vendedor@telasluciana.mx")


@pytest.fixture
def admin_headers():
    return auth_headers(ROLE_ADMIN, user_id="admin-1", email="admin@telasluciana.mx")


@pytest.fixture
def major_admin_headers():
    return auth_headers(ROLE_MAJOR_ADMIN, user_id="major-1", email="direccion@telasluciana.mx")


@pytest.fixture
def system_headers():
    return internal_headers()
