import httpx
import pytest
import pytest_asyncio

from auth import create_access_token
from config import RATE_LIMITS
from core.activity import ActivityTracker
from core.cache import MemoryCacheStore
from core.rate_limit import RateLimiter


class TestAppSurface:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_root_and_request_id(self, client):
        response = await client.get("/")
        assert response.json()["status"] == "online"
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_session_echoes_principal(self, client, seller_headers):
        response = await client.get("/api/auth/session", headers=seller_headers)
        assert response.json() == {
            "authenticated": True,
            "user": {"user_id": "seller-1", "email": "vendedor@telasluciana.mx", "role": "seller", "is_internal": False},
        }

    @pytest.mark.asyncio
    async def test_invalid_and_expired_tokens(self, client):
        bad = await client.get("/api/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
        expired_token = create_access_token(user_id="u", email="u@x.mx", role="seller", expires_minutes=-1)
        expired = await client.get("/api/auth/session", headers={"Authorization": f"Bearer {expired_token}"})

        assert bad.status_code == 401
        assert expired.status_code == 401
        assert expired.json()["detail"] == "Token expired"

    def test_unknown_role_cannot_be_issued(self):
        with pytest.raises(ValueError):
            create_access_token(user_id="u", email="u@x.mx", role="owner")


@pytest_asyncio.fixture
async def limited_client(test_db, storage):
    from main import create_app

    app = create_app(
        cache_store=MemoryCacheStore(),
        rate_limiter=RateLimiter(RATE_LIMITS),
        storage=storage,
        activity_tracker=ActivityTracker(),
        warm_client_factory=None,
    )
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


class TestRateLimitClasses:
    @pytest.mark.asyncio
    async def test_auth_class(self, limited_client, seller_headers):
        limit, _ = RATE_LIMITS["auth"]
        responses = [await limited_client.get("/api/auth/session", headers=seller_headers) for _ in range(limit + 1)]

        assert [r.status_code for r in responses] == [200] * limit + [429]
        assert "error" in responses[-1].json()
        assert responses[-1].headers["X-RateLimit-Limit"] == str(limit)

    @pytest.mark.asyncio
    async def test_api_class_exempts_internal_requests(self, limited_client, seller_headers, system_headers):
        limit, _ = RATE_LIMITS["api"]
        for _ in range(limit + 3):
            response = await limited_client.get("/api/s3/clientes", headers=system_headers)
            assert response.status_code == 200

        statuses = [
            (await limited_client.get("/api/s3/clientes", headers=seller_headers)).status_code for _ in range(limit + 1)
        ]
        assert statuses[-1] == 429
        assert statuses[:limit] == [200] * limit
