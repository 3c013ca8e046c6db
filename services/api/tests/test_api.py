"""
API envelope and infrastructure tests.

Tests:
- Envelope shape (success/error)
- requestId on every response
- Rate limiting per tier
- Health check endpoint
"""

import pytest
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from services.api.middleware.rate_limit import _get_client_key, _get_rate_limit


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class TestHealthEndpoint:
    """GET /health returns envelope with status and version."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_envelope_shape(self, client):
        response = await client.get("/health")
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert "version" in body["data"]
        assert body["data"]["redis"] is False

    @pytest.mark.asyncio
    async def test_health_has_request_id(self, client):
        response = await client.get("/health")
        assert "x-request-id" in response.headers


# ---------------------------------------------------------------------------
# Envelope shape
# ---------------------------------------------------------------------------

class TestAPIEnvelope:
    """All responses follow {success, data|error, requestId} shape."""

    @pytest.mark.asyncio
    async def test_404_error_envelope(self, client):
        response = await client.get("/nonexistent-route")
        body = response.json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"
        assert "message" in body["error"]
        assert "requestId" in body

    @pytest.mark.asyncio
    async def test_domain_error_envelope(self, client):
        response = await client.get("/trips/missing", headers={"X-User-Id": "u-bob"})
        body = response.json()
        assert response.status_code == 404
        assert body["error"] == {"code": "TRIP_NOT_FOUND", "message": "Trip not found"}

    @pytest.mark.asyncio
    async def test_validation_error_envelope(self, client):
        response = await client.post(
            "/trips", json={"circleId": "circle-1"}, headers={"X-User-Id": "u-bob"}
        )
        body = response.json()
        assert response.status_code == 422
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["message"].startswith("name:")

    @pytest.mark.asyncio
    async def test_custom_request_id_header(self, client):
        custom_id = "test-req-12345"
        response = await client.get("/health", headers={"x-request-id": custom_id})
        assert response.headers["x-request-id"] == custom_id

    @pytest.mark.asyncio
    async def test_request_id_on_error(self, client):
        response = await client.get("/does-not-exist")
        assert "x-request-id" in response.headers
        assert response.json()["requestId"] == response.headers["x-request-id"]


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

class TestRateLimitTiers:
    """Tier selection by method, path and auth state."""

    def test_trip_mutation_tier(self):
        assert _get_rate_limit("POST", "/trips/t-1/date-windows", True) == (30, "mutation")
        assert _get_rate_limit("DELETE", "/trips/t-1/date-windows/w/support", False) == (30, "mutation")

    def test_authenticated_read(self):
        assert _get_rate_limit("GET", "/trips/t-1", True) == (120, "auth")

    def test_anonymous(self):
        assert _get_rate_limit("GET", "/trips/t-1", False) == (10, "anon")

    def test_client_key_prefers_user(self):
        class _Req:
            headers = {"x-user-id": "u-bob"}
            client = None

        assert _get_client_key(_Req()) == ("user:u-bob", True)

    def test_client_key_uses_forwarded_ip(self):
        class _Client:
            host = "10.0.0.1"

        class _Req:
            headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1"}
            client = _Client()

        assert _get_client_key(_Req()) == ("ip:203.0.113.9", False)


class TestRateLimiting:
    """Rate limiter returns 429 when limit exceeded."""

    @pytest.fixture
    def limited_redis(self, app, mock_redis):
        app.state.redis = mock_redis
        return mock_redis

    @pytest.mark.asyncio
    async def test_rate_limit_headers_present(self, client, limited_redis):
        response = await client.get("/trips/trip-1", headers={"X-User-Id": "u-bob"})
        assert response.status_code == 200
        assert response.headers["x-ratelimit-limit"] == "120"
        assert response.headers["x-ratelimit-remaining"] == "119"

    @pytest.mark.asyncio
    async def test_mutation_limit_exceeded(self, client, limited_redis):
        limited_redis.pipeline.return_value.execute = AsyncMock(return_value=[None, 30, None, None])
        response = await client.post("/trips/trip-1/join", headers={"X-User-Id": "u-bob"})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        body = response.json()
        assert body["error"]["code"] == "RATE_LIMITED"
        assert "mutation" in body["error"]["message"]

    @pytest.mark.asyncio
    async def test_health_bypasses_limiter(self, client, limited_redis):
        limited_redis.pipeline.return_value.execute = AsyncMock(return_value=[None, 999, None, None])
        response = await client.get("/health")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_redis_error_passes_through(self, client, limited_redis):
        limited_redis.pipeline.return_value.execute = AsyncMock(side_effect=RedisConnectionError("down"))
        response = await client.get("/trips/trip-1", headers={"X-User-Id": "u-bob"})
        assert response.status_code == 200
        assert "x-ratelimit-limit" not in response.headers

    @pytest.mark.asyncio
    async def test_rate_limit_degrades_gracefully_without_redis(self, client, app):
        """Without Redis, rate limiting is bypassed (requests pass through)."""
        app.state.redis = None
        response = await client.get("/trips/trip-1", headers={"X-User-Id": "u-bob"})
        assert response.status_code == 200
        assert "x-ratelimit-limit" not in response.headers
