"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_basic_health_check(self, client: AsyncClient):
        """Test basic health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_liveness_check(self, client: AsyncClient):
        """Test liveness endpoint."""
        response = await client.get("/health/live")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness_check(self, client: AsyncClient):
        """Test readiness endpoint."""
        response = await client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert "status" in data
        assert "database" in data
        assert "redis" in data

    @pytest.mark.asyncio
    async def test_readiness_without_system_groups(self, client: AsyncClient):
        """An unseeded database is reported as degraded."""
        response = await client.get("/health/ready")

        data = response.json()
        assert data["database"] == "healthy"
        assert data["redis"] == "healthy"
        assert data["system_groups"].startswith("missing")
        assert data["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_readiness_seeded(self, client: AsyncClient, system_groups):
        response = await client.get("/health/ready")

        data = response.json()
        assert data["system_groups"] == "healthy"
        assert data["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_readiness_redis_down(self, client: AsyncClient, system_groups, mock_redis):
        """Sessions cannot be checked without Redis."""
        mock_redis.ping.side_effect = RedisConnectionError("refused")

        response = await client.get("/health/ready")

        data = response.json()
        assert data["redis"].startswith("unhealthy")
        assert data["status"] == "unhealthy"
