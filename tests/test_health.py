"""Tests for health check endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "status": "up"}
    assert "x-request-id" in response.headers


@pytest.mark.asyncio
async def test_detailed_health_check_reports_dependencies(client: AsyncClient) -> None:
    with (
        patch(
            "app.api.v1.endpoints.health.check_database_connection",
            AsyncMock(return_value=True),
        ),
        patch(
            "app.api.v1.endpoints.health.check_redis_connection",
            AsyncMock(return_value=False),
        ),
    ):
        response = await client.get("/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["status"] == "degraded"
    assert data["database"] == "healthy"
    assert data["redis"] == "unhealthy"
    assert data["queue"] is None
