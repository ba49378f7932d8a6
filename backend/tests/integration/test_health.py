"""Tests for the health check endpoint."""

import pytest
from httpx import ASGITransport, AsyncClient

from docchat.main import app


@pytest.mark.asyncio
async def test_health_check_returns_200():
    """Health endpoint should return 200 with status, version, environment, and circuit state."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data
    assert data["circuit"] == {"open": False, "failure_count": 0}
    assert data["requests_in_window"] == 0
