"""Health endpoint tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "GreyLedger"

    async def test_ready_reports_cache_disabled(self, client: AsyncClient):
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["redis"] == "disabled"
        assert resp.json()["checks"]["database"] == "ok"
