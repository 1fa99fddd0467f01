"""Reconciliation: inventory items recomputed from lots."""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from app.models.inventory_item import InventoryItem
from conftest import make_headers


@pytest_asyncio.fixture
async def receipt_id(client: AsyncClient, auth_headers: dict) -> str:
    resp = await client.post(
        "/api/receipts/",
        json={
            "entry_type": "direct_stock",
            "fabric_type": "Linen",
            "color": "Flax",
            "gsm": 190,
            "unit": "meters",
            "lots": [
                {"lot_number": "L-1", "quantity": 700, "unit": "meters"},
                {"lot_number": "L-2", "quantity": 300, "unit": "meters", "status": "reserved"},
            ],
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


async def corrupt_item(session_factory, current_stock: float) -> None:
    """Write a stock figure behind the ledger's back."""
    async with session_factory() as session:
        result = await session.execute(select(InventoryItem).where(InventoryItem.fabric_type == "Linen"))
        item = result.scalar_one()
        item.current_stock = current_stock
        await session.commit()


@pytest.mark.api
@pytest.mark.asyncio
class TestReconciliation:

    async def test_run_requires_permission(self, client: AsyncClient):
        resp = await client.post("/api/reconciliation/run")
        assert resp.status_code == 401

        resp = await client.post("/api/reconciliation/run", headers=make_headers(permissions=["stock.read"]))
        assert resp.status_code == 403

    async def test_clean_ledger_has_no_alerts(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await client.post("/api/reconciliation/run", headers=auth_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["items_checked"] == 1
        assert data["total_alerts"] == 0

    async def test_drift_is_flagged(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, session_factory,
    ):
        await corrupt_item(session_factory, 800)

        resp = await client.post("/api/reconciliation/run", headers=auth_headers)
        data = resp.json()
        assert data["total_alerts"] == 1
        assert data["by_type"] == {"current_stock": 1}
        assert data["by_severity"] == {"critical": 1}

        alerts = await client.get("/api/reconciliation/alerts?status=open", headers=auth_headers)
        assert alerts.status_code == 200
        alert = alerts.json()[0]
        assert alert["expected_value"] == 1000
        assert alert["actual_value"] == 800
        assert alert["variance"] == -200
        assert alert["entity_refs"]["receipt_ids"] == [receipt_id]

    async def test_drift_warning_on_next_write(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, session_factory,
    ):
        await corrupt_item(session_factory, 900)

        resp = await client.post(
            f"/api/receipts/{receipt_id}/lots",
            json={"lot_number": "L-3", "quantity": 100, "unit": "meters"},
            headers=auth_headers,
        )
        assert resp.status_code == 201
        warnings = resp.json()["warnings"]
        assert len(warnings) == 1
        assert "current stock" in warnings[0]

    async def test_fixed_drift_auto_resolves(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, session_factory,
    ):
        await corrupt_item(session_factory, 800)
        await client.post("/api/reconciliation/run", headers=auth_headers)

        await corrupt_item(session_factory, 1000)
        resp = await client.post("/api/reconciliation/run", headers=auth_headers)
        assert resp.json()["total_alerts"] == 0

        open_alerts = await client.get("/api/reconciliation/alerts?status=open", headers=auth_headers)
        assert open_alerts.json() == []
        resolved = await client.get("/api/reconciliation/alerts?status=resolved", headers=auth_headers)
        assert len(resolved.json()) == 1

    async def test_acknowledge_and_dismiss(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, session_factory,
    ):
        await corrupt_item(session_factory, 800)
        await client.post("/api/reconciliation/run", headers=auth_headers)
        alert_id = (await client.get("/api/reconciliation/alerts", headers=auth_headers)).json()[0]["id"]

        resp = await client.patch(
            f"/api/reconciliation/alerts/{alert_id}",
            json={"status": "dismissed", "resolution_note": "Known recount"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "dismissed"
        assert resp.json()["resolved_by"] is not None

        detail = await client.get(f"/api/reconciliation/alerts/{alert_id}", headers=auth_headers)
        assert detail.json()["resolution_note"] == "Known recount"

    async def test_alert_not_found(self, client: AsyncClient, auth_headers: dict):
        resp = await client.get("/api/reconciliation/alerts/unknown", headers=auth_headers)
        assert resp.status_code == 404
