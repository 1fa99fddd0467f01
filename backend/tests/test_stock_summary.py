"""API tests for the stock summary and inventory views."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from conftest import OTHER_COMPANY_ID, make_headers


@pytest_asyncio.fixture
async def seeded(client: AsyncClient, auth_headers: dict) -> dict:
    """Three receipts: two cotton (one client-provided), one polyester."""
    ids = {}
    for key, body in {
        "cotton": {
            "fabric_type": "Cotton",
            "color": "White",
            "gsm": 180,
            "lots": [
                {"lot_number": "C-1", "quantity": 600, "unit": "meters"},
                {"lot_number": "C-2", "quantity": 200, "unit": "meters", "status": "reserved"},
            ],
        },
        "cotton_client": {
            "fabric_type": "Cotton",
            "color": "White",
            "gsm": 180,
            "material_source": "client_provided",
            "consignment": {"client_id": "client-9"},
            "lots": [{"lot_number": "CC-1", "quantity": 300, "unit": "meters"}],
        },
        "poly": {
            "fabric_type": "Polyester",
            "color": "Black",
            "unit": "yards",
            "lots": [{"lot_number": "P-1", "quantity": 50, "unit": "yards", "status": "damaged"}],
        },
    }.items():
        payload = {"entry_type": "direct_stock", "unit": "meters", **body}
        resp = await client.post("/api/receipts/", json=payload, headers=auth_headers)
        assert resp.status_code == 201
        ids[key] = resp.json()["id"]
    return ids


@pytest.mark.api
@pytest.mark.asyncio
class TestStockSummary:

    async def test_totals_per_unit(self, client: AsyncClient, auth_headers: dict, seeded: dict):
        resp = await client.get("/api/receipts/stock/summary", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        totals = data["totals"]
        assert totals["receipt_count"] == 3
        assert totals["total"] == {"meters": 1100, "yards": 50, "pieces": 0}
        assert totals["available"]["meters"] == 900
        assert totals["reserved"]["meters"] == 200
        assert totals["damaged"]["yards"] == 50
        assert totals["by_status"] == {"active": 2, "consumed": 1}

    async def test_filters(self, client: AsyncClient, auth_headers: dict, seeded: dict):
        cotton = await client.get("/api/receipts/stock/summary?fabric_type=cotton", headers=auth_headers)
        assert cotton.json()["totals"]["receipt_count"] == 2

        by_client = await client.get("/api/receipts/stock/summary?client_id=client-9", headers=auth_headers)
        entries = by_client.json()["entries"]
        assert [e["receipt_id"] for e in entries] == [seeded["cotton_client"]]

        consumed = await client.get("/api/receipts/stock/summary?stock_status=consumed", headers=auth_headers)
        assert [e["receipt_id"] for e in consumed.json()["entries"]] == [seeded["poly"]]

    async def test_other_company_sees_nothing(self, client: AsyncClient, seeded: dict):
        resp = await client.get(
            "/api/receipts/stock/summary", headers=make_headers(company_id=OTHER_COMPANY_ID),
        )
        assert resp.json()["totals"]["receipt_count"] == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestInventoryItems:

    async def test_items_aggregate_across_receipts(self, client: AsyncClient, auth_headers: dict, seeded: dict):
        resp = await client.get("/api/inventory/items?fabric_type=cotton", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        item = resp.json()["items"][0]
        assert item["current_stock"] == 1100
        assert item["reserved_stock"] == 200
        assert item["available_stock"] == 900

        poly = await client.get("/api/inventory/items?fabric_type=polyester", headers=auth_headers)
        poly_item = poly.json()["items"][0]
        assert poly_item["current_stock"] == 0
        assert poly_item["damaged_stock"] == pytest.approx(45.72)

    async def test_movements_and_missing_item(self, client: AsyncClient, auth_headers: dict, seeded: dict):
        resp = await client.get("/api/inventory/items?fabric_type=cotton", headers=auth_headers)
        item_id = resp.json()["items"][0]["id"]

        movements = await client.get(f"/api/inventory/items/{item_id}/movements", headers=auth_headers)
        assert movements.status_code == 200
        assert len(movements.json()) == 3
        assert {m["movement_type"] for m in movements.json()} == {"lot_added"}

        missing = await client.get("/api/inventory/items/nope", headers=auth_headers)
        assert missing.status_code == 404
