"""API tests for lots: adding, status transitions and inventory sync."""

import pytest
import pytest_asyncio
from httpx import AsyncClient


@pytest_asyncio.fixture
async def receipt_id(client: AsyncClient, auth_headers: dict) -> str:
    resp = await client.post(
        "/api/receipts/",
        json={
            "entry_type": "direct_stock",
            "fabric_type": "Cotton Twill",
            "color": "Grey",
            "gsm": 220,
            "unit": "meters",
            "received_quantity": 500,
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


async def add_lot(client, headers, receipt_id, lot_number="LOT-001", quantity=500, unit="meters", **extra):
    return await client.post(
        f"/api/receipts/{receipt_id}/lots",
        json={"lot_number": lot_number, "quantity": quantity, "unit": unit, **extra},
        headers=headers,
    )


async def set_status(client, headers, receipt_id, status, lot_number="LOT-001"):
    return await client.put(
        f"/api/receipts/{receipt_id}/lots/{lot_number}/status",
        json={"status": status},
        headers=headers,
    )


async def grey_item(client, headers) -> dict:
    resp = await client.get("/api/inventory/items?item_kind=grey_fabric", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["total"] == 1
    return resp.json()["items"][0]


@pytest.mark.api
@pytest.mark.asyncio
class TestAddLot:

    async def test_add_lot_updates_balance_and_item(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await add_lot(client, auth_headers, receipt_id, cost_per_unit=50, rack_location="R-12")
        assert resp.status_code == 201
        data = resp.json()
        assert data["balance"]["total"]["meters"] == 500
        assert data["balance"]["available"]["meters"] == 500
        assert data["stock_status"] == "active"
        assert data["lots"][0]["rack_location"] == "R-12"
        assert data["warnings"] == []

        item = await grey_item(client, auth_headers)
        assert item["current_stock"] == 500
        assert item["available_stock"] == 500
        assert item["average_cost"] == 50
        assert item["total_value"] == 25000
        assert item["item_code"] == "FAB-COTTON_TWILL-GREY-220"

    async def test_duplicate_lot_number_leaves_balance_unchanged(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str,
    ):
        await add_lot(client, auth_headers, receipt_id)

        resp = await add_lot(client, auth_headers, receipt_id, quantity=200)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

        receipt = (await client.get(f"/api/receipts/{receipt_id}", headers=auth_headers)).json()
        assert receipt["balance"]["total"]["meters"] == 500
        assert len(receipt["lots"]) == 1
        assert (await grey_item(client, auth_headers))["current_stock"] == 500

    async def test_lot_numbers_are_case_sensitive(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id, lot_number="lot-a")
        resp = await add_lot(client, auth_headers, receipt_id, lot_number="LOT-A", quantity=100)
        assert resp.status_code == 201
        assert len(resp.json()["lots"]) == 2

    async def test_zero_quantity_rejected(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await add_lot(client, auth_headers, receipt_id, quantity=0)
        assert resp.status_code == 422

    async def test_yards_lot_counts_in_meters_on_item(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await add_lot(client, auth_headers, receipt_id, quantity=100, unit="yards")
        assert resp.status_code == 201
        assert resp.json()["balance"]["total"]["yards"] == 100
        assert resp.json()["balance"]["total"]["meters"] == 0

        item = await grey_item(client, auth_headers)
        assert item["current_stock"] == pytest.approx(91.44)

    async def test_pieces_lot_stocked_apart_from_length(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str,
    ):
        await add_lot(client, auth_headers, receipt_id)
        resp = await add_lot(client, auth_headers, receipt_id, lot_number="LOT-PCS", quantity=40, unit="pieces")
        assert resp.status_code == 201
        assert resp.json()["warnings"] == []

        meters = await client.get("/api/inventory/items?unit=meters", headers=auth_headers)
        assert meters.json()["total"] == 1
        assert meters.json()["items"][0]["current_stock"] == 500

        pieces = await client.get("/api/inventory/items?unit=pieces", headers=auth_headers)
        assert pieces.json()["total"] == 1
        assert pieces.json()["items"][0]["current_stock"] == 40
        assert pieces.json()["items"][0]["item_code"] == "FAB-COTTON_TWILL-GREY-220-PCS"

        resp = await set_status(client, auth_headers, receipt_id, "damaged", lot_number="LOT-PCS")
        assert resp.status_code == 200
        pieces = await client.get("/api/inventory/items?unit=pieces", headers=auth_headers)
        assert pieces.json()["items"][0]["damaged_stock"] == 40

        run = await client.post("/api/reconciliation/run", headers=auth_headers)
        assert run.json()["items_checked"] == 2
        assert run.json()["total_alerts"] == 0

    async def test_small_lot_is_low_stock(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await add_lot(client, auth_headers, receipt_id, quantity=40)
        assert resp.json()["stock_status"] == "low_stock"

    async def test_list_lots_with_status_filter(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id)
        await add_lot(client, auth_headers, receipt_id, lot_number="LOT-002", quantity=100, status="reserved")

        all_lots = await client.get(f"/api/receipts/{receipt_id}/lots", headers=auth_headers)
        assert [lot["lot_number"] for lot in all_lots.json()] == ["LOT-001", "LOT-002"]

        reserved = await client.get(f"/api/receipts/{receipt_id}/lots?status=reserved", headers=auth_headers)
        assert [lot["lot_number"] for lot in reserved.json()] == ["LOT-002"]


@pytest.mark.api
@pytest.mark.asyncio
class TestLotStatus:

    async def test_damaged_lot_leaves_current_stock(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id)

        resp = await set_status(client, auth_headers, receipt_id, "damaged")
        assert resp.status_code == 200
        data = resp.json()
        assert data["balance"]["total"]["meters"] == 500
        assert data["balance"]["damaged"]["meters"] == 500
        assert data["balance"]["available"]["meters"] == 0
        assert data["stock_status"] == "consumed"
        assert data["lots"][0]["status_changed_at"] is not None

        item = await grey_item(client, auth_headers)
        assert item["current_stock"] == 0
        assert item["damaged_stock"] == 500

        movements = await client.get(f"/api/inventory/items/{item['id']}/movements", headers=auth_headers)
        latest = movements.json()[0]
        assert latest["movement_type"] == "lot_status_changed"
        assert latest["current_delta"] == -500
        assert latest["damaged_delta"] == 500

    async def test_reserve_then_consume(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id)

        await set_status(client, auth_headers, receipt_id, "reserved")
        item = await grey_item(client, auth_headers)
        assert item["current_stock"] == 500
        assert item["reserved_stock"] == 500
        assert item["available_stock"] == 0

        resp = await set_status(client, auth_headers, receipt_id, "consumed")
        data = resp.json()
        assert data["balance"]["total"]["meters"] == 0
        assert data["balance"]["consumed"]["meters"] == 500
        assert data["stock_status"] == "out_of_stock"

        item = await grey_item(client, auth_headers)
        assert item["current_stock"] == 0
        assert item["reserved_stock"] == 0

    async def test_same_status_is_noop(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        first = await add_lot(client, auth_headers, receipt_id)
        version = first.json()["version"]

        resp = await set_status(client, auth_headers, receipt_id, "active")
        assert resp.status_code == 200
        assert resp.json()["version"] == version

        history = await client.get(f"/api/receipts/{receipt_id}/history", headers=auth_headers)
        assert "lot_status_changed" not in [e["event_type"] for e in history.json()]

    async def test_unknown_lot(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await set_status(client, auth_headers, receipt_id, "damaged", lot_number="LOT-404")
        assert resp.status_code == 404

    async def test_unknown_status(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id)
        resp = await set_status(client, auth_headers, receipt_id, "lost")
        assert resp.status_code == 422

    async def test_history_records_transition(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        await add_lot(client, auth_headers, receipt_id)
        await set_status(client, auth_headers, receipt_id, "reserved")

        history = await client.get(f"/api/receipts/{receipt_id}/history", headers=auth_headers)
        events = [e for e in history.json() if e["event_type"] == "lot_status_changed"]
        assert len(events) == 1
        assert events[0]["event_data"] == {"lot_number": "LOT-001", "from": "active", "to": "reserved"}
