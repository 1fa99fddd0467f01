"""API tests for production outputs made from client-provided material."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from app.middleware.exceptions import ValidationError
from app.schemas.consignment import ProductionOutputResolve
from app.services.production_output import resolve_production_output


@pytest_asyncio.fixture
async def receipt_id(client: AsyncClient, auth_headers: dict) -> str:
    resp = await client.post(
        "/api/receipts/",
        json={
            "entry_type": "direct_stock",
            "material_source": "client_provided",
            "fabric_type": "Cotton Jersey",
            "color": "Raw White",
            "gsm": 160,
            "unit": "meters",
            "received_quantity": 1000,
            "consignment": {"client_id": "client-knit", "client_name": "Knit Co"},
            "lots": [{"lot_number": "LOT-001", "quantity": 1000, "unit": "meters"}],
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


async def add_output(client, headers, receipt_id, **overrides) -> dict:
    body = {
        "output_quantity": 800,
        "output_unit": "meters",
        "output_type": "finished_goods",
        "production_order_number": "PRD-001",
        "color": "Navy",
        **overrides,
    }
    resp = await client.post(f"/api/receipts/{receipt_id}/production-outputs", json=body, headers=headers)
    assert resp.status_code == 201
    return resp.json()["consignment"]["production_outputs"][-1]


async def resolve(client, headers, receipt_id, output_id, **body):
    return await client.put(
        f"/api/receipts/{receipt_id}/production-outputs/{output_id}/status",
        json=body,
        headers=headers,
    )


@pytest.mark.api
@pytest.mark.asyncio
class TestProductionOutputs:

    async def test_add_output_with_elongation(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(
            client, auth_headers, receipt_id,
            output_quantity=1050,
            elongation={"input_quantity": 1000, "input_unit": "meters", "reason": "finishing"},
        )
        assert output["status"] == "pending"
        assert output["elongation"]["elongation_quantity"] == pytest.approx(50)
        assert output["elongation"]["elongation_percentage"] == pytest.approx(5.0)
        assert output["elongation"]["reason"] == "finishing"

    async def test_elongation_units_must_match(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await client.post(
            f"/api/receipts/{receipt_id}/production-outputs",
            json={
                "output_quantity": 500,
                "output_unit": "pieces",
                "output_type": "finished_goods",
                "elongation": {"input_quantity": 1000, "input_unit": "meters"},
            },
            headers=auth_headers,
        )
        assert resp.status_code == 422

    async def test_complete_then_return(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(client, auth_headers, receipt_id)

        resp = await resolve(client, auth_headers, receipt_id, output["id"], status="completed")
        assert resp.status_code == 200
        assert resp.json()["consignment"]["production_outputs"][0]["completed_at"] is not None

        again = await resolve(client, auth_headers, receipt_id, output["id"], status="completed")
        assert again.status_code == 422

        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="returned_to_client", client_return_quantity=800,
        )
        assert resp.status_code == 200
        consignment = resp.json()["consignment"]
        assert consignment["production_outputs"][0]["status"] == "returned_to_client"
        assert consignment["total_returned"] == 800
        assert consignment["current_balance"] == 200
        assert consignment["transactions"][-1]["reference"] == "PRD-001"

    async def test_disposition_cannot_exceed_output(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(client, auth_headers, receipt_id)

        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="kept_as_stock", kept_as_stock_quantity=400, client_return_quantity=500,
        )
        assert resp.status_code == 409

        receipt = (await client.get(f"/api/receipts/{receipt_id}", headers=auth_headers)).json()
        assert receipt["consignment"]["current_balance"] == 1000
        assert receipt["consignment"]["production_outputs"][0]["status"] == "pending"

    async def test_kept_as_stock_creates_batch_output_item(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str,
    ):
        output = await add_output(client, auth_headers, receipt_id)

        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="kept_as_stock", kept_as_stock_quantity=300, client_return_quantity=500,
        )
        assert resp.status_code == 200
        consignment = resp.json()["consignment"]
        resolved = consignment["production_outputs"][0]
        assert resolved["status"] == "kept_as_stock"
        assert resolved["inventory_item_id"] is not None
        assert consignment["total_kept_as_stock"] == 300
        assert consignment["total_returned"] == 500
        assert consignment["current_balance"] == 200

        items = await client.get("/api/inventory/items?item_kind=batch_output", headers=auth_headers)
        assert items.json()["total"] == 1
        item = items.json()["items"][0]
        assert item["id"] == resolved["inventory_item_id"]
        assert item["current_stock"] == 300
        assert item["color"] == "Navy"
        assert item["fabric_type"] == "Cotton Jersey"
        assert item["source_info"]["receipt_id"] == receipt_id
        assert item["source_info"]["client_id"] == "client-knit"

    async def test_resolved_output_is_final(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(client, auth_headers, receipt_id)
        await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="returned_to_client", client_return_quantity=100,
        )

        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="kept_as_stock", kept_as_stock_quantity=100,
        )
        assert resp.status_code == 422

    async def test_completed_with_quantities_rejected(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str,
    ):
        output = await add_output(client, auth_headers, receipt_id)
        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="completed", client_return_quantity=100,
        )
        assert resp.status_code == 422

    async def test_disposition_needs_its_quantity(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(client, auth_headers, receipt_id)
        resp = await resolve(client, auth_headers, receipt_id, output["id"], status="kept_as_stock")
        assert resp.status_code == 422

    async def test_returned_output_never_stocked(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        output = await add_output(client, auth_headers, receipt_id)

        resp = await resolve(
            client, auth_headers, receipt_id, output["id"],
            status="returned_to_client", client_return_quantity=100, kept_as_stock_quantity=200,
        )
        assert resp.status_code == 422

        items = await client.get("/api/inventory/items?item_kind=batch_output", headers=auth_headers)
        assert items.json()["total"] == 0
        receipt = (await client.get(f"/api/receipts/{receipt_id}", headers=auth_headers)).json()
        assert receipt["consignment"]["current_balance"] == 1000
        assert receipt["consignment"]["production_outputs"][0]["status"] == "pending"

    @pytest.mark.parametrize("body", [
        {"status": "kept_as_stock", "kept_as_stock_quantity": 0},
        {"status": "returned_to_client", "client_return_quantity": 0},
    ])
    async def test_zero_disposition_rejected(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, body: dict,
    ):
        output = await add_output(client, auth_headers, receipt_id)

        resp = await resolve(client, auth_headers, receipt_id, output["id"], **body)
        assert resp.status_code == 422

        receipt = (await client.get(f"/api/receipts/{receipt_id}", headers=auth_headers)).json()
        assert len(receipt["consignment"]["transactions"]) == 1
        assert receipt["consignment"]["production_outputs"][0]["status"] == "pending"

    async def test_service_refuses_stock_on_return(
        self, client: AsyncClient, auth_headers: dict, receipt_id: str, db_session, actor,
    ):
        output = await add_output(client, auth_headers, receipt_id)
        data = ProductionOutputResolve.model_construct(
            status="returned_to_client",
            client_return_quantity=100,
            kept_as_stock_quantity=200,
            notes=None,
        )

        with pytest.raises(ValidationError):
            await resolve_production_output(db_session, actor, receipt_id, output["id"], data)

    async def test_unknown_output(self, client: AsyncClient, auth_headers: dict, receipt_id: str):
        resp = await resolve(client, auth_headers, receipt_id, "missing-output", status="completed")
        assert resp.status_code == 404
