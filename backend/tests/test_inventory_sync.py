"""Tests for the inventory aggregate: contributions, valuation, guards."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.middleware.exceptions import ConsistencyError
from app.models.inventory_item import InventoryItem, InventoryMovement
from app.services import inventory_sync
from app.services.inventory_sync import (
    StockDelta,
    apply_stock_delta,
    lot_contribution,
    resolve_item,
    transition_delta,
)

COMPANY_ID = "company-0001"


@pytest.mark.unit
class TestContributions:

    @pytest.mark.parametrize("status, expected", [
        ("active", (500, 0, 0)),
        ("reserved", (500, 500, 0)),
        ("damaged", (0, 0, 500)),
        ("consumed", (0, 0, 0)),
    ])
    def test_lot_contribution(self, status, expected):
        c = lot_contribution(status, 500)
        assert (c.current, c.reserved, c.damaged) == expected

    def test_active_to_damaged(self):
        d = transition_delta("active", "damaged", 500)
        assert (d.current, d.reserved, d.damaged) == (-500, 0, 500)

    def test_reserved_to_consumed(self):
        d = transition_delta("reserved", "consumed", 200)
        assert (d.current, d.reserved, d.damaged) == (-200, -200, 0)

    def test_same_status_is_zero(self):
        assert transition_delta("active", "active", 300).is_zero()

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            lot_contribution("lost", 10)


@pytest.mark.unit
@pytest.mark.asyncio
class TestApplyStockDelta:

    async def test_resolve_item_matches_case_insensitively(self, db_session):
        first = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        second = await resolve_item(db_session, COMPANY_ID, "cotton", "WHITE", 180)
        other_gsm = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 200)

        assert first.id == second.id
        assert other_gsm.id != first.id
        assert first.item_code == "FAB-COTTON-WHITE-180"
        assert first.item_kind == "grey_fabric"

    async def test_weighted_average_cost(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)

        await apply_stock_delta(db_session, item, StockDelta(current=100, unit_cost=10), movement_type="lot_added")
        assert item.current_stock == 100
        assert item.average_cost == 10
        assert item.total_value == 1000

        await apply_stock_delta(db_session, item, StockDelta(current=100, unit_cost=20), movement_type="lot_added")
        assert item.current_stock == 200
        assert item.average_cost == 15
        assert item.total_value == 3000

        await apply_stock_delta(db_session, item, StockDelta(current=-50), movement_type="lot_status_changed")
        assert item.current_stock == 150
        assert item.average_cost == 15
        assert item.total_value == 2250

    async def test_value_zeroed_when_stock_runs_out(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        await apply_stock_delta(db_session, item, StockDelta(current=100, unit_cost=12.5), movement_type="lot_added")
        await apply_stock_delta(db_session, item, StockDelta(current=-100), movement_type="lot_status_changed")
        assert item.current_stock == 0
        assert item.total_value == 0

    async def test_reservation_keeps_current_and_lowers_available(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        await apply_stock_delta(db_session, item, lot_contribution("active", 500), movement_type="lot_added")
        await apply_stock_delta(
            db_session, item, transition_delta("active", "reserved", 200), movement_type="lot_status_changed",
        )

        assert item.current_stock == 500
        assert item.reserved_stock == 200
        assert item.available_stock == 300

    async def test_negative_stock_rejected(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        await apply_stock_delta(db_session, item, StockDelta(current=100), movement_type="lot_added")

        with pytest.raises(ConsistencyError):
            await apply_stock_delta(db_session, item, StockDelta(current=-150), movement_type="lot_status_changed")
        assert item.current_stock == 100

    async def test_reserved_cannot_exceed_current(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        await apply_stock_delta(db_session, item, StockDelta(current=100), movement_type="lot_added")

        with pytest.raises(ConsistencyError):
            await apply_stock_delta(db_session, item, StockDelta(reserved=150), movement_type="lot_status_changed")
        assert item.reserved_stock == 0

    async def test_movements_are_recorded(self, db_session):
        item = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        assert await apply_stock_delta(db_session, item, StockDelta(), movement_type="noop") is None

        await apply_stock_delta(
            db_session, item, StockDelta(current=250, unit_cost=4),
            movement_type="lot_added", reference_type="receipt", reference_code="GRN-1/LOT-1",
        )
        await db_session.flush()

        result = await db_session.execute(
            select(InventoryMovement).where(InventoryMovement.item_id == item.id)
        )
        movements = result.scalars().all()
        assert len(movements) == 1
        assert movements[0].current_delta == 250
        assert movements[0].current_after == 250
        assert movements[0].value_delta == 1000
        assert movements[0].reference_code == "GRN-1/LOT-1"


@pytest.mark.unit
@pytest.mark.asyncio
class TestItemIdentity:

    @pytest.mark.parametrize("gsm", [180, None])
    async def test_descriptor_is_unique(self, db_session, gsm):
        db_session.add(InventoryItem(
            company_id=COMPANY_ID, item_code="A", item_name="A",
            fabric_type="Cotton", color="White", gsm=gsm,
        ))
        db_session.add(InventoryItem(
            company_id=COMPANY_ID, item_code="B", item_name="B",
            fabric_type="COTTON", color="white", gsm=gsm,
        ))
        with pytest.raises(IntegrityError):
            await db_session.flush()

    async def test_item_created_by_another_request_is_reused(self, db_session, monkeypatch):
        existing = await resolve_item(db_session, COMPANY_ID, "Cotton", "White", 180)
        real_find = inventory_sync.find_item
        lookups = []

        async def find_after_other_insert(*args, **kwargs):
            # First lookup runs before the other request's insert lands
            lookups.append(args)
            if len(lookups) == 1:
                return None
            return await real_find(*args, **kwargs)

        monkeypatch.setattr(inventory_sync, "find_item", find_after_other_insert)
        item = await resolve_item(db_session, COMPANY_ID, "COTTON", "white", 180)

        assert item.id == existing.id
        assert len(lookups) == 2
        assert await db_session.scalar(select(func.count(InventoryItem.id))) == 1

    async def test_pieces_get_their_own_item(self, db_session):
        meters = await resolve_item(db_session, COMPANY_ID, "Poplin", "White", 120)
        pieces = await resolve_item(db_session, COMPANY_ID, "Poplin", "White", 120, unit="pieces")

        assert pieces.id != meters.id
        assert pieces.unit == "pieces"
        assert pieces.item_code == "FAB-POPLIN-WHITE-120-PCS"
        assert meters.item_code == "FAB-POPLIN-WHITE-120"

    async def test_unknown_stock_unit(self, db_session):
        with pytest.raises(ValueError):
            await resolve_item(db_session, COMPANY_ID, "Poplin", "White", 120, unit="yards")
