"""Inventory aggregate sync — the single writer of company-wide item stock.

Every lot, consignment or production-output change that affects the
company's fabric stock goes through ``apply_stock_delta``; nothing else
writes ``current_stock``, ``reserved_stock``, ``damaged_stock``,
``average_cost`` or ``total_value``.  The caller's session transaction
spans both the receipt write and the item write, so either both land or
neither does.

Lot contribution to its item (q = lot quantity in the item unit: meters
for length lots, pieces for piece lots):

    status     current  reserved  damaged
    active       +q        0         0
    reserved     +q       +q         0
    damaged       0        0        +q
    consumed      0        0         0

A status change applies contribution(new) - contribution(old).

Valuation (weighted average):
    increase:  average = (old_value + delta * unit_cost) / new_current
    decrease:  total_value -= delta * average, average unchanged
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ConsistencyError
from app.models.inventory_item import InventoryItem, InventoryMovement
from app.services.units import METERS, PIECES, PRECISION

logger = logging.getLogger(__name__)

ITEM_KINDS = ("grey_fabric", "batch_output")
STOCK_UNITS = (METERS, PIECES)


@dataclass(frozen=True)
class StockDelta:
    """Signed change to an item's stock, in the item unit."""
    current: float = 0.0
    reserved: float = 0.0
    damaged: float = 0.0
    # Cost per unit of stock coming in; ignored for decreases
    unit_cost: float = 0.0

    def is_zero(self) -> bool:
        return self.current == 0 and self.reserved == 0 and self.damaged == 0

    def __sub__(self, other: "StockDelta") -> "StockDelta":
        return StockDelta(
            current=round(self.current - other.current, PRECISION),
            reserved=round(self.reserved - other.reserved, PRECISION),
            damaged=round(self.damaged - other.damaged, PRECISION),
            unit_cost=self.unit_cost or other.unit_cost,
        )


def lot_contribution(status: str, quantity: float, unit_cost: float = 0.0) -> StockDelta:
    """What a lot in ``status`` holding ``quantity`` adds to its item."""
    if status == "active":
        return StockDelta(current=quantity, unit_cost=unit_cost)
    if status == "reserved":
        return StockDelta(current=quantity, reserved=quantity, unit_cost=unit_cost)
    if status == "damaged":
        return StockDelta(damaged=quantity, unit_cost=unit_cost)
    if status == "consumed":
        return StockDelta(unit_cost=unit_cost)
    raise ValueError(f"Unknown lot status: {status!r}")


def transition_delta(
    old_status: str, new_status: str, quantity: float, unit_cost: float = 0.0,
) -> StockDelta:
    return lot_contribution(new_status, quantity, unit_cost) - lot_contribution(old_status, quantity, unit_cost)


def build_item_code(kind: str, fabric_type: str, color: str, gsm: float | None, unit: str = METERS) -> str:
    prefix = "FAB" if kind == "grey_fabric" else "OUT"
    gsm_part = f"{gsm:g}" if gsm is not None else "NA"
    code = f"{prefix}-{fabric_type.upper()}-{color.upper()}-{gsm_part}"
    if unit == PIECES:
        code += "-PCS"
    return code.replace(" ", "_")


async def find_item(
    db: AsyncSession,
    company_id: str,
    fabric_type: str,
    color: str,
    gsm: float | None,
    kind: str = "grey_fabric",
    unit: str = METERS,
    for_update: bool = True,
) -> InventoryItem | None:
    """Match an item by descriptor: case-insensitive type/color, exact gsm and unit."""
    stmt = select(InventoryItem).where(
        InventoryItem.company_id == company_id,
        InventoryItem.item_kind == kind,
        InventoryItem.unit == unit,
        func.lower(InventoryItem.fabric_type) == fabric_type.lower(),
        func.lower(InventoryItem.color) == color.lower(),
    )
    if gsm is None:
        stmt = stmt.where(InventoryItem.gsm.is_(None))
    else:
        stmt = stmt.where(InventoryItem.gsm == gsm)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def _insert_item(db: AsyncSession):
    """INSERT for the session's dialect that skips a row colliding with an existing item."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert(InventoryItem)
    return sqlite_insert(InventoryItem)


async def resolve_item(
    db: AsyncSession,
    company_id: str,
    fabric_type: str,
    color: str,
    gsm: float | None,
    kind: str = "grey_fabric",
    unit: str = METERS,
    source_info: dict | None = None,
) -> InventoryItem:
    """Find the item for a descriptor under a row lock, creating it if absent.

    A missing row cannot be locked, so creation relies on the unique
    descriptor index: the insert does nothing when a concurrent request
    created the item first, and the re-select then locks that row.
    """
    if kind not in ITEM_KINDS:
        raise ValueError(f"Unknown item kind: {kind!r}")
    if unit not in STOCK_UNITS:
        raise ValueError(f"Unknown stock unit: {unit!r}")

    item = await find_item(db, company_id, fabric_type, color, gsm, kind, unit)
    if item is None:
        now = datetime.utcnow()
        label = "Grey Fabric" if kind == "grey_fabric" else "Batch Output"
        result = await db.execute(
            _insert_item(db)
            .values(
                id=str(uuid.uuid4()),
                company_id=company_id,
                item_code=build_item_code(kind, fabric_type, color, gsm, unit),
                item_name=f"{fabric_type} {label} - {color}",
                item_kind=kind,
                fabric_type=fabric_type,
                color=color,
                gsm=gsm,
                unit=unit,
                current_stock=0.0,
                reserved_stock=0.0,
                damaged_stock=0.0,
                available_stock=0.0,
                average_cost=0.0,
                total_value=0.0,
                created_at=now,
                updated_at=now,
                version=1,
            )
            .on_conflict_do_nothing()
            .returning(InventoryItem.id)
        )
        created_id = result.scalar_one_or_none()
        item = await find_item(db, company_id, fabric_type, color, gsm, kind, unit)
        if item is None:
            raise ConsistencyError(
                f"Inventory item for {fabric_type} {color} could not be created",
                details={"company_id": company_id, "item_kind": kind, "unit": unit},
            )
        if created_id:
            logger.info(
                "Inventory item created",
                extra={"item_id": item.id, "item_code": item.item_code, "company_id": company_id},
            )

    if source_info:
        item.source_info = {**(item.source_info or {}), **source_info}
    return item


async def apply_stock_delta(
    db: AsyncSession,
    item: InventoryItem,
    delta: StockDelta,
    *,
    movement_type: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    reference_code: str | None = None,
    user_id: str | None = None,
    notes: str | None = None,
) -> InventoryMovement | None:
    """Apply ``delta`` to ``item`` and append a movement.

    Returns None for a zero delta (nothing is written).

    Raises:
        ConsistencyError if any stock figure would go negative or reserved
        stock would exceed current stock.
    """
    if delta.is_zero():
        return None

    new_current = round(item.current_stock + delta.current, PRECISION)
    new_reserved = round(item.reserved_stock + delta.reserved, PRECISION)
    new_damaged = round(item.damaged_stock + delta.damaged, PRECISION)

    if new_current < 0 or new_reserved < 0 or new_damaged < 0:
        raise ConsistencyError(
            f"Stock change would make {item.item_code} negative",
            details={
                "item_id": item.id,
                "current_stock": item.current_stock,
                "reserved_stock": item.reserved_stock,
                "damaged_stock": item.damaged_stock,
                "delta": {
                    "current": delta.current,
                    "reserved": delta.reserved,
                    "damaged": delta.damaged,
                },
            },
        )
    if new_reserved > new_current:
        raise ConsistencyError(
            f"Reserved stock would exceed current stock on {item.item_code}",
            details={"item_id": item.id, "current_stock": new_current, "reserved_stock": new_reserved},
        )

    # ── Valuation ────────────────────────────────────────────
    old_value = item.total_value or 0.0
    if delta.current > 0:
        value_delta = round(delta.current * delta.unit_cost, PRECISION)
        item.average_cost = round((old_value + value_delta) / new_current, PRECISION)
        new_value = round(old_value + value_delta, PRECISION)
    elif delta.current < 0:
        value_delta = round(delta.current * (item.average_cost or 0.0), PRECISION)
        new_value = round(old_value + value_delta, PRECISION)
    else:
        value_delta = 0.0
        new_value = old_value

    if new_current == 0:
        value_delta = round(value_delta - new_value, PRECISION)
        new_value = 0.0
    elif new_value < 0:
        value_delta = round(value_delta - new_value, PRECISION)
        new_value = 0.0

    item.current_stock = new_current
    item.reserved_stock = new_reserved
    item.damaged_stock = new_damaged
    item.available_stock = round(new_current - new_reserved, PRECISION)
    item.total_value = new_value
    item.last_movement_at = datetime.utcnow()

    movement = InventoryMovement(
        item_id=item.id,
        movement_type=movement_type,
        current_delta=delta.current,
        reserved_delta=delta.reserved,
        damaged_delta=delta.damaged,
        value_delta=value_delta,
        current_after=new_current,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_code=reference_code,
        notes=notes,
        recorded_by=user_id,
    )
    db.add(movement)

    logger.info(
        f"Inventory {item.item_code}: {movement_type} current {delta.current:+g} {item.unit} "
        f"→ {new_current:g} {item.unit}",
        extra={
            "item_id": item.id,
            "reference_type": reference_type,
            "reference_id": reference_id,
        },
    )
    return movement
