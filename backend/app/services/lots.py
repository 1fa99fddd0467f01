"""Lot store — lots of a receipt and their status transitions.

Each mutation runs under the receipt row lock and, in one transaction:
  - changes the lot list
  - recomputes the receipt balance and stock status
  - pushes the lot's stock contribution to the grey fabric inventory item
  - for client-provided receipts, books the received quantity on the
    consignment ledger
  - writes receipt history and the activity log

Validation happens before anything is written, so a rejected lot leaves
the receipt balance untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.middleware.exceptions import NotFoundError, ValidationError
from app.models.lot import FabricLot
from app.models.receipt import Receipt
from app.schemas.receipt import LotCreate
from app.services import consignment as consignment_ledger
from app.services.balance import (
    LOT_STATUSES,
    StockThresholds,
    get_thresholds,
    refresh_receipt_balance,
)
from app.services.history import record_receipt_event
from app.services.inventory_sync import (
    apply_stock_delta,
    lot_contribution,
    resolve_item,
    transition_delta,
)
from app.services.units import PRECISION, UNITS, Quantity, is_convertible
from app.utils.activity import log_activity
from app.utils.locks import flush_or_conflict, lock_receipt

logger = logging.getLogger(__name__)


def find_lot(receipt: Receipt, lot_number: str) -> FabricLot | None:
    """Exact, case-sensitive lot number match."""
    for lot in receipt.lots:
        if lot.lot_number == lot_number:
            return lot
    return None


def stock_quantity(lot: FabricLot) -> Quantity:
    return Quantity(lot.quantity, lot.unit).to_stock()


def stock_unit_cost(lot: FabricLot) -> float:
    """Lot cost per meter, or per piece for piece lots."""
    stocked = stock_quantity(lot).value
    if stocked <= 0:
        return 0.0
    return round((lot.total_cost or 0.0) / stocked, PRECISION)


def _validate_lot(receipt: Receipt, data: LotCreate) -> str:
    lot_number = (data.lot_number or "").strip()
    if not lot_number:
        raise ValidationError("Lot number is required")
    if data.quantity is None or data.quantity <= 0:
        raise ValidationError("Lot quantity must be greater than 0")
    if data.unit not in UNITS:
        raise ValidationError(f"Unknown unit: {data.unit}", details={"allowed": list(UNITS)})
    if data.status not in LOT_STATUSES:
        raise ValidationError(
            f"Unknown lot status: {data.status}", details={"allowed": list(LOT_STATUSES)},
        )
    if find_lot(receipt, lot_number) is not None:
        raise ValidationError(
            f"Lot number {lot_number} already exists on receipt {receipt.grn_number}",
            details={"lot_number": lot_number},
        )
    if receipt.consignment is not None and not is_convertible(data.unit, receipt.consignment.unit):
        raise ValidationError(
            f"Lot unit {data.unit} cannot be booked against a consignment kept in "
            f"{receipt.consignment.unit}",
        )
    return lot_number


async def append_lot(
    db: AsyncSession,
    actor: Actor,
    receipt: Receipt,
    data: LotCreate,
    thresholds: StockThresholds,
) -> FabricLot:
    """Add a lot to an already locked (or freshly created) receipt."""
    lot_number = _validate_lot(receipt, data)

    total_cost = (
        data.total_cost
        if data.total_cost is not None
        else round(data.quantity * data.cost_per_unit, PRECISION)
    )
    lot = FabricLot(
        receipt_id=receipt.id,
        lot_number=lot_number,
        quantity=data.quantity,
        unit=data.unit,
        status=data.status,
        quality_grade=data.quality_grade,
        cost_per_unit=data.cost_per_unit,
        total_cost=total_cost,
        warehouse_id=data.warehouse_id or receipt.warehouse_id,
        warehouse_name=data.warehouse_name or receipt.warehouse_name,
        rack_location=data.rack_location,
        notes=data.notes,
        created_by=actor.user_id,
        created_at=datetime.utcnow(),
    )

    # ── Inventory aggregate ───────────────────────────────────
    stocked = stock_quantity(lot)
    item = await resolve_item(
        db, receipt.company_id, receipt.fabric_type, receipt.color, receipt.gsm,
        unit=stocked.unit,
    )
    await apply_stock_delta(
        db, item, lot_contribution(lot.status, stocked.value, stock_unit_cost(lot)),
        movement_type="lot_added",
        reference_type="receipt",
        reference_id=receipt.id,
        reference_code=f"{receipt.grn_number}/{lot_number}",
        user_id=actor.user_id,
    )

    # ── Receipt balance ───────────────────────────────────────
    receipt.lots.append(lot)
    refresh_receipt_balance(receipt, thresholds)

    # ── Consignment ledger ────────────────────────────────────
    if receipt.consignment is not None:
        received = Quantity(lot.quantity, lot.unit).to(receipt.consignment.unit)
        consignment_ledger.record_transaction(
            receipt.consignment, "received", received.value,
            reference=lot_number,
            notes=f"Lot {lot_number} received",
            user_id=actor.user_id,
        )

    record_receipt_event(
        db, receipt, "lot_added", actor,
        event_data={
            "lot_number": lot_number,
            "quantity": lot.quantity,
            "unit": lot.unit,
            "status": lot.status,
            "total_cost": total_cost,
        },
    )
    await log_activity(
        db, actor,
        action="lot_added",
        entity_type="receipt",
        entity_id=receipt.id,
        entity_code=receipt.grn_number,
        summary=f"Added lot {lot_number} ({lot.quantity:g} {lot.unit})",
    )
    return lot


async def add_lot(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    data: LotCreate,
) -> Receipt:
    receipt = await lock_receipt(db, actor.company_id, receipt_id)
    thresholds = await get_thresholds(db, actor.company_id)
    lot = await append_lot(db, actor, receipt, data, thresholds)
    await flush_or_conflict(db)

    logger.info(
        f"Lot {lot.lot_number} added to {receipt.grn_number}: "
        f"{lot.quantity:g} {lot.unit} ({lot.status})",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id},
    )
    return receipt


async def set_lot_status(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    lot_number: str,
    status: str,
    notes: str | None = None,
) -> Receipt:
    """Move a lot to a new status.

    Setting the status a lot already has changes nothing: no balance
    recompute, no inventory movement, no history entry.
    """
    if status not in LOT_STATUSES:
        raise ValidationError(
            f"Unknown lot status: {status}", details={"allowed": list(LOT_STATUSES)},
        )

    receipt = await lock_receipt(db, actor.company_id, receipt_id)
    lot = find_lot(receipt, lot_number)
    if lot is None:
        raise NotFoundError("Lot", lot_number)

    old_status = lot.status
    if old_status == status:
        return receipt

    thresholds = await get_thresholds(db, actor.company_id)
    stocked = stock_quantity(lot)
    item = await resolve_item(
        db, receipt.company_id, receipt.fabric_type, receipt.color, receipt.gsm,
        unit=stocked.unit,
    )
    await apply_stock_delta(
        db, item, transition_delta(old_status, status, stocked.value, stock_unit_cost(lot)),
        movement_type="lot_status_changed",
        reference_type="receipt",
        reference_id=receipt.id,
        reference_code=f"{receipt.grn_number}/{lot.lot_number}",
        user_id=actor.user_id,
        notes=notes,
    )

    lot.status = status
    lot.status_changed_at = datetime.utcnow()
    if notes:
        lot.notes = notes
    refresh_receipt_balance(receipt, thresholds)

    record_receipt_event(
        db, receipt, "lot_status_changed", actor,
        event_data={"lot_number": lot.lot_number, "from": old_status, "to": status},
        notes=notes,
    )
    await log_activity(
        db, actor,
        action="status_changed",
        entity_type="lot",
        entity_id=lot.id,
        entity_code=lot.lot_number,
        summary=f"Lot {lot.lot_number} on {receipt.grn_number}: {old_status} → {status}",
    )
    await flush_or_conflict(db)

    logger.info(
        f"Lot {lot.lot_number} on {receipt.grn_number}: {old_status} → {status}",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id},
    )
    return receipt


async def list_lots(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    status: str | None = None,
) -> list[FabricLot]:
    from app.services.grn import get_receipt

    receipt = await get_receipt(db, actor.company_id, receipt_id)
    lots = list(receipt.lots)
    if status:
        lots = [lot for lot in lots if lot.status == status]
    return lots
