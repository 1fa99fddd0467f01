"""GRN (Goods Received Note) service — grey fabric receipts.

Handles the receipt lifecycle:
  - Creating a receipt with an auto-generated GRN number
    (GRN-YYYYMMDD-NNN, format overridable per company)
  - Opening the consignment block for client-provided material
  - Queuing the purchase-order update event when accepted/rejected
    quantities are known
  - Adding any inline lots through the same path as POST …/lots
  - Editing descriptive fields, refusing stock-keying fields once lots exist
  - Soft deleting once no lot is active or reserved
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.middleware.exceptions import ConsistencyError, NotFoundError, ValidationError
from app.models.consignment import Consignment
from app.models.receipt import Receipt, ReceiptHistory
from app.schemas.receipt import ReceiptCreate, ReceiptUpdate
from app.services.balance import empty_balance, get_thresholds, refresh_receipt_balance
from app.services.history import record_purchase_order_update, record_receipt_event
from app.services.inventory_sync import apply_stock_delta, find_item, transition_delta
from app.services.lots import append_lot, stock_quantity, stock_unit_cost
from app.utils.activity import log_activity
from app.utils.locks import flush_or_conflict, get_receipt_locks, lock_receipt
from app.utils.numbering import generate_grn_number

logger = logging.getLogger(__name__)

CLIENT_PROVIDED = "client_provided"


async def get_receipt(db: AsyncSession, company_id: str, receipt_id: str) -> Receipt:
    result = await db.execute(
        select(Receipt).where(
            Receipt.id == receipt_id,
            Receipt.company_id == company_id,
            Receipt.is_deleted == False,  # noqa: E712
        )
    )
    receipt = result.scalar_one_or_none()
    if not receipt:
        raise NotFoundError("Receipt", receipt_id)
    return receipt


async def list_receipts(
    db: AsyncSession,
    company_id: str,
    *,
    fabric_type: str | None = None,
    color: str | None = None,
    material_source: str | None = None,
    stock_status: str | None = None,
    purchase_order_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Receipt], int]:
    """Live receipts for a company, newest first, with the unpaginated count."""
    filters = [Receipt.company_id == company_id, Receipt.is_deleted == False]  # noqa: E712
    if fabric_type:
        filters.append(func.lower(Receipt.fabric_type) == fabric_type.lower())
    if color:
        filters.append(func.lower(Receipt.color) == color.lower())
    if material_source:
        filters.append(Receipt.material_source == material_source)
    if stock_status:
        filters.append(Receipt.stock_status == stock_status)
    if purchase_order_id:
        filters.append(Receipt.purchase_order_id == purchase_order_id)

    total = await db.scalar(select(func.count(Receipt.id)).where(*filters)) or 0
    result = await db.execute(
        select(Receipt)
        .where(*filters)
        .order_by(Receipt.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_receipt_history(
    db: AsyncSession, company_id: str, receipt_id: str,
) -> list[ReceiptHistory]:
    receipt = await get_receipt(db, company_id, receipt_id)
    result = await db.execute(
        select(ReceiptHistory)
        .where(ReceiptHistory.receipt_id == receipt.id)
        .order_by(ReceiptHistory.recorded_at, ReceiptHistory.id)
    )
    return list(result.scalars().all())


async def create_receipt(
    db: AsyncSession,
    actor: Actor,
    body: ReceiptCreate,
) -> Receipt:
    """Create a receipt (and its inline lots) in one transaction.

    Raises:
        ValidationError for a blank descriptor or a client-provided
        receipt without a client.  Any lot error aborts the whole create.
    """
    fabric_type = body.fabric_type.strip()
    color = body.color.strip()
    if not fabric_type or not color:
        raise ValidationError("fabric_type and color are required")
    if body.material_source == CLIENT_PROVIDED and (
        body.consignment is None or not body.consignment.client_id.strip()
    ):
        raise ValidationError("Client-provided material requires a client_id")

    grn_number = await generate_grn_number(db, actor.company_id)
    now = datetime.utcnow()

    consignment = None
    if body.material_source == CLIENT_PROVIDED:
        consignment = Consignment(
            company_id=actor.company_id,
            client_id=body.consignment.client_id.strip(),
            client_name=body.consignment.client_name,
            client_order_id=body.consignment.client_order_id,
            client_order_number=body.consignment.client_order_number,
            unit=body.unit,
            total_received=0.0,
            total_consumed=0.0,
            total_waste=0.0,
            total_returned=0.0,
            total_kept_as_stock=0.0,
            current_balance=0.0,
            consumed_quantity=0.0,
            waste_quantity=0.0,
            returnable_quantity=0.0,
            returnable_shortfall=False,
            transactions=[],
            production_outputs=[],
        )

    receipt = Receipt(
        company_id=actor.company_id,
        grn_number=grn_number,
        entry_type=body.entry_type,
        material_source=body.material_source,
        purchase_order_id=body.purchase_order_id,
        production_order_id=body.production_order_id,
        supplier_id=body.supplier_id,
        supplier_name=body.supplier_name,
        fabric_type=fabric_type,
        fabric_grade=body.fabric_grade,
        gsm=body.gsm,
        width=body.width,
        color=color,
        received_quantity=body.received_quantity,
        accepted_quantity=body.accepted_quantity,
        rejected_quantity=body.rejected_quantity,
        unit=body.unit,
        warehouse_id=body.warehouse_id,
        warehouse_name=body.warehouse_name,
        balance=empty_balance(),
        stock_status="out_of_stock",
        notes=body.notes,
        received_at=now,
        received_by=actor.user_id,
        is_deleted=False,
        created_at=now,
        updated_at=now,
        lots=[],
        consignment=consignment,
    )
    db.add(receipt)
    await db.flush()  # populate receipt.id

    thresholds = await get_thresholds(db, actor.company_id)
    refresh_receipt_balance(receipt, thresholds)

    record_receipt_event(
        db, receipt, "created", actor,
        event_data={
            "entry_type": receipt.entry_type,
            "material_source": receipt.material_source,
            "fabric_type": receipt.fabric_type,
            "color": receipt.color,
            "gsm": receipt.gsm,
            "received_quantity": receipt.received_quantity,
            "unit": receipt.unit,
            "client_id": consignment.client_id if consignment else None,
        },
        notes=body.notes,
    )
    record_purchase_order_update(db, receipt, actor)

    for lot_data in body.lots:
        await append_lot(db, actor, receipt, lot_data, thresholds)

    await log_activity(
        db, actor,
        action="created",
        entity_type="receipt",
        entity_id=receipt.id,
        entity_code=grn_number,
        summary=(
            f"Received {receipt.fabric_type} {receipt.color} "
            f"({receipt.received_quantity:g} {receipt.unit}, {len(body.lots)} lot(s))"
        ),
    )
    await flush_or_conflict(db)

    logger.info(
        f"Receipt {grn_number} created ({receipt.material_source})",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id},
    )
    return receipt


async def update_receipt(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    body: ReceiptUpdate,
) -> Receipt:
    """Edit descriptive fields.

    Fields that key the inventory item or the balance units are locked
    once a lot exists; the ConsistencyError carries the lock details.
    """
    receipt = await lock_receipt(db, actor.company_id, receipt_id)
    requested = body.model_dump(exclude_unset=True)
    changes = {
        name: (getattr(receipt, name), value)
        for name, value in requested.items()
        if getattr(receipt, name) != value
    }
    if not changes:
        return receipt

    lock = get_receipt_locks(receipt).check_update(set(changes))
    if lock:
        raise ConsistencyError(
            lock.reason,
            details={
                "field": lock.field,
                "blocker_type": lock.blocker_type,
                "blocker_ref": lock.blocker_ref,
                "unlock_hint": lock.unlock_hint,
            },
        )

    for name in ("fabric_type", "color"):
        if name in changes and changes[name][1] is None:
            raise ValidationError(f"{name} cannot be cleared")
    if "unit" in changes and changes["unit"][1] is None:
        raise ValidationError("unit cannot be cleared")
    if "material_source" in changes:
        new_source = changes["material_source"][1]
        if new_source is None:
            raise ValidationError("material_source cannot be cleared")
        if CLIENT_PROVIDED in (receipt.material_source, new_source):
            raise ValidationError(
                "Cannot switch a receipt to or from client-provided material; "
                "create a new receipt instead",
            )
    if "unit" in changes and receipt.consignment is not None:
        if receipt.consignment.transactions:
            raise ValidationError("Cannot change the unit of a consignment with ledger entries")
        receipt.consignment.unit = changes["unit"][1]

    accepted = requested.get("accepted_quantity", receipt.accepted_quantity)
    rejected = requested.get("rejected_quantity", receipt.rejected_quantity)
    if accepted is not None and rejected is not None and accepted + rejected > receipt.received_quantity:
        raise ValidationError(
            "accepted_quantity + rejected_quantity cannot exceed received_quantity",
        )

    for name, (_old, new) in changes.items():
        setattr(receipt, name, new)

    record_receipt_event(
        db, receipt, "updated", actor,
        event_data={name: {"from": old, "to": new} for name, (old, new) in changes.items()},
    )
    if "accepted_quantity" in changes or "rejected_quantity" in changes:
        record_purchase_order_update(db, receipt, actor)

    await log_activity(
        db, actor,
        action="updated",
        entity_type="receipt",
        entity_id=receipt.id,
        entity_code=receipt.grn_number,
        summary=f"Updated {', '.join(sorted(changes))}",
    )
    await flush_or_conflict(db)
    return receipt


async def delete_receipt(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    force: bool = False,
) -> Receipt:
    """Tombstone a receipt.

    Raises:
        ConsistencyError while any lot is active or reserved, or when lots
        were consumed/damaged and ``force`` was not given.
    """
    receipt = await lock_receipt(db, actor.company_id, receipt_id)

    in_stock = [lot.lot_number for lot in receipt.lots if lot.status in ("active", "reserved")]
    if in_stock:
        raise ConsistencyError(
            f"Receipt {receipt.grn_number} still has {len(in_stock)} lot(s) in stock",
            details={"lot_numbers": in_stock},
        )

    moved = [lot for lot in receipt.lots if lot.status in ("consumed", "damaged")]
    if moved and not force:
        raise ConsistencyError(
            f"Receipt {receipt.grn_number} has consumed or damaged lots; pass force=true to delete",
            details={"lot_numbers": [lot.lot_number for lot in moved]},
        )

    # Damaged lots still count on the item; take them off with the receipt
    damaged = [lot for lot in moved if lot.status == "damaged"]
    for lot in damaged:
        stocked = stock_quantity(lot)
        item = await find_item(
            db, receipt.company_id, receipt.fabric_type, receipt.color, receipt.gsm,
            unit=stocked.unit,
        )
        if item is None:
            raise ConsistencyError(
                f"No inventory item holds the damaged stock of {receipt.grn_number}",
                details={"lot_number": lot.lot_number, "unit": stocked.unit},
            )
        await apply_stock_delta(
            db, item,
            transition_delta("damaged", "consumed", stocked.value, stock_unit_cost(lot)),
            movement_type="receipt_deleted",
            reference_type="receipt",
            reference_id=receipt.id,
            reference_code=f"{receipt.grn_number}/{lot.lot_number}",
            user_id=actor.user_id,
        )

    now = datetime.utcnow()
    receipt.is_deleted = True
    receipt.deleted_at = now
    receipt.deleted_by = actor.user_id

    record_receipt_event(
        db, receipt, "deleted", actor,
        event_data={"force": force, "lot_count": len(receipt.lots)},
    )
    await log_activity(
        db, actor,
        action="deleted",
        entity_type="receipt",
        entity_id=receipt.id,
        entity_code=receipt.grn_number,
        summary=f"Deleted receipt {receipt.grn_number}" + (" (forced)" if force else ""),
    )
    await flush_or_conflict(db)

    logger.info(
        f"Receipt {receipt.grn_number} deleted",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id, "force": force},
    )
    return receipt
