"""Receipt history events.

Every receipt mutation appends one ReceiptHistory row in the same
transaction.  The ``purchase_order_update`` event doubles as the outbox
the purchasing service reads to reflect accepted/rejected quantities
back onto its PO line.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.models.receipt import Receipt, ReceiptHistory


def record_receipt_event(
    db: AsyncSession,
    receipt: Receipt,
    event_type: str,
    actor: Actor,
    event_data: dict | None = None,
    notes: str | None = None,
) -> ReceiptHistory:
    """Append a history event and mark the receipt row as changed.

    Touching ``updated_at`` makes the next flush bump the receipt version
    even when only child rows changed.
    """
    now = datetime.utcnow()
    event = ReceiptHistory(
        receipt_id=receipt.id,
        event_type=event_type,
        event_data=event_data,
        notes=notes,
        recorded_by=actor.user_id,
        recorded_at=now,
    )
    db.add(event)
    receipt.updated_at = now
    return event


def record_purchase_order_update(
    db: AsyncSession,
    receipt: Receipt,
    actor: Actor,
) -> ReceiptHistory | None:
    """Queue the PO line update when the receipt carries one."""
    if not receipt.purchase_order_id:
        return None
    if receipt.accepted_quantity is None and receipt.rejected_quantity is None:
        return None
    return record_receipt_event(
        db, receipt, "purchase_order_update", actor,
        event_data={
            "purchase_order_id": receipt.purchase_order_id,
            "grn_number": receipt.grn_number,
            "fabric_type": receipt.fabric_type,
            "color": receipt.color,
            "accepted_quantity": receipt.accepted_quantity,
            "rejected_quantity": receipt.rejected_quantity,
            "unit": receipt.unit,
        },
    )
