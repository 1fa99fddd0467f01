"""Consignment ledger — client-owned material on a receipt.

Pure ledger operations (``record_transaction``, ``update_consumption``)
work on a loaded Consignment and validate everything before touching it,
so a rejected call leaves the totals and the ledger exactly as they were.

The ``*_for_receipt`` coroutines are the request-level entry points: they
lock the receipt, check it carries a consignment, apply the ledger
operation, and write the receipt history and activity log in the same
transaction.

Invariant after every call:

    current_balance == total_received - total_consumed - total_waste
                       - total_returned - total_kept_as_stock
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.middleware.exceptions import ConsistencyError, ValidationError
from app.models.consignment import Consignment, ConsignmentTransaction
from app.models.receipt import Receipt
from app.services.history import record_receipt_event
from app.services.units import PRECISION
from app.utils.activity import log_activity
from app.utils.locks import flush_or_conflict, lock_receipt

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = (
    "received", "consumed", "waste", "returned", "kept_as_stock", "adjustment",
)

# Kinds that add to the balance; every other kind subtracts
_INCREASING = ("received", "adjustment")

# Running total each kind accumulates into.  Adjustments correct the
# received figure so the balance identity keeps holding.
_TOTAL_FIELD = {
    "received": "total_received",
    "adjustment": "total_received",
    "consumed": "total_consumed",
    "waste": "total_waste",
    "returned": "total_returned",
    "kept_as_stock": "total_kept_as_stock",
}


def _signed_delta(kind: str, quantity: float) -> float:
    return quantity if kind in _INCREASING else -quantity


def _check_transaction(consignment: Consignment, kind: str, quantity: float, reference: str) -> float:
    """Validate one ledger entry and return the balance it would leave."""
    if kind not in TRANSACTION_TYPES:
        raise ValidationError(
            f"Unknown transaction type: {kind}",
            details={"allowed": list(TRANSACTION_TYPES)},
        )
    if quantity < 0 and kind != "adjustment":
        raise ValidationError(f"{kind} quantity cannot be negative")
    if not reference or not reference.strip():
        raise ValidationError("Transaction reference is required")

    new_balance = round(consignment.current_balance + _signed_delta(kind, quantity), PRECISION)
    if new_balance < 0:
        raise ConsistencyError(
            f"{kind} of {quantity:g} {consignment.unit} would make the consigned "
            f"balance negative ({new_balance:g})",
            details={
                "consignment_id": consignment.id,
                "current_balance": consignment.current_balance,
                "transaction_type": kind,
                "quantity": quantity,
            },
        )
    return new_balance


def record_transaction(
    consignment: Consignment,
    kind: str,
    quantity: float,
    reference: str,
    notes: str | None = None,
    user_id: str | None = None,
) -> ConsignmentTransaction:
    """Append one ledger entry and update the running totals.

    Raises:
        ValidationError for an unknown kind, a negative quantity on a
        non-adjustment kind or a blank reference.
        ConsistencyError if the balance would go negative.
    """
    new_balance = _check_transaction(consignment, kind, quantity, reference)
    delta = _signed_delta(kind, quantity)

    total_field = _TOTAL_FIELD[kind]
    setattr(
        consignment,
        total_field,
        round((getattr(consignment, total_field) or 0.0) + quantity, PRECISION),
    )
    consignment.current_balance = new_balance

    entry = ConsignmentTransaction(
        sequence=len(consignment.transactions) + 1,
        transaction_type=kind,
        quantity=quantity,
        balance_delta=delta,
        balance_after=new_balance,
        reference=reference,
        notes=notes,
        recorded_by=user_id,
        recorded_at=datetime.utcnow(),
    )
    consignment.transactions.append(entry)
    return entry


def update_consumption(
    consignment: Consignment,
    consumed_quantity: float,
    waste_quantity: float,
    notes: str | None = None,
    reference: str = "consumption-update",
    user_id: str | None = None,
) -> list[ConsignmentTransaction]:
    """Set the cumulative consumed/waste figures.

    Records one ``consumed`` and one ``waste`` entry for the increments
    since the last update (either may be zero).  Cumulative figures only
    grow; lowering one needs an adjustment instead.
    """
    consumed_inc = round(consumed_quantity - (consignment.consumed_quantity or 0.0), PRECISION)
    waste_inc = round(waste_quantity - (consignment.waste_quantity or 0.0), PRECISION)
    if consumed_inc < 0 or waste_inc < 0:
        raise ValidationError(
            "Consumption figures are cumulative and cannot decrease; record an adjustment instead",
            details={
                "consumed_quantity": consignment.consumed_quantity,
                "waste_quantity": consignment.waste_quantity,
            },
        )

    after_consumed = round(consignment.current_balance - consumed_inc, PRECISION)
    if after_consumed - waste_inc < 0:
        raise ConsistencyError(
            f"Consumption of {consumed_inc:g} and waste of {waste_inc:g} {consignment.unit} "
            f"exceed the consigned balance ({consignment.current_balance:g})",
            details={
                "consignment_id": consignment.id,
                "current_balance": consignment.current_balance,
                "consumed_increment": consumed_inc,
                "waste_increment": waste_inc,
            },
        )

    entries = [
        record_transaction(consignment, "consumed", consumed_inc, reference, notes, user_id),
        record_transaction(consignment, "waste", waste_inc, reference, notes, user_id),
    ]

    consignment.consumed_quantity = consumed_quantity
    consignment.waste_quantity = waste_quantity
    returnable = round(consignment.total_received - consumed_quantity - waste_quantity, PRECISION)
    consignment.returnable_shortfall = returnable < 0
    consignment.returnable_quantity = max(0.0, returnable)
    consignment.consumption_notes = notes
    consignment.consumption_updated_at = datetime.utcnow()
    return entries


# ── Receipt-level entry points ───────────────────────────────


async def get_client_receipt(db: AsyncSession, actor: Actor, receipt_id: str) -> Receipt:
    """Lock a receipt and make sure it carries a consignment."""
    receipt = await lock_receipt(db, actor.company_id, receipt_id)
    if not receipt.is_client_provided or receipt.consignment is None:
        raise ValidationError(
            f"Receipt {receipt.grn_number} is not client-provided material",
            details={"material_source": receipt.material_source},
        )
    return receipt


async def record_transaction_for_receipt(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    kind: str,
    quantity: float,
    reference: str,
    notes: str | None = None,
) -> Receipt:
    receipt = await get_client_receipt(db, actor, receipt_id)
    consignment = receipt.consignment

    entry = record_transaction(consignment, kind, quantity, reference, notes, actor.user_id)
    record_receipt_event(
        db, receipt, "consignment_transaction", actor,
        event_data={
            "transaction_type": kind,
            "quantity": quantity,
            "unit": consignment.unit,
            "balance_after": entry.balance_after,
            "reference": reference,
        },
        notes=notes,
    )
    await log_activity(
        db, actor,
        action="consignment_transaction",
        entity_type="consignment",
        entity_id=consignment.id,
        entity_code=receipt.grn_number,
        summary=f"{kind} {quantity:g} {consignment.unit} ({reference})",
    )
    await flush_or_conflict(db)

    logger.info(
        f"Consignment {receipt.grn_number}: {kind} {quantity:g} {consignment.unit}, "
        f"balance {entry.balance_after:g}",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id},
    )
    return receipt


async def update_consumption_for_receipt(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    consumed_quantity: float,
    waste_quantity: float,
    notes: str | None = None,
) -> Receipt:
    receipt = await get_client_receipt(db, actor, receipt_id)
    consignment = receipt.consignment

    consumed_entry, waste_entry = update_consumption(
        consignment, consumed_quantity, waste_quantity, notes,
        reference=f"{receipt.grn_number}-consumption",
        user_id=actor.user_id,
    )
    record_receipt_event(
        db, receipt, "consumption_updated", actor,
        event_data={
            "consumed_quantity": consumed_quantity,
            "waste_quantity": waste_quantity,
            "consumed_increment": consumed_entry.quantity,
            "waste_increment": waste_entry.quantity,
            "returnable_quantity": consignment.returnable_quantity,
            "returnable_shortfall": consignment.returnable_shortfall,
        },
        notes=notes,
    )
    await log_activity(
        db, actor,
        action="consumption_updated",
        entity_type="consignment",
        entity_id=consignment.id,
        entity_code=receipt.grn_number,
        summary=(
            f"Consumption {consumed_quantity:g} / waste {waste_quantity:g} {consignment.unit}"
        ),
    )
    await flush_or_conflict(db)

    if consignment.returnable_shortfall:
        logger.warning(
            f"Consignment {receipt.grn_number}: consumption exceeds received quantity, "
            f"returnable clamped to 0",
            extra={"receipt_id": receipt.id, "company_id": actor.company_id},
        )
    return receipt


async def return_client_material(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    return_quantity: float,
    return_reason: str,
    return_date: date | None = None,
    notes: str | None = None,
) -> Receipt:
    """Send unused consigned material back to the client."""
    receipt = await get_client_receipt(db, actor, receipt_id)
    consignment = receipt.consignment
    on_date = return_date or date.today()

    entry = record_transaction(
        consignment, "returned", return_quantity,
        reference=f"{receipt.grn_number}-return-{on_date.isoformat()}",
        notes=notes or return_reason,
        user_id=actor.user_id,
    )
    record_receipt_event(
        db, receipt, "material_returned", actor,
        event_data={
            "return_quantity": return_quantity,
            "unit": consignment.unit,
            "return_reason": return_reason,
            "return_date": on_date.isoformat(),
            "balance_after": entry.balance_after,
        },
        notes=notes,
    )
    await log_activity(
        db, actor,
        action="returned",
        entity_type="consignment",
        entity_id=consignment.id,
        entity_code=receipt.grn_number,
        summary=f"Returned {return_quantity:g} {consignment.unit} to {consignment.client_name or consignment.client_id}",
        details={"reason": return_reason},
    )
    await flush_or_conflict(db)
    return receipt
