"""Production output tracker for client-provided material.

State machine per output:

    pending → completed → returned_to_client | kept_as_stock

A pending output may be resolved straight to a disposition in one call.
Resolved outputs are final.

The chosen disposition needs its own quantity above 0.  A return books a
``returned`` ledger entry and never touches inventory, so it cannot carry
a kept quantity.  Keeping books ``kept_as_stock`` on the ledger and adds
the quantity to a ``batch_output`` inventory item carrying provenance
back to the receipt, the client and any elongation recorded for the run.
A kept resolution may also return part of the output to the client.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.middleware.exceptions import ConsistencyError, NotFoundError, ValidationError
from app.models.consignment import ProductionOutput
from app.models.receipt import Receipt
from app.schemas.consignment import ProductionOutputCreate, ProductionOutputResolve
from app.services import consignment as consignment_ledger
from app.services.history import record_receipt_event
from app.services.inventory_sync import StockDelta, apply_stock_delta, resolve_item
from app.services.units import PRECISION, Quantity, calculate_elongation, is_convertible
from app.utils.activity import log_activity
from app.utils.locks import flush_or_conflict

logger = logging.getLogger(__name__)

FINAL_STATUSES = ("returned_to_client", "kept_as_stock")


def _elongation_record(output_qty: Quantity, elongation) -> dict:
    if not is_convertible(elongation.input_unit, output_qty.unit):
        raise ValidationError(
            f"Cannot compare {elongation.input_unit} input with {output_qty.unit} output",
        )
    input_qty = Quantity(elongation.input_quantity, elongation.input_unit)
    result = calculate_elongation(input_qty, output_qty)
    return {
        "input_quantity": input_qty.value,
        "input_unit": input_qty.unit,
        "output_quantity": output_qty.value,
        "output_unit": output_qty.unit,
        "elongation_quantity": result.quantity_meters,
        "elongation_percentage": result.percentage,
        "reason": elongation.reason,
        "quality_impact": elongation.quality_impact,
        "notes": elongation.notes,
    }


def find_output(receipt: Receipt, output_id: str) -> ProductionOutput:
    for output in receipt.consignment.production_outputs:
        if output.id == output_id:
            return output
    raise NotFoundError("Production output", output_id)


async def add_production_output(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    data: ProductionOutputCreate,
) -> Receipt:
    receipt = await consignment_ledger.get_client_receipt(db, actor, receipt_id)
    consignment = receipt.consignment

    output_qty = Quantity(data.output_quantity, data.output_unit)
    elongation = _elongation_record(output_qty, data.elongation) if data.elongation else None

    now = datetime.utcnow()
    output = ProductionOutput(
        production_order_id=data.production_order_id,
        production_order_number=data.production_order_number,
        output_quantity=data.output_quantity,
        output_unit=data.output_unit,
        output_type=data.output_type,
        quality_grade=data.quality_grade,
        fabric_type=data.fabric_type,
        color=data.color,
        gsm=data.gsm,
        status=data.status,
        elongation=elongation,
        notes=data.notes,
        recorded_by=actor.user_id,
        completed_at=now if data.status == "completed" else None,
        created_at=now,
    )
    consignment.production_outputs.append(output)

    record_receipt_event(
        db, receipt, "production_output_added", actor,
        event_data={
            "production_order_number": data.production_order_number,
            "output_quantity": data.output_quantity,
            "output_unit": data.output_unit,
            "output_type": data.output_type,
            "status": data.status,
            "elongation_percentage": elongation["elongation_percentage"] if elongation else None,
        },
        notes=data.notes,
    )
    await log_activity(
        db, actor,
        action="output_added",
        entity_type="production_output",
        entity_code=receipt.grn_number,
        summary=f"Production output {output_qty} ({data.output_type})",
    )
    await flush_or_conflict(db)
    return receipt


async def resolve_production_output(
    db: AsyncSession,
    actor: Actor,
    receipt_id: str,
    output_id: str,
    data: ProductionOutputResolve,
) -> Receipt:
    """Complete an output and/or settle where it went.

    Raises:
        NotFoundError if the output is not on this receipt.
        ValidationError for a final output, a repeated completion or
        units that cannot be booked on the consignment.
        ConsistencyError when the disposition quantities exceed the
        output quantity or the consigned balance.
    """
    receipt = await consignment_ledger.get_client_receipt(db, actor, receipt_id)
    consignment = receipt.consignment
    output = find_output(receipt, output_id)

    if output.status in FINAL_STATUSES:
        raise ValidationError(
            f"Production output already resolved as {output.status}",
            details={"output_id": output.id, "status": output.status},
        )
    if data.status == "completed" and output.status == "completed":
        raise ValidationError("Production output is already completed")

    returned = data.client_return_quantity or 0.0
    kept = data.kept_as_stock_quantity or 0.0
    if data.status == "completed" and (returned or kept):
        raise ValidationError(
            "Disposition quantities need status returned_to_client or kept_as_stock",
        )
    if data.status == "returned_to_client" and kept:
        raise ValidationError(
            "Output returned to the client cannot also be kept as stock",
            details={"output_id": output.id, "kept_as_stock_quantity": kept},
        )
    if (data.status == "kept_as_stock" and kept <= 0) or (
        data.status == "returned_to_client" and returned <= 0
    ):
        raise ValidationError(
            f"{data.status} needs a quantity above 0",
            details={"output_id": output.id},
        )
    if round(returned + kept - output.output_quantity, PRECISION) > 0:
        raise ConsistencyError(
            f"Returned ({returned:g}) plus kept ({kept:g}) exceeds the output quantity "
            f"({output.output_quantity:g} {output.output_unit})",
            details={
                "output_id": output.id,
                "output_quantity": output.output_quantity,
                "client_return_quantity": returned,
                "kept_as_stock_quantity": kept,
            },
        )

    # ── Pre-check the ledger before anything is written ──────
    if (returned or kept) and not is_convertible(output.output_unit, consignment.unit):
        raise ValidationError(
            f"Output unit {output.output_unit} cannot be booked against a consignment "
            f"kept in {consignment.unit}",
        )
    returned_ledger = Quantity(returned, output.output_unit).to(consignment.unit).value if returned else 0.0
    kept_ledger = Quantity(kept, output.output_unit).to(consignment.unit).value if kept else 0.0
    if round(consignment.current_balance - returned_ledger - kept_ledger, PRECISION) < 0:
        raise ConsistencyError(
            f"Disposition of {returned_ledger + kept_ledger:g} {consignment.unit} exceeds "
            f"the consigned balance ({consignment.current_balance:g})",
            details={"consignment_id": consignment.id, "current_balance": consignment.current_balance},
        )

    reference = output.production_order_number or output.id
    if returned_ledger > 0:
        consignment_ledger.record_transaction(
            consignment, "returned", returned_ledger,
            reference=reference,
            notes=data.notes or "Production output returned to client",
            user_id=actor.user_id,
        )

    if kept_ledger > 0:
        kept_stock = Quantity(kept, output.output_unit).to_stock()
        consignment_ledger.record_transaction(
            consignment, "kept_as_stock", kept_ledger,
            reference=reference,
            notes=data.notes or "Production output kept as company stock",
            user_id=actor.user_id,
        )
        item = await resolve_item(
            db,
            receipt.company_id,
            output.fabric_type or receipt.fabric_type,
            output.color or receipt.color,
            output.gsm if output.gsm is not None else receipt.gsm,
            kind="batch_output",
            unit=kept_stock.unit,
            source_info={
                "receipt_id": receipt.id,
                "grn_number": receipt.grn_number,
                "client_id": consignment.client_id,
                "client_name": consignment.client_name,
                "production_order_id": output.production_order_id,
                "production_output_id": output.id,
                "elongation": output.elongation,
            },
        )
        await apply_stock_delta(
            db, item, StockDelta(current=kept_stock.value),
            movement_type="kept_as_stock",
            reference_type="production_output",
            reference_id=output.id,
            reference_code=reference,
            user_id=actor.user_id,
            notes=data.notes,
        )
        output.inventory_item_id = item.id

    now = datetime.utcnow()
    old_status = output.status
    output.status = data.status
    output.completed_at = output.completed_at or now
    if data.status in FINAL_STATUSES:
        output.client_return_quantity = data.client_return_quantity
        output.kept_as_stock_quantity = data.kept_as_stock_quantity
        output.resolved_at = now
    if data.notes:
        output.notes = data.notes

    record_receipt_event(
        db, receipt, "production_output_resolved", actor,
        event_data={
            "output_id": output.id,
            "from": old_status,
            "to": data.status,
            "client_return_quantity": data.client_return_quantity,
            "kept_as_stock_quantity": data.kept_as_stock_quantity,
            "inventory_item_id": output.inventory_item_id,
        },
        notes=data.notes,
    )
    await log_activity(
        db, actor,
        action="output_resolved",
        entity_type="production_output",
        entity_id=output.id,
        entity_code=receipt.grn_number,
        summary=f"Production output {old_status} → {data.status}",
    )
    await flush_or_conflict(db)

    logger.info(
        f"Production output {output.id} on {receipt.grn_number}: {old_status} → {data.status}",
        extra={"receipt_id": receipt.id, "company_id": actor.company_id},
    )
    return receipt
