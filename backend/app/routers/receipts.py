"""Receipt (GRN) routes — intake, lots, consignment ledger, production outputs.

Endpoints:
    POST   /                                             Create receipt (+ inline lots)
    GET    /                                             List receipts
    GET    /stock/summary                                Stock summary across receipts
    GET    /{receipt_id}                                 Receipt detail
    PATCH  /{receipt_id}                                 Edit descriptive fields
    DELETE /{receipt_id}?force=                          Soft delete
    GET    /{receipt_id}/lots                            List lots
    POST   /{receipt_id}/lots                            Add lot
    PUT    /{receipt_id}/lots/{lot_number}/status        Change lot status
    POST   /{receipt_id}/consignment/transactions        Record ledger entry
    PUT    /{receipt_id}/consignment/consumption         Set cumulative consumption
    POST   /{receipt_id}/consignment/return              Return material to client
    POST   /{receipt_id}/production-outputs              Record production output
    PUT    /{receipt_id}/production-outputs/{id}/status  Complete / dispose output
    GET    /{receipt_id}/history                         Receipt event log

Every mutation invalidates the company's cached stock views.  Responses
of stock-affecting mutations carry ``warnings`` when the inventory item
no longer matches the lots after the write.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.auth.deps import require_permission
from app.config import settings
from app.database import get_db
from app.models.receipt import Receipt
from app.schemas.common import PaginatedResponse
from app.schemas.consignment import (
    ClientReturnRequest,
    ConsignmentTransactionCreate,
    ConsumptionUpdate,
    ProductionOutputCreate,
    ProductionOutputResolve,
)
from app.schemas.receipt import (
    LotCreate,
    LotOut,
    LotStatusUpdate,
    MaterialSource,
    ReceiptCreate,
    ReceiptHistoryOut,
    ReceiptOut,
    ReceiptSummary,
    ReceiptUpdate,
    StockStatus,
    StockSummaryFilters,
    StockSummaryOut,
)
from app.services import consignment as consignment_service
from app.services import grn as grn_service
from app.services import lots as lot_service
from app.services import production_output as output_service
from app.services.reconciliation import item_drift_warnings
from app.services.stock_summary import get_stock_summary
from app.utils.cache import cached, company_key_builder, invalidate_company_stock
from app.utils.locks import get_receipt_locks

logger = logging.getLogger(__name__)

router = APIRouter()


async def _receipt_response(
    db: AsyncSession,
    receipt: Receipt,
    check_stock: bool = False,
) -> ReceiptOut:
    out = ReceiptOut.model_validate(receipt)
    out.locked_fields = get_receipt_locks(receipt).locked_field_names()
    if check_stock and receipt.lots:
        out.warnings = await item_drift_warnings(
            db, receipt.company_id, receipt.fabric_type, receipt.color, receipt.gsm,
        )
        if out.warnings:
            logger.warning(
                f"Receipt {receipt.grn_number}: inventory drift after write",
                extra={"receipt_id": receipt.id, "warnings": out.warnings},
            )
    return out


# ── Receipts ─────────────────────────────────────────────────

@router.post("/", response_model=ReceiptOut, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    body: ReceiptCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.write")),
):
    receipt = await grn_service.create_receipt(db, actor, body)
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt, check_stock=True)


@router.get("/", response_model=PaginatedResponse[ReceiptSummary])
async def list_receipts(
    fabric_type: str | None = Query(None),
    color: str | None = Query(None),
    material_source: MaterialSource | None = Query(None),
    stock_status: StockStatus | None = Query(None),
    purchase_order_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    items, total = await grn_service.list_receipts(
        db, actor.company_id,
        fabric_type=fabric_type,
        color=color,
        material_source=material_source,
        stock_status=stock_status,
        purchase_order_id=purchase_order_id,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[ReceiptSummary.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stock/summary", response_model=StockSummaryOut)
@cached(
    ttl=settings.stock_summary_cache_ttl,
    prefix="stock_summary",
    key_builder=company_key_builder("stock_summary"),
)
async def stock_summary(
    fabric_type: str | None = Query(None),
    color: str | None = Query(None),
    gsm: float | None = Query(None),
    stock_status: StockStatus | None = Query(None),
    material_source: MaterialSource | None = Query(None),
    client_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    """Balances of every live receipt matching the filters, with totals per unit.

    Cached per company and filter set; any ledger write clears it.
    """
    filters = StockSummaryFilters(
        fabric_type=fabric_type,
        color=color,
        gsm=gsm,
        stock_status=stock_status,
        material_source=material_source,
        client_id=client_id,
    )
    return await get_stock_summary(db, actor.company_id, filters)


@router.get("/{receipt_id}", response_model=ReceiptOut)
async def get_receipt(
    receipt_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    receipt = await grn_service.get_receipt(db, actor.company_id, receipt_id)
    return await _receipt_response(db, receipt)


@router.patch("/{receipt_id}", response_model=ReceiptOut)
async def update_receipt(
    receipt_id: str,
    body: ReceiptUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.write")),
):
    receipt = await grn_service.update_receipt(db, actor, receipt_id, body)
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_receipt(
    receipt_id: str,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.delete")),
):
    await grn_service.delete_receipt(db, actor, receipt_id, force=force)
    await invalidate_company_stock(actor.company_id)


@router.get("/{receipt_id}/history", response_model=list[ReceiptHistoryOut])
async def receipt_history(
    receipt_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await grn_service.get_receipt_history(db, actor.company_id, receipt_id)


# ── Lots ─────────────────────────────────────────────────────

@router.get("/{receipt_id}/lots", response_model=list[LotOut])
async def list_lots(
    receipt_id: str,
    lot_status: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await lot_service.list_lots(db, actor, receipt_id, status=lot_status)


@router.post("/{receipt_id}/lots", response_model=ReceiptOut, status_code=status.HTTP_201_CREATED)
async def add_lot(
    receipt_id: str,
    body: LotCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.write")),
):
    receipt = await lot_service.add_lot(db, actor, receipt_id, body)
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt, check_stock=True)


@router.put("/{receipt_id}/lots/{lot_number}/status", response_model=ReceiptOut)
async def set_lot_status(
    receipt_id: str,
    lot_number: str,
    body: LotStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.write")),
):
    receipt = await lot_service.set_lot_status(
        db, actor, receipt_id, lot_number, body.status, body.notes,
    )
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt, check_stock=True)


# ── Consignment ledger ───────────────────────────────────────

@router.post("/{receipt_id}/consignment/transactions", response_model=ReceiptOut)
async def record_consignment_transaction(
    receipt_id: str,
    body: ConsignmentTransactionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("consignment.write")),
):
    receipt = await consignment_service.record_transaction_for_receipt(
        db, actor, receipt_id,
        body.transaction_type, body.quantity, body.reference, body.notes,
    )
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)


@router.put("/{receipt_id}/consignment/consumption", response_model=ReceiptOut)
async def update_consumption(
    receipt_id: str,
    body: ConsumptionUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("consignment.write")),
):
    receipt = await consignment_service.update_consumption_for_receipt(
        db, actor, receipt_id,
        body.consumed_quantity, body.waste_quantity, body.notes,
    )
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)


@router.post("/{receipt_id}/consignment/return", response_model=ReceiptOut)
async def return_client_material(
    receipt_id: str,
    body: ClientReturnRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("consignment.write")),
):
    receipt = await consignment_service.return_client_material(
        db, actor, receipt_id,
        body.return_quantity, body.return_reason, body.return_date, body.notes,
    )
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)


# ── Production outputs ───────────────────────────────────────

@router.post(
    "/{receipt_id}/production-outputs",
    response_model=ReceiptOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_production_output(
    receipt_id: str,
    body: ProductionOutputCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("consignment.write")),
):
    receipt = await output_service.add_production_output(db, actor, receipt_id, body)
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)


@router.put("/{receipt_id}/production-outputs/{output_id}/status", response_model=ReceiptOut)
async def resolve_production_output(
    receipt_id: str,
    output_id: str,
    body: ProductionOutputResolve,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("consignment.write")),
):
    receipt = await output_service.resolve_production_output(
        db, actor, receipt_id, output_id, body,
    )
    await invalidate_company_stock(actor.company_id)
    return await _receipt_response(db, receipt)
