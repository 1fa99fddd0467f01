"""Read-only stock views across receipts and consignments.

Nothing here writes.  Balances are read from the stored receipt balance,
which the lot store keeps in step with the lots.  Quantities are summed
per unit and never across units.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.consignment import Consignment
from app.models.receipt import Receipt
from app.schemas.consignment import (
    ClientMaterialForReturn,
    ClientMaterialHistoryEntry,
    ClientMaterialSummary,
    ConsignmentTransactionOut,
)
from app.schemas.receipt import (
    BalanceOut,
    StockSummaryEntry,
    StockSummaryFilters,
    StockSummaryOut,
    StockSummaryTotals,
)
from app.services.balance import Balance
from app.services.units import PRECISION, UNITS

_TOTAL_BUCKETS = ("total", "available", "reserved", "damaged")

_LEDGER_TOTALS = (
    "total_received", "total_consumed", "total_waste",
    "total_returned", "total_kept_as_stock", "current_balance",
)


def _live_receipts(company_id: str):
    return select(Receipt).where(
        Receipt.company_id == company_id,
        Receipt.is_deleted == False,  # noqa: E712
    )


async def get_stock_summary(
    db: AsyncSession,
    company_id: str,
    filters: StockSummaryFilters,
) -> StockSummaryOut:
    """One entry per live receipt matching the filters, plus per-unit totals."""
    stmt = _live_receipts(company_id)
    if filters.fabric_type:
        stmt = stmt.where(func.lower(Receipt.fabric_type) == filters.fabric_type.lower())
    if filters.color:
        stmt = stmt.where(func.lower(Receipt.color) == filters.color.lower())
    if filters.gsm is not None:
        stmt = stmt.where(Receipt.gsm == filters.gsm)
    if filters.stock_status:
        stmt = stmt.where(Receipt.stock_status == filters.stock_status)
    if filters.material_source:
        stmt = stmt.where(Receipt.material_source == filters.material_source)
    if filters.client_id:
        stmt = stmt.join(Consignment, Consignment.receipt_id == Receipt.id).where(
            Consignment.client_id == filters.client_id
        )

    result = await db.execute(stmt.order_by(Receipt.created_at.desc()))
    receipts = result.scalars().all()

    totals = {bucket: {unit: 0.0 for unit in UNITS} for bucket in _TOTAL_BUCKETS}
    by_status: dict[str, int] = defaultdict(int)
    entries = []
    for receipt in receipts:
        balance = Balance.from_dict(receipt.balance)
        for bucket in _TOTAL_BUCKETS:
            values = getattr(balance, bucket)
            for unit in UNITS:
                totals[bucket][unit] = round(totals[bucket][unit] + values[unit], PRECISION)
        by_status[receipt.stock_status] += 1
        entries.append(StockSummaryEntry(
            receipt_id=receipt.id,
            grn_number=receipt.grn_number,
            material_source=receipt.material_source,
            fabric_type=receipt.fabric_type,
            color=receipt.color,
            gsm=receipt.gsm,
            stock_status=receipt.stock_status,
            lot_count=len(receipt.lots),
            balance=BalanceOut(**balance.to_dict()),
        ))

    return StockSummaryOut(
        entries=entries,
        totals=StockSummaryTotals(
            receipt_count=len(entries),
            by_status=dict(by_status),
            **totals,
        ),
    )


async def _client_consignments(
    db: AsyncSession, company_id: str, client_id: str | None = None,
) -> list[tuple[Receipt, Consignment]]:
    stmt = (
        select(Receipt, Consignment)
        .join(Consignment, Consignment.receipt_id == Receipt.id)
        .where(
            Receipt.company_id == company_id,
            Receipt.is_deleted == False,  # noqa: E712
        )
        .order_by(Receipt.created_at)
    )
    if client_id:
        stmt = stmt.where(Consignment.client_id == client_id)
    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def get_client_material_summary(
    db: AsyncSession,
    company_id: str,
    client_id: str | None = None,
) -> list[ClientMaterialSummary]:
    """Ledger totals per client and unit."""
    groups: dict[tuple[str, str], dict] = {}
    for _receipt, consignment in await _client_consignments(db, company_id, client_id):
        key = (consignment.client_id, consignment.unit)
        group = groups.setdefault(key, {
            "client_id": consignment.client_id,
            "client_name": consignment.client_name,
            "unit": consignment.unit,
            "receipt_count": 0,
            **{name: 0.0 for name in _LEDGER_TOTALS},
        })
        group["receipt_count"] += 1
        group["client_name"] = group["client_name"] or consignment.client_name
        for name in _LEDGER_TOTALS:
            group[name] = round(group[name] + (getattr(consignment, name) or 0.0), PRECISION)

    return [ClientMaterialSummary(**group) for _key, group in sorted(groups.items())]


async def get_client_material_history(
    db: AsyncSession,
    company_id: str,
    client_id: str,
) -> list[ClientMaterialHistoryEntry]:
    """Every ledger entry for a client's material, newest first."""
    history = []
    for receipt, consignment in await _client_consignments(db, company_id, client_id):
        for entry in consignment.transactions:
            history.append(ClientMaterialHistoryEntry(
                receipt_id=receipt.id,
                grn_number=receipt.grn_number,
                unit=consignment.unit,
                transaction=ConsignmentTransactionOut.model_validate(entry),
            ))
    history.sort(key=lambda h: (h.transaction.recorded_at, h.transaction.sequence), reverse=True)
    return history


async def get_client_materials_for_return(
    db: AsyncSession,
    company_id: str,
    client_id: str | None = None,
) -> list[ClientMaterialForReturn]:
    """Consignments still holding client material."""
    return [
        ClientMaterialForReturn(
            receipt_id=receipt.id,
            grn_number=receipt.grn_number,
            client_id=consignment.client_id,
            client_name=consignment.client_name,
            fabric_type=receipt.fabric_type,
            color=receipt.color,
            unit=consignment.unit,
            current_balance=consignment.current_balance,
            returnable_quantity=consignment.returnable_quantity,
        )
        for receipt, consignment in await _client_consignments(db, company_id, client_id)
        if consignment.current_balance > 0
    ]
