"""Reconciliation service — proves inventory items are derivable from lots.

Lot mutations update the grey fabric inventory items incrementally.  The
check here recomputes each item from scratch, summing the stock
contribution of every lot on the company's live receipts with the same
descriptor and stock unit, and flags any stored figure that drifted.

``check_receipts_vs_inventory`` returns unsaved ReconciliationAlert
objects; ``run_reconciliation`` persists them and returns a run summary.
``item_drift_warnings`` runs the same comparison for a single descriptor
so mutating endpoints can attach degraded-consistency warnings.

Thresholds:
    - settings.stock_tolerance_meters: ignore variances at or below this
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.inventory_item import InventoryItem
from app.models.lot import FabricLot
from app.models.receipt import Receipt
from app.models.reconciliation_alert import ReconciliationAlert
from app.services.inventory_sync import STOCK_UNITS, find_item, lot_contribution
from app.services.units import METERS, PRECISION, Quantity, stock_unit

STOCK_FIELDS = ("current_stock", "reserved_stock", "damaged_stock")


def _severity(variance_pct: float) -> str:
    """Map variance percentage to severity level."""
    abs_pct = abs(variance_pct) if variance_pct else 0
    if abs_pct >= 20:
        return "critical"
    if abs_pct >= 10:
        return "high"
    if abs_pct >= 5:
        return "medium"
    return "low"


def _safe_pct(expected: float, actual: float) -> float:
    """Calculate percentage variance safely."""
    if not expected:
        return 100.0 if actual else 0.0
    return round(abs(actual - expected) / abs(expected) * 100, 2)


def descriptor_key(fabric_type: str, color: str, gsm: float | None, unit: str = METERS) -> tuple:
    return (fabric_type.lower(), color.lower(), gsm, unit)


def _unit_label(unit: str) -> str:
    return "m" if unit == METERS else "pcs"


@dataclass
class ExpectedStock:
    """Item stock recomputed from lots, in the item unit."""
    current_stock: float = 0.0
    reserved_stock: float = 0.0
    damaged_stock: float = 0.0
    receipt_ids: list[str] = field(default_factory=list)

    def add_lot(self, receipt_id: str, lot: FabricLot) -> None:
        if receipt_id not in self.receipt_ids:
            self.receipt_ids.append(receipt_id)
        c = lot_contribution(lot.status, Quantity(lot.quantity, lot.unit).to_stock().value)
        self.current_stock = round(self.current_stock + c.current, PRECISION)
        self.reserved_stock = round(self.reserved_stock + c.reserved, PRECISION)
        self.damaged_stock = round(self.damaged_stock + c.damaged, PRECISION)


def _variances(expected: ExpectedStock, item: InventoryItem | None) -> list[tuple[str, float, float]]:
    """(field, expected, actual) for every stock figure beyond tolerance."""
    out = []
    for name in STOCK_FIELDS:
        want = getattr(expected, name)
        have = getattr(item, name) if item is not None else 0.0
        if abs(round(have - want, PRECISION)) > settings.stock_tolerance_meters:
            out.append((name, want, have))
    return out


async def _expected_by_descriptor(
    db: AsyncSession, company_id: str, descriptor: tuple | None = None,
) -> dict:
    """ExpectedStock per descriptor_key; ``descriptor`` narrows to one (type, color, gsm)."""
    stmt = select(Receipt).where(
        Receipt.company_id == company_id,
        Receipt.is_deleted == False,  # noqa: E712
    )
    if descriptor is not None:
        fabric_type, color, gsm = descriptor
        stmt = stmt.where(
            func.lower(Receipt.fabric_type) == fabric_type.lower(),
            func.lower(Receipt.color) == color.lower(),
            Receipt.gsm.is_(None) if gsm is None else Receipt.gsm == gsm,
        )
    result = await db.execute(stmt)

    expected: dict[tuple, ExpectedStock] = {}
    for receipt in result.scalars().all():
        for lot in receipt.lots:
            k = descriptor_key(receipt.fabric_type, receipt.color, receipt.gsm, stock_unit(lot.unit))
            expected.setdefault(k, ExpectedStock()).add_lot(receipt.id, lot)
    return expected


# ─────────────────────────────────────────────────────────────
# CHECK:  grey fabric item stock  ≠  sum of lot contributions
# ─────────────────────────────────────────────────────────────

async def check_receipts_vs_inventory(
    db: AsyncSession, company_id: str, run_id: str,
) -> tuple[list[ReconciliationAlert], int]:
    """Compare each grey fabric item against its receipts' lots.

    Returns the unsaved alerts and the number of items checked.
    Batch output items are fed by production outputs, not lots, and are
    not checked here.
    """
    expected = await _expected_by_descriptor(db, company_id)

    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.company_id == company_id,
            InventoryItem.item_kind == "grey_fabric",
        )
    )
    items = {
        descriptor_key(item.fabric_type, item.color, item.gsm, item.unit): item
        for item in result.scalars().all()
    }

    alerts = []
    keys = set(expected) | set(items)
    for key in sorted(keys, key=str):
        want = expected.get(key, ExpectedStock())
        item = items.get(key)
        unit = key[3]
        short = _unit_label(unit)
        for name, want_value, have_value in _variances(want, item):
            variance = round(have_value - want_value, PRECISION)
            pct = _safe_pct(want_value, have_value)
            label = item.item_code if item is not None else "/".join(str(part) for part in key)
            alerts.append(ReconciliationAlert(
                company_id=company_id,
                alert_type=name if item is not None else "missing_item",
                severity=_severity(pct),
                title=f"{label}: {name.replace('_', ' ')} does not match lots",
                description=(
                    f"Lots on {len(want.receipt_ids)} receipt(s) add up to {want_value:g} {short} "
                    f"but the inventory item holds {have_value:g} {short} "
                    f"(variance {variance:+g} {short} / {pct:.1f}%)."
                ),
                expected_value=want_value,
                actual_value=have_value,
                variance=variance,
                variance_pct=pct,
                unit=unit,
                entity_refs={
                    "item_id": item.id if item is not None else None,
                    "item_code": item.item_code if item is not None else None,
                    "receipt_ids": want.receipt_ids,
                },
                status="open",
                run_id=run_id,
                is_deleted=False,
            ))
    return alerts, len(keys)


async def item_drift_warnings(
    db: AsyncSession,
    company_id: str,
    fabric_type: str,
    color: str,
    gsm: float | None,
) -> list[str]:
    """Human-readable drift notices for one descriptor (empty when clean)."""
    expected = await _expected_by_descriptor(db, company_id, (fabric_type, color, gsm))

    warnings = []
    for unit in STOCK_UNITS:
        want = expected.get(descriptor_key(fabric_type, color, gsm, unit))
        item = await find_item(db, company_id, fabric_type, color, gsm, unit=unit, for_update=False)
        if want is None and item is None:
            continue
        short = _unit_label(unit)
        warnings.extend(
            f"Inventory {name.replace('_', ' ')} for {fabric_type} {color} is {have:g} {short} "
            f"but lots add up to {want_value:g} {short}"
            for name, want_value, have in _variances(want or ExpectedStock(), item)
        )
    return warnings


async def run_reconciliation(db: AsyncSession, company_id: str) -> dict:
    """Execute the check, persist alerts, return summary.

    Returns:
        {
            "run_id": "...",
            "ran_at": "...",
            "items_checked": int,
            "total_alerts": int,
            "by_type": {"current_stock": int, ...},
            "by_severity": {"critical": int, "high": int, ...},
        }
    """
    run_id = str(uuid.uuid4())

    # Auto-resolve open alerts from previous runs
    # (if a mismatch no longer appears, it was fixed)
    old_open = await db.execute(
        select(ReconciliationAlert).where(
            ReconciliationAlert.company_id == company_id,
            ReconciliationAlert.status == "open",
            ReconciliationAlert.run_id != run_id,
        )
    )
    for old_alert in old_open.scalars().all():
        old_alert.status = "resolved"
        old_alert.resolution_note = "Auto-resolved: mismatch no longer detected"
        old_alert.resolved_at = datetime.utcnow()
    await db.flush()

    alerts, items_checked = await check_receipts_vs_inventory(db, company_id, run_id)
    for alert in alerts:
        db.add(alert)
    await db.flush()

    by_type: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for a in alerts:
        by_type[a.alert_type] = by_type.get(a.alert_type, 0) + 1
        by_severity[a.severity] = by_severity.get(a.severity, 0) + 1

    return {
        "run_id": run_id,
        "ran_at": datetime.utcnow().isoformat(),
        "items_checked": items_checked,
        "total_alerts": len(alerts),
        "by_type": by_type,
        "by_severity": by_severity,
    }
