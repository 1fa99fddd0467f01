"""Receipt locking — row locks, version conflicts and downstream field locks.

Row locks:
    ``lock_receipt`` loads a receipt ``SELECT … FOR UPDATE`` so two
    requests mutating the same receipt serialize.  Receipts and inventory
    items also carry a version counter; ``flush_or_conflict`` turns a
    version mismatch into a ConcurrencyError.

Field locks:
    ``get_receipt_locks`` returns a LockInfo describing which receipt
    fields can no longer be edited because lots already reference them,
    without raising.  The caller decides whether to block the request.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.middleware.exceptions import ConcurrencyError, NotFoundError
from app.models.receipt import Receipt


# ── Row locks ──────────────────────────────────────────────────


async def lock_receipt(db: AsyncSession, company_id: str, receipt_id: str) -> Receipt:
    """Load a live receipt for mutation, holding its row lock."""
    result = await db.execute(
        select(Receipt)
        .where(
            Receipt.id == receipt_id,
            Receipt.company_id == company_id,
            Receipt.is_deleted == False,  # noqa: E712
        )
        .with_for_update()
    )
    receipt = result.scalar_one_or_none()
    if not receipt:
        raise NotFoundError("Receipt", receipt_id)
    return receipt


async def flush_or_conflict(db: AsyncSession) -> None:
    """Flush pending writes, mapping version mismatches to ConcurrencyError."""
    try:
        await db.flush()
    except StaleDataError as exc:
        raise ConcurrencyError() from exc


# ── Field locks ────────────────────────────────────────────────


@dataclass
class FieldLock:
    """A single locked field with reason and unlock instructions."""
    field: str
    reason: str
    blocker_type: str   # "lots"
    blocker_ref: str    # human-readable reference (e.g. "LOT-001 (+2 more)")
    unlock_hint: str


@dataclass
class LockInfo:
    """Lock state for an entity.  Empty locked_fields means nothing locked."""
    locked_fields: dict[str, FieldLock] = field(default_factory=dict)

    @property
    def is_locked(self) -> bool:
        return len(self.locked_fields) > 0

    def check_update(self, updating_fields: set[str]) -> FieldLock | None:
        """Return the first FieldLock that conflicts, or None."""
        for f in sorted(updating_fields):
            if f in self.locked_fields:
                return self.locked_fields[f]
        return None

    def locked_field_names(self) -> list[str]:
        return list(self.locked_fields.keys())


# Fields that key the inventory item or the balance units
RECEIPT_STOCK_FIELDS = ["fabric_type", "color", "gsm", "unit", "material_source"]


def get_receipt_locks(receipt: Receipt) -> LockInfo:
    """Lock stock-keying fields once any lot exists on the receipt."""
    info = LockInfo()
    lots = list(receipt.lots)
    if not lots:
        return info

    first_ref = lots[0].lot_number
    suffix = f" (+{len(lots) - 1} more)" if len(lots) > 1 else ""
    for name in RECEIPT_STOCK_FIELDS:
        info.locked_fields[name] = FieldLock(
            field=name,
            reason=f"Cannot edit {name}: {len(lots)} lot(s) already booked against this receipt",
            blocker_type="lots",
            blocker_ref=f"{first_ref}{suffix}",
            unlock_hint="Create a correcting receipt instead.",
        )
    return info
