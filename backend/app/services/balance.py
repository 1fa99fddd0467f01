"""Balance aggregator — receipt balances and stock status from lots.

The receipt balance is never edited directly.  ``refresh_receipt_balance``
recomputes it from the lot list on every lot mutation, inside the same
transaction, and derives the stock status with ``derive_stock_status``.
Those two functions are the only code that writes ``Receipt.balance`` or
``Receipt.stock_status``.

Buckets per unit (meters / yards / pieces, never summed across units):
    total      = available + reserved + damaged  (non-consumed lots)
    available  = active lots
    reserved   = reserved lots
    damaged    = damaged lots
    consumed   = consumed lots (history only, outside the working balance)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.company_config import CompanyConfig
from app.services.units import METERS, PIECES, PRECISION, UNITS, YARDS

LOT_STATUSES = ("active", "reserved", "damaged", "consumed")
BUCKETS = ("total", "available", "reserved", "damaged", "consumed")

# Which working bucket a lot of a given status lands in
_STATUS_BUCKET = {
    "active": "available",
    "reserved": "reserved",
    "damaged": "damaged",
}

THRESHOLDS_CONFIG_KEY = "low_stock_thresholds"


class LotLike(Protocol):
    quantity: float
    unit: str
    status: str


def _zero() -> dict[str, float]:
    return {unit: 0.0 for unit in UNITS}


@dataclass
class Balance:
    total: dict[str, float] = field(default_factory=_zero)
    available: dict[str, float] = field(default_factory=_zero)
    reserved: dict[str, float] = field(default_factory=_zero)
    damaged: dict[str, float] = field(default_factory=_zero)
    consumed: dict[str, float] = field(default_factory=_zero)

    def to_dict(self) -> dict:
        return {bucket: dict(getattr(self, bucket)) for bucket in BUCKETS}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Balance":
        data = data or {}
        return cls(**{
            bucket: {unit: float((data.get(bucket) or {}).get(unit, 0.0)) for unit in UNITS}
            for bucket in BUCKETS
        })

    def is_consistent(self) -> bool:
        """total == available + reserved + damaged for every unit."""
        for unit in UNITS:
            parts = self.available[unit] + self.reserved[unit] + self.damaged[unit]
            if round(self.total[unit] - parts, PRECISION) != 0:
                return False
        return True


@dataclass(frozen=True)
class StockThresholds:
    """Available quantity below which a receipt counts as low stock."""
    meters: float = 100.0
    yards: float = 100.0
    pieces: float = 10.0

    @classmethod
    def default(cls) -> "StockThresholds":
        return cls(
            meters=settings.low_stock_meters,
            yards=settings.low_stock_yards,
            pieces=settings.low_stock_pieces,
        )


def empty_balance() -> dict:
    return Balance().to_dict()


def compute_balance(lots: Iterable[LotLike]) -> Balance:
    balance = Balance()
    for lot in lots:
        if lot.unit not in UNITS:
            raise ValueError(f"Lot has unknown unit: {lot.unit!r}")
        if lot.status == "consumed":
            balance.consumed[lot.unit] = round(balance.consumed[lot.unit] + lot.quantity, PRECISION)
            continue
        bucket = getattr(balance, _STATUS_BUCKET[lot.status])
        bucket[lot.unit] = round(bucket[lot.unit] + lot.quantity, PRECISION)
        balance.total[lot.unit] = round(balance.total[lot.unit] + lot.quantity, PRECISION)
    return balance


def derive_stock_status(balance: Balance, thresholds: StockThresholds) -> str:
    """Coarse stock label; priority order matters."""
    if all(balance.total[unit] == 0 for unit in UNITS):
        return "out_of_stock"
    if all(balance.available[unit] == 0 for unit in UNITS):
        return "consumed"
    if (
        balance.available[METERS] < thresholds.meters
        and balance.available[YARDS] < thresholds.yards
        and balance.available[PIECES] < thresholds.pieces
    ):
        return "low_stock"
    return "active"


def refresh_receipt_balance(receipt, thresholds: StockThresholds) -> Balance:
    """Recompute and store the receipt's balance and stock status."""
    balance = compute_balance(receipt.lots)
    # Assign a fresh dict so the JSON column is flagged dirty
    receipt.balance = balance.to_dict()
    receipt.stock_status = derive_stock_status(balance, thresholds)
    return balance


async def get_thresholds(db: AsyncSession, company_id: str) -> StockThresholds:
    """Company override from company_config, else the settings defaults."""
    result = await db.execute(
        select(CompanyConfig).where(
            CompanyConfig.company_id == company_id,
            CompanyConfig.key == THRESHOLDS_CONFIG_KEY,
        )
    )
    config = result.scalar_one_or_none()
    defaults = StockThresholds.default()
    if not config or not config.value:
        return defaults
    return StockThresholds(
        meters=float(config.value.get(METERS, defaults.meters)),
        yards=float(config.value.get(YARDS, defaults.yards)),
        pieces=float(config.value.get(PIECES, defaults.pieces)),
    )
