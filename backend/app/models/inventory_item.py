"""InventoryItem & InventoryMovement — company-wide fabric stock.

InventoryItem is one row per distinct (fabric_type, color, gsm, item_kind,
unit) per company, enforced by a unique index on the case-folded
descriptor.  Length stock is held in meters, pieces on a separate row.
Receipts reference it softly by descriptor, not by foreign key.

Only app.services.inventory_sync.apply_stock_delta writes the stock and
valuation columns.  Each write appends an InventoryMovement so the item
history is an audit ledger of every delta.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    item_code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Identity ─────────────────────────────────────────────
    # grey_fabric | batch_output
    item_kind: Mapped[str] = mapped_column(String(20), nullable=False, default="grey_fabric")
    fabric_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    color: Mapped[str] = mapped_column(String(100), nullable=False)
    gsm: Mapped[float | None] = mapped_column(Float)

    # ── Stock (in unit) ──────────────────────────────────────
    current_stock: Mapped[float] = mapped_column(Float, default=0.0)
    reserved_stock: Mapped[float] = mapped_column(Float, default=0.0)
    damaged_stock: Mapped[float] = mapped_column(Float, default=0.0)
    # Always current_stock - reserved_stock; stored for querying only
    available_stock: Mapped[float] = mapped_column(Float, default=0.0)
    # meters | pieces
    unit: Mapped[str] = mapped_column(String(10), nullable=False, default="meters")

    # ── Valuation ────────────────────────────────────────────
    average_cost: Mapped[float] = mapped_column(Float, default=0.0)
    total_value: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Provenance (batch outputs) ───────────────────────────
    # {"receipt_id": .., "grn_number": .., "client_id": .., "client_name": ..,
    #  "production_order_id": .., "production_output_id": .., "elongation": {...}}
    source_info: Mapped[dict | None] = mapped_column(JSON)

    last_movement_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    movements = relationship(
        "InventoryMovement", back_populates="item",
        order_by="InventoryMovement.recorded_at",
    )


Index(
    "uq_inventory_items_descriptor",
    InventoryItem.company_id,
    InventoryItem.item_kind,
    func.lower(InventoryItem.fabric_type),
    func.lower(InventoryItem.color),
    func.coalesce(InventoryItem.gsm, -1),
    InventoryItem.unit,
    unique=True,
)


class InventoryMovement(Base):
    """Audit ledger for inventory stock changes."""
    __tablename__ = "inventory_movements"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_items.id"), nullable=False, index=True
    )

    # lot_added | lot_status_changed | kept_as_stock
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Signed deltas in the item unit
    current_delta: Mapped[float] = mapped_column(Float, default=0.0)
    reserved_delta: Mapped[float] = mapped_column(Float, default=0.0)
    damaged_delta: Mapped[float] = mapped_column(Float, default=0.0)
    value_delta: Mapped[float] = mapped_column(Float, default=0.0)
    current_after: Mapped[float] = mapped_column(Float, nullable=False)

    # receipt | production_output
    reference_type: Mapped[str | None] = mapped_column(String(30))
    reference_id: Mapped[str | None] = mapped_column(String(36))
    reference_code: Mapped[str | None] = mapped_column(String(100))

    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )

    item = relationship("InventoryItem", back_populates="movements")
