"""FabricLot — a physical sub-quantity of a receipt.

A receipt is split into lots stored at specific locations.  Lot numbers
are unique within their receipt (exact, case-sensitive match).  Lots are
never deleted: status transitions are the only mutation after creation.

Statuses:  active | reserved | damaged | consumed
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime, Float, ForeignKey, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class FabricLot(Base):
    __tablename__ = "fabric_lots"
    __table_args__ = (
        UniqueConstraint("receipt_id", "lot_number", name="uq_fabric_lots_receipt_lot"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    receipt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("receipts.id"), nullable=False, index=True
    )
    lot_number: Mapped[str] = mapped_column(String(50), nullable=False)

    # ── Quantity ─────────────────────────────────────────────
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(10), nullable=False)

    # ── Status / quality ─────────────────────────────────────
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    quality_grade: Mapped[str | None] = mapped_column(String(10))

    # ── Cost ─────────────────────────────────────────────────
    # total_cost == quantity * cost_per_unit at creation only
    cost_per_unit: Mapped[float] = mapped_column(Float, default=0.0)
    total_cost: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Location ─────────────────────────────────────────────
    warehouse_id: Mapped[str | None] = mapped_column(String(36))
    warehouse_name: Mapped[str | None] = mapped_column(String(255))
    rack_location: Mapped[str | None] = mapped_column(String(100))

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    status_changed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    receipt = relationship("Receipt", back_populates="lots")
