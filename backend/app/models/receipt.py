"""Receipt — one grey fabric inward event (GRN).

A Receipt records a single delivery of grey fabric into a company's
warehouse.  The physical fabric is split into Lots; the receipt's
``balance`` and ``stock_status`` are always recomputed from those lots
(see app.services.balance) and never edited directly.

Client-provided receipts carry a Consignment block tracking the client's
material until it is consumed, wasted, returned or kept as stock.

Receipts are never hard deleted.  A tombstone (``is_deleted``) is written
once no lot is active or reserved.

Lifecycle (stock_status):  active ⇄ low_stock → consumed → out_of_stock
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer,
    JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Receipt(Base):
    __tablename__ = "receipts"
    __table_args__ = (
        UniqueConstraint("company_id", "grn_number", name="uq_receipts_company_grn"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # GRN number — human-readable, unique per company
    grn_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # purchase_order | direct_stock | transfer_in | adjustment
    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # own_material | client_provided | job_work_material
    material_source: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    # ── Traceability (opaque ids owned by other services) ────
    purchase_order_id: Mapped[str | None] = mapped_column(String(36), index=True)
    production_order_id: Mapped[str | None] = mapped_column(String(36))
    supplier_id: Mapped[str | None] = mapped_column(String(36))
    supplier_name: Mapped[str | None] = mapped_column(String(255))

    # ── Fabric descriptor ────────────────────────────────────
    fabric_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    fabric_grade: Mapped[str | None] = mapped_column(String(10))
    gsm: Mapped[float | None] = mapped_column(Float)
    width: Mapped[float | None] = mapped_column(Float)
    color: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # ── Nominal quantities (as per delivery challan) ─────────
    received_quantity: Mapped[float] = mapped_column(Float, default=0.0)
    accepted_quantity: Mapped[float | None] = mapped_column(Float)
    rejected_quantity: Mapped[float | None] = mapped_column(Float)
    # meters | yards | pieces
    unit: Mapped[str] = mapped_column(String(10), nullable=False)

    # ── Storage ──────────────────────────────────────────────
    warehouse_id: Mapped[str | None] = mapped_column(String(36))
    warehouse_name: Mapped[str | None] = mapped_column(String(255))

    # ── Derived balance ──────────────────────────────────────
    # {"total": {"meters": 0, "yards": 0, "pieces": 0}, "available": {...},
    #  "reserved": {...}, "damaged": {...}, "consumed": {...}}
    # Written only by app.services.balance.refresh_receipt_balance.
    balance: Mapped[dict] = mapped_column(JSON, nullable=False)
    # active | low_stock | consumed | out_of_stock
    stock_status: Mapped[str] = mapped_column(
        String(20), default="out_of_stock", index=True
    )

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    received_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)
    deleted_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Optimistic concurrency — bumped on every UPDATE of this row
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────
    lots = relationship(
        "FabricLot", back_populates="receipt", lazy="selectin",
        order_by="FabricLot.created_at",
    )
    consignment = relationship(
        "Consignment", back_populates="receipt", uselist=False, lazy="selectin",
    )
    history = relationship(
        "ReceiptHistory", back_populates="receipt",
        order_by="ReceiptHistory.recorded_at",
    )

    @property
    def is_client_provided(self) -> bool:
        return self.material_source == "client_provided"


class ReceiptHistory(Base):
    """Immutable event log for a receipt.

    Also acts as the outbox for events other services consume, e.g.
    ``purchase_order_update`` carrying the accepted/rejected quantity
    for the purchase-order line.
    """
    __tablename__ = "receipt_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    receipt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("receipts.id"), nullable=False, index=True
    )

    # created | updated | lot_added | lot_status_changed |
    # consignment_transaction | consumption_updated | material_returned |
    # production_output_added | production_output_resolved |
    # purchase_order_update | deleted
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_data: Mapped[dict | None] = mapped_column(JSON)

    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    receipt = relationship("Receipt", back_populates="history")
