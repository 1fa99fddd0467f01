"""Consignment — client-owned material received on a receipt.

Only receipts with ``material_source == "client_provided"`` have one.
The running totals satisfy, at all times:

    current_balance == total_received - total_consumed - total_waste
                       - total_returned - total_kept_as_stock

Every change to a total appends one ConsignmentTransaction (the
append-only ledger).  ProductionOutput rows record what production made
from the material and how each output was disposed of.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Consignment(Base):
    __tablename__ = "consignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    receipt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("receipts.id"), nullable=False, unique=True
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Client ───────────────────────────────────────────────
    client_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    client_name: Mapped[str | None] = mapped_column(String(255))
    client_order_id: Mapped[str | None] = mapped_column(String(36))
    client_order_number: Mapped[str | None] = mapped_column(String(50))

    # All ledger quantities are in the receipt's nominal unit
    unit: Mapped[str] = mapped_column(String(10), nullable=False)

    # ── Balance ledger totals ────────────────────────────────
    total_received: Mapped[float] = mapped_column(Float, default=0.0)
    total_consumed: Mapped[float] = mapped_column(Float, default=0.0)
    total_waste: Mapped[float] = mapped_column(Float, default=0.0)
    total_returned: Mapped[float] = mapped_column(Float, default=0.0)
    total_kept_as_stock: Mapped[float] = mapped_column(Float, default=0.0)
    current_balance: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Consumption summary (cumulative) ─────────────────────
    consumed_quantity: Mapped[float] = mapped_column(Float, default=0.0)
    waste_quantity: Mapped[float] = mapped_column(Float, default=0.0)
    returnable_quantity: Mapped[float] = mapped_column(Float, default=0.0)
    # Set when received - consumed - waste went negative and was clamped
    returnable_shortfall: Mapped[bool] = mapped_column(Boolean, default=False)
    consumption_notes: Mapped[str | None] = mapped_column(Text)
    consumption_updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    receipt = relationship("Receipt", back_populates="consignment")
    transactions = relationship(
        "ConsignmentTransaction", back_populates="consignment", lazy="selectin",
        order_by="ConsignmentTransaction.sequence",
    )
    production_outputs = relationship(
        "ProductionOutput", back_populates="consignment", lazy="selectin",
        order_by="ProductionOutput.created_at",
    )


class ConsignmentTransaction(Base):
    """Append-only ledger entry for a consignment."""
    __tablename__ = "consignment_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    consignment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("consignments.id"), nullable=False, index=True
    )
    # Position within the consignment's ledger, starting at 1
    sequence: Mapped[int] = mapped_column(nullable=False)

    # received | consumed | waste | returned | kept_as_stock | adjustment
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # As supplied; only adjustments may be negative
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    # Signed effect on current_balance
    balance_delta: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)

    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    consignment = relationship("Consignment", back_populates="transactions")


class ProductionOutput(Base):
    """What one production run produced from consigned material.

    Disposition:  pending → completed → returned_to_client | kept_as_stock
    """
    __tablename__ = "production_outputs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    consignment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("consignments.id"), nullable=False, index=True
    )

    production_order_id: Mapped[str | None] = mapped_column(String(36), index=True)
    production_order_number: Mapped[str | None] = mapped_column(String(50))

    output_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    output_unit: Mapped[str] = mapped_column(String(10), nullable=False)
    # finished_goods | semi_finished | waste
    output_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quality_grade: Mapped[str | None] = mapped_column(String(10))

    # Output descriptor when it differs from the source fabric
    fabric_type: Mapped[str | None] = mapped_column(String(100))
    color: Mapped[str | None] = mapped_column(String(100))
    gsm: Mapped[float | None] = mapped_column(Float)

    # pending | completed | returned_to_client | kept_as_stock
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    client_return_quantity: Mapped[float | None] = mapped_column(Float)
    kept_as_stock_quantity: Mapped[float | None] = mapped_column(Float)

    # {"input_quantity": .., "input_unit": .., "output_quantity": ..,
    #  "output_unit": .., "elongation_quantity": .., "elongation_percentage": ..,
    #  "reason": "stitching", "notes": ..}
    elongation: Mapped[dict | None] = mapped_column(JSON)

    # Set when the output was kept as company stock
    inventory_item_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("inventory_items.id")
    )

    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    consignment = relationship("Consignment", back_populates="production_outputs")
