"""ReconciliationAlert — flags drift between receipt lots and inventory stock.

Each alert is a single inventory item whose stored stock differs from
the stock recomputed from the lots of every receipt referencing it.

Lifecycle:  open → acknowledged → resolved | dismissed
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ReconciliationAlert(Base):
    __tablename__ = "reconciliation_alerts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # current_stock | reserved_stock | damaged_stock
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # critical | high | medium | low
    severity: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # expected = recomputed from lots, actual = stored on the item
    expected_value: Mapped[float | None] = mapped_column(Float)
    actual_value: Mapped[float | None] = mapped_column(Float)
    variance: Mapped[float | None] = mapped_column(Float)
    variance_pct: Mapped[float | None] = mapped_column(Float)
    unit: Mapped[str | None] = mapped_column(String(20))

    # {"item_id": "...", "item_code": "...", "receipt_ids": [...]}
    entity_refs: Mapped[dict | None] = mapped_column(JSON)

    # open | acknowledged | resolved | dismissed
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)
    resolved_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    resolution_note: Mapped[str | None] = mapped_column(Text)

    run_id: Mapped[str | None] = mapped_column(String(36), index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
