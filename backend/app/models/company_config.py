"""Company-scoped configuration key-value store."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class CompanyConfig(Base):
    """Key-value configuration per company.

    Used for:
      - low_stock_thresholds: {"meters": 100, "yards": 100, "pieces": 10}
      - number_formats: {"receipt": "GRN-{date}-{seq:3}"}
    """
    __tablename__ = "company_config"
    __table_args__ = (
        UniqueConstraint("company_id", "key", name="uq_company_config_key"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
