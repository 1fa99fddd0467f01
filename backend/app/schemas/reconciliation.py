"""Pydantic schemas for receipt ↔ inventory reconciliation."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class AlertOut(BaseModel):
    id: str
    alert_type: str
    severity: str
    title: str
    description: str
    expected_value: float | None
    actual_value: float | None
    variance: float | None
    variance_pct: float | None
    unit: str | None
    entity_refs: dict | None
    status: str
    resolved_at: datetime | None
    resolved_by: str | None
    resolution_note: str | None
    run_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AlertUpdate(BaseModel):
    status: Literal["acknowledged", "resolved", "dismissed"]
    resolution_note: str | None = None


class RunSummary(BaseModel):
    run_id: str
    ran_at: datetime
    items_checked: int
    total_alerts: int
    by_type: dict[str, int]
    by_severity: dict[str, int]
