"""Pydantic schemas for the inventory aggregate."""

from datetime import datetime

from pydantic import BaseModel


class InventoryItemOut(BaseModel):
    id: str
    item_code: str
    item_name: str
    item_kind: str
    fabric_type: str
    color: str
    gsm: float | None
    current_stock: float
    reserved_stock: float
    damaged_stock: float
    available_stock: float
    unit: str
    average_cost: float
    total_value: float
    source_info: dict | None
    last_movement_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InventoryMovementOut(BaseModel):
    id: str
    movement_type: str
    current_delta: float
    reserved_delta: float
    damaged_delta: float
    value_delta: float
    current_after: float
    reference_type: str | None
    reference_id: str | None
    reference_code: str | None
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}
