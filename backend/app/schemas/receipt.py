"""Pydantic schemas for receipts (GRNs), lots and stock summaries."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.schemas.consignment import ConsignmentCreate, ConsignmentOut

Unit = Literal["meters", "yards", "pieces"]
LotStatus = Literal["active", "consumed", "damaged", "reserved"]
EntryType = Literal["purchase_order", "direct_stock", "transfer_in", "adjustment"]
MaterialSource = Literal["own_material", "client_provided", "job_work_material"]
StockStatus = Literal["active", "low_stock", "consumed", "out_of_stock"]
QualityGrade = Literal["A+", "A", "B+", "B", "C", "D"]


# ── Lots ─────────────────────────────────────────────────────

class LotCreate(BaseModel):
    """Payload for POST /api/receipts/{id}/lots (and inline on create)."""
    lot_number: str = Field(..., max_length=50)
    quantity: float = Field(..., gt=0)
    unit: Unit

    # Optional fields
    status: LotStatus = "active"
    quality_grade: QualityGrade | None = None
    cost_per_unit: float = Field(0.0, ge=0)
    # Computed as quantity * cost_per_unit when omitted
    total_cost: float | None = Field(None, ge=0)
    warehouse_id: str | None = None
    warehouse_name: str | None = None
    rack_location: str | None = None
    notes: str | None = None


class LotStatusUpdate(BaseModel):
    """Payload for PUT /api/receipts/{id}/lots/{lot_number}/status."""
    status: LotStatus
    notes: str | None = None


class LotOut(BaseModel):
    id: str
    lot_number: str
    quantity: float
    unit: str
    status: str
    quality_grade: str | None
    cost_per_unit: float
    total_cost: float
    warehouse_id: str | None
    warehouse_name: str | None
    rack_location: str | None
    notes: str | None
    status_changed_at: datetime | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Receipt create / update ──────────────────────────────────

class ReceiptCreate(BaseModel):
    """Payload for POST /api/receipts — the grey fabric inward form.

    Client-provided material must name the client in ``consignment``;
    other sources must not carry a consignment block.
    """
    entry_type: EntryType
    material_source: MaterialSource = "own_material"
    fabric_type: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., min_length=1, max_length=100)
    unit: Unit

    # Optional but typical
    fabric_grade: str | None = Field(None, max_length=10)
    gsm: float | None = Field(None, gt=0)
    width: float | None = Field(None, gt=0)
    received_quantity: float = Field(0.0, ge=0)
    accepted_quantity: float | None = Field(None, ge=0)
    rejected_quantity: float | None = Field(None, ge=0)
    purchase_order_id: str | None = None
    production_order_id: str | None = None
    supplier_id: str | None = None
    supplier_name: str | None = None
    warehouse_id: str | None = None
    warehouse_name: str | None = None
    notes: str | None = None

    consignment: ConsignmentCreate | None = None
    lots: list[LotCreate] = []

    @model_validator(mode="after")
    def check_consignment_and_quantities(self):
        if self.material_source == "client_provided" and self.consignment is None:
            raise ValueError("Client-provided material requires consignment.client_id")
        if self.material_source != "client_provided" and self.consignment is not None:
            raise ValueError("Only client-provided material carries a consignment")
        if self.accepted_quantity is not None and self.rejected_quantity is not None:
            if self.accepted_quantity + self.rejected_quantity > self.received_quantity:
                raise ValueError(
                    "accepted_quantity + rejected_quantity cannot exceed received_quantity"
                )
        return self


class ReceiptUpdate(BaseModel):
    fabric_type: str | None = Field(None, min_length=1, max_length=100)
    color: str | None = Field(None, min_length=1, max_length=100)
    gsm: float | None = Field(None, gt=0)
    unit: Unit | None = None
    material_source: MaterialSource | None = None
    fabric_grade: str | None = Field(None, max_length=10)
    width: float | None = Field(None, gt=0)
    accepted_quantity: float | None = Field(None, ge=0)
    rejected_quantity: float | None = Field(None, ge=0)
    supplier_name: str | None = None
    warehouse_id: str | None = None
    warehouse_name: str | None = None
    notes: str | None = None


# ── Response ─────────────────────────────────────────────────

class BalanceOut(BaseModel):
    total: dict[str, float]
    available: dict[str, float]
    reserved: dict[str, float]
    damaged: dict[str, float]
    consumed: dict[str, float]


class ReceiptOut(BaseModel):
    id: str
    company_id: str
    grn_number: str
    entry_type: str
    material_source: str
    fabric_type: str
    fabric_grade: str | None
    gsm: float | None
    width: float | None
    color: str
    received_quantity: float
    accepted_quantity: float | None
    rejected_quantity: float | None
    unit: str
    purchase_order_id: str | None
    production_order_id: str | None
    supplier_id: str | None
    supplier_name: str | None
    warehouse_id: str | None
    warehouse_name: str | None
    balance: BalanceOut
    stock_status: str
    notes: str | None
    received_at: datetime
    received_by: str | None
    version: int
    created_at: datetime
    updated_at: datetime

    lots: list[LotOut] = []
    consignment: ConsignmentOut | None = None

    locked_fields: list[str] = []
    # Degraded-consistency notices (e.g. item drift detected after the write)
    warnings: list[str] = []

    model_config = {"from_attributes": True}


class ReceiptSummary(BaseModel):
    id: str
    grn_number: str
    entry_type: str
    material_source: str
    fabric_type: str
    color: str
    gsm: float | None
    unit: str
    received_quantity: float
    stock_status: str
    balance: BalanceOut
    created_at: datetime

    model_config = {"from_attributes": True}


class ReceiptHistoryOut(BaseModel):
    id: str
    event_type: str
    event_data: dict | None
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


# ── Stock summary ────────────────────────────────────────────

class StockSummaryFilters(BaseModel):
    fabric_type: str | None = None
    color: str | None = None
    gsm: float | None = None
    stock_status: StockStatus | None = None
    material_source: MaterialSource | None = None
    client_id: str | None = None


class StockSummaryEntry(BaseModel):
    receipt_id: str
    grn_number: str
    material_source: str
    fabric_type: str
    color: str
    gsm: float | None
    stock_status: str
    lot_count: int
    balance: BalanceOut


class StockSummaryTotals(BaseModel):
    receipt_count: int
    total: dict[str, float]
    available: dict[str, float]
    reserved: dict[str, float]
    damaged: dict[str, float]
    by_status: dict[str, int]


class StockSummaryOut(BaseModel):
    entries: list[StockSummaryEntry]
    totals: StockSummaryTotals
