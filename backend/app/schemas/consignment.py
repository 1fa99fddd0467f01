"""Pydantic schemas for consignments, ledger entries and production outputs."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

TransactionType = Literal[
    "received", "consumed", "waste", "returned", "kept_as_stock", "adjustment",
]
OutputType = Literal["finished_goods", "semi_finished", "waste"]
OutputStatus = Literal["pending", "completed", "returned_to_client", "kept_as_stock"]
ElongationReason = Literal["stitching", "processing", "finishing", "natural_stretch", "other"]


# ── Consignment ──────────────────────────────────────────────

class ConsignmentCreate(BaseModel):
    client_id: str
    client_name: str | None = None
    client_order_id: str | None = None
    client_order_number: str | None = None


class ConsignmentTransactionCreate(BaseModel):
    """Payload for POST /api/receipts/{id}/consignment/transactions."""
    transaction_type: TransactionType
    quantity: float
    reference: str = Field(..., min_length=1, max_length=100)
    notes: str | None = None


class ConsumptionUpdate(BaseModel):
    """Cumulative consumption figures for PUT …/consignment/consumption."""
    consumed_quantity: float = Field(..., ge=0)
    waste_quantity: float = Field(..., ge=0)
    notes: str | None = None


class ClientReturnRequest(BaseModel):
    return_quantity: float = Field(..., gt=0)
    return_reason: str = Field(..., min_length=1)
    return_date: date | None = None
    notes: str | None = None


class ConsignmentTransactionOut(BaseModel):
    id: str
    sequence: int
    transaction_type: str
    quantity: float
    balance_delta: float
    balance_after: float
    reference: str
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


# ── Production outputs ───────────────────────────────────────

class ElongationInput(BaseModel):
    input_quantity: float = Field(..., gt=0)
    input_unit: Literal["meters", "yards", "pieces"]
    reason: ElongationReason = "processing"
    quality_impact: Literal["positive", "neutral", "negative"] = "neutral"
    notes: str | None = None


class ProductionOutputCreate(BaseModel):
    """Payload for POST /api/receipts/{id}/production-outputs."""
    output_quantity: float = Field(..., gt=0)
    output_unit: Literal["meters", "yards", "pieces"]
    output_type: OutputType
    production_order_id: str | None = None
    production_order_number: str | None = None
    quality_grade: Literal["A+", "A", "B+", "B", "C"] | None = None
    status: Literal["pending", "completed"] = "pending"

    # Descriptor of the output when it differs from the source fabric
    fabric_type: str | None = None
    color: str | None = None
    gsm: float | None = Field(None, gt=0)

    elongation: ElongationInput | None = None
    notes: str | None = None


class ProductionOutputResolve(BaseModel):
    """Payload for PUT …/production-outputs/{output_id}/status."""
    status: Literal["completed", "returned_to_client", "kept_as_stock"]
    client_return_quantity: float | None = Field(None, ge=0)
    kept_as_stock_quantity: float | None = Field(None, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def quantity_for_disposition(self):
        if self.status == "kept_as_stock" and not self.kept_as_stock_quantity:
            raise ValueError("kept_as_stock requires a kept_as_stock_quantity above 0")
        if self.status == "returned_to_client":
            if not self.client_return_quantity:
                raise ValueError("returned_to_client requires a client_return_quantity above 0")
            # Returned output never enters company stock
            if self.kept_as_stock_quantity:
                raise ValueError("returned_to_client cannot carry a kept_as_stock_quantity")
        return self


class ProductionOutputOut(BaseModel):
    id: str
    production_order_id: str | None
    production_order_number: str | None
    output_quantity: float
    output_unit: str
    output_type: str
    quality_grade: str | None
    fabric_type: str | None
    color: str | None
    gsm: float | None
    status: str
    client_return_quantity: float | None
    kept_as_stock_quantity: float | None
    elongation: dict | None
    inventory_item_id: str | None
    notes: str | None
    completed_at: datetime | None
    resolved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConsignmentOut(BaseModel):
    id: str
    client_id: str
    client_name: str | None
    client_order_id: str | None
    client_order_number: str | None
    unit: str

    total_received: float
    total_consumed: float
    total_waste: float
    total_returned: float
    total_kept_as_stock: float
    current_balance: float

    consumed_quantity: float
    waste_quantity: float
    returnable_quantity: float
    returnable_shortfall: bool
    consumption_notes: str | None

    transactions: list[ConsignmentTransactionOut] = []
    production_outputs: list[ProductionOutputOut] = []

    model_config = {"from_attributes": True}


# ── Client material views ────────────────────────────────────

class ClientMaterialSummary(BaseModel):
    client_id: str
    client_name: str | None
    receipt_count: int
    total_received: float
    total_consumed: float
    total_waste: float
    total_returned: float
    total_kept_as_stock: float
    current_balance: float
    # Ledger totals are per unit, never summed across units
    unit: str


class ClientMaterialHistoryEntry(BaseModel):
    receipt_id: str
    grn_number: str
    unit: str
    transaction: ConsignmentTransactionOut


class ClientMaterialForReturn(BaseModel):
    receipt_id: str
    grn_number: str
    client_id: str
    client_name: str | None
    fabric_type: str
    color: str
    unit: str
    current_balance: float
    returnable_quantity: float
