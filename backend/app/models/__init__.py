"""Aggregate model imports for Alembic auto-detection."""

# Receipts and lots
from app.models.receipt import Receipt, ReceiptHistory  # noqa: F401
from app.models.lot import FabricLot  # noqa: F401

# Consignment
from app.models.consignment import (  # noqa: F401
    Consignment,
    ConsignmentTransaction,
    ProductionOutput,
)

# Inventory aggregate
from app.models.inventory_item import InventoryItem, InventoryMovement  # noqa: F401

# Audit / config / reconciliation
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.company_config import CompanyConfig  # noqa: F401
from app.models.reconciliation_alert import ReconciliationAlert  # noqa: F401

__all__ = [
    "Receipt", "ReceiptHistory", "FabricLot",
    "Consignment", "ConsignmentTransaction", "ProductionOutput",
    "InventoryItem", "InventoryMovement",
    "ActivityLog", "CompanyConfig", "ReconciliationAlert",
]
