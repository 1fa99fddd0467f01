"""Initial ledger schema — receipts, lots, consignments, inventory, audit.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Config / audit ───────────────────────────────────────

    op.create_table(
        "company_config",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("company_id", "key", name="uq_company_config_key"),
    )
    op.create_index("ix_company_config_company_id", "company_config", ["company_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    for col in ("company_id", "user_id", "action", "entity_type", "created_at"):
        op.create_index(f"ix_activity_logs_{col}", "activity_logs", [col])

    # ── Receipts / lots ──────────────────────────────────────

    op.create_table(
        "receipts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("grn_number", sa.String(50), nullable=False),
        sa.Column("entry_type", sa.String(30), nullable=False),
        sa.Column("material_source", sa.String(30), nullable=False),
        sa.Column("purchase_order_id", sa.String(36)),
        sa.Column("production_order_id", sa.String(36)),
        sa.Column("supplier_id", sa.String(36)),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("fabric_type", sa.String(100), nullable=False),
        sa.Column("fabric_grade", sa.String(10)),
        sa.Column("gsm", sa.Float()),
        sa.Column("width", sa.Float()),
        sa.Column("color", sa.String(100), nullable=False),
        sa.Column("received_quantity", sa.Float(), server_default="0"),
        sa.Column("accepted_quantity", sa.Float()),
        sa.Column("rejected_quantity", sa.Float()),
        sa.Column("unit", sa.String(10), nullable=False),
        sa.Column("warehouse_id", sa.String(36)),
        sa.Column("warehouse_name", sa.String(255)),
        sa.Column("balance", sa.JSON(), nullable=False),
        sa.Column("stock_status", sa.String(20), server_default="out_of_stock"),
        sa.Column("notes", sa.Text()),
        sa.Column("received_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("received_by", sa.String(36)),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("deleted_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("company_id", "grn_number", name="uq_receipts_company_grn"),
    )
    for col in (
        "company_id", "grn_number", "material_source", "purchase_order_id",
        "fabric_type", "color", "stock_status", "is_deleted", "created_at",
    ):
        op.create_index(f"ix_receipts_{col}", "receipts", [col])

    op.create_table(
        "receipt_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("receipt_id", sa.String(36), sa.ForeignKey("receipts.id"), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("event_data", sa.JSON()),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    for col in ("receipt_id", "event_type", "recorded_at"):
        op.create_index(f"ix_receipt_history_{col}", "receipt_history", [col])

    op.create_table(
        "fabric_lots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("receipt_id", sa.String(36), sa.ForeignKey("receipts.id"), nullable=False),
        sa.Column("lot_number", sa.String(50), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("quality_grade", sa.String(10)),
        sa.Column("cost_per_unit", sa.Float(), server_default="0"),
        sa.Column("total_cost", sa.Float(), server_default="0"),
        sa.Column("warehouse_id", sa.String(36)),
        sa.Column("warehouse_name", sa.String(255)),
        sa.Column("rack_location", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("status_changed_at", sa.DateTime()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("receipt_id", "lot_number", name="uq_fabric_lots_receipt_lot"),
    )
    op.create_index("ix_fabric_lots_receipt_id", "fabric_lots", ["receipt_id"])
    op.create_index("ix_fabric_lots_status", "fabric_lots", ["status"])

    # ── Inventory aggregate ──────────────────────────────────

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("item_code", sa.String(100), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("item_kind", sa.String(20), nullable=False, server_default="grey_fabric"),
        sa.Column("fabric_type", sa.String(100), nullable=False),
        sa.Column("color", sa.String(100), nullable=False),
        sa.Column("gsm", sa.Float()),
        sa.Column("current_stock", sa.Float(), server_default="0"),
        sa.Column("reserved_stock", sa.Float(), server_default="0"),
        sa.Column("damaged_stock", sa.Float(), server_default="0"),
        sa.Column("available_stock", sa.Float(), server_default="0"),
        sa.Column("unit", sa.String(10), nullable=False, server_default="meters"),
        sa.Column("average_cost", sa.Float(), server_default="0"),
        sa.Column("total_value", sa.Float(), server_default="0"),
        sa.Column("source_info", sa.JSON()),
        sa.Column("last_movement_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    for col in ("company_id", "item_code", "fabric_type"):
        op.create_index(f"ix_inventory_items_{col}", "inventory_items", [col])
    op.create_index(
        "uq_inventory_items_descriptor",
        "inventory_items",
        [
            "company_id",
            "item_kind",
            sa.text("lower(fabric_type)"),
            sa.text("lower(color)"),
            sa.text("coalesce(gsm, -1)"),
            "unit",
        ],
        unique=True,
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("item_id", sa.String(36), sa.ForeignKey("inventory_items.id"), nullable=False),
        sa.Column("movement_type", sa.String(30), nullable=False),
        sa.Column("current_delta", sa.Float(), server_default="0"),
        sa.Column("reserved_delta", sa.Float(), server_default="0"),
        sa.Column("damaged_delta", sa.Float(), server_default="0"),
        sa.Column("value_delta", sa.Float(), server_default="0"),
        sa.Column("current_after", sa.Float(), nullable=False),
        sa.Column("reference_type", sa.String(30)),
        sa.Column("reference_id", sa.String(36)),
        sa.Column("reference_code", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_inventory_movements_item_id", "inventory_movements", ["item_id"])
    op.create_index("ix_inventory_movements_recorded_at", "inventory_movements", ["recorded_at"])

    # ── Consignments ─────────────────────────────────────────

    op.create_table(
        "consignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("receipt_id", sa.String(36), sa.ForeignKey("receipts.id"), nullable=False, unique=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("client_id", sa.String(36), nullable=False),
        sa.Column("client_name", sa.String(255)),
        sa.Column("client_order_id", sa.String(36)),
        sa.Column("client_order_number", sa.String(50)),
        sa.Column("unit", sa.String(10), nullable=False),
        sa.Column("total_received", sa.Float(), server_default="0"),
        sa.Column("total_consumed", sa.Float(), server_default="0"),
        sa.Column("total_waste", sa.Float(), server_default="0"),
        sa.Column("total_returned", sa.Float(), server_default="0"),
        sa.Column("total_kept_as_stock", sa.Float(), server_default="0"),
        sa.Column("current_balance", sa.Float(), server_default="0"),
        sa.Column("consumed_quantity", sa.Float(), server_default="0"),
        sa.Column("waste_quantity", sa.Float(), server_default="0"),
        sa.Column("returnable_quantity", sa.Float(), server_default="0"),
        sa.Column("returnable_shortfall", sa.Boolean(), server_default=sa.false()),
        sa.Column("consumption_notes", sa.Text()),
        sa.Column("consumption_updated_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_consignments_company_id", "consignments", ["company_id"])
    op.create_index("ix_consignments_client_id", "consignments", ["client_id"])

    op.create_table(
        "consignment_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("consignment_id", sa.String(36), sa.ForeignKey("consignments.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("balance_delta", sa.Float(), nullable=False),
        sa.Column("balance_after", sa.Float(), nullable=False),
        sa.Column("reference", sa.String(100), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    for col in ("consignment_id", "transaction_type", "recorded_at"):
        op.create_index(f"ix_consignment_transactions_{col}", "consignment_transactions", [col])

    op.create_table(
        "production_outputs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("consignment_id", sa.String(36), sa.ForeignKey("consignments.id"), nullable=False),
        sa.Column("production_order_id", sa.String(36)),
        sa.Column("production_order_number", sa.String(50)),
        sa.Column("output_quantity", sa.Float(), nullable=False),
        sa.Column("output_unit", sa.String(10), nullable=False),
        sa.Column("output_type", sa.String(20), nullable=False),
        sa.Column("quality_grade", sa.String(10)),
        sa.Column("fabric_type", sa.String(100)),
        sa.Column("color", sa.String(100)),
        sa.Column("gsm", sa.Float()),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("client_return_quantity", sa.Float()),
        sa.Column("kept_as_stock_quantity", sa.Float()),
        sa.Column("elongation", sa.JSON()),
        sa.Column("inventory_item_id", sa.String(36), sa.ForeignKey("inventory_items.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    for col in ("consignment_id", "production_order_id", "status"):
        op.create_index(f"ix_production_outputs_{col}", "production_outputs", [col])

    # ── Reconciliation ───────────────────────────────────────

    op.create_table(
        "reconciliation_alerts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("expected_value", sa.Float()),
        sa.Column("actual_value", sa.Float()),
        sa.Column("variance", sa.Float()),
        sa.Column("variance_pct", sa.Float()),
        sa.Column("unit", sa.String(20)),
        sa.Column("entity_refs", sa.JSON()),
        sa.Column("status", sa.String(20), server_default="open"),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("resolved_by", sa.String(36)),
        sa.Column("resolution_note", sa.Text()),
        sa.Column("run_id", sa.String(36)),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    for col in ("company_id", "alert_type", "severity", "status", "run_id"):
        op.create_index(f"ix_reconciliation_alerts_{col}", "reconciliation_alerts", [col])


def downgrade() -> None:
    for table in (
        "reconciliation_alerts",
        "production_outputs",
        "consignment_transactions",
        "consignments",
        "inventory_movements",
        "inventory_items",
        "fabric_lots",
        "receipt_history",
        "receipts",
        "activity_logs",
        "company_config",
    ):
        op.drop_table(table)
