"""Initial schema: staff, stock, job cards, requisitions, timesheets, invoices.

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
from sqlalchemy.dialects import postgresql

# Types are created once up front; columns only reference them.
EMPLOYEE_ROLE = postgresql.ENUM(
    "ADMIN", "MANAGER", "SERVICE_ADVISOR", "TECHNICIAN", "STORES", name="employeerole",
    create_type=False,
)
JOB_CARD_STATUS = postgresql.ENUM(
    "OPEN", "IN_PROGRESS", "FROZEN", "COMPLETED", "CLOSED", name="jobcardstatus",
    create_type=False,
)
REQUISITION_STATUS = postgresql.ENUM(
    "REQUESTED", "APPROVED", "DISBURSED", "USED", "PARTIALLY_USED",
    "NOT_AVAILABLE", "REJECTED", name="requisitionstatus", create_type=False,
)
INVOICE_STATUS = postgresql.ENUM(
    "DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED", name="invoicestatus", create_type=False
)
INVOICE_ITEM_TYPE = postgresql.ENUM(
    "LABOR", "PART", "SUBLET", "OTHER", name="invoiceitemtype", create_type=False
)
PAYMENT_METHOD = postgresql.ENUM(
    "CASH", "CARD", "BANK_TRANSFER", "MOBILE_MONEY", "CHEQUE", name="paymentmethod",
    create_type=False,
)

ALL_ENUMS = (
    EMPLOYEE_ROLE, JOB_CARD_STATUS, REQUISITION_STATUS,
    INVOICE_STATUS, INVOICE_ITEM_TYPE, PAYMENT_METHOD,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ALL_ENUMS:
        enum.create(bind, checkfirst=True)

    # ── Staff & stock ────────────────────────────────────────

    op.create_table(
        "employees",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("role", EMPLOYEE_ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("unit_of_measure", sa.String(20), server_default="EA"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("selling_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )
    op.create_index("ix_products_code", "products", ["code"], unique=True)

    # ── Job cards ────────────────────────────────────────────

    op.create_table(
        "job_cards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("number", sa.String(30), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("client_id", sa.String(36), nullable=False),
        sa.Column("vehicle_id", sa.String(36), nullable=False),
        sa.Column("service_advisor_id", sa.String(36), sa.ForeignKey("employees.id")),
        sa.Column("supervisor_id", sa.String(36), sa.ForeignKey("employees.id")),
        sa.Column("state_checklist_id", sa.String(36)),
        sa.Column("service_checklist_id", sa.String(36)),
        sa.Column("control_checklist_id", sa.String(36)),
        sa.Column("status", JOB_CARD_STATUS, nullable=False),
        sa.Column("frozen_from", JOB_CARD_STATUS),
        sa.Column("priority", sa.Boolean(), server_default=sa.false()),
        sa.Column("date_in", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("estimated_completion", sa.DateTime()),
        sa.Column("deadline", sa.DateTime()),
        sa.Column("frozen_at", sa.DateTime()),
        sa.Column("freeze_reason", sa.Text()),
        sa.Column("closed_at", sa.DateTime()),
        sa.Column("close_notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_job_cards_number", "job_cards", ["number"], unique=True)
    op.create_index("ix_job_cards_client_id", "job_cards", ["client_id"])
    op.create_index("ix_job_cards_vehicle_id", "job_cards", ["vehicle_id"])
    op.create_index("ix_job_cards_status", "job_cards", ["status"])

    op.create_table(
        "job_card_technicians",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_card_id", sa.String(36), sa.ForeignKey("job_cards.id"), nullable=False),
        sa.Column("technician_id", sa.String(36), sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("assigned_by", sa.String(36)),
        sa.Column("assigned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("job_card_id", "technician_id", name="uq_job_card_technician"),
    )
    op.create_index("ix_job_card_technicians_job_card_id", "job_card_technicians", ["job_card_id"])

    # ── Requisitions ─────────────────────────────────────────

    op.create_table(
        "part_requisitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_card_id", sa.String(36), sa.ForeignKey("job_cards.id"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("requested_quantity", sa.Integer(), nullable=False),
        sa.Column("approved_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("disbursed_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(12, 2)),
        sa.Column("status", REQUISITION_STATUS, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("status_notes", sa.Text()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("requested_by_id", sa.String(36), nullable=False),
        sa.Column("requested_by_role", EMPLOYEE_ROLE, nullable=False),
        sa.Column("requested_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("approved_by_id", sa.String(36)),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("disbursed_by_id", sa.String(36)),
        sa.Column("disbursed_at", sa.DateTime()),
        sa.Column("used_by_id", sa.String(36)),
        sa.Column("used_at", sa.DateTime()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("requested_quantity > 0", name="ck_requisition_requested_positive"),
        sa.CheckConstraint(
            "approved_quantity >= 0 AND approved_quantity <= requested_quantity",
            name="ck_requisition_approved_bounds",
        ),
        sa.CheckConstraint(
            "disbursed_quantity >= 0 AND disbursed_quantity <= approved_quantity",
            name="ck_requisition_disbursed_bounds",
        ),
        sa.CheckConstraint(
            "used_quantity >= 0 AND used_quantity <= disbursed_quantity",
            name="ck_requisition_used_bounds",
        ),
    )
    op.create_index("ix_part_requisitions_job_card_id", "part_requisitions", ["job_card_id"])
    op.create_index("ix_part_requisitions_product_id", "part_requisitions", ["product_id"])
    op.create_index("ix_part_requisitions_status", "part_requisitions", ["status"])
    op.create_index("ix_part_requisitions_requested_by_id", "part_requisitions", ["requested_by_id"])

    # ── Timesheets ───────────────────────────────────────────

    op.create_table(
        "timesheets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_card_id", sa.String(36), sa.ForeignKey("job_cards.id"), nullable=False),
        sa.Column("technician_id", sa.String(36), sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("report", sa.Text()),
        sa.Column("clock_in_at", sa.DateTime(), nullable=False),
        sa.Column("clock_out_at", sa.DateTime()),
        sa.Column("hours_worked", sa.Float()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_timesheets_job_card_id", "timesheets", ["job_card_id"])
    op.create_index("ix_timesheets_technician_id", "timesheets", ["technician_id"])

    # ── Invoices ─────────────────────────────────────────────

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("number", sa.String(30), nullable=False),
        sa.Column("job_card_id", sa.String(36), sa.ForeignKey("job_cards.id")),
        sa.Column("client_id", sa.String(36), nullable=False),
        sa.Column("vehicle_id", sa.String(36)),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date()),
        sa.Column("sent_at", sa.DateTime()),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("status", INVOICE_STATUS, nullable=False),
        sa.Column("payment_terms", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_invoices_number", "invoices", ["number"], unique=True)
    op.create_index("ix_invoices_job_card_id", "invoices", ["job_card_id"])
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_index("ix_invoices_status", "invoices", ["status"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_id", sa.String(36), sa.ForeignKey("invoices.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id")),
        sa.Column("requisition_id", sa.String(36)),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("item_type", INVOICE_ITEM_TYPE, nullable=False),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_id", sa.String(36), sa.ForeignKey("invoices.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", PAYMENT_METHOD, nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("refund_of", sa.String(36), sa.ForeignKey("invoice_payments.id")),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_invoice_payments_invoice_id", "invoice_payments", ["invoice_id"])

    # ── Audit ────────────────────────────────────────────────

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("actor_role", sa.String(30), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("invoice_payments")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("timesheets")
    op.drop_table("part_requisitions")
    op.drop_table("job_card_technicians")
    op.drop_table("job_cards")
    op.drop_table("products")
    op.drop_table("employees")
    for enum in reversed(ALL_ENUMS):
        enum.drop(op.get_bind(), checkfirst=True)
