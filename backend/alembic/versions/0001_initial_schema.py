"""Initial schema: companies, billing ledger, approvals, owner changes.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "invoice_status": ("draft", "issued", "partial", "paid", "cancelled", "void"),
    "invoice_line_type": ("service", "labor", "parts", "supplies", "adjustment", "other", "deposit_applied"),
    "invoice_audit_action": ("create", "edit", "issue", "delete"),
    "payment_method": ("cash", "check", "credit_card", "debit_card", "bank_transfer", "other"),
    "deposit_type": ("general", "parts", "supplies"),
    "job_status": ("upcoming", "in_progress", "done", "cancelled"),
    "approval_action": ("employee_pay_change", "job_update", "invoice_update"),
    "approval_status": ("pending", "approved", "applied", "rejected", "cancelled", "failed"),
    "approval_decision": ("approve", "reject"),
    "owner_change_action": ("add_owner", "remove_owner"),
    "owner_change_status": ("pending", "approved", "rejected", "cancelled", "executed"),
    "owner_change_decision": ("approve", "reject"),
}


def _is_sqlite() -> bool:
    return op.get_bind().dialect.name == "sqlite"


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _fk(column: str, table: str, target: str, ondelete: str | None = None) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column],
        [f"{target}.id"],
        name=f"fk_{table}_{column}_{target}",
        ondelete=ondelete,
    )


def _index(table: str, *columns: str, unique: bool = False) -> None:
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column], unique=unique)


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
    )
    _index("profiles", "id", "email")

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_companies"),
    )
    _index("companies", "id")

    op.create_table(
        "company_owners",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("is_primary_owner", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ownership_percentage", sa.Numeric(5, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_company_owners"),
        _fk("company_id", "company_owners", "companies", "CASCADE"),
        _fk("profile_id", "company_owners", "profiles", "CASCADE"),
        sa.UniqueConstraint("company_id", "profile_id", name="uq_company_owners_company_profile"),
    )
    _index("company_owners", "id", "company_id", "profile_id")

    op.create_table(
        "company_employees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_company_employees"),
        _fk("company_id", "company_employees", "companies", "CASCADE"),
        _fk("profile_id", "company_employees", "profiles"),
    )
    _index("company_employees", "id", "company_id", "profile_id")

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_customers"),
        _fk("company_id", "customers", "companies", "CASCADE"),
    )
    _index("customers", "id", "company_id")

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("service_address", sa.String(length=255), nullable=True),
        sa.Column("service_address_line_2", sa.String(length=255), nullable=True),
        sa.Column("service_city", sa.String(length=100), nullable=True),
        sa.Column("service_state", sa.String(length=100), nullable=True),
        sa.Column("service_zipcode", sa.String(length=20), nullable=True),
        sa.Column("service_country", sa.String(length=100), nullable=True),
        sa.Column("tasks_to_complete", sa.Text(), nullable=True),
        sa.Column("status", _enum("job_status"), nullable=False, server_default="upcoming"),
        sa.Column("planned_end_date", sa.Date(), nullable=True),
        sa.Column("estimated_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("arrival_window_start_time", sa.Time(), nullable=True),
        sa.Column("arrival_window_end_time", sa.Time(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_jobs"),
        _fk("company_id", "jobs", "companies", "CASCADE"),
        _fk("customer_id", "jobs", "customers"),
    )
    _index("jobs", "id", "company_id", "customer_id", "status")

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", _enum("payment_method"), nullable=False, server_default="other"),
        sa.Column("is_deposit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_type", _enum("deposit_type"), nullable=True),
        sa.Column("memo", sa.String(length=500), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        _fk("company_id", "payments", "companies", "CASCADE"),
        _fk("customer_id", "payments", "customers"),
        _fk("job_id", "payments", "jobs"),
        _fk("created_by", "payments", "profiles"),
    )
    _index("payments", "id", "company_id", "customer_id", "job_id", "is_deposit", "created_by")

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=50), nullable=False),
        sa.Column("status", _enum("invoice_status"), nullable=False, server_default="draft"),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("terms", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_invoices"),
        _fk("company_id", "invoices", "companies", "CASCADE"),
        _fk("customer_id", "invoices", "customers"),
        _fk("created_by", "invoices", "profiles"),
        sa.UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
    )
    _index("invoices", "id", "company_id", "customer_id", "invoice_number", "status", "invoice_date", "due_date", "created_by")

    op.create_table(
        "invoice_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("line_type", _enum("invoice_line_type"), nullable=False, server_default="service"),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("taxable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tax_rate", sa.Numeric(7, 4), nullable=False, server_default="0"),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("applied_payment_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_invoice_lines"),
        _fk("invoice_id", "invoice_lines", "invoices", "CASCADE"),
        _fk("job_id", "invoice_lines", "jobs"),
        _fk("applied_payment_id", "invoice_lines", "payments"),
    )
    _index("invoice_lines", "id", "invoice_id", "job_id", "applied_payment_id")

    op.create_table(
        "payment_applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("invoice_line_id", sa.Integer(), nullable=True),
        sa.Column("applied_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("applied_by", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payment_applications"),
        sa.CheckConstraint("applied_amount > 0", name="ck_payment_applications_applied_amount_positive"),
        _fk("payment_id", "payment_applications", "payments", "CASCADE"),
        _fk("invoice_id", "payment_applications", "invoices", "CASCADE"),
        _fk("invoice_line_id", "payment_applications", "invoice_lines", "SET NULL"),
        _fk("applied_by", "payment_applications", "profiles"),
    )
    _index("payment_applications", "id", "payment_id", "invoice_id", "invoice_line_id", "applied_by")

    op.create_table(
        "invoice_audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("actor_profile_id", sa.Integer(), nullable=True),
        sa.Column("action", _enum("invoice_audit_action"), nullable=False),
        sa.Column("diff_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_invoice_audit_logs"),
        _fk("company_id", "invoice_audit_logs", "companies", "CASCADE"),
        _fk("actor_profile_id", "invoice_audit_logs", "profiles"),
    )
    _index("invoice_audit_logs", "id", "invoice_id", "company_id", "actor_profile_id", "action")

    op.create_table(
        "company_invoice_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_company_invoice_counters"),
        _fk("company_id", "company_invoice_counters", "companies", "CASCADE"),
    )
    _index("company_invoice_counters", "id")
    _index("company_invoice_counters", "company_id", unique=True)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("actor_profile_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("entity_table", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_activity_logs"),
        _fk("company_id", "activity_logs", "companies", "CASCADE"),
        _fk("actor_profile_id", "activity_logs", "profiles"),
    )
    _index("activity_logs", "id", "company_id", "actor_profile_id", "type", "entity_table")

    op.create_table(
        "approval_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("action", _enum("approval_action"), nullable=False),
        sa.Column("entity_table", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("entity_label", sa.String(length=255), nullable=True),
        sa.Column("summary", sa.String(length=500), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", _enum("approval_status"), nullable=False, server_default="pending"),
        sa.Column("required_approvals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requested_by", sa.Integer(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_by", sa.Integer(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_approval_requests"),
        _fk("company_id", "approval_requests", "companies", "CASCADE"),
        _fk("requested_by", "approval_requests", "profiles"),
        _fk("applied_by", "approval_requests", "profiles"),
    )
    _index("approval_requests", "id", "company_id", "action", "entity_id", "status", "requested_by")

    op.create_table(
        "approval_decisions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("approval_request_id", sa.Integer(), nullable=False),
        sa.Column("approver_profile_id", sa.Integer(), nullable=False),
        sa.Column("decision", _enum("approval_decision"), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_approval_decisions"),
        _fk("approval_request_id", "approval_decisions", "approval_requests", "CASCADE"),
        _fk("approver_profile_id", "approval_decisions", "profiles"),
        sa.UniqueConstraint(
            "approval_request_id",
            "approver_profile_id",
            name="uq_approval_decisions_request_approver",
        ),
    )
    _index("approval_decisions", "id", "approval_request_id", "approver_profile_id")

    op.create_table(
        "owner_change_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("action", _enum("owner_change_action"), nullable=False),
        sa.Column("target_profile_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("status", _enum("owner_change_status"), nullable=False, server_default="pending"),
        sa.Column("required_approvals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cooldown_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_owner_change_requests"),
        _fk("company_id", "owner_change_requests", "companies", "CASCADE"),
        _fk("target_profile_id", "owner_change_requests", "profiles"),
        _fk("created_by", "owner_change_requests", "profiles"),
    )
    _index("owner_change_requests", "id", "company_id", "target_profile_id", "created_by", "status")

    op.create_table(
        "owner_change_approvals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("approver_profile_id", sa.Integer(), nullable=False),
        sa.Column("decision", _enum("owner_change_decision"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_owner_change_approvals"),
        _fk("request_id", "owner_change_approvals", "owner_change_requests", "CASCADE"),
        _fk("approver_profile_id", "owner_change_approvals", "profiles"),
        sa.UniqueConstraint(
            "request_id",
            "approver_profile_id",
            name="uq_owner_change_approvals_request_approver",
        ),
    )
    _index("owner_change_approvals", "id", "request_id", "approver_profile_id")

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("response_payload", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_idempotency_keys"),
        _fk("profile_id", "idempotency_keys", "profiles"),
        sa.UniqueConstraint("key", "scope", "profile_id", name="uq_idempotency_key_scope_profile"),
    )
    _index("idempotency_keys", "id", "key", "scope", "profile_id")


def downgrade() -> None:
    for table in (
        "idempotency_keys",
        "owner_change_approvals",
        "owner_change_requests",
        "approval_decisions",
        "approval_requests",
        "activity_logs",
        "company_invoice_counters",
        "invoice_audit_logs",
        "payment_applications",
        "invoice_lines",
        "invoices",
        "payments",
        "jobs",
        "customers",
        "company_employees",
        "company_owners",
        "companies",
        "profiles",
    ):
        op.drop_table(table)

    if not _is_sqlite():
        bind = op.get_bind()
        for name in ENUMS:
            sa.Enum(name=name).drop(bind, checkfirst=True)
