"""meza_base: tenants, employees, payroll runs/records/items, loans, filings, bank files, RBAC, audit

- UUID PKs via sa.Uuid + python default uuid.uuid4
- JSONB on Postgres (plain JSON elsewhere) for snapshots/config
- created_at with server_default=func.now()
- every tenant-owned table carries tenant_id with ON DELETE CASCADE
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql import func

# --- Alembic headers ---------------------------------------------------------
revision: str = "5e1c0a7d2b90"
down_revision: str | None = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True, nullable=False)


def _tenant_fk(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=nullable
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now())


def _money(name: str, precision: int = 14) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision, 2), nullable=False, server_default="0")


def upgrade() -> None:
    # tenants -----------------------------------------------------------------
    op.create_table(
        "tenants",
        _id(),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("legal_name", sa.String(length=200), nullable=True),
        sa.Column("trading_name", sa.String(length=200), nullable=True),
        sa.Column("tin_number", sa.String(length=32), nullable=True),
        sa.Column("registered_address", sa.Text(), nullable=True),
        sa.Column("company_bank_code", sa.String(length=16), nullable=True),
        sa.Column("company_account_number", sa.String(length=40), nullable=True),
        sa.Column("signatory_name", sa.String(length=120), nullable=True),
        sa.Column("signatory_position", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("meta", JSON, nullable=False),
        _created_at(),
    )

    op.create_table(
        "holiday_overrides",
        _id(),
        _tenant_fk(),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("is_holiday", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.UniqueConstraint("tenant_id", "holiday_date", name="uq_holiday_overrides_tenant_date"),
    )
    op.create_index("ix_holiday_overrides_tenant_id", "holiday_overrides", ["tenant_id"])

    # employees ---------------------------------------------------------------
    op.create_table(
        "employees",
        _id(),
        _tenant_fk(),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("nationality", sa.String(length=64), nullable=True),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("position", sa.String(length=120), nullable=True),
        sa.Column("contract_type", sa.String(length=32), nullable=False, server_default="prazo_indeterminado"),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("termination_date", sa.Date(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("pay_frequency", sa.String(length=16), nullable=False, server_default="monthly"),
        _money("monthly_salary", 12),
        sa.Column("is_hourly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        _money("food_allowance", 12),
        _money("transport_allowance", 12),
        _money("housing_allowance", 12),
        _money("other_allowance", 12),
        sa.Column("is_resident", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("has_tax_exemption", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tin", sa.String(length=32), nullable=True),
        sa.Column("inss_number", sa.String(length=32), nullable=True),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="bank_transfer"),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("bank_account_number", sa.String(length=40), nullable=True),
        sa.Column("bank_account_name", sa.String(length=120), nullable=True),
        sa.Column("meta", JSON, nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_employees_tenant_code"),
    )
    op.create_index("ix_employees_tenant_id", "employees", ["tenant_id"])

    # payroll_runs ------------------------------------------------------------
    op.create_table(
        "payroll_runs",
        _id(),
        _tenant_fk(),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("pay_date", sa.Date(), nullable=False),
        sa.Column("pay_frequency", sa.String(length=16), nullable=False, server_default="monthly"),
        sa.Column("week_number", sa.Integer(), nullable=True),
        sa.Column(
            "parent_run_id", sa.Uuid(), sa.ForeignKey("payroll_runs.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("include_subsidio_anual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reference_no", sa.String(length=64), nullable=True, unique=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("total_gross"),
        _money("total_net"),
        _money("total_deductions"),
        _money("total_income_tax"),
        _money("total_inss_employee"),
        _money("total_inss_employer"),
        _money("total_employer_cost"),
        sa.Column("employee_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=120), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meta", JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_payroll_runs_tenant_id", "payroll_runs", ["tenant_id"])

    # payroll_records ---------------------------------------------------------
    op.create_table(
        "payroll_records",
        _id(),
        sa.Column("run_id", sa.Uuid(), sa.ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False),
        _tenant_fk(),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False),
        _money("gross_pay"),
        _money("taxable_income"),
        _money("inss_base"),
        _money("income_tax"),
        _money("inss_employee"),
        _money("inss_employer"),
        _money("total_deductions"),
        _money("net_pay"),
        _money("employer_cost"),
        _money("ytd_gross_pay"),
        _money("ytd_income_tax"),
        _money("ytd_inss_employee"),
        sa.Column("sick_days_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_resident", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("snapshot_json", JSON, nullable=False),
        sa.Column("warnings", JSON, nullable=False),
        sa.Column("reference_no", sa.String(length=64), nullable=True, unique=True),
        _created_at(),
        sa.UniqueConstraint("run_id", "employee_id", name="uq_payroll_records_run_employee"),
    )
    op.create_index("ix_payroll_records_run_id", "payroll_records", ["run_id"])
    op.create_index("ix_payroll_records_tenant_id", "payroll_records", ["tenant_id"])
    op.create_index("ix_payroll_records_employee_id", "payroll_records", ["employee_id"])

    # payroll_items -----------------------------------------------------------
    op.create_table(
        "payroll_items",
        _id(),
        sa.Column("run_id", sa.Uuid(), sa.ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "record_id", sa.Uuid(), sa.ForeignKey("payroll_records.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("code", sa.String(length=30), nullable=False),
        sa.Column("description", sa.String(length=120), nullable=True),
        sa.Column("description_tl", sa.String(length=120), nullable=True),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("rate", sa.Numeric(14, 4), nullable=False, server_default="0"),
        _money("amount"),
        sa.Column("taxable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("inss_base", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("meta", JSON, nullable=False),
    )
    op.create_index("ix_payroll_items_run_id", "payroll_items", ["run_id"])
    op.create_index("ix_payroll_items_record_id", "payroll_items", ["record_id"])

    # payroll_configs ---------------------------------------------------------
    op.create_table(
        "payroll_configs",
        _id(),
        _tenant_fk(),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value_json", JSON, nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "key", "effective_from", name="uq_payroll_configs_tenant_key_from"),
    )
    op.create_index("ix_payroll_configs_tenant_id", "payroll_configs", ["tenant_id"])

    # employee_loans ----------------------------------------------------------
    op.create_table(
        "employee_loans",
        _id(),
        _tenant_fk(),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        sa.Column("loan_type", sa.String(length=16), nullable=False, server_default="loan"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("request_date", sa.Date(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("repayment_method", sa.String(length=16), nullable=False, server_default="fixed"),
        sa.Column("repayment_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("repayment_percentage", sa.Numeric(6, 2), nullable=True),
        _money("total_repaid", 12),
        _money("remaining_balance", 12),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_employee_loans_tenant_id", "employee_loans", ["tenant_id"])
    op.create_index("ix_employee_loans_employee_id", "employee_loans", ["employee_id"])

    # tax_filings -------------------------------------------------------------
    op.create_table(
        "tax_filings",
        _id(),
        _tenant_fk(),
        sa.Column("filing_type", sa.String(length=20), nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("statement_status", sa.String(length=16), nullable=True),
        sa.Column("statement_due_date", sa.Date(), nullable=True),
        sa.Column("statement_filed_date", sa.Date(), nullable=True),
        sa.Column("statement_receipt_number", sa.String(length=64), nullable=True),
        sa.Column("payment_status", sa.String(length=16), nullable=True),
        sa.Column("payment_due_date", sa.Date(), nullable=True),
        sa.Column("payment_filed_date", sa.Date(), nullable=True),
        sa.Column("payment_receipt_number", sa.String(length=64), nullable=True),
        sa.Column("data_snapshot", JSON, nullable=False),
        sa.Column("filed_date", sa.Date(), nullable=True),
        sa.Column("submission_method", sa.String(length=16), nullable=True),
        sa.Column("receipt_number", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("total_wages"),
        _money("total_wit_withheld"),
        sa.Column("total_inss_employee", sa.Numeric(14, 2), nullable=True),
        sa.Column("total_inss_employer", sa.Numeric(14, 2), nullable=True),
        sa.Column("employee_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
        sa.UniqueConstraint("tenant_id", "filing_type", "period", name="uq_tax_filings_tenant_type_period"),
    )
    op.create_index("ix_tax_filings_tenant_id", "tax_filings", ["tenant_id"])

    # bank_transfer_files -----------------------------------------------------
    op.create_table(
        "bank_transfer_files",
        _id(),
        _tenant_fk(),
        sa.Column("run_id", sa.Uuid(), sa.ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bank_code", sa.String(length=16), nullable=False),
        sa.Column("file_name", sa.String(length=120), nullable=False),
        sa.Column("mime_type", sa.String(length=64), nullable=False),
        sa.Column("value_date", sa.Date(), nullable=False),
        _money("total_amount"),
        sa.Column("transfer_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="generated"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("skipped", JSON, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_bank_transfer_files_tenant_id", "bank_transfer_files", ["tenant_id"])
    op.create_index("ix_bank_transfer_files_run_id", "bank_transfer_files", ["run_id"])

    # audit_logs --------------------------------------------------------------
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("details", JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_tenant_created", "audit_logs", ["tenant_id", "created_at"])

    # rbac --------------------------------------------------------------------
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("api_key_hash", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_api_key_hash", "users", ["api_key_hash"])

    op.create_table(
        "roles",
        _id(),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
    )
    op.create_index("ix_roles_name", "roles", ["name"], unique=True)

    op.create_table(
        "user_roles",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        _tenant_fk(nullable=True),
        sa.UniqueConstraint("user_id", "role_id", "tenant_id", name="uq_user_roles_user_role_tenant"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])
    op.create_index("ix_user_roles_tenant_id", "user_roles", ["tenant_id"])

    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission", sa.String(length=100), primary_key=True),
    )


def downgrade() -> None:
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("audit_logs")
    op.drop_table("bank_transfer_files")
    op.drop_table("tax_filings")
    op.drop_table("employee_loans")
    op.drop_table("payroll_configs")
    op.drop_table("payroll_items")
    op.drop_table("payroll_records")
    op.drop_table("payroll_runs")
    op.drop_table("employees")
    op.drop_table("holiday_overrides")
    op.drop_table("tenants")
