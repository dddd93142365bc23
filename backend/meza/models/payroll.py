# backend/meza/models/payroll.py
"""
Payroll ORM models for Meza.

Tables:
- employees
- payroll_runs
- payroll_records   (one per employee per run; gross-to-net snapshot)
- payroll_items     (earning/deduction/tax/employer_contrib lines of a record)
- payroll_configs   (per-tenant tax table overrides, effective-dated)
- employee_loans    (loans and salary advances repaid through payroll)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from meza.db import Base, JSONType


# ---------- String enums (kept as plain strings for portability) ----------
PAY_FREQUENCIES = ("weekly", "biweekly", "monthly")
RUN_STATUSES = ("draft", "computed", "approved", "paid", "cancelled")
ITEM_KINDS = ("earning", "deduction", "tax", "employer_contrib")
PAYMENT_METHODS = ("bank_transfer", "cash", "cheque")
CONTRACT_TYPES = ("prazo_indeterminado", "prazo_certo", "agencia", "prestacao_servicos")
LOAN_TYPES = ("loan", "advance")
LOAN_STATUSES = ("pending", "approved", "active", "completed", "cancelled")
REPAYMENT_METHODS = ("fixed", "percentage")


# --------------------------------- MODELS --------------------------------- #

class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_employees_tenant_code"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    nationality: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Job
    department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    contract_type: Mapped[str] = mapped_column(String(32), nullable=False, default="prazo_indeterminado")

    # Employment status
    hire_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    termination_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    # Pay & rates
    pay_frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")
    monthly_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_hourly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Recurring allowances (per month)
    food_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    transport_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    housing_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    other_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # Tax / social security
    is_resident: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    has_tax_exemption: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    tin: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    inss_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default="bank_transfer")
    bank_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    records: Mapped[list["PayrollRecord"]] = relationship(back_populates="employee")
    loans: Mapped[list["EmployeeLoan"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.code} {self.last_name}>"


class PayrollRun(Base):
    __tablename__ = "payroll_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    period_start: Mapped[date] = mapped_column(Date(), nullable=False)
    period_end: Mapped[date] = mapped_column(Date(), nullable=False)
    pay_date: Mapped[date] = mapped_column(Date(), nullable=False)
    pay_frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")

    # Weekly/biweekly sub-runs of a month
    week_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    parent_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payroll_runs.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", server_default="draft")
    include_subsidio_anual: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    reference_no: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    # Totals (refreshed on compute)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_inss_employee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_inss_employer: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_employer_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    records: Mapped[list["PayrollRecord"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )
    items: Mapped[list["PayrollItem"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PayrollRun {self.reference_no or self.id} status={self.status}>"


class PayrollRecord(Base):
    __tablename__ = "payroll_records"
    __table_args__ = (UniqueConstraint("run_id", "employee_id", name="uq_payroll_records_run_employee"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    taxable_income: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    inss_base: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    inss_employee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    inss_employer: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    employer_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    ytd_gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    ytd_income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    ytd_inss_employee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    sick_days_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_resident: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    # {"input": {...}, "result": {...}, "loans": [{"loan_id", "requested", "applied"}]}
    snapshot_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    warnings: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    reference_no: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    run: Mapped["PayrollRun"] = relationship(back_populates="records")
    employee: Mapped["Employee"] = relationship(back_populates="records")
    items: Mapped[list["PayrollItem"]] = relationship(
        back_populates="record", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PayrollRecord {self.reference_no or self.id} {self.net_pay}>"


class PayrollItem(Base):
    __tablename__ = "payroll_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    description_tl: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    inss_base: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    run: Mapped["PayrollRun"] = relationship(back_populates="items")
    record: Mapped["PayrollRecord"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<PayrollItem {self.kind}:{self.code} {self.amount}>"


class PayrollConfig(Base):
    __tablename__ = "payroll_configs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "key", "effective_from", name="uq_payroll_configs_tenant_key_from"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    value_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    effective_from: Mapped[date] = mapped_column(Date(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<PayrollConfig {self.key} @ {self.effective_from}>"


class EmployeeLoan(Base):
    """
    A loan or salary advance repaid through payroll deductions.
    remaining_balance only moves when a run that deducted it is marked paid.
    """
    __tablename__ = "employee_loans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )

    loan_type: Mapped[str] = mapped_column(String(16), nullable=False, default="loan")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    request_date: Mapped[date] = mapped_column(Date(), nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)

    repayment_method: Mapped[str] = mapped_column(String(16), nullable=False, default="fixed")
    repayment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    repayment_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)

    total_repaid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    employee: Mapped["Employee"] = relationship(back_populates="loans")

    def __repr__(self) -> str:
        return f"<EmployeeLoan {self.loan_type} {self.remaining_balance}/{self.amount} {self.status}>"
