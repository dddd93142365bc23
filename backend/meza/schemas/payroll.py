# backend/meza/schemas/payroll.py
"""
Pydantic schemas for Meza Payroll.

Covers:
- Employees
- Payroll Runs (create, compute inputs, transitions)
- Stateless calculation (single employee, weekly breakdown)
- Employee loans / advances

Notes:
- Monetary values use Decimal to avoid float rounding.
- Keep Literal values aligned with the tuples in meza.models.payroll.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ------------------------- Enum Literals (string) ------------------------- #
PayFrequency = Literal["weekly", "biweekly", "monthly"]

RunStatus = Literal["draft", "computed", "approved", "paid", "cancelled"]

PaymentMethod = Literal["bank_transfer", "cash", "cheque"]

ContractType = Literal["prazo_indeterminado", "prazo_certo", "agencia", "prestacao_servicos"]

LoanType = Literal["loan", "advance"]

LoanStatus = Literal["pending", "approved", "active", "completed", "cancelled"]

RepaymentMethod = Literal["fixed", "percentage"]

Money = Decimal


# ------------------------------- Employees -------------------------------- #
class EmployeeBase(BaseModel):
    code: str = Field(..., max_length=32)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = None
    nationality: Optional[str] = Field(None, max_length=64)

    department: Optional[str] = Field(None, max_length=120)
    position: Optional[str] = Field(None, max_length=120)
    contract_type: ContractType = "prazo_indeterminado"

    hire_date: Optional[date] = None
    termination_date: Optional[date] = None
    active: bool = True

    pay_frequency: PayFrequency = "monthly"
    monthly_salary: Money = Field(Decimal("0"), ge=0)
    is_hourly: bool = False
    hourly_rate: Optional[Money] = Field(None, ge=0)

    food_allowance: Money = Field(Decimal("0"), ge=0)
    transport_allowance: Money = Field(Decimal("0"), ge=0)
    housing_allowance: Money = Field(Decimal("0"), ge=0)
    other_allowance: Money = Field(Decimal("0"), ge=0)

    is_resident: bool = True
    has_tax_exemption: bool = False
    tin: Optional[str] = Field(None, max_length=32)
    inss_number: Optional[str] = Field(None, max_length=32)

    payment_method: PaymentMethod = "bank_transfer"
    bank_name: Optional[str] = Field(None, max_length=120)
    bank_account_number: Optional[str] = Field(None, max_length=40)
    bank_account_name: Optional[str] = Field(None, max_length=120)

    meta: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _hourly_needs_rate(self):
        if self.is_hourly and not self.hourly_rate:
            raise ValueError("hourly_rate is required when is_hourly is true")
        return self


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeUpdate(BaseModel):
    # All optional for PATCH-style updates
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = None
    nationality: Optional[str] = Field(None, max_length=64)
    department: Optional[str] = Field(None, max_length=120)
    position: Optional[str] = Field(None, max_length=120)
    contract_type: Optional[ContractType] = None
    hire_date: Optional[date] = None
    termination_date: Optional[date] = None
    active: Optional[bool] = None
    pay_frequency: Optional[PayFrequency] = None
    monthly_salary: Optional[Money] = Field(None, ge=0)
    is_hourly: Optional[bool] = None
    hourly_rate: Optional[Money] = Field(None, ge=0)
    food_allowance: Optional[Money] = Field(None, ge=0)
    transport_allowance: Optional[Money] = Field(None, ge=0)
    housing_allowance: Optional[Money] = Field(None, ge=0)
    other_allowance: Optional[Money] = Field(None, ge=0)
    is_resident: Optional[bool] = None
    has_tax_exemption: Optional[bool] = None
    tin: Optional[str] = Field(None, max_length=32)
    inss_number: Optional[str] = Field(None, max_length=32)
    payment_method: Optional[PaymentMethod] = None
    bank_name: Optional[str] = Field(None, max_length=120)
    bank_account_number: Optional[str] = Field(None, max_length=40)
    bank_account_name: Optional[str] = Field(None, max_length=120)
    meta: Optional[Dict[str, Any]] = None


class EmployeeOut(EmployeeBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    created_at: datetime


# ------------------------------ Payroll Runs ------------------------------ #
class PayrollRunCreate(BaseModel):
    period_start: date
    period_end: date
    pay_date: date
    pay_frequency: PayFrequency = "monthly"
    week_number: Optional[int] = Field(None, ge=1, le=6)
    parent_run_id: Optional[UUID] = None
    include_subsidio_anual: bool = False
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _period_order(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must be on or after period_start")
        return self


class EmployeeRunInput(BaseModel):
    """Per-employee variable inputs for one run. Omitted fields default to 0."""
    employee_id: UUID
    regular_hours: Optional[Decimal] = Field(None, ge=0)
    overtime_hours: Decimal = Field(Decimal("0"), ge=0)
    night_shift_hours: Decimal = Field(Decimal("0"), ge=0)
    holiday_hours: Decimal = Field(Decimal("0"), ge=0)
    rest_day_hours: Decimal = Field(Decimal("0"), ge=0)
    absence_hours: Decimal = Field(Decimal("0"), ge=0)
    late_arrival_minutes: int = Field(0, ge=0)
    sick_days: int = Field(0, ge=0)
    bonus: Money = Field(Decimal("0"), ge=0)
    commission: Money = Field(Decimal("0"), ge=0)
    per_diem: Money = Field(Decimal("0"), ge=0)
    other_earnings: Money = Field(Decimal("0"), ge=0)
    court_orders: Money = Field(Decimal("0"), ge=0)
    other_deductions: Money = Field(Decimal("0"), ge=0)
    inss_contribution_base: Optional[Money] = Field(None, ge=0)


class RunComputeIn(BaseModel):
    inputs: List[EmployeeRunInput] = Field(default_factory=list)


class RunApproveIn(BaseModel):
    approved_by: Optional[str] = Field(None, max_length=120)


# --------------------------- Stateless calculate --------------------------- #
class CalculateIn(BaseModel):
    """Body for POST /payroll/calculate; mirrors PayrollInput."""
    monthly_salary: Money = Field(Decimal("0"), ge=0)
    pay_frequency: PayFrequency = "monthly"
    total_periods_in_month: Optional[int] = Field(None, ge=1, le=6)
    is_hourly: bool = False
    hourly_rate: Optional[Money] = Field(None, ge=0)
    regular_hours: Decimal = Field(Decimal("0"), ge=0)
    overtime_hours: Decimal = Field(Decimal("0"), ge=0)
    night_shift_hours: Decimal = Field(Decimal("0"), ge=0)
    holiday_hours: Decimal = Field(Decimal("0"), ge=0)
    rest_day_hours: Decimal = Field(Decimal("0"), ge=0)
    absence_hours: Decimal = Field(Decimal("0"), ge=0)
    late_arrival_minutes: int = Field(0, ge=0)
    sick_days_used: int = Field(0, ge=0)
    ytd_sick_days_used: int = Field(0, ge=0)
    bonus: Money = Field(Decimal("0"), ge=0)
    commission: Money = Field(Decimal("0"), ge=0)
    per_diem: Money = Field(Decimal("0"), ge=0)
    food_allowance: Money = Field(Decimal("0"), ge=0)
    transport_allowance: Money = Field(Decimal("0"), ge=0)
    housing_allowance: Money = Field(Decimal("0"), ge=0)
    other_earnings: Money = Field(Decimal("0"), ge=0)
    subsidio_anual: Money = Field(Decimal("0"), ge=0)
    is_resident: bool = True
    has_tax_exemption: bool = False
    inss_contribution_base: Optional[Money] = Field(None, ge=0)
    loan_repayment: Money = Field(Decimal("0"), ge=0)
    advance_repayment: Money = Field(Decimal("0"), ge=0)
    court_orders: Money = Field(Decimal("0"), ge=0)
    other_deductions: Money = Field(Decimal("0"), ge=0)
    ytd_gross_pay: Money = Field(Decimal("0"), ge=0)
    ytd_income_tax: Money = Field(Decimal("0"), ge=0)
    ytd_inss_employee: Money = Field(Decimal("0"), ge=0)
    year: Optional[int] = Field(None, description="Tax table year; defaults to the current year")


class WeeklyBreakdownIn(BaseModel):
    monthly_salary: Money = Field(..., ge=0)
    weekly_working_days: List[int] = Field(default_factory=list)


# ------------------------------ Loans ------------------------------------- #
class LoanCreate(BaseModel):
    employee_id: UUID
    loan_type: LoanType = "loan"
    amount: Money = Field(..., gt=0)
    reason: Optional[str] = None
    request_date: Optional[date] = None
    start_date: Optional[date] = None
    repayment_method: RepaymentMethod = "fixed"
    repayment_amount: Optional[Money] = Field(None, gt=0)
    repayment_percentage: Optional[Decimal] = Field(None, gt=0, le=100)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _installment(self):
        if self.repayment_method == "fixed" and not self.repayment_amount:
            raise ValueError("repayment_amount is required for fixed repayment")
        if self.repayment_method == "percentage" and not self.repayment_percentage:
            raise ValueError("repayment_percentage is required for percentage repayment")
        return self


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    employee_id: UUID
    loan_type: LoanType
    amount: Money
    reason: Optional[str] = None
    request_date: date
    start_date: Optional[date] = None
    repayment_method: RepaymentMethod
    repayment_amount: Optional[Money] = None
    repayment_percentage: Optional[Decimal] = None
    total_repaid: Money
    remaining_balance: Money
    status: LoanStatus
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
