# backend/meza/services/payroll_engine.py
"""
Timor-Leste gross-to-net engine.

Pure functions: no DB, no clock. Given the same PayrollInput and TaxConfig
the result is identical, which is what lets a run be recomputed safely.

Rounding: every money amount is rounded to cents (ROUND_HALF_UP) after each
arithmetic step, via the helpers in meza.services.money.

Order of operations (calculate_tl_payroll):
    1) hourly/daily rate from salary (or the employee's hourly rate)
    2) earnings lines -> gross, taxable income, INSS base
    3) absence + late deductions (reduce both WIT and INSS bases)
    4) WIT, INSS employee/employer
    5) loans, advances, court orders, other
    6) 30% cap on voluntary deductions (proportional reduction)
    7) net = gross - deductions; employer cost = gross + INSS employer
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from meza.services.money import (
    D,
    q2,
    ZERO,
    add_money,
    apply_rate,
    max_money,
    divide_money,
    multiply_money,
    pro_rata,
    subtract_money,
    sum_money,
)
from meza.services.payroll_rates import INSS_EXCLUDED_ITEMS, TaxConfig, load_tax_config


# ---------------------------- Data holders ---------------------------- #

@dataclass
class PayrollInput:
    monthly_salary: Decimal = ZERO
    pay_frequency: str = "monthly"
    employee_id: str = ""

    # Weekly/biweekly split
    period_number: Optional[int] = None
    total_periods_in_month: Optional[int] = None

    # Hours
    is_hourly: bool = False
    hourly_rate: Optional[Decimal] = None
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    night_shift_hours: Decimal = ZERO
    holiday_hours: Decimal = ZERO
    rest_day_hours: Decimal = ZERO

    # Attendance
    absence_hours: Decimal = ZERO
    late_arrival_minutes: int = 0

    # Leave
    sick_days_used: int = 0
    ytd_sick_days_used: int = 0

    # Other earnings
    bonus: Decimal = ZERO
    commission: Decimal = ZERO
    per_diem: Decimal = ZERO
    food_allowance: Decimal = ZERO
    transport_allowance: Decimal = ZERO
    housing_allowance: Decimal = ZERO
    other_earnings: Decimal = ZERO
    subsidio_anual: Decimal = ZERO

    # Tax status
    is_resident: bool = True
    has_tax_exemption: bool = False
    inss_contribution_base: Optional[Decimal] = None

    # Deductions requested
    loan_repayment: Decimal = ZERO
    advance_repayment: Decimal = ZERO
    court_orders: Decimal = ZERO
    other_deductions: Decimal = ZERO

    # YTD before this period
    ytd_gross_pay: Decimal = ZERO
    ytd_income_tax: Decimal = ZERO
    ytd_inss_employee: Decimal = ZERO

    months_worked_this_year: int = 12
    hire_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayrollInput":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class EarningLine:
    type: str
    description: str
    description_tl: str
    amount: Decimal
    is_taxable: bool = True
    is_inss_base: Optional[bool] = None
    hours: Optional[Decimal] = None
    rate: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if self.is_inss_base is None:
            self.is_inss_base = self.type not in INSS_EXCLUDED_ITEMS

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "description_tl": self.description_tl,
            "hours": str(self.hours) if self.hours is not None else None,
            "rate": str(self.rate) if self.rate is not None else None,
            "amount": str(self.amount),
            "is_taxable": self.is_taxable,
            "is_inss_base": self.is_inss_base,
        }


@dataclass
class DeductionLine:
    type: str
    description: str
    description_tl: str
    amount: Decimal
    is_statutory: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "description_tl": self.description_tl,
            "amount": str(self.amount),
            "is_statutory": self.is_statutory,
        }


@dataclass
class PayrollResult:
    regular_pay: Decimal
    overtime_pay: Decimal
    night_shift_pay: Decimal
    holiday_pay: Decimal
    rest_day_pay: Decimal
    sick_pay: Decimal
    subsidio_anual: Decimal

    gross_pay: Decimal
    taxable_income: Decimal
    inss_base: Decimal

    income_tax: Decimal
    inss_employee: Decimal
    inss_employer: Decimal
    absence_deduction: Decimal
    late_deduction: Decimal

    total_deductions: Decimal
    net_pay: Decimal
    total_employer_cost: Decimal

    earnings: List[EarningLine] = field(default_factory=list)
    deductions: List[DeductionLine] = field(default_factory=list)

    new_ytd_gross_pay: Decimal = ZERO
    new_ytd_income_tax: Decimal = ZERO
    new_ytd_inss_employee: Decimal = ZERO

    warnings: List[str] = field(default_factory=list)

    def deduction_amount(self, kind: str) -> Decimal:
        return sum_money(d.amount for d in self.deductions if d.type == kind)

    def earning_amount(self, kind: str) -> Decimal:
        return sum_money(e.amount for e in self.earnings if e.type == kind)

    def as_dict(self) -> Dict[str, Any]:
        money_fields = (
            "regular_pay", "overtime_pay", "night_shift_pay", "holiday_pay", "rest_day_pay",
            "sick_pay", "subsidio_anual", "gross_pay", "taxable_income", "inss_base",
            "income_tax", "inss_employee", "inss_employer", "absence_deduction",
            "late_deduction", "total_deductions", "net_pay", "total_employer_cost",
            "new_ytd_gross_pay", "new_ytd_income_tax", "new_ytd_inss_employee",
        )
        out: Dict[str, Any] = {k: str(getattr(self, k)) for k in money_fields}
        out["earnings"] = [e.as_dict() for e in self.earnings]
        out["deductions"] = [d.as_dict() for d in self.deductions]
        out["warnings"] = list(self.warnings)
        return out


@dataclass
class WeeklyBreakdown:
    week_number: int
    working_days: int
    amount: Decimal
    is_reconciled: bool


# ---------------------------- Rates ---------------------------- #

def calculate_hourly_rate(monthly_salary: Any, config: Optional[TaxConfig] = None) -> Decimal:
    """44 h/week * 52/12 weeks ≈ 190.67 h/month."""
    cfg = config or load_tax_config()
    monthly_hours = cfg.standard_weekly_hours * Decimal(52) / Decimal(12)
    return divide_money(monthly_salary, monthly_hours)


def calculate_regular_pay(
    monthly_salary: Any,
    pay_frequency: str,
    is_hourly: bool,
    hourly_rate: Optional[Any],
    regular_hours: Any,
    total_periods_in_month: Optional[int] = None,
    config: Optional[TaxConfig] = None,
) -> Decimal:
    cfg = config or load_tax_config()
    if is_hourly and hourly_rate:
        return multiply_money(hourly_rate, regular_hours)
    if pay_frequency in ("weekly", "biweekly") and total_periods_in_month:
        return divide_money(monthly_salary, total_periods_in_month)
    return divide_money(monthly_salary, cfg.periods_per_month(pay_frequency))


def calculate_overtime_pay(
    hourly_rate: Any,
    overtime_hours: Any = 0,
    night_shift_hours: Any = 0,
    holiday_hours: Any = 0,
    rest_day_hours: Any = 0,
    config: Optional[TaxConfig] = None,
) -> Dict[str, Decimal]:
    cfg = config or load_tax_config()
    return {
        "overtime": multiply_money(multiply_money(hourly_rate, overtime_hours), cfg.overtime_rate),
        "night_shift": multiply_money(multiply_money(hourly_rate, night_shift_hours), cfg.night_shift_rate),
        "holiday": multiply_money(multiply_money(hourly_rate, holiday_hours), cfg.public_holiday_rate),
        "rest_day": multiply_money(multiply_money(hourly_rate, rest_day_hours), cfg.rest_day_rate),
    }


def calculate_sick_pay(
    daily_rate: Any,
    sick_days_this_period: int,
    ytd_sick_days_used: int,
    config: Optional[TaxConfig] = None,
) -> Decimal:
    cfg = config or load_tax_config()
    full_days = cfg.sick_full_pay_days
    total_days = cfg.sick_full_pay_days + cfg.sick_half_pay_days
    amounts: List[Decimal] = []
    for i in range(int(sick_days_this_period or 0)):
        day_number = int(ytd_sick_days_used or 0) + i + 1
        if day_number <= full_days:
            amounts.append(apply_rate(daily_rate, 1))
        elif day_number <= total_days:
            amounts.append(apply_rate(daily_rate, cfg.sick_half_pay_rate))
        # beyond the annual entitlement: unpaid
    return sum_money(amounts)


# ---------------------------- Statutory ---------------------------- #

def calculate_income_tax(
    taxable_income: Any,
    is_resident: bool,
    pay_frequency: str = "monthly",
    total_periods_in_month: Optional[int] = None,
    config: Optional[TaxConfig] = None,
) -> Decimal:
    """
    WIT for one pay period. The monthly resident threshold is spread over the
    actual number of pay periods in the month when known.
    """
    cfg = config or load_tax_config()
    income = q2(taxable_income)
    if income <= 0:
        return q2(0)

    if pay_frequency in ("weekly", "biweekly") and total_periods_in_month:
        periods = D(total_periods_in_month)
    else:
        periods = cfg.periods_per_month(pay_frequency)
    period_threshold = divide_money(cfg.wit_resident_threshold_monthly, periods)

    if is_resident:
        taxable_amount = max_money(ZERO, subtract_money(income, period_threshold))
        return apply_rate(taxable_amount, cfg.wit_rate)
    return apply_rate(income, cfg.wit_rate)


def calculate_inss(inss_base: Any, config: Optional[TaxConfig] = None) -> Dict[str, Decimal]:
    cfg = config or load_tax_config()
    employee = apply_rate(inss_base, cfg.inss_employee_rate)
    employer = apply_rate(inss_base, cfg.inss_employer_rate)
    return {"employee": employee, "employer": employer, "total": add_money(employee, employer)}


def calculate_subsidio_anual(
    monthly_salary: Any,
    months_worked_this_year: int,
    hire_date: Optional[date],
    as_of: date,
    termination_date: Optional[date] = None,
    config: Optional[TaxConfig] = None,
) -> Decimal:
    """13th-month salary, pro-rated by months worked in as_of's year."""
    cfg = config or load_tax_config()
    effective = int(months_worked_this_year or 0)
    if hire_date is not None:
        if hire_date.year > as_of.year:
            effective = 0
        elif hire_date.year == as_of.year:
            effective = max(0, as_of.month - hire_date.month + 1)
    if termination_date is not None and termination_date.year == as_of.year and termination_date < as_of:
        start_month = hire_date.month if hire_date is not None and hire_date.year == as_of.year else 1
        effective = min(effective, max(0, termination_date.month - start_month + 1))
    elif termination_date is not None and termination_date.year < as_of.year:
        effective = 0
    months = min(effective, cfg.subsidio_full_year_months)
    return pro_rata(monthly_salary, months, cfg.subsidio_full_year_months)


def calculate_absence_deduction(hourly_rate: Any, absence_hours: Any) -> Decimal:
    return multiply_money(hourly_rate, absence_hours)


def calculate_late_deduction(hourly_rate: Any, late_minutes: Any, round_to_minutes: int = 15) -> Decimal:
    minutes = D(late_minutes)
    if minutes <= 0 or round_to_minutes <= 0:
        return q2(0)
    rounded = math.ceil(minutes / Decimal(round_to_minutes)) * round_to_minutes
    late_hours = divide_money(rounded, 60)
    return multiply_money(hourly_rate, late_hours)


# ---------------------------- Main calculation ---------------------------- #

def _amount(v: Any) -> Decimal:
    return q2(v) if v is not None else ZERO


def calculate_tl_payroll(inp: PayrollInput, config: Optional[TaxConfig] = None) -> PayrollResult:
    cfg = config or load_tax_config()
    warnings: List[str] = list(validate_payroll_input(inp, cfg))
    earnings: List[EarningLine] = []
    deductions: List[DeductionLine] = []

    if inp.is_hourly and inp.hourly_rate:
        hourly_rate = q2(inp.hourly_rate)
    else:
        hourly_rate = calculate_hourly_rate(inp.monthly_salary, cfg)
    daily_rate = multiply_money(hourly_rate, cfg.standard_daily_hours)

    # ---- Earnings ----
    regular_pay = calculate_regular_pay(
        inp.monthly_salary,
        inp.pay_frequency,
        inp.is_hourly,
        inp.hourly_rate,
        inp.regular_hours,
        inp.total_periods_in_month,
        cfg,
    )
    earnings.append(EarningLine(
        "regular", "Regular Salary", "Saláriu Regular", regular_pay,
        hours=D(inp.regular_hours), rate=hourly_rate,
    ))

    ot = calculate_overtime_pay(
        hourly_rate, inp.overtime_hours, inp.night_shift_hours,
        inp.holiday_hours, inp.rest_day_hours, cfg,
    )
    if D(inp.overtime_hours) > 0:
        earnings.append(EarningLine(
            "overtime", "Overtime", "Oras Extra", ot["overtime"],
            hours=D(inp.overtime_hours), rate=multiply_money(hourly_rate, cfg.overtime_rate),
        ))
    if D(inp.night_shift_hours) > 0:
        earnings.append(EarningLine(
            "night_shift", "Night Shift Premium", "Prémiu Turnu Kalan", ot["night_shift"],
            hours=D(inp.night_shift_hours), rate=multiply_money(hourly_rate, cfg.night_shift_rate),
        ))
    if D(inp.holiday_hours) > 0:
        earnings.append(EarningLine(
            "holiday", "Public Holiday Pay", "Pagamentu Feriadu", ot["holiday"],
            hours=D(inp.holiday_hours), rate=multiply_money(hourly_rate, cfg.public_holiday_rate),
        ))
    if D(inp.rest_day_hours) > 0:
        earnings.append(EarningLine(
            "rest_day", "Rest Day Pay", "Pagamentu Loron Deskansa", ot["rest_day"],
            hours=D(inp.rest_day_hours), rate=multiply_money(hourly_rate, cfg.rest_day_rate),
        ))

    sick_pay = calculate_sick_pay(daily_rate, inp.sick_days_used, inp.ytd_sick_days_used, cfg)
    if sick_pay > 0:
        earnings.append(EarningLine(
            "sick_pay", "Sick Leave Pay", "Pagamentu Lisensa Moras", sick_pay,
        ))
        total_sick = int(inp.ytd_sick_days_used or 0) + int(inp.sick_days_used or 0)
        if total_sick >= 10:
            warnings.append(
                f"Employee has used {total_sick} of {cfg.sick_days_per_year} annual sick days."
            )

    simple_lines = (
        ("bonus", "Bonus", "Bónus", inp.bonus),
        ("commission", "Commission", "Komisaun", inp.commission),
        ("per_diem", "Per Diem / Travel", "Per Diem / Viajen", inp.per_diem),
        ("food_allowance", "Food Allowance", "Subsidiu Ai-han", inp.food_allowance),
        ("transport_allowance", "Transport Allowance", "Subsidiu Transporte", inp.transport_allowance),
        ("housing_allowance", "Housing Allowance", "Subsidiu Uma", inp.housing_allowance),
        ("other", "Other Earnings", "Rendimentu Seluk", inp.other_earnings),
    )
    for kind, desc, desc_tl, value in simple_lines:
        amt = _amount(value)
        if amt > 0:
            earnings.append(EarningLine(kind, desc, desc_tl, amt))

    subsidio = max_money(ZERO, inp.subsidio_anual)
    if subsidio > 0:
        earnings.append(EarningLine(
            "subsidio_anual", "Annual Subsidy (13th Month)", "Subsidiu Anual (13º Mês)", subsidio,
        ))

    gross_pay = sum_money(e.amount for e in earnings)
    taxable_income = sum_money(e.amount for e in earnings if e.is_taxable)
    inss_base = sum_money(e.amount for e in earnings if e.is_inss_base)

    # ---- Deductions ----
    absence = calculate_absence_deduction(hourly_rate, inp.absence_hours)
    if absence > 0:
        deductions.append(DeductionLine("absence", "Absence Deduction", "Dedusaun Ausensia", absence))

    late = calculate_late_deduction(hourly_rate, inp.late_arrival_minutes)
    if late > 0:
        deductions.append(DeductionLine("late_arrival", "Late Arrival Deduction", "Dedusaun Tarde Mai", late))

    contributable = max_money(ZERO, subtract_money(inss_base, absence, late))
    contribution_base = (
        q2(inp.inss_contribution_base) if inp.inss_contribution_base is not None else contributable
    )

    if inp.has_tax_exemption:
        income_tax = q2(0)
    else:
        income_tax = calculate_income_tax(
            subtract_money(taxable_income, absence, late),
            inp.is_resident,
            inp.pay_frequency,
            inp.total_periods_in_month,
            cfg,
        )
    if income_tax > 0:
        deductions.append(DeductionLine(
            "income_tax", "Withholding Income Tax (WIT)", "Impostu Retidu (WIT)", income_tax, True,
        ))

    inss = calculate_inss(contribution_base, cfg)
    if inss["employee"] > 0:
        pct = f"{(cfg.inss_employee_rate * 100).normalize():f}%"
        deductions.append(DeductionLine(
            "inss_employee", f"INSS Employee ({pct})", f"INSS Trabalhador ({pct})", inss["employee"], True,
        ))

    requested = (
        ("loan_repayment", "Loan Repayment", "Pagamentu Empréstimu", inp.loan_repayment, False),
        ("advance_repayment", "Advance Repayment", "Pagamentu Adiantamentu", inp.advance_repayment, False),
        ("court_order", "Court Order", "Ordem Tribunal", inp.court_orders, True),
        ("other", "Other Deductions", "Dedusaun Seluk", inp.other_deductions, False),
    )
    for kind, desc, desc_tl, value, statutory in requested:
        amt = _amount(value)
        if amt > 0:
            deductions.append(DeductionLine(kind, desc, desc_tl, amt, statutory))

    # ---- Voluntary deduction cap (statutory items and court orders exempt) ----
    voluntary = [d for d in deductions if not d.is_statutory]
    voluntary_total = sum_money(d.amount for d in voluntary)
    cap = max_money(ZERO, apply_rate(gross_pay, cfg.voluntary_deduction_cap_pct / Decimal(100)))
    if voluntary and voluntary_total > cap:
        warnings.append(
            f"Voluntary deductions (${voluntary_total}) exceed the "
            f"{cfg.voluntary_deduction_cap_pct.normalize():f}% cap (${cap}). "
            "Excess deductions have been reduced proportionally."
        )
        ratio = cap / voluntary_total
        deductions = [
            d if d.is_statutory else DeductionLine(
                d.type, d.description, d.description_tl, multiply_money(d.amount, ratio), False,
            )
            for d in deductions
        ]

    total_deductions = sum_money(d.amount for d in deductions)
    net_pay = subtract_money(gross_pay, total_deductions)
    employer_cost = add_money(gross_pay, inss["employer"])

    if net_pay < 0:
        warnings.append("Net pay is negative. Please review deductions.")

    threshold = cfg.wit_resident_threshold_monthly
    if inp.has_tax_exemption:
        warnings.append("Employee has a tax exemption - no income tax applied.")
    elif inp.is_resident and taxable_income < threshold:
        warnings.append(f"Income below ${threshold.normalize():f} threshold - no income tax applied.")

    return PayrollResult(
        regular_pay=regular_pay,
        overtime_pay=ot["overtime"],
        night_shift_pay=ot["night_shift"],
        holiday_pay=ot["holiday"],
        rest_day_pay=ot["rest_day"],
        sick_pay=sick_pay,
        subsidio_anual=subsidio,
        gross_pay=gross_pay,
        taxable_income=taxable_income,
        inss_base=contribution_base,
        income_tax=income_tax,
        inss_employee=inss["employee"],
        inss_employer=inss["employer"],
        absence_deduction=absence,
        late_deduction=late,
        total_deductions=total_deductions,
        net_pay=net_pay,
        total_employer_cost=employer_cost,
        earnings=earnings,
        deductions=deductions,
        new_ytd_gross_pay=add_money(inp.ytd_gross_pay, gross_pay),
        new_ytd_income_tax=add_money(inp.ytd_income_tax, income_tax),
        new_ytd_inss_employee=add_money(inp.ytd_inss_employee, inss["employee"]),
        warnings=warnings,
    )


# ---------------------------- Weekly split ---------------------------- #

def calculate_monthly_weekly_payrolls(monthly_salary: Any, weekly_working_days: List[int]) -> List[WeeklyBreakdown]:
    """
    Split a monthly salary across weeks by working days. The final week takes
    the remainder so the weeks always sum to the salary exactly.
    """
    if not weekly_working_days:
        return []
    last = len(weekly_working_days) - 1
    total_days = sum(int(d) for d in weekly_working_days)
    if total_days == 0:
        return [
            WeeklyBreakdown(i + 1, int(days), q2(0), i == last)
            for i, days in enumerate(weekly_working_days)
        ]

    out: List[WeeklyBreakdown] = []
    paid = q2(0)
    for i, days in enumerate(weekly_working_days):
        if i == last:
            amount = subtract_money(monthly_salary, paid)
        else:
            amount = pro_rata(monthly_salary, days, total_days)
            paid = add_money(paid, amount)
        out.append(WeeklyBreakdown(i + 1, int(days), amount, i == last))
    return out


# ---------------------------- Validation ---------------------------- #

def validate_payroll_input(inp: PayrollInput, config: Optional[TaxConfig] = None) -> List[str]:
    cfg = config or load_tax_config()
    errors: List[str] = []

    salary = D(inp.monthly_salary)
    if salary < 0:
        errors.append("Monthly salary cannot be negative.")
    elif not inp.is_hourly and salary < cfg.minimum_wage:
        errors.append(f"Monthly salary (${salary}) is below minimum wage (${cfg.minimum_wage}).")

    if D(inp.regular_hours) < 0:
        errors.append("Regular hours cannot be negative.")

    max_monthly_ot = cfg.max_overtime_weekly * 4
    if D(inp.overtime_hours) > max_monthly_ot:
        errors.append(f"Overtime hours ({inp.overtime_hours}) exceed maximum allowed per month.")

    sick = int(inp.sick_days_used or 0)
    ytd_sick = int(inp.ytd_sick_days_used or 0)
    if sick > 0 and ytd_sick + sick > cfg.sick_days_per_year:
        errors.append(
            f"Total sick days ({ytd_sick + sick}) exceed annual limit ({cfg.sick_days_per_year})."
        )

    return errors


# ---------------------------- Pay-period helpers ---------------------------- #

def pay_periods_in_pay_month(pay_date: Optional[date], pay_frequency: str) -> Optional[int]:
    """Number of weekly/biweekly pay dates that fall in pay_date's month."""
    if pay_date is None or pay_frequency not in ("weekly", "biweekly"):
        return None
    step = timedelta(days=7 if pay_frequency == "weekly" else 14)
    first = pay_date
    while (first - step).month == pay_date.month and (first - step).year == pay_date.year:
        first = first - step
    count = 0
    cursor = first
    while cursor.month == pay_date.month and cursor.year == pay_date.year:
        count += 1
        cursor = cursor + step
    return count or None


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


__all__ = [
    "PayrollInput",
    "PayrollResult",
    "EarningLine",
    "DeductionLine",
    "WeeklyBreakdown",
    "calculate_hourly_rate",
    "calculate_regular_pay",
    "calculate_overtime_pay",
    "calculate_sick_pay",
    "calculate_income_tax",
    "calculate_inss",
    "calculate_subsidio_anual",
    "calculate_absence_deduction",
    "calculate_late_deduction",
    "calculate_tl_payroll",
    "calculate_monthly_weekly_payrolls",
    "validate_payroll_input",
    "pay_periods_in_pay_month",
    "month_bounds",
]
