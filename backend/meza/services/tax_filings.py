# backend/meza/services/tax_filings.py
"""
ATTL / INSS filings.

Returns are built from PAID payroll runs whose pay date falls in the
reporting period (wages paid during the month, not wages earned).

Due dates (base, then moved to the next business day on the tenant's
holiday calendar):
  • monthly WIT      -> 15th of the following month
  • INSS statement   -> 10th of the following month
  • INSS payment     -> 20th of the following month
  • annual WIT       -> 31 March of the following year
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from meza.models.payroll import Employee, PayrollRecord, PayrollRun
from meza.models.tax_filing import TaxFiling
from meza.models.tenant import Tenant
from meza.services.audit import record_audit
from meza.services.compliance import (
    _safe_date,
    add_months,
    days_until_due,
    resolve_task_status,
    urgency_from_days,
)
from meza.services.errors import NotFoundError
from meza.services.money import q2, ZERO, divide_money, sum_money
from meza.services.payroll_engine import month_bounds
from meza.services.tenants import effective_tax_config, tenant_adjuster

logger = logging.getLogger(__name__)

MONTHLY_WIT_DUE_DAY = 15
INSS_STATEMENT_DUE_DAY = 10
INSS_PAYMENT_DUE_DAY = 20
ANNUAL_WIT_DUE_MONTH = 3
ANNUAL_WIT_DUE_DAY = 31

INSS_TASKS = ("statement", "payment")


# ---------------------------- Period helpers ---------------------------- #

def parse_month(period: str) -> tuple[int, int]:
    try:
        year_s, month_s = period.split("-")
        year, month = int(year_s), int(month_s)
    except ValueError:
        raise ValueError(f"Invalid monthly period '{period}' (expected YYYY-MM)")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid monthly period '{period}' (expected YYYY-MM)")
    return year, month


def parse_year(period: str) -> int:
    if len(period) != 4 or not period.isdigit():
        raise ValueError(f"Invalid annual period '{period}' (expected YYYY)")
    return int(period)


def _following_month(period: str, day: int) -> date:
    year, month = parse_month(period)
    return add_months(date(year, month, 1), 1, day)


def base_due_date(filing_type: str, period: str, task: Optional[str] = None) -> date:
    if filing_type == "monthly_wit":
        return _following_month(period, MONTHLY_WIT_DUE_DAY)
    if filing_type == "inss_monthly":
        day = INSS_PAYMENT_DUE_DAY if task == "payment" else INSS_STATEMENT_DUE_DAY
        return _following_month(period, day)
    if filing_type == "annual_wit":
        return _safe_date(parse_year(period) + 1, ANNUAL_WIT_DUE_MONTH, ANNUAL_WIT_DUE_DAY)
    raise ValueError(f"Unknown filing type '{filing_type}'")


def _header(tenant: Tenant) -> Dict[str, str]:
    return {
        "employer_tin": tenant.tin_number or "",
        "employer_name": tenant.display_name,
        "employer_address": tenant.registered_address or "",
    }


def _get_tenant(db: Session, tenant_id: uuid.UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Tenant not found")
    return tenant


def _paid_records(db: Session, tenant_id: uuid.UUID, start: date, end: date):
    """(record, employee, run) rows of paid runs with pay_date in [start, end]."""
    return db.execute(
        select(PayrollRecord, Employee, PayrollRun)
        .join(PayrollRun, PayrollRun.id == PayrollRecord.run_id)
        .join(Employee, Employee.id == PayrollRecord.employee_id)
        .where(
            PayrollRun.tenant_id == tenant_id,
            PayrollRun.status == "paid",
            PayrollRun.pay_date >= start,
            PayrollRun.pay_date <= end,
        )
        .order_by(Employee.code, PayrollRun.pay_date)
    ).all()


# ---------------------------- Returns ---------------------------- #

def monthly_wit_return(db: Session, tenant_id: uuid.UUID, period: str) -> Dict[str, Any]:
    tenant = _get_tenant(db, tenant_id)
    year, month = parse_month(period)
    start, end = month_bounds(year, month)
    cfg = effective_tax_config(db, tenant_id, start)

    per_emp: Dict[uuid.UUID, Dict[str, Any]] = {}
    for rec, emp, _run in _paid_records(db, tenant_id, start, end):
        row = per_emp.setdefault(emp.id, {"employee": emp, "gross": ZERO, "wit": ZERO, "resident": rec.is_resident})
        row["gross"] = q2(row["gross"] + rec.gross_pay)
        row["wit"] = q2(row["wit"] + rec.income_tax)

    employees: List[Dict[str, Any]] = []
    residents = non_residents = 0
    for row in per_emp.values():
        if row["gross"] == 0:
            continue
        emp = row["employee"]
        taxable = divide_money(row["wit"], cfg.wit_rate) if cfg.wit_rate > 0 else ZERO
        employees.append({
            "employee_id": str(emp.id),
            "code": emp.code,
            "full_name": emp.full_name,
            "tin_number": emp.tin,
            "is_resident": bool(row["resident"]),
            "gross_wages": str(row["gross"]),
            "taxable_wages": str(taxable),
            "wit_withheld": str(row["wit"]),
        })
        if row["resident"]:
            residents += 1
        else:
            non_residents += 1

    return {
        **_header(tenant),
        "reporting_period": period,
        "period_start_date": start.isoformat(),
        "period_end_date": end.isoformat(),
        "total_employees": len(employees),
        "total_resident_employees": residents,
        "total_non_resident_employees": non_residents,
        "total_gross_wages": str(sum_money(e["gross_wages"] for e in employees)),
        "total_taxable_wages": str(sum_money(e["taxable_wages"] for e in employees)),
        "total_wit_withheld": str(sum_money(e["wit_withheld"] for e in employees)),
        "employees": employees,
    }


def monthly_inss_return(db: Session, tenant_id: uuid.UUID, period: str) -> Dict[str, Any]:
    tenant = _get_tenant(db, tenant_id)
    year, month = parse_month(period)
    start, end = month_bounds(year, month)

    per_emp: Dict[uuid.UUID, Dict[str, Any]] = {}
    for rec, emp, _run in _paid_records(db, tenant_id, start, end):
        row = per_emp.setdefault(emp.id, {"employee": emp, "base": ZERO, "ee": ZERO, "er": ZERO})
        row["base"] = q2(row["base"] + rec.inss_base)
        row["ee"] = q2(row["ee"] + rec.inss_employee)
        row["er"] = q2(row["er"] + rec.inss_employer)

    employees: List[Dict[str, Any]] = []
    for row in per_emp.values():
        if row["ee"] == 0 and row["er"] == 0:
            continue
        emp = row["employee"]
        employees.append({
            "employee_id": str(emp.id),
            "code": emp.code,
            "full_name": emp.full_name,
            "inss_number": emp.inss_number,
            "contribution_base": str(row["base"]),
            "employee_contribution": str(row["ee"]),
            "employer_contribution": str(row["er"]),
            "total_contribution": str(q2(row["ee"] + row["er"])),
        })

    ee_total = sum_money(e["employee_contribution"] for e in employees)
    er_total = sum_money(e["employer_contribution"] for e in employees)
    return {
        **_header(tenant),
        "reporting_period": period,
        "period_start_date": start.isoformat(),
        "period_end_date": end.isoformat(),
        "total_employees": len(employees),
        "total_contribution_base": str(sum_money(e["contribution_base"] for e in employees)),
        "total_employee_contributions": str(ee_total),
        "total_employer_contributions": str(er_total),
        "total_contributions": str(q2(ee_total + er_total)),
        "employees": employees,
    }


def annual_wit_return(db: Session, tenant_id: uuid.UUID, year: int) -> Dict[str, Any]:
    tenant = _get_tenant(db, tenant_id)
    start, end = date(year, 1, 1), date(year, 12, 31)

    per_emp: Dict[uuid.UUID, Dict[str, Any]] = {}
    for rec, emp, run in _paid_records(db, tenant_id, start, end):
        row = per_emp.setdefault(
            emp.id, {"employee": emp, "gross": ZERO, "wit": ZERO, "months": set(), "resident": rec.is_resident}
        )
        row["gross"] = q2(row["gross"] + rec.gross_pay)
        row["wit"] = q2(row["wit"] + rec.income_tax)
        row["months"].add(run.pay_date.month)

    employees: List[Dict[str, Any]] = []
    for row in per_emp.values():
        emp = row["employee"]
        start_date = emp.hire_date if emp.hire_date and emp.hire_date.year == year else None
        end_date = emp.termination_date if emp.termination_date and emp.termination_date.year == year else None
        employees.append({
            "employee_id": str(emp.id),
            "code": emp.code,
            "full_name": emp.full_name,
            "tin_number": emp.tin,
            "is_resident": bool(row["resident"]),
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "months_worked": len(row["months"]),
            "total_gross_wages": str(row["gross"]),
            "total_wit_withheld": str(row["wit"]),
        })

    return {
        **_header(tenant),
        "tax_year": year,
        "total_employees_in_year": len(employees),
        "total_gross_wages_paid": str(sum_money(e["total_gross_wages"] for e in employees)),
        "total_wit_withheld": str(sum_money(e["total_wit_withheld"] for e in employees)),
        "employees": employees,
    }


def employee_wit_certificate(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID,
    year: int,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    tenant = _get_tenant(db, tenant_id)
    emp = db.get(Employee, employee_id)
    if not emp or emp.tenant_id != tenant_id:
        raise NotFoundError("Employee not found")

    annual = annual_wit_return(db, tenant_id, year)
    line = next((e for e in annual["employees"] if e["employee_id"] == str(employee_id)), None)
    if line is None:
        raise NotFoundError("No payroll records found for this employee in the specified year")

    return {
        **_header(tenant),
        "employee_id": str(emp.id),
        "employee_name": emp.full_name,
        "employee_tin": emp.tin,
        "employee_address": emp.address or "",
        "tax_year": year,
        "employment_start_date": emp.hire_date.isoformat() if emp.hire_date else None,
        "employment_end_date": line["end_date"],
        "total_gross_wages": line["total_gross_wages"],
        "total_wit_withheld": line["total_wit_withheld"],
        "certification_date": (today or date.today()).isoformat(),
        "authorized_signatory": tenant.signatory_name or "",
        "signatory_position": tenant.signatory_position or "",
    }


def build_return(db: Session, tenant_id: uuid.UUID, filing_type: str, period: str) -> Dict[str, Any]:
    if filing_type == "monthly_wit":
        return monthly_wit_return(db, tenant_id, period)
    if filing_type == "inss_monthly":
        return monthly_inss_return(db, tenant_id, period)
    if filing_type == "annual_wit":
        return annual_wit_return(db, tenant_id, parse_year(period))
    raise ValueError(f"Unknown filing type '{filing_type}'")


# ---------------------------- Filing records ---------------------------- #

def get_filing(db: Session, tenant_id: uuid.UUID, filing_id: uuid.UUID) -> TaxFiling:
    filing = db.get(TaxFiling, filing_id)
    if not filing or filing.tenant_id != tenant_id:
        raise NotFoundError("TaxFiling not found")
    return filing


def find_filing(db: Session, tenant_id: uuid.UUID, filing_type: str, period: str) -> Optional[TaxFiling]:
    return db.execute(
        select(TaxFiling).where(
            TaxFiling.tenant_id == tenant_id,
            TaxFiling.filing_type == filing_type,
            TaxFiling.period == period,
        )
    ).scalars().first()


def list_filings(db: Session, tenant_id: uuid.UUID, filing_type: Optional[str] = None) -> List[TaxFiling]:
    stmt = select(TaxFiling).where(TaxFiling.tenant_id == tenant_id)
    if filing_type:
        stmt = stmt.where(TaxFiling.filing_type == filing_type)
    return list(db.execute(stmt.order_by(TaxFiling.period.desc(), TaxFiling.filing_type)).scalars().all())


def save_filing(
    db: Session,
    tenant_id: uuid.UUID,
    filing_type: str,
    period: str,
    user_id: Optional[Any] = None,
    today: Optional[date] = None,
) -> TaxFiling:
    """Build the return and upsert the filing for (tenant, type, period)."""
    today = today or date.today()
    snapshot = build_return(db, tenant_id, filing_type, period)
    adjust = tenant_adjuster(db, tenant_id)
    due = adjust(base_due_date(filing_type, period))

    filing = find_filing(db, tenant_id, filing_type, period)
    created = filing is None
    if created:
        filing = TaxFiling(tenant_id=tenant_id, filing_type=filing_type, period=period)
        db.add(filing)

    filing.due_date = due
    filing.data_snapshot = snapshot
    if filing.status != "filed":
        filing.status = resolve_task_status(days_until_due(today, due))

    if filing_type == "inss_monthly":
        pay_due = adjust(base_due_date(filing_type, period, "payment"))
        filing.statement_due_date = due
        filing.payment_due_date = pay_due
        if filing.statement_status != "filed":
            filing.statement_status = resolve_task_status(days_until_due(today, due))
        if filing.payment_status != "filed":
            filing.payment_status = resolve_task_status(days_until_due(today, pay_due))
        filing.total_wages = q2(snapshot["total_contribution_base"])
        filing.total_wit_withheld = ZERO
        filing.total_inss_employee = q2(snapshot["total_employee_contributions"])
        filing.total_inss_employer = q2(snapshot["total_employer_contributions"])
        filing.employee_count = snapshot["total_employees"]
    elif filing_type == "annual_wit":
        filing.total_wages = q2(snapshot["total_gross_wages_paid"])
        filing.total_wit_withheld = q2(snapshot["total_wit_withheld"])
        filing.employee_count = snapshot["total_employees_in_year"]
    else:
        filing.total_wages = q2(snapshot["total_gross_wages"])
        filing.total_wit_withheld = q2(snapshot["total_wit_withheld"])
        filing.employee_count = snapshot["total_employees"]

    db.flush()
    record_audit(
        db, "tax_filing", filing.id, "create" if created else "update", tenant_id=tenant_id, user_id=user_id,
        details={"type": filing_type, "period": period, "employees": filing.employee_count},
    )
    db.commit()
    db.refresh(filing)
    logger.info("tax filing saved %s %s due=%s status=%s", filing_type, period, due, filing.status)
    return filing


def mark_filed(
    db: Session,
    tenant_id: uuid.UUID,
    filing_id: uuid.UUID,
    submission_method: str,
    receipt_number: Optional[str] = None,
    notes: Optional[str] = None,
    task: Optional[str] = None,
    filed_date: Optional[date] = None,
    user_id: Optional[Any] = None,
) -> TaxFiling:
    """
    Mark a filing (or, for INSS, one of its tasks) as filed. An INSS filing is
    only 'filed' overall once both the statement and the payment are.
    """
    filing = get_filing(db, tenant_id, filing_id)
    filed_on = filed_date or date.today()

    if filing.filing_type == "inss_monthly":
        if task is not None and task not in INSS_TASKS:
            raise ValueError(f"Unknown INSS task '{task}'")
        for t in ([task] if task else list(INSS_TASKS)):
            setattr(filing, f"{t}_status", "filed")
            setattr(filing, f"{t}_filed_date", filed_on)
            if receipt_number:
                setattr(filing, f"{t}_receipt_number", receipt_number)
        if filing.statement_status == "filed" and filing.payment_status == "filed":
            filing.status = "filed"
            filing.filed_date = filed_on
    else:
        if task is not None:
            raise ValueError("Only INSS filings have separate tasks")
        filing.status = "filed"
        filing.filed_date = filed_on

    filing.submission_method = submission_method
    if receipt_number:
        filing.receipt_number = receipt_number
    if notes is not None:
        filing.notes = notes

    record_audit(
        db, "tax_filing", filing.id, "file", tenant_id=tenant_id, user_id=user_id,
        details={"method": submission_method, "receipt": receipt_number, "task": task},
    )
    db.commit()
    db.refresh(filing)
    logger.info("tax filing filed %s %s task=%s method=%s", filing.filing_type, filing.period, task, submission_method)
    return filing


# ---------------------------- Tracker ---------------------------- #

def _due_item(
    filing_type: str,
    period: str,
    due: date,
    today: date,
    filing: Optional[TaxFiling],
    task: Optional[str] = None,
) -> Dict[str, Any]:
    days = days_until_due(today, due)
    explicit = getattr(filing, f"{task}_status") if (filing is not None and task) else None
    legacy = filing.status if filing is not None else None
    status = resolve_task_status(days, explicit, legacy)
    is_overdue = days < 0 and status != "filed"
    filed_on = None
    if filing is not None:
        filed_on = getattr(filing, f"{task}_filed_date") if task else filing.filed_date
    return {
        "type": filing_type,
        "task": task,
        "period": period,
        "due_date": due.isoformat(),
        "status": status,
        "days_until_due": days,
        "is_overdue": is_overdue,
        "urgency": "ok" if status == "filed" else urgency_from_days(days, is_overdue),
        "filing_id": str(filing.id) if filing is not None else None,
        "filed_date": filed_on.isoformat() if filed_on else None,
    }


def due_soon(db: Session, tenant_id: uuid.UUID, months: int = 3, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Obligations for reporting months -2..months around today (each filed the month after)."""
    today = today or date.today()
    adjust = tenant_adjuster(db, tenant_id)
    items: List[Dict[str, Any]] = []

    for offset in range(-2, months + 1):
        ref = add_months(date(today.year, today.month, 1), offset - 1)
        period = f"{ref.year:04d}-{ref.month:02d}"

        wit = find_filing(db, tenant_id, "monthly_wit", period)
        items.append(_due_item("monthly_wit", period, adjust(base_due_date("monthly_wit", period)), today, wit))

        inss = find_filing(db, tenant_id, "inss_monthly", period)
        for task in INSS_TASKS:
            due = adjust(base_due_date("inss_monthly", period, task))
            items.append(_due_item("inss_monthly", period, due, today, inss, task))

    if today.month <= 3:
        period = str(today.year - 1)
        annual = find_filing(db, tenant_id, "annual_wit", period)
        items.append(_due_item("annual_wit", period, adjust(base_due_date("annual_wit", period)), today, annual))

    items.sort(key=lambda i: (i["due_date"], i["type"], i["task"] or ""))
    return items


def status_summary(db: Session, tenant_id: uuid.UUID, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    items = due_soon(db, tenant_id, months=2, today=today)
    filed_this_month = sum(
        1 for i in items
        if i["status"] == "filed" and i["filed_date"] and i["filed_date"][:7] == today.strftime("%Y-%m")
    )
    next_due = next((i for i in items if i["status"] == "pending" and i["days_until_due"] >= 0), None)
    return {
        "pending": sum(1 for i in items if i["status"] == "pending"),
        "overdue": sum(1 for i in items if i["is_overdue"]),
        "filed_this_month": filed_this_month,
        "next_due": next_due,
    }


# ---------------------------- CSV ---------------------------- #

CSV_COLUMNS = {
    "monthly_wit": ["code", "full_name", "tin_number", "is_resident", "gross_wages", "taxable_wages", "wit_withheld"],
    "inss_monthly": [
        "code", "full_name", "inss_number", "contribution_base",
        "employee_contribution", "employer_contribution", "total_contribution",
    ],
    "annual_wit": [
        "code", "full_name", "tin_number", "is_resident", "start_date", "end_date",
        "months_worked", "total_gross_wages", "total_wit_withheld",
    ],
}


def filing_csv_rows(filing: TaxFiling) -> Iterator[List[Any]]:
    """Header row, then one row per employee line of the stored snapshot."""
    cols = CSV_COLUMNS[filing.filing_type]
    yield cols
    for line in (filing.data_snapshot or {}).get("employees", []):
        yield [line.get(c) for c in cols]


def filing_out(filing: TaxFiling) -> Dict[str, Any]:
    def _d(v: Optional[date]) -> Optional[str]:
        return v.isoformat() if v else None

    def _m(v: Optional[Decimal]) -> Optional[str]:
        return str(q2(v)) if v is not None else None

    return {
        "id": str(filing.id),
        "tenant_id": str(filing.tenant_id),
        "filing_type": filing.filing_type,
        "period": filing.period,
        "status": filing.status,
        "due_date": _d(filing.due_date),
        "statement_status": filing.statement_status,
        "statement_due_date": _d(filing.statement_due_date),
        "statement_filed_date": _d(filing.statement_filed_date),
        "payment_status": filing.payment_status,
        "payment_due_date": _d(filing.payment_due_date),
        "payment_filed_date": _d(filing.payment_filed_date),
        "filed_date": _d(filing.filed_date),
        "submission_method": filing.submission_method,
        "receipt_number": filing.receipt_number,
        "notes": filing.notes,
        "total_wages": _m(filing.total_wages),
        "total_wit_withheld": _m(filing.total_wit_withheld),
        "total_inss_employee": _m(filing.total_inss_employee),
        "total_inss_employer": _m(filing.total_inss_employer),
        "employee_count": filing.employee_count,
        "data_snapshot": filing.data_snapshot,
    }
