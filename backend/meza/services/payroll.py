# backend/meza/services/payroll.py
"""
Payroll service: employees, runs and the per-run orchestration around the
gross-to-net engine (meza.services.payroll_engine).

Run lifecycle:
    draft -> computed -> approved -> paid
    draft | computed | approved -> cancelled

compute_run(run_id):
  • eligible employees = active, hired on/before period end, not terminated before period start
  • YTD (gross, WIT, INSS EE, sick days) from PAID runs earlier in the same calendar year
  • recurring allowances and loan/advance installments are added to the engine input
  • tax tables = tenant's effective TaxConfig for the pay date
  • one PayrollRecord + PayrollItem lines per employee
  • recompute replaces previous records (same inputs -> same outputs)
  • reference_no pattern for records (UNIQUE): PAY-{YYYYMM}-{empCode}-{run8}

mark_run_paid applies the loan repayments actually deducted (post-cap) to loans still active.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from meza.models.payroll import (
    Employee,
    EmployeeLoan,
    PayrollItem,
    PayrollRecord,
    PayrollRun,
)
from meza.schemas.payroll import (
    EmployeeCreate,
    EmployeeRunInput,
    EmployeeUpdate,
    PayrollRunCreate,
)
from meza.services.audit import record_audit
from meza.services.errors import NotFoundError, StateError
from meza.services.money import D, q2, ZERO, divide_money, min_money, percent_of, sum_money
from meza.services.payroll_engine import (
    PayrollInput,
    PayrollResult,
    calculate_subsidio_anual,
    calculate_tl_payroll,
    pay_periods_in_pay_month,
)
from meza.services.payroll_rates import TaxConfig
from meza.services.tenants import effective_tax_config

logger = logging.getLogger(__name__)

COMPUTABLE = ("draft", "computed")
CANCELLABLE = ("draft", "computed", "approved")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------- Employees ----------------------------- #

def get_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Employee:
    emp = db.get(Employee, employee_id)
    if not emp or emp.tenant_id != tenant_id:
        raise NotFoundError("Employee not found")
    return emp


def create_employee(db: Session, tenant_id: uuid.UUID, data: EmployeeCreate) -> Employee:
    exists = db.execute(
        select(Employee.id).where(Employee.tenant_id == tenant_id, Employee.code == data.code)
    ).first()
    if exists:
        raise StateError(f"Employee code already exists: {data.code}")
    payload = data.model_dump()
    payload["meta"] = dict(payload.get("meta") or {})
    emp = Employee(tenant_id=tenant_id, **payload)
    db.add(emp)
    db.commit()
    db.refresh(emp)
    logger.info("employee created tenant=%s code=%s", tenant_id, emp.code)
    return emp


def update_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, data: EmployeeUpdate) -> Employee:
    emp = get_employee(db, tenant_id, employee_id)
    changes = data.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(emp, key, value)
    if emp.is_hourly and not emp.hourly_rate:
        raise ValueError("hourly_rate is required when is_hourly is true")
    db.commit()
    db.refresh(emp)
    return emp


def list_employees(db: Session, tenant_id: uuid.UUID, active: Optional[bool] = None) -> List[Employee]:
    stmt = select(Employee).where(Employee.tenant_id == tenant_id)
    if active is not None:
        stmt = stmt.where(Employee.active.is_(active))
    return list(db.execute(stmt.order_by(Employee.code)).scalars().all())


# ------------------------------- Runs -------------------------------- #

def get_run(db: Session, tenant_id: uuid.UUID, run_id: uuid.UUID) -> PayrollRun:
    run = db.get(PayrollRun, run_id)
    if not run or run.tenant_id != tenant_id:
        raise NotFoundError("PayrollRun not found")
    return run


def create_run(db: Session, tenant_id: uuid.UUID, data: PayrollRunCreate) -> PayrollRun:
    if data.parent_run_id is not None:
        get_run(db, tenant_id, data.parent_run_id)
    run = PayrollRun(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        period_start=data.period_start,
        period_end=data.period_end,
        pay_date=data.pay_date,
        pay_frequency=data.pay_frequency,
        week_number=data.week_number,
        parent_run_id=data.parent_run_id,
        include_subsidio_anual=data.include_subsidio_anual,
        notes=data.notes,
        status="draft",
        meta={},
    )
    run8 = str(run.id).replace("-", "")[:8]
    run.reference_no = f"PAYROLL-{data.period_start:%Y-%m}-{run8}"
    db.add(run)
    record_audit(db, "payroll_run", run.id, "create", tenant_id=tenant_id,
                 details={"period_start": str(data.period_start), "pay_date": str(data.pay_date)})
    db.commit()
    db.refresh(run)
    logger.info("payroll run created %s", run.reference_no)
    return run


def list_runs(db: Session, tenant_id: uuid.UUID, status: Optional[str] = None) -> List[PayrollRun]:
    stmt = select(PayrollRun).where(PayrollRun.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(PayrollRun.status == status)
    return list(db.execute(stmt.order_by(PayrollRun.pay_date.desc(), PayrollRun.created_at.desc())).scalars().all())


def eligible_employees(db: Session, run: PayrollRun) -> List[Employee]:
    stmt = (
        select(Employee)
        .where(
            Employee.tenant_id == run.tenant_id,
            Employee.active.is_(True),
            or_(Employee.hire_date.is_(None), Employee.hire_date <= run.period_end),
            or_(Employee.termination_date.is_(None), Employee.termination_date >= run.period_start),
        )
        .order_by(Employee.code)
    )
    return list(db.execute(stmt).scalars().all())


# ---------------------------- Input assembly ---------------------------- #

def _ytd(db: Session, employee_id: uuid.UUID, run: PayrollRun) -> Dict[str, Any]:
    """YTD totals from paid runs in the same calendar year, before this run's pay date."""
    year_start = date(run.pay_date.year, 1, 1)
    row = db.execute(
        select(
            func.coalesce(func.sum(PayrollRecord.gross_pay), 0),
            func.coalesce(func.sum(PayrollRecord.income_tax), 0),
            func.coalesce(func.sum(PayrollRecord.inss_employee), 0),
            func.coalesce(func.sum(PayrollRecord.sick_days_used), 0),
        )
        .join(PayrollRun, PayrollRun.id == PayrollRecord.run_id)
        .where(
            PayrollRecord.employee_id == employee_id,
            PayrollRun.status == "paid",
            PayrollRun.id != run.id,
            PayrollRun.pay_date >= year_start,
            PayrollRun.pay_date <= run.pay_date,
        )
    ).one()
    return {
        "gross": q2(row[0]),
        "income_tax": q2(row[1]),
        "inss_employee": q2(row[2]),
        "sick_days": int(row[3] or 0),
    }


def months_worked_in_year(emp: Employee, as_of: date) -> int:
    start_month = 1
    if emp.hire_date is not None:
        if emp.hire_date.year > as_of.year:
            return 0
        if emp.hire_date.year == as_of.year:
            start_month = emp.hire_date.month
    end_month = as_of.month
    if emp.termination_date is not None and emp.termination_date.year == as_of.year:
        end_month = min(end_month, emp.termination_date.month)
    return max(0, end_month - start_month + 1)


def _periods_divisor(run: PayrollRun, cfg: TaxConfig) -> Tuple[Optional[int], Decimal]:
    periods = pay_periods_in_pay_month(run.pay_date, run.pay_frequency)
    divisor = D(periods) if periods else cfg.periods_per_month(run.pay_frequency)
    return periods, divisor


def _default_regular_hours(run: PayrollRun, cfg: TaxConfig) -> Decimal:
    if run.pay_frequency == "weekly":
        return cfg.standard_weekly_hours
    if run.pay_frequency == "biweekly":
        return cfg.standard_weekly_hours * 2
    return q2(cfg.standard_weekly_hours * Decimal(52) / Decimal(12))


def loan_installment(loan: EmployeeLoan, emp: Employee, divisor: Decimal) -> Decimal:
    """Installment for one pay period, never more than what is still owed."""
    if loan.repayment_method == "percentage":
        monthly = percent_of(emp.monthly_salary, loan.repayment_percentage or 0)
    else:
        monthly = q2(loan.repayment_amount or 0)
    per_period = divide_money(monthly, divisor) if divisor and divisor != 1 else monthly
    return min_money(per_period, loan.remaining_balance)


def _loan_requests(db: Session, emp: Employee, run: PayrollRun, divisor: Decimal) -> List[Tuple[EmployeeLoan, Decimal]]:
    loans = db.execute(
        select(EmployeeLoan)
        .where(
            EmployeeLoan.employee_id == emp.id,
            EmployeeLoan.status == "active",
            EmployeeLoan.remaining_balance > 0,
            or_(EmployeeLoan.start_date.is_(None), EmployeeLoan.start_date <= run.pay_date),
        )
        .order_by(EmployeeLoan.request_date, EmployeeLoan.created_at)
    ).scalars().all()
    out = []
    for loan in loans:
        amt = loan_installment(loan, emp, divisor)
        if amt > 0:
            out.append((loan, amt))
    return out


def build_payroll_input(
    emp: Employee,
    run: PayrollRun,
    cfg: TaxConfig,
    run_input: Optional[EmployeeRunInput],
    ytd: Dict[str, Any],
    loan_requests: Iterable[Tuple[EmployeeLoan, Decimal]],
) -> PayrollInput:
    periods, divisor = _periods_divisor(run, cfg)
    ri = run_input or EmployeeRunInput(employee_id=emp.id)

    loan_total = sum_money(a for l, a in loan_requests if l.loan_type == "loan")
    advance_total = sum_money(a for l, a in loan_requests if l.loan_type == "advance")

    def per_period(monthly_amount: Any) -> Decimal:
        return divide_money(monthly_amount, divisor) if divisor != 1 else q2(monthly_amount)

    subsidio = ZERO
    if run.include_subsidio_anual:
        subsidio = calculate_subsidio_anual(
            emp.monthly_salary,
            months_worked_in_year(emp, run.pay_date),
            emp.hire_date,
            run.pay_date,
            emp.termination_date,
            cfg,
        )

    regular_hours = ri.regular_hours if ri.regular_hours is not None else _default_regular_hours(run, cfg)

    return PayrollInput(
        employee_id=str(emp.id),
        monthly_salary=q2(emp.monthly_salary),
        pay_frequency=run.pay_frequency,
        period_number=run.week_number,
        total_periods_in_month=periods,
        is_hourly=bool(emp.is_hourly),
        hourly_rate=q2(emp.hourly_rate) if emp.hourly_rate is not None else None,
        regular_hours=D(regular_hours),
        overtime_hours=D(ri.overtime_hours),
        night_shift_hours=D(ri.night_shift_hours),
        holiday_hours=D(ri.holiday_hours),
        rest_day_hours=D(ri.rest_day_hours),
        absence_hours=D(ri.absence_hours),
        late_arrival_minutes=int(ri.late_arrival_minutes),
        sick_days_used=int(ri.sick_days),
        ytd_sick_days_used=int(ytd["sick_days"]),
        bonus=q2(ri.bonus),
        commission=q2(ri.commission),
        per_diem=q2(ri.per_diem),
        food_allowance=per_period(emp.food_allowance),
        transport_allowance=per_period(emp.transport_allowance),
        housing_allowance=per_period(emp.housing_allowance),
        other_earnings=sum_money([ri.other_earnings, per_period(emp.other_allowance)]),
        subsidio_anual=subsidio,
        is_resident=bool(emp.is_resident),
        has_tax_exemption=bool(emp.has_tax_exemption),
        inss_contribution_base=ri.inss_contribution_base,
        loan_repayment=loan_total,
        advance_repayment=advance_total,
        court_orders=q2(ri.court_orders),
        other_deductions=q2(ri.other_deductions),
        ytd_gross_pay=ytd["gross"],
        ytd_income_tax=ytd["income_tax"],
        ytd_inss_employee=ytd["inss_employee"],
        months_worked_this_year=months_worked_in_year(emp, run.pay_date),
        hire_date=emp.hire_date,
    )


def allocate_loan_repayments(
    loan_requests: List[Tuple[EmployeeLoan, Decimal]],
    result: PayrollResult,
) -> List[Dict[str, str]]:
    """
    Split the (possibly capped) loan/advance deduction back over the loans
    that requested it. The last loan of each type absorbs rounding.
    """
    out: List[Dict[str, str]] = []
    for loan_type, code in (("loan", "loan_repayment"), ("advance", "advance_repayment")):
        reqs = [(l, a) for l, a in loan_requests if l.loan_type == loan_type]
        if not reqs:
            continue
        requested = sum_money(a for _, a in reqs)
        final = result.deduction_amount(code)
        left = final
        for idx, (loan, amt) in enumerate(reqs):
            if idx == len(reqs) - 1:
                applied = left
            else:
                applied = q2(amt * final / requested) if requested > 0 else ZERO
                left = q2(left - applied)
            out.append({"loan_id": str(loan.id), "type": loan_type, "requested": str(amt), "applied": str(applied)})
    return out


# ------------------------------ Compute ------------------------------ #

def _items_for(record: PayrollRecord, run: PayrollRun, result: PayrollResult) -> List[PayrollItem]:
    items: List[PayrollItem] = []
    for e in result.earnings:
        items.append(PayrollItem(
            run_id=run.id, record_id=record.id, employee_id=record.employee_id,
            kind="earning", code=e.type.upper(),
            description=e.description, description_tl=e.description_tl,
            quantity=D(e.hours) if e.hours is not None else Decimal("1"),
            rate=D(e.rate) if e.rate is not None else e.amount,
            amount=e.amount, taxable=e.is_taxable, inss_base=e.is_inss_base, meta={},
        ))
    for d in result.deductions:
        kind = "tax" if d.type == "income_tax" else "deduction"
        code = {"income_tax": "WIT", "inss_employee": "INSS_EE"}.get(d.type, d.type.upper())
        items.append(PayrollItem(
            run_id=run.id, record_id=record.id, employee_id=record.employee_id,
            kind=kind, code=code, description=d.description, description_tl=d.description_tl,
            quantity=Decimal("1"), rate=d.amount, amount=d.amount, taxable=False,
            meta={"statutory": d.is_statutory},
        ))
    if result.inss_employer > 0:
        items.append(PayrollItem(
            run_id=run.id, record_id=record.id, employee_id=record.employee_id,
            kind="employer_contrib", code="INSS_ER",
            description="INSS Employer", description_tl="INSS Empregador",
            quantity=Decimal("1"), rate=result.inss_employer, amount=result.inss_employer,
            taxable=False, meta={},
        ))
    return items


def _clear_results(db: Session, run: PayrollRun) -> None:
    db.query(PayrollItem).filter(PayrollItem.run_id == run.id).delete(synchronize_session=False)
    db.query(PayrollRecord).filter(PayrollRecord.run_id == run.id).delete(synchronize_session=False)
    db.flush()
    db.expire(run, ["records", "items"])


def compute_run(
    db: Session,
    tenant_id: uuid.UUID,
    run_id: uuid.UUID,
    inputs: Optional[List[EmployeeRunInput]] = None,
    user_id: Optional[Any] = None,
) -> Dict[str, Any]:
    run = get_run(db, tenant_id, run_id)
    if run.status not in COMPUTABLE:
        raise StateError(f"Cannot compute a run in status '{run.status}'")

    employees = eligible_employees(db, run)
    by_id = {e.id: e for e in employees}
    input_map: Dict[uuid.UUID, EmployeeRunInput] = {}
    for ri in inputs or []:
        if ri.employee_id not in by_id:
            raise ValueError(f"Employee {ri.employee_id} is not eligible for this run")
        input_map[ri.employee_id] = ri

    cfg = effective_tax_config(db, tenant_id, run.pay_date)
    _, divisor = _periods_divisor(run, cfg)

    _clear_results(db, run)

    yyyymm = run.period_start.strftime("%Y%m")
    run8 = str(run.id).replace("-", "")[:8]
    totals = {k: ZERO for k in ("gross", "net", "deductions", "wit", "inss_ee", "inss_er", "cost")}
    warning_count = 0

    for emp in employees:
        ytd = _ytd(db, emp.id, run)
        loans = _loan_requests(db, emp, run, divisor)
        inp = build_payroll_input(emp, run, cfg, input_map.get(emp.id), ytd, loans)
        result = calculate_tl_payroll(inp, cfg)

        for w in result.warnings:
            logger.warning("run %s employee %s: %s", run.reference_no, emp.code, w)
        warning_count += len(result.warnings)

        record = PayrollRecord(
            id=uuid.uuid4(),
            run_id=run.id,
            tenant_id=tenant_id,
            employee_id=emp.id,
            gross_pay=result.gross_pay,
            taxable_income=result.taxable_income,
            inss_base=result.inss_base,
            income_tax=result.income_tax,
            inss_employee=result.inss_employee,
            inss_employer=result.inss_employer,
            total_deductions=result.total_deductions,
            net_pay=result.net_pay,
            employer_cost=result.total_employer_cost,
            ytd_gross_pay=result.new_ytd_gross_pay,
            ytd_income_tax=result.new_ytd_income_tax,
            ytd_inss_employee=result.new_ytd_inss_employee,
            sick_days_used=inp.sick_days_used,
            is_resident=inp.is_resident,
            snapshot_json={
                "input": _input_snapshot(inp),
                "result": result.as_dict(),
                "loans": allocate_loan_repayments(loans, result),
                "tax_year": cfg.year,
            },
            warnings=list(result.warnings),
            reference_no=f"PAY-{yyyymm}-{emp.code}-{run8}",
        )
        db.add(record)
        db.flush()
        for item in _items_for(record, run, result):
            db.add(item)

        totals["gross"] += result.gross_pay
        totals["net"] += result.net_pay
        totals["deductions"] += result.total_deductions
        totals["wit"] += result.income_tax
        totals["inss_ee"] += result.inss_employee
        totals["inss_er"] += result.inss_employer
        totals["cost"] += result.total_employer_cost

    run.total_gross = q2(totals["gross"])
    run.total_net = q2(totals["net"])
    run.total_deductions = q2(totals["deductions"])
    run.total_income_tax = q2(totals["wit"])
    run.total_inss_employee = q2(totals["inss_ee"])
    run.total_inss_employer = q2(totals["inss_er"])
    run.total_employer_cost = q2(totals["cost"])
    run.employee_count = len(employees)
    run.status = "computed"
    run.computed_at = _now()

    record_audit(db, "payroll_run", run.id, "compute", tenant_id=tenant_id, user_id=user_id,
                 details={"employees": len(employees), "total_net": str(run.total_net)})
    db.commit()
    db.refresh(run)
    logger.info(
        "payroll run computed %s employees=%d gross=%s net=%s",
        run.reference_no, len(employees), run.total_gross, run.total_net,
    )
    return {
        "run_id": str(run.id),
        "status": run.status,
        "employees": len(employees),
        "records": len(employees),
        "warnings": warning_count,
        "total_gross": str(run.total_gross),
        "total_net": str(run.total_net),
    }


def _input_snapshot(inp: PayrollInput) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in inp.__dict__.items():
        if isinstance(value, (Decimal, date)):
            out[key] = str(value)
        else:
            out[key] = value
    return out


# ---------------------------- Transitions ---------------------------- #

def approve_run(db: Session, tenant_id: uuid.UUID, run_id: uuid.UUID, approved_by: Optional[str] = None) -> PayrollRun:
    run = get_run(db, tenant_id, run_id)
    if run.status != "computed":
        raise StateError(f"Only computed runs can be approved (status '{run.status}')")
    run.status = "approved"
    run.approved_at = _now()
    run.approved_by = approved_by
    record_audit(db, "payroll_run", run.id, "approve", tenant_id=tenant_id, user_id=approved_by)
    db.commit()
    db.refresh(run)
    logger.info("payroll run approved %s by=%s", run.reference_no, approved_by)
    return run


def mark_run_paid(db: Session, tenant_id: uuid.UUID, run_id: uuid.UUID, user_id: Optional[Any] = None) -> PayrollRun:
    run = get_run(db, tenant_id, run_id)
    if run.status != "approved":
        raise StateError(f"Only approved runs can be marked paid (status '{run.status}')")

    applied_total = ZERO
    records = db.execute(select(PayrollRecord).where(PayrollRecord.run_id == run.id)).scalars().all()
    for rec in records:
        for entry in (rec.snapshot_json or {}).get("loans", []):
            loan = db.get(EmployeeLoan, uuid.UUID(entry["loan_id"]))
            applied = q2(entry.get("applied"))
            if loan is None or applied <= 0:
                continue
            if loan.status != "active":
                logger.warning(
                    "run %s: loan %s is %s, repayment %s not applied",
                    run.reference_no, loan.id, loan.status, applied,
                )
                continue
            applied = min_money(applied, loan.remaining_balance)
            loan.total_repaid = q2(D(loan.total_repaid) + applied)
            loan.remaining_balance = q2(D(loan.remaining_balance) - applied)
            if loan.remaining_balance <= 0:
                loan.remaining_balance = ZERO
                loan.status = "completed"
                loan.completed_at = _now()
            applied_total += applied

    run.status = "paid"
    run.paid_at = _now()
    record_audit(db, "payroll_run", run.id, "pay", tenant_id=tenant_id, user_id=user_id,
                 details={"loan_repayments": str(q2(applied_total))})
    db.commit()
    db.refresh(run)
    logger.info("payroll run paid %s loan_repayments=%s", run.reference_no, q2(applied_total))
    return run


def cancel_run(db: Session, tenant_id: uuid.UUID, run_id: uuid.UUID, user_id: Optional[Any] = None) -> PayrollRun:
    run = get_run(db, tenant_id, run_id)
    if run.status not in CANCELLABLE:
        raise StateError(f"Cannot cancel a run in status '{run.status}'")
    run.status = "cancelled"
    run.cancelled_at = _now()
    record_audit(db, "payroll_run", run.id, "cancel", tenant_id=tenant_id, user_id=user_id)
    db.commit()
    db.refresh(run)
    logger.info("payroll run cancelled %s", run.reference_no)
    return run


# ------------------------------ Reads -------------------------------- #

def list_records(db: Session, run: PayrollRun) -> List[PayrollRecord]:
    return list(
        db.execute(
            select(PayrollRecord)
            .join(Employee, Employee.id == PayrollRecord.employee_id)
            .where(PayrollRecord.run_id == run.id)
            .order_by(Employee.code)
        ).scalars().all()
    )


def get_record(db: Session, tenant_id: uuid.UUID, record_id: uuid.UUID) -> PayrollRecord:
    rec = db.get(PayrollRecord, record_id)
    if not rec or rec.tenant_id != tenant_id:
        raise NotFoundError("PayrollRecord not found")
    return rec


def run_summary(db: Session, run: PayrollRun) -> Dict[str, Any]:
    records = list_records(db, run)
    by_department: Dict[str, Dict[str, Decimal]] = {}
    by_payment: Dict[str, int] = {}
    warnings = 0
    for rec in records:
        emp = rec.employee
        dept = emp.department or "Unassigned"
        bucket = by_department.setdefault(dept, {"employees": 0, "gross": ZERO, "net": ZERO})
        bucket["employees"] += 1
        bucket["gross"] = q2(bucket["gross"] + rec.gross_pay)
        bucket["net"] = q2(bucket["net"] + rec.net_pay)
        by_payment[emp.payment_method] = by_payment.get(emp.payment_method, 0) + 1
        warnings += len(rec.warnings or [])
    return {
        "run_id": str(run.id),
        "reference_no": run.reference_no,
        "status": run.status,
        "employee_count": run.employee_count,
        "total_gross": str(run.total_gross),
        "total_deductions": str(run.total_deductions),
        "total_net": str(run.total_net),
        "total_income_tax": str(run.total_income_tax),
        "total_inss_employee": str(run.total_inss_employee),
        "total_inss_employer": str(run.total_inss_employer),
        "total_employer_cost": str(run.total_employer_cost),
        "warnings": warnings,
        "by_department": {
            k: {"employees": v["employees"], "gross": str(v["gross"]), "net": str(v["net"])}
            for k, v in sorted(by_department.items())
        },
        "by_payment_method": by_payment,
    }


def subsidio_anual_preview(db: Session, tenant_id: uuid.UUID, year: int) -> List[Dict[str, Any]]:
    """Pro-rated 13th-month amounts as of the 20 December deadline."""
    cfg = effective_tax_config(db, tenant_id, date(year, 12, 1))
    as_of = date(year, cfg.subsidio_deadline_month, cfg.subsidio_deadline_day)
    out = []
    for emp in list_employees(db, tenant_id):
        if emp.termination_date is not None and emp.termination_date.year < year:
            continue
        if emp.hire_date is not None and emp.hire_date > as_of:
            continue
        months = months_worked_in_year(emp, as_of)
        amount = calculate_subsidio_anual(
            emp.monthly_salary, months, emp.hire_date, as_of, emp.termination_date, cfg
        )
        out.append({
            "employee_id": str(emp.id),
            "code": emp.code,
            "full_name": emp.full_name,
            "monthly_salary": str(q2(emp.monthly_salary)),
            "months_worked": min(months, cfg.subsidio_full_year_months),
            "amount": str(amount),
            "due_date": as_of.isoformat(),
        })
    return out
