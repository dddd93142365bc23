# meza/api/payroll.py
from __future__ import annotations

import html
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant, http_error
from meza.models.payroll import PayrollItem, PayrollRecord, PayrollRun
from meza.models.tenant import Tenant
from meza.schemas.payroll import (
    CalculateIn,
    PayrollRunCreate,
    RunApproveIn,
    RunComputeIn,
    WeeklyBreakdownIn,
)
from meza.services import payroll as svc
from meza.services.legacy import normalize_legacy_records
from meza.services.money import fmt_money
from meza.services.payroll_engine import (
    PayrollInput,
    calculate_monthly_weekly_payrolls,
    calculate_tl_payroll,
)
from meza.services.payroll_rates import load_tax_config

router = APIRouter(prefix="/tenants/{tenant_id}/payroll", tags=["payroll"])

# Stateless helpers; no tenant data involved
calc_router = APIRouter(prefix="/payroll", tags=["payroll"])


# ----------------------------- helpers ----------------------------- #

def _m(x: Any) -> Optional[str]:
    return str(x) if x is not None else None


def _run_out(r: PayrollRun) -> Dict[str, Any]:
    return {
        "id": str(r.id),
        "tenant_id": str(r.tenant_id),
        "reference_no": r.reference_no,
        "period_start": r.period_start,
        "period_end": r.period_end,
        "pay_date": r.pay_date,
        "pay_frequency": r.pay_frequency,
        "week_number": r.week_number,
        "parent_run_id": _m(r.parent_run_id),
        "status": r.status,
        "include_subsidio_anual": r.include_subsidio_anual,
        "notes": r.notes,
        "employee_count": r.employee_count,
        "total_gross": _m(r.total_gross),
        "total_deductions": _m(r.total_deductions),
        "total_net": _m(r.total_net),
        "total_income_tax": _m(r.total_income_tax),
        "total_inss_employee": _m(r.total_inss_employee),
        "total_inss_employer": _m(r.total_inss_employer),
        "total_employer_cost": _m(r.total_employer_cost),
        "computed_at": r.computed_at,
        "approved_at": r.approved_at,
        "approved_by": r.approved_by,
        "paid_at": r.paid_at,
        "cancelled_at": r.cancelled_at,
        "created_at": r.created_at,
    }


def _item_out(i: PayrollItem) -> Dict[str, Any]:
    return {
        "kind": i.kind,
        "code": i.code,
        "description": i.description,
        "description_tl": i.description_tl,
        "quantity": _m(i.quantity),
        "rate": _m(i.rate),
        "amount": _m(i.amount),
        "taxable": i.taxable,
        "inss_base": i.inss_base,
    }


def _record_out(rec: PayrollRecord, with_items: bool = False) -> Dict[str, Any]:
    emp = rec.employee
    out: Dict[str, Any] = {
        "id": str(rec.id),
        "run_id": str(rec.run_id),
        "employee_id": str(rec.employee_id),
        "employee_code": emp.code,
        "employee_name": emp.full_name,
        "reference_no": rec.reference_no,
        "gross_pay": _m(rec.gross_pay),
        "taxable_income": _m(rec.taxable_income),
        "inss_base": _m(rec.inss_base),
        "income_tax": _m(rec.income_tax),
        "inss_employee": _m(rec.inss_employee),
        "inss_employer": _m(rec.inss_employer),
        "total_deductions": _m(rec.total_deductions),
        "net_pay": _m(rec.net_pay),
        "employer_cost": _m(rec.employer_cost),
        "ytd_gross_pay": _m(rec.ytd_gross_pay),
        "ytd_income_tax": _m(rec.ytd_income_tax),
        "ytd_inss_employee": _m(rec.ytd_inss_employee),
        "sick_days_used": rec.sick_days_used,
        "is_resident": rec.is_resident,
        "warnings": list(rec.warnings or []),
    }
    if with_items:
        out["items"] = [_item_out(i) for i in _record_items(rec)]
        out["loans"] = (rec.snapshot_json or {}).get("loans", [])
    return out


def _record_items(rec: PayrollRecord) -> List[PayrollItem]:
    order = {"earning": 0, "tax": 1, "deduction": 2, "employer_contrib": 3}
    return sorted(rec.items, key=lambda i: (order.get(i.kind, 9), i.code))


# ----------------------------- runs ----------------------------- #

@router.post("/runs", status_code=status.HTTP_201_CREATED)
def api_create_run(
    payload: PayrollRunCreate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payroll:run")),
):
    try:
        run = svc.create_run(db, tenant.id, payload)
    except ValueError as e:
        raise http_error(e)
    return _run_out(run)


@router.get("/runs", dependencies=[Depends(require_permission("payroll:read"))])
def api_list_runs(
    status_: Optional[str] = Query(None, alias="status"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return [_run_out(r) for r in svc.list_runs(db, tenant.id, status_)]


@router.get("/runs/{run_id}", dependencies=[Depends(require_permission("payroll:read"))])
def api_get_run(run_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        return _run_out(svc.get_run(db, tenant.id, run_id))
    except ValueError as e:
        raise http_error(e)


@router.post("/runs/{run_id}/compute")
def api_compute_run(
    run_id: UUID,
    payload: Optional[RunComputeIn] = None,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payroll:run")),
):
    try:
        res = svc.compute_run(db, tenant.id, run_id, payload.inputs if payload else None, user_id=user.id)
    except ValueError as e:
        db.rollback()
        raise http_error(e)
    return res


@router.post("/runs/{run_id}/approve")
def api_approve_run(
    run_id: UUID,
    payload: Optional[RunApproveIn] = None,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payroll:approve")),
):
    try:
        run = svc.approve_run(db, tenant.id, run_id, (payload.approved_by if payload else None) or user.email)
    except ValueError as e:
        raise http_error(e)
    return _run_out(run)


@router.post("/runs/{run_id}/pay")
def api_mark_run_paid(
    run_id: UUID,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payroll:approve")),
):
    try:
        run = svc.mark_run_paid(db, tenant.id, run_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return _run_out(run)


@router.post("/runs/{run_id}/cancel")
def api_cancel_run(
    run_id: UUID,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payroll:run")),
):
    try:
        run = svc.cancel_run(db, tenant.id, run_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return _run_out(run)


@router.get("/runs/{run_id}/records", dependencies=[Depends(require_permission("payroll:read"))])
def api_list_records(run_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        run = svc.get_run(db, tenant.id, run_id)
    except ValueError as e:
        raise http_error(e)
    return [_record_out(r) for r in svc.list_records(db, run)]


@router.get("/runs/{run_id}/summary", dependencies=[Depends(require_permission("payroll:read"))])
def api_run_summary(run_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        run = svc.get_run(db, tenant.id, run_id)
    except ValueError as e:
        raise http_error(e)
    return svc.run_summary(db, run)


@router.get("/records/{record_id}", dependencies=[Depends(require_permission("payroll:read"))])
def api_get_record(record_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        rec = svc.get_record(db, tenant.id, record_id)
    except ValueError as e:
        raise http_error(e)
    return _record_out(rec, with_items=True)


@router.get("/subsidio-anual", dependencies=[Depends(require_permission("payroll:read"))])
def api_subsidio_anual(
    year: int = Query(..., ge=2000, le=2100),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    rows = svc.subsidio_anual_preview(db, tenant.id, year)
    total = sum((Decimal(r["amount"]) for r in rows), Decimal("0.00"))
    return {"year": year, "employees": rows, "total": str(total)}


@router.post("/legacy/normalize", dependencies=[Depends(require_permission("payroll:run"))])
def api_normalize_legacy(records: List[Dict[str, Any]] = Body(...), tenant: Tenant = Depends(get_tenant)):
    """Map US-style records from the previous system onto TL deduction types."""
    return normalize_legacy_records(records)


# ----------------------------- HTML payslip ----------------------------- #

def _render_payslip_html(tenant: Tenant, run: PayrollRun, rec: PayrollRecord) -> str:
    emp = rec.employee
    esc = html.escape
    items = _record_items(rec)

    def _rows(kinds) -> str:
        return "".join(
            f"<tr><td>{esc(i.description or i.code)}<div class='muted'>{esc(i.description_tl or '')}</div></td>"
            f"<td style='text-align:right'>{fmt_money(i.amount)}</td></tr>"
            for i in items if i.kind in kinds
        )

    earnings = _rows(("earning",))
    deductions = _rows(("tax", "deduction"))
    employer = _rows(("employer_contrib",))
    warnings = "".join(f"<li>{esc(w)}</li>" for w in (rec.warnings or []))

    page = f"""
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8"/>
<title>Payslip {esc(rec.reference_no or str(rec.id))}</title>
<style>
  body {{ font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, "Helvetica Neue", Arial; margin: 24px; }}
  .card {{ max-width: 720px; margin: 0 auto; border: 1px solid #ddd; border-radius: 12px; padding: 20px; }}
  h1 {{ font-size: 20px; margin: 0 0 12px; }}
  h2 {{ font-size: 16px; margin: 16px 0 8px; }}
  table {{ width: 100%; border-collapse: collapse; }}
  td, th {{ padding: 6px 4px; border-bottom: 1px solid #eee; }}
  .totals td {{ font-weight: 600; }}
  .muted {{ color: #666; font-size: 12px; }}
  .grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 6px 16px; margin-bottom: 12px; }}
</style>
</head>
<body>
<div class="card">
  <h1>Payslip / Rekibu Saláriu</h1>
  <div class="grid">
    <div><strong>Employer:</strong> {esc(tenant.display_name)}</div>
    <div><strong>TIN:</strong> {esc(tenant.tin_number or "")}</div>
    <div><strong>Employee:</strong> {esc(emp.full_name)} ({esc(emp.code)})</div>
    <div><strong>Position:</strong> {esc(emp.position or "")}</div>
    <div><strong>Period:</strong> {run.period_start:%Y-%m-%d} to {run.period_end:%Y-%m-%d}</div>
    <div><strong>Pay date:</strong> {run.pay_date:%Y-%m-%d}</div>
    <div><strong>Reference:</strong> {esc(rec.reference_no or str(rec.id))}</div>
    <div><strong>INSS No.:</strong> {esc(emp.inss_number or "")}</div>
  </div>

  <h2>Earnings</h2>
  <table>{earnings or "<tr><td colspan='2' class='muted'>No earnings</td></tr>"}</table>

  <h2>Deductions</h2>
  <table>{deductions or "<tr><td colspan='2' class='muted'>None</td></tr>"}</table>

  <h2>Totals</h2>
  <table class="totals">
    <tr><td>Gross Pay</td><td style="text-align:right">{fmt_money(rec.gross_pay)}</td></tr>
    <tr><td>Total Deductions</td><td style="text-align:right">{fmt_money(rec.total_deductions)}</td></tr>
    <tr><td>Net Pay</td><td style="text-align:right">{fmt_money(rec.net_pay)}</td></tr>
  </table>

  <h2>Employer contributions</h2>
  <table>{employer or "<tr><td colspan='2' class='muted'>None</td></tr>"}</table>

  <h2>Year to date</h2>
  <table>
    <tr><td>Gross</td><td style="text-align:right">{fmt_money(rec.ytd_gross_pay)}</td></tr>
    <tr><td>WIT</td><td style="text-align:right">{fmt_money(rec.ytd_income_tax)}</td></tr>
    <tr><td>INSS</td><td style="text-align:right">{fmt_money(rec.ytd_inss_employee)}</td></tr>
  </table>
  {f"<h2>Notes</h2><ul class='muted'>{warnings}</ul>" if warnings else ""}
</div>
</body>
</html>
    """.strip()
    return page


@router.get(
    "/records/{record_id}/payslip.html",
    response_class=HTMLResponse,
    dependencies=[Depends(require_permission("payroll:read"))],
)
def api_get_payslip_html(record_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        rec = svc.get_record(db, tenant.id, record_id)
    except ValueError as e:
        raise http_error(e)
    run = db.get(PayrollRun, rec.run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run missing")
    return _render_payslip_html(tenant, run, rec)


# ----------------------------- stateless ----------------------------- #

@calc_router.post("/calculate")
def api_calculate(payload: CalculateIn):
    """One gross-to-net calculation with the national tax tables (no tenant overrides)."""
    data = payload.model_dump()
    year = data.pop("year", None) or date.today().year
    cfg = load_tax_config(year)
    result = calculate_tl_payroll(PayrollInput.from_dict(data), cfg)
    return {"tax_year": cfg.year, **result.as_dict()}


@calc_router.post("/weekly-breakdown")
def api_weekly_breakdown(payload: WeeklyBreakdownIn):
    if any(d < 0 for d in payload.weekly_working_days):
        raise HTTPException(status_code=400, detail="weekly_working_days must be non-negative")
    weeks = calculate_monthly_weekly_payrolls(payload.monthly_salary, payload.weekly_working_days)
    return {
        "monthly_salary": str(payload.monthly_salary),
        "weeks": [
            {
                "week_number": w.week_number,
                "working_days": w.working_days,
                "amount": str(w.amount),
                "is_reconciled": w.is_reconciled,
            }
            for w in weeks
        ],
        "total": str(sum((w.amount for w in weeks), Decimal("0.00"))),
    }
