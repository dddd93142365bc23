# meza/api/tax_filings.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant, http_error
from meza.models.tenant import Tenant
from meza.schemas.tax_filing import FilingCreate, FilingMarkFiled
from meza.services import tax_filings as svc

router = APIRouter(prefix="/tenants/{tenant_id}/tax", tags=["tax filings"])


# ----------------------------- returns ----------------------------- #

@router.get("/returns/monthly-wit", dependencies=[Depends(require_permission("tax:read"))])
def api_monthly_wit(
    period: str = Query(..., description="YYYY-MM"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        return svc.monthly_wit_return(db, tenant.id, period)
    except ValueError as e:
        raise http_error(e)


@router.get("/returns/inss-monthly", dependencies=[Depends(require_permission("tax:read"))])
def api_monthly_inss(
    period: str = Query(..., description="YYYY-MM"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        return svc.monthly_inss_return(db, tenant.id, period)
    except ValueError as e:
        raise http_error(e)


@router.get("/returns/annual-wit", dependencies=[Depends(require_permission("tax:read"))])
def api_annual_wit(
    year: int = Query(..., ge=2000, le=2100),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return svc.annual_wit_return(db, tenant.id, year)


@router.get("/certificates/{employee_id}", dependencies=[Depends(require_permission("tax:read"))])
def api_wit_certificate(
    employee_id: UUID,
    year: int = Query(..., ge=2000, le=2100),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        return svc.employee_wit_certificate(db, tenant.id, employee_id, year)
    except ValueError as e:
        raise http_error(e)


# ----------------------------- filings ----------------------------- #

@router.post("/filings")
def api_save_filing(
    payload: FilingCreate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("tax:file")),
):
    try:
        filing = svc.save_filing(db, tenant.id, payload.filing_type, payload.period, user_id=user.id)
    except ValueError as e:
        db.rollback()
        raise http_error(e)
    return svc.filing_out(filing)


@router.get("/filings", dependencies=[Depends(require_permission("tax:read"))])
def api_list_filings(
    filing_type: Optional[str] = Query(None, alias="type"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return [svc.filing_out(f) for f in svc.list_filings(db, tenant.id, filing_type)]


@router.get("/filings/{filing_id}", dependencies=[Depends(require_permission("tax:read"))])
def api_get_filing(filing_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        return svc.filing_out(svc.get_filing(db, tenant.id, filing_id))
    except ValueError as e:
        raise http_error(e)


@router.post("/filings/{filing_id}/file")
def api_mark_filed(
    filing_id: UUID,
    payload: FilingMarkFiled,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("tax:file")),
):
    try:
        filing = svc.mark_filed(
            db, tenant.id, filing_id,
            payload.submission_method,
            receipt_number=payload.receipt_number,
            notes=payload.notes,
            task=payload.task,
            filed_date=payload.filed_date,
            user_id=user.id,
        )
    except ValueError as e:
        raise http_error(e)
    return svc.filing_out(filing)


@router.get("/filings/{filing_id}/export.csv", dependencies=[Depends(require_permission("tax:read"))])
def api_export_filing_csv(filing_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        filing = svc.get_filing(db, tenant.id, filing_id)
    except ValueError as e:
        raise http_error(e)

    def esc(v):
        s = "" if v is None else str(v)
        if any(ch in s for ch in [",", "\"", "\n", "\r"]):
            s = "\"" + s.replace("\"", "\"\"") + "\""
        return s

    def row_iter():
        for row in svc.filing_csv_rows(filing):
            yield ",".join(esc(x) for x in row) + "\n"

    filename = f"{filing.filing_type}_{filing.period}.csv"
    return StreamingResponse(
        row_iter(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ----------------------------- tracker ----------------------------- #

@router.get("/due-soon", dependencies=[Depends(require_permission("tax:read"))])
def api_due_soon(
    months: int = Query(3, ge=0, le=12),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return svc.due_soon(db, tenant.id, months)


@router.get("/summary", dependencies=[Depends(require_permission("tax:read"))])
def api_filing_summary(tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    return svc.status_summary(db, tenant.id)
