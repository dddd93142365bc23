# meza/api/loans.py
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant, http_error
from meza.models.tenant import Tenant
from meza.schemas.payroll import LoanCreate, LoanOut
from meza.services import loans as svc

router = APIRouter(prefix="/tenants/{tenant_id}/loans", tags=["loans"])


@router.post("", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
def api_create_loan(
    payload: LoanCreate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("loans:manage")),
):
    try:
        return svc.create_loan(db, tenant.id, payload, user_id=user.id)
    except ValueError as e:
        raise http_error(e)


@router.get("", response_model=List[LoanOut], dependencies=[Depends(require_permission("loans:read"))])
def api_list_loans(
    employee_id: Optional[UUID] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return svc.list_loans(db, tenant.id, employee_id, status_)


@router.post("/{loan_id}/approve", response_model=LoanOut)
def api_approve_loan(
    loan_id: UUID,
    start_date: Optional[date] = Query(None, description="First pay date that may deduct; defaults to today"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("loans:approve")),
):
    try:
        return svc.approve_loan(db, tenant.id, loan_id, start_date, user_id=user.id)
    except ValueError as e:
        raise http_error(e)


@router.post("/{loan_id}/cancel", response_model=LoanOut)
def api_cancel_loan(
    loan_id: UUID,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("loans:manage")),
):
    try:
        return svc.cancel_loan(db, tenant.id, loan_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
