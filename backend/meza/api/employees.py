# meza/api/employees.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant, http_error
from meza.models.tenant import Tenant
from meza.schemas.payroll import EmployeeCreate, EmployeeOut, EmployeeUpdate
from meza.services import payroll as svc

router = APIRouter(prefix="/tenants/{tenant_id}/employees", tags=["employees"])


@router.post(
    "",
    response_model=EmployeeOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("employees:manage"))],
)
def create_employee(payload: EmployeeCreate, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        return svc.create_employee(db, tenant.id, payload)
    except ValueError as e:
        raise http_error(e)


@router.get("", response_model=List[EmployeeOut], dependencies=[Depends(require_permission("employees:read"))])
def list_employees(
    active: Optional[bool] = Query(None),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return svc.list_employees(db, tenant.id, active)


@router.get(
    "/{employee_id}",
    response_model=EmployeeOut,
    dependencies=[Depends(require_permission("employees:read"))],
)
def get_employee(employee_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        return svc.get_employee(db, tenant.id, employee_id)
    except ValueError as e:
        raise http_error(e)


@router.patch(
    "/{employee_id}",
    response_model=EmployeeOut,
    dependencies=[Depends(require_permission("employees:manage"))],
)
def patch_employee(
    employee_id: UUID,
    payload: EmployeeUpdate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        return svc.update_employee(db, tenant.id, employee_id, payload)
    except ValueError as e:
        db.rollback()
        raise http_error(e)
