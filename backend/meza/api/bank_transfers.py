# meza/api/bank_transfers.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant, http_error
from meza.models.tenant import Tenant
from meza.schemas.bank_transfer import (
    BankFileGenerate,
    BankFileGenerateOut,
    BankFileOut,
    BankFileStatusPatch,
)
from meza.services import bank_transfers as svc

router = APIRouter(prefix="/tenants/{tenant_id}/bank-transfers", tags=["bank transfers"])


@router.post("/runs/{run_id}", response_model=BankFileGenerateOut, status_code=status.HTTP_201_CREATED)
def api_generate_files(
    run_id: UUID,
    payload: Optional[BankFileGenerate] = None,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payments:manage")),
):
    payload = payload or BankFileGenerate()
    try:
        res = svc.generate_files(
            db, tenant.id, run_id,
            bank_code=payload.bank_code,
            value_date=payload.value_date,
            user_id=user.id,
        )
    except ValueError as e:
        db.rollback()
        raise http_error(e)
    return res


@router.get("", response_model=List[BankFileOut], dependencies=[Depends(require_permission("payments:read"))])
def api_list_files(
    run_id: Optional[UUID] = Query(None),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return svc.list_files(db, tenant.id, run_id)


@router.get("/{file_id}", response_model=BankFileOut, dependencies=[Depends(require_permission("payments:read"))])
def api_get_file(file_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        return svc.get_file(db, tenant.id, file_id)
    except ValueError as e:
        raise http_error(e)


@router.get("/{file_id}/download", dependencies=[Depends(require_permission("payments:read"))])
def api_download_file(file_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    try:
        row = svc.get_file(db, tenant.id, file_id)
    except ValueError as e:
        raise http_error(e)
    return Response(
        content=row.content,
        media_type=row.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{row.file_name}"'},
    )


@router.patch("/{file_id}", response_model=BankFileOut)
def api_update_status(
    file_id: UUID,
    payload: BankFileStatusPatch,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    user=Depends(require_permission("payments:manage")),
):
    try:
        return svc.update_status(db, tenant.id, file_id, payload.status, payload.notes, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
