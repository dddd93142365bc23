# meza/api/tenants.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meza.api.rbac import require_permission
from meza.dependencies import get_db, get_tenant
from meza.models.payroll import PayrollConfig
from meza.models.tenant import HolidayOverride, Tenant
from meza.schemas.tenant import (
    HolidayOverrideCreate,
    HolidayOverrideOut,
    PayrollConfigCreate,
    PayrollConfigOut,
    TenantCreate,
    TenantOut,
    TenantUpdate,
)
from meza.services.audit import record_audit
from meza.services.payroll_rates import validate_overrides
from meza.services.tenants import effective_tax_config, tenant_holidays

router = APIRouter(prefix="/tenants", tags=["tenants"])

logger = logging.getLogger(__name__)


# ----------------------------- Tenants ----------------------------- #

@router.post(
    "",
    response_model=TenantOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("tenants:manage"))],
)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)):
    tenant = Tenant(**payload.model_dump())
    db.add(tenant)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Tenant code already exists")
    record_audit(db, "tenant", tenant.id, "create", tenant_id=tenant.id, details={"code": tenant.code})
    db.commit()
    db.refresh(tenant)
    logger.info("tenant created %s", tenant.code)
    return tenant


@router.get("", response_model=List[TenantOut], dependencies=[Depends(require_permission("tenants:read"))])
def list_tenants(active: Optional[bool] = Query(None), db: Session = Depends(get_db)):
    stmt = select(Tenant)
    if active is not None:
        stmt = stmt.where(Tenant.is_active.is_(active))
    return db.execute(stmt.order_by(Tenant.code)).scalars().all()


@router.get(
    "/{tenant_id}",
    response_model=TenantOut,
    dependencies=[Depends(require_permission("tenants:read"))],
)
def get_tenant_by_id(tenant: Tenant = Depends(get_tenant)):
    return tenant


@router.patch(
    "/{tenant_id}",
    response_model=TenantOut,
    dependencies=[Depends(require_permission("tenants:manage"))],
)
def patch_tenant(tenant_id: UUID, payload: TenantUpdate, db: Session = Depends(get_db)):
    # inactive tenants can be re-activated here, so no get_tenant
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(tenant, key, value)
    record_audit(db, "tenant", tenant.id, "update", tenant_id=tenant.id, details={"fields": sorted(changes)})
    db.commit()
    db.refresh(tenant)
    return tenant


# ----------------------------- Payroll configs ----------------------------- #

@router.post(
    "/{tenant_id}/payroll-configs",
    response_model=PayrollConfigOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("settings:manage"))],
)
def create_payroll_config(
    payload: PayrollConfigCreate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        values = validate_overrides(payload.value_json)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    data = payload.model_dump()
    data["value_json"] = values
    row = PayrollConfig(tenant_id=tenant.id, **data)
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="A config with this key and effective date already exists")
    record_audit(db, "payroll_config", row.id, "create", tenant_id=tenant.id,
                 details={"key": row.key, "effective_from": str(row.effective_from), "fields": sorted(row.value_json)})
    db.commit()
    db.refresh(row)
    logger.info("payroll config %s for tenant %s from %s", row.key, tenant.code, row.effective_from)
    return row


@router.get(
    "/{tenant_id}/payroll-configs",
    response_model=List[PayrollConfigOut],
    dependencies=[Depends(require_permission("settings:read"))],
)
def list_payroll_configs(tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    return db.execute(
        select(PayrollConfig)
        .where(PayrollConfig.tenant_id == tenant.id)
        .order_by(PayrollConfig.key, PayrollConfig.effective_from.desc())
    ).scalars().all()


@router.get("/{tenant_id}/tax-config", dependencies=[Depends(require_permission("settings:read"))])
def get_effective_tax_config(
    on: Optional[date] = Query(None, description="Pay date to resolve for; defaults to today"),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    on = on or date.today()
    cfg = effective_tax_config(db, tenant.id, on)
    return {"on": on.isoformat(), "config": cfg.as_dict()}


# ----------------------------- Holidays ----------------------------- #

@router.post(
    "/{tenant_id}/holidays",
    response_model=HolidayOverrideOut,
    dependencies=[Depends(require_permission("settings:manage"))],
)
def upsert_holiday_override(
    payload: HolidayOverrideCreate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    row = db.execute(
        select(HolidayOverride).where(
            HolidayOverride.tenant_id == tenant.id,
            HolidayOverride.holiday_date == payload.holiday_date,
        )
    ).scalars().first()
    if row is None:
        row = HolidayOverride(tenant_id=tenant.id, holiday_date=payload.holiday_date)
        db.add(row)
    row.is_holiday = payload.is_holiday
    row.name = payload.name
    db.flush()
    record_audit(db, "holiday_override", row.id, "update", tenant_id=tenant.id,
                 details={"date": str(row.holiday_date), "is_holiday": row.is_holiday})
    db.commit()
    db.refresh(row)
    return row


@router.get("/{tenant_id}/holidays", dependencies=[Depends(require_permission("settings:read"))])
def list_holidays(
    year: int = Query(..., ge=2000, le=2100),
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return tenant_holidays(db, tenant.id, year)


@router.delete(
    "/{tenant_id}/holidays/{override_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("settings:manage"))],
)
def delete_holiday_override(override_id: UUID, tenant: Tenant = Depends(get_tenant), db: Session = Depends(get_db)):
    row = db.get(HolidayOverride, override_id)
    if not row or row.tenant_id != tenant.id:
        raise HTTPException(status_code=404, detail="Holiday override not found")
    db.delete(row)
    db.commit()
    return
