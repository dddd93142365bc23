# backend/meza/services/tenants.py
"""
Tenant settings: effective tax configuration and holiday calendar.

Both are read by the payroll and filing services so that a tenant's own
overrides flow into every calculation and due date.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from meza.models.payroll import PayrollConfig
from meza.models.tenant import HolidayOverride
from meza.services.holidays import adjust_to_next_business_day, tl_public_holidays
from meza.services.payroll_rates import TaxConfig, load_tax_config

logger = logging.getLogger(__name__)

TAX_CONFIG_KEY = "tl_tax"


def tenant_tax_overrides(db: Session, tenant_id: uuid.UUID, on_date: date) -> Dict[str, Any]:
    """Latest tl_tax override effective on or before on_date ({} when none)."""
    row = (
        db.execute(
            select(PayrollConfig)
            .where(
                PayrollConfig.tenant_id == tenant_id,
                PayrollConfig.key == TAX_CONFIG_KEY,
                PayrollConfig.effective_from <= on_date,
            )
            .order_by(PayrollConfig.effective_from.desc())
        )
        .scalars()
        .first()
    )
    return dict(row.value_json or {}) if row else {}


def effective_tax_config(db: Session, tenant_id: uuid.UUID, on_date: date) -> TaxConfig:
    overrides = tenant_tax_overrides(db, tenant_id, on_date)
    cfg = load_tax_config(on_date.year, overrides=overrides)
    if overrides:
        logger.debug("tenant %s tax overrides applied: %s", tenant_id, sorted(overrides))
    return cfg


def holiday_override_sets(db: Session, tenant_id: uuid.UUID) -> Tuple[Set[date], Set[date]]:
    rows = db.execute(
        select(HolidayOverride).where(HolidayOverride.tenant_id == tenant_id)
    ).scalars().all()
    additional = {r.holiday_date for r in rows if r.is_holiday}
    removed = {r.holiday_date for r in rows if not r.is_holiday}
    return additional, removed


def tenant_adjuster(db: Session, tenant_id: uuid.UUID) -> Callable[[date], date]:
    additional, removed = holiday_override_sets(db, tenant_id)

    def _adjust(d: date) -> date:
        return adjust_to_next_business_day(d, additional, removed)

    return _adjust


def tenant_holidays(db: Session, tenant_id: uuid.UUID, year: int) -> List[Dict[str, Any]]:
    """National holidays for the year with the tenant's overrides applied."""
    rows = db.execute(
        select(HolidayOverride).where(HolidayOverride.tenant_id == tenant_id)
    ).scalars().all()
    removed = {r.holiday_date for r in rows if not r.is_holiday}
    out = [h.as_dict() for h in tl_public_holidays(year) if h.date not in removed]
    for r in rows:
        if r.is_holiday and r.holiday_date.year == year:
            out.append({
                "date": r.holiday_date.isoformat(),
                "name": r.name or "Company holiday",
                "name_tetun": None,
                "variable": True,
            })
    return sorted(out, key=lambda h: h["date"])
