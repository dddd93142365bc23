# backend/meza/models/tenant.py
"""
Tenant (company) ORM models.

Tables:
- tenants
- holiday_overrides   (per-tenant additions/removals to the TL holiday calendar)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from meza.db import Base, JSONType


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Company details printed on returns and bank files
    legal_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    trading_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    tin_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    registered_address: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    company_bank_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    company_account_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    # Certificate signatory
    signatory_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    signatory_position: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    holiday_overrides: Mapped[list["HolidayOverride"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan", order_by="HolidayOverride.holiday_date"
    )

    @property
    def display_name(self) -> str:
        return self.legal_name or self.trading_name or self.name

    def __repr__(self) -> str:
        return f"<Tenant {self.code}>"


class HolidayOverride(Base):
    __tablename__ = "holiday_overrides"
    __table_args__ = (UniqueConstraint("tenant_id", "holiday_date", name="uq_holiday_overrides_tenant_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    holiday_date: Mapped[date] = mapped_column(Date(), nullable=False)
    # True adds a holiday (e.g. Eid); False removes a national one for this tenant
    is_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    tenant: Mapped["Tenant"] = relationship(back_populates="holiday_overrides")

    def __repr__(self) -> str:
        return f"<HolidayOverride {self.holiday_date} holiday={self.is_holiday}>"
