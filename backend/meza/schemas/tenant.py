# backend/meza/schemas/tenant.py
"""Pydantic schemas for tenants, payroll config overrides and holiday overrides."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# -------------------------------- Tenants --------------------------------- #
class TenantBase(BaseModel):
    code: str = Field(..., max_length=32)
    name: str = Field(..., max_length=200)
    legal_name: Optional[str] = Field(None, max_length=200)
    trading_name: Optional[str] = Field(None, max_length=200)
    tin_number: Optional[str] = Field(None, max_length=32)
    registered_address: Optional[str] = None
    company_bank_code: Optional[str] = Field(None, max_length=16)
    company_account_number: Optional[str] = Field(None, max_length=40)
    signatory_name: Optional[str] = Field(None, max_length=120)
    signatory_position: Optional[str] = Field(None, max_length=120)
    is_active: bool = True
    meta: Dict[str, Any] = Field(default_factory=dict)


class TenantCreate(TenantBase):
    pass


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    legal_name: Optional[str] = Field(None, max_length=200)
    trading_name: Optional[str] = Field(None, max_length=200)
    tin_number: Optional[str] = Field(None, max_length=32)
    registered_address: Optional[str] = None
    company_bank_code: Optional[str] = Field(None, max_length=16)
    company_account_number: Optional[str] = Field(None, max_length=40)
    signatory_name: Optional[str] = Field(None, max_length=120)
    signatory_position: Optional[str] = Field(None, max_length=120)
    is_active: Optional[bool] = None
    meta: Optional[Dict[str, Any]] = None


class TenantOut(TenantBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime


# ---------------------------- Payroll Configs ----------------------------- #
class PayrollConfigCreate(BaseModel):
    key: str = Field("tl_tax", max_length=64)
    value_json: Dict[str, Any] = Field(default_factory=dict, description="Partial TaxConfig field overrides")
    effective_from: date


class PayrollConfigOut(PayrollConfigCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID


# --------------------------- Holiday overrides ---------------------------- #
class HolidayOverrideCreate(BaseModel):
    holiday_date: date
    is_holiday: bool = True
    name: Optional[str] = Field(None, max_length=120)


class HolidayOverrideOut(HolidayOverrideCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
