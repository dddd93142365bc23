# backend/meza/schemas/bank_transfer.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

BankCode = Literal["BNU", "MANDIRI", "ANZ", "BNCTL"]
TransferStatus = Literal["generated", "submitted", "processed", "failed"]


class BankFileGenerate(BaseModel):
    bank_code: Optional[BankCode] = Field(None, description="Omit to generate one file per bank in use")
    value_date: Optional[date] = Field(None, description="Defaults to the run's pay date")


class BankFileStatusPatch(BaseModel):
    status: TransferStatus
    notes: Optional[str] = None


class BankFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    run_id: UUID
    bank_code: BankCode
    file_name: str
    mime_type: str
    value_date: date
    total_amount: Decimal
    transfer_count: int
    status: TransferStatus
    skipped: List[Dict[str, Any]] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime


class BankFileGenerateOut(BaseModel):
    files: List[BankFileOut]
    skipped: List[Dict[str, Any]]
