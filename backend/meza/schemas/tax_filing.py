# backend/meza/schemas/tax_filing.py
from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

FilingType = Literal["monthly_wit", "annual_wit", "inss_monthly"]
SubmissionMethod = Literal["etax", "bnu_paper", "inss_portal", "not_filed"]
FilingTask = Literal["statement", "payment"]


class FilingCreate(BaseModel):
    filing_type: FilingType
    period: str = Field(..., description='"YYYY-MM" for monthly filings, "YYYY" for annual WIT')

    @model_validator(mode="after")
    def _period_shape(self):
        expected = 4 if self.filing_type == "annual_wit" else 7
        if len(self.period) != expected:
            raise ValueError(
                "period must be YYYY for annual_wit and YYYY-MM otherwise"
            )
        return self


class FilingMarkFiled(BaseModel):
    submission_method: SubmissionMethod
    receipt_number: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None
    task: Optional[FilingTask] = Field(None, description="INSS only; omit to file both tasks")
    filed_date: Optional[date] = None
