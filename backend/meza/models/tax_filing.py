# backend/meza/models/tax_filing.py
"""
Tax / social-security filings (ATTL WIT returns, INSS statements).

One row per (tenant, filing_type, period). INSS monthly filings carry two
obligations, the statement and the payment, each with its own due date
and status.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from meza.db import Base, JSONType

FILING_TYPES = ("monthly_wit", "annual_wit", "inss_monthly")
FILING_STATUSES = ("draft", "pending", "filed", "overdue")
SUBMISSION_METHODS = ("etax", "bnu_paper", "inss_portal", "not_filed")


class TaxFiling(Base):
    __tablename__ = "tax_filings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "filing_type", "period", name="uq_tax_filings_tenant_type_period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    filing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)  # "2025-01" or "2024"
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    due_date: Mapped[date] = mapped_column(Date(), nullable=False)

    # INSS only
    statement_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    statement_due_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    statement_filed_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    statement_receipt_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    payment_due_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    payment_filed_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    payment_receipt_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    data_snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # When filed
    filed_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    submission_method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    receipt_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    # Quick-display totals
    total_wages: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_wit_withheld: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_inss_employee: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    total_inss_employer: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TaxFiling {self.filing_type} {self.period} {self.status}>"
