# backend/meza/models/bank_transfer.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from meza.db import Base, JSONType

BANK_CODES = ("BNU", "MANDIRI", "ANZ", "BNCTL")
TRANSFER_STATUSES = ("generated", "submitted", "processed", "failed")


class BankTransferFile(Base):
    """A salary payment file generated for one bank from one payroll run."""
    __tablename__ = "bank_transfer_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )

    bank_code: Mapped[str] = mapped_column(String(16), nullable=False)
    file_name: Mapped[str] = mapped_column(String(120), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(64), nullable=False)
    value_date: Mapped[date] = mapped_column(Date(), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    transfer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="generated")

    content: Mapped[str] = mapped_column(Text(), nullable=False)
    skipped: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<BankTransferFile {self.bank_code} {self.file_name} {self.total_amount}>"
