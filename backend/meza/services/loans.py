# backend/meza/services/loans.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from meza.models.payroll import EmployeeLoan
from meza.schemas.payroll import LoanCreate
from meza.services.audit import record_audit
from meza.services.errors import NotFoundError, StateError
from meza.services.money import q2, ZERO
from meza.services.payroll import get_employee

logger = logging.getLogger(__name__)


def get_loan(db: Session, tenant_id: uuid.UUID, loan_id: uuid.UUID) -> EmployeeLoan:
    loan = db.get(EmployeeLoan, loan_id)
    if not loan or loan.tenant_id != tenant_id:
        raise NotFoundError("EmployeeLoan not found")
    return loan


def create_loan(db: Session, tenant_id: uuid.UUID, data: LoanCreate, user_id: Optional[Any] = None) -> EmployeeLoan:
    get_employee(db, tenant_id, data.employee_id)
    loan = EmployeeLoan(
        tenant_id=tenant_id,
        employee_id=data.employee_id,
        loan_type=data.loan_type,
        amount=q2(data.amount),
        reason=data.reason,
        request_date=data.request_date or date.today(),
        start_date=data.start_date,
        repayment_method=data.repayment_method,
        repayment_amount=q2(data.repayment_amount) if data.repayment_amount is not None else None,
        repayment_percentage=data.repayment_percentage,
        total_repaid=ZERO,
        remaining_balance=q2(data.amount),
        status="pending",
        notes=data.notes,
    )
    db.add(loan)
    db.flush()
    record_audit(db, "employee_loan", loan.id, "create", tenant_id=tenant_id, user_id=user_id,
                 details={"type": loan.loan_type, "amount": str(loan.amount)})
    db.commit()
    db.refresh(loan)
    logger.info("loan requested %s employee=%s amount=%s", loan.loan_type, loan.employee_id, loan.amount)
    return loan


def approve_loan(
    db: Session,
    tenant_id: uuid.UUID,
    loan_id: uuid.UUID,
    start_date: Optional[date] = None,
    user_id: Optional[Any] = None,
) -> EmployeeLoan:
    """pending -> active; repayments start with the first run paid on/after start_date."""
    loan = get_loan(db, tenant_id, loan_id)
    if loan.status != "pending":
        raise StateError(f"Only pending loans can be approved (status '{loan.status}')")
    loan.status = "active"
    loan.approved_at = datetime.now(timezone.utc)
    if start_date is not None:
        loan.start_date = start_date
    elif loan.start_date is None:
        loan.start_date = date.today()
    record_audit(db, "employee_loan", loan.id, "approve", tenant_id=tenant_id, user_id=user_id)
    db.commit()
    db.refresh(loan)
    logger.info("loan approved %s start=%s", loan.id, loan.start_date)
    return loan


def cancel_loan(db: Session, tenant_id: uuid.UUID, loan_id: uuid.UUID, user_id: Optional[Any] = None) -> EmployeeLoan:
    loan = get_loan(db, tenant_id, loan_id)
    if loan.status in ("completed", "cancelled"):
        raise StateError(f"Cannot cancel a loan in status '{loan.status}'")
    loan.status = "cancelled"
    record_audit(db, "employee_loan", loan.id, "cancel", tenant_id=tenant_id, user_id=user_id,
                 details={"remaining_balance": str(loan.remaining_balance)})
    db.commit()
    db.refresh(loan)
    logger.info("loan cancelled %s", loan.id)
    return loan


def list_loans(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
) -> List[EmployeeLoan]:
    stmt = select(EmployeeLoan).where(EmployeeLoan.tenant_id == tenant_id)
    if employee_id is not None:
        stmt = stmt.where(EmployeeLoan.employee_id == employee_id)
    if status:
        stmt = stmt.where(EmployeeLoan.status == status)
    return list(db.execute(stmt.order_by(EmployeeLoan.request_date.desc(), EmployeeLoan.created_at.desc())).scalars().all())
