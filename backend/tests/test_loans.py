from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from meza.schemas.payroll import LoanCreate
from meza.services import loans as svc
from meza.services import payroll as payroll_svc
from meza.services.errors import NotFoundError, StateError
from meza.services.payroll import loan_installment


def _request(db, tenant, emp, **overrides):
    data = {
        "employee_id": emp.id,
        "amount": Decimal("600"),
        "repayment_amount": Decimal("100"),
        "request_date": date(2025, 1, 5),
    }
    data.update(overrides)
    return svc.create_loan(db, tenant.id, LoanCreate(**data))


def test_new_loan_is_pending_with_full_balance(db, tenant, make_employee):
    loan = _request(db, tenant, make_employee(tenant))
    assert loan.status == "pending"
    assert loan.remaining_balance == Decimal("600.00")
    assert loan.total_repaid == Decimal("0.00")


def test_installment_rules_validated():
    with pytest.raises(ValidationError):
        LoanCreate(employee_id="00000000-0000-0000-0000-000000000001", amount=Decimal("100"))
    with pytest.raises(ValidationError):
        LoanCreate(
            employee_id="00000000-0000-0000-0000-000000000001", amount=Decimal("100"),
            repayment_method="percentage",
        )


def test_unknown_employee(db, tenant):
    with pytest.raises(NotFoundError):
        svc.create_loan(db, tenant.id, LoanCreate(
            employee_id="00000000-0000-0000-0000-000000000001",
            amount=Decimal("100"), repayment_amount=Decimal("10"),
        ))


def test_approve_then_cancel(db, tenant, make_employee):
    loan = _request(db, tenant, make_employee(tenant))
    loan = svc.approve_loan(db, tenant.id, loan.id, start_date=date(2025, 2, 1))
    assert loan.status == "active"
    assert loan.start_date == date(2025, 2, 1)
    assert loan.approved_at is not None

    with pytest.raises(StateError):
        svc.approve_loan(db, tenant.id, loan.id)

    assert svc.cancel_loan(db, tenant.id, loan.id).status == "cancelled"
    with pytest.raises(StateError):
        svc.cancel_loan(db, tenant.id, loan.id)


def test_list_filters(db, tenant, make_employee):
    a = make_employee(tenant)
    b = make_employee(tenant)
    first = _request(db, tenant, a)
    _request(db, tenant, b, loan_type="advance")
    svc.approve_loan(db, tenant.id, first.id)

    assert len(svc.list_loans(db, tenant.id)) == 2
    assert [l.id for l in svc.list_loans(db, tenant.id, employee_id=a.id)] == [first.id]
    assert [l.loan_type for l in svc.list_loans(db, tenant.id, status="pending")] == ["advance"]


def test_installment_per_period_and_balance_cap(db, tenant, make_employee):
    emp = make_employee(tenant)
    fixed = _request(db, tenant, emp, amount=Decimal("150"), repayment_amount=Decimal("100"))
    assert loan_installment(fixed, emp, Decimal("1")) == Decimal("100.00")
    # weekly run with five pay dates
    assert loan_installment(fixed, emp, Decimal("5")) == Decimal("20.00")

    fixed.remaining_balance = Decimal("30.00")
    assert loan_installment(fixed, emp, Decimal("1")) == Decimal("30.00")

    pct = _request(db, tenant, emp, repayment_method="percentage", repayment_amount=None,
                   repayment_percentage=Decimal("10"))
    assert loan_installment(pct, emp, Decimal("1")) == Decimal("100.00")


def test_loan_cancelled_after_compute_is_not_charged(db, tenant, make_employee, january_run):
    emp = make_employee(tenant)
    loan = _request(db, tenant, emp)
    svc.approve_loan(db, tenant.id, loan.id, start_date=date(2025, 1, 1))

    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    svc.cancel_loan(db, tenant.id, loan.id)

    payroll_svc.approve_run(db, tenant.id, run.id)
    payroll_svc.mark_run_paid(db, tenant.id, run.id)

    db.refresh(loan)
    assert loan.status == "cancelled"
    assert loan.total_repaid == Decimal("0.00")
    assert loan.remaining_balance == Decimal("600.00")
