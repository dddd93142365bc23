from datetime import date
from decimal import Decimal

import pytest

from meza.models.payroll import PayrollConfig, PayrollItem, PayrollRecord
from meza.schemas.payroll import EmployeeRunInput, LoanCreate
from meza.services import loans as loans_svc
from meza.services import payroll as payroll_svc
from meza.services.errors import StateError


def _records(db, run):
    return payroll_svc.list_records(db, run)


def test_compute_monthly_run_totals(db, tenant, make_employee, january_run):
    make_employee(tenant)
    make_employee(tenant)
    run = january_run(tenant)

    res = payroll_svc.compute_run(db, tenant.id, run.id)
    db.refresh(run)

    assert res["employees"] == 2
    assert res["total_net"] == "1820.00"
    assert run.status == "computed"
    assert run.total_gross == Decimal("2000.00")
    assert run.total_income_tax == Decimal("100.00")
    assert run.total_inss_employee == Decimal("80.00")
    assert run.total_inss_employer == Decimal("120.00")
    assert run.total_employer_cost == Decimal("2120.00")
    assert run.employee_count == 2


def test_record_reference_and_items(db, tenant, make_employee, january_run):
    emp = make_employee(tenant)
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)

    (rec,) = _records(db, run)
    run8 = str(run.id).replace("-", "")[:8]
    assert rec.reference_no == f"PAY-202501-{emp.code}-{run8}"
    assert rec.net_pay == Decimal("910.00")

    codes = {i.code: i.amount for i in db.query(PayrollItem).filter(PayrollItem.record_id == rec.id)}
    assert codes["REGULAR"] == Decimal("1000.00")
    assert codes["WIT"] == Decimal("50.00")
    assert codes["INSS_EE"] == Decimal("40.00")
    assert codes["INSS_ER"] == Decimal("60.00")


def test_recompute_replaces_results(db, tenant, make_employee, january_run):
    emp = make_employee(tenant)
    run = january_run(tenant)
    first = payroll_svc.compute_run(db, tenant.id, run.id)
    second = payroll_svc.compute_run(db, tenant.id, run.id)

    assert first == second
    assert db.query(PayrollRecord).filter(PayrollRecord.run_id == run.id).count() == 1

    payroll_svc.compute_run(
        db, tenant.id, run.id,
        inputs=[EmployeeRunInput(employee_id=emp.id, overtime_hours=Decimal("10"))],
    )
    (rec,) = _records(db, run)
    assert rec.gross_pay == Decimal("1078.60")


def test_inputs_for_ineligible_employee_rejected(db, tenant, make_employee, january_run):
    late = make_employee(tenant, hire_date=date(2025, 3, 1))
    run = january_run(tenant)
    with pytest.raises(ValueError):
        payroll_svc.compute_run(db, tenant.id, run.id, inputs=[EmployeeRunInput(employee_id=late.id)])


def test_eligibility_rules(db, tenant, make_employee, january_run):
    make_employee(tenant)
    make_employee(tenant, hire_date=date(2025, 2, 1))
    make_employee(tenant, termination_date=date(2024, 12, 31))
    make_employee(tenant, active=False)
    make_employee(tenant, termination_date=date(2025, 1, 15))
    run = january_run(tenant)

    assert payroll_svc.compute_run(db, tenant.id, run.id)["employees"] == 2


def test_status_transitions(db, tenant, make_employee, january_run):
    make_employee(tenant)
    run = january_run(tenant)

    with pytest.raises(StateError):
        payroll_svc.approve_run(db, tenant.id, run.id)
    with pytest.raises(StateError):
        payroll_svc.mark_run_paid(db, tenant.id, run.id)

    payroll_svc.compute_run(db, tenant.id, run.id)
    approved = payroll_svc.approve_run(db, tenant.id, run.id, approved_by="finance")
    assert approved.status == "approved"
    assert approved.approved_by == "finance"

    with pytest.raises(StateError):
        payroll_svc.compute_run(db, tenant.id, run.id)

    paid = payroll_svc.mark_run_paid(db, tenant.id, run.id)
    assert paid.status == "paid"
    with pytest.raises(StateError):
        payroll_svc.cancel_run(db, tenant.id, run.id)


def test_cancel_approved_run(db, tenant, make_employee, january_run):
    make_employee(tenant)
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    payroll_svc.approve_run(db, tenant.id, run.id)
    assert payroll_svc.cancel_run(db, tenant.id, run.id).status == "cancelled"


def test_ytd_carries_from_paid_runs_only(db, tenant, make_employee, january_run, pay_run):
    make_employee(tenant)
    jan = january_run(tenant)
    pay_run(tenant, jan)

    # computed but never paid: ignored
    draft_feb = january_run(
        tenant, period_start=date(2025, 2, 1), period_end=date(2025, 2, 28), pay_date=date(2025, 2, 28)
    )
    payroll_svc.compute_run(db, tenant.id, draft_feb.id)

    mar = january_run(
        tenant, period_start=date(2025, 3, 1), period_end=date(2025, 3, 31), pay_date=date(2025, 3, 31)
    )
    payroll_svc.compute_run(db, tenant.id, mar.id)
    (rec,) = _records(db, mar)
    assert rec.ytd_gross_pay == Decimal("2000.00")
    assert rec.ytd_income_tax == Decimal("100.00")
    assert rec.ytd_inss_employee == Decimal("80.00")


def test_weekly_run_uses_pay_dates_in_month(db, tenant, make_employee, january_run):
    make_employee(tenant, pay_frequency="weekly")
    run = january_run(
        tenant, period_start=date(2025, 1, 25), period_end=date(2025, 1, 31),
        pay_frequency="weekly", week_number=5,
    )
    payroll_svc.compute_run(db, tenant.id, run.id)
    (rec,) = _records(db, run)

    # five Friday pay dates in January 2025
    assert rec.gross_pay == Decimal("200.00")
    assert rec.income_tax == Decimal("10.00")
    assert rec.inss_employee == Decimal("8.00")


def test_recurring_allowances_flow_in(db, tenant, make_employee, january_run):
    make_employee(tenant, food_allowance=Decimal("100"))
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    (rec,) = _records(db, run)

    assert rec.gross_pay == Decimal("1100.00")
    assert rec.inss_base == Decimal("1000.00")
    assert rec.income_tax == Decimal("60.00")


def test_tenant_tax_override_applies(db, tenant, make_employee, january_run):
    db.add(PayrollConfig(
        tenant_id=tenant.id, key="tl_tax", value_json={"wit_rate": "0.20"}, effective_from=date(2025, 1, 1),
    ))
    db.commit()
    make_employee(tenant)
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    (rec,) = _records(db, run)
    assert rec.income_tax == Decimal("100.00")


def test_subsidio_anual_run(db, tenant, make_employee, january_run):
    make_employee(tenant)
    make_employee(tenant, hire_date=date(2025, 7, 15))
    run = january_run(
        tenant, period_start=date(2025, 12, 1), period_end=date(2025, 12, 31),
        pay_date=date(2025, 12, 20), include_subsidio_anual=True,
    )
    payroll_svc.compute_run(db, tenant.id, run.id)
    full, partial = _records(db, run)
    assert full.gross_pay == Decimal("2000.00")
    assert partial.gross_pay == Decimal("1500.00")

    preview = {p["code"]: p["amount"] for p in payroll_svc.subsidio_anual_preview(db, tenant.id, 2025)}
    assert preview == {"E001": "1000.00", "E002": "500.00"}


def test_loan_repaid_over_paid_runs(db, tenant, make_employee, january_run, pay_run):
    emp = make_employee(tenant)
    loan = loans_svc.create_loan(db, tenant.id, LoanCreate(
        employee_id=emp.id, amount=Decimal("500"), repayment_amount=Decimal("200"),
        request_date=date(2024, 12, 15),
    ))
    loans_svc.approve_loan(db, tenant.id, loan.id, start_date=date(2025, 1, 1))

    months = [(1, 31), (2, 28), (3, 31)]
    for month, last in months:
        run = january_run(
            tenant, period_start=date(2025, month, 1), period_end=date(2025, month, last),
            pay_date=date(2025, month, last),
        )
        pay_run(tenant, run)
        db.refresh(loan)
        if month == 1:
            (rec,) = _records(db, run)
            assert rec.net_pay == Decimal("710.00")
            assert loan.remaining_balance == Decimal("300.00")

    assert loan.total_repaid == Decimal("500.00")
    assert loan.remaining_balance == Decimal("0.00")
    assert loan.status == "completed"


def test_capped_loan_repays_only_what_was_deducted(db, tenant, make_employee, january_run, pay_run):
    emp = make_employee(tenant)
    loan = loans_svc.create_loan(db, tenant.id, LoanCreate(
        employee_id=emp.id, amount=Decimal("1000"), repayment_amount=Decimal("400"),
        request_date=date(2024, 12, 15),
    ))
    loans_svc.approve_loan(db, tenant.id, loan.id, start_date=date(2025, 1, 1))

    run = january_run(tenant)
    pay_run(tenant, run)
    db.refresh(loan)

    (rec,) = _records(db, run)
    assert any("exceed" in w for w in rec.warnings)
    assert loan.total_repaid == Decimal("300.00")
    assert loan.remaining_balance == Decimal("700.00")


def test_pending_loan_not_deducted(db, tenant, make_employee, january_run):
    emp = make_employee(tenant)
    loans_svc.create_loan(db, tenant.id, LoanCreate(
        employee_id=emp.id, amount=Decimal("500"), repayment_amount=Decimal("200"),
    ))
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    (rec,) = _records(db, run)
    assert rec.net_pay == Decimal("910.00")


def test_run_summary_groups_by_department(db, tenant, make_employee, january_run):
    make_employee(tenant, department="Finance")
    make_employee(tenant, department="Finance", payment_method="cash")
    make_employee(tenant)
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    db.refresh(run)

    summary = payroll_svc.run_summary(db, run)
    assert summary["by_department"]["Finance"] == {"employees": 2, "gross": "2000.00", "net": "1820.00"}
    assert summary["by_department"]["Unassigned"]["employees"] == 1
    assert summary["by_payment_method"] == {"bank_transfer": 2, "cash": 1}
