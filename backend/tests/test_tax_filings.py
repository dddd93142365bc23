import uuid
from datetime import date
from decimal import Decimal

import pytest

from meza.models.tenant import HolidayOverride
from meza.services import tax_filings as svc
from meza.services.errors import NotFoundError


@pytest.fixture
def paid_january(db, tenant, make_employee, january_run, pay_run):
    make_employee(tenant, tin="TIN-1", inss_number="INSS-1")
    make_employee(tenant, is_resident=False, monthly_salary=Decimal("2000"))
    make_employee(tenant, monthly_salary=Decimal("400"))
    run = january_run(tenant)
    return pay_run(tenant, run)


def test_monthly_wit_return(db, tenant, paid_january):
    ret = svc.monthly_wit_return(db, tenant.id, "2025-01")

    assert ret["employer_tin"] == "1234567"
    assert ret["employer_name"] == "Acme Timor Lda"
    assert ret["period_start_date"] == "2025-01-01"
    assert ret["period_end_date"] == "2025-01-31"
    assert ret["total_employees"] == 3
    assert ret["total_resident_employees"] == 2
    assert ret["total_non_resident_employees"] == 1
    assert ret["total_gross_wages"] == "3400.00"
    assert ret["total_wit_withheld"] == "250.00"

    lines = {e["code"]: e for e in ret["employees"]}
    assert lines["E001"]["taxable_wages"] == "500.00"
    assert lines["E001"]["tin_number"] == "TIN-1"
    assert lines["E002"]["taxable_wages"] == "2000.00"
    assert lines["E003"]["wit_withheld"] == "0.00"


def test_unpaid_runs_are_not_reported(db, tenant, make_employee, january_run):
    make_employee(tenant)
    january_run(tenant)
    assert svc.monthly_wit_return(db, tenant.id, "2025-01")["total_employees"] == 0


def test_inss_return(db, tenant, paid_january):
    ret = svc.monthly_inss_return(db, tenant.id, "2025-01")
    assert ret["total_employees"] == 3
    assert ret["total_contribution_base"] == "3400.00"
    assert ret["total_employee_contributions"] == "136.00"
    assert ret["total_employer_contributions"] == "204.00"
    assert ret["total_contributions"] == "340.00"
    assert ret["employees"][0]["inss_number"] == "INSS-1"


def test_annual_return_and_certificate(db, tenant, paid_january):
    ret = svc.annual_wit_return(db, tenant.id, 2025)
    assert ret["tax_year"] == 2025
    assert ret["total_employees_in_year"] == 3
    assert ret["total_wit_withheld"] == "250.00"
    assert ret["employees"][0]["months_worked"] == 1

    emp_id = ret["employees"][0]["employee_id"]
    cert = svc.employee_wit_certificate(db, tenant.id, uuid.UUID(emp_id), 2025, today=date(2026, 2, 1))
    assert cert["total_wit_withheld"] == "50.00"
    assert cert["authorized_signatory"] == "Maria Soares"
    assert cert["certification_date"] == "2026-02-01"

    with pytest.raises(NotFoundError):
        svc.employee_wit_certificate(db, tenant.id, uuid.UUID(emp_id), 2024)


def test_invalid_periods():
    with pytest.raises(ValueError):
        svc.parse_month("2025-13")
    with pytest.raises(ValueError):
        svc.parse_month("january")
    with pytest.raises(ValueError):
        svc.parse_year("25")


def test_save_filing_is_an_upsert(db, tenant, paid_january):
    first = svc.save_filing(db, tenant.id, "monthly_wit", "2025-01", today=date(2025, 2, 1))
    assert first.status == "pending"
    assert first.due_date == date(2025, 2, 17)
    assert first.total_wit_withheld == Decimal("250.00")
    assert first.employee_count == 3

    again = svc.save_filing(db, tenant.id, "monthly_wit", "2025-01", today=date(2025, 2, 20))
    assert again.id == first.id
    assert again.status == "overdue"
    assert len(svc.list_filings(db, tenant.id)) == 1


def test_due_date_follows_tenant_calendar(db, tenant, paid_january):
    db.add(HolidayOverride(tenant_id=tenant.id, holiday_date=date(2025, 2, 17), is_holiday=True, name="Closure"))
    db.commit()
    filing = svc.save_filing(db, tenant.id, "monthly_wit", "2025-01", today=date(2025, 2, 1))
    assert filing.due_date == date(2025, 2, 18)


def test_inss_tasks_filed_separately(db, tenant, paid_january):
    filing = svc.save_filing(db, tenant.id, "inss_monthly", "2025-01", today=date(2025, 2, 1))
    assert filing.statement_due_date == date(2025, 2, 10)
    assert filing.payment_due_date == date(2025, 2, 20)
    assert filing.total_inss_employer == Decimal("204.00")

    filing = svc.mark_filed(
        db, tenant.id, filing.id, "inss_portal", receipt_number="R-1", task="statement",
        filed_date=date(2025, 2, 7),
    )
    assert filing.statement_status == "filed"
    assert filing.payment_status != "filed"
    assert filing.status != "filed"

    filing = svc.mark_filed(db, tenant.id, filing.id, "bnu_paper", task="payment", filed_date=date(2025, 2, 19))
    assert filing.status == "filed"
    assert filing.filed_date == date(2025, 2, 19)

    # a re-save keeps the filed state
    again = svc.save_filing(db, tenant.id, "inss_monthly", "2025-01", today=date(2025, 3, 1))
    assert again.status == "filed"


def test_wit_filings_have_no_tasks(db, tenant, paid_january):
    filing = svc.save_filing(db, tenant.id, "monthly_wit", "2025-01", today=date(2025, 2, 1))
    with pytest.raises(ValueError):
        svc.mark_filed(db, tenant.id, filing.id, "etax", task="statement")


def test_due_soon_window(db, tenant):
    items = svc.due_soon(db, tenant.id, months=0, today=date(2025, 2, 1))

    assert len(items) == 10
    jan_wit = next(i for i in items if i["type"] == "monthly_wit" and i["period"] == "2025-01")
    assert jan_wit["due_date"] == "2025-02-17"
    assert jan_wit["days_until_due"] == 16
    assert jan_wit["status"] == "pending"
    assert jan_wit["urgency"] == "ok"

    annual = next(i for i in items if i["type"] == "annual_wit")
    assert annual["period"] == "2024"

    nov_wit = next(i for i in items if i["type"] == "monthly_wit" and i["period"] == "2024-11")
    assert nov_wit["is_overdue"] is True
    assert nov_wit["urgency"] == "urgent"


def test_due_soon_reflects_filed_tasks(db, tenant, paid_january):
    filing = svc.save_filing(db, tenant.id, "inss_monthly", "2025-01", today=date(2025, 2, 1))
    svc.mark_filed(db, tenant.id, filing.id, "inss_portal", task="statement", filed_date=date(2025, 2, 5))

    items = svc.due_soon(db, tenant.id, months=0, today=date(2025, 2, 14))
    tasks = {i["task"]: i for i in items if i["type"] == "inss_monthly" and i["period"] == "2025-01"}
    assert tasks["statement"]["status"] == "filed"
    assert tasks["statement"]["urgency"] == "ok"
    assert tasks["payment"]["status"] == "pending"
    assert tasks["payment"]["urgency"] == "warning"

    summary = svc.status_summary(db, tenant.id, today=date(2025, 2, 14))
    assert summary["filed_this_month"] == 1
    assert summary["next_due"]["type"] == "monthly_wit"


def test_csv_rows_from_snapshot(db, tenant, paid_january):
    filing = svc.save_filing(db, tenant.id, "monthly_wit", "2025-01", today=date(2025, 2, 1))
    rows = list(svc.filing_csv_rows(filing))
    assert rows[0] == svc.CSV_COLUMNS["monthly_wit"]
    assert len(rows) == 4
    assert rows[1][0] == "E001"
