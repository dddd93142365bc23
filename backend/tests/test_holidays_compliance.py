from datetime import date

import pytest

from meza.models.tenant import HolidayOverride
from meza.services import tax_filings
from meza.services.compliance import (
    add_months,
    next_annual_adjusted_deadline,
    next_monthly_adjusted_deadline,
    resolve_task_status,
    urgency_from_days,
)
from meza.services.holidays import adjust_to_next_business_day, easter_sunday, tl_public_holidays
from meza.services.tenants import tenant_adjuster, tenant_holidays


def test_easter_based_holidays_2025():
    assert easter_sunday(2025) == date(2025, 4, 20)
    by_name = {h.name: h.date for h in tl_public_holidays(2025)}
    assert by_name["Good Friday"] == date(2025, 4, 18)
    assert by_name["Corpus Christi"] == date(2025, 6, 19)
    assert by_name["National Heroes Day"] == date(2025, 12, 31)


@pytest.mark.parametrize(
    "given, expected",
    [
        (date(2025, 12, 25), date(2025, 12, 26)),
        # Heroes Day, New Year, then Friday
        (date(2025, 12, 31), date(2026, 1, 2)),
        # Saturday -> Monday
        (date(2025, 2, 15), date(2025, 2, 17)),
        (date(2025, 2, 14), date(2025, 2, 14)),
    ],
)
def test_adjust_to_next_business_day(given, expected):
    assert adjust_to_next_business_day(given) == expected


def test_tenant_additions_and_removals():
    assert adjust_to_next_business_day(date(2025, 6, 6), additional=[date(2025, 6, 6)]) == date(2025, 6, 9)
    assert adjust_to_next_business_day(date(2025, 12, 25), removed=[date(2025, 12, 25)]) == date(2025, 12, 25)


def test_add_months_clamps_to_month_end():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_months(date(2025, 3, 15), -3) == date(2024, 12, 15)


def test_next_deadlines():
    assert next_monthly_adjusted_deadline(date(2025, 2, 1), 15) == date(2025, 2, 17)
    assert next_monthly_adjusted_deadline(date(2025, 2, 18), 15) == date(2025, 3, 17)
    assert next_annual_adjusted_deadline(date(2025, 4, 1), 3, 31) == date(2026, 3, 31)


def test_base_due_dates():
    assert tax_filings.base_due_date("monthly_wit", "2025-01") == date(2025, 2, 15)
    assert tax_filings.base_due_date("inss_monthly", "2025-01", "statement") == date(2025, 2, 10)
    assert tax_filings.base_due_date("inss_monthly", "2025-01", "payment") == date(2025, 2, 20)
    assert tax_filings.base_due_date("annual_wit", "2025") == date(2026, 3, 31)
    assert tax_filings.base_due_date("monthly_wit", "2025-12") == date(2026, 1, 15)


@pytest.mark.parametrize(
    "days, urgency",
    [(2, "urgent"), (3, "urgent"), (5, "warning"), (10, "ok"), (-1, "urgent")],
)
def test_urgency(days, urgency):
    assert urgency_from_days(days) == urgency


def test_task_status_resolution():
    assert resolve_task_status(-3) == "overdue"
    assert resolve_task_status(4) == "pending"
    assert resolve_task_status(-3, explicit_status="filed") == "filed"
    assert resolve_task_status(-3, legacy_status="filed") == "filed"


def test_tenant_calendar_uses_overrides(db, tenant):
    db.add_all([
        HolidayOverride(tenant_id=tenant.id, holiday_date=date(2025, 6, 6), is_holiday=True, name="Eid al-Adha"),
        HolidayOverride(tenant_id=tenant.id, holiday_date=date(2025, 12, 25), is_holiday=False),
    ])
    db.commit()

    adjust = tenant_adjuster(db, tenant.id)
    assert adjust(date(2025, 6, 6)) == date(2025, 6, 9)
    assert adjust(date(2025, 12, 25)) == date(2025, 12, 25)

    listed = {h["date"]: h["name"] for h in tenant_holidays(db, tenant.id, 2025)}
    assert listed["2025-06-06"] == "Eid al-Adha"
    assert "2025-12-25" not in listed
