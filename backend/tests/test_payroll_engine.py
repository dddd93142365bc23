import dataclasses
from datetime import date
from decimal import Decimal

import pytest

from meza.services.payroll_engine import (
    PayrollInput,
    calculate_hourly_rate,
    calculate_income_tax,
    calculate_late_deduction,
    calculate_monthly_weekly_payrolls,
    calculate_sick_pay,
    calculate_subsidio_anual,
    calculate_tl_payroll,
    pay_periods_in_pay_month,
    validate_payroll_input,
)
from meza.services.payroll_rates import default_inss_optional_contribution_base, load_tax_config

CFG = load_tax_config(2025)


def test_monthly_resident_gross_to_net():
    """$1,000 resident: 10% WIT above $500, INSS 4%/6%."""
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("1000")), CFG)

    assert res.gross_pay == Decimal("1000.00")
    assert res.income_tax == Decimal("50.00")
    assert res.inss_employee == Decimal("40.00")
    assert res.inss_employer == Decimal("60.00")
    assert res.net_pay == Decimal("910.00")
    assert res.total_employer_cost == Decimal("1060.00")
    assert res.new_ytd_gross_pay == Decimal("1000.00")


def test_non_resident_taxed_from_first_dollar():
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("1000"), is_resident=False), CFG)
    assert res.income_tax == Decimal("100.00")


def test_resident_below_threshold_pays_no_wit():
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("400")), CFG)
    assert res.income_tax == Decimal("0.00")
    assert any("threshold" in w for w in res.warnings)


def test_tax_exemption_skips_wit_but_not_inss():
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("2000"), has_tax_exemption=True), CFG)
    assert res.income_tax == Decimal("0.00")
    assert res.inss_employee == Decimal("80.00")
    assert any("exemption" in w for w in res.warnings)


def test_weekly_threshold_spread_over_pay_dates():
    # 4 pay dates -> $125 resident threshold per week
    assert calculate_income_tax(Decimal("500"), True, "weekly", 4, CFG) == Decimal("37.50")


def test_food_allowance_taxable_but_outside_inss_base():
    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), food_allowance=Decimal("100")), CFG
    )
    assert res.gross_pay == Decimal("1100.00")
    assert res.taxable_income == Decimal("1100.00")
    assert res.inss_base == Decimal("1000.00")
    assert res.income_tax == Decimal("60.00")
    assert res.inss_employee == Decimal("40.00")


def test_overtime_rate_and_inss_exclusion():
    hourly = calculate_hourly_rate(Decimal("1000"), CFG)
    assert hourly == Decimal("5.24")

    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), overtime_hours=Decimal("10")), CFG
    )
    assert res.overtime_pay == Decimal("78.60")
    assert res.gross_pay == Decimal("1078.60")
    assert res.inss_base == Decimal("1000.00")


def test_sick_pay_full_then_half():
    # day 6 at full pay, days 7-8 at half pay
    assert calculate_sick_pay(Decimal("41.92"), 3, 5, CFG) == Decimal("83.84")
    # entitlement exhausted
    assert calculate_sick_pay(Decimal("41.92"), 2, 12, CFG) == Decimal("0.00")


def test_late_minutes_round_up_to_quarter_hour():
    assert calculate_late_deduction(Decimal("5.24"), 20) == Decimal("2.62")
    assert calculate_late_deduction(Decimal("5.24"), 0) == Decimal("0.00")


def test_absence_reduces_wit_and_inss_bases():
    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), absence_hours=Decimal("8")), CFG
    )
    # 8h * 5.24 = 41.92
    assert res.absence_deduction == Decimal("41.92")
    assert res.inss_base == Decimal("958.08")
    assert res.income_tax == Decimal("45.81")


def test_voluntary_deductions_capped_at_thirty_percent():
    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), loan_repayment=Decimal("400")), CFG
    )
    assert res.deduction_amount("loan_repayment") == Decimal("300.00")
    assert any("exceed" in w for w in res.warnings)
    # statutory lines untouched
    assert res.income_tax == Decimal("50.00")
    assert res.net_pay == Decimal("610.00")


def test_court_orders_are_not_capped():
    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), court_orders=Decimal("400")), CFG
    )
    assert res.deduction_amount("court_order") == Decimal("400.00")


def test_explicit_inss_contribution_base_wins():
    res = calculate_tl_payroll(
        PayrollInput(monthly_salary=Decimal("1000"), inss_contribution_base=Decimal("840")), CFG
    )
    assert res.inss_base == Decimal("840.00")
    assert res.inss_employee == Decimal("33.60")


def test_same_input_same_result():
    inp = PayrollInput(monthly_salary=Decimal("1234.56"), overtime_hours=Decimal("3"), bonus=Decimal("50"))
    assert calculate_tl_payroll(inp, CFG).as_dict() == calculate_tl_payroll(inp, CFG).as_dict()


def test_subsidio_pro_rated_by_months_worked():
    as_of = date(2025, 12, 20)
    assert calculate_subsidio_anual(Decimal("1200"), 12, date(2020, 3, 1), as_of, config=CFG) == Decimal("1200.00")
    assert calculate_subsidio_anual(Decimal("1200"), 12, date(2025, 7, 15), as_of, config=CFG) == Decimal("600.00")
    # terminated end of September after a July start: three months
    assert calculate_subsidio_anual(
        Decimal("1200"), 12, date(2025, 7, 15), as_of, date(2025, 9, 30), CFG
    ) == Decimal("300.00")
    assert calculate_subsidio_anual(Decimal("1200"), 12, date(2026, 1, 5), as_of, config=CFG) == Decimal("0.00")


def test_weekly_split_last_week_absorbs_rounding():
    weeks = calculate_monthly_weekly_payrolls(Decimal("1000"), [5, 5, 5, 5, 3])
    assert [w.amount for w in weeks] == [Decimal("217.39")] * 4 + [Decimal("130.44")]
    assert sum(w.amount for w in weeks) == Decimal("1000.00")
    assert weeks[-1].is_reconciled is True
    assert calculate_monthly_weekly_payrolls(Decimal("1000"), []) == []


def test_weekly_split_with_no_working_days():
    weeks = calculate_monthly_weekly_payrolls(Decimal("1000"), [0, 0])
    assert [w.amount for w in weeks] == [Decimal("0.00"), Decimal("0.00")]


@pytest.mark.parametrize(
    "declared, base",
    [
        ("1", "120.00"),
        ("121", "150.00"),
        ("800", "840.00"),
        ("6000", "6000.00"),
        ("6001", "12000.00"),
        ("25000", "12000.00"),
        ("0", "0.00"),
    ],
)
def test_inss_optional_bands(declared, base):
    assert default_inss_optional_contribution_base(Decimal(declared), CFG) == Decimal(base)


def test_validation_messages():
    msgs = validate_payroll_input(
        PayrollInput(monthly_salary=Decimal("100"), overtime_hours=Decimal("70"), sick_days_used=3, ytd_sick_days_used=11),
        CFG,
    )
    assert any("minimum wage" in m for m in msgs)
    assert any("Overtime" in m for m in msgs)
    assert any("sick days" in m for m in msgs)


def test_pay_dates_in_month():
    # Fridays in January 2025: 3, 10, 17, 24, 31
    assert pay_periods_in_pay_month(date(2025, 1, 31), "weekly") == 5
    assert pay_periods_in_pay_month(date(2025, 1, 31), "biweekly") == 3
    assert pay_periods_in_pay_month(date(2025, 1, 31), "monthly") is None


def test_premium_hours_and_inss_base_flags():
    """Night-shift premium is contributory; holiday and rest-day pay are not."""
    res = calculate_tl_payroll(PayrollInput(
        monthly_salary=Decimal("1000"),
        night_shift_hours=Decimal("8"),
        holiday_hours=Decimal("8"),
        rest_day_hours=Decimal("4"),
    ), CFG)

    lines = {e.type: e for e in res.earnings}
    assert lines["night_shift"].amount == Decimal("52.40")
    assert lines["holiday"].amount == Decimal("83.84")
    assert lines["rest_day"].amount == Decimal("41.92")
    assert lines["night_shift"].is_inss_base is True
    assert lines["holiday"].is_inss_base is False
    assert lines["rest_day"].is_inss_base is False

    assert res.gross_pay == Decimal("1178.16")
    assert res.inss_base == Decimal("1052.40")
    assert res.inss_employee == Decimal("42.10")


def test_hourly_worker_paid_on_hours():
    res = calculate_tl_payroll(PayrollInput(
        is_hourly=True,
        hourly_rate=Decimal("5.00"),
        regular_hours=Decimal("160"),
        overtime_hours=Decimal("4"),
    ), CFG)

    assert res.regular_pay == Decimal("800.00")
    assert res.overtime_pay == Decimal("30.00")
    assert res.earnings[0].rate == Decimal("5.00")
    assert res.inss_base == Decimal("800.00")
    assert res.income_tax == Decimal("33.00")
    assert res.net_pay == Decimal("765.00")
    assert not any("minimum wage" in w for w in res.warnings)


def test_negative_net_is_flagged():
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("1000"), court_orders=Decimal("2000")), CFG)
    assert res.net_pay == Decimal("-1090.00")
    assert "Net pay is negative. Please review deductions." in res.warnings


def test_sick_day_usage_warning_from_tenth_day():
    res = calculate_tl_payroll(PayrollInput(
        monthly_salary=Decimal("1000"), sick_days_used=2, ytd_sick_days_used=8,
    ), CFG)
    # days 9 and 10 are half pay
    assert res.sick_pay == Decimal("41.92")
    assert "Employee has used 10 of 12 annual sick days." in res.warnings

    res = calculate_tl_payroll(PayrollInput(
        monthly_salary=Decimal("1000"), sick_days_used=2, ytd_sick_days_used=7,
    ), CFG)
    assert not any("annual sick days" in w for w in res.warnings)


def test_negative_cap_never_produces_negative_deductions():
    cfg = dataclasses.replace(CFG, voluntary_deduction_cap_pct=Decimal("-10"))
    res = calculate_tl_payroll(PayrollInput(monthly_salary=Decimal("1000"), loan_repayment=Decimal("100")), cfg)

    assert all(d.amount >= 0 for d in res.deductions)
    assert res.deduction_amount("loan_repayment") == Decimal("0.00")
    assert res.net_pay == Decimal("910.00")
