# backend/meza/services/compliance.py
"""Deadline and urgency helpers shared by the filing tracker."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Callable, Optional

from meza.services.holidays import adjust_to_next_business_day

AdjustFn = Callable[[date], date]

FILING_STATUSES = ("draft", "pending", "filed", "overdue")


def _safe_date(year: int, month: int, day: int) -> date:
    # Clamp to month end (e.g. day 31 in February -> 28/29).
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def add_months(d: date, months: int, day: Optional[int] = None) -> date:
    idx = d.year * 12 + (d.month - 1) + months
    y, m = divmod(idx, 12)
    return _safe_date(y, m + 1, day if day is not None else d.day)


def days_until_due(today: date, due: date) -> int:
    return (due - today).days


def next_monthly_adjusted_deadline(
    today: date,
    day_of_month: int,
    adjust: AdjustFn = adjust_to_next_business_day,
) -> date:
    current = _safe_date(today.year, today.month, day_of_month)
    base = current if today <= current else add_months(today, 1, day_of_month)
    return adjust(base)


def next_annual_adjusted_deadline(
    today: date,
    month: int,
    day: int,
    adjust: AdjustFn = adjust_to_next_business_day,
) -> date:
    current = adjust(_safe_date(today.year, month, day))
    if today <= current:
        return current
    return adjust(_safe_date(today.year + 1, month, day))


def urgency_from_days(days: int, is_overdue: bool = False) -> str:
    if is_overdue or days < 0:
        return "urgent"
    if days <= 3:
        return "urgent"
    if days <= 7:
        return "warning"
    return "ok"


def filing_status_from_days(days: int) -> str:
    return "overdue" if days < 0 else "pending"


def resolve_task_status(
    days: int,
    explicit_status: Optional[str] = None,
    legacy_status: Optional[str] = None,
) -> str:
    if explicit_status in ("filed", "draft"):
        return explicit_status
    if legacy_status == "filed":
        return "filed"
    return filing_status_from_days(days)
