# backend/meza/services/holidays.py
"""
Timor-Leste public holidays and business-day adjustment.

Fixed national holidays plus the Easter-based Catholic holidays observed in
TL (Good Friday, Corpus Christi). Variable holidays such as Eid are added
per tenant through holiday overrides.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from typing import FrozenSet, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Holiday:
    date: date
    name: str
    name_tetun: str
    variable: bool = False

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "name": self.name,
            "name_tetun": self.name_tetun,
            "variable": self.variable,
        }


_FIXED: Tuple[Tuple[int, int, str, str], ...] = (
    (1, 1, "New Year's Day", "Loron Tinan Foun"),
    (3, 3, "Veterans Day", "Loron Veteranu"),
    (5, 1, "Labor Day", "Loron Trabalhador"),
    (5, 20, "Independence Restoration Day", "Loron Restaurasaun Independensia"),
    (8, 30, "Popular Consultation Day", "Loron Konsulta Popular"),
    (11, 1, "All Saints Day", "Loron Santu Hotu"),
    (11, 2, "All Souls Day", "Loron Finadu"),
    (11, 12, "National Youth Day", "Loron Juventude Nasional"),
    (11, 28, "Independence Proclamation Day", "Loron Proklamasaun Independensia"),
    (12, 7, "Memorial Day", "Loron Memoria"),
    (12, 8, "Immaculate Conception", "Loron Imakulada Konseisaun"),
    (12, 25, "Christmas Day", "Loron Natal"),
    (12, 31, "National Heroes Day", "Loron Heroi Nasional"),
)

MAX_ADJUST_DAYS = 14


def easter_sunday(year: int) -> date:
    """Gregorian Easter (Meeus/Jones/Butcher)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month = (h + l - 7 * m + 114) // 31
    day = ((h + l - 7 * m + 114) % 31) + 1
    return date(year, month, day)


@lru_cache(maxsize=64)
def _holidays_for_year(year: int) -> Tuple[Holiday, ...]:
    items = [Holiday(date(year, m, d), name, tet) for m, d, name, tet in _FIXED]
    easter = easter_sunday(year)
    items.append(Holiday(easter - timedelta(days=2), "Good Friday", "Sesta-feira Santa", True))
    items.append(Holiday(easter + timedelta(days=60), "Corpus Christi", "Corpus Christi", True))
    return tuple(sorted(items, key=lambda h: h.date))


def tl_public_holidays(year: int) -> List[Holiday]:
    return list(_holidays_for_year(year))


@lru_cache(maxsize=64)
def _holiday_dates(year: int) -> FrozenSet[date]:
    return frozenset(h.date for h in _holidays_for_year(year))


def is_business_day(
    d: date,
    additional: Optional[Iterable[date]] = None,
    removed: Optional[Iterable[date]] = None,
) -> bool:
    added = set(additional or ())
    dropped = set(removed or ())
    if d.weekday() >= 5:
        return False
    base = d in _holiday_dates(d.year)
    return not ((base and d not in dropped) or d in added)


def adjust_to_next_business_day(
    d: date,
    additional: Optional[Iterable[date]] = None,
    removed: Optional[Iterable[date]] = None,
) -> date:
    """
    Roll a deadline forward past weekends and TL holidays.

    `additional` adds tenant holidays, `removed` cancels national ones.
    Gives up after MAX_ADJUST_DAYS and returns the input unchanged.
    """
    added = set(additional or ())
    dropped = set(removed or ())
    cursor = d
    for _ in range(MAX_ADJUST_DAYS):
        if is_business_day(cursor, added, dropped):
            return cursor
        cursor = cursor + timedelta(days=1)
    return d


__all__ = [
    "Holiday",
    "easter_sunday",
    "tl_public_holidays",
    "is_business_day",
    "adjust_to_next_business_day",
]
