# backend/meza/services/payroll_rates.py
"""
Meza Payroll Rate Tables (Timor-Leste) - loader + lookup helpers

Config precedence per field:
    1) Environment variables (override specific fields)
    2) Tenant overrides (PayrollConfig rows, key="tl_tax"), passed in by the caller
    3) JSON file meza/data/payroll/<year>/tl_tax.json
    4) Built-in defaults (keeps app working without data files)

Year resolution:
    - MEZA_PAYROLL_RATES_YEAR (ALWAYS used if set, even if folders are missing)
    - requested year (if folder exists; else closest available; else the requested year)

Statutory basis:
    • WIT : 10% flat; residents exempt on the first $500/month, non-residents taxed from $0
    • INSS: employee 4%, employer 6%; optional regime bands in multiples of the $60 social pension
    • Labour code: 44h week, 8h day, OT capped at 4h/day and 16h/week
    • Sick leave: 12 days/year, first 6 at full pay, next 6 at half pay
    • Subsidio Anual: one month's salary, pro-rated, payable by 20 December
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from meza.services.money import D, q2

logger = logging.getLogger(__name__)

PAY_FREQUENCIES = ("weekly", "biweekly", "monthly")

# Optional INSS regime: declared income is rounded up to one of these bases,
# expressed as multiples of the social pension.
INSS_OPTIONAL_MULTIPLIERS: Tuple[Decimal, ...] = tuple(
    Decimal(x)
    for x in (
        "2", "2.5", "3", "4", "5", "6", "7", "8", "9", "10",
        "12", "14", "16", "18", "20", "25", "30", "40", "50", "100", "200",
    )
)

# Earning types kept out of the INSS contribution base
INSS_EXCLUDED_ITEMS: Tuple[str, ...] = (
    "per_diem",
    "travel_allowance",
    "food_allowance",
    "transport_allowance",
    "housing_allowance",
    "overtime",
    "holiday",
    "rest_day",
    "bonus",
    "commission",
    "gratuity",
    "profit_sharing",
    "reimbursement",
    "representation_expenses",
    "other",
)

# ---------------------------- Data holder ---------------------------- #

@dataclass(frozen=True)
class TaxConfig:
    year: int = 2025

    # WIT
    wit_rate: Decimal = Decimal("0.10")
    wit_resident_threshold_monthly: Decimal = Decimal("500")

    # INSS
    inss_employee_rate: Decimal = Decimal("0.04")
    inss_employer_rate: Decimal = Decimal("0.06")
    inss_minimum_salary: Decimal = Decimal("115")
    social_pension: Decimal = Decimal("60")

    # Working hours
    standard_weekly_hours: Decimal = Decimal("44")
    standard_daily_hours: Decimal = Decimal("8")
    max_overtime_weekly: Decimal = Decimal("16")

    # Overtime multipliers
    overtime_rate: Decimal = Decimal("1.5")
    night_shift_rate: Decimal = Decimal("1.25")
    rest_day_rate: Decimal = Decimal("2.0")
    public_holiday_rate: Decimal = Decimal("2.0")

    # Sick leave
    sick_days_per_year: int = 12
    sick_full_pay_days: int = 6
    sick_half_pay_days: int = 6
    sick_half_pay_rate: Decimal = Decimal("0.5")

    # Subsidio Anual
    subsidio_deadline_month: int = 12
    subsidio_deadline_day: int = 20
    subsidio_full_year_months: int = 12

    # Pay periods
    weekly_periods_per_month: Decimal = Decimal("4.33")
    biweekly_periods_per_month: Decimal = Decimal("2.17")

    # Policy
    voluntary_deduction_cap_pct: Decimal = Decimal("30")
    minimum_wage: Decimal = Decimal("115")

    def periods_per_month(self, frequency: str) -> Decimal:
        if frequency == "weekly":
            return self.weekly_periods_per_month
        if frequency == "biweekly":
            return self.biweekly_periods_per_month
        return Decimal("1")

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            v = getattr(self, f.name)
            out[f.name] = str(v) if isinstance(v, Decimal) else v
        return out


_FIELD_TYPES: Dict[str, Any] = {f.name: f.type for f in dataclasses.fields(TaxConfig)}

# Env var -> TaxConfig field
ENV_OVERRIDES: Dict[str, str] = {
    "MEZA_WIT_RATE": "wit_rate",
    "MEZA_WIT_RESIDENT_THRESHOLD": "wit_resident_threshold_monthly",
    "MEZA_INSS_EMPLOYEE_RATE": "inss_employee_rate",
    "MEZA_INSS_EMPLOYER_RATE": "inss_employer_rate",
    "MEZA_MINIMUM_WAGE": "minimum_wage",
}

# ---------------------------- Year folders ---------------------------- #

DATA_ROOT = Path(__file__).resolve().parent.parent / "data" / "payroll"


def _rate_years() -> List[int]:
    if not DATA_ROOT.is_dir():
        return []
    return sorted(int(p.name) for p in DATA_ROOT.iterdir() if p.is_dir() and p.name.isdigit())


def _resolve_year(requested: Optional[int]) -> int:
    """MEZA_PAYROLL_RATES_YEAR, else the requested year, else the nearest year with a rate file."""
    pinned = os.getenv("MEZA_PAYROLL_RATES_YEAR")
    if pinned:
        try:
            return int(pinned)
        except ValueError:
            logger.warning("ignoring MEZA_PAYROLL_RATES_YEAR=%r (not an int)", pinned)

    target = requested if requested is not None else TaxConfig.year
    years = _rate_years()
    if not years or target in years:
        return target
    return min(years, key=lambda y: abs(y - target))

# ---------------------------- Value checks ---------------------------- #

# Fractions of one (0.10 == 10%)
_FRACTION_FIELDS = ("wit_rate", "inss_employee_rate", "inss_employer_rate", "sick_half_pay_rate")


def _coerce(name: str, raw: Any) -> Any:
    """Parse one config value. Raises ValueError for non-numbers and out-of-range values."""
    if raw is None or isinstance(raw, bool):
        raise ValueError(f"{name}: expected a number, got {raw!r}")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"{name}: expected a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative")
    if name in _FRACTION_FIELDS and value > 1:
        raise ValueError(f"{name} must be a fraction between 0 and 1")
    if name == "voluntary_deduction_cap_pct" and value > 100:
        raise ValueError(f"{name} must be between 0 and 100")

    if _FIELD_TYPES[name] in ("int", int):
        if value != value.to_integral_value():
            raise ValueError(f"{name} must be a whole number")
        return int(value)
    return value


def validate_overrides(values: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Check tenant override values before they are stored.

    Returns the normalised values (Decimals as strings) and raises ValueError
    naming every bad field.
    """
    problems: List[str] = []
    clean: Dict[str, Any] = {}
    for key, raw in (values or {}).items():
        if key == "year" or key not in _FIELD_TYPES:
            problems.append(f"unknown tax config field {key!r}")
            continue
        try:
            value = _coerce(key, raw)
        except ValueError as e:
            problems.append(str(e))
            continue
        clean[key] = str(value) if isinstance(value, Decimal) else value
    if problems:
        raise ValueError("; ".join(problems))
    return clean


def _apply(cfg: TaxConfig, values: Mapping[str, Any], source: str) -> TaxConfig:
    changes: Dict[str, Any] = {}
    for key, raw in (values or {}).items():
        if key == "year":
            continue
        if key not in _FIELD_TYPES:
            logger.warning("unknown tax config key %r from %s", key, source)
            continue
        try:
            changes[key] = _coerce(key, raw)
        except ValueError as e:
            logger.warning("ignoring tax config value from %s: %s", source, e)
    return dataclasses.replace(cfg, **changes) if changes else cfg

# ---------------------------- Loader ---------------------------- #

def _load_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        logger.warning("could not read rate file %s", path, exc_info=True)
        return None

@lru_cache(maxsize=32)
def _load_config_for_year(effective_year: int) -> TaxConfig:
    cfg = TaxConfig(year=effective_year)
    raw = _load_json(DATA_ROOT / str(effective_year) / "tl_tax.json")
    if raw:
        cfg = _apply(cfg, raw, f"tl_tax.json:{effective_year}")
    return cfg

def _env_overrides() -> Dict[str, str]:
    out: Dict[str, str] = {}
    for env_key, field in ENV_OVERRIDES.items():
        raw = os.getenv(env_key)
        if raw is not None and raw.strip() != "":
            out[field] = raw
    return out

def load_tax_config(year: Optional[int] = None, overrides: Optional[Mapping[str, Any]] = None) -> TaxConfig:
    """
    Build the effective TaxConfig for a year.

    `overrides` are tenant-level values (already resolved for the pay date);
    environment variables still win over them.
    """
    cfg = _load_config_for_year(_resolve_year(year))
    if overrides:
        cfg = _apply(cfg, overrides, "tenant")
    env = _env_overrides()
    if env:
        cfg = _apply(cfg, env, "env")
    return cfg

def clear_cache() -> None:
    _load_config_for_year.cache_clear()

# ---------------------------- Lookup helpers ---------------------------- #

def inss_optional_bases(config: Optional[TaxConfig] = None) -> List[Decimal]:
    cfg = config or load_tax_config()
    return [q2(cfg.social_pension * m) for m in INSS_OPTIONAL_MULTIPLIERS]

def default_inss_optional_contribution_base(declared_income: Any, config: Optional[TaxConfig] = None) -> Decimal:
    """
    Contribution base for optional-regime contributors: the first band at or
    above the declared income, or the top band when income exceeds it.
    """
    amount = D(declared_income)
    if amount <= 0:
        return q2(0)
    bases = inss_optional_bases(config)
    for base in bases:
        if base >= amount:
            return base
    return bases[-1]


__all__ = [
    "PAY_FREQUENCIES",
    "INSS_EXCLUDED_ITEMS",
    "TaxConfig",
    "load_tax_config",
    "validate_overrides",
    "clear_cache",
    "inss_optional_bases",
    "default_inss_optional_contribution_base",
]
