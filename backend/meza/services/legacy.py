# backend/meza/services/legacy.py
"""
Normalizer for payroll records exported by the previous (US-style) system.

Old records carry US deduction types (federal_tax, social_security, ...) and
US YTD field names. Everything downstream only understands the TL types, so
imports go through normalize_legacy_record first.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List

LEGACY_DEDUCTION_MAP: Dict[str, str] = {
    "federal_tax": "income_tax",
    "state_tax": "income_tax",
    "local_tax": "income_tax",
    "social_security": "inss_employee",
    "medicare": "inss_employee",
    "401k": "other",
    "hsa": "other",
    "fsa": "other",
    "dental_insurance": "health_insurance",
    "vision_insurance": "health_insurance",
    "garnishment": "court_order",
    "advance": "advance_repayment",
}

LEGACY_EMPLOYER_TAX_MAP: Dict[str, str] = {
    "social_security": "inss_employer",
    "medicare": "inss_employer",
    "futa": "inss_employer",
    "suta": "inss_employer",
}

# (old name, new name); both snake_case and the old camelCase exports
YTD_RENAMES = (
    ("ytd_federal_tax", "ytd_income_tax"),
    ("ytdFederalTax", "ytd_income_tax"),
    ("ytd_social_security", "ytd_inss_employee"),
    ("ytdSocialSecurity", "ytd_inss_employee"),
)

# US-only YTD fields with no TL counterpart
YTD_DROPPED = (
    "ytd_federal_tax", "ytd_state_tax", "ytd_social_security", "ytd_medicare",
    "ytdFederalTax", "ytdStateTax", "ytdSocialSecurity", "ytdMedicare",
)


def normalize_deduction_type(kind: str) -> str:
    return LEGACY_DEDUCTION_MAP.get(kind, kind)


def normalize_employer_tax_type(kind: str) -> str:
    return LEGACY_EMPLOYER_TAX_MAP.get(kind, kind)


def _retyped(entry: Any, mapper) -> Any:
    if isinstance(entry, dict) and isinstance(entry.get("type"), str) and entry["type"]:
        return {**entry, "type": mapper(entry["type"])}
    return entry


def normalize_legacy_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized copy; TL-native records pass through unchanged."""
    out = copy.deepcopy(dict(raw or {}))

    if isinstance(out.get("deductions"), list):
        out["deductions"] = [_retyped(d, normalize_deduction_type) for d in out["deductions"]]

    for key in ("employer_taxes", "employerTaxes"):
        if isinstance(out.get(key), list):
            out[key] = [_retyped(t, normalize_employer_tax_type) for t in out[key]]

    for old, new in YTD_RENAMES:
        if old in out and new not in out:
            out[new] = out[old]
    for old in YTD_DROPPED:
        out.pop(old, None)

    return out


def normalize_legacy_records(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [normalize_legacy_record(r) for r in rows]
