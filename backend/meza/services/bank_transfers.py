# backend/meza/services/bank_transfers.py
"""
Salary payment files for Timor-Leste banks.

Employees are matched to a bank from their bank name. Employees paid in cash
or by cheque, or without an account number, get no line and are reported
back as skipped.

Layouts (every file carries the value date as YYYYMMDD, the company name and
debit account, the line count and the total):

  BNU      CSV, H/D/T records
  MANDIRI  CSV, summary block then a column header and one row per transfer
  ANZ      fixed width: H (header) / D (detail) / T (trailer), amounts in cents
  BNCTL    semicolon separated, HDR / lines / FTR
"""

from __future__ import annotations

import csv
import io
import logging
import unicodedata
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from meza.models.bank_transfer import BANK_CODES, TRANSFER_STATUSES, BankTransferFile
from meza.models.payroll import Employee, PayrollRecord
from meza.models.tenant import Tenant
from meza.services.audit import record_audit
from meza.services.errors import NotFoundError, StateError
from meza.services.money import q2, sum_money
from meza.services.payroll import get_run, list_records

logger = logging.getLogger(__name__)

BANK_NAMES = {
    "BNU": "Banco Nacional Ultramarino",
    "MANDIRI": "Bank Mandiri (Timor-Leste)",
    "ANZ": "ANZ Bank",
    "BNCTL": "Banco Nacional de Comércio de Timor-Leste",
}

# Checked in order; first match wins.
BANK_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("BNU", ("BNU", "ULTRAMARINO")),
    ("MANDIRI", ("MANDIRI",)),
    ("ANZ", ("ANZ",)),
    ("BNCTL", ("BNCTL", "COMERCIO")),
)

FILE_RUN_STATUSES = ("approved", "paid")


@dataclass
class TransferLine:
    employee_id: str
    employee_code: str
    account_number: str
    account_name: str
    amount: Decimal
    reference: str


@dataclass
class BankFile:
    bank_code: str
    file_name: str
    mime_type: str
    content: str
    total_amount: Decimal
    transfer_count: int


def _fold(text: str) -> str:
    norm = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in norm if not unicodedata.combining(c)).upper()


def detect_bank(bank_name: Optional[str]) -> Optional[str]:
    folded = _fold(bank_name or "")
    if not folded:
        return None
    for code, keywords in BANK_KEYWORDS:
        if any(k in folded for k in keywords):
            return code
    return None


def period_label(d: date) -> str:
    """JAN2025 style label used in transfer references."""
    return d.strftime("%b%Y").upper()


def _cents(amount: Decimal) -> int:
    return int(q2(amount) * 100)


def _fixed(value: Any, width: int) -> str:
    return str(value if value is not None else "")[:width].ljust(width)


def _num(value: int, width: int) -> str:
    return str(value).rjust(width, "0")[-width:]


# ---------------------------- Lines ---------------------------- #

def build_lines(
    records: List[PayrollRecord],
    period_end: date,
) -> Tuple[Dict[str, List[TransferLine]], List[Dict[str, Any]]]:
    """Group net pay lines per bank. Returns (lines_by_bank, skipped)."""
    label = period_label(period_end)
    grouped: Dict[str, List[TransferLine]] = {code: [] for code in BANK_CODES}
    skipped: List[Dict[str, Any]] = []

    for rec in records:
        emp: Employee = rec.employee
        bank = detect_bank(emp.bank_name)
        reason = None
        if emp.payment_method != "bank_transfer":
            reason = f"paid by {emp.payment_method}"
        elif not (emp.bank_account_number or "").strip():
            reason = "no bank account number"
        elif bank is None:
            reason = f"unrecognised bank '{emp.bank_name or ''}'"
        elif q2(rec.net_pay) <= 0:
            reason = "net pay is not positive"

        if reason:
            skipped.append({
                "employee_id": str(emp.id),
                "code": emp.code,
                "full_name": emp.full_name,
                "bank_code": bank,
                "net_pay": str(q2(rec.net_pay)),
                "reason": reason,
            })
            logger.warning("bank transfer skipped %s: %s", emp.code, reason)
            continue

        grouped[bank].append(TransferLine(
            employee_id=str(emp.id),
            employee_code=emp.code,
            account_number=emp.bank_account_number.strip(),
            account_name=emp.bank_account_name or emp.full_name,
            amount=q2(rec.net_pay),
            reference=f"SALARY-{label}-{emp.code}",
        ))
    return grouped, skipped


# ---------------------------- Formats ---------------------------- #

def _csv(rows: List[List[Any]], delimiter: str = ",") -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    writer.writerows(rows)
    return buf.getvalue()


def format_bnu(lines: List[TransferLine], value_date: date, company: str, account: str) -> str:
    total = sum_money(l.amount for l in lines)
    rows: List[List[Any]] = [["H", account, company, value_date.strftime("%Y%m%d"), len(lines), str(total)]]
    for l in lines:
        rows.append(["D", l.account_number, l.account_name, str(l.amount), l.reference])
    rows.append(["T", len(lines), str(total)])
    return _csv(rows)


def format_mandiri(lines: List[TransferLine], value_date: date, company: str, account: str) -> str:
    total = sum_money(l.amount for l in lines)
    rows: List[List[Any]] = [
        ["Debit Account", "Company Name", "Value Date", "Total Records", "Total Amount"],
        [account, company, value_date.strftime("%Y%m%d"), len(lines), str(total)],
        ["No", "Account Number", "Account Name", "Amount", "Currency", "Reference"],
    ]
    for idx, l in enumerate(lines, start=1):
        rows.append([idx, l.account_number, l.account_name, str(l.amount), "USD", l.reference])
    return _csv(rows)


def format_anz(lines: List[TransferLine], value_date: date, company: str, account: str) -> str:
    total = sum_money(l.amount for l in lines)
    out = [
        "H" + _fixed(account, 20) + _fixed(company, 40) + value_date.strftime("%Y%m%d")
        + _num(len(lines), 6) + _num(_cents(total), 15)
    ]
    for l in lines:
        out.append(
            "D" + _fixed(l.account_number, 20) + _fixed(l.account_name, 40)
            + _num(_cents(l.amount), 15) + _fixed(l.reference, 30)
        )
    out.append("T" + _num(len(lines), 6) + _num(_cents(total), 15))
    return "\n".join(out) + "\n"


def format_bnctl(lines: List[TransferLine], value_date: date, company: str, account: str) -> str:
    total = sum_money(l.amount for l in lines)
    rows: List[List[Any]] = [["HDR", account, company, value_date.strftime("%Y%m%d"), len(lines), str(total)]]
    for l in lines:
        rows.append([l.account_number, l.account_name, str(l.amount), "USD", l.reference])
    rows.append(["FTR", len(lines), str(total)])
    return _csv(rows, delimiter=";")


FORMATTERS: Dict[str, Tuple[Callable[..., str], str, str]] = {
    "BNU": (format_bnu, "csv", "text/csv"),
    "MANDIRI": (format_mandiri, "csv", "text/csv"),
    "ANZ": (format_anz, "txt", "text/plain"),
    "BNCTL": (format_bnctl, "txt", "text/plain"),
}


def render_bank_file(
    bank_code: str,
    lines: List[TransferLine],
    value_date: date,
    company_name: str,
    company_account: str,
    run_ref: str,
) -> BankFile:
    if bank_code not in FORMATTERS:
        raise ValueError(f"Unknown bank code: {bank_code}")
    formatter, ext, mime = FORMATTERS[bank_code]
    content = formatter(lines, value_date, company_name, company_account)
    return BankFile(
        bank_code=bank_code,
        file_name=f"{bank_code}_{value_date:%Y%m%d}_{run_ref}.{ext}",
        mime_type=mime,
        content=content,
        total_amount=sum_money(l.amount for l in lines),
        transfer_count=len(lines),
    )


# ---------------------------- DB operations ---------------------------- #

def generate_files(
    db: Session,
    tenant_id: uuid.UUID,
    run_id: uuid.UUID,
    bank_code: Optional[str] = None,
    value_date: Optional[date] = None,
    user_id: Optional[Any] = None,
) -> Dict[str, Any]:
    """Generate one file per bank (or just bank_code) for an approved/paid run."""
    run = get_run(db, tenant_id, run_id)
    if run.status not in FILE_RUN_STATUSES:
        raise StateError(f"Bank files need an approved or paid run (status '{run.status}')")
    if bank_code is not None and bank_code not in BANK_CODES:
        raise ValueError(f"Unknown bank code: {bank_code}")

    tenant = db.get(Tenant, tenant_id)
    value_date = value_date or run.pay_date
    grouped, skipped = build_lines(list_records(db, run), run.period_end)

    banks = [bank_code] if bank_code else [c for c in BANK_CODES if grouped[c]]
    if bank_code and not grouped[bank_code]:
        raise ValueError(f"No employees are paid through {bank_code} in this run")

    run_ref = str(run.id).replace("-", "")[:8]
    rows: List[BankTransferFile] = []
    for code in banks:
        f = render_bank_file(
            code, grouped[code], value_date,
            tenant.display_name, tenant.company_account_number or "", run_ref,
        )
        row = BankTransferFile(
            tenant_id=tenant_id,
            run_id=run.id,
            bank_code=code,
            file_name=f.file_name,
            mime_type=f.mime_type,
            value_date=value_date,
            total_amount=f.total_amount,
            transfer_count=f.transfer_count,
            status="generated",
            content=f.content,
            skipped=[s for s in skipped if s["bank_code"] == code],
        )
        db.add(row)
        rows.append(row)

    db.flush()
    for row in rows:
        record_audit(db, "bank_transfer", row.id, "create", tenant_id=tenant_id, user_id=user_id,
                     details={"bank": row.bank_code, "total": str(row.total_amount), "count": row.transfer_count})
    db.commit()
    for row in rows:
        db.refresh(row)
        logger.info("bank file generated %s lines=%d total=%s", row.file_name, row.transfer_count, row.total_amount)

    return {"files": rows, "skipped": skipped}


def get_file(db: Session, tenant_id: uuid.UUID, file_id: uuid.UUID) -> BankTransferFile:
    row = db.get(BankTransferFile, file_id)
    if not row or row.tenant_id != tenant_id:
        raise NotFoundError("BankTransferFile not found")
    return row


def list_files(db: Session, tenant_id: uuid.UUID, run_id: Optional[uuid.UUID] = None) -> List[BankTransferFile]:
    stmt = select(BankTransferFile).where(BankTransferFile.tenant_id == tenant_id)
    if run_id is not None:
        stmt = stmt.where(BankTransferFile.run_id == run_id)
    return list(db.execute(stmt.order_by(BankTransferFile.created_at.desc(), BankTransferFile.bank_code)).scalars().all())


def update_status(
    db: Session,
    tenant_id: uuid.UUID,
    file_id: uuid.UUID,
    status: str,
    notes: Optional[str] = None,
    user_id: Optional[Any] = None,
) -> BankTransferFile:
    if status not in TRANSFER_STATUSES:
        raise ValueError(f"Unknown transfer status '{status}'")
    row = get_file(db, tenant_id, file_id)
    previous = row.status
    row.status = status
    if notes is not None:
        row.notes = notes
    record_audit(db, "bank_transfer", row.id, "update", tenant_id=tenant_id, user_id=user_id,
                 details={"from": previous, "to": status})
    db.commit()
    db.refresh(row)
    logger.info("bank file %s status %s -> %s", row.file_name, previous, status)
    return row
