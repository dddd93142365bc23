# backend/scripts/smoke_payroll_run.py
"""
Smoke test for the payroll run lifecycle against DATABASE_URL.

What it does:
1) Creates a throwaway tenant and two monthly employees (BNU and ANZ accounts)
2) Creates a payroll run for the current month
3) Computes, approves and marks the run paid
4) Generates the bank transfer files and the monthly WIT return
5) Prints a compact JSON summary
"""

from __future__ import annotations

# --- PATH SHIM: ensure 'meza' is importable when running this script ---
import os, sys
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))          # .../backend/scripts
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, ".."))   # .../backend
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json
from datetime import date, datetime, timedelta
from decimal import Decimal

import meza.models  # noqa: F401
from meza.db import SessionLocal
from meza.models.tenant import Tenant
from meza.schemas.payroll import EmployeeCreate, PayrollRunCreate
from meza.services import bank_transfers, payroll, tax_filings


def _month_bounds(d: date) -> tuple[date, date]:
    start = d.replace(day=1)
    next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    end = next_month - timedelta(days=1)
    return start, end


def main():
    today = date.today()
    start, end = _month_bounds(today)
    stamp = f"{datetime.now():%H%M%S}"

    db = SessionLocal()
    try:
        # 1) Tenant + employees
        tenant = Tenant(code=f"SMK{stamp}", name="Smoke Lda", company_account_number="0001112223", meta={})
        db.add(tenant)
        db.commit()
        db.refresh(tenant)

        for code, salary, bank, acct in (
            ("E1", "1000.00", "Banco Nacional Ultramarino", "111222333"),
            ("E2", "650.00", "ANZ Timor-Leste", "444555666"),
        ):
            payroll.create_employee(db, tenant.id, EmployeeCreate(
                code=code,
                first_name="Smoke",
                last_name=code,
                hire_date=date(today.year, 1, 1),
                monthly_salary=Decimal(salary),
                bank_name=bank,
                bank_account_number=acct,
                meta={"source": "smoke"},
            ))

        # 2) Run
        run = payroll.create_run(db, tenant.id, PayrollRunCreate(
            period_start=start, period_end=end, pay_date=end, notes="smoke run",
        ))

        # 3) Lifecycle
        res = payroll.compute_run(db, tenant.id, run.id)
        payroll.approve_run(db, tenant.id, run.id, approved_by="smoke")
        payroll.mark_run_paid(db, tenant.id, run.id)

        # 4) Outputs
        files = bank_transfers.generate_files(db, tenant.id, run.id)
        wit = tax_filings.monthly_wit_return(db, tenant.id, f"{end:%Y-%m}")

        out = {
            "tenant": {"id": str(tenant.id), "code": tenant.code},
            "run": {"id": str(run.id), "reference_no": run.reference_no},
            "compute": res,
            "bank_files": [
                {"bank": f.bank_code, "file": f.file_name, "count": f.transfer_count, "total": str(f.total_amount)}
                for f in files["files"]
            ],
            "monthly_wit": {
                "employees": wit["total_employees"],
                "gross": wit["total_gross_wages"],
                "wit": wit["total_wit_withheld"],
            },
        }
        print(json.dumps(out, indent=2, default=str))
    finally:
        db.close()


if __name__ == "__main__":
    main()
