from datetime import date
from decimal import Decimal

import pytest

from meza.services import bank_transfers as svc
from meza.services import payroll as payroll_svc
from meza.services.errors import StateError


@pytest.mark.parametrize(
    "name, code",
    [
        ("Banco Nacional Ultramarino", "BNU"),
        ("bnu dili", "BNU"),
        ("Bank Mandiri", "MANDIRI"),
        ("ANZ Timor-Leste", "ANZ"),
        ("Banco Nacional de Comércio de Timor-Leste", "BNCTL"),
        ("Some Other Bank", None),
        (None, None),
    ],
)
def test_detect_bank(name, code):
    assert svc.detect_bank(name) == code


def test_period_label():
    assert svc.period_label(date(2025, 1, 31)) == "JAN2025"


def _lines():
    return [
        svc.TransferLine("1", "E001", "ACC1", "Ana Pereira", Decimal("910.00"), "SALARY-JAN2025-E001"),
        svc.TransferLine("2", "E002", "ACC2", "Joao Belo", Decimal("455.50"), "SALARY-JAN2025-E002"),
    ]


def test_anz_fixed_width_layout():
    content = svc.format_anz(_lines(), date(2025, 1, 31), "Acme Timor Lda", "0009998887")
    header, d1, d2, trailer = content.splitlines()

    assert len(header) == 90
    assert len(d1) == len(d2) == 106
    assert len(trailer) == 22
    assert header.startswith("H0009998887")
    assert "20250131" in header
    assert header.endswith("000002" + "000000000136550")
    assert trailer == "T000002000000000136550"


def test_bnctl_semicolon_layout():
    content = svc.format_bnctl(_lines(), date(2025, 1, 31), "Acme", "ACC0")
    rows = content.splitlines()
    assert rows[0] == "HDR;ACC0;Acme;20250131;2;1365.50"
    assert rows[1] == "ACC1;Ana Pereira;910.00;USD;SALARY-JAN2025-E001"
    assert rows[-1] == "FTR;2;1365.50"


def test_generate_requires_approved_run(db, tenant, make_employee, january_run):
    make_employee(tenant)
    run = january_run(tenant)
    payroll_svc.compute_run(db, tenant.id, run.id)
    with pytest.raises(StateError):
        svc.generate_files(db, tenant.id, run.id)


def test_generate_files_per_bank(db, tenant, make_employee, january_run, pay_run):
    make_employee(tenant)
    make_employee(tenant)
    make_employee(tenant, bank_name="ANZ Bank", bank_account_number="ANZ-77", bank_account_name="J. Belo")
    make_employee(tenant, payment_method="cash")
    make_employee(tenant, bank_account_number="")
    run = january_run(tenant)
    pay_run(tenant, run)

    res = svc.generate_files(db, tenant.id, run.id)
    files = {f.bank_code: f for f in res["files"]}

    assert sorted(files) == ["ANZ", "BNU"]
    bnu = files["BNU"]
    assert bnu.transfer_count == 2
    assert bnu.total_amount == Decimal("1820.00")
    assert bnu.mime_type == "text/csv"
    assert bnu.value_date == date(2025, 1, 31)
    first_line = bnu.content.splitlines()[0]
    assert first_line == "H,0009998887,Acme Timor Lda,20250131,2,1820.00"
    assert "SALARY-JAN2025-E001" in bnu.content

    anz = files["ANZ"]
    assert "J. Belo" in anz.content
    assert anz.file_name.startswith("ANZ_20250131_")

    reasons = sorted(s["reason"] for s in res["skipped"])
    assert reasons == ["no bank account number", "paid by cash"]


def test_generate_single_bank_with_value_date(db, tenant, make_employee, january_run, pay_run):
    make_employee(tenant)
    run = january_run(tenant)
    pay_run(tenant, run)

    res = svc.generate_files(db, tenant.id, run.id, bank_code="BNU", value_date=date(2025, 2, 3))
    (f,) = res["files"]
    assert f.value_date == date(2025, 2, 3)
    assert "20250203" in f.content

    with pytest.raises(ValueError):
        svc.generate_files(db, tenant.id, run.id, bank_code="MANDIRI")


def test_status_updates_and_listing(db, tenant, make_employee, january_run, pay_run):
    make_employee(tenant)
    run = january_run(tenant)
    pay_run(tenant, run)
    (f,) = svc.generate_files(db, tenant.id, run.id)["files"]

    updated = svc.update_status(db, tenant.id, f.id, "submitted", notes="uploaded to portal")
    assert updated.status == "submitted"
    assert updated.notes == "uploaded to portal"

    with pytest.raises(ValueError):
        svc.update_status(db, tenant.id, f.id, "lost")

    assert [x.id for x in svc.list_files(db, tenant.id, run.id)] == [f.id]
