"""
Shared fixtures. The database is a throwaway sqlite file; DATABASE_URL must be
set before meza.db is imported so the engine binds to it.
"""
import os
import tempfile
from datetime import date
from decimal import Decimal

_TMP = tempfile.mkdtemp(prefix="meza-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["RBAC_ENFORCE"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import meza.models  # noqa: E402,F401
from meza.db import Base, SessionLocal, engine  # noqa: E402
from meza.main import app  # noqa: E402
from meza.models.tenant import Tenant  # noqa: E402
from meza.schemas.payroll import EmployeeCreate, PayrollRunCreate  # noqa: E402
from meza.services import payroll as payroll_svc  # noqa: E402
from meza.services.payroll_rates import clear_cache  # noqa: E402

Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    clear_cache()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def tenant(db):
    t = Tenant(
        code="ACME",
        name="Acme",
        legal_name="Acme Timor Lda",
        tin_number="1234567",
        registered_address="Rua de Colmera, Dili",
        company_account_number="0009998887",
        signatory_name="Maria Soares",
        signatory_position="Director",
        meta={},
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


@pytest.fixture
def make_employee(db):
    counter = {"n": 0}

    def _make(tenant, **overrides):
        counter["n"] += 1
        data = {
            "code": f"E{counter['n']:03d}",
            "first_name": "Employee",
            "last_name": f"No{counter['n']}",
            "hire_date": date(2024, 1, 1),
            "monthly_salary": Decimal("1000.00"),
            "bank_name": "Banco Nacional Ultramarino",
            "bank_account_number": f"BNU{counter['n']:06d}",
        }
        data.update(overrides)
        return payroll_svc.create_employee(db, tenant.id, EmployeeCreate(**data))

    return _make


@pytest.fixture
def january_run(db):
    def _make(tenant, **overrides):
        data = {
            "period_start": date(2025, 1, 1),
            "period_end": date(2025, 1, 31),
            "pay_date": date(2025, 1, 31),
        }
        data.update(overrides)
        return payroll_svc.create_run(db, tenant.id, PayrollRunCreate(**data))

    return _make


@pytest.fixture
def pay_run(db):
    """Compute, approve and mark paid; returns the refreshed run."""
    def _pay(tenant, run):
        payroll_svc.compute_run(db, tenant.id, run.id)
        payroll_svc.approve_run(db, tenant.id, run.id, approved_by="tester")
        return payroll_svc.mark_run_paid(db, tenant.id, run.id)

    return _pay
