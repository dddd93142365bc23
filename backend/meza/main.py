import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Ensure all SQLAlchemy models are imported so relationships resolve
import meza.models  # noqa: F401

from meza.api import (
    tenants,          # /tenants
    employees,        # /tenants/{tenant_id}/employees
    payroll,          # /tenants/{tenant_id}/payroll, /payroll
    loans,            # /tenants/{tenant_id}/loans
    tax_filings,      # /tenants/{tenant_id}/tax
    bank_transfers,   # /tenants/{tenant_id}/bank-transfers
    rbac,             # /rbac
)

# Ops/system endpoints (/health, /version)
from meza.api.system import router as system_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Meza Payroll Backend")

# --- CORS for local frontend dev ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000", "http://127.0.0.1:3000",
        "http://localhost:5173", "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(system_router)  # /health, /version

# Tenants, config and holiday overrides
app.include_router(tenants.router)
app.include_router(employees.router)

# Payroll runs + stateless calculator
app.include_router(payroll.router)
app.include_router(payroll.calc_router)
app.include_router(loans.router)

# Compliance
app.include_router(tax_filings.router)
app.include_router(bank_transfers.router)

# RBAC (admin)
app.include_router(rbac.router)
