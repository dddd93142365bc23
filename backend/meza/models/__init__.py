# backend/meza/models/__init__.py
"""
Central model registry.

Import this once at startup (e.g., in main.py, alembic/env.py, tests) so
SQLAlchemy sees all mapped classes before relationships are configured.
"""
from meza.db import Base  # re-export Base

from .tenant import Tenant, HolidayOverride  # noqa: F401
from .payroll import (  # noqa: F401
    Employee,
    EmployeeLoan,
    PayrollConfig,
    PayrollItem,
    PayrollRecord,
    PayrollRun,
)
from .tax_filing import TaxFiling  # noqa: F401
from .bank_transfer import BankTransferFile  # noqa: F401
from .audit import AuditLog  # noqa: F401
from .rbac import User, Role, UserRole, RolePermission  # noqa: F401

__all__ = [
    "Base",
    "Tenant",
    "HolidayOverride",
    "Employee",
    "EmployeeLoan",
    "PayrollConfig",
    "PayrollItem",
    "PayrollRecord",
    "PayrollRun",
    "TaxFiling",
    "BankTransferFile",
    "AuditLog",
    "User",
    "Role",
    "UserRole",
    "RolePermission",
]
