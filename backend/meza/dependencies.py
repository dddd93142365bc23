"""
Shared FastAPI dependency helpers.

- `get_db`: one SQLAlchemy session per request, closed afterwards.
- `get_tenant`: resolves `{tenant_id}` from the path; 404 for unknown or
  inactive tenants, so tenant-scoped routers never see a foreign id.
- `http_error`: maps service exceptions onto an HTTPException.
"""

import uuid

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from meza.db import get_db  # noqa: F401  (re-exported for routers)
from meza.models.tenant import Tenant


def get_tenant(tenant_id: uuid.UUID, db: Session = Depends(get_db)) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if not tenant or not tenant.is_active:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


def http_error(e: ValueError) -> HTTPException:
    """NotFoundError -> 404, StateError -> 409, any other ValueError -> 400."""
    return HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
