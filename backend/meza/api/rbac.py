# meza/api/rbac.py
from __future__ import annotations

import hashlib
import logging
import os
import secrets
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Set

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meza.db import get_db
from meza.models.rbac import Role, RolePermission, User, UserRole
from meza.models.tenant import Tenant

router = APIRouter(prefix="/rbac", tags=["RBAC"])

logger = logging.getLogger(__name__)

DEV_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


# ---- Utilities ----------------------------------------------------------------

def _rbac_enabled() -> bool:
    """True when RBAC is enforced (production), False in dev."""
    return os.getenv("RBAC_ENFORCE", "false").lower() in {"1", "true", "yes", "on"}


def hash_api_key(api_key_plain: str) -> str:
    """sha256 hex of key + API_KEY_PEPPER; only the hash is stored."""
    pepper = os.getenv("API_KEY_PEPPER", "")
    h = hashlib.sha256()
    h.update((api_key_plain + pepper).encode("utf-8"))
    return h.hexdigest()


def collect_user_permissions(db: Session, user_id: uuid.UUID, tenant_id: Optional[uuid.UUID] = None) -> Set[str]:
    """
    Permissions from global role assignments, plus the assignments scoped to
    tenant_id when one is given.
    """
    scope = UserRole.tenant_id.is_(None)
    if tenant_id is not None:
        scope = or_(scope, UserRole.tenant_id == tenant_id)
    rows = (
        db.execute(
            select(RolePermission.permission)
            .join(Role, Role.id == RolePermission.role_id)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, scope)
        )
        .scalars()
        .all()
    )
    return set(rows)


def _perm_match(user_perm: str, required: str) -> bool:
    """Wildcard-aware permission check."""
    if user_perm == "*":
        return True
    if user_perm.endswith(":*"):
        prefix = user_perm[:-2]
        return required == prefix or required.startswith(prefix + ":")
    return user_perm == required


def has_permission(granted: Iterable[str], required: str) -> bool:
    return any(_perm_match(p, required) for p in granted)


def _tenant_from_path(request: Request) -> Optional[uuid.UUID]:
    raw = request.path_params.get("tenant_id")
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


# ---- Auth dependencies ---------------------------------------------------------

class _DevPrincipal:
    id = DEV_USER_ID
    email = "dev@local"
    display_name = "Dev"
    api_key_hash = None
    is_active = True


def get_current_user(
    db: Session = Depends(get_db),
    api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> User:
    """
    Resolve the calling user. In dev (RBAC_ENFORCE=false), return a lightweight
    dev principal and skip DB lookups entirely.
    """
    if not _rbac_enabled():
        return _DevPrincipal()  # type: ignore[return-value]

    if not api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-API-Key")

    user = (
        db.execute(
            select(User).where(and_(User.api_key_hash == hash_api_key(api_key), User.is_active.is_(True)))
        )
        .scalars()
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return user


def require_permission(required_permission: str) -> Callable[..., User]:
    """
    Dependency factory enforcing a permission (wildcards supported). On
    /tenants/{tenant_id}/... routes, tenant-scoped roles for that tenant count.
    """
    def _inner(
        request: Request,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> User:
        if not _rbac_enabled():
            return user
        tenant_id = _tenant_from_path(request)
        granted = collect_user_permissions(db, user.id, tenant_id)
        if not has_permission(granted, required_permission):
            logger.warning("permission denied user=%s perm=%s tenant=%s", user.email, required_permission, tenant_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {required_permission}",
            )
        return user
    return _inner


# ---- Schemas ------------------------------------------------------------------

class RoleCreate(BaseModel):
    name: str = Field(..., max_length=50)
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class RoleOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    permissions: List[str]
    created_at: datetime

    @classmethod
    def from_orm_with_perms(cls, role: Role, perms: Sequence[str]) -> "RoleOut":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=sorted(set(perms)),
            created_at=role.created_at,
        )


class PermissionGrant(BaseModel):
    permissions: List[str] = Field(..., min_length=1)


class RoleAssignment(BaseModel):
    role_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None  # None = every tenant


class UserCreate(BaseModel):
    email: str  # allow dev/test domains like .local
    display_name: Optional[str] = None
    roles: List[RoleAssignment] = Field(default_factory=list)
    api_key_plain: Optional[str] = Field(default=None, min_length=16)


class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str]
    is_active: bool
    roles: List[RoleAssignment]
    api_key: Optional[str] = None  # only on creation


class WhoAmI(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str]
    rbac_enforced: bool
    permissions: List[str]
    roles: List[RoleAssignment]


def _user_roles(db: Session, user_id: uuid.UUID) -> List[RoleAssignment]:
    rows = db.execute(
        select(UserRole.role_id, UserRole.tenant_id).where(UserRole.user_id == user_id)
    ).all()
    return [RoleAssignment(role_id=r, tenant_id=t) for r, t in rows]


def _role_perms(db: Session, role_id: uuid.UUID) -> List[str]:
    return list(db.execute(select(RolePermission.permission).where(RolePermission.role_id == role_id)).scalars().all())


def _check_assignment(db: Session, a: RoleAssignment) -> None:
    if not db.get(Role, a.role_id):
        raise HTTPException(status_code=404, detail=f"Role not found: {a.role_id}")
    if a.tenant_id is not None and not db.get(Tenant, a.tenant_id):
        raise HTTPException(status_code=404, detail=f"Tenant not found: {a.tenant_id}")


# ---- Role endpoints -----------------------------------------------------------

@router.post(
    "/roles",
    response_model=RoleOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def create_role(payload: RoleCreate, db: Session = Depends(get_db)):
    role = Role(id=uuid.uuid4(), name=payload.name.strip(), description=payload.description)
    db.add(role)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Role name already exists")

    perms = sorted({p.strip() for p in payload.permissions if p.strip()})
    for p in perms:
        db.add(RolePermission(role_id=role.id, permission=p))
    db.commit()
    logger.info("role created %s perms=%s", role.name, perms)
    return RoleOut.from_orm_with_perms(role, perms)


@router.get("/roles", response_model=List[RoleOut], dependencies=[Depends(require_permission("rbac:manage"))])
def list_roles(db: Session = Depends(get_db)):
    roles = db.execute(select(Role).order_by(Role.name)).scalars().all()
    return [RoleOut.from_orm_with_perms(r, _role_perms(db, r.id)) for r in roles]


@router.post(
    "/roles/{role_id}/permissions",
    response_model=RoleOut,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def grant_permissions(role_id: uuid.UUID, payload: PermissionGrant, db: Session = Depends(get_db)):
    role = db.get(Role, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    existing = set(_role_perms(db, role_id))
    for p in {p.strip() for p in payload.permissions if p.strip()} - existing:
        db.add(RolePermission(role_id=role_id, permission=p))
    db.commit()
    return RoleOut.from_orm_with_perms(role, _role_perms(db, role_id))


@router.delete(
    "/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def delete_role(role_id: uuid.UUID, db: Session = Depends(get_db)):
    role = db.get(Role, role_id)
    if not role:
        return
    db.delete(role)
    db.commit()
    return


# ---- User endpoints -----------------------------------------------------------

@router.post(
    "/users",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    for a in payload.roles:
        _check_assignment(db, a)

    api_key_plain = payload.api_key_plain or secrets.token_urlsafe(32)
    user = User(
        id=uuid.uuid4(),
        email=str(payload.email).lower(),
        display_name=payload.display_name,
        api_key_hash=hash_api_key(api_key_plain),
        is_active=True,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="User email already exists")

    for a in payload.roles:
        db.add(UserRole(user_id=user.id, role_id=a.role_id, tenant_id=a.tenant_id))
    db.commit()
    logger.info("user created %s roles=%d", user.email, len(payload.roles))

    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=user.is_active,
        roles=payload.roles,
        api_key=api_key_plain,
    )


@router.get("/users", response_model=List[UserOut], dependencies=[Depends(require_permission("rbac:manage"))])
def list_users(db: Session = Depends(get_db)):
    users = db.execute(select(User).order_by(User.email)).scalars().all()
    return [
        UserOut(
            id=u.id,
            email=u.email,
            display_name=u.display_name,
            is_active=u.is_active,
            roles=_user_roles(db, u.id),
        )
        for u in users
    ]


@router.post(
    "/users/{user_id}/roles",
    response_model=UserOut,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def assign_role(user_id: uuid.UUID, payload: RoleAssignment, db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    _check_assignment(db, payload)

    scope = UserRole.tenant_id.is_(None) if payload.tenant_id is None else UserRole.tenant_id == payload.tenant_id
    exists = db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role_id == payload.role_id, scope)
    ).first()
    if not exists:
        db.add(UserRole(user_id=user_id, role_id=payload.role_id, tenant_id=payload.tenant_id))
        db.commit()

    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=user.is_active,
        roles=_user_roles(db, user.id),
    )


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("rbac:manage"))],
)
def unassign_role(user_id: uuid.UUID, role_id: uuid.UUID, tenant_id: Optional[uuid.UUID] = None, db: Session = Depends(get_db)):
    scope = UserRole.tenant_id.is_(None) if tenant_id is None else UserRole.tenant_id == tenant_id
    db.execute(delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id, scope))
    db.commit()
    return


# ---- Helper -------------------------------------------------------------------

@router.get("/whoami", response_model=WhoAmI)
def whoami(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not _rbac_enabled():
        return WhoAmI(
            id=DEV_USER_ID,
            email="dev@local",
            display_name="Dev",
            rbac_enforced=False,
            permissions=["*"],
            roles=[],
        )
    return WhoAmI(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        rbac_enforced=True,
        permissions=sorted(collect_user_permissions(db, user.id)),
        roles=_user_roles(db, user.id),
    )
