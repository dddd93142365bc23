# scripts/seed_rbac.py
r"""
Seed RBAC:
- Creates/ensures a role (default: 'admin') with '*' wildcard.
- Creates an admin user if missing and assigns the role globally
  (or only inside --tenant-code when given).
- Stores only the API key hash; prints plaintext once.

Usage (from backend/):
  python scripts/seed_rbac.py --email admin@meza.local --name "Admin" --role admin

Then test:
  curl -s -H "X-API-Key: <PRINTED_API_KEY>" http://127.0.0.1:8000/rbac/whoami
"""
from __future__ import annotations

import argparse
import os
import secrets
import sys

# --- PATH SHIM: ensure 'meza' is importable when running this script ---
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))          # .../backend/scripts
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, ".."))   # .../backend
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from sqlalchemy import select  # noqa: E402

import meza.models  # noqa: E402,F401
from meza.api.rbac import hash_api_key  # noqa: E402
from meza.db import DATABASE_URL, SessionLocal  # noqa: E402
from meza.models.rbac import Role, RolePermission, User, UserRole  # noqa: E402
from meza.models.tenant import Tenant  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed RBAC admin role and user")
    parser.add_argument("--email", required=True, help="Admin user email")
    parser.add_argument("--name", default="Admin", help="Admin display name")
    parser.add_argument("--role", default="admin", help="Admin role name")
    parser.add_argument("--tenant-code", default=None, help="Scope the role to one tenant")
    args = parser.parse_args()

    print(f"DATABASE_URL = {DATABASE_URL}")

    email = args.email.strip().lower()
    role_name = args.role.strip()

    db = SessionLocal()
    try:
        tenant_id = None
        if args.tenant_code:
            tenant = db.execute(select(Tenant).where(Tenant.code == args.tenant_code)).scalar_one_or_none()
            if tenant is None:
                print(f"ERROR: tenant '{args.tenant_code}' not found.", file=sys.stderr)
                return 2
            tenant_id = tenant.id

        # 1) Ensure role exists (idempotent)
        role = db.execute(select(Role).where(Role.name == role_name)).scalar_one_or_none()
        if role is None:
            role = Role(name=role_name, description="Superuser role")
            db.add(role)
            db.flush()
            print(f"Created role '{role_name}'.")

        # 2) Ensure '*' permission on that role
        if db.get(RolePermission, (role.id, "*")) is None:
            db.add(RolePermission(role_id=role.id, permission="*"))

        # 3) If user exists, exit gracefully
        user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user is not None:
            db.commit()
            print(f"User '{email}' already exists (id={user.id}).")
            print("NOTE: API key is stored hashed; rotate via RBAC API if needed.")
            return 0

        # 4) Create user with a fresh API key (plaintext shown once)
        api_key_plain = secrets.token_urlsafe(32)
        user = User(email=email, display_name=args.name, api_key_hash=hash_api_key(api_key_plain), is_active=True)
        db.add(user)
        db.flush()

        # 5) Assign role to user
        db.add(UserRole(user_id=user.id, role_id=role.id, tenant_id=tenant_id))
        db.commit()

        print("\nAdmin user created.")
        print(f"   id:       {user.id}")
        print(f"   email:    {email}")
        print(f"   role:     {role_name}" + (f" (tenant {args.tenant_code})" if tenant_id else ""))
        print("\nSAVE THIS API KEY NOW (shown only once):")
        print(f"   API KEY:  {api_key_plain}\n")
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
