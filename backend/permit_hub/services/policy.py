from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Set
from flask import request
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from permit_hub.models.authz import UserRole, RolePermission, Permission, Role
from permit_hub.errors import ValidationFailed
from permit_hub import get_db

OWNER_ROLE = 'Owner'


@dataclass(frozen=True)
class Caller:
    """Identity handed to the evaluator. Authorisation is by role, never by user."""
    user_id: Optional[int]
    role_id: Optional[int]
    role_name: Optional[str] = None


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def missing_permissions(*codes: str) -> List[str]:
    perms = current_permissions()
    return [c for c in codes if c not in perms]


def current_caller() -> Caller:
    """Build a Caller from the verified JWT; role_id is the user's acting role."""
    claims = get_jwt()
    ident = get_jwt_identity()
    return Caller(
        user_id=int(ident) if ident is not None else None,
        role_id=claims.get('role_id'),
        role_name=claims.get('role_name'),
    )


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = sorted(
        r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id == user_id)).scalars()
    )
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Owner wildcard support (if role named Owner present)
    owner_role = session.execute(select(Role).where(Role.name == OWNER_ROLE)).scalar_one_or_none()
    if owner_role and owner_role.id in role_ids:
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': role_ids,
        'perms': sorted(perm_codes),
    }


def _scope_header(name: str, query_name: str):
    raw = request.headers.get(name)
    if raw is None or raw == '':
        raw = request.args.get(query_name)
    return raw if raw not in ('', None) else None


def request_company_id() -> Optional[int]:
    """Tenant scope from X-Company-ID header (or company_id query param)."""
    raw = _scope_header('X-Company-ID', 'company_id')
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailed('company_id must be int', field='company_id')


def request_subdistrict_id() -> Optional[str]:
    """Subdistrict scope from ID-SubDistrict header (or subdistrict_id query param)."""
    return _scope_header('ID-SubDistrict', 'subdistrict_id')
