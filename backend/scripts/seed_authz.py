#!/usr/bin/env python
"""Idempotent seed for permission codes, approver roles and the first administrator.

Usage:
    python backend/scripts/seed_authz.py                 # permissions, roles, admin
    python backend/scripts/seed_authz.py --show-roles    # also print role -> permission table
    python backend/scripts/seed_authz.py --dry-run       # run everything, then roll back
    python backend/scripts/seed_authz.py --demo-flow     # also create the two-step `domicile` permit type
    python backend/scripts/seed_authz.py --export-json roles.json

Run `alembic upgrade head` first; an empty database is bootstrapped with create_all.
"""
from __future__ import annotations
import os, sys, argparse, json
from typing import Dict, List
from sqlalchemy import select, inspect
from sqlalchemy.exc import SQLAlchemyError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from permit_hub import create_app, get_db  # type: ignore
from permit_hub.errors import NotFound
from permit_hub.models import Base
from permit_hub.models.authz import Permission, Role, RolePermission, User, UserRole
from permit_hub.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, ALL_PERMISSION_CODES
from permit_hub.services import catalog

DEMO_SLUG = 'domicile'


def ensure_permissions(session) -> int:
    known = set(session.execute(select(Permission.code)).scalars())
    missing = [(svc, act) for svc, actions in SERVICE_ACTIONS.items() for act in actions if f'{svc}.{act}' not in known]
    for svc, act in missing:
        code = f'{svc}.{act}'
        session.add(Permission(code=code, service=svc, action=act, description=code.replace('.', ' ').lower()))
    session.flush()
    return len(missing)


def _grant_presets(session, role: Role, codes: List[str]):
    wanted = set(ALL_PERMISSION_CODES) if '*' in codes else set(codes)
    have = set(role.permission_codes)
    if not wanted - have:
        return
    by_code = {p.code: p for p in session.execute(select(Permission).where(Permission.code.in_(wanted - have))).scalars()}
    for code in sorted(wanted - have):
        if code not in by_code:
            print(f'[WARN] role {role.name} references unknown permission {code}')
            continue
        session.add(RolePermission(role=role, permission=by_code[code]))


def ensure_roles(session) -> int:
    roles = {r.name: r for r in session.execute(select(Role)).scalars()}
    created = 0
    for name, codes in ROLE_PRESETS.items():
        role = roles.get(name)
        if role is None:
            role = Role(name=name, is_system=True, description=name)
            session.add(role)
            session.flush()
            created += 1
        _grant_presets(session, role, codes)
    session.flush()
    return created


def ensure_initial_admin(session):
    owner = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if owner is None:
        print('[WARN] Owner role missing; no administrator created')
        return None
    email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    if session.execute(select(User.id).where(User.email == email)).first():
        return None
    user = User(name='Administrator', email=email, password_hash='')
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=owner.id))
    print(f'[INFO] created administrator {email} with the seed password; change it after first login')
    return user


def ensure_demo_flow(session):
    """Domicile letter: clerk verification, then village head sign-off.

    Goes through the catalog service, which commits on its own.
    """
    try:
        return catalog.get_permit_type_by_slug(session, DEMO_SLUG)
    except NotFound:
        pass
    roles = {r.name: r.id for r in session.execute(select(Role).where(Role.name.in_(['Clerk', 'Head']))).scalars()}
    return catalog.create_permit_type(session, {
        'slug': DEMO_SLUG,
        'name': 'Domicile letter',
        'fields': [
            {'field_key': 'address', 'field_label': 'Address', 'is_required': True},
            {'field_key': 'purpose', 'field_label': 'Purpose', 'field_type': 'textarea'},
        ],
        'steps': [
            {'description': 'Clerk verification', 'role_ids': [roles['Clerk']]},
            {'description': 'Head sign-off', 'role_ids': [roles['Head']]},
        ],
    })


def build_role_permission_map(session) -> Dict[str, List[str]]:
    return {
        role.name: role.permission_codes
        for role in session.execute(select(Role).order_by(Role.name)).scalars()
    }


def print_role_summary(role_perm_map):
    if not role_perm_map:
        print('[INFO] no roles present')
        return
    width = max(len(name) for name in role_perm_map)
    print(f"{'Role'.ljust(width)} | Count | Permissions")
    print('-' * (width + 40))
    for name, perms in role_perm_map.items():
        print(f"{name.ljust(width)} | {str(len(perms)).rjust(5)} | {', '.join(perms)}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description='Seed permission codes, approver roles and the first administrator')
    p.add_argument('--show-roles', action='store_true', help='print the role -> permission table after seeding')
    p.add_argument('--dry-run', action='store_true', help='roll back instead of committing')
    p.add_argument('--demo-flow', action='store_true', help=f'create the `{DEMO_SLUG}` permit type with a two-step flow')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='write role -> permissions JSON to FILE (stdout if omitted)')
    args = p.parse_args(argv)
    if args.dry_run and args.demo_flow:
        p.error('--demo-flow commits through the catalog service and cannot be combined with --dry-run')
    return args


def _bootstrap_schema(session):
    bind = session.get_bind()
    if not inspect(bind).has_table('permissions'):
        print('[INFO] empty database; creating tables (prefer `alembic upgrade head`)')
        Base.metadata.create_all(bind)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            _bootstrap_schema(session)
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            ensure_initial_admin(session)
            if args.dry_run:
                role_perm_map = build_role_permission_map(session)
                session.rollback()
                print(f'[DRY-RUN] rolled back; permissions {created_p}, roles {created_r}')
            else:
                session.commit()
                if args.demo_flow:
                    pt = ensure_demo_flow(session)
                    print(f'[INFO] permit type {pt.slug} ready (id={pt.id})')
                role_perm_map = build_role_permission_map(session)
                print(f'[DONE] permissions created: {created_p}, roles created: {created_r}')
            if args.show_roles:
                print_role_summary(role_perm_map)
            if args.export_json is not None:
                body = json.dumps({'roles': role_perm_map, 'dry_run': args.dry_run}, indent=2, sort_keys=True)
                if args.export_json == '-':
                    print(body)
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        f.write(body)
                    print(f'[INFO] exported {args.export_json}')
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
