"""Permission codes and the role presets seeded by scripts/seed_authz.py.

Codes are SERVICE.ACTION strings carried in the JWT `perms` claim. Never rename a
code silently: add the new one and retire the old one through a migration.
"""
from __future__ import annotations
from typing import List, Dict

SERVICE_ACTIONS = {
    'PERMIT': ['READ', 'SUBMIT', 'DECIDE', 'MANAGE', 'UPDATE', 'DELETE'],
    'ADMIN': ['USER.MANAGE', 'ROLE.MANAGE', 'SETTINGS.MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    return [f"{svc}.{act}" for svc, actions in SERVICE_ACTIONS.items() for act in actions]


ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PRESETS: Dict[str, List[str]] = {
    # Front desk: registers submissions on behalf of citizens
    'Clerk': ['PERMIT.READ', 'PERMIT.SUBMIT'],
    # Approver roles decide on steps they are listed on
    'Head': ['PERMIT.READ', 'PERMIT.DECIDE'],
    'Citizen': ['PERMIT.READ', 'PERMIT.SUBMIT'],
    'Administrator': [
        'PERMIT.READ', 'PERMIT.MANAGE', 'PERMIT.UPDATE', 'PERMIT.DELETE',
        'ADMIN.USER.MANAGE', 'ADMIN.ROLE.MANAGE', 'ADMIN.SETTINGS.MANAGE',
    ],
    # every permission code
    'Owner': ['*']
}
