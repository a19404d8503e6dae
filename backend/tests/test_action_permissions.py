from permit_hub.openapi_parts.constants import OPERATIONS
from permit_hub.constants.permissions import ROLE_PRESETS, ALL_PERMISSION_CODES


def test_documented_permissions_are_known_codes():
    perms = {op[3] for op in OPERATIONS if op[3]}
    unknown = sorted(p for p in perms if p not in ALL_PERMISSION_CODES)
    assert not unknown, f"Unknown permission codes documented: {unknown}"


def test_action_permissions_exist_in_some_role():
    perms = {op[3] for op in OPERATIONS if op[3]}
    # Roles (exclude wildcard Owner)
    role_map = {r: set(p for p in codes if p != '*') for r, codes in ROLE_PRESETS.items() if r != 'Owner'}
    all_role_perms = set().union(*role_map.values()) if role_map else set()
    missing = sorted([p for p in perms if p not in all_role_perms])
    assert not missing, f"Action permissions not present in any concrete role: {missing}"
