"""Reusable test helpers for the permit request lifecycle.

Patterns unified:
 - Auth header creation using direct JWT claims (when bypassing /login).
 - Caller construction for service-level decide() calls.
 - Submission + decision sequencing with assertion helpers.
"""
from __future__ import annotations
from typing import Dict, List, Optional
from flask_jwt_extended import create_access_token
from permit_hub import get_db
from permit_hub.models.authz import Role
from permit_hub.services import evaluator, intake
from permit_hub.services.policy import Caller

DEFAULT_CITIZEN = {'nik': '3201010101010001', 'full_name': 'Ana', 'address': 'Jl. Melati 1'}

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user_id: int, perms: List[str], role: Optional[Role] = None, **claims):
    token = create_access_token(identity=str(user_id), additional_claims={
        'perms': perms,
        'roles': [role.id] if role else [],
        'role_id': role.id if role else None,
        'role_name': role.name if role else None,
        **claims,
    })
    return {'Authorization': f'Bearer {token}'}


def caller_for(role: Role, user_id: int = 1) -> Caller:
    return Caller(user_id=user_id, role_id=role.id, role_name=role.name)

# ---------- Service Helpers ---------- #

def submit(slug: str, payload: Optional[dict] = None, citizen: Optional[dict] = None, **kwargs):
    return intake.create_permit_request(get_db(), citizen or DEFAULT_CITIZEN, slug, payload or {}, **kwargs)


def decide(request_id: int, role: Role, approved: bool = True, note: Optional[str] = None, user_id: int = 1, **kwargs):
    return evaluator.decide(get_db(), request_id, caller_for(role, user_id), note, approved, **kwargs)

# ---------- Assertion Helpers ---------- #

def assert_decision(client, request_id: int, headers: Dict[str, str], approved: bool, expected_status: int, expected_request_status: str = None):
    resp = client.post(f'/permits/requests/{request_id}/decide', json={'approved': approved}, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_request_status is not None:
        assert resp.get_json()['status'] == expected_request_status
    return resp


__all__ = ['DEFAULT_CITIZEN', 'jwt_headers', 'caller_for', 'submit', 'decide', 'assert_decision']
