from __future__ import annotations
from flask import Blueprint, request
from permit_hub import get_db
from permit_hub.decorators.auth import require_permissions
from permit_hub.decorators.audit import audit_log
from permit_hub.models.permit_request import Citizen
from permit_hub.services import citizens
from permit_hub.utils.listing import paged_response
from permit_hub.utils.sorting import apply_multi_sort
from permit_hub.utils.filters import apply_filters

citizens_bp = Blueprint('citizens', __name__)


def citizen_json(c: Citizen):
    return {
        'id': c.id,
        'nik': c.nik,
        'full_name': c.full_name,
        'address': c.address,
        'phone': c.phone,
    }


@citizens_bp.get('')
@require_permissions('PERMIT.READ')
def list_citizens():
    session = get_db()
    q = citizens.list_citizens(session)
    specs = {
        'nik': {'op': lambda qu, v: qu.filter(Citizen.nik == v)},
        'full_name': {'op': lambda qu, v: qu.filter(Citizen.full_name.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'full_name': Citizen.full_name, 'nik': Citizen.nik, 'id': Citizen.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Citizen.id)
    return paged_response(q, citizen_json, Citizen.updated_at)


@citizens_bp.get('/<nik>')
@require_permissions('PERMIT.READ')
def get_citizen(nik: str):
    return citizen_json(citizens.get_citizen_by_nik(get_db(), nik))


@citizens_bp.put('/<int:citizen_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('CITIZEN.UPDATE', entity='Citizen', entity_id_key='id', meta_keys=['nik'])
def update_citizen(citizen_id: int):
    return citizen_json(citizens.update_citizen(get_db(), citizen_id, request.json or {}))


@citizens_bp.delete('/<int:citizen_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('CITIZEN.DELETE', entity='Citizen', entity_id_arg='citizen_id')
def delete_citizen(citizen_id: int):
    citizens.delete_citizen(get_db(), citizen_id)
    return {'status': 'deleted'}
