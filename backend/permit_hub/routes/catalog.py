from __future__ import annotations
from flask import Blueprint, request
from permit_hub import get_db
from permit_hub.decorators.auth import require_permissions
from permit_hub.decorators.audit import audit_log
from permit_hub.models.permit_type import PermitType, Requirement, PermitTemplate
from permit_hub.services import catalog
from permit_hub.services.policy import request_subdistrict_id
from permit_hub.utils.listing import paged_response
from permit_hub.utils.sorting import apply_multi_sort
from permit_hub.utils.filters import apply_filters

cat_bp = Blueprint('catalog', __name__)


def iso(dt):
    return dt.isoformat() if dt else None


def field_json(f):
    return {
        'id': f.id,
        'permit_type_id': f.permit_type_id,
        'field_key': f.field_key,
        'field_label': f.field_label,
        'field_type': f.field_type,
        'is_required': f.is_required,
        'display_order': f.display_order,
        'options': f.options,
    }


def step_json(s):
    return {
        'id': s.id,
        'permit_type_id': s.permit_type_id,
        'step_order': s.step_order,
        'description': s.description,
        'approval_mode': s.approval_mode,
        'roles': [{'id': r.id, 'name': r.name} for r in s.roles],
    }


def requirement_json(r):
    return {
        'id': r.id,
        'code': r.code,
        'name': r.name,
        'description': r.description,
        'subdistrict_id': r.subdistrict_id,
    }


def template_json(t):
    return {
        'id': t.id,
        'name': t.name,
        'slug': t.slug,
        'description': t.description,
        'template_config': t.template_config,
    }


def permit_type_summary_json(pt):
    return {
        'id': pt.id,
        'slug': pt.slug,
        'name': pt.name,
        'description': pt.description,
        'subdistrict_id': pt.subdistrict_id,
        'permit_template_id': pt.permit_template_id,
    }


def permit_type_json(pt):
    body = permit_type_summary_json(pt)
    body.update({
        'template_config': pt.template_config,
        'body_template': pt.body_template,
        'fields': [field_json(f) for f in pt.field_definitions],
        'steps': [step_json(s) for s in pt.approval_steps],
        # mandatory flag comes from the per-type link, not the requirement
        'requirements': [
            dict(requirement_json(link.requirement), is_mandatory=link.is_mandatory)
            for link in sorted(pt.requirement_links, key=lambda link: link.requirement_id)
        ],
    })
    return body


# --- Permit types ---

def _permit_type_query():
    q = catalog.list_permit_types(get_db())
    specs = {
        'subdistrict_id': {'op': lambda qu, v: qu.filter(PermitType.subdistrict_id == v)},
        'slug': {'op': lambda qu, v: qu.filter(PermitType.slug == v)},
        'name': {'op': lambda qu, v: qu.filter(PermitType.name.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'name': PermitType.name, 'slug': PermitType.slug, 'id': PermitType.id}
    return apply_multi_sort(q, request.args.get('sort'), allowed, PermitType.id)


@cat_bp.get('/permit-types')
@require_permissions('PERMIT.READ')
def list_permit_types():
    return paged_response(_permit_type_query(), permit_type_summary_json, PermitType.updated_at)


@cat_bp.route('/permit-types', methods=['HEAD'])
@require_permissions('PERMIT.READ')
def head_permit_types():
    return paged_response(_permit_type_query(), permit_type_summary_json, PermitType.updated_at, head=True)


@cat_bp.get('/permit-types/slug/<slug>')
@require_permissions('PERMIT.READ')
def get_permit_type_by_slug(slug: str):
    pt = catalog.get_permit_type_by_slug(get_db(), slug, request_subdistrict_id())
    return permit_type_json(pt)


@cat_bp.get('/permit-types/<int:permit_type_id>')
@require_permissions('PERMIT.READ')
def get_permit_type(permit_type_id: int):
    return permit_type_json(catalog.get_permit_type(get_db(), permit_type_id))


@cat_bp.post('/permit-types')
@require_permissions('PERMIT.MANAGE')
@audit_log('PERMIT_TYPE.CREATE', entity='PermitType', entity_id_key='id', meta_keys=['slug', 'subdistrict_id'])
def create_permit_type():
    session = get_db()
    pt = catalog.create_permit_type(session, request.json or {})
    return permit_type_json(catalog.get_permit_type(session, pt.id)), 201


@cat_bp.put('/permit-types/<int:permit_type_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('PERMIT_TYPE.UPDATE', entity='PermitType', entity_id_key='id', meta_keys=['slug', 'name'])
def update_permit_type(permit_type_id: int):
    session = get_db()
    catalog.update_permit_type(session, permit_type_id, request.json or {})
    return permit_type_json(catalog.get_permit_type(session, permit_type_id))


@cat_bp.delete('/permit-types/<int:permit_type_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('PERMIT_TYPE.DELETE', entity='PermitType', entity_id_arg='permit_type_id')
def delete_permit_type(permit_type_id: int):
    catalog.delete_permit_type(get_db(), permit_type_id)
    return {'status': 'deleted'}


# --- Field definitions ---

@cat_bp.post('/permit-types/<int:permit_type_id>/fields')
@require_permissions('PERMIT.MANAGE')
@audit_log('FIELD.CREATE', entity='FieldDefinition', entity_id_key='id', meta_keys=['field_key', 'permit_type_id'])
def create_field(permit_type_id: int):
    field = catalog.create_field_definition(get_db(), permit_type_id, request.json or {})
    return field_json(field), 201


@cat_bp.put('/fields/<int:field_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('FIELD.UPDATE', entity='FieldDefinition', entity_id_key='id', meta_keys=['field_key'])
def update_field(field_id: int):
    return field_json(catalog.update_field_definition(get_db(), field_id, request.json or {}))


@cat_bp.delete('/fields/<int:field_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('FIELD.DELETE', entity='FieldDefinition', entity_id_arg='field_id')
def delete_field(field_id: int):
    catalog.delete_field_definition(get_db(), field_id)
    return {'status': 'deleted'}


@cat_bp.post('/fields/<int:field_id>/move-up')
@require_permissions('PERMIT.MANAGE')
def move_field_up(field_id: int):
    return field_json(catalog.move_field_up(get_db(), field_id))


@cat_bp.post('/fields/<int:field_id>/move-down')
@require_permissions('PERMIT.MANAGE')
def move_field_down(field_id: int):
    return field_json(catalog.move_field_down(get_db(), field_id))


# --- Approval steps ---

@cat_bp.get('/permit-types/<int:permit_type_id>/steps')
@require_permissions('PERMIT.READ')
def list_steps(permit_type_id: int):
    return {'data': [step_json(s) for s in catalog.list_steps(get_db(), permit_type_id)]}


@cat_bp.get('/permit-types/<int:permit_type_id>/steps/last')
@require_permissions('PERMIT.READ')
def get_last_step(permit_type_id: int):
    session = get_db()
    catalog.get_permit_type(session, permit_type_id)
    step = catalog.last_step(session, permit_type_id)
    return {'data': step_json(step) if step else None}


@cat_bp.post('/permit-types/<int:permit_type_id>/steps')
@require_permissions('PERMIT.MANAGE')
@audit_log('STEP.CREATE', entity='ApprovalStep', entity_id_key='id', meta_keys=['step_order', 'approval_mode'])
def create_step(permit_type_id: int):
    step = catalog.create_approval_step(get_db(), permit_type_id, request.json or {})
    return step_json(step), 201


@cat_bp.put('/steps/<int:step_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('STEP.UPDATE', entity='ApprovalStep', entity_id_key='id', meta_keys=['approval_mode'])
def update_step(step_id: int):
    return step_json(catalog.update_approval_step(get_db(), step_id, request.json or {}))


@cat_bp.delete('/steps/<int:step_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('STEP.DELETE', entity='ApprovalStep', entity_id_arg='step_id')
def delete_step(step_id: int):
    catalog.delete_approval_step(get_db(), step_id)
    return {'status': 'deleted'}


# --- Requirements ---

def _requirement_query():
    q = catalog.list_requirements(get_db())
    specs = {
        'code': {'op': lambda qu, v: qu.filter(Requirement.code == v)},
        'subdistrict_id': {'op': lambda qu, v: qu.filter(Requirement.subdistrict_id == v)},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'code': Requirement.code, 'name': Requirement.name, 'id': Requirement.id}
    return apply_multi_sort(q, request.args.get('sort'), allowed, Requirement.id)


@cat_bp.get('/requirements')
@require_permissions('PERMIT.READ')
def list_requirements():
    return paged_response(_requirement_query(), requirement_json, Requirement.updated_at)


@cat_bp.post('/requirements')
@require_permissions('PERMIT.MANAGE')
@audit_log('REQUIREMENT.CREATE', entity='Requirement', entity_id_key='id', meta_keys=['code'])
def create_requirement():
    return requirement_json(catalog.create_requirement(get_db(), request.json or {})), 201


@cat_bp.put('/requirements/<int:requirement_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('REQUIREMENT.UPDATE', entity='Requirement', entity_id_key='id', meta_keys=['code'])
def update_requirement(requirement_id: int):
    return requirement_json(catalog.update_requirement(get_db(), requirement_id, request.json or {}))


@cat_bp.delete('/requirements/<int:requirement_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('REQUIREMENT.DELETE', entity='Requirement', entity_id_arg='requirement_id')
def delete_requirement(requirement_id: int):
    catalog.delete_requirement(get_db(), requirement_id)
    return {'status': 'deleted'}


@cat_bp.put('/permit-types/<int:permit_type_id>/requirements/<int:requirement_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('REQUIREMENT.ATTACH', entity='PermitType', entity_id_key='permit_type_id',
           meta_keys=['requirement_id', 'is_mandatory'])
def attach_requirement(permit_type_id: int, requirement_id: int):
    data = request.json or {}
    link = catalog.attach_requirement(get_db(), permit_type_id, requirement_id, data.get('is_mandatory', False))
    return {
        'permit_type_id': link.permit_type_id,
        'requirement_id': link.requirement_id,
        'is_mandatory': link.is_mandatory,
    }


@cat_bp.delete('/permit-types/<int:permit_type_id>/requirements/<int:requirement_id>')
@require_permissions('PERMIT.MANAGE')
@audit_log('REQUIREMENT.DETACH', entity='PermitType', entity_id_arg='permit_type_id',
           meta_builder=lambda data, rv, a, kw: {'requirement_id': kw.get('requirement_id')})
def detach_requirement(permit_type_id: int, requirement_id: int):
    catalog.detach_requirement(get_db(), permit_type_id, requirement_id)
    return {'status': 'detached'}


# --- Templates ---

@cat_bp.get('/templates')
@require_permissions('PERMIT.READ')
def list_templates():
    q = catalog.list_templates(get_db())
    q = apply_multi_sort(q, request.args.get('sort'), {'name': PermitTemplate.name, 'id': PermitTemplate.id}, PermitTemplate.id)
    return paged_response(q, template_json, PermitTemplate.updated_at)


@cat_bp.post('/templates')
@require_permissions('PERMIT.MANAGE')
@audit_log('TEMPLATE.CREATE', entity='PermitTemplate', entity_id_key='id', meta_keys=['slug'])
def create_template():
    return template_json(catalog.create_template(get_db(), request.json or {})), 201
