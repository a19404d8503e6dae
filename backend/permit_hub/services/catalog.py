"""Permit catalog: permit types and the data that drives intake and approval.

A permit type owns its field definitions (ordered by display_order), its
approval steps (ordered by step_order) and its requirement links. Requirements
themselves are shared across types; whether a requirement is mandatory is a
property of the link.

Public mutators are transactional. The underscored helpers only flush so they
can be composed inside a single call (e.g. creating a type together with its
fields and steps).
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from permit_hub.decorators.transaction import transactional
from permit_hub.errors import NotFound, ValidationFailed, StateConflict
from permit_hub.models.authz import Role
from permit_hub.models.permit_type import (
    PermitTemplate,
    PermitType,
    FieldDefinition,
    Requirement,
    PermitTypeRequirement,
    ApprovalStep,
)
from permit_hub.models.permit_request import PermitRequest
from permit_hub.utils.validation import require_keys, coerce_int, coerce_bool, normalize_approval_mode

logger = logging.getLogger(__name__)

PERMIT_TYPE_FIELDS = ('name', 'description', 'subdistrict_id', 'template_config', 'body_template')


def _type_loader():
    return (
        selectinload(PermitType.field_definitions),
        selectinload(PermitType.approval_steps).selectinload(ApprovalStep.roles),
        selectinload(PermitType.requirement_links).selectinload(PermitTypeRequirement.requirement),
    )


# --- Permit types ---

def get_permit_type(session, permit_type_id: int) -> PermitType:
    pt = session.execute(
        select(PermitType)
        .where(PermitType.id == permit_type_id)
        .options(*_type_loader())
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if pt is None:
        raise NotFound(f'permit type {permit_type_id} not found')
    return pt


def get_permit_type_by_slug(session, slug: str, subdistrict_id: Optional[str] = None) -> PermitType:
    """Resolve a type by slug.

    With a subdistrict, a type scoped to that subdistrict wins over the global
    (unscoped) type of the same slug. A type scoped to another subdistrict is
    never returned.
    """
    stmt = (
        select(PermitType)
        .where(PermitType.slug == slug)
        .options(*_type_loader())
        .execution_options(populate_existing=True)
    )
    if subdistrict_id:
        stmt = stmt.where((PermitType.subdistrict_id == subdistrict_id) | (PermitType.subdistrict_id.is_(None)))
    candidates = session.execute(stmt.order_by(PermitType.id.asc())).scalars().all()
    if subdistrict_id:
        for pt in candidates:
            if pt.subdistrict_id == subdistrict_id:
                return pt
    for pt in candidates:
        if pt.subdistrict_id is None:
            return pt
    raise NotFound(f'permit type {slug} not found')


def list_permit_types(session):
    return session.query(PermitType)


def _assert_slug_free(session, slug, subdistrict_id, exclude_id=None):
    stmt = select(PermitType.id).where(PermitType.slug == slug)
    if subdistrict_id is None:
        stmt = stmt.where(PermitType.subdistrict_id.is_(None))
    else:
        stmt = stmt.where(PermitType.subdistrict_id == subdistrict_id)
    if exclude_id is not None:
        stmt = stmt.where(PermitType.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise StateConflict(f'permit type {slug} already exists')


def _resolve_template(session, template_id):
    if template_id is None:
        return None
    template = session.get(PermitTemplate, template_id)
    if template is None:
        raise NotFound(f'permit template {template_id} not found')
    return template.id


@transactional
def create_permit_type(session, data: Dict[str, Any]) -> PermitType:
    """Create a permit type, optionally with nested `fields`, `steps` and `requirements`."""
    require_keys(data, 'slug', 'name')
    slug = data['slug'].strip()
    subdistrict_id = data.get('subdistrict_id') or None
    _assert_slug_free(session, slug, subdistrict_id)
    pt = PermitType(
        slug=slug,
        name=data['name'],
        description=data.get('description'),
        subdistrict_id=subdistrict_id,
        permit_template_id=_resolve_template(session, coerce_int(data.get('permit_template_id'), 'permit_template_id')),
        template_config=data.get('template_config'),
        body_template=data.get('body_template'),
    )
    session.add(pt)
    session.flush()
    for field in data.get('fields') or []:
        _add_field(session, pt, field)
    for step in data.get('steps') or []:
        _add_step(session, pt, step)
    for link in data.get('requirements') or []:
        require_keys(link, 'requirement_id')
        _attach(session, pt, coerce_int(link['requirement_id'], 'requirement_id'), link.get('is_mandatory', False))
    logger.info('permit type %s created (id=%s)', pt.slug, pt.id)
    return pt


@transactional
def update_permit_type(session, permit_type_id: int, data: Dict[str, Any]) -> PermitType:
    pt = get_permit_type(session, permit_type_id)
    if 'slug' in data or 'subdistrict_id' in data:
        slug = (data.get('slug') or pt.slug).strip()
        subdistrict_id = data.get('subdistrict_id', pt.subdistrict_id) or None
        _assert_slug_free(session, slug, subdistrict_id, exclude_id=pt.id)
        pt.slug = slug
    for key in PERMIT_TYPE_FIELDS:
        if key in data:
            value = data[key]
            if key == 'subdistrict_id':
                value = value or None
            setattr(pt, key, value)
    if 'permit_template_id' in data:
        pt.permit_template_id = _resolve_template(session, coerce_int(data['permit_template_id'], 'permit_template_id'))
    if not pt.name:
        raise ValidationFailed('name required', field='name')
    session.flush()
    return pt


def _in_flight(session, permit_type_id: int) -> int:
    return session.execute(
        select(func.count(PermitRequest.id)).where(
            PermitRequest.permit_type_id == permit_type_id,
            PermitRequest.status.in_(PermitRequest.OPEN_STATUSES),
        )
    ).scalar_one()


@transactional
def delete_permit_type(session, permit_type_id: int):
    pt = get_permit_type(session, permit_type_id)
    if _in_flight(session, pt.id):
        raise StateConflict('permit type has requests awaiting approval')
    # reload owned collections so the cascade sees every child row
    session.expire(pt)
    session.delete(pt)
    logger.info('permit type %s deleted', pt.slug)


# --- Field definitions ---

def _validate_field_type(field_type):
    if field_type not in FieldDefinition.ALL_TYPES:
        raise ValidationFailed(f'field_type {field_type} invalid', field='field_type')
    return field_type


def _validate_options(options):
    if options is not None and not isinstance(options, list):
        raise ValidationFailed('options must be a list', field='options')
    return options


def _assert_field_key_free(session, permit_type_id, field_key, exclude_id=None):
    stmt = select(FieldDefinition.id).where(
        FieldDefinition.permit_type_id == permit_type_id, FieldDefinition.field_key == field_key
    )
    if exclude_id is not None:
        stmt = stmt.where(FieldDefinition.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise StateConflict(f'field {field_key} already defined')


def last_field(session, permit_type_id: int) -> Optional[FieldDefinition]:
    return session.execute(
        select(FieldDefinition)
        .where(FieldDefinition.permit_type_id == permit_type_id)
        .order_by(FieldDefinition.display_order.desc(), FieldDefinition.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def _add_field(session, pt: PermitType, data: Dict[str, Any]) -> FieldDefinition:
    require_keys(data, 'field_key', 'field_label')
    _assert_field_key_free(session, pt.id, data['field_key'])
    last = last_field(session, pt.id)
    field = FieldDefinition(
        permit_type_id=pt.id,
        field_key=data['field_key'],
        field_label=data['field_label'],
        field_type=_validate_field_type(data.get('field_type') or FieldDefinition.TYPE_TEXT),
        is_required=coerce_bool(data.get('is_required', False), 'is_required'),
        display_order=0 if last is None else last.display_order + 1,
        options=_validate_options(data.get('options')),
    )
    session.add(field)
    session.flush()
    return field


def get_field_definition(session, field_id: int) -> FieldDefinition:
    field = session.get(FieldDefinition, field_id)
    if field is None:
        raise NotFound(f'field {field_id} not found')
    return field


@transactional
def create_field_definition(session, permit_type_id: int, data: Dict[str, Any]) -> FieldDefinition:
    pt = get_permit_type(session, permit_type_id)
    return _add_field(session, pt, data)


@transactional
def update_field_definition(session, field_id: int, data: Dict[str, Any]) -> FieldDefinition:
    field = get_field_definition(session, field_id)
    if 'field_key' in data and data['field_key'] != field.field_key:
        require_keys(data, 'field_key')
        _assert_field_key_free(session, field.permit_type_id, data['field_key'], exclude_id=field.id)
        field.field_key = data['field_key']
    if 'field_label' in data:
        require_keys(data, 'field_label')
        field.field_label = data['field_label']
    if 'field_type' in data:
        field.field_type = _validate_field_type(data['field_type'])
    if 'is_required' in data:
        field.is_required = coerce_bool(data['is_required'], 'is_required')
    if 'options' in data:
        field.options = _validate_options(data['options'])
    session.flush()
    return field


def _ordered_fields(session, permit_type_id) -> List[FieldDefinition]:
    return session.execute(
        select(FieldDefinition)
        .where(FieldDefinition.permit_type_id == permit_type_id)
        .order_by(FieldDefinition.display_order.asc(), FieldDefinition.id.asc())
    ).scalars().all()


@transactional
def delete_field_definition(session, field_id: int):
    field = get_field_definition(session, field_id)
    permit_type_id = field.permit_type_id
    session.delete(field)
    session.flush()
    for idx, remaining in enumerate(_ordered_fields(session, permit_type_id)):
        remaining.display_order = idx
    session.flush()


def _move_field(session, field_id: int, delta: int) -> FieldDefinition:
    field = get_field_definition(session, field_id)
    fields = _ordered_fields(session, field.permit_type_id)
    # densify first so swaps never act on gaps or ties
    for idx, f in enumerate(fields):
        f.display_order = idx
    pos = fields.index(field)
    target = pos + delta
    if 0 <= target < len(fields):
        neighbour = fields[target]
        field.display_order, neighbour.display_order = neighbour.display_order, field.display_order
    session.flush()
    return field


@transactional
def move_field_up(session, field_id: int) -> FieldDefinition:
    return _move_field(session, field_id, -1)


@transactional
def move_field_down(session, field_id: int) -> FieldDefinition:
    return _move_field(session, field_id, 1)


# --- Approval steps ---

def _resolve_roles(session, role_ids: Iterable[Any]) -> List[Role]:
    ids = []
    for raw in role_ids or []:
        rid = coerce_int(raw, 'role_ids')
        if rid is not None and rid not in ids:
            ids.append(rid)
    if not ids:
        raise ValidationFailed('role_ids must not be empty', field='role_ids')
    roles = session.execute(select(Role).where(Role.id.in_(ids))).scalars().all()
    missing = sorted(set(ids) - {r.id for r in roles})
    if missing:
        raise NotFound(f'roles {missing} not found')
    return sorted(roles, key=lambda r: r.id)


def last_step(session, permit_type_id: int) -> Optional[ApprovalStep]:
    """Step with the greatest step_order, or None for a type without steps."""
    return session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id)
        .order_by(ApprovalStep.step_order.desc())
        .limit(1)
    ).scalar_one_or_none()


def list_steps(session, permit_type_id: int) -> List[ApprovalStep]:
    get_permit_type(session, permit_type_id)
    return session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id)
        .options(selectinload(ApprovalStep.roles))
        .order_by(ApprovalStep.step_order.asc())
    ).scalars().all()


def get_step(session, step_id: int) -> ApprovalStep:
    step = session.get(ApprovalStep, step_id)
    if step is None:
        raise NotFound(f'approval step {step_id} not found')
    return step


def _add_step(session, pt: PermitType, data: Dict[str, Any]) -> ApprovalStep:
    order = coerce_int(data.get('step_order'), 'step_order')
    if order is None:
        last = last_step(session, pt.id)
        order = 0 if last is None else last.step_order + 1
    elif order < 0:
        raise ValidationFailed('step_order must be non-negative', field='step_order')
    else:
        clash = session.execute(
            select(ApprovalStep.id).where(ApprovalStep.permit_type_id == pt.id, ApprovalStep.step_order == order)
        ).first()
        if clash is not None:
            raise StateConflict(f'step order {order} already used')
    step = ApprovalStep(
        permit_type_id=pt.id,
        step_order=order,
        description=data.get('description'),
        approval_mode=normalize_approval_mode(data.get('approval_mode')),
    )
    step.roles = _resolve_roles(session, data.get('role_ids'))
    session.add(step)
    session.flush()
    return step


@transactional
def create_approval_step(session, permit_type_id: int, data: Dict[str, Any]) -> ApprovalStep:
    pt = get_permit_type(session, permit_type_id)
    return _add_step(session, pt, data)


@transactional
def update_approval_step(session, step_id: int, data: Dict[str, Any]) -> ApprovalStep:
    step = get_step(session, step_id)
    if 'description' in data:
        step.description = data['description']
    if 'approval_mode' in data:
        step.approval_mode = normalize_approval_mode(data['approval_mode'])
    if 'role_ids' in data:
        step.roles = _resolve_roles(session, data['role_ids'])
    session.flush()
    return step


@transactional
def delete_approval_step(session, step_id: int):
    step = get_step(session, step_id)
    permit_type_id = step.permit_type_id
    if _in_flight(session, permit_type_id):
        raise StateConflict('steps cannot change while requests await approval')
    session.delete(step)
    session.flush()
    remaining = session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id)
        .order_by(ApprovalStep.step_order.asc())
    ).scalars().all()
    # ascending one-by-one keeps (type, step_order) unique at every flush
    for idx, s in enumerate(remaining):
        if s.step_order != idx:
            s.step_order = idx
            session.flush()


# --- Requirements ---

def list_requirements(session):
    return session.query(Requirement)


def get_requirement(session, requirement_id: int) -> Requirement:
    req = session.get(Requirement, requirement_id)
    if req is None:
        raise NotFound(f'requirement {requirement_id} not found')
    return req


@transactional
def create_requirement(session, data: Dict[str, Any]) -> Requirement:
    require_keys(data, 'code', 'name')
    req = Requirement(
        code=data['code'],
        name=data['name'],
        description=data.get('description'),
        subdistrict_id=data.get('subdistrict_id') or None,
    )
    session.add(req)
    session.flush()
    return req


@transactional
def update_requirement(session, requirement_id: int, data: Dict[str, Any]) -> Requirement:
    req = get_requirement(session, requirement_id)
    for key in ('code', 'name'):
        if key in data:
            require_keys(data, key)
            setattr(req, key, data[key])
    if 'description' in data:
        req.description = data['description']
    if 'subdistrict_id' in data:
        req.subdistrict_id = data['subdistrict_id'] or None
    session.flush()
    return req


@transactional
def delete_requirement(session, requirement_id: int):
    """Delete a requirement; its links to permit types go with it."""
    req = get_requirement(session, requirement_id)
    session.expire(req)
    session.delete(req)


def _attach(session, pt: PermitType, requirement_id: int, mandatory) -> PermitTypeRequirement:
    get_requirement(session, requirement_id)
    link = session.execute(
        select(PermitTypeRequirement).where(
            PermitTypeRequirement.permit_type_id == pt.id,
            PermitTypeRequirement.requirement_id == requirement_id,
        )
    ).scalar_one_or_none()
    if link is None:
        link = PermitTypeRequirement(permit_type_id=pt.id, requirement_id=requirement_id)
        session.add(link)
    link.is_mandatory = coerce_bool(mandatory, 'is_mandatory')
    session.flush()
    return link


@transactional
def attach_requirement(session, permit_type_id: int, requirement_id: int, mandatory=False) -> PermitTypeRequirement:
    pt = get_permit_type(session, permit_type_id)
    return _attach(session, pt, requirement_id, mandatory)


@transactional
def detach_requirement(session, permit_type_id: int, requirement_id: int):
    link = session.execute(
        select(PermitTypeRequirement).where(
            PermitTypeRequirement.permit_type_id == permit_type_id,
            PermitTypeRequirement.requirement_id == requirement_id,
        )
    ).scalar_one_or_none()
    if link is None:
        raise NotFound(f'requirement {requirement_id} not attached to permit type {permit_type_id}')
    session.delete(link)


# --- Templates ---

def list_templates(session):
    return session.query(PermitTemplate)


@transactional
def create_template(session, data: Dict[str, Any]) -> PermitTemplate:
    require_keys(data, 'name', 'slug')
    exists = session.execute(select(PermitTemplate.id).where(PermitTemplate.slug == data['slug'])).first()
    if exists is not None:
        raise StateConflict(f'template {data["slug"]} already exists')
    template = PermitTemplate(
        name=data['name'],
        slug=data['slug'],
        description=data.get('description'),
        template_config=data.get('template_config'),
    )
    session.add(template)
    session.flush()
    return template
