"""Read side of permit requests plus the administrative edit/delete calls."""
from __future__ import annotations
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Mapping

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from permit_hub.decorators.transaction import transactional
from permit_hub.errors import NotFound, ValidationFailed
from permit_hub.models.permit_request import PermitRequest, DynamicData
from permit_hub.models.permit_type import PermitType, ApprovalStep, PermitTypeRequirement
from permit_hub.utils.filters import apply_filters, split_int_csv
from permit_hub.utils.sorting import apply_multi_sort
from permit_hub.utils.validation import coerce_int

SORTABLE = {
    'submitted_at': PermitRequest.submitted_at,
    'status': PermitRequest.status,
    'code': PermitRequest.code,
    'id': PermitRequest.id,
}
DEFAULT_ORDER = (PermitRequest.submitted_at.desc(), PermitRequest.id.desc())


def _detail_loader():
    return (
        selectinload(PermitRequest.permit_type).selectinload(PermitType.field_definitions),
        selectinload(PermitRequest.permit_type)
        .selectinload(PermitType.approval_steps)
        .selectinload(ApprovalStep.roles),
        selectinload(PermitRequest.permit_type)
        .selectinload(PermitType.requirement_links)
        .selectinload(PermitTypeRequirement.requirement),
        selectinload(PermitRequest.citizen),
        selectinload(PermitRequest.current_step_roles),
        selectinload(PermitRequest.dynamic_data),
        selectinload(PermitRequest.documents),
        selectinload(PermitRequest.approval_logs),
        selectinload(PermitRequest.final_documents),
    )


def _fetch_one(session, clause, label):
    request = session.execute(
        select(PermitRequest)
        .where(clause)
        .options(*_detail_loader())
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if request is None:
        raise NotFound(f'permit request {label} not found')
    return request


def get_request(session, request_id: int) -> PermitRequest:
    return _fetch_one(session, PermitRequest.id == request_id, request_id)


def get_request_by_code(session, code: str) -> PermitRequest:
    return _fetch_one(session, PermitRequest.code == code, code)


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _start_of(value) -> datetime:
    return datetime.combine(_parse_date(value), time.min)


def _end_of(value) -> datetime:
    # inclusive end date
    return datetime.combine(_parse_date(value) + timedelta(days=1), time.min)


def build_request_query(session, params: Mapping[str, Any]):
    """Filtered, ordered Query over permit requests. Filters combine with AND."""
    q = session.query(PermitRequest)
    specs = {
        'company_id': {'coerce': int, 'op': lambda qu, v: qu.filter(PermitRequest.company_id == v)},
        'subdistrict_id': {'op': lambda qu, v: qu.filter(PermitRequest.subdistrict_id == v)},
        'citizen_id': {'coerce': int, 'op': lambda qu, v: qu.filter(PermitRequest.citizen_id == v)},
        'citizen_ids': {
            'coerce': split_int_csv,
            'validate': lambda v: len(v) > 0,
            'op': lambda qu, v: qu.filter(PermitRequest.citizen_id.in_(v)),
        },
        'start_date': {'coerce': _start_of, 'op': lambda qu, v: qu.filter(PermitRequest.submitted_at >= v)},
        'end_date': {'coerce': _end_of, 'op': lambda qu, v: qu.filter(PermitRequest.submitted_at < v)},
        'status': {
            'op': lambda qu, v: qu.filter(PermitRequest.status == v),
            'validate': lambda v: v in PermitRequest.ALL_STATUSES,
        },
        'permit_type_id': {'coerce': int, 'op': lambda qu, v: qu.filter(PermitRequest.permit_type_id == v)},
        'ref_id': {'op': lambda qu, v: qu.filter(PermitRequest.ref_id == v)},
    }
    q = apply_filters(q, specs, params)
    return apply_multi_sort(q, params.get('sort'), SORTABLE, PermitRequest.id, default=DEFAULT_ORDER)


@transactional
def update_request(session, request_id: int, data: Dict[str, Any]) -> PermitRequest:
    """Administrative edit. Status and step position are owned by the evaluator."""
    request = get_request(session, request_id)
    if 'ref_id' in data:
        request.ref_id = data['ref_id']
    if 'subdistrict_id' in data:
        request.subdistrict_id = data['subdistrict_id'] or None
    if 'company_id' in data:
        request.company_id = coerce_int(data['company_id'], 'company_id')
    if 'data' in data:
        if not isinstance(data['data'], dict):
            raise ValidationFailed('data must be an object', field='data')
        if request.dynamic_data is None:
            request.dynamic_data = DynamicData(data=dict(data['data']))
        else:
            request.dynamic_data.data = dict(data['data'])
    session.flush()
    return request


@transactional
def delete_request(session, request_id: int):
    request = get_request(session, request_id)
    session.expire(request)
    session.delete(request)
