from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from permit_hub import get_db
from permit_hub.decorators.auth import require_permissions
from permit_hub.decorators.audit import audit_log
from permit_hub.models.permit_request import PermitRequest
from permit_hub.routes.catalog import iso, permit_type_json
from permit_hub.routes.citizens import citizen_json
from permit_hub.services import intake, evaluator, ledger, queries
from permit_hub.services.policy import current_caller, request_company_id, request_subdistrict_id
from permit_hub.utils.listing import paged_response, entity_response
from permit_hub.utils.validation import coerce_bool

permits_bp = Blueprint('permits', __name__)


def _request_summary_json(r: PermitRequest):
    return {
        'id': r.id,
        'code': r.code,
        'permit_type_id': r.permit_type_id,
        'citizen_id': r.citizen_id,
        'status': r.status,
        'current_step': r.current_step,
        'submitted_at': iso(r.submitted_at),
        'approved_at': iso(r.approved_at),
        'register_number': r.register_number,
        'subdistrict_id': r.subdistrict_id,
        'company_id': r.company_id,
        'ref_id': r.ref_id,
    }


def _log_json(log):
    return {
        'id': log.id,
        'step_order': log.step_order,
        'step': log.step,
        'step_role_id': log.step_role_id,
        'approved_by': log.approved_by,
        'approved_at': iso(log.approved_at),
        'status': log.status,
        'note': log.note,
    }


def _decision_json(d):
    return {
        'id': d.id,
        'step_order': d.step_order,
        'decider_role_id': d.decider_role_id,
        'approved_by': d.approved_by,
        'approved_at': iso(d.approved_at),
        'decision': d.decision,
        'note': d.note,
    }


def _document_json(doc):
    return {
        'id': doc.id,
        'file_name': doc.file_name,
        'file_url': doc.file_url,
        'uploaded_by_id': doc.uploaded_by_id,
        'requirement_code': doc.requirement_code,
    }


def _final_document_json(doc):
    return {
        'id': doc.id,
        'file_name': doc.file_name,
        'file_url': doc.file_url,
        'generated_by': doc.generated_by,
        'generated_at': iso(doc.generated_at),
    }


def _request_json(r: PermitRequest):
    body = _request_summary_json(r)
    body.update({
        'permit_type': permit_type_json(r.permit_type),
        'citizen': citizen_json(r.citizen),
        'current_step_roles': [{'id': role.id, 'name': role.name} for role in r.current_step_roles],
        'data': r.dynamic_data.data if r.dynamic_data else {},
        'documents': [_document_json(d) for d in r.documents],
        'approval_logs': [_log_json(log) for log in r.approval_logs],
        'final_documents': [_final_document_json(d) for d in r.final_documents],
    })
    return body


def _list_params():
    """Query args plus tenant scope from headers; headers win over query args."""
    params = request.args.to_dict()
    company_id = request_company_id()
    if company_id is not None:
        params['company_id'] = company_id
    subdistrict_id = request_subdistrict_id()
    if subdistrict_id is not None:
        params['subdistrict_id'] = subdistrict_id
    return params


def _list_response(head: bool = False):
    q = queries.build_request_query(get_db(), _list_params())
    return paged_response(q, _request_summary_json, PermitRequest.updated_at, head=head)


@permits_bp.get('/requests')
@require_permissions('PERMIT.READ')
def list_requests():
    return _list_response()


@permits_bp.route('/requests', methods=['HEAD'])
@require_permissions('PERMIT.READ')
def head_requests():
    return _list_response(head=True)


@permits_bp.post('/requests')
@require_permissions('PERMIT.SUBMIT')
def create_request():
    session = get_db()
    data = request.json or {}
    if not data.get('slug'):
        abort(400, description='slug required')
    if not isinstance(data.get('citizen'), dict):
        abort(400, description='citizen object required')
    payload = data.get('data') or {}
    if not isinstance(payload, dict):
        abort(400, description='data must be an object')
    attachments = data.get('attachments') or []
    if not isinstance(attachments, list) or any(not isinstance(a, dict) for a in attachments):
        abort(400, description='attachments must be a list of objects')
    claims = get_jwt()
    company_id = request_company_id()
    if company_id is None:
        company_id = data.get('company_id', claims.get('company_id'))
    subdistrict_id = request_subdistrict_id() or data.get('subdistrict_id')
    pr = intake.create_permit_request(
        session,
        data['citizen'],
        data['slug'],
        payload,
        attachments,
        subdistrict_id=subdistrict_id,
        company_id=company_id,
        ref_id=data.get('ref_id'),
        uploaded_by=int(get_jwt_identity()),
    )
    return _request_json(queries.get_request(session, pr.id)), 201


def _detail_response(pr: PermitRequest):
    return entity_response(_request_json(pr), pr.id, pr.updated_at)


@permits_bp.get('/requests/<int:request_id>')
@require_permissions('PERMIT.READ')
def get_request(request_id: int):
    return _detail_response(queries.get_request(get_db(), request_id))


@permits_bp.get('/requests/code/<code>')
@require_permissions('PERMIT.READ')
def get_request_by_code(code: str):
    return _detail_response(queries.get_request_by_code(get_db(), code))


@permits_bp.put('/requests/<int:request_id>')
@require_permissions('PERMIT.UPDATE')
@audit_log('PERMIT_REQUEST.UPDATE', entity='PermitRequest', entity_id_key='id', meta_keys=['ref_id', 'subdistrict_id'])
def update_request(request_id: int):
    session = get_db()
    queries.update_request(session, request_id, request.json or {})
    return _request_json(queries.get_request(session, request_id))


@permits_bp.delete('/requests/<int:request_id>')
@require_permissions('PERMIT.DELETE')
@audit_log('PERMIT_REQUEST.DELETE', entity='PermitRequest', entity_id_arg='request_id')
def delete_request(request_id: int):
    queries.delete_request(get_db(), request_id)
    return {'status': 'deleted'}


@permits_bp.post('/requests/<int:request_id>/decide')
@require_permissions('PERMIT.DECIDE')
def decide(request_id: int):
    data = request.json or {}
    if 'approved' not in data:
        abort(400, description='approved required')
    approved = coerce_bool(data['approved'], 'approved')
    session = get_db()
    outcome = evaluator.decide(session, request_id, current_caller(), data.get('note'), approved)
    body = _request_json(queries.get_request(session, request_id))
    body['advanced'] = outcome.advanced
    return body


@permits_bp.get('/requests/<int:request_id>/history')
@require_permissions('PERMIT.READ')
def request_history(request_id: int):
    session = get_db()
    queries.get_request(session, request_id)
    entries = ledger.history(session, request_id)
    return {
        'request_id': request_id,
        'logs': [_log_json(log) for log in entries['logs']],
        'decisions': [_decision_json(d) for d in entries['decisions']],
    }
