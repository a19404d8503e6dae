"""Submission intake: validate, register and position a request on its first step."""
from __future__ import annotations
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from flask import current_app, has_app_context
from sqlalchemy import select

from permit_hub.decorators.transaction import transactional
from permit_hub.errors import InvariantBroken, ValidationFailed
from permit_hub.models.permit_request import PermitRequest, DynamicData, UploadedDocument
from permit_hub.models.permit_type import ApprovalStep
from permit_hub.services import catalog, citizens
from permit_hub.utils.validation import first_missing_required, invalid_choice, require_keys

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_code(session) -> str:
    while True:
        code = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        taken = session.execute(select(PermitRequest.id).where(PermitRequest.code == code)).first()
        if taken is None:
            return code


def _strict_choices(strict: Optional[bool]) -> bool:
    if strict is not None:
        return strict
    if has_app_context():
        return bool(current_app.config.get('PERMIT_STRICT_FIELD_CHOICES'))
    return False


def _check_mandatory_requirements(permit_type, attachments):
    supplied = {a.get('requirement_code') for a in attachments if a.get('requirement_code')}
    for link in permit_type.requirement_links:
        if link.is_mandatory and link.requirement.code not in supplied:
            raise ValidationFailed(f'{link.requirement.name} is required', field=link.requirement.code)


def first_step(session, permit_type_id: int) -> Optional[ApprovalStep]:
    return session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id)
        .order_by(ApprovalStep.step_order.asc())
        .limit(1)
    ).scalar_one_or_none()


@transactional
def create_permit_request(
    session,
    citizen: Mapping[str, Any],
    slug: str,
    payload: Optional[Mapping[str, Any]],
    attachments: Iterable[Mapping[str, Any]] = (),
    *,
    subdistrict_id: Optional[str] = None,
    company_id: Optional[int] = None,
    ref_id: Optional[str] = None,
    uploaded_by: Optional[int] = None,
    strict_choices: Optional[bool] = None,
) -> PermitRequest:
    """Register a citizen's submission for the permit type `slug`.

    Fails with ValidationFailed naming the first missing required field (by
    display order) or the first missing mandatory supporting document. Nothing is
    written when any check fails.
    """
    payload = dict(payload or {})
    attachments = [dict(a) for a in attachments or ()]
    permit_type = catalog.get_permit_type_by_slug(session, slug, subdistrict_id)
    owner = citizens.upsert_citizen(session, citizen)

    missing = first_missing_required(permit_type.field_definitions, payload)
    if missing is not None:
        raise ValidationFailed(f'{missing.field_label} is required', field=missing.field_label)
    _check_mandatory_requirements(permit_type, attachments)
    if _strict_choices(strict_choices):
        bad = invalid_choice(permit_type.field_definitions, payload)
        if bad is not None:
            raise ValidationFailed(f'{bad.field_label} has an invalid option', field=bad.field_label)

    step = first_step(session, permit_type.id)
    if step is None:
        raise InvariantBroken(f'permit type {permit_type.slug} has no approval steps')

    request = PermitRequest(
        code=generate_code(session),
        permit_type_id=permit_type.id,
        citizen_id=owner.id,
        status=PermitRequest.STATUS_SUBMITTED,
        submitted_at=datetime.now(timezone.utc),
        current_step=step.step_order,
        subdistrict_id=subdistrict_id or permit_type.subdistrict_id,
        company_id=company_id,
        ref_id=ref_id,
    )
    request.current_step_roles = list(step.roles)
    request.dynamic_data = DynamicData(data=payload)
    for att in attachments:
        require_keys(att, 'file_name', 'file_url')
        request.documents.append(UploadedDocument(
            file_name=att['file_name'],
            file_url=att['file_url'],
            uploaded_by_id=uploaded_by,
            requirement_code=att.get('requirement_code'),
        ))
    session.add(request)
    session.flush()
    logger.info('permit request %s submitted for %s at step %s', request.code, permit_type.slug, request.current_step)
    return request
