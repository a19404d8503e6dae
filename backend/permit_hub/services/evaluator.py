"""Approval evaluator.

decide() applies one decision from one caller to one request. The request row
is read with FOR UPDATE, which serialises concurrent decisions on backends that
honour row locks. Every call also bumps the request version, and the UPDATE only
matches the version the call read. On a backend without row locks (SQLite) the
later of two racing calls fails its flush with StaleDataError; the transaction
boundary rolls it back as ConcurrentUpdate and decide() evaluates it again on
the committed state. Either way no two calls act on the same snapshot of the
request, and a rolled back attempt leaves no log entry behind.

Outcomes:
  reject                 -> request rejected, current roles cleared
  approve, quorum open   -> decision recorded, request stays on its step
  approve, quorum met    -> next step (in_progress) or final approval with a
                            register number and a FinalDocument
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from permit_hub.decorators.transaction import transactional
from permit_hub.errors import ConcurrentUpdate, InvariantBroken, NotFound, StateConflict, Unauthorised
from permit_hub.models.permit_request import PermitRequest
from permit_hub.models.permit_type import ApprovalStep, PermitType
from permit_hub.services import finaliser, ledger
from permit_hub.utils.fsm import TransitionValidator

logger = logging.getLogger(__name__)

# a call that keeps losing the version check gives up with ConcurrentUpdate
DECIDE_ATTEMPTS = 3

REQUEST_FSM = TransitionValidator({
    PermitRequest.STATUS_SUBMITTED: {
        PermitRequest.STATUS_IN_PROGRESS, PermitRequest.STATUS_APPROVED, PermitRequest.STATUS_REJECTED,
    },
    PermitRequest.STATUS_IN_PROGRESS: {
        PermitRequest.STATUS_IN_PROGRESS, PermitRequest.STATUS_APPROVED, PermitRequest.STATUS_REJECTED,
    },
    PermitRequest.STATUS_APPROVED: set(),
    PermitRequest.STATUS_REJECTED: set(),
})


@dataclass(frozen=True)
class Decision:
    advanced: bool
    status: str
    current_step: int


def _lock_request(session, request_id: int) -> PermitRequest:
    # populate_existing refreshes the version a reused session may hold
    request = session.execute(
        select(PermitRequest)
        .where(PermitRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if request is None:
        raise NotFound(f'permit request {request_id} not found')
    return request


def _steps_at(session, permit_type_id: int, step_order: int):
    return session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id, ApprovalStep.step_order == step_order)
        .options(selectinload(ApprovalStep.roles))
        .execution_options(populate_existing=True)
    ).scalars().all()


def current_step_of(session, request: PermitRequest) -> ApprovalStep:
    steps = _steps_at(session, request.permit_type_id, request.current_step)
    if not steps:
        raise InvariantBroken(f'request {request.code} points at missing step {request.current_step}')
    if len(steps) > 1:
        raise InvariantBroken(f'step order {request.current_step} is ambiguous for request {request.code}')
    return steps[0]


def next_step_after(session, permit_type_id: int, step_order: int) -> Optional[ApprovalStep]:
    return session.execute(
        select(ApprovalStep)
        .where(ApprovalStep.permit_type_id == permit_type_id, ApprovalStep.step_order > step_order)
        .options(selectinload(ApprovalStep.roles))
        .order_by(ApprovalStep.step_order.asc())
        .limit(1)
    ).scalar_one_or_none()


def quorum_met(session, request: PermitRequest, step: ApprovalStep) -> bool:
    if not step.requires_all:
        return True
    approved = set(ledger.approved_role_ids(session, request.id, step.step_order))
    return all(role_id in approved for role_id in step.role_ids)


def _transition(request: PermitRequest, target: str):
    REQUEST_FSM.assert_can_transition(request.status, target)
    request.status = target


def decide(session, request_id: int, caller, note: Optional[str], approved: bool, renderer=None) -> Decision:
    """Apply one approve/reject decision by `caller` to the request.

    A call that lost the version check to a concurrent decision was rolled back
    and is evaluated again against the committed state, so racing calls end up
    as if they had run one after another.
    """
    for attempt in range(1, DECIDE_ATTEMPTS + 1):
        try:
            return _decide_once(session, request_id, caller, note, approved, renderer)
        except ConcurrentUpdate:
            if attempt == DECIDE_ATTEMPTS:
                raise
            logger.info('decision on request %s raced a concurrent one; re-evaluating', request_id)


@transactional
def _decide_once(session, request_id: int, caller, note, approved: bool, renderer) -> Decision:
    if caller is None or caller.role_id is None:
        raise Unauthorised('caller has no role')
    request = _lock_request(session, request_id)
    if request.is_terminal:
        raise StateConflict(f'request {request.code} is already {request.status}')
    step = current_step_of(session, request)
    if caller.role_id not in step.role_ids:
        names = ', '.join(r.name for r in step.roles)
        raise Unauthorised(f'step {step.step_order} requires one of: {names}')
    # every decision writes the request row, so the version check covers quorum-pending calls too
    request.updated_at = datetime.now(timezone.utc)

    ledger.append_log(session, request, step, caller, approved, note)

    if not approved:
        _transition(request, PermitRequest.STATUS_REJECTED)
        request.current_step_roles = []
        session.flush()
        logger.info('permit request %s rejected at step %s by role %s', request.code, step.step_order, caller.role_id)
        return Decision(advanced=False, status=request.status, current_step=request.current_step)

    ledger.append_decision(session, request, step, caller, note)
    if not quorum_met(session, request, step):
        logger.info('permit request %s waiting for quorum at step %s', request.code, step.step_order)
        return Decision(advanced=False, status=request.status, current_step=request.current_step)

    nxt = next_step_after(session, request.permit_type_id, step.step_order)
    if nxt is not None:
        _transition(request, PermitRequest.STATUS_IN_PROGRESS)
        request.current_step = nxt.step_order
        request.current_step_roles = list(nxt.roles)
        session.flush()
        logger.info('permit request %s advanced to step %s', request.code, nxt.step_order)
        return Decision(advanced=True, status=request.status, current_step=request.current_step)

    _transition(request, PermitRequest.STATUS_APPROVED)
    request.approved_at = datetime.now(timezone.utc)
    permit_type = session.get(PermitType, request.permit_type_id)
    finaliser.finalise(session, request, permit_type, generated_by=caller.user_id, renderer=renderer)
    request.current_step_roles = []
    session.flush()
    logger.info('permit request %s approved', request.code)
    return Decision(advanced=True, status=request.status, current_step=request.current_step)


__all__ = ['REQUEST_FSM', 'Decision', 'decide', 'current_step_of', 'next_step_after', 'quorum_met']
