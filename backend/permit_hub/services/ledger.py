"""Append-only approval ledger.

ApprovalLog records every decide call (approved or rejected). ApprovalDecision
records approvals only and is what quorum is computed from. Neither relation is
ever updated or deleted outside of request deletion.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select

from permit_hub.models.permit_request import ApprovalLog, ApprovalDecision


def _now():
    return datetime.now(timezone.utc)


def append_log(session, request, step, caller, approved: bool, note=None) -> ApprovalLog:
    log = ApprovalLog(
        permit_request_id=request.id,
        step_order=step.step_order,
        step=caller.role_name or _role_name(step, caller.role_id),
        step_role_id=caller.role_id,
        approved_by=caller.user_id,
        approved_at=_now(),
        status=ApprovalLog.STATUS_APPROVED if approved else ApprovalLog.STATUS_REJECTED,
        note=note,
    )
    session.add(log)
    session.flush()
    return log


def append_decision(session, request, step, caller, note=None) -> ApprovalDecision:
    decision = ApprovalDecision(
        permit_request_id=request.id,
        step_order=step.step_order,
        decider_role_id=caller.role_id,
        approved_by=caller.user_id,
        approved_at=_now(),
        decision=ApprovalDecision.DECISION_APPROVED,
        note=note,
    )
    session.add(decision)
    session.flush()
    return decision


def approved_role_ids(session, request_id: int, step_order: int) -> List[int]:
    """Distinct role ids with an approved decision at the step, first-seen order."""
    rows = session.execute(
        select(ApprovalDecision.decider_role_id)
        .where(
            ApprovalDecision.permit_request_id == request_id,
            ApprovalDecision.step_order == step_order,
            ApprovalDecision.decision == ApprovalDecision.DECISION_APPROVED,
        )
        .order_by(ApprovalDecision.id.asc())
    ).scalars()
    seen: List[int] = []
    for role_id in rows:
        if role_id not in seen:
            seen.append(role_id)
    return seen


def history(session, request_id: int):
    logs = session.execute(
        select(ApprovalLog).where(ApprovalLog.permit_request_id == request_id).order_by(ApprovalLog.id.asc())
    ).scalars().all()
    decisions = session.execute(
        select(ApprovalDecision).where(ApprovalDecision.permit_request_id == request_id).order_by(ApprovalDecision.id.asc())
    ).scalars().all()
    return {'logs': logs, 'decisions': decisions}


def _role_name(step, role_id):
    for role in step.roles:
        if role.id == role_id:
            return role.name
    return str(role_id)


__all__ = ['append_log', 'append_decision', 'approved_role_ids', 'history']
