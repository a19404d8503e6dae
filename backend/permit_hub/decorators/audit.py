"""Audit logging decorator for administrative route handlers.

Usage examples:

@audit_log('PERMIT_TYPE.CREATE', entity='PermitType', entity_id_key='id', meta_keys=['slug'])
def create_permit_type():
    ... return {'id': pt.id, 'slug': pt.slug}, 201

@audit_log('STEP.DELETE', entity='ApprovalStep', entity_id_arg='step_id')
def delete_step(step_id): ...

Parameters:
  action: required audit action code (e.g. PERMIT_TYPE.CREATE)
  entity: optional entity label (PermitType, ApprovalStep, Requirement)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). If provided it overrides meta_keys.

Only successful handlers are audited: an exception raised by the handler propagates
untouched and nothing is recorded. The audit row is written in its own commit after
the handler's service call has committed, so a failing audit write is logged and
never turns a completed mutation into an error response.
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from permit_hub.services.audit import add_audit
from permit_hub import get_db

logger = logging.getLogger(__name__)


def _body(rv: Any):
    """JSON body of a Flask return value: a dict, or the first item of a (body, status) tuple."""
    if isinstance(rv, tuple) and rv:
        rv = rv[0]
    return rv if isinstance(rv, dict) else None


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            body = _body(rv) or {}
            entity_id = body.get(entity_id_key) if entity_id_key else None
            if entity_id is None and entity_id_arg:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(body, rv, args, kwargs)
            else:
                meta = {k: body[k] for k in (meta_keys or ()) if k in body}
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error('audit %s for %s %s not recorded: %s', action, entity, entity_id, exc)
            return rv
        return wrapper
    return outer
