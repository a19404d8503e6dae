from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity, get_jwt
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from permit_hub import get_db
from permit_hub.models.audit import AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = 0


def _actor() -> Dict[str, Any]:
    """User id, acting role and subdistrict of the JWT caller, or the system actor."""
    try:
        claims = get_jwt() or {}
        ident = get_jwt_identity()
    except (RuntimeError, KeyError, JWTExtendedException, PyJWTError):
        return {'actor_user_id': SYSTEM_ACTOR, 'actor_role_id': None, 'subdistrict_id': None}
    return {
        'actor_user_id': int(ident) if ident is not None else SYSTEM_ACTOR,
        'actor_role_id': claims.get('role_id'),
        'subdistrict_id': claims.get('subdistrict_id'),
    }


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit row in the current session; the caller commits.

    action is a short code such as PERMIT_TYPE.CREATE, STEP.DELETE or USER.ROLES.SET.
    """
    actor = _actor()
    if actor['actor_user_id'] == SYSTEM_ACTOR:
        logger.debug('audit %s recorded for system actor', action)
    log = AuditLog(
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
        **actor,
    )
    get_db().add(log)
    return log
