from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, get_jwt
from permit_hub.models.authz import User, Role, UserRole, Permission, RolePermission
from permit_hub.models.audit import AuditLog
from sqlalchemy import select, delete
from permit_hub import get_db
from permit_hub.services.policy import compute_effective_permissions
from permit_hub.utils.listing import paged_response
from permit_hub.utils.filters import apply_filters
from permit_hub.decorators.audit import audit_log
from permit_hub.decorators.auth import require_permissions
from permit_hub.errors import NotFound, StateConflict, ValidationFailed
from permit_hub.utils.validation import require_keys, coerce_int

iam_bp = Blueprint('iam', __name__)


def _role_json(r: Role):
    return {'id': r.id, 'name': r.name, 'is_system': r.is_system, 'description': r.description, 'permissions': r.permission_codes}


def _list_roles_response(head: bool = False):
    q = get_db().query(Role).order_by(Role.id.asc())
    return paged_response(q, _role_json, Role.updated_at, head=head)


@iam_bp.get('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
def list_roles():
    return _list_roles_response()


@iam_bp.route('/roles', methods=['HEAD'])
@require_permissions('ADMIN.ROLE.MANAGE')
def head_roles():
    return _list_roles_response(head=True)


@iam_bp.post('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name', 'permissions'])
def create_role():
    """Create an approver role, optionally granting permission codes in the same call."""
    data = request.json or {}
    require_keys(data, 'name')
    session = get_db()
    name = str(data['name']).strip()
    if session.execute(select(Role.id).where(Role.name == name)).first():
        raise StateConflict(f'role {name} exists')
    codes = sorted(set(data.get('permissions') or []))
    perms = session.execute(select(Permission).where(Permission.code.in_(codes))).scalars().all() if codes else []
    unknown = set(codes) - {p.code for p in perms}
    if unknown:
        raise ValidationFailed(f'unknown permission codes: {sorted(unknown)}', field='permissions')
    role = Role(name=name, is_system=False, description=data.get('description'))
    role.permissions = [RolePermission(permission=p) for p in perms]
    session.add(role)
    session.commit()
    return _role_json(role), 201


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.ROLES.SET', entity='User', entity_id_key='user_id', meta_keys=['role_ids'])
def set_user_roles(user_id: int):
    """Replace the user's roles. Takes effect on the user's next login."""
    session = get_db()
    if session.get(User, user_id) is None:
        raise NotFound(f'user {user_id} not found')
    raw = (request.json or {}).get('role_ids') or []
    if not isinstance(raw, list):
        raise ValidationFailed('role_ids must be a list', field='role_ids')
    role_ids = {coerce_int(r, 'role_ids') for r in raw} - {None}
    found = set(session.execute(select(Role.id).where(Role.id.in_(role_ids))).scalars()) if role_ids else set()
    if role_ids - found:
        raise ValidationFailed(f'unknown role ids: {sorted(role_ids - found)}', field='role_ids')
    session.execute(delete(UserRole).where(UserRole.user_id == user_id))
    session.add_all(UserRole(user_id=user_id, role_id=rid) for rid in sorted(role_ids))
    session.commit()
    return {'user_id': user_id, 'role_ids': sorted(role_ids)}


def _acting_role(session, role_ids, requested):
    """Pick the role the caller decides with: the requested one if held, else the lowest id."""
    if requested is not None:
        try:
            requested = int(requested)
        except (TypeError, ValueError):
            abort(400, description='role_id must be int')
        if requested not in role_ids:
            abort(403, description='role not assigned to user')
        chosen = requested
    elif role_ids:
        chosen = role_ids[0]
    else:
        return None, None
    role = session.get(Role, chosen)
    return chosen, role.name if role else None


@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    eff = compute_effective_permissions(user.id)
    role_id, role_name = _acting_role(session, eff['roles'], data.get('role_id'))
    claims = {
        'roles': eff['roles'],
        'role_id': role_id,
        'role_name': role_name,
        'perms': eff['perms'],
        'company_id': user.company_id,
        'subdistrict_id': user.subdistrict_id,
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    # Identity stored as string, cast back to int for DB lookup
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    eff = compute_effective_permissions(user.id)
    claims = get_jwt()
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'roles': eff['roles'],
        'role_id': claims.get('role_id'),
        'role_name': claims.get('role_name'),
        'perms': eff['perms'],
        'company_id': user.company_id,
        'subdistrict_id': user.subdistrict_id,
    }


# --- Audit Log Listing ---

def _audit_json(r: AuditLog):
    return {
        'id': r.id,
        'actor_user_id': r.actor_user_id,
        'actor_role_id': r.actor_role_id,
        'subdistrict_id': r.subdistrict_id,
        'action': r.action,
        'entity': r.entity,
        'entity_id': r.entity_id,
        'meta': r.meta,
        'created_at': r.created_at.isoformat() if r.created_at else None
    }


@iam_bp.get('/audit/logs')
@require_permissions('ADMIN.SETTINGS.MANAGE')
def list_audit_logs():
    session = get_db()
    q = session.query(AuditLog)
    specs = {
        'actor_user_id': {'coerce': int, 'op': lambda qu, v: qu.filter(AuditLog.actor_user_id==v)},
        'action': {'op': lambda qu, v: qu.filter(AuditLog.action==v)},
        'entity': {'op': lambda qu, v: qu.filter(AuditLog.entity==v)},
        'entity_id': {'op': lambda qu, v: qu.filter(AuditLog.entity_id==v)},
    }
    q = apply_filters(q, specs, request.args).order_by(AuditLog.id.desc())
    return paged_response(q, _audit_json, AuditLog.created_at)
