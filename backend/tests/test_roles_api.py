from permit_hub import get_db
from permit_hub.models.authz import User, Role, Permission, RolePermission, UserRole
from permit_hub.models.audit import AuditLog
from permit_hub.services.policy import compute_effective_permissions
from tests.test_utils_seed import ensure_permissions, seed_user_with_role, ensure_user


def _login(client, email, password):
    resp = client.post('/iam/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200
    return resp.get_json()['access_token']


def test_role_crud_flow(client):
    seed_user_with_role('admin@test.local', 'Administrator', ['ADMIN.ROLE.MANAGE', 'ADMIN.USER.MANAGE'])
    token = _login(client, 'admin@test.local', 'pw')
    headers = {'Authorization': f'Bearer {token}'}

    resp = client.post('/iam/roles', json={'name': 'Clerk'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    role_id = resp.get_json()['id']
    assert client.post('/iam/roles', json={'name': 'Clerk'}, headers=headers).status_code == 409
    assert client.post('/iam/roles', json={}, headers=headers).status_code == 400

    roles = client.get('/iam/roles', headers=headers).get_json()
    assert {r['name'] for r in roles['data']} == {'Administrator', 'Clerk'}
    head = client.head('/iam/roles', headers=headers)
    assert head.status_code == 200 and head.data == b''

    target = ensure_user('clerk@test.local')
    resp = client.put(f'/iam/users/{target.id}/roles', json={'role_ids': [role_id]}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'user_id': target.id, 'role_ids': [role_id]}
    assert compute_effective_permissions(target.id)['roles'] == [role_id]
    assert client.put(f'/iam/users/{target.id}/roles', json={'role_ids': [999]}, headers=headers).status_code == 400
    assert client.put('/iam/users/999/roles', json={'role_ids': []}, headers=headers).status_code == 404

    session = get_db()
    actions = {a.action for a in session.query(AuditLog).all()}
    assert actions == {'ROLE.CREATE', 'USER.ROLES.SET'}


def test_owner_role_gets_every_permission(client):
    ensure_permissions(['PERMIT.READ', 'PERMIT.DECIDE', 'ADMIN.ROLE.MANAGE'])
    session = get_db()
    owner = User(name='Owner', email='owner@test.local', password_hash='')
    owner.set_password('pw')
    role = Role(name='Owner', is_system=True, description='Owner')
    session.add_all([owner, role])
    session.flush()
    session.add(UserRole(user_id=owner.id, role_id=role.id))
    session.commit()
    eff = compute_effective_permissions(owner.id)
    assert eff['roles'] == [role.id]
    assert eff['perms'] == ['ADMIN.ROLE.MANAGE', 'PERMIT.DECIDE', 'PERMIT.READ']


def test_role_listing_requires_permission(client):
    seed_user_with_role('reader@test.local', 'Reader', ['PERMIT.READ'])
    token = _login(client, 'reader@test.local', 'pw')
    resp = client.get('/iam/roles', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Missing permission'


def test_create_role_with_permission_codes(client):
    ensure_permissions(['PERMIT.READ', 'PERMIT.DECIDE'])
    seed_user_with_role('roles@test.local', 'Administrator', ['ADMIN.ROLE.MANAGE'])
    headers = {'Authorization': f"Bearer {_login(client, 'roles@test.local', 'pw')}"}
    resp = client.post('/iam/roles', json={'name': 'Head', 'description': 'Village head',
                                           'permissions': ['PERMIT.READ', 'PERMIT.DECIDE']}, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['permissions'] == ['PERMIT.DECIDE', 'PERMIT.READ']
    assert body['description'] == 'Village head'
    bad = client.post('/iam/roles', json={'name': 'Ghost', 'permissions': ['PERMIT.FLY']}, headers=headers)
    assert bad.status_code == 400
    assert 'PERMIT.FLY' in bad.get_json()['error']['detail']
    assert get_db().query(Role).filter_by(name='Ghost').count() == 0
