import pytest
from flask import Flask
from permit_hub import get_db
from permit_hub.models.audit import AuditLog
from tests.test_utils_seed import ensure_role, ensure_permissions, ensure_user
from tests.test_lifecycle_helpers import jwt_headers, submit


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


PERMS = ['PERMIT.READ', 'PERMIT.MANAGE']


def _headers():
    ensure_permissions(PERMS)
    u = ensure_user('catalog_admin@example.com')
    return jwt_headers(u.id, PERMS)


def test_permit_type_lifecycle(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    clerk = ensure_role('clerk')
    head = ensure_role('head')

    resp = client.post('/catalog/permit-types', json={
        'slug': 'domicile', 'name': 'Domicile',
        'fields': [{'field_key': 'purpose', 'field_label': 'Purpose', 'is_required': True}],
        'steps': [{'role_ids': [clerk.id]}],
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    pt = resp.get_json()
    assert [f['field_key'] for f in pt['fields']] == ['purpose']
    assert [s['step_order'] for s in pt['steps']] == [0]
    pid = pt['id']

    dup = client.post('/catalog/permit-types', json={'slug': 'domicile', 'name': 'Again'}, headers=headers)
    assert dup.status_code == 409
    assert client.post('/catalog/permit-types', json={'name': 'No slug'}, headers=headers).status_code == 400

    step = client.post(f'/catalog/permit-types/{pid}/steps', json={'role_ids': [head.id], 'approval_mode': 'all'}, headers=headers)
    assert step.status_code == 201
    assert step.get_json()['step_order'] == 1
    last = client.get(f'/catalog/permit-types/{pid}/steps/last', headers=headers).get_json()['data']
    assert (last['step_order'], last['approval_mode']) == (1, 'all')
    assert client.post(f'/catalog/permit-types/{pid}/steps', json={'step_order': 1, 'role_ids': [head.id]}, headers=headers).status_code == 409

    updated = client.put(f'/catalog/permit-types/{pid}', json={'name': 'Domicile Letter'}, headers=headers)
    assert updated.get_json()['name'] == 'Domicile Letter'

    by_slug = client.get('/catalog/permit-types/slug/domicile', headers=headers)
    assert by_slug.status_code == 200
    assert len(by_slug.get_json()['steps']) == 2

    assert client.delete(f"/catalog/steps/{step.get_json()['id']}", headers=headers).status_code == 200
    assert client.get(f'/catalog/permit-types/{pid}/steps', headers=headers).get_json()['data'][0]['roles'][0]['name'] == 'clerk'

    assert client.delete(f'/catalog/permit-types/{pid}', headers=headers).status_code == 200
    assert client.get(f'/catalog/permit-types/{pid}', headers=headers).status_code == 404

    actions = [a.action for a in get_db().query(AuditLog).order_by(AuditLog.id.asc())]
    assert actions == ['PERMIT_TYPE.CREATE', 'STEP.CREATE', 'PERMIT_TYPE.UPDATE', 'STEP.DELETE', 'PERMIT_TYPE.DELETE']


def test_last_step_of_empty_type_is_null(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    pid = client.post('/catalog/permit-types', json={'slug': 'empty', 'name': 'Empty'}, headers=headers).get_json()['id']
    assert client.get(f'/catalog/permit-types/{pid}/steps/last', headers=headers).get_json() == {'data': None}
    assert client.get('/catalog/permit-types/999/steps/last', headers=headers).status_code == 404


def test_delete_type_with_open_request_conflicts(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    clerk = ensure_role('clerk')
    pid = client.post('/catalog/permit-types', json={'slug': 'domicile', 'name': 'Domicile', 'steps': [{'role_ids': [clerk.id]}]}, headers=headers).get_json()['id']
    submit('domicile')
    resp = client.delete(f'/catalog/permit-types/{pid}', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['title'] == 'State Conflict'


def test_fields_move_and_delete(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    pid = client.post('/catalog/permit-types', json={'slug': 'domicile', 'name': 'Domicile'}, headers=headers).get_json()['id']
    ids = []
    for key in ('a', 'b', 'c'):
        r = client.post(f'/catalog/permit-types/{pid}/fields', json={'field_key': key, 'field_label': key.upper()}, headers=headers)
        assert r.status_code == 201
        ids.append(r.get_json()['id'])
    moved = client.post(f'/catalog/fields/{ids[0]}/move-down', headers=headers).get_json()
    assert moved['display_order'] == 1
    assert client.delete(f'/catalog/fields/{ids[1]}', headers=headers).status_code == 200
    fields = client.get(f'/catalog/permit-types/{pid}', headers=headers).get_json()['fields']
    assert [(f['field_key'], f['display_order']) for f in fields] == [('a', 0), ('c', 1)]
    bad = client.put(f'/catalog/fields/{ids[0]}', json={'field_type': 'hologram'}, headers=headers)
    assert bad.status_code == 400


def test_requirements_with_mandatory_flag(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    pid = client.post('/catalog/permit-types', json={'slug': 'domicile', 'name': 'Domicile'}, headers=headers).get_json()['id']
    req = client.post('/catalog/requirements', json={'code': 'KTP', 'name': 'Identity card'}, headers=headers)
    assert req.status_code == 201
    rid = req.get_json()['id']
    link = client.put(f'/catalog/permit-types/{pid}/requirements/{rid}', json={'is_mandatory': True}, headers=headers)
    assert link.get_json() == {'permit_type_id': pid, 'requirement_id': rid, 'is_mandatory': True}
    pt = client.get(f'/catalog/permit-types/{pid}', headers=headers).get_json()
    assert pt['requirements'][0]['code'] == 'KTP'
    assert pt['requirements'][0]['is_mandatory'] is True
    listing = client.get('/catalog/requirements?code=KTP', headers=headers).get_json()
    assert listing['pagination']['returned'] == 1
    assert client.delete(f'/catalog/permit-types/{pid}/requirements/{rid}', headers=headers).status_code == 200
    assert client.delete(f'/catalog/permit-types/{pid}/requirements/{rid}', headers=headers).status_code == 404


def test_listing_head_and_etag(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    for slug in ('b-permit', 'a-permit'):
        client.post('/catalog/permit-types', json={'slug': slug, 'name': slug}, headers=headers)
    listed = client.get('/catalog/permit-types?sort=slug', headers=headers)
    assert [p['slug'] for p in listed.get_json()['data']] == ['a-permit', 'b-permit']
    cached = client.get('/catalog/permit-types?sort=slug', headers={**headers, 'If-None-Match': listed.headers['ETag']})
    assert cached.status_code == 304
    head = client.head('/catalog/permit-types', headers=headers)
    assert head.status_code == 200 and head.data == b''
    assert client.get('/catalog/permit-types?sort=-secret', headers=headers).status_code == 400


def test_manage_permission_required(app_context: Flask):
    client = app_context.test_client()
    ensure_permissions(['PERMIT.READ'])
    u = ensure_user('reader@example.com')
    headers = jwt_headers(u.id, ['PERMIT.READ'])
    resp = client.post('/catalog/permit-types', json={'slug': 'x', 'name': 'X'}, headers=headers)
    assert resp.status_code == 403
    assert client.get('/catalog/permit-types', headers=headers).status_code == 200
    assert client.get('/catalog/permit-types').status_code == 401


def test_templates(app_context: Flask):
    client = app_context.test_client()
    headers = _headers()
    created = client.post('/catalog/templates', json={'name': 'Letter', 'slug': 'letter'}, headers=headers)
    assert created.status_code == 201
    assert client.post('/catalog/templates', json={'name': 'Letter', 'slug': 'letter'}, headers=headers).status_code == 409
    listed = client.get('/catalog/templates', headers=headers).get_json()
    assert [t['slug'] for t in listed['data']] == ['letter']
