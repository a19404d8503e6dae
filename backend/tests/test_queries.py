import pytest
from datetime import datetime, timedelta, timezone
from permit_hub.errors import ValidationFailed, NotFound
from permit_hub.models.permit_request import PermitRequest, ApprovalLog
from permit_hub.services import queries, ledger, citizens
from tests.test_utils_seed import ensure_role, create_flow
from tests.test_lifecycle_helpers import submit, decide


@pytest.fixture()
def flows(session):
    clerk = ensure_role('clerk')
    create_flow('domicile', [([clerk], 'single')])
    create_flow('business', [([clerk], 'single')])
    return clerk


def _codes(session, params):
    return [r.code for r in queries.build_request_query(session, params).all()]


def test_filters_combine(session, flows):
    a = submit('domicile', company_id=1, subdistrict_id='SD-1', ref_id='A')
    b = submit('business', company_id=1, citizen={'nik': '99', 'full_name': 'Budi'})
    c = submit('domicile', company_id=2)
    decide(c.id, flows)
    assert set(_codes(session, {'company_id': '1'})) == {a.code, b.code}
    assert _codes(session, {'company_id': '1', 'subdistrict_id': 'SD-1'}) == [a.code]
    assert _codes(session, {'status': 'approved'}) == [c.code]
    assert set(_codes(session, {'citizen_ids': f'{a.citizen_id},{b.citizen_id}'})) == {a.code, b.code, c.code}
    assert _codes(session, {'citizen_id': b.citizen_id}) == [b.code]
    assert _codes(session, {'permit_type_id': b.permit_type_id}) == [b.code]
    assert _codes(session, {'ref_id': 'A'}) == [a.code]


def test_invalid_filters_are_rejected(session, flows):
    with pytest.raises(ValidationFailed):
        _codes(session, {'status': 'lost'})
    with pytest.raises(ValidationFailed):
        _codes(session, {'company_id': 'x'})
    with pytest.raises(ValidationFailed):
        _codes(session, {'sort': 'secret'})


def test_date_range_is_inclusive_of_end_day(session, flows):
    old = submit('domicile')
    new = submit('domicile')
    row = session.get(PermitRequest, old.id)
    row.submitted_at = datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc)
    session.commit()
    assert _codes(session, {'start_date': '2024-01-10', 'end_date': '2024-01-10'}) == [old.code]
    today = datetime.now(timezone.utc).date()
    assert _codes(session, {'start_date': (today - timedelta(days=1)).isoformat()}) == [new.code]


def test_default_order_is_newest_first(session, flows):
    first = submit('domicile')
    second = submit('domicile')
    session.get(PermitRequest, first.id).submitted_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    session.commit()
    assert _codes(session, {}) == [second.code, first.code]
    assert _codes(session, {'sort': 'submitted_at'}) == [first.code, second.code]


def test_lookup_by_code_and_history(session, flows):
    pr = submit('domicile')
    decide(pr.id, flows, note='ok')
    assert queries.get_request_by_code(session, pr.code).id == pr.id
    with pytest.raises(NotFound):
        queries.get_request_by_code(session, 'MISSING1')
    entries = ledger.history(session, pr.id)
    assert [log.note for log in entries['logs']] == ['ok']
    assert len(entries['decisions']) == 1


def test_update_request_keeps_workflow_fields(session, flows):
    pr = submit('domicile', {'purpose': 'a'})
    updated = queries.update_request(session, pr.id, {'ref_id': 'R-9', 'data': {'purpose': 'b'}, 'status': 'approved'})
    assert updated.ref_id == 'R-9'
    assert updated.dynamic_data.data == {'purpose': 'b'}
    assert updated.status == 'submitted'
    with pytest.raises(ValidationFailed):
        queries.update_request(session, pr.id, {'data': ['not', 'a', 'dict']})


def test_delete_request_removes_ledger(session, flows):
    pr = submit('domicile')
    decide(pr.id, flows)
    queries.delete_request(session, pr.id)
    assert session.query(PermitRequest).count() == 0
    assert session.query(ApprovalLog).count() == 0
    with pytest.raises(NotFound):
        queries.get_request(session, pr.id)


def test_delete_citizen_takes_requests(session, flows):
    pr = submit('domicile')
    citizens.delete_citizen(session, pr.citizen_id)
    assert session.query(PermitRequest).count() == 0
