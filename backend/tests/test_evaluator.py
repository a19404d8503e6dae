import threading
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from permit_hub.errors import PermitHubError, Unauthorised, StateConflict, NotFound, InvariantBroken
from permit_hub.models.permit_request import PermitRequest, ApprovalLog, ApprovalDecision, FinalDocument, RegisterCounter
from permit_hub.models import Base
from permit_hub.models.authz import Role
from permit_hub.models.permit_type import ApprovalStep
from permit_hub.services import queries
from permit_hub.services.policy import Caller
from permit_hub.services import evaluator, catalog, intake
from tests.test_utils_seed import ensure_role, create_flow
from tests.test_lifecycle_helpers import submit, decide, caller_for, DEFAULT_CITIZEN

PURPOSE = {'field_key': 'purpose', 'field_label': 'purpose', 'field_type': 'text', 'is_required': True}


def _counts(session, request_id):
    logs = session.query(ApprovalLog).filter_by(permit_request_id=request_id).count()
    decisions = session.query(ApprovalDecision).filter_by(permit_request_id=request_id).count()
    return logs, decisions


def _state(session, request_id):
    pr = queries.get_request(session, request_id)
    return pr.status, pr.current_step


def test_single_mode_two_step_happy_path(session):
    clerk = ensure_role('clerk')
    head = ensure_role('head')
    create_flow('domicile', [([clerk], 'single'), ([head], 'single')], fields=[PURPOSE])
    pr = submit('domicile', {'purpose': 'open shop'})
    assert (pr.status, pr.current_step) == ('submitted', 0)
    assert [r.id for r in pr.current_step_roles] == [clerk.id]

    outcome = decide(pr.id, clerk)
    assert outcome.advanced is True
    assert _state(session, pr.id) == ('in_progress', 1)
    assert [r.id for r in queries.get_request(session, pr.id).current_step_roles] == [head.id]

    outcome = decide(pr.id, head)
    assert (outcome.status, outcome.current_step) == ('approved', 1)
    done = queries.get_request(session, pr.id)
    assert done.approved_at is not None
    assert done.register_number and done.register_number.startswith('DOMICILE/00001/')
    assert done.current_step_roles == []
    assert session.query(FinalDocument).filter_by(permit_request_id=pr.id).count() == 1
    assert _counts(session, pr.id) == (2, 2)


def test_all_mode_waits_for_every_role(session):
    health = ensure_role('health')
    fire = ensure_role('fire')
    create_flow('restaurant', [([health, fire], 'all')])
    pr = submit('restaurant')

    outcome = decide(pr.id, health)
    assert outcome.advanced is False
    assert _state(session, pr.id) == ('submitted', 0)
    assert _counts(session, pr.id) == (1, 1)

    outcome = decide(pr.id, fire)
    assert outcome.advanced is True
    assert _state(session, pr.id)[0] == 'approved'


def test_unauthorised_role_leaves_no_trace(session):
    clerk = ensure_role('clerk')
    citizen_role = ensure_role('citizen')
    create_flow('domicile', [([clerk], 'single')])
    pr = submit('domicile')
    with pytest.raises(Unauthorised):
        decide(pr.id, citizen_role)
    assert _counts(session, pr.id) == (0, 0)
    assert _state(session, pr.id) == ('submitted', 0)


def test_caller_without_role_is_unauthorised(session):
    clerk = ensure_role('clerk')
    create_flow('domicile', [([clerk], 'single')])
    pr = submit('domicile')
    with pytest.raises(Unauthorised):
        evaluator.decide(session, pr.id, Caller(user_id=1, role_id=None), None, True)


def test_rejection_is_final(session):
    clerk = ensure_role('clerk')
    head = ensure_role('head')
    mayor = ensure_role('mayor')
    create_flow('building', [([clerk], 'single'), ([head], 'single'), ([mayor], 'single')])
    pr = submit('building')
    decide(pr.id, clerk)
    logs_before, decisions_before = _counts(session, pr.id)

    outcome = decide(pr.id, head, approved=False, note='missing ID')
    assert outcome.advanced is False
    assert _state(session, pr.id) == ('rejected', 1)
    logs, decisions = _counts(session, pr.id)
    assert (logs, decisions) == (logs_before + 1, decisions_before)
    last = session.query(ApprovalLog).filter_by(permit_request_id=pr.id).order_by(ApprovalLog.id.desc()).first()
    assert last.status == 'rejected'
    assert last.note == 'missing ID'
    assert last.step_role_id == head.id
    assert queries.get_request(session, pr.id).approved_at is None

    with pytest.raises(StateConflict):
        decide(pr.id, mayor)
    assert _counts(session, pr.id) == (logs, decisions)
    assert _state(session, pr.id) == ('rejected', 1)


def test_repeated_all_mode_approval_counts_once(session):
    a = ensure_role('survey')
    b = ensure_role('legal')
    create_flow('land', [([a, b], 'all')])
    pr = submit('land')
    assert decide(pr.id, a).advanced is False
    assert decide(pr.id, a, user_id=2).advanced is False
    assert _counts(session, pr.id) == (2, 2)
    assert _state(session, pr.id) == ('submitted', 0)
    assert decide(pr.id, b).advanced is True
    assert _state(session, pr.id)[0] == 'approved'


def test_single_mode_advances_on_first_of_many_roles(session):
    clerk = ensure_role('clerk')
    deputy = ensure_role('deputy')
    head = ensure_role('head')
    create_flow('event', [([clerk, deputy], 'single'), ([head], 'single')])
    pr = submit('event')
    outcome = decide(pr.id, deputy)
    assert outcome.advanced is True
    assert _state(session, pr.id) == ('in_progress', 1)


def test_decided_request_never_moves_backwards(session):
    roles = [ensure_role(f'r{i}') for i in range(3)]
    create_flow('chain', [([r], 'single') for r in roles])
    pr = submit('chain')
    seen = [_state(session, pr.id)]
    for role in roles:
        decide(pr.id, role)
        seen.append(_state(session, pr.id))
    steps = [s for _, s in seen]
    assert steps == sorted(steps)
    assert seen[-1] == ('approved', 2)
    with pytest.raises(StateConflict):
        decide(pr.id, roles[-1])
    assert _state(session, pr.id) == ('approved', 2)


def test_every_decision_is_logged_with_decider_and_note(session):
    clerk = ensure_role('clerk')
    create_flow('domicile', [([clerk], 'single')])
    pr = submit('domicile')
    decide(pr.id, clerk, note='checked', user_id=42)
    log = session.query(ApprovalLog).filter_by(permit_request_id=pr.id).one()
    assert (log.status, log.note, log.approved_by, log.step_role_id, log.step) == ('approved', 'checked', 42, clerk.id, 'clerk')
    decision = session.query(ApprovalDecision).filter_by(permit_request_id=pr.id).one()
    step = session.query(ApprovalStep).filter_by(permit_type_id=pr.permit_type_id, step_order=decision.step_order).one()
    assert decision.decider_role_id in step.role_ids


def test_unknown_request_is_not_found(session):
    clerk = ensure_role('clerk')
    with pytest.raises(NotFound):
        evaluator.decide(session, 9999, caller_for(clerk), None, True)


def test_missing_current_step_is_an_invariant_violation(session):
    clerk = ensure_role('clerk')
    create_flow('domicile', [([clerk], 'single')])
    pr = submit('domicile')
    row = session.get(PermitRequest, pr.id)
    row.current_step = 7
    session.commit()
    with pytest.raises(InvariantBroken):
        decide(pr.id, clerk)
    assert _counts(session, pr.id) == (0, 0)


def test_quorum_helper_reads_distinct_roles(session):
    a = ensure_role('survey')
    b = ensure_role('legal')
    create_flow('land', [([a, b], 'all')])
    pr = submit('land')
    decide(pr.id, a)
    step = evaluator.current_step_of(session, queries.get_request(session, pr.id))
    assert evaluator.quorum_met(session, pr, step) is False


# ---------------- Concurrent decisions on a file database ---------------- #
@pytest.fixture()
def file_sessions(tmp_path, app_context):
    """Session factory over a file SQLite database that several threads can share."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}", future=True,
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    engine.dispose()


def _seed_race(factory, slug, steps):
    """Create roles, a flow of (role names, mode) steps and one submitted request."""
    session = factory()
    try:
        roles = {}
        for names, _ in steps:
            for name in names:
                roles.setdefault(name, Role(name=name, is_system=False, description=name))
        session.add_all(roles.values())
        session.commit()
        catalog.create_permit_type(session, {
            'slug': slug,
            'name': slug.title(),
            'fields': [],
            'steps': [{'role_ids': [roles[n].id for n in names], 'approval_mode': mode} for names, mode in steps],
        })
        pr = intake.create_permit_request(session, DEFAULT_CITIZEN, slug, {})
        return roles, pr.id
    finally:
        session.close()


def _decide_concurrently(monkeypatch, factory, request_id, callers):
    """Run decide once per caller, each in its own thread and session.

    Every thread has read the request and its step before any of them writes.
    A re-evaluation after a lost version check does not wait again.
    """
    barrier = threading.Barrier(len(callers), timeout=10)
    real_step_of = evaluator.current_step_of
    waited = set()

    def step_then_wait(session, request):
        step = real_step_of(session, request)
        if threading.get_ident() not in waited:
            waited.add(threading.get_ident())
            barrier.wait()
        return step

    monkeypatch.setattr(evaluator, 'current_step_of', step_then_wait)
    outcomes, rejected, failures = [], [], []

    def run(caller):
        session = factory()
        try:
            outcomes.append(evaluator.decide(session, request_id, caller, None, True))
        except PermitHubError as exc:
            rejected.append(exc)
        except Exception as exc:  # surfaced by the assertion below
            failures.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=run, args=(c,)) for c in callers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(60)
    assert not failures, failures
    return outcomes, rejected


def _race_counts(session, request_id):
    logs = session.query(ApprovalLog).filter_by(permit_request_id=request_id).count()
    decisions = session.query(ApprovalDecision).filter_by(permit_request_id=request_id).count()
    finals = session.query(FinalDocument).filter_by(permit_request_id=request_id).count()
    return logs, decisions, finals


def test_racing_final_approvals_finalise_once(file_sessions, monkeypatch):
    roles, request_id = _seed_race(file_sessions, 'domicile', [(['clerk', 'deputy'], 'single')])
    callers = [
        Caller(user_id=1, role_id=roles['clerk'].id, role_name='clerk'),
        Caller(user_id=2, role_id=roles['deputy'].id, role_name='deputy'),
    ]
    outcomes, rejected = _decide_concurrently(monkeypatch, file_sessions, request_id, callers)
    assert [(o.advanced, o.status) for o in outcomes] == [(True, 'approved')]
    assert [type(e) for e in rejected] == [StateConflict]

    session = file_sessions()
    try:
        assert _race_counts(session, request_id) == (1, 1, 1)
        assert session.query(RegisterCounter).one().last_value == 1
        done = session.get(PermitRequest, request_id)
        assert done.register_number.startswith('DOMICILE/00001/')
    finally:
        session.close()


def test_simultaneous_distinct_roles_on_all_mode_step_advance_once(file_sessions, monkeypatch):
    roles, request_id = _seed_race(
        file_sessions, 'restaurant', [(['health', 'fire'], 'all'), (['head'], 'single')],
    )
    callers = [
        Caller(user_id=1, role_id=roles['health'].id, role_name='health'),
        Caller(user_id=2, role_id=roles['fire'].id, role_name='fire'),
    ]
    outcomes, rejected = _decide_concurrently(monkeypatch, file_sessions, request_id, callers)
    # the later call sees the earlier decision and is the one that satisfies the step
    assert sorted(o.advanced for o in outcomes) == [False, True]
    assert rejected == []

    session = file_sessions()
    try:
        pr = session.get(PermitRequest, request_id)
        assert (pr.status, pr.current_step) == ('in_progress', 1)
        assert [r.id for r in pr.current_step_roles] == [roles['head'].id]
        assert _race_counts(session, request_id) == (2, 2, 0)
    finally:
        session.close()


def test_same_role_officers_racing_on_all_mode_step_advance_once(file_sessions, monkeypatch):
    roles, request_id = _seed_race(
        file_sessions, 'restaurant', [(['health', 'fire'], 'all'), (['head'], 'single')],
    )
    first = file_sessions()
    try:
        outcome = evaluator.decide(first, request_id, Caller(user_id=1, role_id=roles['health'].id), None, True)
        assert outcome.advanced is False
    finally:
        first.close()

    # two officers holding the last missing role approve at the same moment;
    # the later one finds the request already on the head step
    callers = [Caller(user_id=uid, role_id=roles['fire'].id, role_name='fire') for uid in (7, 8)]
    outcomes, rejected = _decide_concurrently(monkeypatch, file_sessions, request_id, callers)
    assert [o.advanced for o in outcomes] == [True]
    assert [type(e) for e in rejected] == [Unauthorised]

    session = file_sessions()
    try:
        pr = session.get(PermitRequest, request_id)
        assert (pr.status, pr.current_step) == ('in_progress', 1)
        assert _race_counts(session, request_id) == (2, 2, 0)
    finally:
        session.close()
