from permit_hub.errors import StateConflict
from permit_hub.services.evaluator import REQUEST_FSM
from permit_hub.utils.fsm import TransitionValidator
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(StateConflict):
        fsm.assert_can_transition('A', 'C')


def test_request_lifecycle_terminal_states():
    assert REQUEST_FSM.is_terminal('approved')
    assert REQUEST_FSM.is_terminal('rejected')
    assert not REQUEST_FSM.is_terminal('submitted')
    assert REQUEST_FSM.assert_can_transition('in_progress', 'in_progress')
    with pytest.raises(StateConflict):
        REQUEST_FSM.assert_can_transition('approved', 'in_progress')
    with pytest.raises(StateConflict):
        REQUEST_FSM.assert_can_transition('rejected', 'approved')


def test_transitions_documented(client):
    # The OpenAPI spec lists the request lifecycle states
    body = client.get('/openapi.json').get_json()
    schema = body['components']['schemas']['PermitRequest']
    assert 'x-transitions' in schema
    assert set(schema['x-transitions']) == set(REQUEST_FSM.states())
