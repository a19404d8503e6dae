"""Simple finite state machine utility for enforcing allowed status transitions.

Used for the permit request lifecycle.
Usage:
    from permit_hub.utils.fsm import TransitionValidator
    REQUEST_FSM = TransitionValidator({
        'submitted': {'in_progress', 'approved', 'rejected'},
        'approved': set(),
    })
    REQUEST_FSM.assert_can_transition(current_status, target_status)

Raises StateConflict if invalid.
"""
from __future__ import annotations
from typing import Dict, Set
from permit_hub.errors import StateConflict

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def assert_can_transition(self, current: str, target: str):
        allowed = self.graph.get(current, set())
        if target not in allowed:
            raise StateConflict(f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def states(self):
        return list(self.graph.keys())

__all__ = ['TransitionValidator']
