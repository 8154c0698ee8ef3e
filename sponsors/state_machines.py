"""
Transition tables for the independent status axes of a pipeline record.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable

from .exceptions import IllegalTransition


@dataclass(frozen=True)
class StateMachine:
    axis: str
    transitions: Dict[str, FrozenSet[str]]

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.transitions)

    def can_transition(self, old: str, new: str) -> bool:
        if new not in self.transitions:
            return False
        if old == new:
            return True
        return new in self.transitions.get(old, frozenset())

    def ensure(self, old: str, new: str) -> None:
        if not self.can_transition(old, new):
            raise IllegalTransition(self.axis, old, new)

    def targets(self, old: str) -> FrozenSet[str]:
        return self.transitions.get(old, frozenset())


def _table(rows: Dict[str, Iterable[str]]) -> Dict[str, FrozenSet[str]]:
    return {state: frozenset(targets) for state, targets in rows.items()}


# Sales stages move freely between open stages (board drag and drop).
# closed-won can only be reopened into negotiation.
SALES_STATUS = StateMachine('status', _table({
    'prospect': ['contacted', 'negotiating', 'closed-won', 'closed-lost'],
    'contacted': ['prospect', 'negotiating', 'closed-won', 'closed-lost'],
    'negotiating': ['prospect', 'contacted', 'closed-won', 'closed-lost'],
    'closed-won': ['negotiating'],
    'closed-lost': ['prospect', 'contacted', 'negotiating'],
}))

# Forward only, plus resets back to an earlier state before signing.
CONTRACT_STATUS = StateMachine('contract_status', _table({
    'none': ['verbal-agreement', 'contract-sent'],
    'verbal-agreement': ['contract-sent', 'none'],
    'contract-sent': ['contract-signed', 'verbal-agreement', 'none'],
    'contract-signed': [],
}))

# Driven by the signing provider; signed is terminal.
SIGNATURE_STATUS = StateMachine('signature_status', _table({
    'not-started': ['pending'],
    'pending': ['signed', 'rejected', 'expired'],
    'rejected': ['pending'],
    'expired': ['pending'],
    'signed': [],
}))

INVOICE_STATUS = StateMachine('invoice_status', _table({
    'not-sent': ['sent'],
    'sent': ['paid', 'overdue', 'not-sent'],
    'overdue': ['paid', 'sent'],
    'paid': [],
}))

MACHINES: Dict[str, StateMachine] = {
    m.axis: m for m in (SALES_STATUS, CONTRACT_STATUS, SIGNATURE_STATUS, INVOICE_STATUS)
}


def ensure_transition(axis: str, old: str, new: str) -> None:
    MACHINES[axis].ensure(old, new)
