"""
Workflow types -- pure value objects for order state machines.

Guard, Transition and Workflow are defined once here and instantiated by
each order module.  ``Workflow.transition_for`` is the single place that
decides whether an action is legal from a status.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """
    A named precondition documented on a transition.

    Workflow never evaluates guards.  The owning service performs the check
    and raises its own error; each workflows module lists where.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``affects_ledger=True`` marks transitions that write stock, debt or cash
    rows; after one has fired the order is append-only.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    affects_ledger: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an order lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state"
                )

    def transition_for(
        self, from_state: str, action: str, to_state: str | None = None
    ) -> Transition | None:
        """First transition for ``action`` out of ``from_state`` (into ``to_state`` if given)."""
        for t in self.transitions:
            if t.from_state != from_state or t.action != action:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None

    def allowed_actions(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)
