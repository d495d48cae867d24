"""
Transaction workflows (``commerce_kernel.domain.workflow``).

Responsibility
--------------
One frozen ``Workflow`` per transaction kind: its states, legal transitions,
the states a transaction may be created in, the states in which it may be
edited or deleted, the counterparty role it requires, its default document
prefix and the direction its lines move stock.

The transaction kind is a tag on a single record type.  All kind-specific
behaviour is looked up here, never dispatched through subclasses.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states`` and of ``creation_states``.
* Terminal states have no outgoing transitions.
* ``ensure_*`` helpers raise before any write so nothing partially applies.

Transition tables
-----------------
quotation: pending -> approved | rejected; approved -> converted | rejected;
           rejected -> pending; converted is terminal.
sale:      pending -> invoiced -> paid; forward only.
purchase:  pending -> received | rejected; both terminal.
"""

from __future__ import annotations

from dataclasses import dataclass

from commerce_kernel.domain.values import ContactRole, TransactionKind, TransactionStatus
from commerce_kernel.exceptions import (
    IllegalTransitionError,
    InvalidInputError,
    InvalidStateError,
)

_S = TransactionStatus


@dataclass(frozen=True)
class Transition:
    """A legal status change.

    ``stock_effect`` multiplies line quantities when the transition fires
    (0 means stock is untouched).
    """

    from_state: str
    to_state: str
    action: str
    stock_effect: int = 0


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one transaction kind."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...]
    creation_states: tuple[str, ...]
    editable_states: tuple[str, ...]
    deletable_states: tuple[str, ...]
    counterparty_role: ContactRole
    document_prefix: str
    # Sign applied to line quantities on create (and reversed on delete).
    stock_direction: int = 0

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} unknown")
        if self.initial_state not in self.creation_states:
            raise ValueError(f"{self.name}: initial state must be a creation state")
        for transition in self.transitions:
            if transition.from_state not in self.states:
                raise ValueError(f"{self.name}: unknown state {transition.from_state}")
            if transition.to_state not in self.states:
                raise ValueError(f"{self.name}: unknown state {transition.to_state}")
            if transition.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {transition.from_state} has transitions"
                )

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(
            t.to_state for t in self.transitions if t.from_state == from_state
        )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find_transition(from_state, to_state) is not None

    def is_editable(self, state: str) -> bool:
        return state in self.editable_states

    def is_deletable(self, state: str) -> bool:
        return state in self.deletable_states


QUOTATION_WORKFLOW = Workflow(
    name=TransactionKind.QUOTATION.value,
    description="Quotation offered to a customer; may be converted into a sale",
    initial_state=_S.PENDING.value,
    states=(
        _S.PENDING.value,
        _S.APPROVED.value,
        _S.REJECTED.value,
        _S.CONVERTED.value,
    ),
    transitions=(
        Transition(_S.PENDING.value, _S.APPROVED.value, "approve"),
        Transition(_S.PENDING.value, _S.REJECTED.value, "reject"),
        Transition(_S.APPROVED.value, _S.CONVERTED.value, "convert"),
        Transition(_S.APPROVED.value, _S.REJECTED.value, "reject"),
        Transition(_S.REJECTED.value, _S.PENDING.value, "reopen"),
    ),
    terminal_states=(_S.CONVERTED.value,),
    creation_states=(_S.PENDING.value,),
    editable_states=(_S.PENDING.value,),
    deletable_states=(_S.PENDING.value,),
    counterparty_role=ContactRole.CUSTOMER,
    document_prefix="COT",
    stock_direction=0,
)

SALE_WORKFLOW = Workflow(
    name=TransactionKind.SALE.value,
    description="Sale to a customer; stock leaves on creation",
    initial_state=_S.PENDING.value,
    states=(
        _S.PENDING.value,
        _S.INVOICED.value,
        _S.PAID.value,
    ),
    transitions=(
        Transition(_S.PENDING.value, _S.INVOICED.value, "invoice"),
        Transition(_S.INVOICED.value, _S.PAID.value, "pay"),
    ),
    terminal_states=(_S.PAID.value,),
    creation_states=(_S.PENDING.value, _S.INVOICED.value),
    editable_states=(_S.PENDING.value, _S.INVOICED.value),
    deletable_states=(_S.PENDING.value,),
    counterparty_role=ContactRole.CUSTOMER,
    document_prefix="VEN",
    stock_direction=-1,
)

PURCHASE_WORKFLOW = Workflow(
    name=TransactionKind.PURCHASE.value,
    description="Purchase from a supplier; stock arrives on creation",
    initial_state=_S.PENDING.value,
    states=(
        _S.PENDING.value,
        _S.RECEIVED.value,
        _S.REJECTED.value,
    ),
    transitions=(
        Transition(_S.PENDING.value, _S.RECEIVED.value, "receive"),
        # A rejected delivery takes back the stock booked on creation.
        Transition(_S.PENDING.value, _S.REJECTED.value, "reject", stock_effect=-1),
    ),
    terminal_states=(_S.RECEIVED.value, _S.REJECTED.value),
    creation_states=(_S.PENDING.value,),
    editable_states=(_S.PENDING.value,),
    deletable_states=(_S.PENDING.value,),
    counterparty_role=ContactRole.SUPPLIER,
    document_prefix="COM",
    stock_direction=1,
)

WORKFLOWS: dict[TransactionKind, Workflow] = {
    TransactionKind.QUOTATION: QUOTATION_WORKFLOW,
    TransactionKind.SALE: SALE_WORKFLOW,
    TransactionKind.PURCHASE: PURCHASE_WORKFLOW,
}


def get_workflow(kind: TransactionKind | str) -> Workflow:
    return WORKFLOWS[TransactionKind(kind)]


def allowed_targets(kind: TransactionKind | str, from_state: str) -> tuple[str, ...]:
    return get_workflow(kind).allowed_targets(_status_value(from_state))


def _status_value(status: TransactionStatus | str) -> str:
    return status.value if isinstance(status, TransactionStatus) else status


def ensure_transition(
    kind: TransactionKind | str,
    from_state: TransactionStatus | str,
    to_state: TransactionStatus | str,
    transaction_id: str | None = None,
) -> Transition:
    """Return the transition or raise IllegalTransitionError."""
    workflow = get_workflow(kind)
    source = _status_value(from_state)
    target = _status_value(to_state)
    transition = workflow.find_transition(source, target)
    if transition is None:
        raise IllegalTransitionError(
            workflow.name, source, target, transaction_id=transaction_id
        )
    return transition


def ensure_editable(
    kind: TransactionKind | str,
    status: TransactionStatus | str,
    transaction_id: str,
) -> None:
    state = _status_value(status)
    if not get_workflow(kind).is_editable(state):
        raise InvalidStateError(transaction_id, state, "update")


def ensure_deletable(
    kind: TransactionKind | str,
    status: TransactionStatus | str,
    transaction_id: str,
) -> None:
    state = _status_value(status)
    if not get_workflow(kind).is_deletable(state):
        raise InvalidStateError(transaction_id, state, "delete")


def ensure_creation_state(
    kind: TransactionKind | str,
    status: TransactionStatus | str,
) -> str:
    """Validate a caller-chosen initial status."""
    workflow = get_workflow(kind)
    state = _status_value(status)
    if state not in workflow.creation_states:
        raise InvalidInputError(
            f"A {workflow.name} cannot be created in status {state}",
            field="status",
        )
    return state
