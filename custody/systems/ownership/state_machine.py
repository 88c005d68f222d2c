"""
Custody — Owner Slot State Machine

Formal definition of the valid transitions of a single owner slot.
Every slot runs this machine independently for the life of the registry:

  STABLE            --propose-->          TRANSFER_PENDING
  TRANSFER_PENDING  --propose-->          TRANSFER_PENDING  (overwrite)
  TRANSFER_PENDING  --cancel_transfer-->  STABLE
  STABLE            --cancel_transfer-->  STABLE            (no-op)
  TRANSFER_PENDING  --claim_ownership-->  STABLE

There is no terminal state. The registry looks up the transition before writing
any field, and an operation with no entry here is rejected. A claim from STABLE,
or by anyone other than the pending nominee, leaves the slot unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from custody.systems.ownership.types import SlotOperation, SlotState


@dataclass(frozen=True)
class SlotTransition:
    """
    A valid transition of the slot state machine.

    Defines:
      - From/to states
      - The operation that drives it
      - Guard (who may call it, English description)
      - Effect on the slot's fields
    """
    from_state: SlotState
    operation: SlotOperation
    to_state: SlotState
    guard: str
    effect: str = ""


# ─── Slot State Machine Definition ───────────────────────────────────────

SLOT_STATE_MACHINE: list[SlotTransition] = [
    # Nomination
    SlotTransition(
        from_state=SlotState.STABLE,
        operation=SlotOperation.PROPOSE,
        to_state=SlotState.TRANSFER_PENDING,
        guard="caller is the slot's current owner; nominee is not the null principal",
        effect="pending = nominee",
    ),

    # Re-nomination overwrites, never queues
    SlotTransition(
        from_state=SlotState.TRANSFER_PENDING,
        operation=SlotOperation.PROPOSE,
        to_state=SlotState.TRANSFER_PENDING,
        guard="caller is the slot's current owner; nominee is not the null principal",
        effect="pending = nominee (previous nominee discarded)",
    ),

    # Withdrawal
    SlotTransition(
        from_state=SlotState.TRANSFER_PENDING,
        operation=SlotOperation.CANCEL,
        to_state=SlotState.STABLE,
        guard="caller is the slot's current owner",
        effect="pending = None",
    ),

    # Idempotent withdrawal
    SlotTransition(
        from_state=SlotState.STABLE,
        operation=SlotOperation.CANCEL,
        to_state=SlotState.STABLE,
        guard="caller is the slot's current owner",
        effect="none",
    ),

    # Completion by the nominee's own authenticated call
    SlotTransition(
        from_state=SlotState.TRANSFER_PENDING,
        operation=SlotOperation.CLAIM,
        to_state=SlotState.STABLE,
        guard="caller is exactly the pending nominee",
        effect="current = pending; pending = None",
    ),
]


# ─── State Machine Validation ─────────────────────────────────────────────


def get_valid_next_states(current_state: SlotState) -> list[SlotState]:
    """Get all valid next states from a given state."""
    return [
        t.to_state
        for t in SLOT_STATE_MACHINE
        if t.from_state == current_state
    ]


def is_valid_transition(from_state: SlotState, to_state: SlotState) -> bool:
    """Check if a transition is valid."""
    return to_state in get_valid_next_states(from_state)


def get_transition(
    from_state: SlotState,
    operation: SlotOperation,
) -> SlotTransition | None:
    """The transition ``operation`` drives from ``from_state``, or None if it is rejected there."""
    return next(
        (
            t for t in SLOT_STATE_MACHINE
            if t.from_state == from_state and t.operation == operation
        ),
        None,
    )


# ─── State Machine Query Helpers ──────────────────────────────────────────


def describe_transition(from_state: SlotState, operation: SlotOperation) -> str:
    """Get the guard description for a transition."""
    transition = get_transition(from_state, operation)
    return transition.guard if transition else "Rejected: no transition defined"


def accepts(state: SlotState, operation: SlotOperation) -> bool:
    """Does a slot in ``state`` have any transition for ``operation``?"""
    return get_transition(state, operation) is not None
