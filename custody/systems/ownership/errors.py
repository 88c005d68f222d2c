"""
Custody -- Ownership Error Hierarchy

All exceptions raised by the owner slot registry.

Every error is raised before any slot field is written, so a caller that
catches one can rely on the slot being exactly as it was before the call.

  IndexOutOfRangeError    slot index outside 0..N-1
  UnauthorizedError       caller lacks the relationship the operation requires
  NullPrincipalError      the supplied principal is the null identity
  NoPendingTransferError  claim attempted while no transfer is pending
  InvalidTransitionError  any other operation the transition table has no entry for
"""

from __future__ import annotations


class OwnershipError(RuntimeError):
    """Base for all ownership registry errors."""

    def __init__(
        self,
        message: str,
        *,
        slot: int | None = None,
        caller: str | None = None,
    ) -> None:
        super().__init__(message)
        self.slot = slot
        self.caller = caller

    @property
    def code(self) -> str:
        return type(self).__name__


class IndexOutOfRangeError(OwnershipError, IndexError):
    """The slot index does not address a slot of this registry."""

    def __init__(self, slot: int, slot_count: int) -> None:
        super().__init__(
            f"Slot index {slot} out of range for registry with {slot_count} slot(s)",
            slot=slot,
        )
        self.slot_count = slot_count


class UnauthorizedError(OwnershipError):
    """
    The caller is not the principal this operation is gated on.

    For propose and cancel_transfer that is the slot's current owner;
    for claim_ownership it is the pending nominee.
    """

    def __init__(
        self,
        *,
        slot: int | None,
        caller: str | None,
        required: str = "owner",
    ) -> None:
        where = f"slot {slot}" if slot is not None else "any slot"
        super().__init__(
            f"Caller {caller!r} is not the {required} of {where}",
            slot=slot,
            caller=caller,
        )
        self.required = required


class NullPrincipalError(OwnershipError, ValueError):
    """A null principal was supplied where a real identity is required."""

    def __init__(self, *, slot: int | None = None) -> None:
        where = f" for slot {slot}" if slot is not None else ""
        super().__init__(f"Null principal is not a valid owner{where}", slot=slot)


class NoPendingTransferError(OwnershipError):
    """claim_ownership found no pending transfer on the slot."""

    def __init__(self, *, slot: int, caller: str | None = None) -> None:
        super().__init__(
            f"No pending ownership transfer on slot {slot}",
            slot=slot,
            caller=caller,
        )


class InvalidTransitionError(OwnershipError):
    """The slot's current state has no transition for the requested operation."""

    def __init__(self, *, slot: int, operation: str, state: str, caller: str | None = None) -> None:
        super().__init__(
            f"Operation {operation!r} is not valid for slot {slot} in state {state!r}",
            slot=slot,
            caller=caller,
        )
        self.operation = operation
        self.state = state
