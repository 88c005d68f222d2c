"""
Custody — Owner Slot Registry

Holds N owner slots, each an independent instance of the two-phase transfer
state machine (see state_machine.py):

  1. The current owner nominates a successor with ``propose``. Nothing about
     who controls the slot changes yet.
  2. The nominee completes the handoff with its own authenticated
     ``claim_ownership``. Only then does ``current`` move.

A mistyped or unreachable nominee can therefore never lock the slot: it simply
never claims, and the current owner can ``cancel_transfer`` or re-propose.

Concurrency:
  Every slot has its own re-entrant lock. Each operation validates all of its
  guards (the transition table included) and writes all of its fields inside
  one critical section, so callers never observe a half-applied transition.
  Different slots never contend.
  Events are built under the lock but emitted after it is released, so a
  subscriber may call back into the registry freely. Each event carries the
  slot's ``slot_sequence``, stamped at commit, for per-slot ordering.

The caller identity passed to every operation is assumed to have been
authenticated by the host; this module only compares it.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, NoReturn

import structlog

from custody.primitives.principal import Principal, is_null_principal, require_principal
from custody.systems.ownership.errors import (
    IndexOutOfRangeError,
    InvalidTransitionError,
    NoPendingTransferError,
    OwnershipError,
    UnauthorizedError,
)
from custody.systems.ownership.state_machine import SlotTransition, get_transition
from custody.systems.ownership.types import (
    OwnerSlot,
    OwnershipEvent,
    RegistryHealth,
    SlotOperation,
    SlotSnapshot,
)

if TYPE_CHECKING:
    from custody.config import RegistryConfig
    from custody.systems.ownership.event_bus import OwnershipEventBus

logger = structlog.get_logger()


class OwnerSlotRegistry:
    """
    Ordered sequence of N independently transferable owner slots.

    ``is_owner`` is the capability predicate the rest of the resource gates
    its privileged operations on.
    """

    def __init__(
        self,
        initial_owners: Sequence[Principal],
        event_bus: OwnershipEventBus | None = None,
    ) -> None:
        if isinstance(initial_owners, str):
            raise TypeError("initial_owners must be a sequence of principals, not a single string")
        if len(initial_owners) < 1:
            raise ValueError("An owner slot registry needs at least one slot")

        self._slots: tuple[OwnerSlot, ...] = tuple(
            OwnerSlot(current=require_principal(owner, slot=i))
            for i, owner in enumerate(initial_owners)
        )
        self._event_bus = event_bus
        self._logger = logger.bind(system="ownership.registry")

        self._stats_lock = threading.Lock()
        self._proposals: int = 0
        self._cancellations: int = 0
        self._claims: int = 0
        self._rejections: Counter[str] = Counter()

        self._logger.info("owner_registry_initialised", slot_count=len(self._slots))

    # ─── Construction helpers ───────────────────────────────────────

    @classmethod
    def single(
        cls,
        owner: Principal,
        event_bus: OwnershipEventBus | None = None,
    ) -> OwnerSlotRegistry:
        """A one-slot registry: the classic single-owner resource."""
        return cls([owner], event_bus=event_bus)

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        initializer: Principal,
        event_bus: OwnershipEventBus | None = None,
    ) -> OwnerSlotRegistry:
        """
        Build the registry described by ``config``.

        Slots take the explicitly configured initial owners when given,
        otherwise every slot starts out owned by ``initializer``.
        """
        if config.initial_owners:
            if len(config.initial_owners) != config.slot_count:
                raise ValueError(
                    f"Configured {len(config.initial_owners)} initial owner(s) "
                    f"for {config.slot_count} slot(s)"
                )
            owners = list(config.initial_owners)
        else:
            owners = [initializer] * config.slot_count
        return cls(owners, event_bus=event_bus)

    # ─── Capability ─────────────────────────────────────────────────

    def is_owner(self, principal: Principal | None) -> bool:
        """True iff ``principal`` is the current owner of at least one slot. Never raises."""
        if is_null_principal(principal):
            return False
        for slot in self._slots:
            with slot.lock:
                if slot.current == principal:
                    return True
        return False

    def require_owner(self, caller: Principal | None) -> None:
        """
        Raise UnauthorizedError unless ``caller`` owns some slot.

        Call this first thing in any gated operation of the surrounding
        resource.
        """
        if not self.is_owner(caller):
            self._reject(UnauthorizedError(slot=None, caller=caller, required="owner"))

    # ─── Transfer operations ────────────────────────────────────────

    def propose(self, idx: int, new_owner: Principal | None, caller: Principal | None) -> None:
        """
        Nominate ``new_owner`` for slot ``idx``. Caller must own the slot.

        Overwrites any earlier nomination. ``current`` is left untouched.
        Raises IndexOutOfRangeError, UnauthorizedError, NullPrincipalError
        (checked in that order).
        """
        with self._locked(idx) as slot:
            if caller != slot.current:
                self._reject(UnauthorizedError(slot=idx, caller=caller, required="owner"))
            try:
                nominee = require_principal(new_owner, slot=idx)
            except OwnershipError as exc:
                exc.caller = caller
                self._reject(exc)
            transition = self._plan(idx, slot, SlotOperation.PROPOSE, caller)

            replaced = slot.pending
            slot.pending = nominee
            slot.version += 1
            event = OwnershipEvent.proposed(idx, slot.current, nominee, slot.version)

        with self._stats_lock:
            self._proposals += 1
        self._logger.info(
            "ownership_transfer_proposed",
            slot=idx,
            owner=caller,
            nominee=nominee,
            replaced=replaced,
            to_state=transition.to_state.value,
        )
        self._emit(event)

    def cancel_transfer(self, idx: int, caller: Principal | None) -> None:
        """
        Withdraw the pending nomination on slot ``idx``. Caller must own the slot.

        Idempotent: with nothing pending this is a silent no-op.
        Raises IndexOutOfRangeError, UnauthorizedError.
        """
        with self._locked(idx) as slot:
            if caller != slot.current:
                self._reject(UnauthorizedError(slot=idx, caller=caller, required="owner"))
            transition = self._plan(idx, slot, SlotOperation.CANCEL, caller)

            withdrawn = slot.pending
            if withdrawn is None:
                self._logger.debug("ownership_cancel_noop", slot=idx, owner=caller)
                return
            slot.pending = None
            slot.version += 1
            event = OwnershipEvent.cancelled(idx, slot.current, withdrawn, slot.version)

        with self._stats_lock:
            self._cancellations += 1
        self._logger.info(
            "ownership_transfer_cancelled",
            slot=idx,
            owner=caller,
            withdrawn=withdrawn,
            to_state=transition.to_state.value,
        )
        self._emit(event)

    def claim_ownership(self, idx: int, caller: Principal | None) -> None:
        """
        Complete the pending transfer on slot ``idx``. Caller must be the nominee.

        Swaps ``current`` to the nominee and clears ``pending`` in one step.
        A stable slot has no claim transition, so claiming one (including an
        owner "self-claiming" its own slot) is rejected as NoPendingTransferError.
        Raises IndexOutOfRangeError, NoPendingTransferError, UnauthorizedError
        (checked in that order).
        """
        with self._locked(idx) as slot:
            transition = self._plan(idx, slot, SlotOperation.CLAIM, caller)
            if caller != slot.pending:
                self._reject(UnauthorizedError(slot=idx, caller=caller, required="pending owner"))

            previous = slot.current
            slot.current, slot.pending = slot.pending, None
            slot.version += 1
            new_owner = slot.current
            event = OwnershipEvent.claimed(idx, new_owner, previous, slot.version)

        with self._stats_lock:
            self._claims += 1
        self._logger.info(
            "ownership_claimed",
            slot=idx,
            new_owner=new_owner,
            previous_owner=previous,
            to_state=transition.to_state.value,
        )
        self._emit(event)

    # ─── Queries ────────────────────────────────────────────────────

    @property
    def slot_count(self) -> int:
        return len(self._slots)

    def owner_of(self, idx: int) -> Principal:
        with self._locked(idx) as slot:
            return slot.current

    def pending_of(self, idx: int) -> Principal | None:
        with self._locked(idx) as slot:
            return slot.pending

    def owners(self) -> tuple[Principal, ...]:
        """Current owner of every slot, in slot order."""
        return tuple(self.owner_of(i) for i in range(len(self._slots)))

    def slots_of(self, principal: Principal | None) -> list[int]:
        """Indices of the slots ``principal`` currently owns."""
        if is_null_principal(principal):
            return []
        return [i for i in range(len(self._slots)) if self.owner_of(i) == principal]

    def pending_claims_for(self, principal: Principal | None) -> list[int]:
        """Indices of the slots ``principal`` has been nominated for."""
        if is_null_principal(principal):
            return []
        return [i for i in range(len(self._slots)) if self.pending_of(i) == principal]

    def snapshot(self) -> tuple[SlotSnapshot, ...]:
        """A consistent view of each slot (each read under its own lock)."""
        snapshots = []
        for i, slot in enumerate(self._slots):
            with slot.lock:
                snapshots.append(
                    SlotSnapshot(
                        slot=i,
                        current=slot.current,
                        pending=slot.pending,
                        state=slot.state,
                    )
                )
        return tuple(snapshots)

    def health(self) -> RegistryHealth:
        pending = sum(1 for s in self.snapshot() if s.pending is not None)
        with self._stats_lock:
            return RegistryHealth(
                slot_count=len(self._slots),
                pending_transfers=pending,
                proposals=self._proposals,
                cancellations=self._cancellations,
                claims=self._claims,
                rejections=dict(self._rejections),
            )

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self) -> str:
        return f"OwnerSlotRegistry(slot_count={len(self._slots)})"

    # ─── Internals ──────────────────────────────────────────────────

    @contextmanager
    def _locked(self, idx: int) -> Iterator[OwnerSlot]:
        """Hold slot ``idx``'s lock for the duration of the block."""
        if isinstance(idx, bool) or not isinstance(idx, int) or not 0 <= idx < len(self._slots):
            self._reject(IndexOutOfRangeError(idx, len(self._slots)))
        slot = self._slots[idx]
        with slot.lock:
            yield slot

    def _plan(
        self,
        idx: int,
        slot: OwnerSlot,
        operation: SlotOperation,
        caller: Principal | None,
    ) -> SlotTransition:
        """
        Look up the transition ``operation`` drives from the slot's state.

        Rejects when the table has none. Called with the slot lock held and
        before any field is written.
        """
        transition = get_transition(slot.state, operation)
        if transition is None:
            if operation is SlotOperation.CLAIM:
                self._reject(NoPendingTransferError(slot=idx, caller=caller))
            self._reject(
                InvalidTransitionError(
                    slot=idx,
                    operation=operation.value,
                    state=slot.state.value,
                    caller=caller,
                )
            )
        return transition

    def _reject(self, error: OwnershipError) -> NoReturn:
        """Count, log, and raise ``error``. Always raises."""
        with self._stats_lock:
            self._rejections[error.code] += 1
        self._logger.warning(
            "ownership_operation_rejected",
            error=error.code,
            slot=error.slot,
            caller=error.caller,
            reason=str(error),
        )
        raise error

    def _emit(self, event: OwnershipEvent) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event)
