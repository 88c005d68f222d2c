"""
Custody — Ownership Type Definitions

Slot records, slot states, and the events published on every successful
ownership transition.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import Field

from custody.primitives.common import CustodyBaseModel, new_id, utc_now


# ─── Slot State ───────────────────────────────────────────────────────


class SlotState(enum.StrEnum):
    """Transfer state of a single owner slot."""

    STABLE = "stable"
    TRANSFER_PENDING = "transfer_pending"


class SlotOperation(enum.StrEnum):
    """Mutating operations a slot accepts."""

    PROPOSE = "propose"
    CANCEL = "cancel_transfer"
    CLAIM = "claim_ownership"


@dataclass
class OwnerSlot:
    """
    One independently transferable owner position.

    Mutable, and only ever touched by the registry while ``lock`` is held.
    ``current`` is never the null principal; ``pending`` is None when no
    transfer is in progress. ``version`` counts committed transitions.
    """

    current: str
    pending: str | None = None
    version: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def state(self) -> SlotState:
        if self.pending is None:
            return SlotState.STABLE
        return SlotState.TRANSFER_PENDING


class SlotSnapshot(CustodyBaseModel):
    """Immutable point-in-time view of one slot."""

    model_config = {"frozen": True}

    slot: int
    current: str
    pending: str | None = None
    state: SlotState = SlotState.STABLE
    taken_at: datetime = Field(default_factory=utc_now)


# ─── Events ───────────────────────────────────────────────────────────


class OwnershipEventType(enum.StrEnum):
    """Every successful transition publishes exactly one of these."""

    TRANSFER_PROPOSED = "transfer_proposed"
    TRANSFER_CANCELLED = "transfer_cancelled"
    OWNERSHIP_CLAIMED = "ownership_claimed"


class OwnershipEvent(CustodyBaseModel):
    """
    A transition record emitted by the registry.

    Payload keys by type:
      TRANSFER_PROPOSED   from, to
      TRANSFER_CANCELLED  by, cancelled
      OWNERSHIP_CLAIMED   new_owner, previous_owner
    """

    id: str = Field(default_factory=new_id)
    event_type: OwnershipEventType
    slot: int
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)
    # Per-slot commit order; events may reach subscribers out of order across threads
    slot_sequence: int = 0
    source: str = "ownership.registry"

    @classmethod
    def proposed(cls, slot: int, from_owner: str, to_owner: str, sequence: int = 0) -> OwnershipEvent:
        return cls(
            event_type=OwnershipEventType.TRANSFER_PROPOSED,
            slot=slot,
            slot_sequence=sequence,
            data={"from": from_owner, "to": to_owner},
        )

    @classmethod
    def cancelled(cls, slot: int, by: str, cancelled: str, sequence: int = 0) -> OwnershipEvent:
        return cls(
            event_type=OwnershipEventType.TRANSFER_CANCELLED,
            slot=slot,
            slot_sequence=sequence,
            data={"by": by, "cancelled": cancelled},
        )

    @classmethod
    def claimed(cls, slot: int, new_owner: str, previous_owner: str, sequence: int = 0) -> OwnershipEvent:
        return cls(
            event_type=OwnershipEventType.OWNERSHIP_CLAIMED,
            slot=slot,
            slot_sequence=sequence,
            data={"new_owner": new_owner, "previous_owner": previous_owner},
        )


# ─── Audit ────────────────────────────────────────────────────────────


class AuditRecord(CustodyBaseModel):
    """An event as retained by the audit trail, with its arrival order."""

    sequence: int
    event_id: str
    event_type: OwnershipEventType
    slot: int
    timestamp: datetime
    slot_sequence: int = 0
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, sequence: int, event: OwnershipEvent) -> AuditRecord:
        return cls(
            sequence=sequence,
            event_id=event.id,
            event_type=event.event_type,
            slot=event.slot,
            timestamp=event.timestamp,
            slot_sequence=event.slot_sequence,
            data=dict(event.data),
        )


# ─── Health ───────────────────────────────────────────────────────────


class RegistryHealth(CustodyBaseModel):
    """Counters reported by OwnerSlotRegistry.health()."""

    slot_count: int
    pending_transfers: int = 0
    proposals: int = 0
    cancellations: int = 0
    claims: int = 0
    rejections: dict[str, int] = Field(default_factory=dict)
