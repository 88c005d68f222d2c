"""
Custody — Ownership Audit Trail

Every committed ownership transition is recorded. Subscribed to the event bus
as a catch-all listener, the trail keeps an append-only, bounded history of
AuditRecords and mirrors each one to the structured log, so a transfer can
always be traced even after the in-memory history has rolled over.
"""

from __future__ import annotations

import threading
from collections import deque

import structlog

from custody.systems.ownership.event_bus import OwnershipEventBus
from custody.systems.ownership.types import AuditRecord, OwnershipEvent

logger = structlog.get_logger()

_DEFAULT_HISTORY_SIZE: int = 1000


class AuditTrail:
    """
    Records every ownership event in arrival order.

    Sequence numbers are assigned on arrival and are strictly increasing
    across all slots, so the relative order of transitions on different slots
    is preserved too.
    """

    def __init__(self, max_records: int = _DEFAULT_HISTORY_SIZE) -> None:
        self._records: deque[AuditRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()
        self._sequence: int = 0
        self._logger = logger.bind(system="ownership.audit")

    def attach(self, bus: OwnershipEventBus) -> AuditTrail:
        """Subscribe to every event on ``bus``. Returns self for chaining."""
        bus.subscribe_all(self.record)
        return self

    def detach(self, bus: OwnershipEventBus) -> None:
        bus.unsubscribe(self.record)

    def record(self, event: OwnershipEvent) -> AuditRecord:
        with self._lock:
            self._sequence += 1
            entry = AuditRecord.from_event(self._sequence, event)
            self._records.append(entry)

        self._logger.info(
            "ownership_audit_record",
            sequence=entry.sequence,
            event_type=entry.event_type.value,
            slot=entry.slot,
            **entry.data,
        )
        return entry

    def history(self, slot: int | None = None) -> list[AuditRecord]:
        """Retained records, oldest first, optionally filtered to one slot."""
        with self._lock:
            records = list(self._records)
        if slot is None:
            return records
        return [r for r in records if r.slot == slot]

    def last_for(self, slot: int) -> AuditRecord | None:
        with self._lock:
            for entry in reversed(self._records):
                if entry.slot == slot:
                    return entry
        return None

    @property
    def total_recorded(self) -> int:
        with self._lock:
            return self._sequence

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
