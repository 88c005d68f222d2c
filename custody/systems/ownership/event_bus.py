"""
Custody — Ownership Event Bus

In-process publication of ownership transitions to audit and observability
collaborators.

Delivery is synchronous, on the calling thread, after the registry has released
the slot lock. Subscribers may query the registry. Events from concurrent
callers can arrive out of order, so use ``slot_sequence`` to order one slot's
events. Subscribers must be quick. A subscriber that raises is logged and
counted. The failure never reaches the registry's caller and never undoes the
transition that was already committed.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

import structlog

from custody.systems.ownership.types import OwnershipEvent, OwnershipEventType

logger = structlog.get_logger("custody.systems.ownership.event_bus")

# Callback signature: def handler(event: OwnershipEvent) -> None
EventCallback = Callable[[OwnershipEvent], None]

# Maximum recent events to keep in the ring buffer per event type
_RECENT_BUFFER_SIZE: int = 100


class OwnershipEventBus:
    """
    Ownership transition event bus.

    Per-type and catch-all subscriptions, plus a bounded ring buffer of recent
    events per type for inspection.
    """

    def __init__(self, buffer_size: int = _RECENT_BUFFER_SIZE) -> None:
        self._logger = logger.bind(component="event_bus")
        self._lock = threading.Lock()

        # Per-type callback registrations
        self._subscribers: dict[OwnershipEventType, list[EventCallback]] = defaultdict(list)
        # Catch-all subscribers (receive every event)
        self._global_subscribers: list[EventCallback] = []

        # Ring buffers for recent event history
        self._recent: dict[OwnershipEventType, deque[OwnershipEvent]] = defaultdict(
            lambda: deque(maxlen=buffer_size)
        )

        # Metrics
        self._total_emitted: int = 0
        self._total_callback_errors: int = 0

    # ─── Subscription ────────────────────────────────────────────────

    def subscribe(
        self,
        event_type: OwnershipEventType,
        callback: EventCallback,
    ) -> None:
        """Register a callback for a specific event type."""
        with self._lock:
            self._subscribers[event_type].append(callback)

    def subscribe_all(self, callback: EventCallback) -> None:
        """Register a callback that receives every event."""
        with self._lock:
            self._global_subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        """Remove ``callback`` from every registration it appears in."""
        with self._lock:
            for callbacks in self._subscribers.values():
                while callback in callbacks:
                    callbacks.remove(callback)
            while callback in self._global_subscribers:
                self._global_subscribers.remove(callback)

    # ─── Emission ────────────────────────────────────────────────────

    def emit(self, event: OwnershipEvent) -> None:
        """
        Publish an event to all registered listeners.

        Type-specific callbacks fire first, then catch-all callbacks.
        """
        with self._lock:
            self._total_emitted += 1
            self._recent[event.event_type].append(event)
            callbacks = list(self._subscribers.get(event.event_type, []))
            callbacks.extend(self._global_subscribers)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as exc:
                with self._lock:
                    self._total_callback_errors += 1
                self._logger.error(
                    "event_callback_error",
                    event_type=event.event_type.value,
                    slot=event.slot,
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(exc),
                )

    # ─── Query ───────────────────────────────────────────────────────

    def recent(
        self,
        event_type: OwnershipEventType,
        limit: int = 10,
    ) -> list[OwnershipEvent]:
        """Return recent events of a given type (most recent first)."""
        with self._lock:
            buf = self._recent.get(event_type)
            if not buf:
                return []
            items = list(buf)
        items.reverse()
        return items[:limit]

    # ─── Stats ───────────────────────────────────────────────────────

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_emitted": self._total_emitted,
                "callback_errors": self._total_callback_errors,
                "subscriber_count": sum(
                    len(v) for v in self._subscribers.values()
                ) + len(self._global_subscribers),
                "recent_buffer_sizes": {
                    et.value: len(buf) for et, buf in self._recent.items()
                },
            }
