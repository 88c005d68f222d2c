"""
Custody — Ownership Service

Wires the registry, its event bus and the audit trail together from a
CustodyConfig. This is the object a host embeds; gated business logic calls
``service.registry.require_owner(caller)`` before doing anything privileged.
"""

from __future__ import annotations

from typing import Any

import structlog

from custody.config import CustodyConfig
from custody.primitives.principal import Principal
from custody.systems.ownership.audit import AuditTrail
from custody.systems.ownership.event_bus import OwnershipEventBus
from custody.systems.ownership.registry import OwnerSlotRegistry

logger = structlog.get_logger()


class OwnershipService:
    """Owns one registry plus the observability attached to it."""

    def __init__(
        self,
        registry: OwnerSlotRegistry,
        event_bus: OwnershipEventBus,
        audit: AuditTrail,
        instance_id: str = "",
    ) -> None:
        self.registry = registry
        self.event_bus = event_bus
        self.audit = audit
        self.instance_id = instance_id

    @classmethod
    def from_config(cls, config: CustodyConfig, initializer: Principal) -> OwnershipService:
        """
        Build a fully wired service.

        ``initializer`` is the authenticated principal standing up the
        resource; it owns every slot that has no explicit initial owner.
        """
        bus = OwnershipEventBus(buffer_size=config.registry.event_buffer_size)
        audit = AuditTrail(max_records=config.registry.audit_history_size).attach(bus)
        registry = OwnerSlotRegistry.from_config(config.registry, initializer, event_bus=bus)
        logger.info(
            "ownership_service_ready",
            system="ownership.service",
            instance_id=config.instance_id,
            slot_count=registry.slot_count,
        )
        return cls(registry, bus, audit, instance_id=config.instance_id)

    def health(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "registry": self.registry.health().model_dump(),
            "events": self.event_bus.stats,
            "audit_records": self.audit.total_recorded,
        }
