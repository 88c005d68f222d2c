"""
Unit tests for the OwnerSlotRegistry.

Tests initialization, the propose/cancel/claim cycle, guard ordering,
slot independence, and the events each successful transition publishes.
"""

from __future__ import annotations

import pytest

from custody.config import RegistryConfig
from custody.systems.ownership.errors import (
    IndexOutOfRangeError,
    InvalidTransitionError,
    NoPendingTransferError,
    NullPrincipalError,
    OwnershipError,
    UnauthorizedError,
)
from custody.systems.ownership import state_machine
from custody.systems.ownership.event_bus import OwnershipEventBus
from custody.systems.ownership.registry import OwnerSlotRegistry
from custody.systems.ownership.types import (
    OwnershipEvent,
    OwnershipEventType,
    SlotOperation,
    SlotState,
)

ALICE = "0xA11CE"
BOB = "0xB0B"
CAROL = "0xCA201"
DAVE = "0xDA7E"
ZERO = "0x0000000000000000000000000000000000000000"


def _make_registry(*owners: str) -> OwnerSlotRegistry:
    return OwnerSlotRegistry(list(owners) or [ALICE])


def _recording_registry(*owners: str) -> tuple[OwnerSlotRegistry, list[OwnershipEvent]]:
    bus = OwnershipEventBus()
    events: list[OwnershipEvent] = []
    bus.subscribe_all(events.append)
    return OwnerSlotRegistry(list(owners) or [ALICE], event_bus=bus), events


# ─── Initialization ─────────────────────────────────────────────


class TestInitialization:
    @pytest.mark.parametrize("owners", [[ALICE], [ALICE, BOB], [ALICE, BOB, CAROL, ALICE]])
    def test_slots_start_stable_with_configured_owners(self, owners):
        registry = OwnerSlotRegistry(owners)
        assert registry.slot_count == len(owners)
        for i, owner in enumerate(owners):
            assert registry.owner_of(i) == owner
            assert registry.pending_of(i) is None

    def test_single_owner_constructor(self):
        registry = OwnerSlotRegistry.single(ALICE)
        assert len(registry) == 1
        assert registry.owners() == (ALICE,)

    def test_empty_owner_list_rejected(self):
        with pytest.raises(ValueError, match="at least one slot"):
            OwnerSlotRegistry([])

    def test_bare_string_rejected(self):
        with pytest.raises(TypeError):
            OwnerSlotRegistry(ALICE)

    @pytest.mark.parametrize("null", ["", None, ZERO, "   "])
    def test_null_initial_owner_rejected(self, null):
        with pytest.raises(NullPrincipalError) as exc_info:
            OwnerSlotRegistry([ALICE, null])
        assert exc_info.value.slot == 1

    def test_from_config_defaults_to_initializer(self):
        registry = OwnerSlotRegistry.from_config(RegistryConfig(slot_count=3), ALICE)
        assert registry.owners() == (ALICE, ALICE, ALICE)

    def test_from_config_uses_explicit_owners(self):
        config = RegistryConfig(slot_count=2, initial_owners=[BOB, CAROL])
        registry = OwnerSlotRegistry.from_config(config, ALICE)
        assert registry.owners() == (BOB, CAROL)
        assert not registry.is_owner(ALICE)


# ─── Propose / Claim ────────────────────────────────────────────


class TestProposeAndClaim:
    def test_round_trip(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        assert registry.owner_of(0) == ALICE
        assert registry.pending_of(0) == BOB

        registry.claim_ownership(0, caller=BOB)
        assert registry.owner_of(0) == BOB
        assert registry.pending_of(0) is None

    def test_propose_does_not_grant_authority(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        assert registry.is_owner(ALICE)
        assert not registry.is_owner(BOB)

    def test_claim_requires_exact_nominee(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        for intruder in (ALICE, CAROL, BOB.lower()):
            with pytest.raises(UnauthorizedError):
                registry.claim_ownership(0, caller=intruder)
        assert registry.owner_of(0) == ALICE
        assert registry.pending_of(0) == BOB

    def test_overwrite_replaces_nominee(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        registry.propose(0, CAROL, caller=ALICE)

        with pytest.raises(UnauthorizedError):
            registry.claim_ownership(0, caller=BOB)

        registry.claim_ownership(0, caller=CAROL)
        assert registry.owner_of(0) == CAROL

    def test_self_proposal_is_legal(self):
        registry = _make_registry(ALICE)
        registry.propose(0, ALICE, caller=ALICE)
        assert registry.pending_of(0) == ALICE
        registry.claim_ownership(0, caller=ALICE)
        assert registry.owner_of(0) == ALICE
        assert registry.pending_of(0) is None

    def test_claim_without_pending_fails(self):
        registry = _make_registry(ALICE)
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=BOB)

    def test_owner_self_claim_without_nomination_fails(self):
        registry = _make_registry(ALICE)
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=ALICE)

    def test_second_claim_fails_after_success(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        registry.claim_ownership(0, caller=BOB)
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=BOB)

    def test_previous_owner_loses_control_after_claim(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        registry.claim_ownership(0, caller=BOB)
        with pytest.raises(UnauthorizedError):
            registry.propose(0, ALICE, caller=ALICE)
        with pytest.raises(UnauthorizedError):
            registry.cancel_transfer(0, caller=ALICE)


# ─── Cancel ─────────────────────────────────────────────────────


class TestCancel:
    def test_cancel_clears_pending(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        registry.cancel_transfer(0, caller=ALICE)
        assert registry.pending_of(0) is None
        assert registry.owner_of(0) == ALICE
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=BOB)

    def test_cancel_is_idempotent(self):
        registry = _make_registry(ALICE)
        registry.cancel_transfer(0, caller=ALICE)
        registry.cancel_transfer(0, caller=ALICE)
        assert registry.pending_of(0) is None
        assert registry.owner_of(0) == ALICE

    def test_nominee_cannot_cancel(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        with pytest.raises(UnauthorizedError):
            registry.cancel_transfer(0, caller=BOB)
        assert registry.pending_of(0) == BOB


# ─── Guards ─────────────────────────────────────────────────────


class TestGuards:
    def test_unauthorized_propose_changes_nothing(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        with pytest.raises(UnauthorizedError) as exc_info:
            registry.propose(0, CAROL, caller=CAROL)
        assert exc_info.value.slot == 0
        assert exc_info.value.caller == CAROL
        assert registry.owner_of(0) == ALICE
        assert registry.pending_of(0) == BOB

    @pytest.mark.parametrize("null", ["", None, ZERO])
    def test_null_nominee_rejected(self, null):
        registry = _make_registry(ALICE)
        with pytest.raises(NullPrincipalError) as exc_info:
            registry.propose(0, null, caller=ALICE)
        assert exc_info.value.caller == ALICE
        assert registry.pending_of(0) is None

    def test_null_nominee_keeps_existing_nomination(self):
        registry = _make_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        with pytest.raises(NullPrincipalError):
            registry.propose(0, "", caller=ALICE)
        assert registry.pending_of(0) == BOB

    def test_authorization_checked_before_null_nominee(self):
        registry = _make_registry(ALICE)
        with pytest.raises(UnauthorizedError):
            registry.propose(0, "", caller=CAROL)

    @pytest.mark.parametrize("idx", [1, 5, -1])
    def test_index_out_of_range(self, idx):
        registry = _make_registry(ALICE)
        with pytest.raises(IndexOutOfRangeError) as exc_info:
            registry.propose(idx, BOB, caller=ALICE)
        assert exc_info.value.slot_count == 1
        with pytest.raises(IndexOutOfRangeError):
            registry.cancel_transfer(idx, caller=ALICE)
        with pytest.raises(IndexOutOfRangeError):
            registry.claim_ownership(idx, caller=BOB)
        with pytest.raises(IndexOutOfRangeError):
            registry.owner_of(idx)
        with pytest.raises(IndexOutOfRangeError):
            registry.pending_of(idx)

    def test_index_checked_before_authorization(self):
        registry = _make_registry(ALICE)
        with pytest.raises(IndexOutOfRangeError):
            registry.propose(3, "", caller=CAROL)

    def test_errors_share_base_and_builtin_types(self):
        registry = _make_registry(ALICE)
        with pytest.raises(IndexError):
            registry.owner_of(9)
        with pytest.raises(ValueError):
            registry.propose(0, None, caller=ALICE)
        with pytest.raises(OwnershipError):
            registry.claim_ownership(0, caller=BOB)


# ─── Transition table ─────────────────────────────────────────


class TestTransitionTableEnforcement:
    def test_operation_missing_from_table_is_rejected(self, monkeypatch):
        trimmed = [
            t
            for t in state_machine.SLOT_STATE_MACHINE
            if (t.from_state, t.operation) != (SlotState.STABLE, SlotOperation.PROPOSE)
        ]
        monkeypatch.setattr(state_machine, "SLOT_STATE_MACHINE", trimmed)
        registry, events = _recording_registry(ALICE)

        with pytest.raises(InvalidTransitionError) as exc_info:
            registry.propose(0, BOB, caller=ALICE)
        assert exc_info.value.operation == "propose"
        assert exc_info.value.state == "stable"
        assert exc_info.value.caller == ALICE
        assert registry.pending_of(0) is None
        assert events == []
        assert registry.health().rejections == {"InvalidTransitionError": 1}

    def test_table_gap_does_not_affect_other_states(self, monkeypatch):
        trimmed = [
            t
            for t in state_machine.SLOT_STATE_MACHINE
            if (t.from_state, t.operation)
            != (SlotState.TRANSFER_PENDING, SlotOperation.CANCEL)
        ]
        monkeypatch.setattr(state_machine, "SLOT_STATE_MACHINE", trimmed)
        registry = _make_registry(ALICE)

        registry.cancel_transfer(0, caller=ALICE)
        registry.propose(0, BOB, caller=ALICE)
        with pytest.raises(InvalidTransitionError):
            registry.cancel_transfer(0, caller=ALICE)
        assert registry.pending_of(0) == BOB

    def test_claim_from_stable_has_no_transition(self):
        registry = _make_registry(ALICE)
        assert state_machine.get_transition(SlotState.STABLE, SlotOperation.CLAIM) is None
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=ALICE)
        assert registry.owner_of(0) == ALICE


# ─── Capability ─────────────────────────────────────────────────


class TestCapability:
    def test_is_owner_any_slot(self):
        registry = _make_registry(ALICE, BOB)
        assert registry.is_owner(ALICE)
        assert registry.is_owner(BOB)
        assert not registry.is_owner(CAROL)

    @pytest.mark.parametrize("null", ["", None, ZERO])
    def test_null_is_never_owner(self, null):
        assert not _make_registry(ALICE).is_owner(null)

    def test_require_owner(self):
        registry = _make_registry(ALICE)
        registry.require_owner(ALICE)
        with pytest.raises(UnauthorizedError) as exc_info:
            registry.require_owner(BOB)
        assert exc_info.value.slot is None

    def test_slot_queries(self):
        registry = _make_registry(ALICE, BOB, ALICE)
        registry.propose(1, CAROL, caller=BOB)
        assert registry.slots_of(ALICE) == [0, 2]
        assert registry.slots_of(CAROL) == []
        assert registry.pending_claims_for(CAROL) == [1]
        assert registry.pending_claims_for(None) == []


# ─── Slot Independence ──────────────────────────────────────────


class TestSlotIndependence:
    def test_transfer_on_slot_zero_leaves_slot_one(self):
        registry = _make_registry(ALICE, BOB)
        registry.propose(1, DAVE, caller=BOB)

        registry.propose(0, CAROL, caller=ALICE)
        registry.claim_ownership(0, caller=CAROL)

        assert registry.owner_of(1) == BOB
        assert registry.pending_of(1) == DAVE

    def test_owner_of_one_slot_cannot_touch_another(self):
        registry = _make_registry(ALICE, BOB)
        with pytest.raises(UnauthorizedError):
            registry.propose(1, CAROL, caller=ALICE)
        with pytest.raises(UnauthorizedError):
            registry.cancel_transfer(1, caller=ALICE)

    def test_nominee_must_claim_the_right_slot(self):
        registry = _make_registry(ALICE, BOB)
        registry.propose(0, CAROL, caller=ALICE)
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(1, caller=CAROL)
        assert registry.pending_of(0) == CAROL

    def test_same_principal_may_hold_several_slots(self):
        registry = _make_registry(ALICE, BOB)
        registry.propose(1, ALICE, caller=BOB)
        registry.claim_ownership(1, caller=ALICE)
        assert registry.owners() == (ALICE, ALICE)
        assert not registry.is_owner(BOB)


# ─── Concrete Scenario ──────────────────────────────────────────


def test_single_owner_handoff_scenario():
    registry = OwnerSlotRegistry.single("A")

    registry.propose(0, "B", caller="A")
    assert registry.pending_of(0) == "B"

    with pytest.raises(UnauthorizedError):
        registry.claim_ownership(0, caller="C")

    registry.claim_ownership(0, caller="B")
    assert registry.owner_of(0) == "B"
    assert registry.pending_of(0) is None

    with pytest.raises(NullPrincipalError):
        registry.propose(0, None, caller="B")


# ─── Events ─────────────────────────────────────────────────────


class TestEvents:
    def test_full_cycle_publishes_in_order(self):
        registry, events = _recording_registry(ALICE)
        registry.propose(0, BOB, caller=ALICE)
        registry.cancel_transfer(0, caller=ALICE)
        registry.propose(0, CAROL, caller=ALICE)
        registry.claim_ownership(0, caller=CAROL)

        assert [e.event_type for e in events] == [
            OwnershipEventType.TRANSFER_PROPOSED,
            OwnershipEventType.TRANSFER_CANCELLED,
            OwnershipEventType.TRANSFER_PROPOSED,
            OwnershipEventType.OWNERSHIP_CLAIMED,
        ]
        assert events[0].data == {"from": ALICE, "to": BOB}
        assert events[1].data == {"by": ALICE, "cancelled": BOB}
        assert events[3].data == {"new_owner": CAROL, "previous_owner": ALICE}
        assert all(e.slot == 0 for e in events)

    def test_noop_cancel_and_rejections_publish_nothing(self):
        registry, events = _recording_registry(ALICE)
        registry.cancel_transfer(0, caller=ALICE)
        with pytest.raises(UnauthorizedError):
            registry.propose(0, BOB, caller=BOB)
        with pytest.raises(NoPendingTransferError):
            registry.claim_ownership(0, caller=BOB)
        assert events == []

    def test_failing_subscriber_does_not_undo_transition(self):
        bus = OwnershipEventBus()

        def _explode(event):
            raise RuntimeError("subscriber down")

        bus.subscribe_all(_explode)
        registry = OwnerSlotRegistry([ALICE], event_bus=bus)
        registry.propose(0, BOB, caller=ALICE)
        registry.claim_ownership(0, caller=BOB)

        assert registry.owner_of(0) == BOB
        assert bus.stats["callback_errors"] == 2


# ─── Snapshot & Health ──────────────────────────────────────────


class TestSnapshotAndHealth:
    def test_snapshot_reports_state(self):
        registry = _make_registry(ALICE, BOB)
        registry.propose(1, CAROL, caller=BOB)
        first, second = registry.snapshot()
        assert first.state == SlotState.STABLE
        assert first.pending is None
        assert second.state == SlotState.TRANSFER_PENDING
        assert second.current == BOB
        assert second.pending == CAROL

    def test_snapshot_is_frozen(self):
        (snap,) = _make_registry(ALICE).snapshot()
        with pytest.raises(Exception):
            snap.current = BOB

    def test_health_counts(self):
        registry = _make_registry(ALICE, BOB)
        registry.propose(0, CAROL, caller=ALICE)
        registry.propose(1, DAVE, caller=BOB)
        registry.cancel_transfer(1, caller=BOB)
        registry.cancel_transfer(1, caller=BOB)
        registry.claim_ownership(0, caller=CAROL)
        with pytest.raises(UnauthorizedError):
            registry.propose(0, DAVE, caller=ALICE)
        with pytest.raises(IndexOutOfRangeError):
            registry.owner_of(2)

        health = registry.health()
        assert health.slot_count == 2
        assert health.proposals == 2
        assert health.cancellations == 1
        assert health.claims == 1
        assert health.pending_transfers == 0
        assert health.rejections == {"UnauthorizedError": 1, "IndexOutOfRangeError": 1}
