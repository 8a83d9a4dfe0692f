"""Unit tests for the lease transition table."""

import pytest

from rentflow.domain.enums import LeaseActor, LeaseStatus
from rentflow.domain.errors import Conflict
from rentflow.services.lease_state_machine import (
    TERMINAL_STATES,
    TRANSITION_MAP,
    InvalidTransitionError,
    get_allowed_transitions,
    sources_of,
    validate_transition,
)

S = LeaseStatus
A = LeaseActor


class TestValidTransitions:
    """Every transition defined in TRANSITION_MAP should succeed for allowed actors."""

    @pytest.mark.parametrize(
        "from_status,to_status,actor",
        [
            (from_s, to_s, actor)
            for from_s, targets in TRANSITION_MAP.items()
            for to_s, actors in targets.items()
            for actor in actors
        ],
    )
    def test_all_valid_transitions(self, from_status, to_status, actor):
        assert validate_transition(from_status, to_status, actor) is True

    def test_happy_path(self):
        path = [
            S.DRAFT,
            S.AWAITING_SIGNATURES,
            S.FULLY_SIGNED,
            S.AWAITING_PAYMENT,
            S.ACTIVE,
            S.COMPLETED,
        ]
        for current, target in zip(path, path[1:]):
            assert validate_transition(current, target, A.SYSTEM if target != S.COMPLETED else A.MANAGER)


class TestActivationEdge:
    """``active`` has a single inbound edge, taken only by the system."""

    def test_only_awaiting_payment_leads_to_active(self):
        assert sources_of(S.ACTIVE) == {S.AWAITING_PAYMENT}

    @pytest.mark.parametrize("status", [s for s in LeaseStatus if s != S.AWAITING_PAYMENT])
    def test_no_shortcut_to_active(self, status):
        with pytest.raises(InvalidTransitionError):
            validate_transition(status, S.ACTIVE, A.SYSTEM)

    @pytest.mark.parametrize("actor", [A.MANAGER, A.TENANT])
    def test_parties_cannot_activate_directly(self, actor):
        with pytest.raises(InvalidTransitionError, match="not permitted"):
            validate_transition(S.AWAITING_PAYMENT, S.ACTIVE, actor)

    def test_payment_wait_follows_fully_signed(self):
        assert sources_of(S.AWAITING_PAYMENT) == {S.FULLY_SIGNED}
        assert sources_of(S.FULLY_SIGNED) == {S.AWAITING_SIGNATURES}


class TestEndOfTenancy:
    def test_terminated_and_completed_only_from_active(self):
        assert sources_of(S.TERMINATED) == {S.ACTIVE}
        assert sources_of(S.COMPLETED) == {S.ACTIVE}

    def test_tenant_cannot_terminate(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(S.ACTIVE, S.TERMINATED, A.TENANT)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, status):
        assert get_allowed_transitions(status) == []
        with pytest.raises(InvalidTransitionError, match="No transitions allowed"):
            validate_transition(status, S.ACTIVE, A.SYSTEM)

    def test_cannot_terminate_before_activation(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(S.AWAITING_PAYMENT, S.TERMINATED, A.MANAGER)


class TestInvalidTransitionError:
    def test_is_a_conflict(self):
        err = InvalidTransitionError(S.DRAFT, S.ACTIVE, "nope")
        assert isinstance(err, Conflict)
        assert err.status_code == 409

    def test_detail_names_both_states(self):
        detail = InvalidTransitionError(S.DRAFT, S.ACTIVE, "nope").to_detail()
        assert detail["error"] == "invalid_transition"
        assert detail["current_status"] == "draft"
        assert detail["target_status"] == "active"
        assert "nope" in detail["message"]
