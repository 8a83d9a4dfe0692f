"""Lease state machine: validates lease transitions and the actors allowed to drive them.

Lifecycle:
    draft -> awaiting_signatures -> fully_signed -> awaiting_payment -> active
    active -> terminated | completed

``active`` has exactly one inbound edge, from ``awaiting_payment``, and only the
system may take it (via the activation gate in the coordinator).
"""

from rentflow.domain.enums import LeaseActor, LeaseStatus
from rentflow.domain.errors import Conflict


class InvalidTransitionError(Conflict):
    """Raised when a lease state transition is not allowed."""

    error_code = "invalid_transition"

    def __init__(
        self,
        current_status: LeaseStatus,
        target_status: LeaseStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["current_status"] = self.current_status.value
        detail["target_status"] = self.target_status.value
        return detail


# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_actors}
# ---------------------------------------------------------------------------

S = LeaseStatus
A = LeaseActor

TRANSITION_MAP: dict[LeaseStatus, dict[LeaseStatus, set[LeaseActor]]] = {
    S.DRAFT: {
        S.AWAITING_SIGNATURES: {A.SYSTEM},
    },
    S.AWAITING_SIGNATURES: {
        S.FULLY_SIGNED: {A.SYSTEM},
    },
    S.FULLY_SIGNED: {
        S.AWAITING_PAYMENT: {A.SYSTEM},
    },
    S.AWAITING_PAYMENT: {
        S.ACTIVE: {A.SYSTEM},
    },
    S.ACTIVE: {
        S.TERMINATED: {A.MANAGER},
        S.COMPLETED: {A.MANAGER, A.SYSTEM},
    },
}

TERMINAL_STATES: set[LeaseStatus] = {S.TERMINATED, S.COMPLETED}

# Signatures may still be collected only here
SIGNABLE_STATES: set[LeaseStatus] = {S.AWAITING_SIGNATURES}

# Terms and signatures are frozen from here on
IMMUTABLE_STATES: set[LeaseStatus] = {S.ACTIVE, S.TERMINATED, S.COMPLETED}


def validate_transition(
    current_status: LeaseStatus,
    target_status: LeaseStatus,
    actor: LeaseActor,
) -> bool:
    """Return True if the transition is valid. Raise InvalidTransitionError if not."""
    allowed_targets = TRANSITION_MAP.get(current_status)
    if allowed_targets is None:
        raise InvalidTransitionError(
            current_status,
            target_status,
            f"No transitions allowed from {current_status.value}",
        )

    if target_status not in allowed_targets:
        raise InvalidTransitionError(
            current_status,
            target_status,
            f"Transition from {current_status.value} to {target_status.value} is not allowed",
        )

    allowed_actors = allowed_targets[target_status]
    if actor not in allowed_actors:
        raise InvalidTransitionError(
            current_status,
            target_status,
            f"Actor {actor.value} is not permitted for this transition "
            f"(allowed: {', '.join(sorted(a.value for a in allowed_actors))})",
        )

    return True


def get_allowed_transitions(current_status: LeaseStatus) -> list[LeaseStatus]:
    """Return the statuses reachable from *current_status* in one step."""
    return list(TRANSITION_MAP.get(current_status, {}).keys())


def sources_of(target_status: LeaseStatus) -> set[LeaseStatus]:
    """Return every status with an edge into *target_status*."""
    return {
        source
        for source, targets in TRANSITION_MAP.items()
        if target_status in targets
    }
