"""Caller identity passed explicitly into every workflow operation."""

from dataclasses import dataclass

from rentflow.domain.enums import UserRole


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated party on whose behalf an operation runs."""

    user_id: str
    role: UserRole

    @classmethod
    def from_user(cls, user) -> "CallerIdentity":
        return cls(user_id=user.id, role=UserRole(user.role))

    @property
    def is_system(self) -> bool:
        """Automated agents (payment callbacks, schedulers) act as the system."""
        return self.role == UserRole.AI_AGENT
