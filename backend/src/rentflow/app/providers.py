"""Process-wide service instances, injected into routes with ``Depends``."""

from functools import lru_cache

from rentflow.services.application_service import ApplicationService
from rentflow.services.lease_coordinator import LeaseActivationCoordinator
from rentflow.services.notification_dispatcher import NotificationDispatcher


@lru_cache
def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher()


@lru_cache
def get_coordinator() -> LeaseActivationCoordinator:
    return LeaseActivationCoordinator(notifier=get_notifier())


@lru_cache
def get_application_service() -> ApplicationService:
    return ApplicationService(notifier=get_notifier())
