"""Notification Dispatcher - fire-and-forget messages about workflow progress.

Every public method schedules delivery on a background task and returns
immediately. Delivery failures are logged and swallowed; they never roll back
or block the transition that triggered them.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional

from rentflow.services import email_service

logger = logging.getLogger(__name__)

Sender = Callable[[str, str, str], Awaitable[bool]]


class NotificationDispatcher:
    """Sends leasing notifications by email."""

    def __init__(self, sender: Optional[Sender] = None):
        self._sender = sender or email_service.send_email
        # Prevent GC from collecting tasks before they finish
        self._background_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def application_submitted(
        self,
        manager_email: Optional[str],
        applicant_name: str,
        property_title: str,
        compatibility_score: int,
        risk_score: int,
        recommendation: str,
    ) -> None:
        summary = (
            f"{applicant_name} applied for {property_title}. "
            f"Compatibility score: {compatibility_score}/100, "
            f"risk score: {risk_score}/100 ({recommendation})."
        )
        self._dispatch(
            "application_submitted",
            [manager_email],
            f"New application for {property_title}",
            "New rental application",
            [summary],
        )

    def application_reviewed(
        self,
        applicant_email: Optional[str],
        property_title: str,
        decision: str,
    ) -> None:
        self._dispatch(
            "application_reviewed",
            [applicant_email],
            f"Your application for {property_title} was {decision}",
            "Application update",
            [f"Your application for {property_title} has been {decision}."],
        )

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def lease_fully_signed(self, recipients: Iterable[Optional[str]], lease_id: str) -> None:
        self._dispatch(
            "lease_fully_signed",
            recipients,
            "Your lease is fully signed",
            "Lease fully signed",
            [f"Both parties have signed lease {lease_id}."],
        )

    def payment_required(
        self,
        tenant_email: Optional[str],
        lease_id: str,
        obligations: list[dict],
    ) -> None:
        lines = [f"Lease {lease_id} needs the following payments before it can activate:"]
        for item in obligations:
            lines.append(
                f"{item['obligation_type'].replace('_', ' ')}: "
                f"${item['amount']:,.2f} due {item['due_date']}"
            )
        self._dispatch(
            "payment_required",
            [tenant_email],
            "Payment required to activate your lease",
            "Payment required",
            lines,
        )

    def lease_activated(self, recipients: Iterable[Optional[str]], lease_id: str) -> None:
        self._dispatch(
            "lease_activated",
            recipients,
            "Your lease is now active",
            "Lease active",
            [f"All payments are settled and lease {lease_id} is now active."],
        )

    def lease_terminated(
        self,
        recipients: Iterable[Optional[str]],
        lease_id: str,
        reason: str,
    ) -> None:
        self._dispatch(
            "lease_terminated",
            recipients,
            "Your lease has been terminated",
            "Lease terminated",
            [f"Lease {lease_id} was terminated.", f"Reason: {reason}"],
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every in-flight delivery (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _dispatch(
        self,
        kind: str,
        recipients: Iterable[Optional[str]],
        subject: str,
        title: str,
        lines: list[str],
    ) -> None:
        addresses = [r for r in recipients if r]
        if not addresses:
            logger.info("Notification %s has no recipients; skipped", kind)
            return
        html_body = email_service.render_html(title, lines)
        task = asyncio.create_task(self._deliver(kind, addresses, subject, html_body))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _deliver(
        self,
        kind: str,
        addresses: list[str],
        subject: str,
        html_body: str,
    ) -> None:
        for address in addresses:
            try:
                await self._sender(address, subject, html_body)
            except Exception:
                logger.warning(
                    "Notification %s to %s failed", kind, address, exc_info=True
                )
