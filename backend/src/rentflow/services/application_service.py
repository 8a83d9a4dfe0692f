"""Application service - submission, scoring and review of rental applications.

Scores are computed exactly once, at submission, from the property's rent at
that moment; they are never recomputed. Status moves only through review
actions and applicant withdrawal:

    submitted -> under_review -> approved | rejected
    submitted | under_review -> withdrawn
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.config import get_settings
from rentflow.domain.enums import ApplicationStatus, EmploymentStatus, ReviewDecision, UserRole
from rentflow.domain.errors import Conflict, Forbidden, NotFound, ValidationError
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.models import Application, Property, User
from rentflow.domain.schemas import ApplicationCreate
from rentflow.services import scoring_engine
from rentflow.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

APPLICANT_ROLES = {UserRole.PROSPECTIVE_TENANT, UserRole.TENANT}

REVIEWABLE = [ApplicationStatus.SUBMITTED.value, ApplicationStatus.UNDER_REVIEW.value]


def to_score_input(application: Application) -> scoring_engine.ApplicationInput:
    return scoring_engine.ApplicationInput(
        monthly_income=application.monthly_income,
        monthly_rent=application.monthly_rent_at_scoring,
        employment_years=application.employment_years or 0,
        previous_rental_years=application.previous_rental_years or 0,
        reference_count=application.reference_count or 0,
        cover_letter_length=application.cover_letter_length or 0,
        employment_status=application.employment_status,
    )


def analysis_for(application: Application) -> dict:
    """Analysis block shown to the manager alongside the stored scores."""
    return scoring_engine.analyze(to_score_input(application), application.compatibility_score)


class ApplicationService:
    """Persists and reviews applications. All methods commit their own changes."""

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        baseline: Optional[int] = None,
    ):
        self.notifier = notifier or NotificationDispatcher()
        self.baseline = baseline if baseline is not None else get_settings().scoring_baseline

    async def submit(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        data: ApplicationCreate,
    ) -> Application:
        """Validate, score and persist a new application.

        Raises:
            Forbidden: Caller is not an applicant.
            ValidationError: Unknown property or missing required fields; all
                problems are reported together.
        """
        if caller.role not in APPLICANT_ROLES:
            raise Forbidden("Only tenants and prospective tenants may apply")

        result = await db.execute(select(Property).where(Property.id == data.property_id))
        prop = result.scalar_one_or_none()

        errors = []
        if prop is None:
            errors.append(f"Property {data.property_id} not found")
        if data.monthly_income is None or not math.isfinite(data.monthly_income) or data.monthly_income <= 0:
            errors.append("monthly_income must be a finite number greater than 0")
        if not data.employment_status:
            errors.append("employment_status is required")
        elif data.employment_status not in {s.value for s in EmploymentStatus}:
            errors.append(f"Unknown employment_status {data.employment_status!r}")
        if errors:
            raise ValidationError("Invalid application", errors)

        cover_letter_length = len(data.cover_letter or "")
        scored = scoring_engine.score(
            scoring_engine.ApplicationInput(
                monthly_income=data.monthly_income,
                monthly_rent=prop.monthly_rent,
                employment_years=data.employment_years,
                previous_rental_years=data.previous_rental_years,
                reference_count=data.reference_count,
                cover_letter_length=cover_letter_length,
                employment_status=data.employment_status,
            ),
            baseline=self.baseline,
        )

        application = Application(
            id=str(uuid.uuid4()),
            property_id=prop.id,
            applicant_id=caller.user_id,
            monthly_income=data.monthly_income,
            employment_status=data.employment_status,
            employer_name=data.employer_name,
            employment_years=data.employment_years,
            previous_rental_years=data.previous_rental_years,
            reference_count=data.reference_count,
            cover_letter=data.cover_letter,
            cover_letter_length=cover_letter_length,
            reason_for_moving=data.reason_for_moving,
            requested_move_in_date=data.requested_move_in_date,
            monthly_rent_at_scoring=prop.monthly_rent,
            compatibility_score=scored.compatibility_score,
            risk_score=scored.risk_score,
            score_factors=scored.factors_as_dicts(),
            status=ApplicationStatus.SUBMITTED.value,
        )
        db.add(application)
        await db.commit()
        await db.refresh(application)

        logger.info(
            "Application %s submitted for property %s: compatibility=%d risk=%d",
            application.id,
            prop.id,
            scored.compatibility_score,
            scored.risk_score,
        )

        try:
            manager_email, applicant_name = await self._manager_email_and_applicant(db, prop, caller.user_id)
            self.notifier.application_submitted(
                manager_email,
                applicant_name,
                prop.title,
                scored.compatibility_score,
                scored.risk_score,
                scored.band.value,
            )
        except Exception:
            logger.warning("Submission notification for application %s failed", application.id, exc_info=True)
        return application

    async def review(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
        decision: ReviewDecision,
        notes: Optional[str] = None,
    ) -> Application:
        """Approve or reject an application. Scores are left untouched."""
        application, prop = await self._load_for_manager(db, caller, application_id)
        application = await self._transition(
            db,
            application,
            from_statuses=REVIEWABLE,
            to_status=ApplicationStatus(decision.value),
            extra={
                "reviewed_by": caller.user_id,
                "reviewed_at": datetime.now(timezone.utc),
                "review_notes": notes,
            },
        )

        try:
            result = await db.execute(select(User.email).where(User.id == application.applicant_id))
            self.notifier.application_reviewed(result.scalar_one_or_none(), prop.title, decision.value)
        except Exception:
            logger.warning("Review notification for application %s failed", application.id, exc_info=True)
        return application

    async def mark_under_review(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
    ) -> Application:
        application, _ = await self._load_for_manager(db, caller, application_id)
        return await self._transition(
            db,
            application,
            from_statuses=[ApplicationStatus.SUBMITTED.value],
            to_status=ApplicationStatus.UNDER_REVIEW,
        )

    async def withdraw(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
    ) -> Application:
        application = await self._get(db, application_id)
        if application.applicant_id != caller.user_id:
            raise Forbidden("Only the applicant may withdraw an application")
        return await self._transition(
            db,
            application,
            from_statuses=REVIEWABLE,
            to_status=ApplicationStatus.WITHDRAWN,
        )

    async def get(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
    ) -> Application:
        application = await self._get(db, application_id)
        if caller.is_system or caller.user_id == application.applicant_id:
            return application
        prop = await self._get_property(db, application.property_id)
        if caller.user_id != prop.manager_id:
            raise Forbidden("Only the applicant or the property's manager may view this application")
        return application

    async def list_applications(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        property_id: Optional[str] = None,
    ) -> list[Application]:
        """Applications for a managed property, or the caller's own applications."""
        query = select(Application).order_by(Application.created_at.desc())
        if property_id:
            prop = await self._get_property(db, property_id)
            if caller.user_id != prop.manager_id and not caller.is_system:
                raise Forbidden("Only the property's manager may list its applications")
            query = query.where(Application.property_id == property_id)
        elif not caller.is_system:
            query = query.where(Application.applicant_id == caller.user_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _transition(
        self,
        db: AsyncSession,
        application: Application,
        from_statuses: list[str],
        to_status: ApplicationStatus,
        extra: Optional[dict] = None,
    ) -> Application:
        """Conditional status UPDATE; Conflict if the application moved on."""
        application_id = application.id
        previous = application.status
        if application.status not in from_statuses:
            raise Conflict(
                f"Application {application.id} is {application.status}; "
                f"cannot move to {to_status.value}"
            )
        result = await db.execute(
            update(Application)
            .where(Application.id == application_id, Application.status.in_(from_statuses))
            .values(status=to_status.value, **(extra or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise Conflict(f"Application {application_id} changed concurrently; reload and retry")
        await db.commit()

        application = await self._get(db, application_id)
        logger.info("Application %s: %s -> %s", application_id, previous, to_status.value)
        return application

    async def _get(self, db: AsyncSession, application_id: str) -> Application:
        result = await db.execute(
            select(Application)
            .where(Application.id == application_id)
            .execution_options(populate_existing=True)
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFound(f"Application {application_id} not found")
        return application

    async def _get_property(self, db: AsyncSession, property_id: str) -> Property:
        result = await db.execute(select(Property).where(Property.id == property_id))
        prop = result.scalar_one_or_none()
        if prop is None:
            raise NotFound(f"Property {property_id} not found")
        return prop

    async def _load_for_manager(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
    ) -> tuple[Application, Property]:
        application = await self._get(db, application_id)
        prop = await self._get_property(db, application.property_id)
        if caller.user_id != prop.manager_id:
            raise Forbidden("Only the property's manager may review this application")
        return application, prop

    async def _manager_email_and_applicant(
        self,
        db: AsyncSession,
        prop: Property,
        applicant_id: str,
    ) -> tuple[Optional[str], str]:
        result = await db.execute(
            select(User.id, User.email, User.name).where(User.id.in_([prop.manager_id, applicant_id]))
        )
        rows = {row.id: row for row in result}
        manager = rows.get(prop.manager_id)
        applicant = rows.get(applicant_id)
        return (
            manager.email if manager else None,
            applicant.name if applicant else "An applicant",
        )
