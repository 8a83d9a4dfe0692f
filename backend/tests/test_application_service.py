"""Tests for application submission, scoring persistence and review."""

import pytest
from sqlalchemy import update

from rentflow.domain.enums import ApplicationStatus, ReviewDecision
from rentflow.domain.errors import Conflict, Forbidden, NotFound, ValidationError
from rentflow.domain.models import Property
from rentflow.domain.schemas import ApplicationCreate


def _payload(property_id: str, **overrides) -> ApplicationCreate:
    data = dict(
        property_id=property_id,
        monthly_income=7000,
        employment_status="employed",
        employer_name="Acme Corp",
        employment_years=3,
        previous_rental_years=2,
        reference_count=2,
        cover_letter="I have rented in this neighborhood for years. " * 4,
        reason_for_moving="Closer to work",
    )
    data.update(overrides)
    return ApplicationCreate(**data)


class TestSubmit:
    async def test_scores_and_persists(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )

        assert application.status == ApplicationStatus.SUBMITTED.value
        assert application.applicant_id == parties.tenant_id
        assert application.compatibility_score == 100
        assert application.risk_score == 17
        assert application.monthly_rent_at_scoring == 2000
        assert application.cover_letter_length > 100
        assert [f["factor"] for f in application.score_factors][0] == "income_to_rent_ratio"

    async def test_notifies_manager_with_summary(self, db_session, application_service, parties, notifier):
        await application_service.submit(db_session, parties.tenant, _payload(parties.property_id))

        notifier.application_submitted.assert_called_once()
        args = notifier.application_submitted.call_args.args
        assert args[0] == "manager@test.com"
        assert args[1] == "Taylor Tenant"
        assert args[3:] == (100, 17, "highly recommended")

    async def test_reports_every_missing_field(self, db_session, application_service, parties):
        with pytest.raises(ValidationError) as exc_info:
            await application_service.submit(
                db_session,
                parties.tenant,
                _payload("no-such-property", monthly_income=None, employment_status=None),
            )

        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any("Property" in e for e in errors)
        assert any("monthly_income" in e for e in errors)
        assert any("employment_status" in e for e in errors)

    async def test_rejects_zero_income(self, db_session, application_service, parties):
        with pytest.raises(ValidationError):
            await application_service.submit(
                db_session, parties.tenant, _payload(parties.property_id, monthly_income=0)
            )

    @pytest.mark.parametrize("income", [float("inf"), float("nan")])
    async def test_rejects_non_finite_income(self, db_session, application_service, parties, income):
        data = _payload(parties.property_id).model_dump()
        data["monthly_income"] = income

        with pytest.raises(ValidationError) as exc_info:
            await application_service.submit(
                db_session, parties.tenant, ApplicationCreate.model_construct(**data)
            )
        assert exc_info.value.errors == ["monthly_income must be a finite number greater than 0"]

    async def test_notification_failure_keeps_application(
        self, db_session, application_service, parties, notifier
    ):
        notifier.application_submitted.side_effect = RuntimeError("mailer down")

        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )

        stored = await application_service.get(db_session, parties.tenant, application.id)
        assert stored.status == ApplicationStatus.SUBMITTED.value

    async def test_rejects_unknown_employment_status(self, db_session, application_service, parties):
        with pytest.raises(ValidationError, match="Invalid application"):
            await application_service.submit(
                db_session, parties.tenant, _payload(parties.property_id, employment_status="astronaut")
            )

    async def test_managers_cannot_apply(self, db_session, application_service, parties):
        with pytest.raises(Forbidden):
            await application_service.submit(
                db_session, parties.manager, _payload(parties.property_id)
            )

    async def test_scores_are_not_recomputed_when_rent_changes(
        self, db_session, application_service, parties
    ):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        await db_session.execute(
            update(Property).where(Property.id == parties.property_id).values(monthly_rent=5000)
        )
        await db_session.commit()

        reviewed = await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.APPROVED
        )
        assert reviewed.compatibility_score == 100
        assert reviewed.risk_score == 17
        assert reviewed.monthly_rent_at_scoring == 2000


class TestReview:
    async def test_approve(self, db_session, application_service, parties, notifier):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        reviewed = await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.APPROVED, notes="Great fit"
        )

        assert reviewed.status == ApplicationStatus.APPROVED.value
        assert reviewed.reviewed_by == parties.manager_id
        assert reviewed.reviewed_at is not None
        assert reviewed.review_notes == "Great fit"
        notifier.application_reviewed.assert_called_once_with(
            "tenant@test.com", "Sunny 2BR on Elm", "approved"
        )

    async def test_notification_failure_keeps_decision(
        self, db_session, application_service, parties, notifier
    ):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        notifier.application_reviewed.side_effect = RuntimeError("mailer down")

        reviewed = await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.REJECTED
        )

        assert reviewed.status == ApplicationStatus.REJECTED.value

    async def test_reject_from_under_review(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        await application_service.mark_under_review(db_session, parties.manager, application.id)
        reviewed = await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.REJECTED
        )
        assert reviewed.status == ApplicationStatus.REJECTED.value

    async def test_only_property_manager_reviews(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        with pytest.raises(Forbidden):
            await application_service.review(
                db_session, parties.outsider, application.id, ReviewDecision.APPROVED
            )

    async def test_rejected_is_terminal(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.REJECTED
        )
        with pytest.raises(Conflict):
            await application_service.review(
                db_session, parties.manager, application.id, ReviewDecision.APPROVED
            )

    async def test_unknown_application(self, db_session, application_service, parties):
        with pytest.raises(NotFound):
            await application_service.review(
                db_session, parties.manager, "missing", ReviewDecision.APPROVED
            )


class TestWithdraw:
    async def test_applicant_withdraws(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        withdrawn = await application_service.withdraw(db_session, parties.tenant, application.id)
        assert withdrawn.status == ApplicationStatus.WITHDRAWN.value

    async def test_only_applicant_withdraws(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        with pytest.raises(Forbidden):
            await application_service.withdraw(db_session, parties.manager, application.id)

    async def test_cannot_withdraw_after_decision(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )
        await application_service.review(
            db_session, parties.manager, application.id, ReviewDecision.APPROVED
        )
        with pytest.raises(Conflict):
            await application_service.withdraw(db_session, parties.tenant, application.id)


class TestReads:
    async def test_visibility(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )

        assert (await application_service.get(db_session, parties.tenant, application.id)).id == application.id
        assert (await application_service.get(db_session, parties.manager, application.id)).id == application.id
        with pytest.raises(Forbidden):
            await application_service.get(db_session, parties.outsider, application.id)

    async def test_list_by_property_and_by_applicant(self, db_session, application_service, parties):
        application = await application_service.submit(
            db_session, parties.tenant, _payload(parties.property_id)
        )

        by_property = await application_service.list_applications(
            db_session, parties.manager, property_id=parties.property_id
        )
        mine = await application_service.list_applications(db_session, parties.tenant)
        assert [a.id for a in by_property] == [application.id]
        assert [a.id for a in mine] == [application.id]
        assert await application_service.list_applications(db_session, parties.outsider) == []

        with pytest.raises(Forbidden):
            await application_service.list_applications(
                db_session, parties.outsider, property_id=parties.property_id
            )
