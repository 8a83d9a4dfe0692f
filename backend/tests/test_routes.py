"""HTTP-level tests: the full leasing journey through the API.

Uses a fresh FastAPI app wired to the test session and to services built
around mocked collaborators.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.error_handlers import register_error_handlers
from rentflow.app.providers import get_application_service, get_coordinator
from rentflow.app.routes.applications import router as applications_router
from rentflow.app.routes.auth import router as auth_router
from rentflow.app.routes.leases import router as leases_router
from rentflow.app.routes.payments import router as payments_router
from rentflow.app.routes.users import router as users_router
from rentflow.domain.errors import UpstreamFailure
from rentflow.infra.database import get_db
from rentflow.services.auth_service import create_access_token


def _build_app_client(db_session: AsyncSession, coordinator, application_service):
    """Build an HTTPX AsyncClient wired to a test FastAPI app."""
    test_app = FastAPI()
    register_error_handlers(test_app)
    for router in (auth_router, users_router, applications_router, leases_router, payments_router):
        test_app.include_router(router)

    async def _override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = _override_get_db
    test_app.dependency_overrides[get_coordinator] = lambda: coordinator
    test_app.dependency_overrides[get_application_service] = lambda: application_service

    return AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://testserver",
    )


def _auth(caller) -> dict:
    token = create_access_token(caller.user_id, caller.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(db_session, coordinator, application_service):
    async with _build_app_client(db_session, coordinator, application_service) as c:
        yield c


APPLICATION = {
    "monthly_income": 7000,
    "employment_status": "employed",
    "employer_name": "Acme Corp",
    "employment_years": 3,
    "previous_rental_years": 2,
    "reference_count": 2,
    "cover_letter": "Quiet, tidy, and I have rented in this neighborhood for many years now. " * 2,
}


class TestLeasingJourney:
    """Application through activation, including the tenant role change."""

    async def test_application_to_active_lease(self, client, parties):
        # Apply
        resp = await client.post(
            "/api/applications",
            json={"property_id": parties.property_id, **APPLICATION},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 201
        application = resp.json()
        assert application["compatibility_score"] == 100
        assert application["risk_score"] == 17
        assert application["analysis"]["recommendation"] == "highly recommended"
        assert application["analysis"]["employment_stability"] == "Stable"

        # Approve
        resp = await client.post(
            f"/api/applications/{application['id']}/review",
            json={"decision": "approved"},
            headers=_auth(parties.manager),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        # Generate
        resp = await client.post(
            "/api/leases/generate",
            json={"application_id": application["id"], "start_date": "2030-07-01"},
            headers=_auth(parties.manager),
        )
        assert resp.status_code == 201
        lease = resp.json()
        lease_id = lease["id"]
        assert lease["status"] == "awaiting_signatures"
        assert lease["requires_payment"] is False

        # Sign
        for caller, party in ((parties.manager, "manager"), (parties.tenant, "tenant")):
            resp = await client.post(
                f"/api/leases/{lease_id}/sign",
                json={
                    "party": party,
                    "signature": f"0x{party}-sig",
                    "signer_address": f"0x{party}",
                    "wallet": {"type": "external", "address": f"0x{party}"},
                },
                headers=_auth(caller),
            )
            assert resp.status_code == 200
        lease = resp.json()
        assert lease["status"] == "awaiting_payment"
        assert lease["requires_payment"] is True
        assert lease["outstanding_requirements"] == ["security_deposit", "first_month_rent"]

        # Obligations
        resp = await client.get(
            f"/api/leases/{lease_id}/payment-obligations", headers=_auth(parties.tenant)
        )
        assert resp.status_code == 200
        obligations = {o["obligation_type"]: o for o in resp.json()}
        assert set(obligations) == {"security_deposit", "first_month_rent"}

        # Settle deposit
        resp = await client.post(
            f"/api/payment-obligations/{obligations['security_deposit']['id']}/settle",
            json={"settlement_reference": "tx-1"},
            headers=_auth(parties.system),
        )
        assert resp.status_code == 200
        assert resp.json()["lease_activated"] is False
        assert resp.json()["lease"]["outstanding_requirements"] == ["first_month_rent"]

        # Settle rent
        resp = await client.post(
            f"/api/payment-obligations/{obligations['first_month_rent']['id']}/settle",
            json={"settlement_reference": "tx-2"},
            headers=_auth(parties.system),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["lease_activated"] is True
        assert body["lease"]["status"] == "active"

        # Role change is visible
        resp = await client.get(f"/api/users/{parties.tenant_id}", headers=_auth(parties.tenant))
        assert resp.status_code == 200
        assert resp.json()["role"] == "tenant"

        resp = await client.get(f"/api/leases/{lease_id}/events", headers=_auth(parties.manager))
        assert resp.status_code == 200
        assert [e["event_type"] for e in resp.json()][-2:] == ["activated", "role_transitioned"]


class TestErrorResponses:
    async def test_activation_with_outstanding_items_is_412(self, client, parties, open_lease):
        resp = await client.post(f"/api/leases/{open_lease}/activate", headers=_auth(parties.manager))

        assert resp.status_code == 412
        detail = resp.json()["detail"]
        assert detail["error"] == "precondition_failed"
        assert detail["outstanding"] == [
            "manager_signature",
            "tenant_signature",
            "security_deposit",
            "first_month_rent",
        ]

    async def test_signing_for_the_other_party_is_403(self, client, parties, open_lease):
        resp = await client.post(
            f"/api/leases/{open_lease}/sign",
            json={"party": "manager", "signature": "0xfake", "signer_address": "0xfake"},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 403
        assert resp.json()["detail"]["error"] == "forbidden"

    async def test_conflicting_signature_is_409(self, client, parties, open_lease):
        body = {"party": "tenant", "signature": "0xa", "signer_address": "0xtenant"}
        first = await client.post(f"/api/leases/{open_lease}/sign", json=body, headers=_auth(parties.tenant))
        assert first.status_code == 200

        resp = await client.post(
            f"/api/leases/{open_lease}/sign",
            json={**body, "signature": "0xb"},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "conflict"

    async def test_unknown_lease_is_404(self, client, parties):
        resp = await client.get("/api/leases/nope", headers=_auth(parties.manager))
        assert resp.status_code == 404

    async def test_upstream_failure_is_502_with_guidance(self, client, parties, open_lease, gateway):
        gateway.initiate_signature.side_effect = UpstreamFailure("signer offline", "try again shortly")
        resp = await client.post(
            f"/api/leases/{open_lease}/sign/initiate",
            json={"party": "tenant", "wallet": {"type": "circle", "wallet_id": "w1", "address": "0xt"}},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 502
        assert resp.json()["detail"]["retry_guidance"] == "try again shortly"

    async def test_unknown_wallet_type_is_422(self, client, parties, open_lease):
        resp = await client.post(
            f"/api/leases/{open_lease}/sign/initiate",
            json={"party": "tenant", "wallet": {"type": "paper", "address": "0xt"}},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 422

    async def test_missing_application_fields_are_all_reported(self, client, parties):
        resp = await client.post(
            "/api/applications",
            json={"property_id": parties.property_id},
            headers=_auth(parties.tenant),
        )
        assert resp.status_code == 422
        errors = resp.json()["detail"]["errors"]
        assert len(errors) == 2

    @pytest.mark.parametrize("literal", ["Infinity", "NaN"])
    async def test_non_finite_income_is_422(self, client, parties, literal):
        body = (
            f'{{"property_id": "{parties.property_id}", "monthly_income": {literal}, '
            f'"employment_status": "employed"}}'
        )
        resp = await client.post(
            "/api/applications",
            content=body,
            headers={**_auth(parties.tenant), "Content-Type": "application/json"},
        )

        assert resp.status_code == 422
        errors = resp.json()["detail"]
        assert errors[0]["loc"] == ["body", "monthly_income"]
        assert "input" not in errors[0]

        listed = await client.get(
            f"/api/applications?property_id={parties.property_id}", headers=_auth(parties.manager)
        )
        assert listed.json() == []

    async def test_requires_token(self, client, open_lease):
        resp = await client.get(f"/api/leases/{open_lease}")
        assert resp.status_code == 401


class TestAuthRoutes:
    async def test_signup_login_me(self, client):
        resp = await client.post(
            "/api/auth/signup",
            json={"email": "New@Test.com", "password": "s3cret-pass", "name": "New Applicant"},
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["role"] == "prospective_tenant"

        resp = await client.post(
            "/api/auth/login", json={"email": "new@test.com", "password": "s3cret-pass"}
        )
        assert resp.status_code == 200
        token = resp.json()["access_token"]

        resp = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "new@test.com"

    async def test_tenant_role_cannot_be_self_assigned(self, client):
        resp = await client.post(
            "/api/auth/signup",
            json={"email": "x@test.com", "password": "pw", "name": "X", "role": "tenant"},
        )
        assert resp.status_code == 400

    async def test_users_cannot_read_each_other(self, client, parties):
        resp = await client.get(f"/api/users/{parties.manager_id}", headers=_auth(parties.tenant))
        assert resp.status_code == 403
