"""Shared test infrastructure for the RentFlow test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- session_factory: file-backed session factory for multi-session concurrency tests
- notifier: mock NotificationDispatcher recording every notification
- gateway: mock payment/signing collaborator
- coordinator / application_service: services wired to the mocks
- make_user, make_property, make_application: row factories
- parties: a manager, a prospective tenant and a property, with callers
- open_lease: a lease awaiting signatures between ``parties``
"""

import uuid
from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from rentflow.infra.database import Base
import rentflow.domain.models  # noqa: F401

from rentflow.domain.enums import UserRole
from rentflow.domain.models import Application, Property, User
from rentflow.infra.payment_gateway import PaymentSigningClient
from rentflow.services.application_service import ApplicationService
from rentflow.services.lease_coordinator import LeaseActivationCoordinator
from rentflow.services.lease_locks import LeaseLockRegistry
from rentflow.services.notification_dispatcher import NotificationDispatcher

from lease_helpers import caller_for


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite session factory.

    Each session gets its own connection, so concurrent coroutines really
    contend at the database the way separate requests do.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'rentflow-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    """Mock NotificationDispatcher; inspect calls via e.g. ``notifier.lease_activated``."""
    return MagicMock(spec=NotificationDispatcher)


@pytest.fixture
def gateway():
    """Mock payment/signing collaborator with successful default responses."""
    mock = MagicMock(spec=PaymentSigningClient)
    mock.initiate_signature = AsyncMock(
        return_value={"signature": "0xsig-from-wallet", "signer_address": "0xwallet"}
    )
    mock.initiate_payment = AsyncMock(return_value={"settlement_reference": "pay-ref-1"})
    return mock


@pytest.fixture
def coordinator(notifier, gateway):
    return LeaseActivationCoordinator(
        notifier=notifier,
        gateway=gateway,
        locks=LeaseLockRegistry(),
    )


@pytest.fixture
def application_service(notifier):
    return ApplicationService(notifier=notifier, baseline=50)


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User row.

    Usage:
        user = await make_user(role="manager")
    """
    async def _factory(
        role: str = UserRole.PROSPECTIVE_TENANT.value,
        name: str = "Test User",
        email: str | None = None,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:10]}@test.com",
            password_hash="not-a-real-hash",
            name=name,
            role=role,
            is_active=True,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_property(db_session):
    """Factory that creates a Property row managed by *manager_id*."""
    async def _factory(
        manager_id: str,
        title: str = "Sunny 2BR on Elm",
        monthly_rent: float = 2000.0,
        security_deposit: float = 3000.0,
        rent_due_day: int | None = 1,
        lease_term_months: int | None = 12,
    ) -> Property:
        prop = Property(
            id=str(uuid.uuid4()),
            manager_id=manager_id,
            title=title,
            address="12 Elm St",
            city="Austin",
            state="TX",
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            rent_due_day=rent_due_day,
            lease_term_months=lease_term_months,
        )
        db_session.add(prop)
        await db_session.flush()
        return prop

    return _factory


@pytest.fixture
def make_application(db_session):
    """Factory that inserts an Application row directly, bypassing scoring."""
    async def _factory(
        property_id: str,
        applicant_id: str,
        status: str = "approved",
        requested_move_in_date: date | None = None,
    ) -> Application:
        application = Application(
            id=str(uuid.uuid4()),
            property_id=property_id,
            applicant_id=applicant_id,
            monthly_income=7000.0,
            employment_status="employed",
            employment_years=3,
            previous_rental_years=2,
            reference_count=2,
            cover_letter_length=150,
            requested_move_in_date=requested_move_in_date,
            monthly_rent_at_scoring=2000.0,
            compatibility_score=100,
            risk_score=17,
            score_factors=[],
            status=status,
        )
        db_session.add(application)
        await db_session.flush()
        return application

    return _factory


# ---------------------------------------------------------------------------
# Leasing scenario fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def parties(db_session, make_user, make_property):
    """Manager, prospective tenant, an outsider and a property; ids captured up front."""
    manager = await make_user(role="manager", name="Morgan Manager", email="manager@test.com")
    tenant = await make_user(name="Taylor Tenant", email="tenant@test.com")
    outsider = await make_user(name="Olive Outsider", email="outsider@test.com")
    system = await make_user(role="ai_agent", name="Payments Bot", email="bot@test.com")
    prop = await make_property(manager_id=manager.id)
    # Committed so a rolled-back workflow transaction cannot take the fixtures with it
    await db_session.commit()
    return SimpleNamespace(
        manager_id=manager.id,
        tenant_id=tenant.id,
        outsider_id=outsider.id,
        property_id=prop.id,
        manager=caller_for(manager),
        tenant=caller_for(tenant),
        outsider=caller_for(outsider),
        system=caller_for(system),
    )


@pytest.fixture
async def open_lease(db_session, coordinator, parties):
    """Id of a manual lease awaiting signatures, starting in the future."""
    lease = await coordinator.create_manual_lease(
        db_session,
        parties.manager,
        property_id=parties.property_id,
        tenant_id=parties.tenant_id,
        start_date=date.today() + timedelta(days=30),
    )
    return lease.id

