"""
Pytest fixtures for the rental billing test suite.

Provides:
- A database session per test, rolled back at teardown
- Factories for properties, tenants and utility entries
- Service fixtures wired to a deterministic clock
- Structured log capture

Environment Variables:
- DATABASE_URL: connection URL for the test database.  Defaults to an
  in-memory SQLite database, so no server is needed; point it at
  PostgreSQL to exercise row locking and the production dialect.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from billing_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.dtos import AllocationMethod, BillingLimits, OccupancyStatus
from billing_kernel.domain.precision import PrecisionMath
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.models.property import Property
from billing_kernel.models.tenant import Tenant
from billing_kernel.models.utility_entry import UtilityEntry
from billing_kernel.services.allocation_service import AllocationService
from billing_kernel.services.audit_trail_service import BillingAuditService
from billing_kernel.services.billing_period_service import BillingPeriodService

DEFAULT_TEST_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, allocation_service):
            allocation_service.calculate_allocations(entry_id)
            logs = captured_logs()
            assert any(r["message"] == "allocations_replaced" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` only releases a savepoint and the outer
    transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def precision_math():
    return PrecisionMath()


@pytest.fixture
def limits():
    return BillingLimits()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def property_factory(session):
    """Create and flush a Property."""

    def _create(name: str = "Maple House", house_area: str | None = "120") -> Property:
        prop = Property(
            name=name,
            address="12 Maple Street",
            house_area=Decimal(house_area) if house_area else None,
        )
        session.add(prop)
        session.flush()
        return prop

    return _create


@pytest.fixture
def rental_property(property_factory):
    return property_factory()


@pytest.fixture
def tenant_factory(session, rental_property):
    """Create and flush a Tenant of ``rental_property`` unless another is given."""

    def _create(
        name: str = "Alex",
        move_in_date: date = date(2023, 1, 1),
        move_out_date: date | None = None,
        room_area: str = "20",
        number_of_people: int = 1,
        occupancy_status: OccupancyStatus = OccupancyStatus.ACTIVE,
        rent_amount: str = "600.00",
        property_id=None,
    ) -> Tenant:
        tenant = Tenant(
            property_id=property_id or rental_property.id,
            name=name,
            surname="Tester",
            room_area=Decimal(room_area),
            number_of_people=number_of_people,
            move_in_date=move_in_date,
            move_out_date=move_out_date,
            occupancy_status=occupancy_status.value,
            rent_amount=Decimal(rent_amount),
        )
        session.add(tenant)
        session.flush()
        return tenant

    return _create


@pytest.fixture
def utility_entry_factory(session, rental_property):
    """Insert a UtilityEntry row directly, without allocating it."""

    def _create(
        month: int = 6,
        year: int = 2024,
        utility_type: str = "electricity",
        total_amount: str = "100.00",
        allocation_method: AllocationMethod = AllocationMethod.PER_PERSON,
        property_id=None,
    ) -> UtilityEntry:
        entry = UtilityEntry(
            property_id=property_id or rental_property.id,
            month=month,
            year=year,
            utility_type=utility_type,
            total_amount=Decimal(total_amount),
            allocation_method=allocation_method.value,
        )
        session.add(entry)
        session.flush()
        return entry

    return _create


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def allocation_service(session, precision_math, limits):
    return AllocationService(session, math=precision_math, limits=limits)


@pytest.fixture
def audit_service(session, deterministic_clock):
    return BillingAuditService(session, clock=deterministic_clock)


@pytest.fixture
def billing_period_service(session, deterministic_clock, precision_math, limits,
                           allocation_service, audit_service):
    return BillingPeriodService(
        session,
        clock=deterministic_clock,
        math=precision_math,
        limits=limits,
        allocations=allocation_service,
        audit=audit_service,
    )
