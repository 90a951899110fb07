"""Shared pytest fixtures and configuration."""

from datetime import datetime
from decimal import Decimal

import pytest

from admission.engine import RegistrationOrchestrator, StudentIdentity
from admission.store import AdmissionStore


# Register custom markers
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: fast tests with no external dependencies")
    config.addinivalue_line("markers", "integration: component interaction tests")


class FakeClock:
    """Settable clock injected into the orchestrator."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# Shared fixtures


@pytest.fixture
def store() -> AdmissionStore:
    """Create an in-memory AdmissionStore."""
    s = AdmissionStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2024-12-01 00:00 UTC."""
    return FakeClock(datetime(2024, 12, 1))


@pytest.fixture
def orchestrator(store: AdmissionStore, clock: FakeClock) -> RegistrationOrchestrator:
    """Create a RegistrationOrchestrator over the in-memory store."""
    return RegistrationOrchestrator(store=store, clock=clock)


@pytest.fixture
def course(store: AdmissionStore):
    """Create a test course."""
    return store.create_course(name="Data Engineering", description="Evening course")


@pytest.fixture
def make_batch(store: AdmissionStore, course):
    """Factory for batches open from 2024-01-01 to 2026-01-01."""

    def _make(
        capacity: int = 10,
        fee: str = "1000.00",
        is_active: bool = True,
        opens: datetime = datetime(2024, 1, 1),
        closes: datetime = datetime(2026, 1, 1),
    ):
        return store.create_batch(
            course_id=course.id,
            location="Pune",
            capacity=capacity,
            fee_amount=Decimal(fee),
            enrollment_opens_at=opens,
            enrollment_closes_at=closes,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def batch(make_batch):
    """Create a test batch with capacity 10 and fee 1000."""
    return make_batch()


@pytest.fixture
def alice() -> StudentIdentity:
    return StudentIdentity(email="alice@example.com", name="Alice", phone="9000000001")


@pytest.fixture
def bob() -> StudentIdentity:
    return StudentIdentity(email="bob@example.com", name="Bob", phone="9000000002")
