"""Integration tests for concurrent admission against a file database."""

import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

import pytest

from admission.engine import RegistrationOrchestrator, StudentIdentity
from admission.exceptions import (
    AdmissionError,
    CapacityExceededError,
    ConcurrencyConflictError,
    CouponLimitReachedError,
    DuplicateActiveRegistrationError,
)
from admission.store import AdmissionStore


@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


@pytest.fixture
def file_store(temp_db_path: str) -> AdmissionStore:
    """Create an AdmissionStore backed by a temporary SQLite file."""
    s = AdmissionStore(temp_db_path, busy_timeout=30.0)
    yield s
    s.close()
    # Cleanup
    Path(temp_db_path).unlink(missing_ok=True)
    Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
    Path(f"{temp_db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def file_orchestrator(file_store: AdmissionStore) -> RegistrationOrchestrator:
    return RegistrationOrchestrator(store=file_store, clock=lambda: datetime(2024, 12, 1))


@pytest.fixture
def open_batch(file_store: AdmissionStore):
    """Factory for batches open for enrollment on 2024-12-01."""
    course = file_store.create_course(name="Data Engineering")

    def _make(capacity: int):
        return file_store.create_batch(
            course_id=course.id,
            location="Pune",
            capacity=capacity,
            fee_amount="1000.00",
            enrollment_opens_at=datetime(2024, 1, 1),
            enrollment_closes_at=datetime(2026, 1, 1),
        )

    return _make


def run_concurrently(attempts) -> tuple[list, list[AdmissionError]]:
    """Start every attempt at once; collect snapshots and errors."""
    barrier = threading.Barrier(len(attempts))

    def _run(attempt):
        barrier.wait()
        try:
            return attempt(), None
        except AdmissionError as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(attempts)) as pool:
        outcomes = list(pool.map(_run, attempts))

    successes = [snapshot for snapshot, _ in outcomes if snapshot is not None]
    errors = [error for _, error in outcomes if error is not None]
    return successes, errors


@pytest.mark.integration
class TestConcurrentAdmission:
    """Capacity and uniqueness hold under concurrent attempts."""

    def test_last_seat_goes_to_exactly_one_student(
        self, file_store: AdmissionStore, file_orchestrator: RegistrationOrchestrator, open_batch
    ) -> None:
        batch = open_batch(capacity=1)
        students = [
            StudentIdentity(email=f"student{i}@example.com", name=f"Student {i}") for i in range(2)
        ]

        successes, errors = run_concurrently(
            [lambda s=s: file_orchestrator.create_registration(s, batch.id) for s in students]
        )

        assert len(successes) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], CapacityExceededError | ConcurrencyConflictError)
        assert file_store.count_active_registrations(batch.id) == 1

    def test_capacity_never_exceeded(
        self, file_store: AdmissionStore, file_orchestrator: RegistrationOrchestrator, open_batch
    ) -> None:
        batch = open_batch(capacity=3)
        students = [
            StudentIdentity(email=f"student{i}@example.com", name=f"Student {i}") for i in range(8)
        ]

        successes, errors = run_concurrently(
            [lambda s=s: file_orchestrator.create_registration(s, batch.id) for s in students]
        )

        assert len(successes) == 3
        assert len(errors) == 5
        assert all(
            isinstance(e, CapacityExceededError | ConcurrencyConflictError) for e in errors
        )
        assert file_store.count_active_registrations(batch.id) == 3
        assert file_orchestrator.available_seats(batch.id) == 0

    def test_one_student_many_batches(
        self, file_store: AdmissionStore, file_orchestrator: RegistrationOrchestrator, open_batch
    ) -> None:
        batches = [open_batch(capacity=5) for _ in range(4)]
        alice = StudentIdentity(email="alice@example.com", name="Alice")

        successes, errors = run_concurrently(
            [lambda b=b: file_orchestrator.create_registration(alice, b.id) for b in batches]
        )

        assert len(successes) == 1
        assert all(
            isinstance(e, DuplicateActiveRegistrationError | ConcurrencyConflictError)
            for e in errors
        )
        student = file_store.get_student_by_email(alice.email)
        assert len(file_store.list_registrations(student_id=student.id)) == 1

    def test_single_use_coupon_consumed_once(
        self, file_store: AdmissionStore, file_orchestrator: RegistrationOrchestrator, open_batch
    ) -> None:
        batch = open_batch(capacity=10)
        discount = file_store.create_discount(
            name="One shot", kind="generic", value_type="flat", value=100
        )
        file_store.create_coupon("ONESHOT", discount.id, usage_limit_total=1)
        students = [
            StudentIdentity(email=f"student{i}@example.com", name=f"Student {i}") for i in range(4)
        ]

        successes, errors = run_concurrently(
            [
                lambda s=s: file_orchestrator.create_registration(
                    s, batch.id, coupon_code="ONESHOT"
                )
                for s in students
            ]
        )

        assert len(successes) == 1
        assert all(
            isinstance(e, CouponLimitReachedError | ConcurrencyConflictError) for e in errors
        )
        assert len(file_store.list_coupon_usages("ONESHOT")) == 1
        assert file_store.count_active_registrations(batch.id) == 1
