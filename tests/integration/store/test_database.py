"""Integration tests for the admission database."""

import sqlite3
import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import inspect, select, text
from sqlalchemy.exc import IntegrityError

from admission.exceptions import ConcurrencyConflictError
from admission.lifecycle import RegistrationStatus
from admission.store.database import Database
from admission.store.models import Batch, Course, Registration, Student


@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


@pytest.fixture
def database(temp_db_path: str) -> Database:
    """Create a database instance with tables."""
    db = Database(temp_db_path, busy_timeout=0.2)
    db.create_tables()
    yield db
    db.close()
    # Cleanup
    Path(temp_db_path).unlink(missing_ok=True)
    Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
    Path(f"{temp_db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def batch(database: Database) -> Batch:
    with database.unit_of_work() as session:
        course = Course(name="Data Engineering")
        session.add(course)
        session.flush()
        batch = Batch(
            course_id=course.id,
            location="Pune",
            capacity=5,
            fee_amount=Decimal("1000.00"),
            enrollment_opens_at=datetime(2024, 1, 1),
            enrollment_closes_at=datetime(2026, 1, 1),
        )
        session.add(batch)
    return batch


def reserve(session, batch: Batch, student: Student) -> Registration:
    registration = Registration(
        student_id=student.id,
        batch_id=batch.id,
        course_id=batch.course_id,
        base_fee=batch.fee_amount,
    )
    session.add(registration)
    return registration


@pytest.mark.integration
class TestDatabaseSetup:
    """Tests for database setup."""

    def test_database_creates_file(self, temp_db_path: str) -> None:
        """SQLite file created at specified path."""
        db = Database(temp_db_path)
        db.create_tables()
        assert Path(temp_db_path).exists()
        db.close()

    def test_database_creates_tables(self, database: Database) -> None:
        tables = set(inspect(database.engine).get_table_names())
        assert tables == {
            "courses",
            "batches",
            "students",
            "discounts",
            "coupons",
            "discount_assignments",
            "registrations",
            "coupon_usages",
        }

    def test_database_wal_mode(self, database: Database) -> None:
        """WAL mode is enabled."""
        assert database.is_wal_mode()

    def test_database_foreign_keys_enabled(self, database: Database) -> None:
        with database.engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_active_student_index_is_partial(self, database: Database) -> None:
        with database.engine.connect() as conn:
            sql = conn.execute(
                text("SELECT sql FROM sqlite_master WHERE name = 'uq_registrations_active_student'")
            ).scalar()

        assert "UNIQUE" in sql.upper()
        assert "status IN ('reserved', 'confirmed')" in sql


@pytest.mark.integration
class TestUnitOfWork:
    """Tests for transaction scope and error mapping."""

    def test_commits_on_success(self, database: Database, batch: Batch) -> None:
        with database.unit_of_work() as session:
            session.add(Student(email="alice@example.com", name="Alice"))

        with database.unit_of_work() as session:
            assert session.execute(select(Student)).scalar_one().email == "alice@example.com"

    def test_rolls_back_on_error(self, database: Database) -> None:
        with pytest.raises(RuntimeError), database.unit_of_work() as session:
            session.add(Student(email="alice@example.com", name="Alice"))
            session.flush()
            raise RuntimeError("boom")

        with database.unit_of_work() as session:
            assert session.execute(select(Student)).scalars().all() == []

    def test_second_active_registration_is_conflict(
        self, database: Database, batch: Batch
    ) -> None:
        with database.unit_of_work() as session:
            student = Student(email="alice@example.com", name="Alice")
            session.add(student)
            session.flush()
            reserve(session, batch, student)

        with pytest.raises(ConcurrencyConflictError), database.unit_of_work() as session:
            reserve(session, batch, student)

    def test_cancelled_registration_does_not_block(
        self, database: Database, batch: Batch
    ) -> None:
        with database.unit_of_work() as session:
            student = Student(email="alice@example.com", name="Alice")
            session.add(student)
            session.flush()
            first = reserve(session, batch, student)
            session.flush()
            first.transition_to(RegistrationStatus.CANCELLED, datetime(2024, 12, 1))
            session.flush()
            reserve(session, batch, student)

        with database.unit_of_work() as session:
            assert len(session.execute(select(Registration)).scalars().all()) == 2

    def test_foreign_key_violation_is_not_a_conflict(self, database: Database) -> None:
        with pytest.raises(IntegrityError), database.unit_of_work() as session:
            session.add(
                Batch(
                    course_id="missing",
                    location="Pune",
                    capacity=1,
                    fee_amount=Decimal("10"),
                    enrollment_opens_at=datetime(2024, 1, 1),
                    enrollment_closes_at=datetime(2025, 1, 1),
                )
            )

    def test_write_lock_contention_is_conflict(
        self, database: Database, temp_db_path: str
    ) -> None:
        holder = sqlite3.connect(temp_db_path, isolation_level=None)
        try:
            holder.execute("BEGIN IMMEDIATE")
            with pytest.raises(ConcurrencyConflictError), database.unit_of_work() as session:
                session.execute(select(Student)).all()
        finally:
            holder.execute("ROLLBACK")
            holder.close()
