"""Integration tests for the admission API application."""

import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from admission.api.app import create_app
from admission.config import EngineSettings, HistoryPolicy
from admission.store import AdmissionStore


@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


@pytest.fixture
def seeded_batch_id(temp_db_path: str) -> str:
    """Seed a course, an open batch and a single-use FLAT100 coupon into the file database."""
    store = AdmissionStore(temp_db_path)
    course = store.create_course(name="Data Engineering")
    batch = store.create_batch(
        course_id=course.id,
        location="Pune",
        capacity=2,
        fee_amount="1000.00",
        enrollment_opens_at=datetime(2024, 1, 1),
        enrollment_closes_at=datetime(2999, 1, 1),
    )
    discount = store.create_discount(
        name="Flat 100", kind="generic", value_type="flat", value=100
    )
    store.create_coupon("FLAT100", discount.id, usage_limit_total=1)
    store.close()
    return batch.id


@pytest.fixture
def client(
    temp_db_path: str, seeded_batch_id: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    """Create a test client running the full lifespan against the file database."""
    monkeypatch.setenv("ADMISSION_LOG_DIR", str(tmp_path))
    app = create_app(EngineSettings(db_path=temp_db_path, history_policy=HistoryPolicy.COMPLETED))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    # Cleanup
    Path(temp_db_path).unlink(missing_ok=True)
    Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
    Path(f"{temp_db_path}-shm").unlink(missing_ok=True)


@pytest.mark.integration
class TestRegistrationFullFlow:
    """End-to-end flow through the HTTP adapter."""

    def test_register_confirm_cancel(self, client: TestClient, seeded_batch_id: str) -> None:
        """Create -> Read -> Confirm -> Cancel flow."""
        # 1. Create
        create_response = client.post(
            "/api/v1/registrations",
            json={
                "email": "Alice@Example.com",
                "name": "Alice",
                "phone": "9000000001",
                "batch_id": seeded_batch_id,
                "coupon_code": "flat100",
            },
        )
        assert create_response.status_code == 201
        data = create_response.json()["data"]
        assert Decimal(data["final_payable"]) == Decimal("900.00")
        registration_id = data["id"]

        # 2. Read
        get_response = client.get(f"/api/v1/registrations/{registration_id}")
        assert get_response.status_code == 200
        assert get_response.json()["data"]["status"] == "reserved"

        # 3. Confirm
        confirm_response = client.post(
            f"/api/v1/registrations/{registration_id}/confirm",
            json={"receipt_reference": "RCPT-1"},
        )
        assert confirm_response.status_code == 200
        assert confirm_response.json()["data"]["status"] == "confirmed"

        # 4. Cancel
        cancel_response = client.post(f"/api/v1/registrations/{registration_id}/cancel")
        assert cancel_response.status_code == 200
        assert cancel_response.json()["data"]["status"] == "cancelled"

        seats = client.get(f"/api/v1/batches/{seeded_batch_id}").json()["data"]
        assert seats["available_seats"] == 2

    def test_coupon_limit_persists_across_requests(
        self, client: TestClient, seeded_batch_id: str
    ) -> None:
        first = client.post(
            "/api/v1/registrations",
            json={
                "email": "alice@example.com",
                "name": "Alice",
                "batch_id": seeded_batch_id,
                "coupon_code": "FLAT100",
            },
        )
        assert first.status_code == 201

        second = client.post(
            "/api/v1/registrations",
            json={
                "email": "bob@example.com",
                "name": "Bob",
                "batch_id": seeded_batch_id,
                "coupon_code": "FLAT100",
            },
        )
        assert second.status_code == 422
        assert "usage limit" in second.json()["error"]


@pytest.mark.integration
def test_lifespan_reads_settings_from_environment(
    temp_db_path: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ADMISSION_DB_PATH", temp_db_path)
    monkeypatch.setenv("ADMISSION_LOG_DIR", str(tmp_path))
    app = create_app()

    with TestClient(app) as client:
        response = client.get("/api/v1/registrations/missing")

    assert response.status_code == 404
    assert Path(temp_db_path).exists()
    assert (tmp_path / "admission.log").exists()
    Path(temp_db_path).unlink(missing_ok=True)
    Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
    Path(f"{temp_db_path}-shm").unlink(missing_ok=True)
