from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401
from app.db import get_db_session
from app.logging_config import REQUEST_ID_HEADER
from app.main import app
from app.models.base import Base

SERVICE_KEY = "test-service-key"


def _test_session_factory(tmp_path):
    db_path = tmp_path / "api_endpoints.db"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def _override_db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(tmp_path, monkeypatch) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("RUN_STARTUP_JOBS", "0")
    monkeypatch.setenv("BILLING_SERVICE_KEY", SERVICE_KEY)
    SessionLocal = _test_session_factory(tmp_path)

    def override_get_db():
        yield from _override_db(SessionLocal)

    app.dependency_overrides[get_db_session] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def _member_payload(**overrides) -> dict[str, object]:
    payload: dict[str, object] = {
        "gym_id": "gym-1",
        "phone": "555 0100",
        "full_name": "Alex Member",
        "start_date": "2025-01-01",
        "end_date": "2025-03-31",
        "plan_type": "monthly",
        "initial_payment_status": "paid",
        "today": "2025-01-01",
    }
    payload.update(overrides)
    return payload


def test_health_and_request_id(client: TestClient) -> None:
    response = client.get("/api/health", headers={REQUEST_ID_HEADER: "abc123"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers[REQUEST_ID_HEADER] == "abc123"

    generated = client.get("/api/health")
    assert len(generated.headers[REQUEST_ID_HEADER]) == 32


def test_onboarding_creates_initial_cycle_and_reports_conflicts(client: TestClient) -> None:
    created = client.post("/api/members", json=_member_payload())
    assert created.status_code == 201
    body = created.json()
    assert body["outcome"] == "created"
    assert body["cycle"]["cycle_start"] == "2025-01-01"
    assert body["cycle"]["cycle_end"] == "2025-01-31"
    assert body["cycle"]["due_date"] == "2025-01-01"
    assert body["cycle"]["status"] == "paid"
    assert body["cycle"]["last_payment_date"] == "2025-01-01"

    same_gym = client.post("/api/members", json=_member_payload())
    assert same_gym.status_code == 409
    assert same_gym.json()["outcome"] == "conflict_same_gym"
    assert same_gym.json()["existing_member_id"] == body["member_id"]

    other_gym = client.post("/api/members", json=_member_payload(gym_id="gym-2"))
    assert other_gym.status_code == 409
    assert other_gym.json()["outcome"] == "conflict_other_gym"
    assert other_gym.json()["other_gym_count"] == 1

    cycles = client.get(f"/api/contracts/{body['contract_id']}/cycles")
    assert cycles.status_code == 200
    assert [row["cycle_start"] for row in cycles.json()] == ["2025-01-01"]

    missing = client.get("/api/contracts/9999/cycles")
    assert missing.status_code == 404


def test_onboarding_rejects_invalid_input(client: TestClient) -> None:
    bad_plan = client.post("/api/members", json=_member_payload(plan_type="weekly"))
    assert bad_plan.status_code == 400
    assert "Unsupported plan_type" in bad_plan.json()["detail"]

    bad_range = client.post("/api/members", json=_member_payload(end_date="2024-12-31"))
    assert bad_range.status_code == 400


def test_onboarding_database_failure_returns_500(client: TestClient, monkeypatch) -> None:
    def failing_onboard(*args, **kwargs):
        raise OperationalError("INSERT INTO members", {}, Exception("database is locked"))

    monkeypatch.setattr("app.routes.api.onboard_member", failing_onboard)

    response = client.post("/api/members", json=_member_payload())
    assert response.status_code == 500
    assert response.json() == {"detail": "member onboarding failed"}


def test_daily_sweep_requires_service_key(client: TestClient) -> None:
    no_header = client.post("/api/admin/run-daily-sweep", json={"today": "2025-02-01"})
    assert no_header.status_code == 401

    wrong = client.post(
        "/api/admin/run-daily-sweep",
        json={"today": "2025-02-01"},
        headers={"Authorization": "Bearer not-the-key"},
    )
    assert wrong.status_code == 401


def test_daily_sweep_rejects_everyone_without_configured_key(client: TestClient, monkeypatch) -> None:
    monkeypatch.setenv("BILLING_SERVICE_KEY", "")
    response = client.post(
        "/api/admin/run-daily-sweep",
        json={"today": "2025-02-01"},
        headers={"Authorization": "Bearer "},
    )
    assert response.status_code == 401


def test_daily_sweep_progresses_and_is_idempotent(client: TestClient) -> None:
    created = client.post("/api/members", json=_member_payload())
    contract_id = created.json()["contract_id"]
    headers = {"Authorization": f"Bearer {SERVICE_KEY}"}

    first = client.post("/api/admin/run-daily-sweep", json={"today": "2025-02-01"}, headers=headers)
    assert first.status_code == 200
    assert first.json() == {
        "today": "2025-02-01",
        "processed": 1,
        "created": 1,
        "expired_contracts": 0,
        "overdue_cycles": 0,
    }

    second = client.post("/api/admin/run-daily-sweep", json={"today": "2025-02-01"}, headers=headers)
    assert second.status_code == 200
    assert second.json()["created"] == 0

    cycles = client.get(f"/api/contracts/{contract_id}/cycles").json()
    assert [(row["cycle_start"], row["cycle_end"], row["status"]) for row in cycles] == [
        ("2025-01-01", "2025-01-31", "paid"),
        ("2025-02-01", "2025-02-28", "unpaid"),
    ]
