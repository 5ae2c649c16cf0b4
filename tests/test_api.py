"""HTTP tests against the FastAPI app with the database dependency overridden."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from edumart.core.database import get_db
from edumart.main import app
from edumart.services import exchange_service, ledger_service


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_grant_then_summary(client, make_user) -> None:
    user_id = make_user().id

    response = client.post(
        f"/api/v1/users/{user_id}/points/grants",
        json={"amount": 10, "source": "purchase", "expiry_days": 365, "reason": "order 1"},
    )
    assert response.status_code == 201
    assert response.json()["new_balance"] == 10

    summary = client.get(f"/api/v1/users/{user_id}/points").json()
    assert summary["total_points"] == 10
    assert summary["active_grant_count"] == 1
    assert summary["active_grants"][0]["source"] == "purchase"

    current = client.get(f"/api/v1/users/{user_id}/memberships/current").json()
    assert current["tier"] == "points"


def test_invalid_amount_is_rejected_by_validation(client, make_user) -> None:
    user_id = make_user().id
    response = client.post(f"/api/v1/users/{user_id}/points/grants", json={"amount": 0, "reason": "x"})
    assert response.status_code == 422


def test_exchange_flow(client, make_user, catalog) -> None:
    user_id = make_user().id
    spring_id, autumn_id = catalog.g1_spring.id, catalog.g1_autumn.id
    english_id = catalog.m.english_cards.id
    client.post(f"/api/v1/users/{user_id}/points/grants", json={"amount": 10, "reason": "order 2"})

    created = client.post(f"/api/v1/users/{user_id}/exchanges", json={"semester_id": spring_id})
    assert created.status_code == 201
    assert created.json()["points_spent"] == 5
    assert created.json()["remaining_balance"] == 5

    again = client.post(f"/api/v1/users/{user_id}/exchanges", json={"semester_id": spring_id})
    assert again.status_code == 409

    short = client.post(f"/api/v1/users/{user_id}/exchanges", json={"semester_id": autumn_id})
    assert short.status_code == 400
    assert "Insufficient points" in short.json()["detail"]

    listed = client.get(f"/api/v1/users/{user_id}/exchanges").json()
    assert [item["semester_id"] for item in listed] == [spring_id]

    decisions = client.post(f"/api/v1/users/{user_id}/access/check", json={"material_ids": [english_id]}).json()
    assert decisions == [{"material_id": english_id, "granted": True, "reason": "direct"}]


def test_available_semesters(client, catalog) -> None:
    offers = client.get("/api/v1/semesters/available").json()
    prices = {offer["semester_id"]: offer["points_required"] for offer in offers}
    assert prices[catalog.g1_autumn.id] == 10
    assert prices[catalog.g1_spring.id] == 5


def test_membership_grant_and_history(client, make_user) -> None:
    user_id = make_user().id

    created = client.post(
        f"/api/v1/users/{user_id}/memberships",
        json={"tier": "primary_full", "duration_days": 365, "reason": "order 3"},
    )
    assert created.status_code == 201
    assert created.json()["tier"] == "primary_full"

    history = client.get(f"/api/v1/users/{user_id}/memberships").json()
    assert len(history) == 1
    assert history[0]["is_current"] is True


def test_unknown_user_returns_404(client) -> None:
    assert client.get("/api/v1/users/999/points").status_code == 404
    assert client.post("/api/v1/users/999/exchanges", json={"semester_id": 1}).status_code == 404
    response = client.post("/api/v1/users/999/access/check", json={"material_ids": [1]})
    assert response.status_code == 404


class _DeadlockDetected(Exception):
    pgcode = "40P01"


def test_lock_conflict_returns_retryable_409(client, make_user, monkeypatch) -> None:
    user_id = make_user().id

    def _deadlock(*_args, **_kwargs):
        raise OperationalError("SELECT ... FOR UPDATE", {}, _DeadlockDetected("deadlock detected"))

    monkeypatch.setattr(ledger_service, "lock_user", _deadlock)

    response = client.post(f"/api/v1/users/{user_id}/points/grants", json={"amount": 10, "reason": "order 4"})

    assert response.status_code == 409
    assert "retry" in response.json()["detail"]


def test_racing_duplicate_exchange_returns_409_and_keeps_points(client, make_user, catalog, monkeypatch) -> None:
    """The active-exchange index catches a second exchange that slipped past the pre-check."""
    user_id = make_user().id
    spring_id = catalog.g1_spring.id
    client.post(f"/api/v1/users/{user_id}/points/grants", json={"amount": 10, "reason": "order 5"})
    assert client.post(f"/api/v1/users/{user_id}/exchanges", json={"semester_id": spring_id}).status_code == 201

    monkeypatch.setattr(exchange_service, "_active_exchange", lambda *_args: None)
    response = client.post(f"/api/v1/users/{user_id}/exchanges", json={"semester_id": spring_id})

    assert response.status_code == 409
    assert "already exchanged" in response.json()["detail"]
    assert client.get(f"/api/v1/users/{user_id}/points").json()["total_points"] == 5
