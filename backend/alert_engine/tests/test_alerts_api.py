from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import func, select

from alert_engine.alerts.catalog import DEFAULT_ALERT_TYPES, seed_alert_types
from alert_engine.api.deps import get_premium_oracle, get_push_transport
from alert_engine.db.base import Base
from alert_engine.db.models import AlertHistory, ScheduledAlert
from alert_engine.db.session import configure_engine, get_engine, get_session_factory
from alert_engine.main import app

CRON_SECRET = "cron-secret-for-tests"
SESSION_SECRET = "session-secret-for-tests"


def _auth(user_id: str) -> dict[str, str]:
    token = jwt.encode({"sub": user_id}, SESSION_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


SERVICE = {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture()
def client(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, transport, premium_oracle
) -> Iterator[TestClient]:
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("SESSION_SECRET", SESSION_SECRET)
    monkeypatch.setenv("PUSH_DRY_RUN", "true")
    monkeypatch.setenv("DEFAULT_TIMEZONE", "UTC")
    monkeypatch.setenv("MAX_PENDING_PER_USER", "50")
    monkeypatch.setenv("DISPATCH_WORKERS", "1")
    monkeypatch.delenv("PREMIUM_USER_IDS", raising=False)
    monkeypatch.delenv("ENTITLEMENT_BASE_URL", raising=False)

    configure_engine(f"sqlite:///{tmp_path / 'test_alerts_api.db'}")
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with get_session_factory()() as session:
        seed_alert_types(session)

    app.dependency_overrides[get_push_transport] = lambda: transport
    app.dependency_overrides[get_premium_oracle] = lambda: premium_oracle
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

    Base.metadata.drop_all(bind=engine)


def _future(hours: int = 24) -> str:
    return (datetime.now(UTC) + timedelta(hours=hours)).isoformat()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_send_requires_credentials(client: TestClient, transport) -> None:
    missing = client.post("/alerts/send", json={"alert_type_id": "checkpoint"})
    forged = client.post(
        "/alerts/send",
        json={"alert_type_id": "checkpoint"},
        headers={
            "Authorization": "Bearer "
            + jwt.encode({"sub": "user-1"}, "wrong-secret", algorithm="HS256")
        },
    )

    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "UNAUTHORIZED"
    assert forged.status_code == 401
    assert transport.calls == []


def test_user_send_then_cooldown_skip(client: TestClient, transport) -> None:
    first = client.post(
        "/alerts/send",
        json={"alert_type_id": "checkpoint", "title": "Hello"},
        headers=_auth("user-1"),
    )
    second = client.post(
        "/alerts/send",
        json={"alert_type_id": "checkpoint"},
        headers=_auth("user-1"),
    )

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["sent"] == 1
    assert body["history_id"]

    assert second.status_code == 200
    assert second.json() == {"success": False, "skipped_reason": "cooldown"}
    assert len(transport.calls) == 1

    with get_session_factory()() as session:
        assert session.scalar(select(func.count(AlertHistory.id))) == 1


def test_user_cannot_send_to_someone_else(client: TestClient, transport) -> None:
    response = client.post(
        "/alerts/send",
        json={"alert_type_id": "checkpoint", "user_id": "user-2"},
        headers=_auth("user-1"),
    )

    assert response.status_code == 401
    assert transport.calls == []


def test_service_send_requires_target_user(client: TestClient) -> None:
    missing = client.post("/alerts/send", json={"alert_type_id": "checkpoint"}, headers=SERVICE)
    targeted = client.post(
        "/alerts/send",
        json={"alert_type_id": "checkpoint", "user_id": "user-7"},
        headers=SERVICE,
    )

    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "VALIDATION_ERROR"
    assert targeted.status_code == 200
    assert targeted.json()["success"] is True


def test_send_unknown_alert_type_and_missing_id(client: TestClient) -> None:
    unknown = client.post(
        "/alerts/send", json={"alert_type_id": "nope"}, headers=_auth("user-1")
    )
    missing = client.post("/alerts/send", json={}, headers=_auth("user-1"))

    assert unknown.status_code == 404
    assert unknown.json()["error"]["code"] == "ALERT_TYPE_NOT_FOUND"
    assert missing.status_code == 400


def test_premium_skip_is_not_an_error(client: TestClient, premium_oracle) -> None:
    skipped = client.post(
        "/alerts/send", json={"alert_type_id": "coach_checkin"}, headers=_auth("user-1")
    )
    premium_oracle.premium_user_ids.add("user-1")
    sent = client.post(
        "/alerts/send", json={"alert_type_id": "coach_checkin"}, headers=_auth("user-1")
    )

    assert skipped.status_code == 200
    assert skipped.json()["skipped_reason"] == "premium_required"
    assert sent.json()["success"] is True


def test_schedule_and_list(client: TestClient) -> None:
    response = client.post(
        "/alerts/schedule",
        json={
            "alert_type_id": "checkpoint",
            "scheduled_at": _future(),
            "title": "Check in",
            "body": "How was your day?",
            "recurrence": "custom",
            "recurrence_rule": "days:mon,thu",
            "data": {"url": "/checkin"},
        },
        headers=_auth("user-1"),
    )

    assert response.status_code == 201
    scheduled = response.json()["scheduled"]
    assert scheduled["status"] == "pending"
    assert scheduled["recurrence_rule"] == "days:mon,thu"
    assert scheduled["next_run_at"] is not None

    listed = client.get("/alerts/scheduled", headers=_auth("user-1"))
    other = client.get("/alerts/scheduled", headers=_auth("user-2"))
    assert [item["id"] for item in listed.json()] == [scheduled["id"]]
    assert other.json() == []


def test_schedule_rejects_past_dates_and_service_callers(client: TestClient) -> None:
    past = client.post(
        "/alerts/schedule",
        json={
            "alert_type_id": "checkpoint",
            "scheduled_at": _future(hours=-1),
            "title": "Check in",
            "body": "Late",
        },
        headers=_auth("user-1"),
    )
    service = client.post(
        "/alerts/schedule",
        json={
            "alert_type_id": "checkpoint",
            "scheduled_at": _future(),
            "title": "Check in",
            "body": "Hi",
        },
        headers=SERVICE,
    )

    assert past.status_code == 400
    assert service.status_code == 401


def test_fifty_first_pending_alert_is_rejected(client: TestClient) -> None:
    payload = {
        "alert_type_id": "insight",
        "scheduled_at": _future(),
        "title": "Insight",
        "body": "Something new",
    }
    for _ in range(50):
        assert (
            client.post("/alerts/schedule", json=payload, headers=_auth("user-1")).status_code
            == 201
        )

    response = client.post("/alerts/schedule", json=payload, headers=_auth("user-1"))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "PENDING_LIMIT_EXCEEDED"
    with get_session_factory()() as session:
        assert session.scalar(select(func.count(ScheduledAlert.id))) == 50


def test_history_tracking_flow(client: TestClient) -> None:
    sent = client.post(
        "/alerts/send", json={"alert_type_id": "insight"}, headers=_auth("user-1")
    )
    history_id = sent.json()["history_id"]

    clicked = client.patch(
        f"/alerts/history/{history_id}", json={"action": "clicked"}, headers=_auth("user-1")
    )
    read = client.patch(
        f"/alerts/history/{history_id}", json={"action": "read"}, headers=_auth("user-1")
    )

    assert clicked.status_code == 200
    assert clicked.json()["updated"] is True
    history = clicked.json()["history"]
    assert history["status"] == "delivered"
    assert history["delivered_at"] and history["read_at"] and history["clicked_at"]

    assert read.status_code == 200
    assert read.json()["updated"] is False
    assert read.json()["message"] == "Already tracked"
    assert read.json()["history"]["read_at"] == history["read_at"]


def test_history_tracking_errors(client: TestClient) -> None:
    sent = client.post(
        "/alerts/send", json={"alert_type_id": "insight"}, headers=_auth("user-1")
    )
    history_id = sent.json()["history_id"]

    foreign = client.patch(
        f"/alerts/history/{history_id}", json={"action": "read"}, headers=_auth("user-2")
    )
    missing = client.patch(
        f"/alerts/history/{uuid4()}", json={"action": "read"}, headers=_auth("user-1")
    )
    invalid = client.patch(
        f"/alerts/history/{history_id}", json={"action": "opened"}, headers=_auth("user-1")
    )

    assert foreign.status_code == 403
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "HISTORY_NOT_FOUND"
    assert invalid.status_code == 400


def test_history_pagination_over_http(client: TestClient) -> None:
    for alert_type_id in ("insight", "checkpoint", "daily_quote"):
        client.post(
            "/alerts/send", json={"alert_type_id": alert_type_id}, headers=_auth("user-1")
        )

    first = client.get("/alerts/history", params={"limit": 2}, headers=_auth("user-1"))
    cursor = first.json()["next_cursor"]
    second = client.get(
        "/alerts/history", params={"limit": 2, "cursor": cursor}, headers=_auth("user-1")
    )
    filtered = client.get(
        "/alerts/history", params={"alert_type_id": "insight"}, headers=_auth("user-1")
    )
    bad_cursor = client.get(
        "/alerts/history", params={"cursor": "garbage"}, headers=_auth("user-1")
    )

    assert len(first.json()["items"]) == 2
    assert cursor
    assert len(second.json()["items"]) == 1
    assert second.json()["next_cursor"] is None
    ids = {item["id"] for item in first.json()["items"] + second.json()["items"]}
    assert len(ids) == 3
    assert [item["alert_type_id"] for item in filtered.json()["items"]] == ["insight"]
    assert bad_cursor.status_code == 400


def test_preferences_roundtrip(client: TestClient, transport) -> None:
    listed = client.get("/alerts/preferences", headers=_auth("user-1"))
    assert listed.status_code == 200
    preferences = listed.json()["preferences"]
    assert len(preferences) == len(DEFAULT_ALERT_TYPES)
    assert all(item["is_default"] for item in preferences)

    updated = client.put(
        "/alerts/preferences",
        json={
            "preferences": [
                {"alert_type_id": "checkpoint", "enabled": False},
                {"alert_type_id": "insight", "quiet_start": "00:00", "quiet_end": "23:59"},
            ]
        },
        headers=_auth("user-1"),
    )
    assert updated.status_code == 200
    assert updated.json() == {"success": True, "updated": 2}

    by_id = {
        item["alert_type_id"]: item
        for item in client.get("/alerts/preferences", headers=_auth("user-1")).json()[
            "preferences"
        ]
    }
    assert by_id["checkpoint"]["enabled"] is False
    assert by_id["checkpoint"]["is_default"] is False
    assert by_id["insight"]["quiet_start"] == "00:00"
    assert by_id["insight"]["quiet_end"] == "23:59"

    disabled = client.post(
        "/alerts/send", json={"alert_type_id": "checkpoint"}, headers=_auth("user-1")
    )
    assert disabled.json()["skipped_reason"] == "user_disabled"
    assert transport.calls == []


def test_preferences_validation(client: TestClient) -> None:
    bad_time = client.put(
        "/alerts/preferences",
        json={"preferences": [{"alert_type_id": "checkpoint", "quiet_start": "25:00"}]},
        headers=_auth("user-1"),
    )
    unknown = client.put(
        "/alerts/preferences",
        json={"preferences": [{"alert_type_id": "nope", "enabled": True}]},
        headers=_auth("user-1"),
    )
    empty = client.put(
        "/alerts/preferences", json={"preferences": []}, headers=_auth("user-1")
    )

    assert bad_time.status_code == 400
    assert unknown.status_code == 400
    assert empty.status_code == 400


def test_cron_dispatch_requires_service_credentials(client: TestClient, transport) -> None:
    with get_session_factory()() as session:
        session.add(
            ScheduledAlert(
                user_id="user-1",
                alert_type_id="insight",
                priority="low",
                channel="push",
                scheduled_at=datetime.now(UTC) - timedelta(minutes=1),
                title="Insight",
                body="Fresh insight",
                data={},
                status="pending",
            )
        )
        session.commit()

    as_user = client.post("/cron/alerts", headers=_auth("user-1"))
    as_service = client.post("/cron/alerts", headers=SERVICE)

    assert as_user.status_code == 401
    assert as_service.status_code == 200
    summary = as_service.json()
    assert summary["picked"] == 1
    assert summary["sent"] == 1
    assert len(transport.calls) == 1
