from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest
from pywebpush import WebPushException
from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.alerts import entitlements, push_transport
from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.entitlements import EntitlementClient
from alert_engine.alerts.push_transport import WebPushTransport
from alert_engine.db.models import PushSubscription
from alert_engine.services.caller import CallerContext
from alert_engine.services.delivery_pipeline import (
    DeliveryOutcome,
    DeliveryPipeline,
    SkipReason,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _subscribe(session: Session, endpoint: str, **fields) -> None:
    session.add(
        PushSubscription(
            user_id=fields.pop("user_id", "user-1"),
            endpoint=endpoint,
            p256dh="p256dh-key",
            auth="auth-secret",
            **fields,
        )
    )
    session.commit()


def _payload() -> dict:
    return {"title": "Hi", "body": "There", "data": {"type": "checkpoint"}}


def test_no_subscriptions(db_session: Session, alert_config: AlertConfig) -> None:
    result = WebPushTransport(alert_config).send_to_user(
        db_session, user_id="user-1", notification_type="checkpoint", payload=_payload()
    )

    assert result.success is False
    assert result.error_message == "no_subscriptions"


def test_type_toggle_filters_targets(db_session: Session, alert_config: AlertConfig) -> None:
    _subscribe(db_session, "https://push.example/a", checkpoint_alerts=False)

    transport = WebPushTransport(alert_config)
    filtered = transport.send_to_user(
        db_session, user_id="user-1", notification_type="checkpoint", payload=_payload()
    )
    unmapped = transport.send_to_user(
        db_session, user_id="user-1", notification_type="insight", payload=_payload()
    )

    assert filtered.error_message == "no_subscriptions_for_type"
    assert unmapped.success is True
    assert unmapped.sent == 1


def test_live_send_drops_gone_subscriptions(
    db_session: Session, alert_config: AlertConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    _subscribe(db_session, "https://push.example/ok")
    _subscribe(db_session, "https://push.example/gone")
    _subscribe(db_session, "https://push.example/native", platform="ios")
    sent_to: list[str] = []

    def fake_webpush(*, subscription_info, data, **kwargs):
        if subscription_info["endpoint"].endswith("/gone"):
            raise WebPushException("gone", response=SimpleNamespace(status_code=410))
        sent_to.append(subscription_info["endpoint"])

    monkeypatch.setattr(push_transport, "webpush", fake_webpush)
    config = replace(alert_config, push_dry_run=False, vapid_private_key="private-key")

    result = WebPushTransport(config).send_to_user(
        db_session, user_id="user-1", notification_type="checkpoint", payload=_payload()
    )

    assert result.success is True
    assert (result.sent, result.failed) == (1, 2)
    assert sent_to == ["https://push.example/ok"]
    remaining = db_session.scalars(select(PushSubscription.endpoint)).all()
    assert "https://push.example/gone" not in remaining


def test_live_send_without_vapid_key_fails(
    db_session: Session, alert_config: AlertConfig
) -> None:
    _subscribe(db_session, "https://push.example/ok")
    config = replace(alert_config, push_dry_run=False, vapid_private_key="")

    result = WebPushTransport(config).send_to_user(
        db_session, user_id="user-1", notification_type="checkpoint", payload=_payload()
    )

    assert result.success is False
    assert result.error_message == "VAPID_PRIVATE_KEY missing"


def test_entitlement_allowlist_and_unconfigured_service(alert_config: AlertConfig) -> None:
    client = EntitlementClient(replace(alert_config, premium_user_ids={"vip"}))

    assert client.is_premium_user("vip") is True
    assert client.is_premium_user("regular") is False


def test_entitlement_service_lookup(
    alert_config: AlertConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        user_id = request.url.path.split("/")[2]
        if user_id == "down":
            return httpx.Response(503)
        if user_id == "proxied":
            return httpx.Response(200, text="<html>oops</html>")
        return httpx.Response(200, json={"premium": user_id == "paid"})

    real_client = httpx.Client
    monkeypatch.setattr(
        entitlements.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    client = EntitlementClient(
        replace(alert_config, entitlement_base_url="https://entitlements.example")
    )

    assert client.is_premium_user("paid") is True
    assert client.is_premium_user("free") is False
    assert client.is_premium_user("down") is False
    assert client.is_premium_user("proxied") is False


def _fake_webpush_rejecting_bad_keys(delivered: list[str]):
    def fake_webpush(*, subscription_info, data, **kwargs):
        if subscription_info["endpoint"].endswith("/badkeys"):
            raise ValueError("Could not deserialize key data")
        delivered.append(subscription_info["endpoint"])

    return fake_webpush


def test_unexpected_error_on_one_subscription_keeps_fan_out_going(
    db_session: Session, alert_config: AlertConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    _subscribe(db_session, "https://push.example/ok")
    _subscribe(db_session, "https://push.example/badkeys")
    delivered: list[str] = []
    monkeypatch.setattr(push_transport, "webpush", _fake_webpush_rejecting_bad_keys(delivered))
    config = replace(alert_config, push_dry_run=False, vapid_private_key="private-key")

    result = WebPushTransport(config).send_to_user(
        db_session, user_id="user-1", notification_type="checkpoint", payload=_payload()
    )

    assert result.success is True
    assert (result.sent, result.failed) == (1, 1)
    assert delivered == ["https://push.example/ok"]


def test_partial_fan_out_starts_cooldown(
    db_session: Session,
    alert_config: AlertConfig,
    premium_oracle,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _subscribe(db_session, "https://push.example/ok")
    _subscribe(db_session, "https://push.example/badkeys")
    delivered: list[str] = []
    monkeypatch.setattr(push_transport, "webpush", _fake_webpush_rejecting_bad_keys(delivered))
    config = replace(alert_config, push_dry_run=False, vapid_private_key="private-key")
    pipeline = DeliveryPipeline(
        config, transport=WebPushTransport(config), premium_oracle=premium_oracle
    )
    caller = CallerContext.for_user("user-1")

    first = pipeline.send(db_session, caller, alert_type_id="checkpoint", now=NOW)
    second = pipeline.send(
        db_session, caller, alert_type_id="checkpoint", now=NOW + timedelta(minutes=1)
    )

    assert first.outcome == DeliveryOutcome.sent
    assert first.sent == 1
    assert second.skipped_reason == SkipReason.cooldown
    assert delivered == ["https://push.example/ok"]
