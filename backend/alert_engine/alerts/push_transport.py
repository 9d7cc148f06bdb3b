from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests
from pywebpush import WebPushException, webpush
from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.alerts.config import AlertConfig
from alert_engine.db.models import PushSubscription, SubscriptionPlatform

logger = logging.getLogger(__name__)

# Notification type -> PushSubscription toggle column. Types without an entry
# go to every subscription of the user.
SUBSCRIPTION_TOGGLES: dict[str, str] = {
    "morning_reminder": "morning_reminder",
    "checkpoint": "checkpoint_alerts",
    "evening_reminder": "evening_reminder",
    "streak_at_risk": "streak_alerts",
    "weekly_review": "weekly_review",
}

GONE_STATUS_CODES = {404, 410}


@dataclass(frozen=True)
class TransportResult:
    success: bool
    sent: int
    failed: int
    error_message: str | None = None


class PushTransport(Protocol):
    def send_to_user(
        self,
        session: Session,
        *,
        user_id: str,
        notification_type: str,
        payload: dict[str, Any],
    ) -> TransportResult: ...


def filter_subscriptions(
    subscriptions: list[PushSubscription], notification_type: str
) -> list[PushSubscription]:
    toggle = SUBSCRIPTION_TOGGLES.get(notification_type)
    if toggle is None:
        return list(subscriptions)
    return [sub for sub in subscriptions if getattr(sub, toggle) is True]


class WebPushTransport:
    def __init__(self, config: AlertConfig) -> None:
        self.config = config

    def send_to_user(
        self,
        session: Session,
        *,
        user_id: str,
        notification_type: str,
        payload: dict[str, Any],
    ) -> TransportResult:
        subscriptions = list(
            session.scalars(
                select(PushSubscription).where(PushSubscription.user_id == user_id)
            ).all()
        )
        if not subscriptions:
            return TransportResult(
                success=False, sent=0, failed=0, error_message="no_subscriptions"
            )

        targets = filter_subscriptions(subscriptions, notification_type)
        if not targets:
            return TransportResult(
                success=False,
                sent=0,
                failed=0,
                error_message="no_subscriptions_for_type",
            )

        if self.config.push_dry_run:
            return TransportResult(success=True, sent=len(targets), failed=0)

        sent = 0
        failed = 0
        last_error: str | None = None
        gone: list[PushSubscription] = []
        encoded = json.dumps(payload)

        for subscription in targets:
            if subscription.platform != SubscriptionPlatform.web.value:
                failed += 1
                last_error = f"{subscription.platform}_push_not_configured"
                continue
            if not subscription.endpoint or not self.config.vapid_private_key:
                failed += 1
                last_error = (
                    "VAPID_PRIVATE_KEY missing"
                    if not self.config.vapid_private_key
                    else "subscription_endpoint_missing"
                )
                continue

            try:
                webpush(
                    subscription_info={
                        "endpoint": subscription.endpoint,
                        "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                    },
                    data=encoded,
                    vapid_private_key=self._vapid_private_key(),
                    vapid_claims={"sub": self.config.vapid_subject},
                    timeout=self.config.push_timeout_seconds,
                )
                sent += 1
            except WebPushException as exc:
                failed += 1
                last_error = str(exc)[:500]
                status_code = getattr(getattr(exc, "response", None), "status_code", None)
                if status_code in GONE_STATUS_CODES:
                    gone.append(subscription)
            except requests.RequestException as exc:
                failed += 1
                last_error = f"transport_error: {exc}"[:500]
            except Exception as exc:
                # One bad subscription must not abort the fan-out.
                failed += 1
                last_error = f"subscription_error: {exc}"[:500]
                logger.warning(
                    "push_subscription_send_failed",
                    extra={"user_id": user_id, "subscription_id": str(subscription.id)},
                )

        if gone:
            for subscription in gone:
                session.delete(subscription)
            session.commit()
            logger.info(
                "push_subscriptions_removed",
                extra={"user_id": user_id, "removed": len(gone)},
            )

        return TransportResult(
            success=sent > 0,
            sent=sent,
            failed=failed,
            error_message=None if sent > 0 else last_error,
        )

    def _vapid_private_key(self) -> str:
        key = self.config.vapid_private_key
        if "\\n" in key:
            key = key.replace("\\n", "\n")
        return key
