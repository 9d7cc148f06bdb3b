from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.entitlements import PremiumOracle
from alert_engine.alerts.payloads import build_push_payload, notification_type_for
from alert_engine.alerts.push_transport import PushTransport, TransportResult
from alert_engine.alerts.quiet_hours import current_hhmm, is_quiet
from alert_engine.alerts.time_utils import as_utc, now_utc, resolve_timezone
from alert_engine.db.models import AlertHistory, AlertHistoryStatus, AlertPriority
from alert_engine.services.caller import CallerContext, authorize_target
from alert_engine.services.cooldown_service import CooldownChecker
from alert_engine.services.send_lock_service import SendLockService
from alert_engine.services.settings_resolver import EffectiveSettings, SettingsResolver

logger = logging.getLogger(__name__)

DEFAULT_TRANSPORT_ERROR = "No subscriptions or all failed"


class SkipReason(str, Enum):
    premium_required = "premium_required"
    user_disabled = "user_disabled"
    quiet_hours = "quiet_hours"
    cooldown = "cooldown"


class DeliveryOutcome(str, Enum):
    sent = "sent"
    failed = "failed"
    skipped = "skipped"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    success: bool
    sent: int = 0
    failed: int = 0
    history_id: UUID | None = None
    skipped_reason: SkipReason | None = None
    error_message: str | None = None
    cooldown_minutes: int = 0

    @classmethod
    def skipped(cls, reason: SkipReason, *, cooldown_minutes: int = 0) -> DeliveryResult:
        return cls(
            outcome=DeliveryOutcome.skipped,
            success=False,
            skipped_reason=reason,
            cooldown_minutes=cooldown_minutes,
        )


class DeliveryPipeline:
    """Authorize, gate, transport and record one alert for one user.

    Gates run in a fixed order and each one short-circuits: premium
    entitlement, user opt-out, quiet hours (skipped for urgent alerts) and
    cooldown. Skips never write history; every transport attempt writes
    exactly one history row.
    """

    def __init__(
        self,
        config: AlertConfig,
        *,
        transport: PushTransport,
        premium_oracle: PremiumOracle,
        resolver: SettingsResolver | None = None,
        cooldown: CooldownChecker | None = None,
        locks: SendLockService | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.premium_oracle = premium_oracle
        self.resolver = resolver or SettingsResolver(
            default_timezone=config.default_timezone
        )
        self.cooldown = cooldown or CooldownChecker()
        self.locks = locks or SendLockService()

    def send(
        self,
        session: Session,
        caller: CallerContext,
        *,
        alert_type_id: str,
        user_id: str | None = None,
        title: str | None = None,
        body: str | None = None,
        data: dict[str, Any] | None = None,
        scheduled_alert_id: UUID | None = None,
        now: datetime | None = None,
    ) -> DeliveryResult:
        target_user_id = authorize_target(caller, user_id)
        now = as_utc(now or now_utc())

        settings = self.resolver.resolve(
            session, user_id=target_user_id, alert_type_id=alert_type_id
        )

        if settings.premium_only and not self.premium_oracle.is_premium_user(
            target_user_id
        ):
            return self._skip(target_user_id, settings, SkipReason.premium_required)

        if not settings.enabled:
            return self._skip(target_user_id, settings, SkipReason.user_disabled)

        if settings.priority != AlertPriority.urgent.value:
            timezone = resolve_timezone(settings.timezone, self.config.default_timezone)
            if is_quiet(current_hhmm(timezone, now), settings.quiet_start, settings.quiet_end):
                return self._skip(target_user_id, settings, SkipReason.quiet_hours)

        lock_token: str | None = None
        if settings.cooldown_minutes > 0:
            lock_token = self.locks.acquire(
                session,
                user_id=target_user_id,
                alert_type_id=alert_type_id,
                now=now,
                ttl_seconds=self.config.send_lock_ttl_seconds,
            )
            if lock_token is None:
                return self._skip(target_user_id, settings, SkipReason.cooldown)

        try:
            if self.cooldown.in_cooldown(
                session,
                user_id=target_user_id,
                alert_type_id=alert_type_id,
                cooldown_minutes=settings.cooldown_minutes,
                now=now,
            ):
                return self._skip(target_user_id, settings, SkipReason.cooldown)

            return self._deliver(
                session,
                user_id=target_user_id,
                settings=settings,
                title=title,
                body=body,
                data=data,
                scheduled_alert_id=scheduled_alert_id,
                now=now,
            )
        finally:
            if lock_token is not None:
                self.locks.release(
                    session,
                    user_id=target_user_id,
                    alert_type_id=alert_type_id,
                    token=lock_token,
                    now=now,
                )

    def _deliver(
        self,
        session: Session,
        *,
        user_id: str,
        settings: EffectiveSettings,
        title: str | None,
        body: str | None,
        data: dict[str, Any] | None,
        scheduled_alert_id: UUID | None,
        now: datetime,
    ) -> DeliveryResult:
        notification_type = notification_type_for(settings.alert_type_id)
        alert_title = title or settings.label
        alert_body = body or settings.default_body
        payload = build_push_payload(
            notification_type=notification_type,
            title=alert_title,
            body=alert_body,
            data=data,
        )

        try:
            result = self.transport.send_to_user(
                session,
                user_id=user_id,
                notification_type=notification_type,
                payload=payload,
            )
        except Exception as exc:
            session.rollback()
            logger.exception(
                "alert_transport_failed",
                extra={"user_id": user_id, "alert_type_id": settings.alert_type_id},
            )
            result = TransportResult(
                success=False, sent=0, failed=0, error_message=f"transport_error: {exc}"
            )

        error_message = None
        if not result.success:
            error_message = (result.error_message or DEFAULT_TRANSPORT_ERROR)[:500]

        history = AlertHistory(
            user_id=user_id,
            alert_type_id=settings.alert_type_id,
            scheduled_alert_id=scheduled_alert_id,
            priority=settings.priority,
            channel=settings.channel,
            status=(
                AlertHistoryStatus.sent.value
                if result.success
                else AlertHistoryStatus.failed.value
            ),
            title=alert_title,
            body=alert_body,
            data=data or {},
            sent_at=now,
            error_message=error_message,
        )
        session.add(history)
        session.commit()

        logger.info(
            "alert_send_completed",
            extra={
                "user_id": user_id,
                "alert_type_id": settings.alert_type_id,
                "history_id": str(history.id),
                "success": result.success,
                "sent": result.sent,
                "failed": result.failed,
            },
        )
        return DeliveryResult(
            outcome=DeliveryOutcome.sent if result.success else DeliveryOutcome.failed,
            success=result.success,
            sent=result.sent,
            failed=result.failed,
            history_id=history.id,
            error_message=error_message,
            cooldown_minutes=settings.cooldown_minutes,
        )

    def _skip(
        self, user_id: str, settings: EffectiveSettings, reason: SkipReason
    ) -> DeliveryResult:
        logger.info(
            "alert_send_skipped",
            extra={
                "user_id": user_id,
                "alert_type_id": settings.alert_type_id,
                "skipped_reason": reason.value,
            },
        )
        return DeliveryResult.skipped(reason, cooldown_minutes=settings.cooldown_minutes)
