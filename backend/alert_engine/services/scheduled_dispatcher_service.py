from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, case, select, update
from sqlalchemy.orm import Session, sessionmaker

from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.quiet_hours import next_window_end
from alert_engine.alerts.recurrence import InvalidRecurrenceRule, next_run
from alert_engine.alerts.time_utils import as_utc, resolve_timezone
from alert_engine.db.models import (
    OPEN_SCHEDULED_STATUSES,
    PRIORITY_RANK,
    ScheduledAlert,
    ScheduledAlertStatus,
)
from alert_engine.db.session import get_session_factory, session_scope
from alert_engine.services.caller import CallerContext
from alert_engine.services.delivery_pipeline import (
    DeliveryOutcome,
    DeliveryPipeline,
    DeliveryResult,
    SkipReason,
)
from alert_engine.services.errors import NotFoundError

logger = logging.getLogger(__name__)

STUCK_QUEUED_AFTER = timedelta(minutes=15)
MAX_CATCH_UP_RUNS = 1000


@dataclass(frozen=True)
class DispatchSummary:
    picked: int
    sent: int
    failed: int
    rescheduled: int
    cancelled: int
    expired: int
    recovered_stuck: int
    errors: int


class ScheduledAlertDispatcher:
    """Turns due ``ScheduledAlert`` rows into ``DeliveryPipeline`` sends.

    Rows are claimed by flipping them to ``queued`` and then processed in a
    bounded thread pool, one DB session per row. A failure on one row is
    logged and counted; it never aborts the batch.
    """

    def __init__(
        self,
        config: AlertConfig,
        *,
        pipeline: DeliveryPipeline,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.config = config
        self.pipeline = pipeline
        self.session_factory = session_factory

    def dispatch_due(
        self, session: Session, *, now: datetime, batch_size: int | None = None
    ) -> DispatchSummary:
        now = as_utc(now)
        recovered_stuck = self.recover_stuck_queued(session, now=now)
        expired = self.expire_overdue(session, now=now)
        alert_ids = self.claim_due_batch(
            session, now=now, limit=batch_size or self.config.dispatch_batch_size
        )

        outcomes: Counter[str] = Counter()
        if alert_ids:
            workers = min(self.config.dispatch_workers, len(alert_ids))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(self._process_one, alert_id, now): alert_id
                    for alert_id in alert_ids
                }
                for future in as_completed(futures):
                    try:
                        outcomes[future.result()] += 1
                    except Exception:
                        outcomes["error"] += 1
                        logger.exception(
                            "scheduled_alert_dispatch_failed",
                            extra={"scheduled_alert_id": str(futures[future])},
                        )

        return DispatchSummary(
            picked=len(alert_ids),
            sent=outcomes["sent"],
            failed=outcomes["failed"],
            rescheduled=outcomes["rescheduled"],
            cancelled=outcomes["cancelled"],
            expired=expired,
            recovered_stuck=recovered_stuck,
            errors=outcomes["error"],
        )

    def recover_stuck_queued(self, session: Session, *, now: datetime) -> int:
        result = session.execute(
            update(ScheduledAlert)
            .where(
                and_(
                    ScheduledAlert.status == ScheduledAlertStatus.queued.value,
                    ScheduledAlert.updated_at < now - STUCK_QUEUED_AFTER,
                )
            )
            .values(
                status=ScheduledAlertStatus.pending.value,
                last_error="stuck_queued_recovered",
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return int(result.rowcount or 0)

    def expire_overdue(self, session: Session, *, now: datetime) -> int:
        result = session.execute(
            update(ScheduledAlert)
            .where(
                ScheduledAlert.status.in_(OPEN_SCHEDULED_STATUSES),
                ScheduledAlert.expires_at.is_not(None),
                ScheduledAlert.expires_at <= now,
            )
            .values(
                status=ScheduledAlertStatus.expired.value,
                last_error="expired",
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return int(result.rowcount or 0)

    def claim_due_batch(
        self, session: Session, *, now: datetime, limit: int
    ) -> list[UUID]:
        priority_rank = case(PRIORITY_RANK, value=ScheduledAlert.priority, else_=len(PRIORITY_RANK))
        stmt = (
            select(ScheduledAlert)
            .where(
                ScheduledAlert.status == ScheduledAlertStatus.pending.value,
                ScheduledAlert.scheduled_at <= now,
            )
            .order_by(priority_rank.asc(), ScheduledAlert.scheduled_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list(session.scalars(stmt).all())

        for row in rows:
            row.status = ScheduledAlertStatus.queued.value
            row.updated_at = now
            session.add(row)

        session.commit()
        return [row.id for row in rows]

    def _process_one(self, alert_id: UUID, now: datetime) -> str:
        with session_scope(self.session_factory or get_session_factory()) as session:
            alert = session.get(ScheduledAlert, alert_id)
            if alert is None or alert.status != ScheduledAlertStatus.queued.value:
                return "skipped"

            try:
                result = self.pipeline.send(
                    session,
                    CallerContext.service(),
                    alert_type_id=alert.alert_type_id,
                    user_id=alert.user_id,
                    title=alert.title,
                    body=alert.body,
                    data=alert.data if isinstance(alert.data, dict) else {},
                    scheduled_alert_id=alert.id,
                    now=now,
                )
            except NotFoundError:
                return self._cancel(session, alert, now=now, reason="alert_type_removed")

            return self._apply_outcome(session, alert, result, now=now)

    def _apply_outcome(
        self,
        session: Session,
        alert: ScheduledAlert,
        result: DeliveryResult,
        *,
        now: datetime,
    ) -> str:
        if result.outcome == DeliveryOutcome.sent:
            return self._complete(session, alert, now=now)
        if result.outcome == DeliveryOutcome.failed:
            return self._retry_or_cancel(session, alert, result, now=now)

        reason = result.skipped_reason
        if reason == SkipReason.quiet_hours:
            settings = self.pipeline.resolver.resolve(
                session, user_id=alert.user_id, alert_type_id=alert.alert_type_id
            )
            timezone = resolve_timezone(settings.timezone, self.config.default_timezone)
            return self._reschedule(
                session,
                alert,
                at=next_window_end(now, settings.quiet_end, timezone),
                now=now,
                reason="quiet_hours",
            )
        if reason == SkipReason.cooldown:
            wait = timedelta(minutes=max(result.cooldown_minutes, 1))
            return self._reschedule(session, alert, at=now + wait, now=now, reason="cooldown")

        return self._cancel(
            session, alert, now=now, reason=reason.value if reason else "skipped"
        )

    def _complete(self, session: Session, alert: ScheduledAlert, *, now: datetime) -> str:
        alert.processed_at = now
        alert.updated_at = now
        alert.last_error = None

        upcoming = self._next_occurrence(session, alert, now=now) if alert.recurrence else None
        if upcoming is None:
            alert.status = ScheduledAlertStatus.sent.value
            alert.attempts += 1
        else:
            scheduled_at, next_run_at = upcoming
            alert.status = ScheduledAlertStatus.pending.value
            alert.scheduled_at = scheduled_at
            alert.next_run_at = next_run_at
            alert.attempts = 0

        session.add(alert)
        session.commit()
        return "sent"

    def _next_occurrence(
        self, session: Session, alert: ScheduledAlert, *, now: datetime
    ) -> tuple[datetime, datetime] | None:
        settings = self.pipeline.resolver.resolve(
            session, user_id=alert.user_id, alert_type_id=alert.alert_type_id
        )
        timezone = resolve_timezone(settings.timezone, self.config.default_timezone)

        def advance(value: datetime) -> datetime:
            return as_utc(
                next_run(alert.recurrence, alert.recurrence_rule, value, timezone=timezone)
            )

        try:
            upcoming = (
                as_utc(alert.next_run_at)
                if alert.next_run_at is not None
                else advance(as_utc(alert.scheduled_at))
            )
            # Missed occurrences (dispatcher downtime) are skipped, not replayed.
            for _ in range(MAX_CATCH_UP_RUNS):
                if upcoming > now:
                    break
                upcoming = advance(upcoming)
            else:
                return None
            return upcoming, advance(upcoming)
        except InvalidRecurrenceRule:
            logger.warning(
                "scheduled_alert_recurrence_invalid",
                extra={"scheduled_alert_id": str(alert.id)},
            )
            return None

    def _retry_or_cancel(
        self,
        session: Session,
        alert: ScheduledAlert,
        result: DeliveryResult,
        *,
        now: datetime,
    ) -> str:
        alert.attempts += 1
        alert.updated_at = now
        if alert.attempts < alert.max_attempts:
            alert.status = ScheduledAlertStatus.pending.value
            alert.scheduled_at = now + timedelta(minutes=2**alert.attempts)
            alert.last_error = (result.error_message or "push_delivery_failed")[:500]
        else:
            alert.status = ScheduledAlertStatus.cancelled.value
            alert.last_error = "max_attempts_reached"
            alert.processed_at = now
        session.add(alert)
        session.commit()
        return "failed"

    def _reschedule(
        self,
        session: Session,
        alert: ScheduledAlert,
        *,
        at: datetime,
        now: datetime,
        reason: str,
    ) -> str:
        alert.status = ScheduledAlertStatus.pending.value
        alert.scheduled_at = at
        alert.last_error = reason
        alert.updated_at = now
        session.add(alert)
        session.commit()
        return "rescheduled"

    def _cancel(
        self, session: Session, alert: ScheduledAlert, *, now: datetime, reason: str
    ) -> str:
        alert.status = ScheduledAlertStatus.cancelled.value
        alert.last_error = reason
        alert.processed_at = now
        alert.updated_at = now
        session.add(alert)
        session.commit()
        return "cancelled"
