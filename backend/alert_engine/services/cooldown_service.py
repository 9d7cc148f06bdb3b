from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.alerts.time_utils import as_utc
from alert_engine.db.models import AlertHistory, AlertHistoryStatus

# Statuses that represent a transport call that reached the user. Failed
# attempts do not start a cooldown window.
COOLDOWN_STATUSES = (AlertHistoryStatus.sent.value, AlertHistoryStatus.delivered.value)


class CooldownChecker:
    def last_sent_at(
        self, session: Session, *, user_id: str, alert_type_id: str
    ) -> datetime | None:
        stmt = (
            select(AlertHistory.sent_at)
            .where(
                AlertHistory.user_id == user_id,
                AlertHistory.alert_type_id == alert_type_id,
                AlertHistory.status.in_(COOLDOWN_STATUSES),
            )
            .order_by(AlertHistory.sent_at.desc())
            .limit(1)
        )
        sent_at = session.scalar(stmt)
        return as_utc(sent_at) if sent_at is not None else None

    def in_cooldown(
        self,
        session: Session,
        *,
        user_id: str,
        alert_type_id: str,
        cooldown_minutes: int,
        now: datetime,
    ) -> bool:
        if cooldown_minutes <= 0:
            return False

        sent_at = self.last_sent_at(session, user_id=user_id, alert_type_id=alert_type_id)
        if sent_at is None:
            return False
        return as_utc(now) - sent_at < timedelta(minutes=cooldown_minutes)
