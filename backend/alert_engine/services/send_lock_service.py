from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from alert_engine.alerts.time_utils import as_utc
from alert_engine.db.models import AlertSendLock

logger = logging.getLogger(__name__)


class SendLockService:
    """Per-(user, alert type) lease row guarding the cooldown check-then-send.

    A lease is taken with a conditional UPDATE on an expired row, or by
    inserting the row; a concurrent holder makes both fail. Leases expire on
    their own so a crashed holder cannot block the pair forever.
    """

    def acquire(
        self,
        session: Session,
        *,
        user_id: str,
        alert_type_id: str,
        now: datetime,
        ttl_seconds: float,
    ) -> str | None:
        now = as_utc(now)
        token = uuid4().hex
        locked_until = now + timedelta(seconds=ttl_seconds)

        result = session.execute(
            update(AlertSendLock)
            .where(
                AlertSendLock.user_id == user_id,
                AlertSendLock.alert_type_id == alert_type_id,
                AlertSendLock.locked_until <= now,
            )
            .values(lock_token=token, locked_until=locked_until)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            session.commit()
            return token

        if session.get(AlertSendLock, (user_id, alert_type_id)) is not None:
            session.rollback()
            return None

        session.add(
            AlertSendLock(
                user_id=user_id,
                alert_type_id=alert_type_id,
                lock_token=token,
                locked_until=locked_until,
            )
        )
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            return None
        return token

    def release(
        self,
        session: Session,
        *,
        user_id: str,
        alert_type_id: str,
        token: str,
        now: datetime,
    ) -> None:
        result = session.execute(
            update(AlertSendLock)
            .where(
                AlertSendLock.user_id == user_id,
                AlertSendLock.alert_type_id == alert_type_id,
                AlertSendLock.lock_token == token,
            )
            .values(locked_until=as_utc(now))
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount != 1:
            logger.warning(
                "send_lock_release_missed",
                extra={"user_id": user_id, "alert_type_id": alert_type_id},
            )
