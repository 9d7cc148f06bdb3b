from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from alert_engine.alerts.time_utils import as_utc, now_utc
from alert_engine.db.models import AlertHistory, AlertHistoryStatus, TrackingAction
from alert_engine.services.errors import ForbiddenError, NotFoundError, ValidationError

# Each reported action implies its logical prerequisites.
IMPLIED_FIELDS: dict[TrackingAction, tuple[str, ...]] = {
    TrackingAction.delivered: ("delivered_at",),
    TrackingAction.read: ("delivered_at", "read_at"),
    TrackingAction.clicked: ("delivered_at", "read_at", "clicked_at"),
    TrackingAction.dismissed: ("delivered_at", "dismissed_at"),
}

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class TrackResult:
    updated: bool
    fields_set: tuple[str, ...]
    history: AlertHistory


@dataclass(frozen=True)
class HistoryPage:
    items: list[AlertHistory]
    next_cursor: str | None


def encode_cursor(entry: AlertHistory) -> str:
    raw = json.dumps({"s": as_utc(entry.sent_at).isoformat(), "i": entry.id.hex})
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        return as_utc(datetime.fromisoformat(raw["s"])), UUID(hex=raw["i"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError) as exc:
        raise ValidationError("Invalid cursor") from exc


class HistoryTracker:
    def get_owned(self, session: Session, *, history_id: UUID, user_id: str) -> AlertHistory:
        entry = session.get(AlertHistory, history_id)
        if entry is None:
            raise NotFoundError(
                f"Alert history '{history_id}' not found", code="HISTORY_NOT_FOUND"
            )
        if entry.user_id != user_id:
            raise ForbiddenError("Alert history belongs to another user")
        return entry

    def track(
        self,
        session: Session,
        *,
        history_id: UUID,
        user_id: str,
        action: TrackingAction,
        now: datetime | None = None,
    ) -> TrackResult:
        entry = self.get_owned(session, history_id=history_id, user_id=user_id)
        now = as_utc(now or now_utc())

        # Each fill is conditional on the column still being NULL, so duplicate
        # or reordered receipts never move a timestamp.
        fields_set: list[str] = []
        for field in IMPLIED_FIELDS[action]:
            column = getattr(AlertHistory, field)
            result = session.execute(
                update(AlertHistory)
                .where(AlertHistory.id == entry.id, column.is_(None))
                .values({field: now})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                fields_set.append(field)

        if "delivered_at" in fields_set:
            session.execute(
                update(AlertHistory)
                .where(
                    AlertHistory.id == entry.id,
                    AlertHistory.status == AlertHistoryStatus.sent.value,
                )
                .values(status=AlertHistoryStatus.delivered.value)
                .execution_options(synchronize_session=False)
            )

        session.commit()
        session.refresh(entry)
        return TrackResult(
            updated=bool(fields_set), fields_set=tuple(fields_set), history=entry
        )

    def list_history(
        self,
        session: Session,
        *,
        user_id: str,
        status: AlertHistoryStatus | None = None,
        alert_type_id: str | None = None,
        cursor: str | None = None,
        limit: int = 20,
    ) -> HistoryPage:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        stmt = select(AlertHistory).where(AlertHistory.user_id == user_id)
        if status is not None:
            stmt = stmt.where(AlertHistory.status == status.value)
        if alert_type_id:
            stmt = stmt.where(AlertHistory.alert_type_id == alert_type_id)
        if cursor:
            cursor_sent_at, cursor_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    AlertHistory.sent_at < cursor_sent_at,
                    and_(
                        AlertHistory.sent_at == cursor_sent_at,
                        AlertHistory.id < cursor_id,
                    ),
                )
            )
        stmt = stmt.order_by(AlertHistory.sent_at.desc(), AlertHistory.id.desc()).limit(
            limit + 1
        )

        rows = list(session.scalars(stmt).all())
        has_more = len(rows) > limit
        items = rows[:limit]
        return HistoryPage(
            items=items,
            next_cursor=encode_cursor(items[-1]) if has_more and items else None,
        )
