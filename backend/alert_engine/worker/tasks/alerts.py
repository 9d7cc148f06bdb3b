from __future__ import annotations

import logging

from alert_engine.alerts.config import load_alert_config
from alert_engine.alerts.entitlements import EntitlementClient
from alert_engine.alerts.push_transport import WebPushTransport
from alert_engine.alerts.time_utils import now_utc
from alert_engine.db.session import get_session_factory
from alert_engine.services.delivery_pipeline import DeliveryPipeline
from alert_engine.services.scheduled_dispatcher_service import ScheduledAlertDispatcher
from alert_engine.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="alert_engine.worker.tasks.dispatch_scheduled_alerts")
def dispatch_scheduled_alerts(batch_size: int | None = None) -> dict[str, int]:
    session_factory = get_session_factory()
    config = load_alert_config()
    pipeline = DeliveryPipeline(
        config,
        transport=WebPushTransport(config),
        premium_oracle=EntitlementClient(config),
    )

    with session_factory() as session:
        summary = ScheduledAlertDispatcher(
            config, pipeline=pipeline, session_factory=session_factory
        ).dispatch_due(session, now=now_utc(), batch_size=batch_size)

    payload = {
        "picked": summary.picked,
        "sent": summary.sent,
        "failed": summary.failed,
        "rescheduled": summary.rescheduled,
        "cancelled": summary.cancelled,
        "expired": summary.expired,
        "recovered_stuck": summary.recovered_stuck,
        "errors": summary.errors,
    }
    logger.info("dispatch_scheduled_alerts_summary", extra=payload)
    return payload
