from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.time_utils import now_utc
from alert_engine.api.deps import get_alert_config, get_delivery_pipeline, require_service
from alert_engine.api.schemas import DispatchSummaryResponse
from alert_engine.db.session import get_db_session
from alert_engine.services.caller import CallerContext
from alert_engine.services.delivery_pipeline import DeliveryPipeline
from alert_engine.services.scheduled_dispatcher_service import ScheduledAlertDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/alerts", response_model=DispatchSummaryResponse)
def dispatch_scheduled_alerts(
    _: CallerContext = Depends(require_service),
    config: AlertConfig = Depends(get_alert_config),
    pipeline: DeliveryPipeline = Depends(get_delivery_pipeline),
    session: Session = Depends(get_db_session),
) -> DispatchSummaryResponse:
    summary = ScheduledAlertDispatcher(config, pipeline=pipeline).dispatch_due(
        session, now=now_utc()
    )
    payload = DispatchSummaryResponse.model_validate(summary, from_attributes=True)
    logger.info("cron_dispatch_scheduled_alerts", extra=payload.model_dump())
    return payload
