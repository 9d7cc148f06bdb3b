from __future__ import annotations

from enum import Enum
from typing import TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.entitlements import PremiumOracle
from alert_engine.api.deps import (
    get_alert_config,
    get_caller,
    get_delivery_pipeline,
    get_premium_oracle,
    get_settings_resolver,
    require_user_id,
)
from alert_engine.api.schemas import (
    AlertHistoryPageResponse,
    AlertHistoryResponse,
    PreferenceResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    PreferencesUpdateResponse,
    ScheduleAlertRequest,
    ScheduleAlertResponse,
    ScheduledAlertResponse,
    SendAlertRequest,
    SendAlertResponse,
    TrackHistoryRequest,
    TrackHistoryResponse,
)
from alert_engine.db.models import AlertHistoryStatus, ScheduledAlertStatus, TrackingAction
from alert_engine.db.session import get_db_session
from alert_engine.services.caller import CallerContext
from alert_engine.services.delivery_pipeline import DeliveryPipeline
from alert_engine.services.errors import ValidationError
from alert_engine.services.history_service import MAX_PAGE_SIZE, HistoryTracker
from alert_engine.services.preference_service import PreferenceService
from alert_engine.services.scheduled_alert_service import (
    ScheduledAlertService,
    ScheduleRequest,
)
from alert_engine.services.settings_resolver import SettingsResolver

router = APIRouter(prefix="/alerts", tags=["alerts"])

VALID_ACTIONS = tuple(item.value for item in TrackingAction)

E = TypeVar("E", bound=Enum)


def _parse_enum(enum_cls: type[E], raw: str | None, field_name: str) -> E | None:
    if raw is None or raw == "":
        return None
    try:
        return enum_cls(raw)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in enum_cls)
        raise ValidationError(f"Invalid {field_name}. Use: {allowed}") from exc


@router.post("/send", response_model=SendAlertResponse, response_model_exclude_none=True)
def send_alert(
    payload: SendAlertRequest,
    caller: CallerContext = Depends(get_caller),
    pipeline: DeliveryPipeline = Depends(get_delivery_pipeline),
    session: Session = Depends(get_db_session),
) -> SendAlertResponse:
    if not payload.alert_type_id:
        raise ValidationError("alert_type_id required")

    result = pipeline.send(
        session,
        caller,
        alert_type_id=payload.alert_type_id,
        user_id=payload.user_id,
        title=payload.title,
        body=payload.body,
        data=payload.data,
    )
    return SendAlertResponse(
        success=result.success,
        sent=None if result.skipped_reason else result.sent,
        failed=None if result.skipped_reason else result.failed,
        history_id=result.history_id,
        skipped_reason=result.skipped_reason.value if result.skipped_reason else None,
        error_message=result.error_message,
    )


@router.post(
    "/schedule",
    response_model=ScheduleAlertResponse,
    status_code=status.HTTP_201_CREATED,
)
def schedule_alert(
    payload: ScheduleAlertRequest,
    user_id: str = Depends(require_user_id),
    config: AlertConfig = Depends(get_alert_config),
    premium_oracle: PremiumOracle = Depends(get_premium_oracle),
    resolver: SettingsResolver = Depends(get_settings_resolver),
    session: Session = Depends(get_db_session),
) -> ScheduleAlertResponse:
    service = ScheduledAlertService(
        config, premium_oracle=premium_oracle, resolver=resolver
    )
    scheduled = service.schedule(
        session,
        user_id=user_id,
        request=ScheduleRequest(
            alert_type_id=payload.alert_type_id,
            scheduled_at=payload.scheduled_at,
            title=payload.title,
            body=payload.body,
            expires_at=payload.expires_at,
            recurrence=payload.recurrence,
            recurrence_rule=payload.recurrence_rule,
            data=payload.data or {},
        ),
    )
    return ScheduleAlertResponse(
        scheduled=ScheduledAlertResponse.model_validate(scheduled)
    )


@router.get("/scheduled", response_model=list[ScheduledAlertResponse])
def list_scheduled_alerts(
    status_filter: str | None = Query(default=None, alias="status"),
    user_id: str = Depends(require_user_id),
    config: AlertConfig = Depends(get_alert_config),
    premium_oracle: PremiumOracle = Depends(get_premium_oracle),
    session: Session = Depends(get_db_session),
) -> list[ScheduledAlertResponse]:
    scheduled_status = _parse_enum(ScheduledAlertStatus, status_filter, "status")
    rows = ScheduledAlertService(config, premium_oracle=premium_oracle).list_scheduled(
        session, user_id=user_id, status=scheduled_status
    )
    return [ScheduledAlertResponse.model_validate(row) for row in rows]


@router.get("/history", response_model=AlertHistoryPageResponse)
def list_alert_history(
    status_filter: str | None = Query(default=None, alias="status"),
    alert_type_id: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    user_id: str = Depends(require_user_id),
    session: Session = Depends(get_db_session),
) -> AlertHistoryPageResponse:
    history_status = _parse_enum(AlertHistoryStatus, status_filter, "status")
    page = HistoryTracker().list_history(
        session,
        user_id=user_id,
        status=history_status,
        alert_type_id=alert_type_id,
        cursor=cursor,
        limit=limit,
    )
    return AlertHistoryPageResponse(
        items=[AlertHistoryResponse.model_validate(item) for item in page.items],
        next_cursor=page.next_cursor,
    )


@router.patch("/history/{history_id}", response_model=TrackHistoryResponse)
def track_alert_history(
    history_id: UUID,
    payload: TrackHistoryRequest,
    user_id: str = Depends(require_user_id),
    session: Session = Depends(get_db_session),
) -> TrackHistoryResponse:
    action = _parse_enum(TrackingAction, payload.action, "action")
    if action is None:
        raise ValidationError(f"Invalid action. Use: {', '.join(VALID_ACTIONS)}")

    result = HistoryTracker().track(
        session, history_id=history_id, user_id=user_id, action=action
    )
    return TrackHistoryResponse(
        success=True,
        updated=result.updated,
        message=None if result.updated else "Already tracked",
        history=AlertHistoryResponse.model_validate(result.history),
    )


@router.get("/preferences", response_model=PreferencesResponse)
def get_alert_preferences(
    user_id: str = Depends(require_user_id),
    resolver: SettingsResolver = Depends(get_settings_resolver),
    session: Session = Depends(get_db_session),
) -> PreferencesResponse:
    settings = PreferenceService(resolver).list_preferences(session, user_id=user_id)
    return PreferencesResponse(
        preferences=[PreferenceResponse.model_validate(item) for item in settings]
    )


@router.put("/preferences", response_model=PreferencesUpdateResponse)
def update_alert_preferences(
    payload: PreferencesUpdateRequest,
    user_id: str = Depends(require_user_id),
    resolver: SettingsResolver = Depends(get_settings_resolver),
    session: Session = Depends(get_db_session),
) -> PreferencesUpdateResponse:
    updated = PreferenceService(resolver).upsert_preferences(
        session,
        user_id=user_id,
        items=[item.model_dump(exclude_unset=True) for item in payload.preferences],
    )
    return PreferencesUpdateResponse(success=True, updated=updated)
