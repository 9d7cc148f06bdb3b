from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SendAlertRequest(BaseModel):
    alert_type_id: str | None = None
    user_id: str | None = None
    title: str | None = None
    body: str | None = None
    data: dict[str, Any] | None = None


class SendAlertResponse(BaseModel):
    success: bool
    sent: int | None = None
    failed: int | None = None
    history_id: UUID | None = None
    skipped_reason: str | None = None
    error_message: str | None = None


class ScheduleAlertRequest(BaseModel):
    alert_type_id: str | None = None
    scheduled_at: str | None = None
    expires_at: str | None = None
    recurrence: str | None = None
    recurrence_rule: str | None = None
    title: str | None = None
    body: str | None = None
    data: dict[str, Any] | None = None


class ScheduledAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    alert_type_id: str
    priority: str
    channel: str
    scheduled_at: datetime
    expires_at: datetime | None
    recurrence: str | None
    recurrence_rule: str | None
    next_run_at: datetime | None
    title: str
    body: str
    data: dict[str, Any]
    status: str
    attempts: int
    last_error: str | None


class ScheduleAlertResponse(BaseModel):
    scheduled: ScheduledAlertResponse


class AlertHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    alert_type_id: str
    scheduled_alert_id: UUID | None
    priority: str
    channel: str
    status: str
    title: str
    body: str
    data: dict[str, Any]
    sent_at: datetime
    delivered_at: datetime | None
    read_at: datetime | None
    clicked_at: datetime | None
    dismissed_at: datetime | None
    error_message: str | None


class AlertHistoryPageResponse(BaseModel):
    items: list[AlertHistoryResponse]
    next_cursor: str | None


class TrackHistoryRequest(BaseModel):
    action: str | None = None


class TrackHistoryResponse(BaseModel):
    success: bool
    updated: bool
    message: str | None = None
    history: AlertHistoryResponse


class PreferenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_type_id: str
    label: str
    description: str | None
    category: str
    premium_only: bool
    enabled: bool
    priority: str
    channel: str
    quiet_start: str
    quiet_end: str
    cooldown_minutes: int
    timezone: str
    is_default: bool


class PreferencesResponse(BaseModel):
    preferences: list[PreferenceResponse]


class PreferenceUpdateItem(BaseModel):
    alert_type_id: str
    enabled: bool | None = None
    priority: str | None = None
    channel: str | None = None
    quiet_start: str | None = None
    quiet_end: str | None = None
    cooldown_minutes: int | None = None
    timezone: str | None = None


class PreferencesUpdateRequest(BaseModel):
    preferences: list[PreferenceUpdateItem] = Field(default_factory=list)


class PreferencesUpdateResponse(BaseModel):
    success: bool
    updated: int


class DispatchSummaryResponse(BaseModel):
    picked: int
    sent: int
    failed: int
    rescheduled: int
    cancelled: int
    expired: int
    recovered_stuck: int
    errors: int


class ErrorEnvelope(BaseModel):
    error: dict[str, Any]
