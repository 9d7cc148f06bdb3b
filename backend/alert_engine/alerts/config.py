from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AlertConfig:
    cron_secret: str
    session_secret: str
    session_algorithm: str
    default_timezone: str
    max_pending_per_user: int
    push_timeout_seconds: float
    push_dry_run: bool
    vapid_private_key: str
    vapid_subject: str
    premium_user_ids: set[str]
    entitlement_base_url: str
    entitlement_api_key: str
    dispatch_workers: int
    dispatch_batch_size: int

    @property
    def send_lock_ttl_seconds(self) -> float:
        return self.push_timeout_seconds + 30.0


def _split_csv(raw: str) -> set[str]:
    return {item.strip() for item in raw.split(",") if item.strip()}


def load_alert_config() -> AlertConfig:
    return AlertConfig(
        cron_secret=os.getenv("CRON_SECRET", ""),
        session_secret=os.getenv("SESSION_SECRET", ""),
        session_algorithm=os.getenv("SESSION_ALGORITHM", "HS256"),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        max_pending_per_user=int(os.getenv("MAX_PENDING_PER_USER", "50")),
        push_timeout_seconds=float(os.getenv("PUSH_TIMEOUT_SECONDS", "10")),
        push_dry_run=os.getenv("PUSH_DRY_RUN", "true").lower() == "true",
        vapid_private_key=os.getenv("VAPID_PRIVATE_KEY", ""),
        vapid_subject=os.getenv("VAPID_SUBJECT", "mailto:support@example.com"),
        premium_user_ids=_split_csv(os.getenv("PREMIUM_USER_IDS", "")),
        entitlement_base_url=os.getenv("ENTITLEMENT_BASE_URL", "").rstrip("/"),
        entitlement_api_key=os.getenv("ENTITLEMENT_API_KEY", ""),
        dispatch_workers=max(1, int(os.getenv("DISPATCH_WORKERS", "8"))),
        dispatch_batch_size=max(1, int(os.getenv("DISPATCH_BATCH_SIZE", "50"))),
    )
