from __future__ import annotations

import os

from celery import Celery

BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", BROKER_URL)

celery_app = Celery(
    "alert_engine_worker",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
    include=[
        "alert_engine.worker.tasks.alerts",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "dispatch-scheduled-alerts": {
            "task": "alert_engine.worker.tasks.dispatch_scheduled_alerts",
            "schedule": 60.0,
        },
    },
)
