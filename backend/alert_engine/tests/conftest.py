from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.orm import Session

from alert_engine.alerts.catalog import seed_alert_types
from alert_engine.alerts.config import AlertConfig, load_alert_config
from alert_engine.alerts.push_transport import TransportResult
from alert_engine.db import models  # noqa: F401
from alert_engine.db.base import Base
from alert_engine.db.session import configure_engine, get_engine, get_session_factory


class RecordingTransport:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.result = TransportResult(success=True, sent=1, failed=0)
        self.error: Exception | None = None

    def send_to_user(
        self,
        session: Session,
        *,
        user_id: str,
        notification_type: str,
        payload: dict[str, Any],
    ) -> TransportResult:
        self.calls.append(
            {
                "user_id": user_id,
                "notification_type": notification_type,
                "payload": payload,
            }
        )
        if self.error is not None:
            raise self.error
        return self.result


class StaticPremiumOracle:
    def __init__(self) -> None:
        self.premium_user_ids: set[str] = set()

    def is_premium_user(self, user_id: str) -> bool:
        return user_id in self.premium_user_ids


@pytest.fixture()
def db_session(tmp_path: Path) -> Iterator[Session]:
    configure_engine(f"sqlite:///{tmp_path / 'test_alerts.db'}")
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with get_session_factory()() as session:
        seed_alert_types(session)
        yield session

    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def alert_config() -> AlertConfig:
    return replace(
        load_alert_config(),
        default_timezone="UTC",
        max_pending_per_user=50,
        push_dry_run=True,
        premium_user_ids=set(),
        entitlement_base_url="",
        dispatch_workers=1,
        dispatch_batch_size=50,
    )


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def premium_oracle() -> StaticPremiumOracle:
    return StaticPremiumOracle()
