from __future__ import annotations

import logging
from typing import Protocol

import httpx

from alert_engine.alerts.config import AlertConfig

logger = logging.getLogger(__name__)


class PremiumOracle(Protocol):
    def is_premium_user(self, user_id: str) -> bool: ...


class EntitlementClient:
    """Answers whether a user holds the premium entitlement.

    The configured allowlist wins; otherwise the entitlement service is asked.
    Any failure to reach it is treated as "not premium".
    """

    def __init__(self, config: AlertConfig) -> None:
        self.config = config

    def is_premium_user(self, user_id: str) -> bool:
        if user_id in self.config.premium_user_ids:
            return True
        if not self.config.entitlement_base_url:
            return False

        headers = {"accept": "application/json"}
        if self.config.entitlement_api_key:
            headers["authorization"] = f"Bearer {self.config.entitlement_api_key}"

        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.get(
                    f"{self.config.entitlement_base_url}/users/{user_id}/entitlements",
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.warning(
                "entitlement_lookup_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return False

        if response.status_code == 404:
            return False
        if not 200 <= response.status_code < 300:
            logger.warning(
                "entitlement_lookup_failed",
                extra={"user_id": user_id, "status_code": response.status_code},
            )
            return False

        try:
            body = response.json() if response.content else {}
        except ValueError:
            logger.warning(
                "entitlement_lookup_failed",
                extra={"user_id": user_id, "error": "invalid_json"},
            )
            return False
        return isinstance(body, dict) and body.get("premium") is True
