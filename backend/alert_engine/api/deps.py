from __future__ import annotations

import hmac

from fastapi import Depends, Request
from jose import JWTError, jwt

from alert_engine.alerts.config import AlertConfig, load_alert_config
from alert_engine.alerts.entitlements import EntitlementClient, PremiumOracle
from alert_engine.alerts.push_transport import PushTransport, WebPushTransport
from alert_engine.services.caller import CallerContext
from alert_engine.services.delivery_pipeline import DeliveryPipeline
from alert_engine.services.errors import UnauthorizedError
from alert_engine.services.settings_resolver import SettingsResolver


def get_alert_config() -> AlertConfig:
    return load_alert_config()


def get_push_transport(config: AlertConfig = Depends(get_alert_config)) -> PushTransport:
    return WebPushTransport(config)


def get_premium_oracle(config: AlertConfig = Depends(get_alert_config)) -> PremiumOracle:
    return EntitlementClient(config)


def get_settings_resolver(
    config: AlertConfig = Depends(get_alert_config),
) -> SettingsResolver:
    return SettingsResolver(default_timezone=config.default_timezone)


def get_delivery_pipeline(
    config: AlertConfig = Depends(get_alert_config),
    transport: PushTransport = Depends(get_push_transport),
    premium_oracle: PremiumOracle = Depends(get_premium_oracle),
    resolver: SettingsResolver = Depends(get_settings_resolver),
) -> DeliveryPipeline:
    return DeliveryPipeline(
        config, transport=transport, premium_oracle=premium_oracle, resolver=resolver
    )


def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Missing bearer token")
    return token.strip()


def get_caller(
    request: Request, config: AlertConfig = Depends(get_alert_config)
) -> CallerContext:
    """Service secret first, then a signed user session; anything else is rejected."""
    token = _bearer_token(request)

    if config.cron_secret and hmac.compare_digest(
        token.encode("utf-8"), config.cron_secret.encode("utf-8")
    ):
        return CallerContext.service()

    if not config.session_secret:
        raise UnauthorizedError("Invalid credentials")

    try:
        claims = jwt.decode(
            token, config.session_secret, algorithms=[config.session_algorithm]
        )
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired session") from exc

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise UnauthorizedError("Session has no subject")
    return CallerContext.for_user(subject)


def require_user_id(caller: CallerContext = Depends(get_caller)) -> str:
    if caller.is_service or not caller.user_id:
        raise UnauthorizedError("User session required")
    return caller.user_id


def require_service(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    if not caller.is_service:
        raise UnauthorizedError("Service credentials required")
    return caller
