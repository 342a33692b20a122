from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
ALERT_SOURCE = "tolo-promo-api"
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}


@dataclass(frozen=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str


@dataclass(frozen=True, slots=True)
class AlertContext:
    event: str
    payload: dict[str, object]
    severity: str
    sent_at: datetime
    app_env: str
    routing_key: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=("generic",), severity="warning")
EVENT_ALERT_ROUTES = {
    "promo_redeem_compensation_failed": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="critical",
    ),
    "promo_code_allocation_exhausted": AlertRoute(
        channels=("slack", "generic"),
        severity="error",
    ),
}


def _generic_body(ctx: AlertContext) -> dict[str, Any]:
    return {
        "event": ctx.event,
        "payload": ctx.payload,
        "sent_at": ctx.sent_at.isoformat(),
        "severity": ctx.severity,
    }


def _slack_body(ctx: AlertContext) -> dict[str, Any]:
    fields = [
        {"title": "Environment", "value": ctx.app_env, "short": True},
        {"title": "Sent At", "value": ctx.sent_at.isoformat(), "short": True},
    ]
    fields.extend(
        {"title": str(key), "value": str(value), "short": True}
        for key, value in sorted(ctx.payload.items())
    )
    return {
        "text": f"[{ctx.severity.upper()}] {ctx.event}",
        "attachments": [
            {
                "color": SEVERITY_COLOR.get(ctx.severity, SEVERITY_COLOR["warning"]),
                "fields": fields,
            }
        ],
    }


def _pagerduty_body(ctx: AlertContext) -> dict[str, Any]:
    return {
        "routing_key": ctx.routing_key,
        "event_action": "trigger",
        # One incident per code, however many retries hit the same failure.
        "dedup_key": f"{ctx.event}:{ctx.payload.get('promo_code', '-')}",
        "payload": {
            "summary": f"[{ctx.app_env}] {ctx.event}",
            "source": f"{ALERT_SOURCE}/{ctx.app_env}",
            "severity": ctx.severity,
            "timestamp": ctx.sent_at.isoformat(),
            "component": "promo-codes",
            "custom_details": ctx.payload,
        },
    }


CHANNEL_BODY_BUILDERS: dict[str, Callable[[AlertContext], dict[str, Any]]] = {
    "generic": _generic_body,
    "slack": _slack_body,
    "pagerduty": _pagerduty_body,
}


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def resolve_alert_route(*, event: str, policy_raw: str = "") -> AlertRoute:
    """Route for ``event``, optionally overridden by a JSON policy.

    The policy maps event names (or ``"*"``) to ``{"channels": [...],
    "severity": "..."}``. Unknown channels and severities are ignored.
    """
    route = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    if not policy_raw:
        return route
    try:
        policy = json.loads(policy_raw)
    except json.JSONDecodeError:
        logger.warning("ops_alert_policy_parse_failed")
        return route

    override = (policy.get(event) or policy.get("*")) if isinstance(policy, dict) else None
    if not isinstance(override, dict):
        return route

    channels = route.channels
    if isinstance(override.get("channels"), list):
        normalized = [_clean(channel).lower() for channel in override["channels"]]
        picked = tuple(dict.fromkeys(c for c in normalized if c in CHANNEL_BODY_BUILDERS))
        channels = picked or channels

    severity = _clean(override.get("severity")).lower()
    if severity not in SEVERITY_COLOR:
        severity = route.severity
    return AlertRoute(channels=channels, severity=severity)


def _channel_urls(settings: object) -> dict[str, str]:
    urls = {
        "generic": _clean(getattr(settings, "ops_alert_webhook_url", "")),
        "slack": _clean(getattr(settings, "ops_alert_slack_webhook_url", "")),
    }
    if _clean(getattr(settings, "ops_alert_pagerduty_routing_key", "")):
        urls["pagerduty"] = (
            _clean(getattr(settings, "ops_alert_pagerduty_events_url", "")) or DEFAULT_PAGERDUTY_EVENTS_URL
        )
    return {channel: url for channel, url in urls.items() if url}


async def _deliver(client: httpx.AsyncClient, *, channel: str, url: str, ctx: AlertContext) -> bool:
    try:
        response = await client.post(url, json=CHANNEL_BODY_BUILDERS[channel](ctx))
        response.raise_for_status()
    except Exception:
        logger.exception("ops_alert_delivery_failed", alert_event=ctx.event, provider=channel)
        return False
    return True


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    """Fan an alert out to every configured channel of its route.

    Returns True when at least one channel accepted it.
    """
    settings = get_settings()
    route = resolve_alert_route(
        event=event,
        policy_raw=_clean(getattr(settings, "ops_alert_escalation_policy_json", "")),
    )
    urls = _channel_urls(settings)
    targets = [(channel, urls[channel]) for channel in route.channels if channel in urls]
    if not targets:
        logger.warning("ops_alert_no_targets", alert_event=event)
        return False

    ctx = AlertContext(
        event=event,
        payload=payload,
        severity=route.severity,
        sent_at=datetime.now(timezone.utc),
        app_env=_clean(getattr(settings, "app_env", "")) or "dev",
        routing_key=_clean(getattr(settings, "ops_alert_pagerduty_routing_key", "")),
    )
    async with httpx.AsyncClient(timeout=5.0) as client:
        outcomes = await asyncio.gather(
            *(_deliver(client, channel=channel, url=url, ctx=ctx) for channel, url in targets)
        )

    delivered_to = [channel for (channel, _), ok in zip(targets, outcomes) if ok]
    failed_to = [channel for (channel, _), ok in zip(targets, outcomes) if not ok]
    if not delivered_to:
        logger.error("ops_alert_delivery_exhausted", alert_event=event, severity=route.severity, failed_to=failed_to)
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
