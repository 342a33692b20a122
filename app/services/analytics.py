from __future__ import annotations

from datetime import datetime, timezone

import httpx

from app.core.config import get_settings

EVENT_PROMO_CODE_CREATE = "promo_code:create"
EVENT_PROMO_CODE_REDEEM = "promo_code:redeem"


async def track_event(
    *,
    distinct_id: str,
    event: str,
    properties: dict[str, object] | None = None,
) -> bool:
    """Send one event to the PostHog capture endpoint. Returns False when disabled."""
    settings = get_settings()
    api_key = settings.posthog_api_key.strip()
    if not api_key:
        return False

    body = {
        "api_key": api_key,
        "event": event,
        "distinct_id": distinct_id,
        "properties": properties or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    async with httpx.AsyncClient(timeout=5.0) as client:
        response = await client.post(f"{settings.posthog_host.rstrip('/')}/capture/", json=body)
        response.raise_for_status()
    return True
