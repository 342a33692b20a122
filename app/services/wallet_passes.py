from __future__ import annotations

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

WALLET_PLATFORMS = ("apple", "google")


async def notify_wallet_pass_update(client_id: int) -> list[str]:
    """Ask the pass service to refresh the client's Apple and Google wallet passes."""
    webhook_url = get_settings().wallet_pass_webhook_url.strip()
    if not webhook_url:
        return []

    notified: list[str] = []
    async with httpx.AsyncClient(timeout=5.0) as client:
        for platform in WALLET_PLATFORMS:
            try:
                response = await client.post(
                    webhook_url,
                    json={"client_id": client_id, "platform": platform},
                )
                response.raise_for_status()
            except httpx.HTTPError:
                logger.warning(
                    "wallet_pass_update_failed",
                    client_id=client_id,
                    platform=platform,
                    exc_info=True,
                )
                continue
            notified.append(platform)
    return notified
