from __future__ import annotations

import asyncio

import structlog

from app.services.wallet_passes import notify_wallet_pass_update
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(name="app.workers.tasks.wallet_passes.refresh_wallet_passes")
def refresh_wallet_passes(client_id: int) -> dict[str, object]:
    notified = asyncio.run(notify_wallet_pass_update(client_id))
    logger.info("wallet_pass_refresh_finished", client_id=client_id, platforms=notified)
    return {"client_id": client_id, "platforms": notified}


async def enqueue_wallet_pass_refresh(client_id: int) -> None:
    await asyncio.to_thread(refresh_wallet_passes.delay, client_id)
