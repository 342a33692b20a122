from __future__ import annotations

import structlog
from sqlalchemy import text
from sqlalchemy.schema import CreateTable

from app.core.config import get_settings
from app.db.models.promo_codes import PromoCode
from app.db.session import engine

logger = structlog.get_logger(__name__)

# Arbitrary constant shared by every process that bootstraps promo_codes.
PROMO_SCHEMA_LOCK_KEY = 7_244_101_501

_schema_ready = False


async def ensure_promo_codes_table() -> None:
    """Create the promo_codes table with its constraints if it does not exist.

    A single idempotent DDL statement; after the first success in a process
    the call is a no-op. On PostgreSQL the DDL runs under a transaction-level
    advisory lock, since concurrent ``CREATE TABLE IF NOT EXISTS`` can still
    collide in the catalog. Disabled with PROMO_SCHEMA_BOOTSTRAP=false once
    the Alembic revision owns the schema.
    """
    global _schema_ready
    if _schema_ready or not get_settings().promo_schema_bootstrap:
        return

    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": PROMO_SCHEMA_LOCK_KEY},
            )
        await conn.execute(CreateTable(PromoCode.__table__, if_not_exists=True))

    _schema_ready = True
    logger.info("promo_codes_schema_ready")


def reset_schema_state() -> None:
    global _schema_ready
    _schema_ready = False
