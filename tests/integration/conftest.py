from __future__ import annotations

import pytest
from sqlalchemy import text

from app.core.integration_db_safety import assert_safe_integration_db
from app.db.bootstrap import ensure_promo_codes_table, reset_schema_state
from app.db.session import engine


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    # Only reached with a live server; refuse anything that is not a local test DB.
    assert_safe_integration_db(str(engine.url))

    reset_schema_state()
    await ensure_promo_codes_table()
    async with engine.begin() as conn:
        await conn.execute(text("TRUNCATE TABLE promo_codes"))

    yield

    await engine.dispose()
