from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import URL, make_url

from app.core.config import get_settings
from app.core.integration_db_safety import assert_safe_integration_db
from app.db.bootstrap import ensure_promo_codes_table
from app.db.session import dispose_engine

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


async def _create_database_if_missing(parsed: URL) -> bool:
    db_name = parsed.database or ""
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'; use [A-Za-z0-9_] only.")

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


async def _run() -> int:
    database_url = get_settings().database_url
    assert_safe_integration_db(database_url)
    parsed = make_url(database_url)
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    created = await _create_database_if_missing(parsed)
    try:
        await ensure_promo_codes_table()
    finally:
        await dispose_engine()

    print(  # noqa: T201
        f"ensure_test_db: {'created' if created else 'exists'} db={parsed.database} "
        f"host={parsed.host}:{parsed.port or 5432} schema=ready"
    )
    return 0


def main() -> int:
    return asyncio.run(_run())


if __name__ == "__main__":
    raise SystemExit(main())
