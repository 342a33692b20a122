from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.db.bootstrap import ensure_promo_codes_table, reset_schema_state
from app.db.session import SessionLocal, engine
from app.economy.promo.errors import (
    PromoCodeAllocationError,
    PromoCodeAlreadyRedeemedError,
    PromoWalletCreditError,
)
from app.economy.promo.service import PromoCodeStore, PromoRedemptionService


@pytest.mark.asyncio
async def test_bootstrap_is_idempotent() -> None:
    reset_schema_state()
    await ensure_promo_codes_table()
    reset_schema_state()
    await ensure_promo_codes_table()

    async with engine.connect() as conn:
        count = await conn.scalar(text("SELECT count(*) FROM promo_codes"))
    assert count == 0


@pytest.mark.asyncio
async def test_concurrent_bootstrap_on_empty_database() -> None:
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE IF EXISTS promo_codes"))
    reset_schema_state()

    await asyncio.gather(*(ensure_promo_codes_table() for _ in range(5)))

    async with engine.connect() as conn:
        table = await conn.scalar(text("SELECT to_regclass('public.promo_codes')::text"))
        count = await conn.scalar(text("SELECT count(*) FROM promo_codes"))
    assert table == "promo_codes"
    assert count == 0


@pytest.mark.asyncio
async def test_create_get_and_preview_round_trip() -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")

    created = await store.create(amount=50_000, created_by=100)
    record = await store.get("abc-123")
    preview = await store.preview("ABC123")

    assert created.code == "ABC-123"
    assert created.created_at is not None
    assert record is not None
    assert record.code == "ABC123"
    assert record.created_by == 100
    assert record.redeemed_by is None
    assert preview is not None
    assert preview.is_redeemed is False
    assert await store.get("ZZZ999") is None


@pytest.mark.asyncio
async def test_create_retries_past_existing_code() -> None:
    codes = iter(["ABC123", "ABC123", "XYZ789"])
    store = PromoCodeStore(SessionLocal, code_generator=lambda: next(codes))

    first = await store.create(amount=10_000, created_by=1)
    second = await store.create(amount=10_000, created_by=1)

    assert first.code == "ABC-123"
    assert second.code == "XYZ-789"


@pytest.mark.asyncio
async def test_create_exhausts_retry_budget() -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")
    await store.create(amount=10_000, created_by=1)

    with pytest.raises(PromoCodeAllocationError):
        await store.create(amount=10_000, created_by=1)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [9_999, 200_001])
async def test_database_rejects_out_of_range_amounts(amount: int) -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")

    with pytest.raises(IntegrityError):
        await store.create(amount=amount, created_by=1)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [10_000, 200_000])
async def test_database_accepts_inclusive_bounds(amount: int) -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")

    created = await store.create(amount=amount, created_by=1)
    record = await store.get("ABC123")

    assert created.amount == amount
    assert record is not None
    assert record.amount == amount


@pytest.mark.asyncio
async def test_database_rejects_half_redeemed_rows() -> None:
    with pytest.raises(IntegrityError):
        async with engine.begin() as conn:
            await conn.execute(
                text(
                    "INSERT INTO promo_codes (code, amount, created_by, redeemed_by) "
                    "VALUES ('ABC123', 10000, 1, 2)"
                )
            )


@pytest.mark.asyncio
async def test_redeem_is_conditional_and_unredeem_restores() -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")
    await store.create(amount=25_000, created_by=1)

    first = await store.redeem("ABC-123", redeemed_by=200)
    second = await store.redeem("ABC123", redeemed_by=201)
    record = await store.get("ABC123")

    assert first is not None and first.amount == 25_000
    assert second is None
    assert record.redeemed_by == 200
    assert record.redeemed_at is not None

    await store.unredeem("ABC123")
    restored = await store.get("ABC123")
    assert restored.redeemed_by is None
    assert restored.redeemed_at is None
    assert await store.redeem("ABC123", redeemed_by=201) is not None


@pytest.mark.asyncio
async def test_parallel_redeems_credit_exactly_once() -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")
    await store.create(amount=50_000, created_by=1)
    credits: list[tuple[int, int]] = []
    barrier = asyncio.Event()

    async def _credit(*, client_id: int, amount: int) -> None:
        credits.append((client_id, amount))

    service = PromoRedemptionService(store, credit_wallet=_credit)

    async def _attempt(client_id: int) -> str:
        await barrier.wait()
        try:
            await service.redeem_to_wallet("ABC123", client_id=client_id)
        except PromoCodeAlreadyRedeemedError:
            return "lost"
        return "won"

    tasks = [asyncio.create_task(_attempt(client_id)) for client_id in range(300, 310)]
    barrier.set()
    outcomes = await asyncio.gather(*tasks)

    assert outcomes.count("won") == 1
    assert outcomes.count("lost") == 9
    assert len(credits) == 1
    record = await store.get("ABC123")
    assert record.redeemed_by == credits[0][0]


@pytest.mark.asyncio
async def test_failed_credit_leaves_code_redeemable() -> None:
    store = PromoCodeStore(SessionLocal, code_generator=lambda: "ABC123")
    await store.create(amount=50_000, created_by=1)

    async def _failing_credit(*, client_id: int, amount: int) -> None:
        raise RuntimeError("poster down")

    with pytest.raises(PromoWalletCreditError):
        await PromoRedemptionService(store, credit_wallet=_failing_credit).redeem_to_wallet(
            "ABC123",
            client_id=200,
        )

    record = await store.get("ABC123")
    assert record.redeemed_by is None
    assert record.redeemed_at is None
