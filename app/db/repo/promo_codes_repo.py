from __future__ import annotations

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.promo_codes import PromoCode


class PromoCodesRepo:
    @staticmethod
    async def insert_code(
        session: AsyncSession,
        *,
        code: str,
        amount: int,
        created_by: int,
    ) -> Row:
        stmt = (
            insert(PromoCode)
            .values(code=code, amount=amount, created_by=created_by)
            .returning(PromoCode.code, PromoCode.amount, PromoCode.created_at)
        )
        result = await session.execute(stmt)
        return result.one()

    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> PromoCode | None:
        stmt = select(PromoCode).where(PromoCode.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_redeemed(
        session: AsyncSession,
        *,
        code: str,
        redeemed_by: int,
    ) -> Row | None:
        # Compare-and-swap: only an unredeemed row matches, so exactly one
        # concurrent caller gets a row back.
        stmt = (
            update(PromoCode)
            .where(
                PromoCode.code == code,
                PromoCode.redeemed_by.is_(None),
            )
            .values(redeemed_by=redeemed_by, redeemed_at=func.now())
            .returning(PromoCode.code, PromoCode.amount)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def clear_redemption(session: AsyncSession, *, code: str) -> int:
        stmt = (
            update(PromoCode)
            .where(PromoCode.code == code)
            .values(redeemed_by=None, redeemed_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
