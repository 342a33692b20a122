from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.promo_codes import PromoCode
from app.db.repo.promo_codes_repo import PromoCodesRepo
from app.db.session import SessionLocal
from app.economy.promo.codes import format_promo_code, generate_promo_code, normalize_promo_code
from app.economy.promo.errors import (
    PromoCodeAllocationError,
    PromoCodeAlreadyRedeemedError,
    PromoCompensationError,
    PromoWalletCreditError,
)
from app.economy.promo.saga import Saga, SagaCompensationError
from app.economy.promo.types import CreatedPromoCode, PromoCodePreview, RedeemedPromoCode

logger = structlog.get_logger(__name__)

PROMO_CREATE_MAX_ATTEMPTS = 5
PG_UNIQUE_VIOLATION = "23505"

WalletCredit = Callable[..., Awaitable[object]]


def is_duplicate_code_error(exc: IntegrityError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == PG_UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)


class PromoCodeStore:
    """Promo code persistence; every operation is its own committed transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        code_generator: Callable[[], str] = generate_promo_code,
        max_attempts: int = PROMO_CREATE_MAX_ATTEMPTS,
    ) -> None:
        self._session_factory = session_factory
        self._code_generator = code_generator
        self._max_attempts = max_attempts

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or SessionLocal

    async def create(self, *, amount: int, created_by: int) -> CreatedPromoCode:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._code_generator()
            try:
                async with self.session_factory.begin() as session:
                    row = await PromoCodesRepo.insert_code(
                        session,
                        code=candidate,
                        amount=amount,
                        created_by=created_by,
                    )
            except IntegrityError as exc:
                if not is_duplicate_code_error(exc):
                    raise
                logger.warning("promo_code_collision", attempt=attempt)
                continue

            return CreatedPromoCode(
                code=format_promo_code(row.code),
                amount=row.amount,
                created_at=row.created_at,
            )

        logger.error("promo_code_allocation_exhausted", attempts=self._max_attempts)
        raise PromoCodeAllocationError

    async def get(self, code: str) -> PromoCode | None:
        async with self.session_factory() as session:
            return await PromoCodesRepo.get_by_code(session, normalize_promo_code(code))

    async def preview(self, code: str) -> PromoCodePreview | None:
        promo_code = await self.get(code)
        if promo_code is None:
            return None
        return PromoCodePreview(
            code=format_promo_code(promo_code.code),
            amount=promo_code.amount,
            is_redeemed=promo_code.redeemed_by is not None,
        )

    async def redeem(self, code: str, *, redeemed_by: int) -> RedeemedPromoCode | None:
        async with self.session_factory.begin() as session:
            row = await PromoCodesRepo.mark_redeemed(
                session,
                code=normalize_promo_code(code),
                redeemed_by=redeemed_by,
            )
        if row is None:
            return None
        return RedeemedPromoCode(code=row.code, amount=row.amount)

    async def unredeem(self, code: str) -> None:
        async with self.session_factory.begin() as session:
            await PromoCodesRepo.clear_redemption(session, code=normalize_promo_code(code))


class PromoRedemptionService:
    """Redeem-then-credit saga.

    The code is marked redeemed before the wallet is credited, so two
    concurrent requests can never both credit the same code. A failed credit
    releases the code again.
    """

    SAGA_NAME = "promo_redeem"

    def __init__(self, store: PromoCodeStore, *, credit_wallet: WalletCredit) -> None:
        self._store = store
        self._credit_wallet = credit_wallet

    async def redeem_to_wallet(self, code: str, *, client_id: int) -> RedeemedPromoCode:
        normalized = normalize_promo_code(code)
        saga = Saga(self.SAGA_NAME)

        async def _mark_redeemed() -> RedeemedPromoCode:
            redeemed = await self._store.redeem(normalized, redeemed_by=client_id)
            if redeemed is None:
                raise PromoCodeAlreadyRedeemedError
            return redeemed

        async def _release() -> None:
            await self._store.unredeem(normalized)

        redeemed = await saga.step("mark_redeemed", _mark_redeemed, compensate=_release)

        async def _credit() -> None:
            await self._credit_wallet(client_id=client_id, amount=redeemed.amount)

        try:
            await saga.step("credit_wallet", _credit)
        except SagaCompensationError as exc:
            logger.critical(
                "promo_redeem_compensation_failed",
                promo_code=format_promo_code(normalized),
                client_id=client_id,
                amount=redeemed.amount,
                failed_step=exc.failed_step,
                credit_error=type(exc.cause).__name__,
                compensation_error=type(exc.__cause__).__name__,
            )
            raise PromoCompensationError(normalized) from exc
        except asyncio.CancelledError:
            # The code is released; whether Poster applied the credit is unknown.
            logger.error(
                "promo_redeem_credit_cancelled",
                promo_code=format_promo_code(normalized),
                client_id=client_id,
                amount=redeemed.amount,
                outcome="unknown",
            )
            raise
        except Exception as exc:
            logger.warning(
                "promo_redeem_wallet_credit_failed",
                promo_code=format_promo_code(normalized),
                client_id=client_id,
                amount=redeemed.amount,
                error_type=type(exc).__name__,
            )
            raise PromoWalletCreditError(normalized) from exc

        logger.info(
            "promo_code_redeemed",
            promo_code=format_promo_code(normalized),
            client_id=client_id,
            amount=redeemed.amount,
        )
        return RedeemedPromoCode(code=format_promo_code(redeemed.code), amount=redeemed.amount)
