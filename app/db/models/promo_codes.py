from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base

PROMO_AMOUNT_MIN = 10_000
PROMO_AMOUNT_MAX = 200_000
PROMO_CODE_LENGTH = 6


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint(
            f"amount >= {PROMO_AMOUNT_MIN} AND amount <= {PROMO_AMOUNT_MAX}",
            name="ck_promo_codes_amount_range",
        ),
        CheckConstraint(
            "(redeemed_by IS NULL AND redeemed_at IS NULL) "
            "OR (redeemed_by IS NOT NULL AND redeemed_at IS NOT NULL)",
            name="ck_promo_codes_redeemed_pair",
        ),
    )

    code: Mapped[str] = mapped_column(String(PROMO_CODE_LENGTH), primary_key=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    redeemed_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
