from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class CreatedPromoCode:
    code: str
    amount: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class RedeemedPromoCode:
    code: str
    amount: int


@dataclass(frozen=True, slots=True)
class PromoCodePreview:
    code: str
    amount: int
    is_redeemed: bool
