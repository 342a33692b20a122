from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.db.models.promo_codes import PROMO_AMOUNT_MAX, PROMO_AMOUNT_MIN
from app.economy.promo.codes import is_valid_promo_code, normalize_promo_code


class PromoCodeCreateRequest(BaseModel):
    amount: int = Field(ge=PROMO_AMOUNT_MIN, le=PROMO_AMOUNT_MAX, strict=True)


class PromoCodeRedeemRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        normalized = normalize_promo_code(value)
        if not is_valid_promo_code(normalized):
            raise ValueError("invalid promo code format")
        return normalized


class PromoCodeCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    amount: int
    created_at: datetime = Field(alias="createdAt")


class PromoCodePreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    amount: int
    is_redeemed: bool = Field(alias="isRedeemed")


class PromoCodeRedeemResponse(BaseModel):
    code: str
    amount: int
    message: str
