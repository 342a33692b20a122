from app.economy.promo.service import PromoCodeStore, PromoRedemptionService

__all__ = [
    "PromoCodeStore",
    "PromoRedemptionService",
]
