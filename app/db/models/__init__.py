from app.db.models.promo_codes import PromoCode

__all__ = [
    "PromoCode",
]
