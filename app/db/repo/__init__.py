from app.db.repo.promo_codes_repo import PromoCodesRepo

__all__ = [
    "PromoCodesRepo",
]
