class PromoError(Exception):
    pass


class PromoCodeAlreadyRedeemedError(PromoError):
    pass


class PromoCodeAllocationError(PromoError):
    """No free code was found within the retry budget."""


class PromoWalletCreditError(PromoError):
    """The wallet credit failed and the redemption was rolled back."""


class PromoCompensationError(PromoError):
    """The wallet credit failed and rolling back the redemption failed too."""
