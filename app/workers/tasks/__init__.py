from app.workers.tasks.wallet_passes import refresh_wallet_passes

__all__ = [
    "refresh_wallet_passes",
]
