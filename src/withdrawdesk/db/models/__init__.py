from withdrawdesk.db.models.wallet import WalletAddress, WalletToken

__all__ = [
    "WalletAddress",
    "WalletToken",
]
