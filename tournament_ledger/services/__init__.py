"""External collaborators: administrative authority and value transfer."""

from tournament_ledger.services.auth import AdminAuthority, StaticAdminAuthority
from tournament_ledger.services.wallet import (
    InsufficientBalanceError,
    TransferReceipt,
    ValueTransfer,
    WalletError,
    WalletService,
)

__all__ = [
    # Auth
    "AdminAuthority",
    "StaticAdminAuthority",
    # Wallet
    "InsufficientBalanceError",
    "TransferReceipt",
    "ValueTransfer",
    "WalletError",
    "WalletService",
]
