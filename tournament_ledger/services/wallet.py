"""Wallet service for prize transfers.

The ledger never moves funds itself; it hands (recipient, amount) pairs to a
``ValueTransfer`` collaborator. ``WalletService`` is the in-process reference
implementation:

- Atomic single-recipient credits
- Reversal of a completed transfer (used by settlement compensation)
- Transaction log with SHA-256 integrity hashes
"""

import hashlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from tournament_ledger.logging_config import get_logger

logger = get_logger(__name__)


class WalletError(Exception):
    """Wallet operation error."""

    pass


class InsufficientBalanceError(WalletError):
    """Insufficient balance error."""

    pass


class TransactionType(str, Enum):
    """Transaction types for wallet operations."""

    TOURNAMENT_PRIZE = "tournament_prize"
    PRIZE_REVERSAL = "prize_reversal"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    REVERSED = "reversed"


@dataclass
class TransferReceipt:
    """Record of one completed transfer."""

    id: str
    recipient: str
    amount: int
    tx_type: TransactionType
    balance_before: int
    balance_after: int
    integrity_hash: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    memo: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "amount": self.amount,
            "tx_type": self.tx_type.value,
            "status": self.status.value,
            "memo": self.memo,
            "created_at": self.created_at.isoformat(),
        }


class ValueTransfer(Protocol):
    """Value-transfer collaborator consumed by settlement.

    ``transfer`` either completes atomically and returns a receipt, or raises
    ``WalletError`` and moves nothing.
    """

    def transfer(
        self, recipient: str, amount: int, *, memo: Optional[str] = None
    ) -> TransferReceipt: ...

    def reverse(self, receipt: TransferReceipt) -> TransferReceipt: ...


class WalletService:
    """In-process balance book implementing ``ValueTransfer``.

    Balances are credited from an unbounded treasury; reversals debit the
    recipient and fail if the funds have already left.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None) -> None:
        self._balances: Dict[str, int] = dict(balances or {})
        self._transactions: List[TransferReceipt] = []
        self._lock = threading.Lock()

    def get_balance(self, recipient: str) -> int:
        """Current balance for a recipient (0 if unknown)."""
        return self._balances.get(recipient, 0)

    @property
    def transactions(self) -> List[TransferReceipt]:
        return list(self._transactions)

    def transfer(
        self,
        recipient: str,
        amount: int,
        *,
        memo: Optional[str] = None,
    ) -> TransferReceipt:
        """Credit ``amount`` to ``recipient``.

        Raises:
            WalletError: If amount is not positive or recipient is empty
        """
        if amount <= 0:
            raise WalletError("Transfer amount must be positive")
        if not recipient:
            raise WalletError("Recipient is required")

        return self._apply(recipient, amount, TransactionType.TOURNAMENT_PRIZE, memo)

    def reverse(self, receipt: TransferReceipt) -> TransferReceipt:
        """Undo a completed transfer by debiting the same amount.

        Raises:
            WalletError: If the receipt was already reversed
            InsufficientBalanceError: If the recipient no longer holds the funds
        """
        if receipt.status == TransactionStatus.REVERSED:
            raise WalletError(f"Transaction already reversed: {receipt.id}")

        reversal = self._apply(
            receipt.recipient,
            -receipt.amount,
            TransactionType.PRIZE_REVERSAL,
            f"Reversal of {receipt.id}",
        )
        receipt.status = TransactionStatus.REVERSED
        return reversal

    def _apply(
        self,
        recipient: str,
        amount: int,
        tx_type: TransactionType,
        memo: Optional[str],
    ) -> TransferReceipt:
        with self._lock:
            balance_before = self._balances.get(recipient, 0)

            if amount < 0 and balance_before < abs(amount):
                raise InsufficientBalanceError(
                    f"Insufficient balance: {balance_before} < {abs(amount)}"
                )

            balance_after = balance_before + amount
            self._balances[recipient] = balance_after

            tx = TransferReceipt(
                id=str(uuid4()),
                recipient=recipient,
                amount=abs(amount),
                tx_type=tx_type,
                balance_before=balance_before,
                balance_after=balance_after,
                memo=memo,
                integrity_hash=self._compute_integrity_hash(
                    recipient=recipient,
                    tx_type=tx_type,
                    amount=amount,
                    balance_before=balance_before,
                    balance_after=balance_after,
                ),
            )
            self._transactions.append(tx)

        logger.info(
            "wallet_transfer",
            recipient=recipient,
            tx_type=tx_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
        )
        return tx

    @staticmethod
    def _compute_integrity_hash(
        recipient: str,
        tx_type: TransactionType,
        amount: int,
        balance_before: int,
        balance_after: int,
    ) -> str:
        """Compute SHA-256 integrity hash for transaction.

        This hash can be verified later to detect tampering.
        """
        data = f"{recipient}:{tx_type.value}:{amount}:{balance_before}:{balance_after}"
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(tx: TransferReceipt) -> bool:
        """Verify transaction integrity hash."""
        signed_amount = -tx.amount if tx.balance_after < tx.balance_before else tx.amount
        expected = WalletService._compute_integrity_hash(
            recipient=tx.recipient,
            tx_type=tx.tx_type,
            amount=signed_amount,
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
        )
        return tx.integrity_hash == expected
