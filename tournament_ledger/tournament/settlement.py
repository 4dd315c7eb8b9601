"""
Tournament Settlement Service.

Prize distribution when the tournament ends.

Features:
- Fixed 50/30/20 split over the top three ranks (basis points)
- Independent floor per share; rounding dust stays unallocated
- Transfers through the ValueTransfer collaborator, in rank order
- All-or-nothing: a failed transfer reverses every earlier one

Usage:
    settlement = TournamentSettlement(wallet_service)
    report = settlement.settle(ranked_agents, prize_pool)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from tournament_ledger.logging_config import get_logger
from tournament_ledger.services.wallet import TransferReceipt, ValueTransfer, WalletError
from tournament_ledger.utils.errors import TransferFailedError
from .models import BASIS_POINTS, AgentEntry, agent_id_text

logger = get_logger(__name__)

# Rank 1, 2, 3 shares in basis points. Ranks beyond 3 receive nothing.
PRIZE_SHARES_BPS: tuple[int, ...] = (5000, 3000, 2000)


@dataclass
class PayoutResult:
    """One paid (or to-be-paid) rank."""

    rank: int = 0
    agent_id: str = ""
    recipient: str = ""
    share_bps: int = 0
    prize_amount: int = 0
    transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "agent_id": agent_id_text(self.agent_id),
            "recipient": self.recipient,
            "share_bps": self.share_bps,
            "prize_amount": self.prize_amount,
            "transaction_id": self.transaction_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayoutResult":
        return cls(
            rank=int(data["rank"]),
            agent_id=data["agent_id"],
            recipient=data["recipient"],
            share_bps=int(data["share_bps"]),
            prize_amount=int(data["prize_amount"]),
            transaction_id=data.get("transaction_id"),
        )


@dataclass
class PayoutReport:
    """Settlement outcome returned by ``end``."""

    settlement_id: str = field(default_factory=lambda: str(uuid4()))
    prize_pool: int = 0
    payouts: List[PayoutResult] = field(default_factory=list)
    settled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Wallet receipts of this settlement (not persisted)
    receipts: List[TransferReceipt] = field(default_factory=list, repr=False)

    @property
    def total_paid(self) -> int:
        return sum(p.prize_amount for p in self.payouts)

    @property
    def unallocated(self) -> int:
        """Pool left unpaid: rounding dust plus shares of unfilled ranks. Never redistributed."""
        if not self.payouts:
            return 0
        return self.prize_pool - self.total_paid

    def amount_for(self, agent_id: str) -> int:
        for payout in self.payouts:
            if payout.agent_id == agent_id:
                return payout.prize_amount
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settlement_id": self.settlement_id,
            "prize_pool": self.prize_pool,
            "total_paid": self.total_paid,
            "unallocated": self.unallocated,
            "payouts": [p.to_dict() for p in self.payouts],
            "settled_at": self.settled_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayoutReport":
        return cls(
            settlement_id=data["settlement_id"],
            prize_pool=int(data["prize_pool"]),
            payouts=[PayoutResult.from_dict(p) for p in data.get("payouts", [])],
            settled_at=datetime.fromisoformat(data["settled_at"]),
        )


def prize_share(prize_pool: int, share_bps: int) -> int:
    """floor(prize_pool * share_bps / 10000)."""
    return prize_pool * share_bps // BASIS_POINTS


class TournamentSettlement:
    """
    Prize settlement service.

    Computes the payout plan for a ranked leaderboard and applies it through
    the wallet. Either every transfer lands or none does.
    """

    def __init__(
        self,
        wallet_service: Optional[ValueTransfer],
        shares_bps: Sequence[int] = PRIZE_SHARES_BPS,
    ):
        """
        Args:
            wallet_service: ValueTransfer used for prize transfers
            shares_bps: Per-rank shares in basis points
        """
        if sum(shares_bps) > BASIS_POINTS:
            raise ValueError("Prize shares exceed 100%")
        self.wallet = wallet_service
        self.shares_bps = tuple(shares_bps)

    def calculate_payouts(
        self, ranked: Sequence[AgentEntry], prize_pool: int
    ) -> List[PayoutResult]:
        """
        Payout plan for a ranked leaderboard.

        Args:
            ranked: Agents ordered by final rank
            prize_pool: Pool balance at settlement

        Returns:
            One PayoutResult per paid rank, in rank order
        """
        payouts: List[PayoutResult] = []
        for rank, (agent, share_bps) in enumerate(zip(ranked, self.shares_bps), 1):
            payouts.append(
                PayoutResult(
                    rank=rank,
                    agent_id=agent.agent_id,
                    recipient=agent.owner,
                    share_bps=share_bps,
                    prize_amount=prize_share(prize_pool, share_bps),
                )
            )
        return payouts

    def estimate_payouts(
        self, ranked: Sequence[AgentEntry], prize_pool: int
    ) -> PayoutReport:
        """Projected report for the current standings. Moves no funds."""
        return PayoutReport(
            prize_pool=prize_pool,
            payouts=self.calculate_payouts(ranked, prize_pool),
        )

    def settle(self, ranked: Sequence[AgentEntry], prize_pool: int) -> PayoutReport:
        """
        Pay the top ranks.

        Recovery policy: the whole plan is computed first, then transfers run
        in rank order. If one fails, every earlier transfer is reversed (latest
        first) and TransferFailedError is raised.

        Raises:
            TransferFailedError: If any transfer fails
        """
        report = PayoutReport(
            prize_pool=prize_pool,
            payouts=self.calculate_payouts(ranked, prize_pool),
        )

        if not report.payouts:
            logger.info("settlement_no_payouts", prize_pool=prize_pool)
            return report

        if self.wallet is None:
            raise RuntimeError("Settlement requires a wallet service")

        for payout in report.payouts:
            if payout.prize_amount <= 0:
                continue

            try:
                receipt = self.wallet.transfer(
                    payout.recipient,
                    payout.prize_amount,
                    memo=(
                        f"Tournament prize: rank #{payout.rank} "
                        f"({agent_id_text(payout.agent_id)})"
                    ),
                )
            except WalletError as e:
                logger.error(
                    "payout_transfer_failed",
                    agent_id=agent_id_text(payout.agent_id),
                    recipient=payout.recipient,
                    amount=payout.prize_amount,
                    error=str(e),
                )
                self._fail(payout, str(e), report.receipts)
            except Exception as e:
                logger.exception(
                    "payout_transfer_unexpected_error",
                    agent_id=agent_id_text(payout.agent_id),
                    recipient=payout.recipient,
                    amount=payout.prize_amount,
                )
                self._fail(payout, f"Unexpected error: {e}", report.receipts)

            payout.transaction_id = receipt.id
            report.receipts.append(receipt)

            logger.info(
                "tournament_prize_paid",
                rank=payout.rank,
                agent_id=agent_id_text(payout.agent_id),
                recipient=payout.recipient,
                amount=payout.prize_amount,
            )

        logger.info(
            "tournament_settlement_complete",
            prize_pool=prize_pool,
            total_paid=report.total_paid,
            unallocated=report.unallocated,
        )
        return report

    def _fail(
        self,
        payout: PayoutResult,
        reason: str,
        receipts: List[TransferReceipt],
    ) -> None:
        unreversed = self.compensate(receipts)
        raise TransferFailedError(
            recipient=payout.recipient,
            amount=payout.prize_amount,
            reason=reason,
            unreversed=[r.to_dict() for r in unreversed],
        )

    def compensate(self, receipts: List[TransferReceipt]) -> List[TransferReceipt]:
        """Reverse completed transfers, latest first. Returns the ones that could not be."""
        unreversed: List[TransferReceipt] = []
        for receipt in reversed(receipts):
            try:
                self.wallet.reverse(receipt)
                logger.warning(
                    "payout_transfer_reversed",
                    transaction_id=receipt.id,
                    recipient=receipt.recipient,
                    amount=receipt.amount,
                )
            except Exception:
                logger.exception(
                    "payout_reversal_failed",
                    transaction_id=receipt.id,
                    recipient=receipt.recipient,
                    amount=receipt.amount,
                )
                unreversed.append(receipt)
        return unreversed
