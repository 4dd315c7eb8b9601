"""Exception classes for ledger errors.

Every error aborts the operation that raised it with no state change.
Callers inspect ``code`` to decide whether to retry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for ledger errors."""

    # Phase / lifecycle
    WRONG_PHASE = "WRONG_PHASE"
    EMPTY_REGISTRY = "EMPTY_REGISTRY"

    # Registration
    INVALID_STRATEGY = "INVALID_STRATEGY"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
    DUPLICATE_AGENT = "DUPLICATE_AGENT"

    # Scoring
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    INVALID_SCORE = "INVALID_SCORE"

    # Authority
    NOT_AUTHORIZED = "NOT_AUTHORIZED"

    # Settlement
    TRANSFER_FAILED = "TRANSFER_FAILED"


class LedgerError(Exception):
    """Base exception for ledger errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable error message
        details: Additional error details
        recoverable: Whether resubmitting (with different input) may succeed
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class WrongPhaseError(LedgerError):
    """Raised when an operation is invoked outside its required phase."""

    def __init__(self, required: str, current: str):
        super().__init__(
            code=ErrorCode.WRONG_PHASE,
            message=f"Operation requires phase {required}, tournament is {current}",
            details={"required": required, "current": current},
            recoverable=False,
        )


class InvalidStrategyError(LedgerError):
    """Raised when a strategy tag is outside the known set."""

    def __init__(self, strategy_type: Any):
        super().__init__(
            code=ErrorCode.INVALID_STRATEGY,
            message=f"Invalid strategy type: {strategy_type!r}",
            details={"strategyType": str(strategy_type)},
        )


class InvalidAmountError(LedgerError):
    """Raised when a payment is not a non-negative integer amount."""

    def __init__(self, value: Any):
        super().__init__(
            code=ErrorCode.INVALID_AMOUNT,
            message=f"Paid amount must be a non-negative integer: {value!r}",
            details={"value": str(value)},
        )


class InsufficientPaymentError(LedgerError):
    """Raised when the paid amount is below the entry fee."""

    def __init__(self, paid: int, required: int):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_PAYMENT,
            message=f"Insufficient entry fee: paid {paid}, required {required}",
            details={"paid": paid, "required": required},
        )


class DuplicateAgentError(LedgerError):
    """Raised when an agent id is already registered."""

    def __init__(self, agent_id: str):
        super().__init__(
            code=ErrorCode.DUPLICATE_AGENT,
            message=f"Agent ID already registered: {agent_id}",
            details={"agentId": agent_id},
        )


class AgentNotFoundError(LedgerError):
    """Raised when an agent id is not in the registry."""

    def __init__(self, agent_id: str):
        super().__init__(
            code=ErrorCode.AGENT_NOT_FOUND,
            message=f"Agent not found: {agent_id}",
            details={"agentId": agent_id},
        )


class InvalidScoreError(LedgerError):
    """Raised when a score is not a signed 64-bit basis-point integer."""

    def __init__(self, value: Any):
        super().__init__(
            code=ErrorCode.INVALID_SCORE,
            message=f"Score is not a signed 64-bit basis-point value: {value!r}",
            details={"value": str(value)},
        )


class NotAuthorizedError(LedgerError):
    """Raised when a caller without administrative authority calls an admin operation."""

    def __init__(self, caller: str, operation: str):
        super().__init__(
            code=ErrorCode.NOT_AUTHORIZED,
            message=f"Caller is not authorized to {operation}",
            details={"caller": caller, "operation": operation},
            recoverable=False,
        )


class EmptyRegistryError(LedgerError):
    """Raised when starting a tournament with no registered agents."""

    def __init__(self):
        super().__init__(
            code=ErrorCode.EMPTY_REGISTRY,
            message="No agents registered",
        )


class TransferFailedError(LedgerError):
    """Raised when a prize transfer fails during settlement.

    ``unreversed`` lists receipts of earlier transfers that could not be
    compensated and need manual reconciliation.
    """

    def __init__(
        self,
        recipient: str,
        amount: int,
        reason: str,
        unreversed: list[dict[str, Any]] | None = None,
    ):
        super().__init__(
            code=ErrorCode.TRANSFER_FAILED,
            message=f"Prize transfer to {recipient} failed: {reason}",
            details={
                "recipient": recipient,
                "amount": amount,
                "reason": reason,
                "unreversed": unreversed or [],
            },
        )
