"""
Tournament API Router.

HTTP surface over the ledger operation table. The caller identity is read
from the ``X-Caller-Id`` header, set by the platform's authentication layer.
Ledger errors propagate to the application's LedgerError handler.

Handlers are plain functions: FastAPI runs them in its threadpool, and the
ledger serializes them with its own lock.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from tournament_ledger.logging_config import bind_context

from .engine import TournamentLedger
from .models import SCORE_MAX, SCORE_MIN

CALLER_HEADER = "X-Caller-Id"


# =============================================================================
# Request/Response Models
# =============================================================================


class RegisterAgentRequest(BaseModel):
    """Agent registration request."""

    agent_id: str = Field(..., min_length=1, max_length=128)
    strategy_type: str | int = Field(
        ..., description="momentum, dca, mean_reversion (or 0, 1, 2)"
    )
    paid_amount: int = Field(..., ge=0, strict=True)


class UpdateScoreRequest(BaseModel):
    """Score update request."""

    roi_basis_points: int = Field(..., ge=SCORE_MIN, le=SCORE_MAX)


class AgentResponse(BaseModel):
    """Agent response."""

    agent_id: str
    owner: str
    strategy_type: str
    stake: int
    score: int
    registered_at: int
    rank: Optional[int] = None


class TournamentResponse(BaseModel):
    """Tournament status response."""

    phase: str
    entry_fee: int
    prize_pool: int
    agent_count: int


class LeaderboardRow(BaseModel):
    """Leaderboard row."""

    rank: int
    agent_id: str
    owner: str
    strategy_type: str
    stake: int
    score: int
    registered_at: int


class LeaderboardResponse(BaseModel):
    """Leaderboard response."""

    leaderboard: List[LeaderboardRow]
    statistics: Dict[str, Any]


class PayoutRow(BaseModel):
    rank: int
    agent_id: str
    recipient: str
    share_bps: int
    prize_amount: int
    transaction_id: Optional[str] = None


class PayoutReportResponse(BaseModel):
    """Settlement report (actual or estimated)."""

    settlement_id: str
    prize_pool: int
    total_paid: int
    unallocated: int
    payouts: List[PayoutRow]
    settled_at: str


# =============================================================================
# Dependencies
# =============================================================================


def get_ledger(request: Request) -> TournamentLedger:
    """Ledger instance attached to the application."""
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tournament ledger not initialized",
        )
    return ledger


async def get_caller(x_caller_id: str = Header(..., alias=CALLER_HEADER)) -> str:
    """Authenticated caller identity.

    Runs on the event loop so the bound log context reaches the threadpool handler.
    """
    caller = x_caller_id.strip()
    if not caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    bind_context(caller=caller)
    return caller


# =============================================================================
# API Router
# =============================================================================

router = APIRouter(prefix="/api/v1/tournament", tags=["Tournament"])


@router.get("", response_model=TournamentResponse)
def get_tournament(ledger: TournamentLedger = Depends(get_ledger)):
    """Phase, pool, entry fee and agent count."""
    return TournamentResponse(**ledger.get_state().to_dict())


@router.get("/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(ledger: TournamentLedger = Depends(get_ledger)):
    """Ranked agents plus score statistics."""
    return LeaderboardResponse(
        leaderboard=[
            LeaderboardRow(**entry.to_dict())
            for entry in ledger.get_leaderboard_entries()
        ],
        statistics=ledger.get_statistics().to_dict(),
    )


@router.get("/agents/{agent_id}", response_model=AgentResponse)
def get_agent(agent_id: str, ledger: TournamentLedger = Depends(get_ledger)):
    """Single agent with its current rank."""
    entry = ledger.get_agent(agent_id)
    return AgentResponse(**entry.to_dict(), rank=ledger.get_agent_rank(agent_id))


@router.post(
    "/agents",
    response_model=AgentResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_agent(
    request: RegisterAgentRequest,
    caller: str = Depends(get_caller),
    ledger: TournamentLedger = Depends(get_ledger),
):
    """Register an agent. ``paid_amount`` is the verified payment attached to the call."""
    entry = ledger.register(
        request.agent_id,
        request.strategy_type,
        caller,
        request.paid_amount,
    )
    return AgentResponse(**entry.to_dict(), rank=ledger.get_agent_rank(entry.agent_id))


@router.post("/start", response_model=TournamentResponse)
def start_tournament(
    caller: str = Depends(get_caller),
    ledger: TournamentLedger = Depends(get_ledger),
):
    """Close registration (admin)."""
    ledger.start(caller)
    return TournamentResponse(**ledger.get_state().to_dict())


@router.post("/agents/{agent_id}/score", response_model=AgentResponse)
def update_score(
    agent_id: str,
    request: UpdateScoreRequest,
    caller: str = Depends(get_caller),
    ledger: TournamentLedger = Depends(get_ledger),
):
    """Overwrite an agent's score (admin)."""
    entry = ledger.update_score(agent_id, request.roi_basis_points, caller)
    return AgentResponse(**entry.to_dict(), rank=ledger.get_agent_rank(agent_id))


@router.post("/end", response_model=PayoutReportResponse)
def end_tournament(
    caller: str = Depends(get_caller),
    ledger: TournamentLedger = Depends(get_ledger),
):
    """End the tournament and distribute prizes (admin)."""
    report = ledger.end(caller)
    return PayoutReportResponse(**report.to_dict())


@router.get("/payouts/estimate", response_model=PayoutReportResponse)
def estimate_payouts(ledger: TournamentLedger = Depends(get_ledger)):
    """Payouts if the tournament ended with the current standings."""
    return PayoutReportResponse(**ledger.estimate_payouts().to_dict())


@router.get("/payouts", response_model=PayoutReportResponse)
def get_payout_report(ledger: TournamentLedger = Depends(get_ledger)):
    """Committed settlement report."""
    report = ledger.get_last_report()
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tournament has not been settled",
        )
    return PayoutReportResponse(**report.to_dict())
