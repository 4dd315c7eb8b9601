"""
Tournament Ledger - Core Implementation.

Owns the phase state machine, the agent registry and the prize pool.

Every public operation runs under one lock and follows
read -> validate -> build new state -> commit. Validation failures raise
before anything is written, and the in-memory state is only swapped after
the store accepted the commit, so a failed operation leaves no trace.
"""

import threading
import time
from typing import Callable, List, Optional, Union

from tournament_ledger.config import Settings
from tournament_ledger.logging_config import get_logger
from tournament_ledger.services.auth import AdminAuthority
from tournament_ledger.services.wallet import ValueTransfer
from tournament_ledger.utils.errors import (
    AgentNotFoundError,
    DuplicateAgentError,
    EmptyRegistryError,
    InsufficientPaymentError,
    LedgerError,
    NotAuthorizedError,
    WrongPhaseError,
)
from .models import (
    AgentEntry,
    StrategyType,
    TournamentPhase,
    TournamentState,
    agent_id_text,
    normalize_agent_id,
    validate_amount,
    validate_score,
)
from .ranking import LeaderboardEntry, LeaderboardStatistics, RankingEngine
from .settlement import PayoutReport, TournamentSettlement
from .store import InMemoryStore, KeyValueStore, TournamentRepository

logger = get_logger(__name__)


def default_clock() -> int:
    """Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


class TournamentLedger:
    """
    Tournament settlement state machine.

    Operation table:
    ─────────────────────────────────────────────────────────────────
    register      (agent_id, strategy_type, caller, paid_amount, now)
    start         (caller)                               admin only
    update_score  (agent_id, roi_basis_points, caller)   admin only
    end           (caller) -> PayoutReport               admin only
    get_*         read-only, any phase
    ─────────────────────────────────────────────────────────────────

    Phases only advance: Registration -> Active -> Ended.
    """

    def __init__(
        self,
        authority: AdminAuthority,
        wallet: ValueTransfer,
        repository: Optional[TournamentRepository] = None,
        entry_fee: Optional[int] = None,
        clock: Callable[[], int] = default_clock,
        settlement: Optional[TournamentSettlement] = None,
    ):
        """
        Args:
            authority: Administrative authority check
            wallet: Value-transfer collaborator used at settlement
            repository: Persistence (defaults to a fresh in-memory store)
            entry_fee: Minimum stake; required when the store holds no tournament
            clock: Source of registration timestamps
            settlement: Prize settlement service (defaults to 50/30/20 over ``wallet``)
        """
        self.authority = authority
        self.repository = repository or TournamentRepository(InMemoryStore())
        self.settlement = settlement or TournamentSettlement(wallet)
        self.ranking = RankingEngine()
        self.clock = clock
        self._lock = threading.RLock()

        state = self.repository.load()
        if state is None:
            if entry_fee is None or entry_fee < 0:
                raise ValueError("A non-negative entry_fee is required for a new tournament")
            state = TournamentState(entry_fee=entry_fee)
            self.repository.save(state)
            logger.info("tournament_created", entry_fee=entry_fee)
        else:
            if entry_fee is not None and entry_fee != state.entry_fee:
                logger.warning(
                    "entry_fee_ignored",
                    configured=entry_fee,
                    stored=state.entry_fee,
                )
            logger.info(
                "tournament_resumed",
                phase=state.phase.label,
                agents=state.agent_count,
                prize_pool=state.prize_pool,
            )

        self._state = state
        self._last_report = self.repository.load_report()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        authority: AdminAuthority,
        wallet: ValueTransfer,
        store: Optional[KeyValueStore] = None,
    ) -> "TournamentLedger":
        """Build a ledger from application settings."""
        if store is None:
            if settings.store_backend == "redis":
                from tournament_ledger.utils.redis_client import init_redis
                from .store import RedisStore

                store = RedisStore(init_redis(settings))
            else:
                store = InMemoryStore()

        return cls(
            authority=authority,
            wallet=wallet,
            repository=TournamentRepository(store, settings.redis_key_prefix),
            entry_fee=settings.entry_fee,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _rejected(self, operation: str, error: LedgerError) -> LedgerError:
        logger.warning(
            "ledger_operation_rejected",
            operation=operation,
            code=error.code,
            message=error.message,
        )
        return error

    def _require_admin(self, caller: str, operation: str) -> None:
        if not self.authority.is_admin(caller):
            raise self._rejected(operation, NotAuthorizedError(caller, operation))

    def _require_phase(
        self, state: TournamentState, phase: TournamentPhase, operation: str
    ) -> None:
        if state.phase != phase:
            raise self._rejected(
                operation, WrongPhaseError(phase.label, state.phase.label)
            )

    def _require_agent(
        self, state: TournamentState, agent_id: str, operation: str
    ) -> AgentEntry:
        entry = state.get_agent(agent_id)
        if entry is None:
            raise self._rejected(
                operation, AgentNotFoundError(agent_id_text(agent_id))
            )
        return entry

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        agent_id: Union[str, bytes],
        strategy_type: Union[StrategyType, int, str],
        caller: str,
        paid_amount: int,
        now: Optional[int] = None,
    ) -> AgentEntry:
        """
        Register an agent with its stake.

        Raises:
            WrongPhaseError: Tournament is not in Registration
            InvalidStrategyError: Unknown strategy tag
            InvalidAmountError: paid_amount is not a non-negative integer
            InsufficientPaymentError: paid_amount below the entry fee
            DuplicateAgentError: agent_id already registered
        """
        agent_id = normalize_agent_id(agent_id)

        with self._lock:
            state = self._state
            self._require_phase(state, TournamentPhase.REGISTRATION, "register")

            try:
                strategy = StrategyType.parse(strategy_type)
                validate_amount(paid_amount)
            except LedgerError as e:
                raise self._rejected("register", e) from None

            if paid_amount < state.entry_fee:
                raise self._rejected(
                    "register", InsufficientPaymentError(paid_amount, state.entry_fee)
                )

            if agent_id in state.agents:
                raise self._rejected(
                    "register", DuplicateAgentError(agent_id_text(agent_id))
                )

            entry = AgentEntry(
                agent_id=agent_id,
                owner=caller,
                strategy_type=strategy,
                stake=paid_amount,
                score=0,
                registered_at=self.clock() if now is None else now,
            )
            new_state = state.with_agent(entry)

            self.repository.save(new_state, agents=[entry], new_agent_ids=[agent_id])
            self._state = new_state

        logger.info(
            "agent_registered",
            agent_id=agent_id_text(agent_id),
            owner=caller,
            strategy=strategy.slug,
            stake=paid_amount,
            prize_pool=new_state.prize_pool,
        )
        return entry

    # ------------------------------------------------------------------
    # Phase transitions
    # ------------------------------------------------------------------

    def start(self, caller: str) -> None:
        """
        Close registration and open scoring.

        Raises:
            NotAuthorizedError, WrongPhaseError, EmptyRegistryError
        """
        with self._lock:
            self._require_admin(caller, "start")
            state = self._state
            self._require_phase(state, TournamentPhase.REGISTRATION, "start")

            if state.agent_count == 0:
                raise self._rejected("start", EmptyRegistryError())

            new_state = state.with_phase(TournamentPhase.ACTIVE)
            self.repository.save(new_state)
            self._state = new_state

        logger.info(
            "tournament_started",
            agents=new_state.agent_count,
            prize_pool=new_state.prize_pool,
        )

    def end(self, caller: str) -> PayoutReport:
        """
        Close the tournament and pay the top three.

        The phase is flipped to Ended before any transfer so a re-entrant call
        is rejected. If settlement fails, the previous state is restored and
        nothing is committed.

        Raises:
            NotAuthorizedError, WrongPhaseError, TransferFailedError
        """
        with self._lock:
            self._require_admin(caller, "end")
            state = self._state
            self._require_phase(state, TournamentPhase.ACTIVE, "end")

            ranked = self.ranking.ranked_agents(state)
            prize_pool = state.prize_pool

            self._state = state.with_phase(TournamentPhase.ENDED)
            try:
                report = self.settlement.settle(ranked, prize_pool)
            except Exception:
                self._state = state
                raise

            new_state = state.with_phase(TournamentPhase.ENDED, prize_pool=0)
            try:
                self.repository.save(new_state, report=report)
            except Exception:
                logger.exception("settlement_commit_failed", prize_pool=prize_pool)
                unreversed = self.settlement.compensate(report.receipts)
                if unreversed:
                    logger.error(
                        "settlement_compensation_incomplete",
                        unreversed=[r.to_dict() for r in unreversed],
                    )
                self._state = state
                raise

            self._state = new_state
            self._last_report = report

        logger.info(
            "tournament_ended",
            agents=state.agent_count,
            prize_pool=prize_pool,
            total_paid=report.total_paid,
            unallocated=report.unallocated,
        )
        return report

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def update_score(
        self,
        agent_id: Union[str, bytes],
        roi_basis_points: int,
        caller: str,
    ) -> AgentEntry:
        """
        Overwrite an agent's score (not cumulative).

        Raises:
            NotAuthorizedError, WrongPhaseError, AgentNotFoundError, InvalidScoreError
        """
        agent_id = normalize_agent_id(agent_id)

        with self._lock:
            self._require_admin(caller, "update_score")
            state = self._state
            self._require_phase(state, TournamentPhase.ACTIVE, "update_score")
            entry = self._require_agent(state, agent_id, "update_score")

            try:
                score = validate_score(roi_basis_points)
            except LedgerError as e:
                raise self._rejected("update_score", e) from None

            updated = entry.with_score(score)
            new_state = state.with_updated_agent(updated)
            self.repository.save(new_state, agents=[updated])
            self._state = new_state

        logger.debug(
            "score_updated",
            agent_id=agent_id_text(agent_id),
            previous=entry.score,
            score=score,
        )
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_state(self) -> TournamentState:
        return self._state

    def get_agent(self, agent_id: Union[str, bytes]) -> AgentEntry:
        agent_id = normalize_agent_id(agent_id)
        entry = self._state.get_agent(agent_id)
        if entry is None:
            raise AgentNotFoundError(agent_id_text(agent_id))
        return entry

    def get_leaderboard(self) -> List[AgentEntry]:
        """All agents, score descending, ties in registration order."""
        return self.ranking.ranked_agents(self._state)

    def get_leaderboard_entries(self) -> List[LeaderboardEntry]:
        return self.ranking.leaderboard(self._state)

    def get_top_agents(self, n: int = 3) -> List[LeaderboardEntry]:
        return self.ranking.top(self._state, n)

    def get_agent_rank(self, agent_id: Union[str, bytes]) -> int:
        agent_id = normalize_agent_id(agent_id)
        rank = self.ranking.rank_of(self._state, agent_id)
        if rank is None:
            raise AgentNotFoundError(agent_id_text(agent_id))
        return rank

    def get_statistics(self) -> LeaderboardStatistics:
        return self.ranking.statistics(self._state)

    def get_phase(self) -> TournamentPhase:
        return self._state.phase

    def get_prize_pool(self) -> int:
        return self._state.prize_pool

    def get_entry_fee(self) -> int:
        return self._state.entry_fee

    def get_agent_count(self) -> int:
        return self._state.agent_count

    def estimate_payouts(self) -> PayoutReport:
        """Payouts if the tournament ended now. Moves no funds."""
        state = self._state
        return self.settlement.estimate_payouts(
            self.ranking.ranked_agents(state), state.prize_pool
        )

    def get_last_report(self) -> Optional[PayoutReport]:
        return self._last_report
