"""
Tournament Data Models.

Immutable state representations for ledger entities.
All mutations go through the TournamentLedger, which builds a new
TournamentState and commits it as a whole.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from tournament_ledger.utils.errors import (
    InvalidAmountError,
    InvalidScoreError,
    InvalidStrategyError,
)

# Basis points: 10000 = 100%
BASIS_POINTS = 10000

# Scores are signed 64-bit basis-point values
SCORE_MIN = -(2**63)
SCORE_MAX = 2**63 - 1


class TournamentPhase(Enum):
    """Tournament lifecycle phases. Only ever advance."""

    REGISTRATION = 0
    ACTIVE = 1
    ENDED = 2

    @property
    def label(self) -> str:
        return self.name.title()


class StrategyType(Enum):
    """Trading strategy an agent runs. Closed set."""

    MOMENTUM = 0
    DCA = 1
    MEAN_REVERSION = 2

    @property
    def slug(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Union["StrategyType", int, str]) -> "StrategyType":
        """Accept the enum, its integer code, or its name in any case
        (``mean_reversion``, ``MeanReversion``, ``MEAN_REVERSION``).

        Raises:
            InvalidStrategyError: For anything outside the known set
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidStrategyError(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidStrategyError(value) from None
        if isinstance(value, str):
            key = _fold(value)
            for member in cls:
                if _fold(member.name) == key:
                    return member
        raise InvalidStrategyError(value)


def _fold(name: str) -> str:
    return name.strip().replace("_", "").replace("-", "").upper()


def normalize_agent_id(agent_id: Union[str, bytes]) -> str:
    """Canonical registry key for an agent id.

    Byte ids are decoded with ``surrogateescape``: valid UTF-8 maps to the
    same key as the equivalent text id, and any other byte string still maps
    to a unique key that encodes back to the exact original bytes.
    """
    if isinstance(agent_id, (bytes, bytearray)):
        raw = bytes(agent_id)
    else:
        raw = agent_id.encode("utf-8", "surrogatepass")
    return raw.decode("utf-8", "surrogateescape")


def agent_id_bytes(agent_id: str) -> bytes:
    """Raw bytes of a registry key (inverse of normalize_agent_id)."""
    return agent_id.encode("utf-8", "surrogateescape")


def agent_id_text(agent_id: str) -> str:
    """Printable form of an agent id; undecodable bytes appear as \\xNN escapes."""
    return agent_id_bytes(agent_id).decode("utf-8", "backslashreplace")


def validate_amount(value: Any) -> int:
    """Check that a payment is a non-negative integer in the smallest currency unit.

    Raises:
        InvalidAmountError: For non-integers, bools, and negative values
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmountError(value)
    return value


def validate_score(value: Any) -> int:
    """Check that a score is a signed 64-bit integer.

    Raises:
        InvalidScoreError: For non-integers, bools, and out-of-range values
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScoreError(value)
    if not SCORE_MIN <= value <= SCORE_MAX:
        raise InvalidScoreError(value)
    return value


@dataclass(frozen=True)
class AgentEntry:
    """
    Registered agent - immutable.

    Only ``score`` ever changes, and only by replacing the entry.
    """

    agent_id: str
    owner: str
    strategy_type: StrategyType
    stake: int
    score: int = 0  # basis points, may be negative
    registered_at: int = 0

    def with_score(self, score: int) -> "AgentEntry":
        """Return new instance with updated score."""
        return AgentEntry(
            agent_id=self.agent_id,
            owner=self.owner,
            strategy_type=self.strategy_type,
            stake=self.stake,
            score=score,
            registered_at=self.registered_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": agent_id_text(self.agent_id),
            "owner": self.owner,
            "strategy_type": self.strategy_type.slug,
            "stake": self.stake,
            "score": self.score,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentEntry":
        return cls(
            agent_id=data["agent_id"],
            owner=data["owner"],
            strategy_type=StrategyType.parse(data["strategy_type"]),
            stake=int(data["stake"]),
            score=int(data.get("score", 0)),
            registered_at=int(data.get("registered_at", 0)),
        )


@dataclass(frozen=True)
class TournamentState:
    """
    Complete ledger state - immutable.

    This is the single source of truth for tournament status.
    All mutations return new state instances.
    """

    entry_fee: int
    phase: TournamentPhase = TournamentPhase.REGISTRATION
    prize_pool: int = 0

    # Registry (agent_id -> AgentEntry)
    agents: Dict[str, AgentEntry] = field(default_factory=dict)

    # First-registration-first order
    agent_order: Tuple[str, ...] = ()

    @property
    def agent_count(self) -> int:
        return len(self.agent_order)

    def get_agent(self, agent_id: str) -> Optional[AgentEntry]:
        return self.agents.get(agent_id)

    def ordered_agents(self) -> List[AgentEntry]:
        """Entries in registration order."""
        return [self.agents[agent_id] for agent_id in self.agent_order]

    def with_agent(self, entry: AgentEntry) -> "TournamentState":
        """Return new state with a freshly registered agent and its stake pooled."""
        new_agents = dict(self.agents)
        new_agents[entry.agent_id] = entry
        return TournamentState(
            entry_fee=self.entry_fee,
            phase=self.phase,
            prize_pool=self.prize_pool + entry.stake,
            agents=new_agents,
            agent_order=self.agent_order + (entry.agent_id,),
        )

    def with_updated_agent(self, entry: AgentEntry) -> "TournamentState":
        """Return new state with an existing entry replaced."""
        new_agents = dict(self.agents)
        new_agents[entry.agent_id] = entry
        return TournamentState(
            entry_fee=self.entry_fee,
            phase=self.phase,
            prize_pool=self.prize_pool,
            agents=new_agents,
            agent_order=self.agent_order,
        )

    def with_phase(
        self, phase: TournamentPhase, prize_pool: Optional[int] = None
    ) -> "TournamentState":
        """Return new state in ``phase`` (optionally with a new pool balance)."""
        return TournamentState(
            entry_fee=self.entry_fee,
            phase=phase,
            prize_pool=self.prize_pool if prize_pool is None else prize_pool,
            agents=self.agents,
            agent_order=self.agent_order,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.label,
            "entry_fee": self.entry_fee,
            "prize_pool": self.prize_pool,
            "agent_count": self.agent_count,
        }
