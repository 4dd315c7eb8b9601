"""
Leaderboard Ranking.

Agents are ranked by score, highest first. Agents with equal scores keep
their registration order: that tie-break decides who is paid when scores
tie, so ranking always starts from the insertion-ordered registry and
relies on ``sorted`` being stable.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import AgentEntry, TournamentState


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""

    rank: int
    agent: AgentEntry

    @property
    def agent_id(self) -> str:
        return self.agent.agent_id

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, **self.agent.to_dict()}


@dataclass(frozen=True)
class LeaderboardStatistics:
    """Aggregate score figures across the registry."""

    total_agents: int = 0
    average_score: float = 0.0
    max_score: int = 0
    min_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_agents": self.total_agents,
            "average_score": self.average_score,
            "max_score": self.max_score,
            "min_score": self.min_score,
        }


def rank_agents(agents: List[AgentEntry]) -> List[AgentEntry]:
    """Order agents by score descending.

    ``agents`` must be in registration order; equal scores keep that order.
    """
    return sorted(agents, key=lambda a: a.score, reverse=True)


class RankingEngine:
    """Read-only leaderboard views over a TournamentState."""

    def ranked_agents(self, state: TournamentState) -> List[AgentEntry]:
        return rank_agents(state.ordered_agents())

    def leaderboard(self, state: TournamentState) -> List[LeaderboardEntry]:
        return [
            LeaderboardEntry(rank=rank, agent=agent)
            for rank, agent in enumerate(self.ranked_agents(state), 1)
        ]

    def top(self, state: TournamentState, n: int = 3) -> List[LeaderboardEntry]:
        if n <= 0:
            return []
        return self.leaderboard(state)[:n]

    def rank_of(self, state: TournamentState, agent_id: str) -> Optional[int]:
        """1-based rank of an agent, or None if not registered."""
        for entry in self.leaderboard(state):
            if entry.agent_id == agent_id:
                return entry.rank
        return None

    def statistics(self, state: TournamentState) -> LeaderboardStatistics:
        scores = [a.score for a in state.ordered_agents()]
        if not scores:
            return LeaderboardStatistics()

        return LeaderboardStatistics(
            total_agents=len(scores),
            average_score=sum(scores) / len(scores),
            max_score=max(scores),
            min_score=min(scores),
        )
