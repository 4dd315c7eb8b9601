"""
Tournament settlement engine.

This module provides:
- The phase state machine (Registration -> Active -> Ended)
- The append-only agent registry and prize pool
- Stable score ranking and leaderboard views
- 50/30/20 prize settlement with all-or-nothing transfers
- Key-value persistence (in-memory or Redis)
"""

from .engine import TournamentLedger
from .models import (
    AgentEntry,
    StrategyType,
    TournamentPhase,
    TournamentState,
)
from .ranking import LeaderboardEntry, LeaderboardStatistics, RankingEngine
from .settlement import PayoutReport, PayoutResult, TournamentSettlement
from .store import InMemoryStore, RedisStore, TournamentRepository

__all__ = [
    "TournamentLedger",
    "AgentEntry",
    "StrategyType",
    "TournamentPhase",
    "TournamentState",
    "LeaderboardEntry",
    "LeaderboardStatistics",
    "RankingEngine",
    "PayoutReport",
    "PayoutResult",
    "TournamentSettlement",
    "InMemoryStore",
    "RedisStore",
    "TournamentRepository",
]
