"""Shared fixtures for ledger tests."""

from typing import Callable

import pytest

from tournament_ledger.services.auth import StaticAdminAuthority
from tournament_ledger.services.wallet import WalletService
from tournament_ledger.tournament.engine import TournamentLedger
from tournament_ledger.tournament.store import InMemoryStore, TournamentRepository

ADMIN = "admin-1"
ENTRY_FEE = 100


class FixedClock:
    """Deterministic clock advancing one unit per call."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def authority() -> StaticAdminAuthority:
    return StaticAdminAuthority([ADMIN])


@pytest.fixture
def wallet() -> WalletService:
    return WalletService()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repository(store: InMemoryStore) -> TournamentRepository:
    return TournamentRepository(store)


@pytest.fixture
def make_ledger(
    authority: StaticAdminAuthority,
    wallet: WalletService,
    repository: TournamentRepository,
) -> Callable[..., TournamentLedger]:
    """Factory building ledgers over the shared store."""

    def _make(entry_fee: int = ENTRY_FEE, **kwargs) -> TournamentLedger:
        kwargs.setdefault("authority", authority)
        kwargs.setdefault("wallet", wallet)
        kwargs.setdefault("repository", repository)
        kwargs.setdefault("clock", FixedClock())
        return TournamentLedger(entry_fee=entry_fee, **kwargs)

    return _make


@pytest.fixture
def ledger(make_ledger) -> TournamentLedger:
    return make_ledger()


@pytest.fixture
def active_ledger(ledger: TournamentLedger) -> TournamentLedger:
    """Three agents (alpha, beta, gamma) registered at the entry fee, tournament started."""
    ledger.register("alpha", "momentum", "owner-a", ENTRY_FEE)
    ledger.register("beta", "dca", "owner-b", ENTRY_FEE)
    ledger.register("gamma", "mean_reversion", "owner-c", ENTRY_FEE)
    ledger.start(ADMIN)
    return ledger
