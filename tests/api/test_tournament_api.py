"""Tests for tournament API endpoints."""

import inspect
import threading
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tournament_ledger.main import create_app
from tournament_ledger.services.wallet import WalletError, WalletService
from tournament_ledger.tournament.api import router as tournament_router
from tournament_ledger.tournament.engine import TournamentLedger

from conftest import ADMIN, ENTRY_FEE

ADMIN_HEADERS = {"X-Caller-Id": ADMIN}


def owner_headers(owner: str) -> dict[str, str]:
    return {"X-Caller-Id": owner}


# =============================================================================
# Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_client(ledger: TournamentLedger) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(ledger=ledger)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


async def register(client: AsyncClient, agent_id: str, owner: str, **overrides):
    payload = {"agent_id": agent_id, "strategy_type": "momentum", "paid_amount": ENTRY_FEE}
    payload.update(overrides)
    return await client.post(
        "/api/v1/tournament/agents", json=payload, headers=owner_headers(owner)
    )


@pytest_asyncio.fixture
async def active_client(test_client: AsyncClient) -> AsyncClient:
    """Three agents registered, tournament started."""
    await register(test_client, "alpha", "owner-a")
    await register(test_client, "beta", "owner-b", strategy_type=1)
    await register(test_client, "gamma", "owner-c", strategy_type="mean_reversion")
    await test_client.post("/api/v1/tournament/start", headers=ADMIN_HEADERS)
    return test_client


# =============================================================================
# Status
# =============================================================================


class TestStatus:
    """Tests for GET /health and GET /api/v1/tournament"""

    @pytest.mark.asyncio
    async def test_health(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "healthy"
        assert result["tournament"]["phase"] == "Registration"

    @pytest.mark.asyncio
    async def test_tournament_summary(self, test_client: AsyncClient):
        response = await test_client.get("/api/v1/tournament")

        assert response.status_code == 200
        assert response.json() == {
            "phase": "Registration",
            "entry_fee": ENTRY_FEE,
            "prize_pool": 0,
            "agent_count": 0,
        }


# =============================================================================
# Registration
# =============================================================================


class TestRegisterAgent:
    """Tests for POST /api/v1/tournament/agents"""

    @pytest.mark.asyncio
    async def test_register(self, test_client: AsyncClient):
        response = await register(test_client, "alpha", "owner-a", paid_amount=150)

        assert response.status_code == 201
        result = response.json()
        assert result["agent_id"] == "alpha"
        assert result["owner"] == "owner-a"
        assert result["strategy_type"] == "momentum"
        assert result["stake"] == 150
        assert result["rank"] == 1

        summary = (await test_client.get("/api/v1/tournament")).json()
        assert summary["prize_pool"] == 150

    @pytest.mark.asyncio
    async def test_duplicate_is_conflict(self, test_client: AsyncClient):
        await register(test_client, "alpha", "owner-a")
        response = await register(test_client, "alpha", "owner-b")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_AGENT"

    @pytest.mark.asyncio
    async def test_insufficient_payment(self, test_client: AsyncClient):
        response = await register(test_client, "alpha", "owner-a", paid_amount=ENTRY_FEE - 1)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_PAYMENT"
        assert error["details"] == {"paid": ENTRY_FEE - 1, "required": ENTRY_FEE}

    @pytest.mark.asyncio
    async def test_invalid_strategy(self, test_client: AsyncClient):
        response = await register(test_client, "alpha", "owner-a", strategy_type="grid")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STRATEGY"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [150.7, 150.0, True, "150"])
    async def test_non_integer_payment_rejected(self, test_client: AsyncClient, amount):
        response = await register(test_client, "alpha", "owner-a", paid_amount=amount)

        assert response.status_code == 422
        summary = (await test_client.get("/api/v1/tournament")).json()
        assert summary["agent_count"] == 0

    @pytest.mark.asyncio
    async def test_camel_case_strategy(self, test_client: AsyncClient):
        response = await register(
            test_client, "alpha", "owner-a", strategy_type="MeanReversion"
        )

        assert response.status_code == 201
        assert response.json()["strategy_type"] == "mean_reversion"

    @pytest.mark.asyncio
    async def test_blank_caller_rejected(self, test_client: AsyncClient):
        response = await register(test_client, "alpha", "")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_ERROR"

    @pytest.mark.asyncio
    async def test_missing_caller_header(self, test_client: AsyncClient):
        response = await test_client.post(
            "/api/v1/tournament/agents",
            json={"agent_id": "alpha", "strategy_type": 0, "paid_amount": ENTRY_FEE},
        )
        assert response.status_code == 422


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for start / score / end"""

    @pytest.mark.asyncio
    async def test_start_requires_admin(self, test_client: AsyncClient):
        await register(test_client, "alpha", "owner-a")
        response = await test_client.post(
            "/api/v1/tournament/start", headers=owner_headers("owner-a")
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_AUTHORIZED"

    @pytest.mark.asyncio
    async def test_start_empty_registry(self, test_client: AsyncClient):
        response = await test_client.post("/api/v1/tournament/start", headers=ADMIN_HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMPTY_REGISTRY"

    @pytest.mark.asyncio
    async def test_start(self, active_client: AsyncClient):
        summary = (await active_client.get("/api/v1/tournament")).json()
        assert summary["phase"] == "Active"
        assert summary["agent_count"] == 3

    @pytest.mark.asyncio
    async def test_update_score(self, active_client: AsyncClient):
        response = await active_client.post(
            "/api/v1/tournament/agents/gamma/score",
            json={"roi_basis_points": 1200},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["score"] == 1200
        assert response.json()["rank"] == 1

    @pytest.mark.asyncio
    async def test_update_score_unknown_agent(self, active_client: AsyncClient):
        response = await active_client.post(
            "/api/v1/tournament/agents/ghost/score",
            json={"roi_basis_points": 10},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "AGENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_score_wrong_phase(self, test_client: AsyncClient):
        await register(test_client, "alpha", "owner-a")
        response = await test_client.post(
            "/api/v1/tournament/agents/alpha/score",
            json={"roi_basis_points": 10},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "WRONG_PHASE"

    @pytest.mark.asyncio
    async def test_end_and_payouts(self, active_client: AsyncClient):
        for agent_id, score in (("alpha", 500), ("beta", 1200), ("gamma", -300)):
            await active_client.post(
                f"/api/v1/tournament/agents/{agent_id}/score",
                json={"roi_basis_points": score},
                headers=ADMIN_HEADERS,
            )

        estimate = (await active_client.get("/api/v1/tournament/payouts/estimate")).json()
        assert [p["prize_amount"] for p in estimate["payouts"]] == [150, 90, 60]

        response = await active_client.post("/api/v1/tournament/end", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        report = response.json()
        assert [(p["agent_id"], p["recipient"], p["prize_amount"]) for p in report["payouts"]] == [
            ("beta", "owner-b", 150),
            ("alpha", "owner-a", 90),
            ("gamma", "owner-c", 60),
        ]
        assert report["total_paid"] == 300
        assert report["unallocated"] == 0

        stored = (await active_client.get("/api/v1/tournament/payouts")).json()
        assert stored["settlement_id"] == report["settlement_id"]

        summary = (await active_client.get("/api/v1/tournament")).json()
        assert summary["phase"] == "Ended"
        assert summary["prize_pool"] == 0

    @pytest.mark.asyncio
    async def test_payouts_before_settlement(self, test_client: AsyncClient):
        response = await test_client.get("/api/v1/tournament/payouts")
        assert response.status_code == 404


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Tests for leaderboard and agent lookups"""

    @pytest.mark.asyncio
    async def test_leaderboard(self, active_client: AsyncClient):
        await active_client.post(
            "/api/v1/tournament/agents/beta/score",
            json={"roi_basis_points": -50},
            headers=ADMIN_HEADERS,
        )

        response = await active_client.get("/api/v1/tournament/leaderboard")

        assert response.status_code == 200
        result = response.json()
        assert [(r["rank"], r["agent_id"]) for r in result["leaderboard"]] == [
            (1, "alpha"),
            (2, "gamma"),
            (3, "beta"),
        ]
        assert result["statistics"]["total_agents"] == 3
        assert result["statistics"]["min_score"] == -50

    @pytest.mark.asyncio
    async def test_get_agent(self, active_client: AsyncClient):
        response = await active_client.get("/api/v1/tournament/agents/beta")

        assert response.status_code == 200
        assert response.json()["strategy_type"] == "dca"
        assert response.json()["rank"] == 2

    @pytest.mark.asyncio
    async def test_get_unknown_agent(self, test_client: AsyncClient):
        response = await test_client.get("/api/v1/tournament/agents/ghost")

        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"agentId": "ghost"}


# =============================================================================
# Settlement failure
# =============================================================================


class RejectingWallet(WalletService):
    def transfer(self, recipient, amount, *, memo=None):
        raise WalletError("settlement rail offline")


class TestSettlementFailure:
    @pytest.mark.asyncio
    async def test_transfer_failure_is_bad_gateway(self, make_ledger):
        ledger = make_ledger(wallet=RejectingWallet())
        ledger.register("alpha", "momentum", "owner-a", ENTRY_FEE)
        ledger.start(ADMIN)

        app = create_app(ledger=ledger)
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.post("/api/v1/tournament/end", headers=ADMIN_HEADERS)
            summary = (await client.get("/api/v1/tournament")).json()

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "TRANSFER_FAILED"
        assert summary["phase"] == "Active"


# =============================================================================
# Routing
# =============================================================================


class TestRouting:
    def test_ledger_handlers_are_sync(self):
        """Ledger calls block on the store and wallet, so handlers run in the threadpool."""
        endpoints = [route.endpoint for route in tournament_router.routes]

        assert endpoints
        assert not any(inspect.iscoroutinefunction(e) for e in endpoints)

    @pytest.mark.asyncio
    async def test_handler_runs_off_event_loop(self, make_ledger):
        loop_thread = threading.get_ident()
        seen = []

        class ThreadRecordingWallet(WalletService):
            def transfer(self, recipient, amount, *, memo=None):
                seen.append(threading.get_ident())
                return super().transfer(recipient, amount, memo=memo)

        ledger = make_ledger(wallet=ThreadRecordingWallet())
        ledger.register("alpha", "momentum", "owner-a", ENTRY_FEE)
        ledger.start(ADMIN)

        async with AsyncClient(
            transport=ASGITransport(app=create_app(ledger=ledger)), base_url="http://test"
        ) as client:
            response = await client.post("/api/v1/tournament/end", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert seen and seen[0] != loop_thread
