"""
Ledger persistence.

The durable key-value store is an external collaborator. Each piece of
state lives under its own fixed key:

- {prefix}:entry_fee           integer
- {prefix}:tournament_state    phase code (0, 1, 2)
- {prefix}:prize_pool          integer
- {prefix}:agents:{hex_id}     JSON-encoded AgentEntry, amounts as decimal strings
- {prefix}:agent_list          append-only list of hex ids
- {prefix}:last_report         JSON-encoded PayoutReport

A commit writes every changed key in one batch; the backend applies the
batch atomically or not at all.

Agent ids are arbitrary byte strings, so they are persisted as the hex of
their raw bytes (``hex_id``) wherever they appear in a key or a value.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol

from redis import Redis

from tournament_ledger.utils.json_utils import json_dumps, json_loads
from .models import AgentEntry, TournamentPhase, TournamentState, agent_id_bytes
from .settlement import PayoutReport

DEFAULT_KEY_PREFIX = "tournament"


def _amounts_as_text(data: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Amounts are stored as decimal strings; orjson only encodes 64-bit integers."""
    return {**data, **{k: str(data[k]) for k in keys if k in data}}


def encode_agent_id(agent_id: str) -> str:
    return agent_id_bytes(agent_id).hex()


def decode_agent_id(hex_id: str) -> str:
    return bytes.fromhex(hex_id).decode("utf-8", "surrogateescape")


class KeyValueStore(Protocol):
    """Durable store with get / list / atomic batch commit."""

    def get(self, key: str) -> Optional[str]: ...

    def list_range(self, key: str) -> List[str]: ...

    def commit(
        self,
        sets: Dict[str, str],
        appends: Optional[Dict[str, List[str]]] = None,
    ) -> None: ...


class InMemoryStore:
    """Process-local store. Committed writes are visible to the next read."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._lists: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def list_range(self, key: str) -> List[str]:
        return list(self._lists.get(key, []))

    def commit(
        self,
        sets: Dict[str, str],
        appends: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        with self._lock:
            new_lists = {
                key: self._lists.get(key, []) + list(values)
                for key, values in (appends or {}).items()
            }
            self._values.update(sets)
            self._lists.update(new_lists)


class RedisStore:
    """Redis-backed store. Batches run inside a MULTI/EXEC pipeline."""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    @staticmethod
    def _decode(value):
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def get(self, key: str) -> Optional[str]:
        return self._decode(self.redis.get(key))

    def list_range(self, key: str) -> List[str]:
        return [self._decode(v) for v in self.redis.lrange(key, 0, -1)]

    def commit(
        self,
        sets: Dict[str, str],
        appends: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        pipe = self.redis.pipeline(transaction=True)
        for key, value in sets.items():
            pipe.set(key, value)
        for key, values in (appends or {}).items():
            if values:
                pipe.rpush(key, *values)
        pipe.execute()


class TournamentRepository:
    """Maps TournamentState onto the fixed key layout."""

    def __init__(self, store: KeyValueStore, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.store = store
        self.key_prefix = key_prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self.key_prefix, *parts))

    @property
    def entry_fee_key(self) -> str:
        return self._key("entry_fee")

    @property
    def phase_key(self) -> str:
        return self._key("tournament_state")

    @property
    def prize_pool_key(self) -> str:
        return self._key("prize_pool")

    @property
    def agent_list_key(self) -> str:
        return self._key("agent_list")

    @property
    def report_key(self) -> str:
        return self._key("last_report")

    def agent_key(self, agent_id: str) -> str:
        return self._key("agents", encode_agent_id(agent_id))

    def exists(self) -> bool:
        return self.store.get(self.phase_key) is not None

    def load(self) -> Optional[TournamentState]:
        """Rebuild state from the store, or None if nothing was committed yet."""
        phase = self.store.get(self.phase_key)
        if phase is None:
            return None

        agent_order = tuple(
            decode_agent_id(hex_id)
            for hex_id in self.store.list_range(self.agent_list_key)
        )
        agents: Dict[str, AgentEntry] = {}
        for agent_id in agent_order:
            raw = self.store.get(self.agent_key(agent_id))
            if raw is None:
                raise RuntimeError(
                    f"Registry is missing entry for {encode_agent_id(agent_id)}"
                )
            data = json_loads(raw)
            agents[agent_id] = AgentEntry.from_dict({**data, "agent_id": agent_id})

        return TournamentState(
            entry_fee=int(self.store.get(self.entry_fee_key) or 0),
            phase=TournamentPhase(int(phase)),
            prize_pool=int(self.store.get(self.prize_pool_key) or 0),
            agents=agents,
            agent_order=agent_order,
        )

    def load_report(self) -> Optional[PayoutReport]:
        raw = self.store.get(self.report_key)
        if raw is None:
            return None
        data = json_loads(raw)
        data["payouts"] = [
            {**p, "agent_id": decode_agent_id(p["agent_id"])}
            for p in data.get("payouts", [])
        ]
        return PayoutReport.from_dict(data)

    def save(
        self,
        state: TournamentState,
        *,
        agents: Iterable[AgentEntry] = (),
        new_agent_ids: Iterable[str] = (),
        report: Optional[PayoutReport] = None,
    ) -> None:
        """Commit scalar fields plus the given entries, appended ids and report."""
        sets: Dict[str, str] = {
            self.entry_fee_key: str(state.entry_fee),
            self.phase_key: str(state.phase.value),
            self.prize_pool_key: str(state.prize_pool),
        }
        for entry in agents:
            data = _amounts_as_text(entry.to_dict(), "stake")
            data["agent_id"] = encode_agent_id(entry.agent_id)
            sets[self.agent_key(entry.agent_id)] = json_dumps(data)
        if report is not None:
            data = _amounts_as_text(
                report.to_dict(), "prize_pool", "total_paid", "unallocated"
            )
            data["payouts"] = [
                {
                    **_amounts_as_text(p.to_dict(), "prize_amount"),
                    "agent_id": encode_agent_id(p.agent_id),
                }
                for p in report.payouts
            ]
            sets[self.report_key] = json_dumps(data)

        new_ids = [encode_agent_id(agent_id) for agent_id in new_agent_ids]
        appends = {self.agent_list_key: new_ids} if new_ids else None
        self.store.commit(sets, appends)
