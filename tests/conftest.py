from typing import Dict, List, Optional

import pytest

from yieldex_staking.config import Settings
from yieldex_staking.registry import TokenRegistry
from yieldex_staking.store import SnapshotStore, StakingSnapshot, StoreError

TOKENS = [
    {
        "symbol": "S",
        "token": "0xC42F6EBD1499c8099cbdde8f108c870fD7Baffa4",
        "staking": "0xC8d619C991066233DC281564Ba8d076e785328CB",
        "project": "SiloV2",
    },
    {
        "symbol": "LBTC",
        "token": "0xf7b6e1d2fE5C493b1A22e3E93A4c4DE2f1a9b85E",
        "staking": "0x6604Cdd55C119361B6890Bd7e9523e0772e0DC49",
        "project": "Lombard Finance",
    },
    {
        "symbol": "USDCe",
        "token": "0x038310f0F5971A025Ff40c0B0BDbC751965dCD72",
        "staking": "0xd7256AeD9e1e04fD9dC5D6eAa38297C8A19C7EF8",
        "project": "SpectraV2",
    },
]

LOGOS = {
    "S": "https://s2.coinmarketcap.com/static/img/coins/200x200/32684.png",
    "USDCe": "https://s2.coinmarketcap.com/static/img/coins/200x200/3408.png",
}


class FakeChainReader:
    """Chain reader returning canned values per staking address"""

    def __init__(self, apy: int = 5, total: int = 1_000_000_000, connected: bool = True):
        self.apy = apy
        self.total = total
        self.connected = connected
        self.failing: Dict[str, Exception] = {}
        self.calls: List[str] = []

    def fail_for(self, staking_address: str, error: Exception = None):
        self.failing[staking_address] = error or ConnectionError("RPC unreachable")

    async def read_fixed_apy(self, staking_address: str) -> int:
        self.calls.append(staking_address)
        if staking_address in self.failing:
            raise self.failing[staking_address]
        return self.apy

    async def read_total_staked(self, staking_address: str) -> int:
        if staking_address in self.failing:
            raise self.failing[staking_address]
        return self.total

    async def is_connected(self) -> bool:
        return self.connected


class InMemorySnapshotStore(SnapshotStore):
    """Snapshot store keeping rows in a dict keyed by token address"""

    def __init__(self):
        self.rows: Dict[str, StakingSnapshot] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise StoreError("Database error")

    async def upsert(self, snapshot: StakingSnapshot) -> StakingSnapshot:
        self._check()
        self.rows[snapshot.address_token] = snapshot
        return snapshot

    async def list_all(self) -> List[StakingSnapshot]:
        self._check()
        return list(self.rows.values())

    async def find_by_protocol(self, id_protocol: str) -> List[StakingSnapshot]:
        self._check()
        return [row for row in self.rows.values() if row.id_protocol == id_protocol]

    async def find_by_address(self, address: str) -> Optional[StakingSnapshot]:
        self._check()
        return self.rows.get(address)


@pytest.fixture
def settings():
    """Settings with a small token set and no external endpoints"""
    return Settings(
        rpc_url="http://localhost:8545",
        supabase_url="http://localhost:54321",
        supabase_key="test-key",
        tokens=[dict(row) for row in TOKENS],
        logos=dict(LOGOS),
    )


@pytest.fixture
def registry(settings):
    return TokenRegistry.from_config(settings.tokens)


@pytest.fixture
def reader():
    return FakeChainReader()


@pytest.fixture
def store():
    return InMemorySnapshotStore()
