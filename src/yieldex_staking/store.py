"""
Persistence of staking snapshots.

One row per token address holds the latest APY/TVL reading for that token;
every refresh overwrites it in place.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from supabase import AsyncClient, acreate_client

logger = logging.getLogger(__name__)


class StakingSnapshot(BaseModel):
    id_protocol: str = Field(..., description="<project>_<symbol>")
    address_token: str = Field(..., description="Token address, unique key")
    address_staking: str
    name_token: str
    name_project: str
    chain: str
    apy: int = Field(..., description="Fixed APY in percent")
    tvl: float = Field(..., description="Total staked, decimals applied")
    stablecoin: bool = False
    categories: List[str] = Field(default_factory=lambda: ["Staking"])
    logo: str = ""
    updated_at: datetime


class StoreError(Exception):
    """Raised when the snapshot store cannot be read or written"""


class SnapshotStore(ABC):
    """Key-value store of snapshots keyed by token address"""

    @abstractmethod
    async def upsert(self, snapshot: StakingSnapshot) -> StakingSnapshot:
        ...

    @abstractmethod
    async def list_all(self) -> List[StakingSnapshot]:
        ...

    @abstractmethod
    async def find_by_protocol(self, id_protocol: str) -> List[StakingSnapshot]:
        ...

    @abstractmethod
    async def find_by_address(self, address: str) -> Optional[StakingSnapshot]:
        ...


class SupabaseSnapshotStore(SnapshotStore):
    """Snapshot store backed by a Supabase table"""

    def __init__(self, client: AsyncClient, table: str = "staking"):
        self.client = client
        self.table = table

    @classmethod
    async def connect(cls, url: str, key: str, table: str = "staking") -> "SupabaseSnapshotStore":
        """Create the shared async Supabase client"""
        client = await acreate_client(url, key)
        logger.info(f"Connected to Supabase, table '{table}'")
        return cls(client, table)

    @staticmethod
    def _to_record(snapshot: StakingSnapshot) -> Dict[str, Any]:
        return snapshot.model_dump(mode="json")

    async def upsert(self, snapshot: StakingSnapshot) -> StakingSnapshot:
        try:
            await self.client.table(self.table) \
                .upsert(self._to_record(snapshot), on_conflict="address_token") \
                .execute()
        except Exception as e:
            logger.error(f"Error saving snapshot for {snapshot.address_token}: {str(e)}")
            raise StoreError(f"Failed to save snapshot for {snapshot.address_token}") from e
        return snapshot

    async def list_all(self) -> List[StakingSnapshot]:
        try:
            result = await self.client.table(self.table).select("*").execute()
        except Exception as e:
            logger.error(f"Error fetching snapshots: {str(e)}")
            raise StoreError("Failed to fetch snapshots") from e
        return [StakingSnapshot.model_validate(row) for row in result.data or []]

    async def find_by_protocol(self, id_protocol: str) -> List[StakingSnapshot]:
        try:
            result = await self.client.table(self.table) \
                .select("*") \
                .eq("id_protocol", id_protocol) \
                .execute()
        except Exception as e:
            logger.error(f"Error fetching snapshots for protocol {id_protocol}: {str(e)}")
            raise StoreError(f"Failed to fetch snapshots for {id_protocol}") from e
        return [StakingSnapshot.model_validate(row) for row in result.data or []]

    async def find_by_address(self, address: str) -> Optional[StakingSnapshot]:
        try:
            result = await self.client.table(self.table) \
                .select("*") \
                .eq("address_token", address) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.error(f"Error fetching snapshot for {address}: {str(e)}")
            raise StoreError(f"Failed to fetch snapshot for {address}") from e

        if result.data and len(result.data) > 0:
            return StakingSnapshot.model_validate(result.data[0])
        return None
