import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from yieldex_staking.chain_reader import ChainReader, get_async_web3
from yieldex_staking.config import Settings, load_settings, validate_settings
from yieldex_staking.logger import setup_service_logger
from yieldex_staking.registry import TokenDescriptor, TokenRegistry
from yieldex_staking.store import SnapshotStore, StakingSnapshot, SupabaseSnapshotStore

logger = logging.getLogger(__name__)

STAKING_CATEGORY = "Staking"
STABLECOIN_CATEGORY = "Stablecoin"


@dataclass
class RefreshOutcome:
    symbol: str
    success: bool
    snapshot: Optional[StakingSnapshot] = None
    error: Optional[str] = None


@dataclass
class RefreshReport:
    """Result of a bulk refresh: every token attempted, some may have failed"""

    outcomes: List[RefreshOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> List[str]:
        return [outcome.symbol for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> List[str]:
        return [outcome.symbol for outcome in self.outcomes if not outcome.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


def normalize_tvl(raw_total: int, decimals: int) -> float:
    """Convert a fixed-point on-chain amount to a float"""
    return float(Decimal(raw_total) / (Decimal(10) ** decimals))


class StakingRefresher:
    """
    Syncs stored snapshots with the staking contracts of the registry.

    Failures are isolated per token: a bad contract or a failed write is
    logged and leaves that token's previous snapshot untouched.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        reader: ChainReader,
        store: SnapshotStore,
        settings: Settings,
    ):
        self.registry = registry
        self.reader = reader
        self.store = store
        self.settings = settings

    def build_snapshot(self, token: TokenDescriptor, apy: int, tvl: float) -> StakingSnapshot:
        """Assemble the stored record for one token from fresh readings"""
        is_stablecoin = token.symbol == self.settings.stablecoin_symbol
        categories = [STAKING_CATEGORY]
        if is_stablecoin:
            categories.append(STABLECOIN_CATEGORY)

        return StakingSnapshot(
            id_protocol=token.protocol_id,
            address_token=token.token_address,
            address_staking=token.staking_address,
            name_token=token.symbol,
            name_project=token.project_name,
            chain=self.settings.chain,
            apy=apy,
            tvl=tvl,
            stablecoin=is_stablecoin,
            categories=categories,
            logo=self.settings.logos.get(token.symbol, ""),
            updated_at=datetime.now(timezone.utc),
        )

    async def refresh_one(self, symbol: str) -> RefreshOutcome:
        """
        Read APY and TVL for one registered token and upsert its snapshot.

        Args:
            symbol: Registry symbol. Unknown symbols raise KeyError.

        Returns:
            RefreshOutcome; never raises for chain or store errors
        """
        token = self.registry[symbol]
        try:
            raw_apy = await self.reader.read_fixed_apy(token.staking_address)
            raw_total = await self.reader.read_total_staked(token.staking_address)

            snapshot = self.build_snapshot(
                token,
                apy=int(raw_apy),
                tvl=normalize_tvl(raw_total, self.settings.tvl_decimals),
            )
            await self.store.upsert(snapshot)

            logger.info(
                f"Updated staking data for {symbol} "
                f"(APY: {snapshot.apy}%, TVL: {snapshot.tvl:,.2f})"
            )
            return RefreshOutcome(symbol=symbol, success=True, snapshot=snapshot)
        except Exception as e:
            logger.error(f"Error updating staking data for {symbol}: {str(e)}", exc_info=True)
            return RefreshOutcome(symbol=symbol, success=False, error=str(e))

    async def refresh_all(self) -> RefreshReport:
        """Refresh every registered token concurrently and wait for all of them"""
        outcomes = await asyncio.gather(
            *(self.refresh_one(symbol) for symbol in self.registry.symbols())
        )
        report = RefreshReport(outcomes=list(outcomes))

        if report.all_succeeded:
            logger.info(f"Refreshed {report.attempted} staking snapshots")
        else:
            logger.warning(
                f"Refreshed {len(report.succeeded)}/{report.attempted} staking snapshots, "
                f"failed: {', '.join(report.failed)}"
            )
        return report


async def run_refresh_cycle(config_path: Optional[str] = None) -> Optional[RefreshReport]:
    """One-shot refresh of all tokens outside the HTTP server"""
    settings = load_settings(config_path)
    setup_service_logger(settings)

    if not validate_settings(settings):
        logger.error("Cannot start refresh: missing required configuration")
        return None

    registry = TokenRegistry.from_config(settings.tokens)
    reader = ChainReader(get_async_web3(settings.rpc_url))
    store = await SupabaseSnapshotStore.connect(
        settings.supabase_url, settings.supabase_key, settings.table
    )
    return await StakingRefresher(registry, reader, store, settings).refresh_all()


def main() -> None:
    report = asyncio.run(run_refresh_cycle())
    if report is None or not report.all_succeeded:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
