import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from web3 import AsyncWeb3, Web3

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).parent / "abi"
STAKING_ABI = "StakingPool"


def load_abi(contract_name: str) -> List[Dict[str, Any]]:
    """Load ABI from the package abi directory"""
    abi_path = ABI_DIR / f"{contract_name}.json"
    try:
        with open(abi_path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"ABI file not found: {contract_name}.json")
        raise
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in ABI file: {contract_name}.json")
        raise


def get_async_web3(rpc_url: str) -> AsyncWeb3:
    """Create the process-wide async Web3 client for the configured node"""
    if not rpc_url:
        raise ValueError("Missing RPC URL")
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))


class ChainReader:
    """
    Reads the two view functions of a staking contract.

    The Web3 client is shared by every concurrent read; errors from the node
    (connection, revert, decoding) propagate to the caller unchanged.
    """

    def __init__(self, w3: AsyncWeb3, abi: List[Dict[str, Any]] = None):
        self.w3 = w3
        self.abi = abi if abi is not None else load_abi(STAKING_ABI)

    def _contract(self, staking_address: str):
        address = Web3.to_checksum_address(staking_address)
        return self.w3.eth.contract(address=address, abi=self.abi)

    async def read_fixed_apy(self, staking_address: str) -> int:
        """Return fixedAPY() as a plain integer percentage (uint8 on-chain)"""
        apy = await self._contract(staking_address).functions.fixedAPY().call()
        logger.debug(f"fixedAPY() at {staking_address} = {apy}")
        return int(apy)

    async def read_total_staked(self, staking_address: str) -> int:
        """Return totalAmountStaked() as the raw fixed-point integer"""
        total = await self._contract(staking_address).functions.totalAmountStaked().call()
        logger.debug(f"totalAmountStaked() at {staking_address} = {total}")
        return int(total)

    async def is_connected(self) -> bool:
        try:
            return await self.w3.is_connected()
        except Exception as e:
            logger.error(f"Error checking RPC connection: {str(e)}")
            return False
