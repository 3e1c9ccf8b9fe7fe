"""Static registry of the staking tokens mirrored by the service."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from web3 import Web3

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("symbol", "token", "staking", "project")


@dataclass(frozen=True)
class TokenDescriptor:
    symbol: str
    token_address: str
    staking_address: str
    project_name: str

    @property
    def protocol_id(self) -> str:
        """Composite id grouping snapshots by protocol: <project>_<symbol>"""
        return f"{self.project_name}_{self.symbol}"


class TokenRegistry:
    """
    Immutable symbol => TokenDescriptor table.

    Built once at startup from configuration rows; iteration follows the
    order of the rows.
    """

    def __init__(self, descriptors: List[TokenDescriptor]):
        tokens: Dict[str, TokenDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.symbol in tokens:
                raise ValueError(f"Duplicate token symbol in registry: {descriptor.symbol}")
            tokens[descriptor.symbol] = descriptor
        self._tokens = tokens

    @classmethod
    def from_config(cls, rows: List[Dict[str, Any]]) -> "TokenRegistry":
        """
        Build the registry from the `tokens` section of the configuration.

        Args:
            rows: Mappings with symbol, token, staking and project keys.
                Addresses are stored in checksum form.

        Raises:
            ValueError: if a row lacks a field, an address is not hex
                or a symbol repeats
        """
        descriptors = []
        for index, row in enumerate(rows):
            missing = [name for name in REQUIRED_FIELDS if not row.get(name)]
            if missing:
                raise ValueError(
                    f"Token row {index} is missing fields: {', '.join(missing)}"
                )
            descriptors.append(
                TokenDescriptor(
                    symbol=str(row["symbol"]),
                    token_address=Web3.to_checksum_address(str(row["token"])),
                    staking_address=Web3.to_checksum_address(str(row["staking"])),
                    project_name=str(row["project"]),
                )
            )

        registry = cls(descriptors)
        logger.info(f"Token registry loaded with {len(registry)} tokens: {registry.symbols()}")
        return registry

    def __getitem__(self, symbol: str) -> TokenDescriptor:
        return self._tokens[symbol]

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._tokens

    def __iter__(self) -> Iterator[TokenDescriptor]:
        return iter(self._tokens.values())

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, symbol: str) -> Optional[TokenDescriptor]:
        return self._tokens.get(symbol)

    def symbols(self) -> List[str]:
        return list(self._tokens)
