"""
Chain registry — static descriptors for the supported networks.

Depends on: errors
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from baseconnect.errors import ChainNotSupportedError

BASE_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532


@dataclass(frozen=True)
class ChainDescriptor:
    """One supported network. rpc_urls[0] is the primary endpoint, the rest are fallbacks."""
    chain_id: int
    name: str
    currency_symbol: str
    currency_decimals: int
    rpc_urls: tuple[str, ...]
    explorer_url: str
    testnet: bool = False

    @property
    def hex_chain_id(self) -> str:
        return hex(self.chain_id)

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/address/{address}"

    def to_dict(self) -> dict:
        return {
            "chain_id": self.chain_id,
            "name": self.name,
            "currency_symbol": self.currency_symbol,
            "currency_decimals": self.currency_decimals,
            "rpc_urls": list(self.rpc_urls),
            "explorer_url": self.explorer_url,
            "testnet": self.testnet,
        }


BASE = ChainDescriptor(
    chain_id=BASE_CHAIN_ID,
    name="Base Mainnet",
    currency_symbol="ETH",
    currency_decimals=18,
    rpc_urls=("https://mainnet.base.org", "https://base-rpc.publicnode.com"),
    explorer_url="https://basescan.org",
)

BASE_SEPOLIA = ChainDescriptor(
    chain_id=BASE_SEPOLIA_CHAIN_ID,
    name="Base Sepolia",
    currency_symbol="ETH",
    currency_decimals=18,
    rpc_urls=("https://sepolia.base.org", "https://base-sepolia-rpc.publicnode.com"),
    explorer_url="https://sepolia.basescan.org",
    testnet=True,
)


class ChainRegistry:
    """Lookup of ChainDescriptors by id. The first registered chain is the primary network."""

    def __init__(self, descriptors: Iterable[ChainDescriptor]):
        self._chains: dict[int, ChainDescriptor] = {}
        for descriptor in descriptors:
            self._chains[descriptor.chain_id] = descriptor
        if not self._chains:
            raise ValueError("ChainRegistry needs at least one chain")

    @property
    def primary(self) -> ChainDescriptor:
        return next(iter(self._chains.values()))

    def describe(self, chain_id: int) -> ChainDescriptor:
        """Return the descriptor for chain_id, or raise ChainNotSupportedError."""
        descriptor = self._chains.get(chain_id)
        if descriptor is None:
            raise ChainNotSupportedError(chain_id)
        return descriptor

    def get(self, chain_id: Optional[int]) -> Optional[ChainDescriptor]:
        if chain_id is None:
            return None
        return self._chains.get(chain_id)

    def is_supported(self, chain_id: Optional[int]) -> bool:
        return chain_id in self._chains

    def ids(self) -> list[int]:
        return list(self._chains)

    def all(self) -> list[ChainDescriptor]:
        return list(self._chains.values())

    def network_name(self, chain_id: Optional[int]) -> str:
        descriptor = self.get(chain_id)
        return descriptor.name if descriptor else "Unknown Network"

    def with_rpc_overrides(self, overrides: dict[int, str]) -> "ChainRegistry":
        """New registry where each override URL is tried first, built-ins stay as fallbacks."""
        updated = []
        for descriptor in self._chains.values():
            url = (overrides or {}).get(descriptor.chain_id)
            if url:
                rest = tuple(u for u in descriptor.rpc_urls if u != url)
                descriptor = replace(descriptor, rpc_urls=(url,) + rest)
            updated.append(descriptor)
        return ChainRegistry(updated)


def default_registry(overrides: Optional[dict[int, str]] = None) -> ChainRegistry:
    """Base mainnet (primary) and Base Sepolia, with optional RPC overrides applied."""
    registry = ChainRegistry([BASE, BASE_SEPOLIA])
    if overrides:
        registry = registry.with_rpc_overrides(overrides)
    return registry
