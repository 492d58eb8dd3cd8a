"""Network registry.

Static mapping from a network identifier to its chain id, RPC endpoint and
bundler endpoint. Built once at startup and read-only afterwards.
"""

import logging
from types import MappingProxyType
from typing import Mapping, NamedTuple

from agent_withdraw.config import Settings
from agent_withdraw.web.contracts.networks import (
    NetworkConfig,
    NetworkListResponse,
    NetworkSummary,
)
from agent_withdraw.withdrawal.base import UnsupportedNetworkError

logger = logging.getLogger(__name__)


class ChainSpec(NamedTuple):
    name: str
    chain_id: int
    native_symbol: str
    is_testnet: bool


# Known EVM networks (Alchemy network identifiers)
KNOWN_NETWORKS: Mapping[str, ChainSpec] = MappingProxyType({
    "eth-mainnet": ChainSpec("Ethereum", 1, "ETH", False),
    "eth-sepolia": ChainSpec("Ethereum Sepolia", 11155111, "ETH", True),
    "base-mainnet": ChainSpec("Base", 8453, "ETH", False),
    "base-sepolia": ChainSpec("Base Sepolia", 84532, "ETH", True),
    "arb-mainnet": ChainSpec("Arbitrum One", 42161, "ETH", False),
    "arb-sepolia": ChainSpec("Arbitrum Sepolia", 421614, "ETH", True),
    "opt-mainnet": ChainSpec("OP Mainnet", 10, "ETH", False),
    "opt-sepolia": ChainSpec("OP Sepolia", 11155420, "ETH", True),
    "polygon-mainnet": ChainSpec("Polygon", 137, "POL", False),
    "polygon-amoy": ChainSpec("Polygon Amoy", 80002, "POL", True),
})

ALCHEMY_RPC_TEMPLATE = "https://{network}.g.alchemy.com/v2/{api_key}"


class NetworkRegistry:
    """Read-only registry of supported networks.

    Example:
        registry = NetworkRegistry.from_settings(get_settings())
        config = registry.resolve("base-sepolia")
        # NetworkConfig(chain_id=84532, ...)
    """

    def __init__(self, networks: Mapping[str, NetworkConfig]):
        self._networks = MappingProxyType(dict(networks))

    @classmethod
    def from_settings(cls, settings: Settings) -> "NetworkRegistry":
        """Build the registry from the enabled network list.

        Args:
            settings: Application settings

        Returns:
            NetworkRegistry with one entry per enabled network

        Raises:
            ValueError: If an enabled network is not a known network
        """
        overrides = settings.rpc_overrides
        bundler_base = settings.zerodev_bundler_url.rstrip("/")
        networks = {}

        for network in settings.network_ids:
            spec = KNOWN_NETWORKS.get(network)
            if spec is None:
                raise ValueError(
                    f"Unknown network in SUPPORTED_NETWORKS: {network}. "
                    f"Known: {', '.join(KNOWN_NETWORKS)}"
                )

            rpc_url = overrides.get(network) or ALCHEMY_RPC_TEMPLATE.format(
                network=network, api_key=settings.alchemy_api_key
            )
            bundler_url = f"{bundler_base}/chain/{spec.chain_id}" if bundler_base else ""

            networks[network] = NetworkConfig(
                network=network,
                name=spec.name,
                chain_id=spec.chain_id,
                native_symbol=spec.native_symbol,
                rpc_url=rpc_url,
                bundler_url=bundler_url,
                is_testnet=spec.is_testnet,
            )

        logger.info("Network registry loaded: %s", ", ".join(networks) or "(empty)")
        return cls(networks)

    def resolve(self, network: str) -> NetworkConfig:
        """Get the configuration of a supported network.

        Raises:
            UnsupportedNetworkError: If the network is not configured
        """
        config = self._networks.get(network)
        if config is None:
            raise UnsupportedNetworkError(network)
        return config

    def is_supported(self, network: str) -> bool:
        return network in self._networks

    @property
    def networks(self) -> list[str]:
        return list(self._networks)

    def list_networks(self) -> NetworkListResponse:
        """Public listing of supported networks (endpoints omitted)."""
        summaries = [
            NetworkSummary(
                network=c.network,
                name=c.name,
                chain_id=c.chain_id,
                native_symbol=c.native_symbol,
                is_testnet=c.is_testnet,
            )
            for c in self._networks.values()
        ]
        return NetworkListResponse(networks=summaries, total=len(summaries))
