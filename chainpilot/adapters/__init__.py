"""
Chain adapters, one per network family.
"""
import logging
from typing import Dict, Optional, Tuple

from .._http import build_session
from ..config import Settings
from ..models import NetworkConfig, NetworkFamily
from .aptos import AptosAdapter
from .base import ChainAdapter, NewAccount
from .evm import EvmAdapter
from .solana import SolanaAdapter

logger = logging.getLogger(__name__)


class AdapterFactory:
    """
    Builds and caches one adapter per (network, RPC endpoint).

    Instances are callable so executors can take any
    ``Callable[[NetworkConfig], ChainAdapter]`` in its place.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._cache: Dict[Tuple[NetworkFamily, str, str], ChainAdapter] = {}

    def __call__(self, network: NetworkConfig) -> ChainAdapter:
        key = (network.network_family, network.network_id, network.rpc_endpoint)
        adapter = self._cache.get(key)
        if adapter is None:
            adapter = self._build(network)
            self._cache[key] = adapter
            logger.debug(f"Created {type(adapter).__name__} for {network.name}")
        return adapter

    def _build(self, network: NetworkConfig) -> ChainAdapter:
        timeout = self.settings.confirmation_timeout
        if network.network_family == NetworkFamily.EVM:
            return EvmAdapter(network, confirmation_timeout=timeout)
        if network.network_family == NetworkFamily.SOLANA:
            return SolanaAdapter(
                network,
                confirmation_timeout=timeout,
                session=build_session(self.settings.http_retries),
                timeout=self.settings.http_timeout,
            )
        return AptosAdapter(
            network,
            confirmation_timeout=timeout,
            session=build_session(self.settings.http_retries),
            faucet_url=self.settings.aptos_faucet_url if network.is_testnet else None,
            timeout=self.settings.http_timeout,
        )


__all__ = [
    "AdapterFactory",
    "AptosAdapter",
    "ChainAdapter",
    "EvmAdapter",
    "NewAccount",
    "SolanaAdapter",
]
