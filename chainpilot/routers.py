"""
Decentralized-exchange router resolution.

Built-in routers are global and keyed by chain id; owners can save a router
for any other network. A built-in entry always wins over a saved one.
"""
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3

from .abis import UNISWAP_V2_ROUTER_ABI
from .exceptions import UserInputError
from .models import RouterConfig
from .store import Store

logger = logging.getLogger(__name__)


def _builtin(network_id: str, name: str, router: str, wrapped_native: str) -> RouterConfig:
    return RouterConfig(
        network_id=network_id,
        name=name,
        router_address=Web3.to_checksum_address(router),
        wrapped_native_address=Web3.to_checksum_address(wrapped_native),
        interface_descriptor=UNISWAP_V2_ROUTER_ABI,
    )


BUILTIN_ROUTERS: Dict[str, RouterConfig] = {
    r.network_id: r
    for r in [
        _builtin("1", "Uniswap V2",
                 "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
                 "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
        _builtin("56", "PancakeSwap V2",
                 "0x10ED43C718714eb63d5aA57B78B54704E256024E",
                 "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"),
        _builtin("137", "QuickSwap",
                 "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff",
                 "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270"),
        _builtin("42161", "Uniswap V2 Arbitrum",
                 "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
                 "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"),
        _builtin("8453", "Uniswap V2 Base",
                 "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
                 "0x4200000000000000000000000000000000000006"),
        _builtin("10", "Uniswap V2 Optimism",
                 "0x4A7b5Da61326A6379179b40d00F57E5bbDC962c2",
                 "0x4200000000000000000000000000000000000006"),
        _builtin("97", "PancakeSwap Testnet",
                 "0xD99D1c33F9fC3444f8101754aBC46c52416550D1",
                 "0xae13d989daC2f0dEbFf460aC112a837C89BAa7cd"),
        _builtin("11155111", "Uniswap V2 Sepolia",
                 "0xC532a74256D3Db42D0Bf7a0400fEFDbad7694008",
                 "0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9"),
        _builtin("80001", "QuickSwap Mumbai",
                 "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff",
                 "0x9c3C9283D3e44854697Cd22D3Faa240Cfb032889"),
    ]
}


def _checksum(address: str, label: str) -> str:
    if not address or not Web3.is_address(address):
        raise UserInputError(f"Invalid {label} address: {address!r}")
    return Web3.to_checksum_address(address)


class RouterResolver:
    """Resolves the router to use for a network"""

    def __init__(self, store: Store):
        self.store = store

    def resolve(self, network_id: str, owner: Optional[str]) -> Optional[RouterConfig]:
        """
        Find the router for a network.

        Args:
            network_id: Network identifier (chain id for EVM networks)
            owner: Owner whose saved routers are the fallback

        Returns:
            RouterConfig, or None when neither a built-in nor a saved router exists
        """
        network_id = str(network_id)
        router = BUILTIN_ROUTERS.get(network_id)
        if router is not None:
            return router
        if owner is None:
            return None
        router = self.store.get_router(owner, network_id)
        if router is None:
            logger.debug(f"No router known for network {network_id} (owner {owner})")
        return router

    def save_custom(
        self,
        owner: str,
        network_id: str,
        router_address: str,
        wrapped_native_address: str,
        name: Optional[str] = None,
        interface_descriptor: Optional[List[Dict[str, Any]]] = None,
    ) -> RouterConfig:
        """
        Save (or replace) an owner's router for a network.

        Raises:
            UserInputError: If either address is invalid
        """
        router = RouterConfig(
            network_id=str(network_id),
            name=name or "Custom router",
            router_address=_checksum(router_address, "router"),
            wrapped_native_address=_checksum(wrapped_native_address, "wrapped native token"),
            interface_descriptor=interface_descriptor or UNISWAP_V2_ROUTER_ABI,
            owner=owner,
        )
        if str(network_id) in BUILTIN_ROUTERS:
            logger.warning(
                f"Network {network_id} has a built-in router; the saved router will not be used"
            )
        return self.store.save_router(router)
