"""
Tests for router resolution.
"""
import logging

import pytest
from web3 import Web3

from chainpilot.abis import UNISWAP_V2_ROUTER_ABI
from chainpilot.exceptions import UserInputError
from chainpilot.routers import BUILTIN_ROUTERS, RouterResolver
from conftest import ADDR_A, ADDR_B, OWNER


@pytest.fixture
def resolver(store):
    return RouterResolver(store)


def test_builtin_addresses_are_checksummed():
    for router in BUILTIN_ROUTERS.values():
        assert Web3.to_checksum_address(router.router_address) == router.router_address
        assert Web3.to_checksum_address(router.wrapped_native_address) == router.wrapped_native_address


def test_builtin_resolves_for_anyone(resolver):
    assert resolver.resolve("56", None).name == "PancakeSwap V2"
    assert resolver.resolve(56, "anyone").network_id == "56"


def test_unknown_network_without_custom(resolver):
    assert resolver.resolve("777", OWNER) is None
    assert resolver.resolve("777", None) is None


def test_custom_router_saved_and_resolved(resolver):
    saved = resolver.save_custom(OWNER, "777", ADDR_A, ADDR_B, name="ExampleSwap")
    assert saved.router_address == Web3.to_checksum_address(ADDR_A)
    assert saved.interface_descriptor == UNISWAP_V2_ROUTER_ABI
    resolved = resolver.resolve("777", OWNER)
    assert resolved.name == "ExampleSwap"
    # Custom routers are owner-scoped
    assert resolver.resolve("777", "someone-else") is None


def test_builtin_wins_over_custom(resolver, caplog):
    with caplog.at_level(logging.WARNING):
        resolver.save_custom(OWNER, "56", ADDR_A, ADDR_B)
    assert "built-in router" in caplog.text
    assert resolver.resolve("56", OWNER).router_address == BUILTIN_ROUTERS["56"].router_address


@pytest.mark.parametrize("router,wrapped", [("0x123", ADDR_B), (ADDR_A, ""), ("not-an-address", ADDR_B)])
def test_invalid_addresses(resolver, router, wrapped):
    with pytest.raises(UserInputError):
        resolver.save_custom(OWNER, "777", router, wrapped)
