"""
Tests for free-text task parsing and execution.
"""
from unittest.mock import MagicMock

import pytest

from chainpilot.exceptions import UnsupportedOperation, UserInputError
from chainpilot.models import ActionResult, MintKind
from chainpilot.tasks import (
    TaskExecutor, match_rule, parse_amount, parse_mint_params, parse_send_params, parse_slippage_bps,
    parse_swap_params,
)
from conftest import ADDR_A, ADDR_B, CONTRACT, TOKEN_X, make_account


@pytest.fixture
def account(store, sealer):
    return make_account(store, sealer, ADDR_A)


@pytest.fixture
def swap_executor():
    executor = MagicMock()
    executor.swap.return_value = ActionResult(success=True, tx_id="0xswap", message="Swapped")
    return executor


@pytest.fixture
def mint_executor():
    executor = MagicMock()
    executor.mint.return_value = ActionResult(success=True, tx_id="0xmint", message="Minted")
    return executor


@pytest.fixture
def tasks(swap_executor, mint_executor, adapter_for, sealer):
    return TaskExecutor(swap_executor, mint_executor, adapter_for, sealer)


class TestParsing:
    def test_amount_skips_percentages(self):
        assert parse_amount("swap 0.01 eth for native") == "0.01"
        assert parse_amount("with 5% slippage swap 2 eth") == "2"
        assert parse_amount(f"send to {ADDR_B}") is None

    def test_slippage(self):
        assert parse_slippage_bps("swap 1 eth with 0.5% slippage") == 50
        assert parse_slippage_bps("slippage of 3%") == 300
        assert parse_slippage_bps("swap 1 eth") is None

    def test_swap_params(self, evm_network):
        params = parse_swap_params(f"Swap 0.01 ETH for {TOKEN_X} with 2% slippage", evm_network)
        assert params == {"amount_in": "0.01", "from_asset": "native", "to_asset": TOKEN_X, "slippage_bps": 200}

    def test_swap_token_input(self, evm_network):
        params = parse_swap_params(f"swap 5 {TOKEN_X} to eth", evm_network)
        assert params["from_asset"] == TOKEN_X
        assert params["to_asset"] == "native"

    def test_swap_missing_output(self, evm_network):
        with pytest.raises(UserInputError):
            parse_swap_params("swap 0.01 eth", evm_network)

    def test_mint_params(self, evm_network, solana_network):
        params = parse_mint_params(f"mint 2 nfts from {CONTRACT}", evm_network)
        assert params["kind"] == MintKind.COLLECTIBLE
        assert params["contract_address"] == CONTRACT
        assert params["options"].quantity == 2

        assert parse_mint_params(f"mint erc1155 at {CONTRACT}", evm_network)["kind"] == MintKind.MULTI_TOKEN

        domain = parse_mint_params(f"mint domain alice.eth on {CONTRACT}", evm_network)
        assert domain["kind"] == MintKind.NAME_REGISTRATION
        assert domain["options"].name == "alice.eth"

        native = parse_mint_params("mint nft from 7Xyz4cRvZ8T5hJ2QWmA8eKJ1bN3pLfGdE9sUqVwY6tPk", solana_network)
        assert native["kind"] == MintKind.NATIVE_NFT
        assert native["contract_address"] == "7Xyz4cRvZ8T5hJ2QWmA8eKJ1bN3pLfGdE9sUqVwY6tPk"

        assert parse_mint_params("mint an nft", evm_network)["contract_address"] is None

    def test_send_params(self, evm_network):
        assert parse_send_params(f"send 0.5 to {ADDR_B}", evm_network) == {"amount": "0.5", "to": ADDR_B}
        with pytest.raises(UserInputError):
            parse_send_params("send 0.5 somewhere", evm_network)


class TestRules:
    @pytest.mark.parametrize("text,rule", [
        ("swap 1 eth for native", "swap"),
        ("Swap and then mint", "swap"),
        ("claim the nft", "mint"),
        ("Claim faucet", "faucet"),
        ("check my balance", "balance"),
        (f"transfer 1 to {ADDR_B}", "send"),
    ])
    def test_first_match_wins(self, text, rule):
        assert match_rule(text).name == rule

    @pytest.mark.parametrize("text", ["Follow on Twitter", "join discord", "minting soon"])
    def test_no_match(self, text):
        assert match_rule(text) is None


class TestExecute:
    def test_unmatched_task_is_noted(self, tasks, account, evm_network):
        result = tasks.execute("Follow @project on Twitter", account, evm_network, task_set_id="ts1")
        assert result.success
        assert "not yet automatable" in result.message
        assert result.task_set_id == "ts1"
        assert result.account_address == ADDR_A

    def test_swap_dispatch(self, tasks, swap_executor, account, evm_network):
        result = tasks.execute(f"swap 0.01 eth for {TOKEN_X}", account, evm_network)
        assert result.success
        assert result.tx_id == "0xswap"
        swap_executor.swap.assert_called_once_with(
            account, network=evm_network, amount_in="0.01", from_asset="native", to_asset=TOKEN_X,
            slippage_bps=None,
        )

    def test_missing_parameter_fails_closed(self, tasks, swap_executor, account, evm_network):
        result = tasks.execute("swap some tokens", account, evm_network)
        assert not result.success
        assert result.message.startswith("Swap failed:")
        swap_executor.swap.assert_not_called()

    def test_mint_dispatch(self, tasks, mint_executor, account, evm_network):
        tasks.execute(f"mint 3 from {CONTRACT}", account, evm_network)
        kwargs = mint_executor.mint.call_args.kwargs
        assert kwargs["kind"] == MintKind.COLLECTIBLE
        assert kwargs["contract_address"] == CONTRACT
        assert kwargs["options"].quantity == 3

    def test_unexpected_error_is_contained(self, tasks, swap_executor, account, evm_network):
        swap_executor.swap.side_effect = RuntimeError("boom")
        result = tasks.execute(f"swap 1 eth for {TOKEN_X}", account, evm_network)
        assert not result.success
        assert "unexpected error" in result.message

    def test_send(self, tasks, adapter_for, account, evm_network):
        result = tasks.execute(f"send 0.01 to {ADDR_B}", account, evm_network)
        assert result.success
        assert adapter_for(evm_network).calls_named("transfer") == [("transfer", ADDR_B, 10**16)]

    def test_balance(self, tasks, adapter_for, account, evm_network):
        adapter_for(evm_network).balances[ADDR_A] = 1_500_000_000_000_000_000
        result = tasks.execute("check balance", account, evm_network)
        assert result.message == "Balance: 1.5 ETH"

    def test_faucet_unsupported(self, tasks, adapter_for, account, evm_network):
        adapter_for(evm_network).faucet_error = UnsupportedOperation("EVM faucets are not automatable")
        result = tasks.execute("claim faucet", account, evm_network)
        assert not result.success
        assert result.message == "Faucet failed: EVM faucets are not automatable"

    def test_faucet(self, tasks, adapter_for, account, evm_network):
        result = tasks.execute("Claim testnet faucet", account, evm_network)
        assert result.success
        assert adapter_for(evm_network).calls_named("faucet") == [("faucet", ADDR_A)]
