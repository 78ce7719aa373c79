"""
Tests for the chainpilot command line.
"""
import io
from unittest.mock import MagicMock

import pytest
from web3 import Web3

from chainpilot.cli import build_parser, main
from chainpilot.config import Settings
from chainpilot.engine import Engine
from chainpilot.extraction import ExtractedNetwork, TaskListExtraction
from chainpilot.version import __version__
from conftest import ADDR_A, ADDR_B, OWNER, TOKEN_X, TOKEN_Y, make_account


@pytest.fixture
def engine(tmp_path, store, adapter_for, sealer):
    settings = Settings(
        store_path=str(tmp_path / "store.json"), lock_dir=str(tmp_path / "locks"), min_delay=0, max_delay=0
    )
    return Engine(
        settings, store=store, adapter_for=adapter_for, sealer=sealer, notifier=MagicMock(), extractor=MagicMock()
    )


def run(engine, *argv):
    return main(["--owner", OWNER, *argv], engine=engine)


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        build_parser().parse_args(["--version"])
    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_networks(engine, capsys):
    assert run(engine, "add-network", "Example Testnet", "https://rpc.example.com", "EXT",
               "--chain-id", "777", "--testnet") == 0
    assert run(engine, "networks") == 0
    out = capsys.readouterr().out
    assert "Saved network Example Testnet (id 777)" in out
    assert "Sepolia Testnet (ETH, evm testnet, built-in)" in out
    assert "Example Testnet (EXT, evm testnet, custom)" in out


def test_evm_network_without_chain_id(engine, capsys):
    assert run(engine, "add-network", "No Id", "https://rpc.example.com", "X") == 2
    assert "chain id" in capsys.readouterr().err


class TestAccounts:
    def test_create_and_list(self, engine, capsys):
        assert run(engine, "account", "create", "evm") == 0
        assert run(engine, "account", "list") == 0
        out = capsys.readouterr().out
        assert "Created EVM Wallet 1: 0x" in out
        assert "evm  0x" in out

    def test_import_reads_stdin(self, engine, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(f"secret-{ADDR_A}\n"))
        assert run(engine, "account", "import", "evm", "--label", "Main") == 0
        assert f"Imported Main: {ADDR_A}" in capsys.readouterr().out

    def test_invalid_import(self, engine, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("garbage\n"))
        assert run(engine, "account", "import", "evm") == 2
        assert capsys.readouterr().err.startswith("Error:")


class TestTaskSets:
    def test_add_and_run(self, engine, store, sealer, capsys):
        make_account(store, sealer, ADDR_A)
        assert run(engine, "add-task-set", "Daily", "--network", "1",
                   "--task", "check balance", "--task", "follow on twitter", "--repeat", "daily") == 0
        assert run(engine, "run", "daily") == 0
        out = capsys.readouterr().out
        assert "Saved task set Daily" in out
        assert "with 2 tasks" in out
        assert "2 succeeded, 0 failed" in out

    def test_failed_task_exit_code(self, engine, store, sealer, capsys):
        make_account(store, sealer, ADDR_A)
        run(engine, "add-task-set", "Sends", "--network", "1", "--task", "send 1 to nobody")
        assert run(engine, "run", "Sends") == 1
        assert "0 succeeded, 1 failed" in capsys.readouterr().out

    def test_unknown_task_set(self, engine, capsys):
        assert run(engine, "run", "missing") == 2
        assert "Task set 'missing' not found" in capsys.readouterr().err

    def test_history(self, engine, store, sealer, capsys):
        assert run(engine, "history") == 0
        assert "No task history yet" in capsys.readouterr().out
        make_account(store, sealer, ADDR_A)
        run(engine, "add-task-set", "Daily", "--network", "1", "--task", "check balance")
        run(engine, "run", "Daily")
        capsys.readouterr()
        assert run(engine, "history", "--limit", "5") == 0
        assert "OK   'check balance': Balance: 0 ETH" in capsys.readouterr().out

    def test_schedule_once(self, engine, capsys):
        assert run(engine, "schedule", "--once") == 0
        assert "Ran 0 due task sets" in capsys.readouterr().out


class TestFunding:
    def test_fixed(self, engine, store, sealer, adapter_for, evm_network, capsys):
        make_account(store, sealer, ADDR_A)
        make_account(store, sealer, ADDR_B)
        adapter_for(evm_network).balances[ADDR_A] = 10**18

        assert run(engine, "fund", ADDR_A, "--network", "1", "--mode", "fixed", "--amount", "0.01") == 0
        assert "1/1 transfers succeeded, 0.01 ETH sent" in capsys.readouterr().out
        assert adapter_for(evm_network).calls_named("transfer") == [("transfer", ADDR_B, 10**16)]

    def test_aggregate_failure(self, engine, store, sealer, capsys):
        make_account(store, sealer, ADDR_A)
        assert run(engine, "fund", ADDR_A, "--network", "1", "--mode", "equal", "--total", "1") == 1
        assert "Cascade funding failed" in capsys.readouterr().out


def test_add_router(engine, capsys):
    assert run(engine, "add-router", "777", TOKEN_X, TOKEN_Y, "--name", "ExampleSwap") == 0
    assert f"Saved ExampleSwap ({Web3.to_checksum_address(TOKEN_X)}) for network 777" in capsys.readouterr().out


class TestExtract:
    def test_extract_and_save(self, engine, tmp_path, capsys):
        engine.extractor.extract_task_list.return_value = TaskListExtraction(
            projectName="Example Quest",
            network=ExtractedNetwork(name="Sepolia", chainId=11155111),
            tasks=["Claim faucet", "Check balance"],
        )
        announcement = tmp_path / "announcement.txt"
        announcement.write_text("Example Quest is live on Sepolia!", encoding="utf-8")

        assert run(engine, "extract", str(announcement), "--save", "Quest", "--repeat", "daily") == 0

        out = capsys.readouterr().out
        assert "Example Quest on Sepolia:" in out
        assert "  2. Check balance" in out
        assert "Saved task set Quest" in out
        engine.extractor.extract_task_list.assert_called_once_with("Example Quest is live on Sepolia!")

    def test_nothing_extracted(self, engine, monkeypatch, capsys):
        engine.extractor.extract_task_list.return_value = None
        monkeypatch.setattr("sys.stdin", io.StringIO("nothing useful"))
        assert run(engine, "extract", "-") == 1
        assert "Could not extract" in capsys.readouterr().out


class TestAsk:
    def test_prints_result(self, engine, store, sealer, capsys):
        make_account(store, sealer, ADDR_A)
        engine.extractor.classify.return_value = "check_balance"

        assert run(engine, "ask", "check", "my", "balance", "--network", "1") == 0

        assert "Balance: 0 ETH" in capsys.readouterr().out
        engine.extractor.classify.assert_called_once_with("check my balance")

    def test_failure_exit_code(self, engine, store, sealer, capsys):
        make_account(store, sealer, ADDR_A)
        engine.extractor.classify.return_value = "swap_tokens"
        engine.extractor.extract_swap_params.return_value = None

        assert run(engine, "ask", "swap stuff", "--network", "1") == 1
        assert "Could not understand the swap" in capsys.readouterr().out
