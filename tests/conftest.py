"""
Pytest fixtures for the chainpilot tests.
"""
import itertools
import re
import time
from datetime import timedelta

import pytest

from chainpilot._rate_limited_log import reset_rate_limits
from chainpilot.adapters import ChainAdapter, NewAccount
from chainpilot.exceptions import CallRejected, UserInputError
from chainpilot.models import Account, NetworkConfig, NetworkFamily, utcnow
from chainpilot.sealing import SecretSealer, generate_master_key
from chainpilot.store import JsonStore

# Constants for testing
OWNER = "4242"
TEST_RPC_URL = "https://rpc.example.com"
ADDR_A = "0x" + "a1" * 20
ADDR_B = "0x" + "b2" * 20
ADDR_C = "0x" + "c3" * 20
ADDR_D = "0x" + "d4" * 20
TOKEN_X = "0x" + "e5" * 20
TOKEN_Y = "0x" + "f6" * 20
CONTRACT = "0x1234567890123456789012345678901234567890"

_created = itertools.count()


# Make time.sleep instantaneous so delays and polling don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _fresh_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


class FakeAdapter(ChainAdapter):
    """
    In-memory adapter that records every call.

    ``views``, ``simulations`` and ``submissions`` map a method (or
    signature) to a return value or an exception to raise.
    """

    settle_delay = 0.5
    fallback_fee = 1000

    def __init__(self, network: NetworkConfig):
        super().__init__(network)
        self.family = network.network_family
        self.balances = {}
        self.default_balance = 0
        self.views = {}
        self.simulations = {}
        self.submissions = {}
        self.transfer_failures = {}
        self.faucet_error = None
        self.fee = 5000
        self.fee_error = None
        self.calls = []
        self._tx_count = 0
        self._account_count = 0

    def _next_tx(self) -> str:
        self._tx_count += 1
        return f"0x{self._tx_count:064x}"

    def calls_named(self, name: str):
        return [c for c in self.calls if c[0] == name]

    def create_account(self) -> NewAccount:
        self._account_count += 1
        address = f"0x{self._account_count:040x}"
        return NewAccount(address, f"secret-{address}", "word " * 11 + "last")

    def address_from_secret(self, secret: str) -> str:
        if not secret.startswith("secret-"):
            raise UserInputError("Invalid private key")
        return secret[len("secret-"):]

    def secret_from_seed_phrase(self, seed_phrase: str) -> str:
        return f"secret-0x{'5e' * 20}"

    def is_valid_address(self, address: str) -> bool:
        if self.family == NetworkFamily.EVM:
            return bool(re.fullmatch(r"0x[0-9a-fA-F]{40}", address))
        return len(address) >= 32

    def normalize_address(self, address: str) -> str:
        if not self.is_valid_address(address):
            raise UserInputError(f"Invalid address: {address}")
        return address

    def read_balance(self, address: str) -> int:
        self.calls.append(("read_balance", address))
        return self.balances.get(address, self.default_balance)

    def submit_transfer(self, secret: str, to: str, amount: int) -> str:
        self.calls.append(("transfer", to, amount))
        error = self.transfer_failures.get(to)
        if error is not None:
            raise error
        return self._next_tx()

    def submit_contract_call(self, secret, contract, method, args=(), value=0, abi=None) -> str:
        self.calls.append(("submit", method, tuple(args), value))
        result = self.submissions.get(method)
        if isinstance(result, Exception):
            raise result
        return result or self._next_tx()

    def simulate_contract_call(self, secret, contract, method, args=(), value=0, abi=None) -> None:
        self.calls.append(("simulate", method, tuple(args), value))
        error = self.simulations.get(method)
        if error is not None:
            raise error

    def call_view(self, contract, method, args=(), abi=None):
        self.calls.append(("view", method, tuple(args)))
        if method not in self.views:
            raise CallRejected(f"{method} reverted")
        value = self.views[method]
        if isinstance(value, Exception):
            raise value
        return value

    def read_fee_rate(self) -> int:
        return self.fee

    def live_minimum_fee(self) -> int:
        if self.fee_error is not None:
            raise self.fee_error
        return self.fee * 3

    def request_faucet(self, address: str):
        self.calls.append(("faucet", address))
        if self.faucet_error is not None:
            raise self.faucet_error
        return self._next_tx()

    def sign_and_submit(self, secret: str, serialized_tx: str) -> str:
        self.calls.append(("sign_and_submit", serialized_tx))
        return "5igSolanaSignature"

    def token_decimals(self, mint: str) -> int:
        return 6


class FakeAdapterFactory:
    """Stands in for AdapterFactory; one FakeAdapter per network id"""

    def __init__(self):
        self.adapters = {}

    def __call__(self, network: NetworkConfig) -> FakeAdapter:
        if network.network_id not in self.adapters:
            self.adapters[network.network_id] = FakeAdapter(network)
        return self.adapters[network.network_id]


def make_account(store, sealer, address, owner=OWNER, family=NetworkFamily.EVM, label=""):
    """Store an account whose secret unseals to ``secret-<address>``"""
    account = Account(
        owner=owner,
        network_family=family,
        address=address,
        sealed_secret=sealer.seal(f"secret-{address}"),
        label=label,
        created_at=utcnow() + timedelta(seconds=next(_created)),
    )
    store.add_account(account)
    return account


@pytest.fixture
def store(tmp_path):
    return JsonStore(str(tmp_path / "store.json"))


@pytest.fixture
def master_key():
    return generate_master_key()


@pytest.fixture
def sealer(master_key):
    return SecretSealer(master_key)


@pytest.fixture
def adapter_for():
    return FakeAdapterFactory()


@pytest.fixture
def evm_network():
    return NetworkConfig(
        network_id="1",
        chain_id=1,
        name="Ethereum Mainnet",
        rpc_endpoint=TEST_RPC_URL,
        native_symbol="ETH",
        explorer_url="https://etherscan.io",
    )


@pytest.fixture
def custom_network():
    return NetworkConfig(
        network_id="777",
        chain_id=777,
        name="Example Testnet",
        rpc_endpoint=TEST_RPC_URL,
        native_symbol="EXT",
        is_testnet=True,
        owner=OWNER,
    )


@pytest.fixture
def solana_network():
    return NetworkConfig(
        network_id="solana-devnet",
        name="Solana Devnet",
        rpc_endpoint="https://solana.example.com",
        native_symbol="SOL",
        decimals=9,
        explorer_url="https://solscan.io?cluster=devnet",
        is_testnet=True,
        network_family=NetworkFamily.SOLANA,
    )


@pytest.fixture
def aptos_network():
    return NetworkConfig(
        network_id="aptos-testnet",
        name="Aptos Testnet",
        rpc_endpoint="https://aptos.example.com/v1",
        native_symbol="APT",
        decimals=8,
        is_testnet=True,
        network_family=NetworkFamily.APTOS,
    )
