"""
Aptos chain adapter.

Keys, addresses and BCS transactions come from ``aptos_sdk``; the signed
bytes are sent to the fullnode REST API over the shared requests session.
"""
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import requests
from aptos_sdk import ed25519
from aptos_sdk.account import Account as AptosAccount
from aptos_sdk.account_address import AccountAddress
from aptos_sdk.authenticator import Authenticator, Ed25519Authenticator
from aptos_sdk.bcs import Serializer
from aptos_sdk.transactions import (
    EntryFunction, RawTransaction, SignedTransaction, TransactionArgument, TransactionPayload,
)

from .._http import build_session
from ..exceptions import (
    CallRejected, ResourceNotFoundError, SubmissionFailure, TransientNetworkError,
    UnsupportedOperation, UserInputError,
)
from ..models import NetworkConfig, NetworkFamily
from .base import ChainAdapter, NewAccount

logger = logging.getLogger(__name__)

OCTAS_PER_APT = 10**8
APTOS_COIN = "0x1::aptos_coin::AptosCoin"
BCS_SIGNED_TRANSACTION = "application/x.aptos.signed_transaction+bcs"
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def load_account(secret: str) -> AptosAccount:
    """
    Load an account from a hex-encoded 32-byte Ed25519 private key.

    Raises:
        UserInputError: If the secret is not a valid key
    """
    secret = secret.strip()
    if not _KEY_RE.match(secret):
        raise UserInputError("Aptos private key must be 32 bytes of hex")
    return AptosAccount.load_key(secret if secret.startswith("0x") else "0x" + secret)


def _argument(value: Any) -> TransactionArgument:
    """BCS-encode a Python value as an entry function argument"""
    if isinstance(value, AccountAddress):
        return TransactionArgument(value, Serializer.struct)
    if isinstance(value, bool):
        return TransactionArgument(value, Serializer.bool)
    if isinstance(value, int):
        return TransactionArgument(value, Serializer.u64)
    if isinstance(value, (bytes, bytearray)):
        return TransactionArgument(bytes(value), Serializer.to_bytes)
    if isinstance(value, str) and _ADDRESS_RE.match(value):
        return TransactionArgument(AccountAddress.from_str_relaxed(value), Serializer.struct)
    if isinstance(value, str):
        return TransactionArgument(value, Serializer.str)
    raise UserInputError(f"Cannot encode {type(value).__name__} as an Aptos argument")


class AptosAdapter(ChainAdapter):
    """Adapter for Aptos networks"""

    family = NetworkFamily.APTOS
    settle_delay = 1.0
    fallback_fee = 1000  # octas
    MAX_GAS_AMOUNT = 2000
    FAUCET_AMOUNT = 100_000_000  # 1 APT
    EXPIRATION_SECS = 600

    def __init__(
        self,
        network: NetworkConfig,
        confirmation_timeout: float = 120,
        session: Optional[requests.Session] = None,
        faucet_url: Optional[str] = None,
        timeout: float = 30,
        poll_interval: float = 1.0,
    ):
        super().__init__(network, confirmation_timeout)
        self.base_url = network.rpc_endpoint.rstrip("/")
        self.session = session or build_session()
        self.faucet_url = faucet_url.rstrip("/") if faucet_url else None
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._chain_id: Optional[int] = network.chain_id

    def _request(
        self,
        method: str,
        url: str,
        error_cls=SubmissionFailure,
        allow_missing: bool = False,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransientNetworkError(f"Aptos API request to {url} failed: {e}")

        if response.status_code == 404 and allow_missing:
            return None
        if response.status_code >= 500:
            raise TransientNetworkError(f"Aptos API error {response.status_code}: {response.text[:200]}")
        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise error_cls(f"Aptos API rejected request ({response.status_code}): {detail}")
        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError(f"Aptos API returned invalid JSON: {e}")

    # Accounts

    def create_account(self) -> NewAccount:
        account = AptosAccount.generate()
        return NewAccount(address=str(account.address()), secret=account.private_key.hex())

    def address_from_secret(self, secret: str) -> str:
        return str(load_account(secret).address())

    def is_valid_address(self, address: str) -> bool:
        return bool(_ADDRESS_RE.match(address))

    def normalize_address(self, address: str) -> str:
        if not self.is_valid_address(address):
            raise UserInputError(f"Invalid Aptos address: {address}")
        return str(AccountAddress.from_str_relaxed(address))

    def _module_id(self, contract: str) -> str:
        # "<address>::<module>", with the address in the long form the SDK parses
        address, sep, module = contract.partition("::")
        if not sep or not module:
            raise UserInputError(f"Aptos contracts are addressed as <address>::<module>, got {contract!r}")
        return f"{self.normalize_address(address)}::{module}"

    # Reads

    def read_balance(self, address: str) -> int:
        result = self._request(
            "POST",
            f"{self.base_url}/view",
            json={
                "function": "0x1::coin::balance",
                "type_arguments": [APTOS_COIN],
                "arguments": [self.normalize_address(address)],
            },
        )
        return int(result[0])

    def read_fee_rate(self) -> int:
        result = self._request("GET", f"{self.base_url}/estimate_gas_price")
        return int(result["gas_estimate"])

    def live_minimum_fee(self) -> int:
        return self.read_fee_rate() * self.MAX_GAS_AMOUNT

    def chain_id(self) -> int:
        """Chain id from the node's ledger info, cached after the first read"""
        if self._chain_id is None:
            self._chain_id = int(self._request("GET", self.base_url)["chain_id"])
        return self._chain_id

    def call_view(
        self,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        result = self._request(
            "POST",
            f"{self.base_url}/view",
            error_cls=CallRejected,
            json={
                "function": f"{contract}::{method}",
                "type_arguments": [],
                "arguments": [str(a) for a in args],
            },
        )
        return result[0] if isinstance(result, list) and len(result) == 1 else result

    # Submissions

    def _raw_transaction(
        self, sender: AccountAddress, module: str, function: str, args: Sequence[Any]
    ) -> RawTransaction:
        account = self._request(
            "GET", f"{self.base_url}/accounts/{sender}", error_cls=ResourceNotFoundError
        )
        payload = EntryFunction.natural(module, function, [], [_argument(a) for a in args])
        return RawTransaction(
            sender,
            int(account["sequence_number"]),
            TransactionPayload(payload),
            self.MAX_GAS_AMOUNT,
            self.read_fee_rate(),
            int(time.time()) + self.EXPIRATION_SECS,
            self.chain_id(),
        )

    def _post_signed(self, path: str, signed: SignedTransaction, error_cls=SubmissionFailure) -> Any:
        return self._request(
            "POST",
            f"{self.base_url}{path}",
            error_cls=error_cls,
            data=signed.bytes(),
            headers={"Content-Type": BCS_SIGNED_TRANSACTION},
        )

    def _submit_entry_function(
        self, secret: str, module: str, function: str, args: Sequence[Any], action: str
    ) -> str:
        account = load_account(secret)
        raw = self._raw_transaction(account.address(), module, function, args)
        authenticator = Authenticator(
            Ed25519Authenticator(account.public_key(), raw.sign(account.private_key))
        )
        pending = self._post_signed("/transactions", SignedTransaction(raw, authenticator))
        tx_hash = pending["hash"]
        logger.info(f"Transaction sent on {self.network.name}: {tx_hash}")
        self._wait_for_transaction(tx_hash, action)
        return tx_hash

    def _wait_for_transaction(self, tx_hash: str, action: str) -> None:
        attempts = max(1, int(self.confirmation_timeout / self.poll_interval))
        for _ in range(attempts):
            result = self._request(
                "GET", f"{self.base_url}/transactions/by_hash/{tx_hash}", allow_missing=True
            )
            if result and result.get("type") != "pending_transaction":
                if result.get("success"):
                    return
                raise SubmissionFailure(
                    f"{action} failed: {result.get('vm_status', 'unknown status')}", tx_id=tx_hash
                )
            time.sleep(self.poll_interval)
        raise SubmissionFailure(
            f"{action} not confirmed within {self.confirmation_timeout:g}s", tx_id=tx_hash
        )

    def submit_transfer(self, secret: str, to: str, amount: int) -> str:
        return self._submit_entry_function(
            secret, "0x1::aptos_account", "transfer",
            [AccountAddress.from_str_relaxed(self.normalize_address(to)), amount], "Transfer",
        )

    def submit_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        if value:
            raise UnsupportedOperation("Aptos entry functions cannot carry a native value")
        return self._submit_entry_function(secret, self._module_id(contract), method, args, method)

    def simulate_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        account = load_account(secret)
        raw = self._raw_transaction(account.address(), self._module_id(contract), method, args)
        # The node refuses to simulate a validly signed transaction
        authenticator = Authenticator(
            Ed25519Authenticator(account.public_key(), ed25519.Signature(b"\x00" * 64))
        )
        result = self._post_signed(
            "/transactions/simulate", SignedTransaction(raw, authenticator), error_cls=CallRejected
        )
        outcome = result[0] if isinstance(result, list) and result else {}
        if not outcome.get("success"):
            raise CallRejected(f"{method} would fail: {outcome.get('vm_status', 'unknown status')}")

    def request_faucet(self, address: str) -> Optional[str]:
        if not self.network.is_testnet or not self.faucet_url:
            raise UnsupportedOperation(f"{self.network.name} has no faucet")
        hashes = self._request(
            "POST",
            f"{self.faucet_url}/mint",
            params={"amount": self.FAUCET_AMOUNT, "address": self.normalize_address(address)},
        )
        tx_hash = hashes[0] if isinstance(hashes, list) and hashes else None
        if tx_hash:
            self._wait_for_transaction(tx_hash, "Faucet claim")
        return tx_hash
