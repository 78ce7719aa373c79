"""
Solana chain adapter speaking JSON-RPC over requests.

Keys, instructions and transactions come from ``solders``. Only the
system-program transfer is built here; anything richer (aggregator swaps,
candy-machine mints) arrives as a serialized transaction from an external
API and is signed with ``sign_and_submit``.
"""
import base64
import binascii
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import base58
import requests
from solders.errors import BincodeError
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction

from .._http import build_session
from ..exceptions import (
    SubmissionFailure, TransientNetworkError, UnsupportedOperation, UserInputError,
)
from ..models import NetworkConfig, NetworkFamily
from .base import ChainAdapter, NewAccount

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 10**9
# Base fee charged per signature
DEFAULT_SIGNATURE_FEE = 5000


def load_keypair(secret: str) -> Keypair:
    """
    Load a base58 secret (64-byte seed+public key, or bare 32-byte seed).

    Raises:
        UserInputError: If the secret is not a Solana key
    """
    try:
        raw = base58.b58decode(secret.strip())
    except ValueError as e:
        raise UserInputError(f"Invalid Solana secret key: {e}")
    if len(raw) == 32:
        return Keypair.from_seed(raw)
    if len(raw) != 64:
        raise UserInputError(f"Solana secret key must be 32 or 64 bytes, got {len(raw)}")
    try:
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise UserInputError(f"Invalid Solana secret key: {e}")


def transfer_message(sender: Pubkey, recipient: Pubkey, lamports: int, blockhash: Hash) -> Message:
    """Legacy message holding a single system-program transfer"""
    instruction = transfer(TransferParams(from_pubkey=sender, to_pubkey=recipient, lamports=lamports))
    return Message.new_with_blockhash([instruction], sender, blockhash)


class SolanaAdapter(ChainAdapter):
    """Adapter for Solana clusters"""

    family = NetworkFamily.SOLANA
    settle_delay = 1.0
    fallback_fee = 5_000_000  # 0.005 SOL
    AIRDROP_LAMPORTS = LAMPORTS_PER_SOL
    # Transactions a gas-only top-up should cover
    FEE_MULTIPLIER = 3

    def __init__(
        self,
        network: NetworkConfig,
        confirmation_timeout: float = 120,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        poll_interval: float = 1.0,
    ):
        super().__init__(network, confirmation_timeout)
        self.session = session or build_session()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._request_id = 0

    def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params or []}
        try:
            response = self.session.post(self.network.rpc_endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise TransientNetworkError(f"Solana RPC {method} failed: {e}")
        except ValueError as e:
            raise TransientNetworkError(f"Solana RPC {method} returned invalid JSON: {e}")

        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise SubmissionFailure(f"Solana RPC {method} failed: {message}")
        return data.get("result")

    # Accounts

    def create_account(self) -> NewAccount:
        keypair = Keypair()
        return NewAccount(
            address=str(keypair.pubkey()),
            secret=base58.b58encode(bytes(keypair)).decode("ascii"),
        )

    def address_from_secret(self, secret: str) -> str:
        return str(load_keypair(secret).pubkey())

    def is_valid_address(self, address: str) -> bool:
        try:
            return len(base58.b58decode(address)) == 32
        except ValueError:
            return False

    def _pubkey(self, address: str, label: str = "address") -> Pubkey:
        if not self.is_valid_address(address):
            raise UserInputError(f"Invalid Solana {label}: {address}")
        return Pubkey.from_string(address)

    # Reads

    def read_balance(self, address: str) -> int:
        self._pubkey(address)
        result = self._rpc("getBalance", [address, {"commitment": "confirmed"}])
        return int(result["value"])

    def token_decimals(self, mint: str) -> int:
        """Decimals of an SPL token mint"""
        self._pubkey(mint, "token mint")
        result = self._rpc("getTokenSupply", [mint])
        return int(result["value"]["decimals"])

    def _latest_blockhash(self) -> Hash:
        result = self._rpc("getLatestBlockhash", [{"commitment": "finalized"}])
        return Hash.from_string(result["value"]["blockhash"])

    def read_fee_rate(self) -> int:
        """Fee for a single-signature transfer message, in lamports"""
        message = transfer_message(Pubkey.new_unique(), Pubkey.new_unique(), 0, self._latest_blockhash())
        result = self._rpc(
            "getFeeForMessage",
            [base64.b64encode(bytes(message)).decode("ascii"), {"commitment": "confirmed"}],
        )
        fee = result.get("value") if result else None
        return int(fee) if fee is not None else DEFAULT_SIGNATURE_FEE

    def live_minimum_fee(self) -> int:
        rent_exempt = int(self._rpc("getMinimumBalanceForRentExemption", [0]))
        return rent_exempt + self.FEE_MULTIPLIER * self.read_fee_rate()

    # Submissions

    def submit_transfer(self, secret: str, to: str, amount: int) -> str:
        keypair = load_keypair(secret)
        recipient = self._pubkey(to)
        if recipient == keypair.pubkey():
            raise UserInputError("Cannot transfer to the sending account")

        blockhash = self._latest_blockhash()
        message = transfer_message(keypair.pubkey(), recipient, amount, blockhash)
        tx = Transaction([keypair], message, blockhash)
        return self._send_and_confirm(bytes(tx), "Transfer")

    def sign_and_submit(self, secret: str, serialized_tx: str) -> str:
        """
        Sign a base64 transaction prepared by an external API and submit it.

        The account fills its own signer slot; signatures the API already
        added for other signers are kept.
        """
        keypair = load_keypair(secret)
        try:
            prepared = VersionedTransaction.from_bytes(base64.b64decode(serialized_tx))
        except (binascii.Error, BincodeError, ValueError) as e:
            raise SubmissionFailure(f"Malformed transaction from API: {e}")

        message = prepared.message
        signers = list(message.account_keys[: message.header.num_required_signatures])
        if keypair.pubkey() not in signers:
            raise SubmissionFailure(f"{keypair.pubkey()} is not a signer of the transaction from the API")
        signatures = list(prepared.signatures)
        signatures[signers.index(keypair.pubkey())] = keypair.sign_message(to_bytes_versioned(message))
        signed = VersionedTransaction.populate(message, signatures)
        return self._send_and_confirm(bytes(signed), "Transaction")

    def _send_and_confirm(self, wire: bytes, action: str) -> str:
        signature = self._rpc(
            "sendTransaction",
            [
                base64.b64encode(wire).decode("ascii"),
                {"encoding": "base64", "preflightCommitment": "confirmed"},
            ],
        )
        logger.info(f"Transaction sent on {self.network.name}: {signature}")
        self._confirm(signature, action)
        return signature

    def _confirm(self, signature: str, action: str) -> None:
        attempts = max(1, int(self.confirmation_timeout / self.poll_interval))
        for _ in range(attempts):
            result = self._rpc(
                "getSignatureStatuses", [[signature], {"searchTransactionHistory": True}]
            )
            status = (result or {}).get("value", [None])[0]
            if status:
                if status.get("err"):
                    raise SubmissionFailure(f"{action} failed: {status['err']}", tx_id=signature)
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            time.sleep(self.poll_interval)
        raise SubmissionFailure(
            f"{action} not confirmed within {self.confirmation_timeout:g}s", tx_id=signature
        )

    def request_faucet(self, address: str) -> Optional[str]:
        if not self.network.is_testnet:
            raise UnsupportedOperation(f"{self.network.name} has no faucet")
        if not self.is_valid_address(address):
            raise UserInputError(f"Invalid Solana address: {address}")
        signature = self._rpc("requestAirdrop", [address, self.AIRDROP_LAMPORTS])
        self._confirm(signature, "Airdrop")
        return signature

    # Program calls by method name have no generic encoding on Solana

    def _no_contract_calls(self) -> UnsupportedOperation:
        return UnsupportedOperation(
            "Calling programs by method name is not supported on Solana"
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
        raise self._no_contract_calls()

    def simulate_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        raise self._no_contract_calls()

    def call_view(
        self,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        raise self._no_contract_calls()
