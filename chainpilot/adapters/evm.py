"""
EVM chain adapter built on web3.py.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import (
    ABIFunctionNotFound,
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    Web3Exception,
    Web3ValidationError,
)

from ..abis import function_abi_from_signature
from ..exceptions import (
    CallRejected, SubmissionFailure, TransientNetworkError, UnsupportedOperation, UserInputError,
)
from ..models import NetworkConfig, NetworkFamily
from .base import ChainAdapter, NewAccount

logger = logging.getLogger(__name__)


def _abi_signature(entry: Dict[str, Any]) -> str:
    types = ",".join(i["type"] for i in entry.get("inputs", []))
    return f"{entry.get('name')}({types})"


@contextmanager
def _rpc_errors(action: str, view: bool = False) -> Iterator[None]:
    """Translate web3 and transport errors for one RPC interaction"""
    try:
        yield
    except (ContractLogicError, BadFunctionCallOutput) as e:
        raise CallRejected(f"{action} reverted: {e}")
    except requests.RequestException as e:
        raise TransientNetworkError(f"{action} failed, RPC unreachable: {e}")
    except (Web3Exception, ValueError) as e:
        # Plain eth_call errors come back as ValueError on older providers
        if view:
            raise CallRejected(f"{action} failed: {e}")
        raise SubmissionFailure(f"{action} failed: {e}")


class EvmAdapter(ChainAdapter):
    """Adapter for Ethereum-compatible networks"""

    family = NetworkFamily.EVM
    settle_delay = 1.5
    fallback_fee = 10**15  # 0.001 native

    TRANSFER_GAS = 21000
    # Transfers a gas-only top-up should cover
    FEE_MULTIPLIER = 3
    DEFAULT_GAS = 300000

    def __init__(
        self,
        network: NetworkConfig,
        confirmation_timeout: float = 120,
        w3: Optional[Web3] = None,
        poll_latency: float = 1.0,
    ):
        """
        Initialize the adapter.

        Args:
            network: Network to talk to
            confirmation_timeout: Seconds to wait for a receipt
            w3: Preconfigured Web3 instance (defaults to an HTTP provider)
            poll_latency: Receipt polling interval in seconds
        """
        super().__init__(network, confirmation_timeout)
        self.w3 = w3 or Web3(Web3.HTTPProvider(network.rpc_endpoint, request_kwargs={"timeout": 30}))
        self.poll_latency = poll_latency

    # Accounts

    def create_account(self) -> NewAccount:
        Account.enable_unaudited_hdwallet_features()
        account, mnemonic = Account.create_with_mnemonic()
        return NewAccount(account.address, Web3.to_hex(account.key), mnemonic)

    def address_from_secret(self, secret: str) -> str:
        try:
            return Account.from_key(secret).address
        except (ValueError, TypeError) as e:
            raise UserInputError(f"Invalid EVM private key: {e}")

    def secret_from_seed_phrase(self, seed_phrase: str) -> str:
        Account.enable_unaudited_hdwallet_features()
        try:
            account = Account.from_mnemonic(" ".join(seed_phrase.split()))
        except (ValueError, TypeError) as e:
            raise UserInputError(f"Invalid seed phrase: {e}")
        return Web3.to_hex(account.key)

    def is_valid_address(self, address: str) -> bool:
        return Web3.is_address(address)

    def normalize_address(self, address: str) -> str:
        if not Web3.is_address(address):
            raise UserInputError(f"Invalid address: {address}")
        return Web3.to_checksum_address(address)

    # Reads

    def read_balance(self, address: str) -> int:
        with _rpc_errors("Balance query", view=True):
            return self.w3.eth.get_balance(self.normalize_address(address))

    def read_fee_rate(self) -> int:
        with _rpc_errors("Gas price query", view=True):
            return self.w3.eth.gas_price

    def live_minimum_fee(self) -> int:
        return self.read_fee_rate() * self.TRANSFER_GAS * self.FEE_MULTIPLIER

    def _contract_function(
        self,
        contract: str,
        method: str,
        args: Sequence[Any],
        abi: Optional[List[Dict[str, Any]]],
    ):
        abi = list(abi or [])
        if "(" in method:
            if not any(
                entry.get("type") == "function" and _abi_signature(entry) == method.replace(" ", "")
                for entry in abi
            ):
                abi.append(function_abi_from_signature(method))
        instance = self.w3.eth.contract(address=self.normalize_address(contract), abi=abi)
        try:
            if "(" in method:
                return instance.get_function_by_signature(method.replace(" ", ""))(*args)
            return getattr(instance.functions, method)(*args)
        except (ABIFunctionNotFound, Web3ValidationError, AttributeError, TypeError, ValueError) as e:
            raise CallRejected(f"Method {method} is not in the contract interface: {e}")

    def call_view(
        self,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        fn = self._contract_function(contract, method, args, abi)
        with _rpc_errors(f"Call to {method}", view=True):
            return fn.call()

    def simulate_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        sender = self.address_from_secret(secret)
        fn = self._contract_function(contract, method, args, abi)
        with _rpc_errors(f"Simulation of {method}", view=True):
            fn.call({"from": sender, "value": value})

    # Submissions

    def _base_params(self, sender: str, value: int) -> Dict[str, Any]:
        with _rpc_errors("Transaction preparation"):
            return {
                "from": sender,
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
                "gasPrice": self.w3.eth.gas_price,
                "value": value,
                "chainId": self.network.chain_id or self.w3.eth.chain_id,
            }

    def submit_transfer(self, secret: str, to: str, amount: int) -> str:
        account = Account.from_key(secret)
        tx = self._base_params(account.address, amount)
        tx.pop("from")
        tx["to"] = self.normalize_address(to)
        tx["gas"] = self.TRANSFER_GAS
        return self._sign_send_wait(account, tx, "Transfer")

    def submit_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        account = Account.from_key(secret)
        fn = self._contract_function(contract, method, args, abi)
        params = self._base_params(account.address, value)

        try:
            gas = fn.estimate_gas({"from": account.address, "value": value})
            # Add 10% buffer to gas estimate
            params["gas"] = int(gas * 1.1)
            logger.debug(f"Estimated gas for {method}: {params['gas']}")
        except ContractLogicError as e:
            raise CallRejected(f"{method} would revert: {e}")
        except (Web3Exception, ValueError, requests.RequestException) as e:
            params["gas"] = self.DEFAULT_GAS
            logger.warning(f"Gas estimation failed, using default: {self.DEFAULT_GAS}. Error: {e}")

        with _rpc_errors(f"Building {method}"):
            tx = fn.build_transaction(params)
        return self._sign_send_wait(account, tx, method)

    def _sign_send_wait(self, account, tx: Dict[str, Any], action: str) -> str:
        signed = account.sign_transaction(tx)
        with _rpc_errors(f"Sending {action}"):
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_id = Web3.to_hex(tx_hash)
        logger.info(f"Transaction sent on {self.network.name}: {tx_id}")

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted:
            raise SubmissionFailure(
                f"{action} not confirmed within {self.confirmation_timeout:g}s", tx_id=tx_id
            )
        except (Web3Exception, ValueError, requests.RequestException) as e:
            raise SubmissionFailure(f"Confirming {action} failed: {e}", tx_id=tx_id)

        if receipt["status"] != 1:
            raise SubmissionFailure(f"{action} reverted on-chain", tx_id=tx_id)
        return tx_id

    def request_faucet(self, address: str) -> Optional[str]:
        raise UnsupportedOperation(
            "EVM faucets require captcha or social verification and are not automatable; "
            "claim test funds manually"
        )
