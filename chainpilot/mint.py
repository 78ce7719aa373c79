"""
NFT minting and name registration.

Contracts rarely agree on a mint entry point, so collectibles without a
saved entry point are probed against a fixed list of common signatures.
Each candidate is simulated before it is submitted; probing only moves on
when a candidate is clearly not applicable, never after a broadcast whose
outcome is unknown.
"""
import logging
import secrets
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, Field

from ._http import build_session
from .abis import (
    COLLECTIBLE_MINT_CANDIDATES, ERC1155_MINT_ABI, ERC721_MINT_ABI, MULTI_TOKEN_MINT_CANDIDATES,
    NAME_REGISTRAR_ABI, PRICE_ACCESSORS, signature_types,
)
from .adapters import ChainAdapter
from .exceptions import CallRejected, ChainPilotError, UserInputError
from .models import Account, ActionResult, MintKind, NetworkConfig, NetworkFamily
from .sealing import SecretSealer
from .store import Store
from .units import format_units, to_smallest_unit

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365 * 24 * 3600
# Rent price used when the registrar's price query fails
FALLBACK_RENT_PRICE = "0.01"
NATIVE_NFT_UNSUPPORTED = (
    "Native NFT minting is not yet supported for this collection: "
    "the mint service is unavailable or rejected the request"
)


class MintOptions(BaseModel):
    quantity: int = Field(default=1, ge=1)
    token_id: int = Field(default=0, ge=0)
    name: Optional[str] = None
    duration_years: int = Field(default=1, ge=1)
    entry_point: Optional[str] = None


class AttemptOutcome(str, Enum):
    """Classification of one mint entry-point attempt"""
    SUCCESS = "success"
    # Missing from the interface or rejected before anything was broadcast
    NOT_APPLICABLE = "not_applicable"
    # Broadcast (or RPC) failed after simulation passed; state unknown
    AMBIGUOUS = "ambiguous"


class MintAttempt(BaseModel):
    signature: str
    outcome: AttemptOutcome
    tx_id: Optional[str] = None
    message: str = ""


def _abi_signatures(abi: List[Dict[str, Any]]) -> List[str]:
    return [
        f"{e['name']}({','.join(i['type'] for i in e.get('inputs', []))})"
        for e in abi
        if e.get("type") == "function"
    ]


def derive_args(signature: str, kind: MintKind, minter: str, options: MintOptions) -> List[Any]:
    """
    Derive call arguments from an entry-point signature.

    ``uint256`` parameters take the quantity (multi-token mints take the
    token id first, then the amount), ``address`` takes the minter,
    ``bytes`` is empty and ``string`` takes the option name.

    Raises:
        UserInputError: If the signature has a parameter type we cannot fill
    """
    uints = [options.token_id, options.quantity] if kind == MintKind.MULTI_TOKEN else [options.quantity]
    args: List[Any] = []
    uint_index = 0
    for arg_type in signature_types(signature):
        if arg_type.startswith("uint"):
            args.append(uints[min(uint_index, len(uints) - 1)])
            uint_index += 1
        elif arg_type == "address":
            args.append(minter)
        elif arg_type == "bytes":
            args.append(b"")
        elif arg_type == "string":
            args.append(options.name or "")
        else:
            raise UserInputError(f"Cannot derive a value for {arg_type} in {signature}")
    return args


class MintExecutor:
    """Mints NFTs and registers names for one account"""

    def __init__(
        self,
        store: Store,
        adapter_for: Callable[[NetworkConfig], ChainAdapter],
        sealer: SecretSealer,
        mint_api_url: str = "https://api.metaplex.com/v1",
        name_commit_delay: float = 65,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.store = store
        self.adapter_for = adapter_for
        self.sealer = sealer
        self.mint_api_url = mint_api_url.rstrip("/")
        self.name_commit_delay = name_commit_delay
        self.session = session or build_session()
        self.timeout = timeout

    def mint(
        self,
        kind: MintKind,
        account: Account,
        contract_address: Optional[str],
        network: NetworkConfig,
        options: Optional[MintOptions] = None,
    ) -> ActionResult:
        """
        Mint from a contract (or register a name) with one account.

        Args:
            kind: Kind of mint
            account: Minting account
            contract_address: NFT contract, registrar or candy machine
            network: Network to mint on
            options: Quantity, token id, name and explicit entry point

        Returns:
            ActionResult; ``needs_contract`` is set when no contract was given
        """
        kind = MintKind(kind)
        options = options or MintOptions()
        if not contract_address:
            return ActionResult.failed(
                "Which contract should be minted from? Provide the contract address.",
                needs_contract=True,
            )
        try:
            if kind == MintKind.NATIVE_NFT:
                return self._mint_native(account, contract_address, network, options)
            if network.network_family != NetworkFamily.EVM:
                return ActionResult.failed(f"Contract mints are not supported on {network.name}")
            if kind == MintKind.NAME_REGISTRATION:
                return self._register_name(account, contract_address, network, options)
            return self._mint_contract(kind, account, contract_address, network, options)
        except ChainPilotError as e:
            logger.warning(f"Mint on {network.name} failed for {account.address}: {e}")
            return ActionResult.failed(f"Mint failed: {e}", tx_id=getattr(e, "tx_id", None))

    def detect_price(self, adapter: ChainAdapter, contract: str, abi: List[Dict[str, Any]]) -> int:
        """First price accessor that answers wins; free mint otherwise"""
        for accessor in PRICE_ACCESSORS:
            try:
                price = int(adapter.call_view(contract, accessor, [], abi))
                logger.debug(f"Mint price of {contract} from {accessor}(): {price}")
                return price
            except ChainPilotError:
                continue
        return 0

    def _mint_contract(
        self,
        kind: MintKind,
        account: Account,
        contract: str,
        network: NetworkConfig,
        options: MintOptions,
    ) -> ActionResult:
        adapter = self.adapter_for(network)
        contract = adapter.normalize_address(contract)
        saved = self.store.get_nft_contract(account.owner, network.network_id, contract)
        default_abi = ERC1155_MINT_ABI if kind == MintKind.MULTI_TOKEN else ERC721_MINT_ABI
        custom_abi = saved.interface_descriptor if saved else None
        abi = custom_abi or default_abi

        if saved is not None and saved.mint_price is not None:
            price = saved.mint_price
        else:
            price = self.detect_price(adapter, contract, abi)
        value = price * options.quantity

        entry_point = options.entry_point or (saved.entry_point if saved else None)
        if entry_point:
            candidates = [self._resolve_entry_point(entry_point, abi)]
        elif kind == MintKind.MULTI_TOKEN:
            candidates = list(MULTI_TOKEN_MINT_CANDIDATES)
        else:
            candidates = list(COLLECTIBLE_MINT_CANDIDATES)

        secret = self.sealer.unseal(account.sealed_secret)
        attempts = self.probe(
            adapter, secret, account, contract, candidates, kind, options, value, abi, custom_abi is not None
        )
        last = attempts[-1]
        if last.outcome == AttemptOutcome.SUCCESS:
            paid = f" for {format_units(value, network.decimals)} {network.native_symbol}" if value else ""
            return ActionResult(
                success=True,
                tx_id=last.tx_id,
                message=f"Minted {options.quantity} from {contract} via {last.signature}{paid}",
            )
        if last.outcome == AttemptOutcome.AMBIGUOUS:
            return ActionResult.failed(
                f"Mint via {last.signature} did not complete ({last.message}); "
                "not trying other entry points in case it went through",
                tx_id=last.tx_id,
            )
        return ActionResult.failed(
            f"No known mint function worked on {contract} (tried {', '.join(candidates)}). "
            "Save the contract's mint function or ABI and try again."
        )

    @staticmethod
    def _resolve_entry_point(entry_point: str, abi: List[Dict[str, Any]]) -> str:
        entry_point = entry_point.replace(" ", "")
        if "(" in entry_point:
            return entry_point
        for signature in _abi_signatures(abi):
            if signature.split("(")[0] == entry_point:
                return signature
        return f"{entry_point}()"

    def probe(
        self,
        adapter: ChainAdapter,
        secret: str,
        account: Account,
        contract: str,
        candidates: Sequence[str],
        kind: MintKind,
        options: MintOptions,
        value: int,
        abi: List[Dict[str, Any]],
        strict_abi: bool = False,
    ) -> List[MintAttempt]:
        """
        Try candidate entry points in order.

        Stops at the first SUCCESS or AMBIGUOUS attempt.

        Returns:
            Every attempt made, in order
        """
        known = set(_abi_signatures(abi)) if strict_abi else None
        attempts: List[MintAttempt] = []
        for signature in candidates:
            if known is not None and signature not in known:
                attempts.append(MintAttempt(
                    signature=signature,
                    outcome=AttemptOutcome.NOT_APPLICABLE,
                    message="not in contract interface",
                ))
                continue
            attempt = self._attempt(adapter, secret, account, contract, signature, kind, options, value, abi)
            attempts.append(attempt)
            logger.debug(f"Mint attempt {signature} on {contract}: {attempt.outcome.value}")
            if attempt.outcome != AttemptOutcome.NOT_APPLICABLE:
                break
        return attempts

    def _attempt(
        self,
        adapter: ChainAdapter,
        secret: str,
        account: Account,
        contract: str,
        signature: str,
        kind: MintKind,
        options: MintOptions,
        value: int,
        abi: List[Dict[str, Any]],
    ) -> MintAttempt:
        try:
            args = derive_args(signature, kind, account.address, options)
        except UserInputError as e:
            return MintAttempt(signature=signature, outcome=AttemptOutcome.NOT_APPLICABLE, message=str(e))

        try:
            adapter.simulate_contract_call(secret, contract, signature, args, value=value, abi=abi)
        except CallRejected as e:
            return MintAttempt(signature=signature, outcome=AttemptOutcome.NOT_APPLICABLE, message=str(e))
        except ChainPilotError as e:
            return MintAttempt(signature=signature, outcome=AttemptOutcome.AMBIGUOUS, message=str(e))

        try:
            tx_id = adapter.submit_contract_call(secret, contract, signature, args, value=value, abi=abi)
        except CallRejected as e:
            # Rejected during gas estimation; nothing was broadcast
            return MintAttempt(signature=signature, outcome=AttemptOutcome.NOT_APPLICABLE, message=str(e))
        except ChainPilotError as e:
            return MintAttempt(
                signature=signature,
                outcome=AttemptOutcome.AMBIGUOUS,
                tx_id=getattr(e, "tx_id", None),
                message=str(e),
            )
        return MintAttempt(signature=signature, outcome=AttemptOutcome.SUCCESS, tx_id=tx_id)

    def _register_name(
        self,
        account: Account,
        registrar: str,
        network: NetworkConfig,
        options: MintOptions,
    ) -> ActionResult:
        if not options.name:
            raise UserInputError("Which name should be registered?")
        name = options.name.strip().lower()
        if name.endswith(".eth"):
            name = name[:-4]
        adapter = self.adapter_for(network)
        registrar = adapter.normalize_address(registrar)
        duration = options.duration_years * SECONDS_PER_YEAR

        try:
            available = bool(adapter.call_view(registrar, "available", [name], NAME_REGISTRAR_ABI))
        except ChainPilotError as e:
            logger.warning(f"Availability check for {name} failed, assuming available: {e}")
            available = True
        if not available:
            return ActionResult.failed(f"The name {name} is not available")

        try:
            price = int(adapter.call_view(registrar, "rentPrice", [name, duration], NAME_REGISTRAR_ABI))
        except ChainPilotError as e:
            price = to_smallest_unit(FALLBACK_RENT_PRICE, network.decimals)
            logger.warning(f"Rent price query for {name} failed, using {FALLBACK_RENT_PRICE}: {e}")

        secret = self.sealer.unseal(account.sealed_secret)
        salt = secrets.token_bytes(32)
        commitment = adapter.call_view(
            registrar, "makeCommitment", [name, account.address, salt], NAME_REGISTRAR_ABI
        )
        adapter.submit_contract_call(secret, registrar, "commit", [commitment], abi=NAME_REGISTRAR_ABI)

        logger.info(f"Committed to {name}; waiting {self.name_commit_delay:g}s before registering")
        time.sleep(self.name_commit_delay)

        tx_id = adapter.submit_contract_call(
            secret,
            registrar,
            "register",
            [name, account.address, duration, salt],
            value=price,
            abi=NAME_REGISTRAR_ABI,
        )
        return ActionResult(
            success=True,
            tx_id=tx_id,
            message=(
                f"Registered {name} for {options.duration_years} year(s) "
                f"for {format_units(price, network.decimals)} {network.native_symbol}"
            ),
        )

    def _mint_native(
        self,
        account: Account,
        candy_machine: str,
        network: NetworkConfig,
        options: MintOptions,
    ) -> ActionResult:
        if network.network_family != NetworkFamily.SOLANA:
            return ActionResult.failed("Native NFT minting is only available on Solana networks")

        payload = {
            "candyMachineId": candy_machine,
            "wallet": account.address,
            "network": network.network_id,
            "quantity": options.quantity,
        }
        try:
            response = self.session.post(
                f"{self.mint_api_url}/candy-machine/mint", json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.info(f"Mint service unreachable: {e}")
            return ActionResult.failed(NATIVE_NFT_UNSUPPORTED)
        if not response.ok:
            return ActionResult.failed(NATIVE_NFT_UNSUPPORTED)
        try:
            data = response.json()
        except ValueError:
            return ActionResult.failed(NATIVE_NFT_UNSUPPORTED)

        if data.get("transaction"):
            adapter = self.adapter_for(network)
            secret = self.sealer.unseal(account.sealed_secret)
            tx_id = adapter.sign_and_submit(secret, data["transaction"])
        elif data.get("signature"):
            tx_id = data["signature"]
        else:
            return ActionResult.failed(NATIVE_NFT_UNSUPPORTED)
        return ActionResult(success=True, tx_id=tx_id, message=f"Minted from candy machine {candy_machine}")
