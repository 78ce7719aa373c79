"""
Free-text task execution.

A task such as "swap 0.01 eth for 0x..." is matched against an ordered
rule table (first match wins), its parameters are pulled out of the text
and the matching executor is invoked. Missing parameters fail closed with
a message saying what to add; nothing raised by a handler escapes
``TaskExecutor.execute``.
"""
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence

from .adapters import ChainAdapter
from .exceptions import ChainPilotError, UserInputError
from .mint import MintExecutor, MintOptions
from .models import (
    Account, ActionResult, MintKind, NetworkConfig, NetworkFamily, TaskResult,
)
from .sealing import SecretSealer
from .swap import SwapExecutor, is_native
from .units import format_units, to_smallest_unit

logger = logging.getLogger(__name__)

_NUMBER = r"(?<![\w.])(\d+(?:\.\d+)?|\.\d+)(?![\w.%])"
_NUMBER_RE = re.compile(_NUMBER)
_ADDRESS_PATTERNS = {
    NetworkFamily.EVM: r"0x[0-9a-fA-F]{40}",
    NetworkFamily.APTOS: r"0x[0-9a-fA-F]{64}",
    NetworkFamily.SOLANA: r"[1-9A-HJ-NP-Za-km-z]{32,44}",
}
_SLIPPAGE_RES = [
    re.compile(r"(\d+(?:\.\d+)?)\s*%\s*slippage", re.IGNORECASE),
    re.compile(r"slippage\s*(?:of\s*)?(\d+(?:\.\d+)?)\s*%", re.IGNORECASE),
]
_QUANTITY_RE = re.compile(r"\bmint\s+(\d{1,3})\b", re.IGNORECASE)
_NAME_RE = re.compile(r"\b(?:domain|name)\s+([a-z0-9-]+(?:\.[a-z]+)?)", re.IGNORECASE)


def _address_re(family: NetworkFamily) -> str:
    return _ADDRESS_PATTERNS[NetworkFamily(family)]


def parse_amount(text: str) -> Optional[str]:
    """First standalone numeric literal (percentages excluded)"""
    match = _NUMBER_RE.search(text)
    return match.group(1) if match else None


def find_addresses(text: str, family: NetworkFamily) -> List[str]:
    return re.findall(rf"(?<![\w]){_address_re(family)}(?![\w])", text)


def parse_slippage_bps(text: str) -> Optional[int]:
    for pattern in _SLIPPAGE_RES:
        match = pattern.search(text)
        if match:
            try:
                return int(Decimal(match.group(1)) * 100)
            except InvalidOperation:
                return None
    return None


def parse_swap_params(text: str, network: NetworkConfig) -> Dict[str, Any]:
    """
    Extract swap parameters.

    Returns:
        Dict with ``amount_in``, ``from_asset``, ``to_asset`` and ``slippage_bps``

    Raises:
        UserInputError: If the amount or the output asset is missing
    """
    amount = parse_amount(text)
    if amount is None:
        raise UserInputError("How much should be swapped? Add an amount, e.g. 'swap 0.01 eth for 0x...'")

    address = _address_re(network.network_family)
    input_match = re.search(rf"{re.escape(amount)}\s+({address})(?![\w])", text)
    from_asset = input_match.group(1) if input_match else "native"

    to_asset = None
    for match in re.finditer(r"\b(?:for|to|into)\s+(\S+)", text, re.IGNORECASE):
        candidate = match.group(1).rstrip(".,;")
        if re.fullmatch(address, candidate) or is_native(candidate, network):
            to_asset = "native" if is_native(candidate, network) else candidate
            break
    if to_asset is None:
        raise UserInputError(
            "What should be received? Add 'for <token address>' or 'for native'"
        )
    return {
        "amount_in": amount,
        "from_asset": from_asset,
        "to_asset": to_asset,
        "slippage_bps": parse_slippage_bps(text),
    }


def parse_mint_params(text: str, network: NetworkConfig) -> Dict[str, Any]:
    """
    Extract mint parameters: kind, contract (may be None) and options.
    """
    lowered = text.lower()
    if "1155" in lowered:
        kind = MintKind.MULTI_TOKEN
    elif re.search(r"\b(?:domain|name)\b", lowered):
        kind = MintKind.NAME_REGISTRATION
    elif network.network_family == NetworkFamily.SOLANA:
        kind = MintKind.NATIVE_NFT
    else:
        kind = MintKind.COLLECTIBLE

    addresses = find_addresses(text, network.network_family)
    quantity = _QUANTITY_RE.search(text)
    name = _NAME_RE.search(text) if kind == MintKind.NAME_REGISTRATION else None
    options = MintOptions(
        quantity=max(1, int(quantity.group(1))) if quantity else 1,
        name=name.group(1) if name else None,
    )
    return {"kind": kind, "contract_address": addresses[0] if addresses else None, "options": options}


def parse_send_params(text: str, network: NetworkConfig) -> Dict[str, Any]:
    """
    Raises:
        UserInputError: Unless both an amount and ``to <address>`` are present
    """
    amount = parse_amount(text)
    destination = re.search(rf"\bto\s+({_address_re(network.network_family)})(?![\w])", text, re.IGNORECASE)
    if amount is None or destination is None:
        raise UserInputError("Specify both an amount and a destination, e.g. 'send 0.01 to <address>'")
    return {"amount": amount, "to": destination.group(1)}


@dataclass(frozen=True)
class TaskRule:
    """Keyword predicate plus the handler to run when it matches"""
    name: str
    keywords: Sequence[str]
    handler: Callable[["TaskExecutor", str, Account, NetworkConfig], ActionResult]

    def matches(self, text: str) -> bool:
        return any(
            re.search(rf"\b{re.escape(keyword)}\b", text, re.IGNORECASE) for keyword in self.keywords
        )


def _handle_swap(executor: "TaskExecutor", text: str, account: Account, network: NetworkConfig) -> ActionResult:
    params = parse_swap_params(text, network)
    return executor.swap_executor.swap(account, network=network, **params)


def _handle_mint(executor: "TaskExecutor", text: str, account: Account, network: NetworkConfig) -> ActionResult:
    params = parse_mint_params(text, network)
    return executor.mint_executor.mint(account=account, network=network, **params)


def _handle_faucet(executor: "TaskExecutor", text: str, account: Account, network: NetworkConfig) -> ActionResult:
    adapter = executor.adapter_for(network)
    tx_id = adapter.request_faucet(account.address)
    return ActionResult(success=True, tx_id=tx_id, message=f"Claimed {network.name} faucet funds")


def _handle_balance(executor: "TaskExecutor", text: str, account: Account, network: NetworkConfig) -> ActionResult:
    balance = executor.adapter_for(network).read_balance(account.address)
    return ActionResult(
        success=True,
        message=f"Balance: {format_units(balance, network.decimals, precision=6)} {network.native_symbol}",
    )


def _handle_send(executor: "TaskExecutor", text: str, account: Account, network: NetworkConfig) -> ActionResult:
    params = parse_send_params(text, network)
    amount = to_smallest_unit(params["amount"], network.decimals)
    if amount <= 0:
        raise UserInputError("Send amount must be positive")
    adapter = executor.adapter_for(network)
    secret = executor.sealer.unseal(account.sealed_secret)
    tx_id = adapter.submit_transfer(secret, params["to"], amount)
    return ActionResult(
        success=True,
        tx_id=tx_id,
        message=f"Sent {params['amount']} {network.native_symbol} to {params['to']}",
    )


DEFAULT_RULES = (
    TaskRule("swap", ("swap",), _handle_swap),
    TaskRule("mint", ("mint", "nft"), _handle_mint),
    TaskRule("faucet", ("faucet", "claim"), _handle_faucet),
    TaskRule("balance", ("balance", "check"), _handle_balance),
    TaskRule("send", ("send", "transfer"), _handle_send),
)


def match_rule(text: str, rules: Sequence[TaskRule] = DEFAULT_RULES) -> Optional[TaskRule]:
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


class TaskExecutor:
    """Runs one free-text task for one account"""

    def __init__(
        self,
        swap_executor: SwapExecutor,
        mint_executor: MintExecutor,
        adapter_for: Callable[[NetworkConfig], ChainAdapter],
        sealer: SecretSealer,
        rules: Sequence[TaskRule] = DEFAULT_RULES,
    ):
        self.swap_executor = swap_executor
        self.mint_executor = mint_executor
        self.adapter_for = adapter_for
        self.sealer = sealer
        self.rules = rules

    def execute(
        self,
        task_text: str,
        account: Account,
        network: NetworkConfig,
        task_set_id: Optional[str] = None,
    ) -> TaskResult:
        """
        Execute a task.

        Args:
            task_text: Free-text task
            account: Account to act with
            network: Network to act on
            task_set_id: Task set the task belongs to, for history

        Returns:
            TaskResult; failures are reported in the result, never raised
        """
        rule = match_rule(task_text, self.rules)
        if rule is None:
            action = ActionResult(
                success=True, message=f'Task noted: "{task_text}" is not yet automatable'
            )
        else:
            try:
                action = rule.handler(self, task_text, account, network)
            except ChainPilotError as e:
                action = ActionResult.failed(f"{rule.name.capitalize()} failed: {e}", tx_id=getattr(e, "tx_id", None))
            except Exception as e:
                logger.exception(f"Unexpected error running {rule.name} task for {account.address}")
                action = ActionResult.failed(f"{rule.name.capitalize()} failed: unexpected error: {e}")

        return TaskResult(
            task_set_id=task_set_id,
            owner=account.owner,
            account_address=account.address,
            task_text=task_text,
            success=action.success,
            message=action.message,
            tx_id=action.tx_id,
        )
