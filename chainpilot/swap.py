"""
Token swaps.

EVM networks swap through a Uniswap V2 style router with a forced hop over
the wrapped native token; Solana networks swap through the Jupiter
aggregator.
"""
import logging
import time
from decimal import Decimal
from typing import Callable, Optional, Union

import requests

from ._http import build_session
from .abis import ERC20_ABI, MAX_APPROVAL
from .adapters import ChainAdapter
from .exceptions import (
    CallRejected, ChainPilotError, TransientNetworkError, UserInputError,
)
from .models import Account, ActionResult, NetworkConfig, NetworkFamily
from .routers import RouterResolver
from .sealing import SecretSealer
from .units import format_units, to_smallest_unit

logger = logging.getLogger(__name__)

NATIVE_ALIASES = {"native", "eth", "bnb", "matic", "sol", "apt"}
DEFAULT_SLIPPAGE_BPS = 100
MAX_BPS = 10000
DEADLINE_SECONDS = 20 * 60
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


def _check_slippage(slippage_bps: int) -> None:
    if not 0 <= slippage_bps <= MAX_BPS:
        raise UserInputError(f"Slippage must be between 0 and {MAX_BPS} bps, got {slippage_bps}")


def compute_min_output(amount_out: int, slippage_bps: int) -> int:
    """
    Minimum acceptable output for a quoted amount.

    Args:
        amount_out: Quoted output in smallest units
        slippage_bps: Tolerated slippage in basis points (0..10000)

    Returns:
        ``amount_out`` reduced by the slippage, rounded down

    Raises:
        UserInputError: If the slippage is out of range
    """
    _check_slippage(slippage_bps)
    return amount_out * (MAX_BPS - slippage_bps) // MAX_BPS


def is_native(asset: str, network: NetworkConfig) -> bool:
    key = asset.strip().lower()
    return key in NATIVE_ALIASES or key == network.native_symbol.lower()


class SwapExecutor:
    """Executes single swaps for one account"""

    def __init__(
        self,
        resolver: RouterResolver,
        adapter_for: Callable[[NetworkConfig], ChainAdapter],
        sealer: SecretSealer,
        jupiter_api_url: str = "https://quote-api.jup.ag/v6",
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.resolver = resolver
        self.adapter_for = adapter_for
        self.sealer = sealer
        self.jupiter_api_url = jupiter_api_url.rstrip("/")
        self.session = session or build_session()
        self.timeout = timeout

    def swap(
        self,
        account: Account,
        from_asset: str,
        to_asset: str,
        amount_in: Union[str, Decimal],
        network: NetworkConfig,
        slippage_bps: Optional[int] = None,
    ) -> ActionResult:
        """
        Swap ``amount_in`` of ``from_asset`` for ``to_asset``.

        Args:
            account: Account paying and receiving
            from_asset: "native" (or an alias) or a token address
            to_asset: "native" (or an alias) or a token address
            amount_in: Positive human decimal amount of the input asset
            network: Network to swap on
            slippage_bps: Tolerated slippage, defaults to 100 (1%)

        Returns:
            ActionResult; ``needs_router_info`` is set when no router is known
        """
        slippage = DEFAULT_SLIPPAGE_BPS if slippage_bps is None else int(slippage_bps)
        try:
            if network.network_family == NetworkFamily.SOLANA:
                return self._swap_jupiter(account, from_asset, to_asset, amount_in, network, slippage)
            if network.network_family != NetworkFamily.EVM:
                return ActionResult.failed(f"Swaps are not supported on {network.name}")
            return self._swap_router(account, from_asset, to_asset, amount_in, network, slippage)
        except ChainPilotError as e:
            logger.warning(f"Swap on {network.name} failed for {account.address}: {e}")
            return ActionResult.failed(f"Swap failed: {e}", tx_id=getattr(e, "tx_id", None))

    def _swap_router(
        self,
        account: Account,
        from_asset: str,
        to_asset: str,
        amount_in: Union[str, Decimal],
        network: NetworkConfig,
        slippage_bps: int,
    ) -> ActionResult:
        router = self.resolver.resolve(network.network_id, account.owner)
        if router is None:
            return ActionResult.failed(
                f"No router known for {network.name} (network {network.network_id}). "
                "Provide the router and wrapped native token addresses.",
                needs_router_info=True,
            )

        from_native = is_native(from_asset, network)
        to_native = is_native(to_asset, network)
        if from_native and to_native:
            raise UserInputError("Swapping the native asset for itself is not a swap")
        _check_slippage(slippage_bps)

        adapter = self.adapter_for(network)
        wrapped = router.wrapped_native_address
        token_in = None if from_native else adapter.normalize_address(from_asset)
        token_out = None if to_native else adapter.normalize_address(to_asset)

        if from_native:
            path = [wrapped, token_out]
        elif to_native:
            path = [token_in, wrapped]
        else:
            path = [token_in, wrapped, token_out]

        in_decimals = network.decimals if from_native else adapter.call_view(token_in, "decimals", [], ERC20_ABI)
        out_decimals = network.decimals if to_native else adapter.call_view(token_out, "decimals", [], ERC20_ABI)
        amount = to_smallest_unit(amount_in, in_decimals)
        if amount <= 0:
            raise UserInputError("Swap amount must be positive")

        if from_native:
            balance = adapter.read_balance(account.address)
            if balance < amount:
                return ActionResult.failed(
                    f"Insufficient balance: have {format_units(balance, network.decimals)} "
                    f"{network.native_symbol}, need {amount_in}"
                )

        secret = self.sealer.unseal(account.sealed_secret)
        abi = router.interface_descriptor

        if token_in is not None:
            allowance = adapter.call_view(
                token_in, "allowance", [account.address, router.router_address], ERC20_ABI
            )
            if allowance < amount:
                logger.info(f"Approving {router.name} to spend {token_in} for {account.address}")
                adapter.submit_contract_call(
                    secret, token_in, "approve", [router.router_address, MAX_APPROVAL], abi=ERC20_ABI
                )

        try:
            amounts = adapter.call_view(router.router_address, "getAmountsOut", [amount, path], abi)
        except CallRejected as e:
            return ActionResult.failed(f"Quote unavailable from {router.name}: {e}")
        amount_out = amounts[-1] if amounts else 0
        if amount_out <= 0:
            return ActionResult.failed(f"Quote unavailable from {router.name}: no liquidity for this pair")
        min_out = compute_min_output(amount_out, slippage_bps)
        deadline = int(time.time()) + DEADLINE_SECONDS

        if from_native:
            method, args, value = "swapExactETHForTokens", [min_out, path, account.address, deadline], amount
        elif to_native:
            method, args, value = "swapExactTokensForETH", [amount, min_out, path, account.address, deadline], 0
        else:
            method, args, value = "swapExactTokensForTokens", [amount, min_out, path, account.address, deadline], 0

        tx_id = adapter.submit_contract_call(secret, router.router_address, method, args, value=value, abi=abi)

        out_label = network.native_symbol if to_native else token_out
        in_label = network.native_symbol if from_native else token_in
        return ActionResult(
            success=True,
            tx_id=tx_id,
            message=(
                f"Swapped {amount_in} {in_label} for at least "
                f"{format_units(min_out, out_decimals)} {out_label} via {router.name}"
            ),
        )

    def _swap_jupiter(
        self,
        account: Account,
        from_asset: str,
        to_asset: str,
        amount_in: Union[str, Decimal],
        network: NetworkConfig,
        slippage_bps: int,
    ) -> ActionResult:
        _check_slippage(slippage_bps)
        adapter = self.adapter_for(network)
        input_mint = WRAPPED_SOL_MINT if is_native(from_asset, network) else from_asset
        output_mint = WRAPPED_SOL_MINT if is_native(to_asset, network) else to_asset
        if input_mint == output_mint:
            raise UserInputError("Input and output assets are the same")

        decimals = network.decimals if input_mint == WRAPPED_SOL_MINT else adapter.token_decimals(input_mint)
        amount = to_smallest_unit(amount_in, decimals)
        if amount <= 0:
            raise UserInputError("Swap amount must be positive")

        quote = self._jupiter(
            "GET",
            "/quote",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": amount,
                "slippageBps": slippage_bps,
            },
        )
        if not quote or "outAmount" not in quote:
            return ActionResult.failed("Quote unavailable from Jupiter")

        swap = self._jupiter(
            "POST",
            "/swap",
            json={"quoteResponse": quote, "userPublicKey": account.address, "wrapAndUnwrapSol": True},
        )
        serialized = (swap or {}).get("swapTransaction")
        if not serialized:
            return ActionResult.failed("Jupiter did not return a swap transaction")

        secret = self.sealer.unseal(account.sealed_secret)
        tx_id = adapter.sign_and_submit(secret, serialized)
        return ActionResult(
            success=True,
            tx_id=tx_id,
            message=f"Swapped {amount_in} {from_asset} for {quote['outAmount']} (smallest units) of {to_asset} via Jupiter",
        )

    def _jupiter(self, method: str, path: str, **kwargs):
        try:
            response = self.session.request(method, f"{self.jupiter_api_url}{path}", timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise TransientNetworkError(f"Jupiter API {path} failed: {e}")
        except ValueError as e:
            raise TransientNetworkError(f"Jupiter API {path} returned invalid JSON: {e}")
