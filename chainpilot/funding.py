"""
Cascade funding: distribute native funds from one account to many.
"""
import logging
import time
from typing import Callable, List, Optional

from .adapters import ChainAdapter
from .exceptions import ChainPilotError, InsufficientFundsError, UserInputError
from .models import (
    Account, CascadeFundingRequest, FundingMode, FundingResult, NetworkConfig,
)
from .sealing import SecretSealer
from .store import Store
from .units import format_units

logger = logging.getLogger(__name__)


def short_address(address: str) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


class CascadeFunder:
    """
    Funds a list of target accounts from a single source account.

    Whole-batch preconditions (unknown source, no targets, insufficient
    balance) produce exactly one aggregate failure and no submissions.
    Once transfers start, each target gets its own result and a failure
    never stops the remaining transfers.
    """

    def __init__(
        self,
        store: Store,
        adapter_for: Callable[[NetworkConfig], ChainAdapter],
        sealer: SecretSealer,
        resolve_network: Callable[[str, str], NetworkConfig],
    ):
        """
        Args:
            store: Account storage
            adapter_for: Returns the chain adapter for a network
            sealer: Unseals the source account's secret
            resolve_network: Looks up a network by (owner, network reference)
        """
        self.store = store
        self.adapter_for = adapter_for
        self.sealer = sealer
        self.resolve_network = resolve_network

    def cascade_fund(self, request: CascadeFundingRequest) -> List[FundingResult]:
        """
        Run a cascade funding request.

        Returns:
            One result per target in input order, or a single aggregate
            failure when the batch cannot start
        """
        try:
            network = self._network(request)
            adapter = self.adapter_for(network)
            source = self._source(request, network)
            targets = self._targets(request, source, adapter)
            per_target = self.amount_per_target(request, adapter, len(targets))
            total_needed = per_target * len(targets)
            balance = adapter.read_balance(source.address)
            if balance < total_needed:
                raise InsufficientFundsError(
                    f"Insufficient balance: have {format_units(balance, network.decimals)} "
                    f"{network.native_symbol}, need {format_units(total_needed, network.decimals)} "
                    f"{network.native_symbol} for {len(targets)} targets",
                    have=balance,
                    need=total_needed,
                    count=len(targets),
                )
            secret = self.sealer.unseal(source.sealed_secret)
        except ChainPilotError as e:
            logger.warning(f"Cascade funding for {request.owner} not started: {e}")
            return [FundingResult(success=False, message=str(e))]

        logger.info(
            f"Cascade funding {len(targets)} targets with {per_target} each on {network.name} "
            f"from {source.address}"
        )
        results = []
        for index, target in enumerate(targets):
            if index:
                time.sleep(adapter.settle_delay)
            results.append(self._fund_one(adapter, secret, target, per_target, network))
        return results

    def _fund_one(
        self,
        adapter: ChainAdapter,
        secret: str,
        target: str,
        amount: int,
        network: NetworkConfig,
    ) -> FundingResult:
        try:
            tx_id = adapter.submit_transfer(secret, target, amount)
        except ChainPilotError as e:
            logger.warning(f"Funding {target} failed: {e}")
            return FundingResult(
                target_address=target,
                success=False,
                amount=amount,
                tx_id=getattr(e, "tx_id", None),
                message=str(e),
            )
        except Exception as e:
            logger.exception(f"Unexpected error funding {target}")
            return FundingResult(target_address=target, success=False, amount=amount, message=f"Unexpected error: {e}")
        return FundingResult(
            target_address=target,
            success=True,
            amount=amount,
            tx_id=tx_id,
            message=f"Sent {format_units(amount, network.decimals)} {network.native_symbol}",
        )

    def _network(self, request: CascadeFundingRequest) -> NetworkConfig:
        if not request.network_id:
            raise UserInputError("Specify the network to fund on")
        return self.resolve_network(request.owner, request.network_id)

    def _source(self, request: CascadeFundingRequest, network: NetworkConfig) -> Account:
        source = self.store.get_account(request.owner, request.source_account_address)
        if source is None:
            raise UserInputError(f"Source account {request.source_account_address} not found")
        if source.network_family != network.network_family:
            raise UserInputError(
                f"Source account is a {source.network_family.value} account but "
                f"{network.name} is a {network.network_family.value} network"
            )
        return source

    def _targets(self, request: CascadeFundingRequest, source: Account, adapter: ChainAdapter) -> List[str]:
        if request.target_account_addresses:
            targets = []
            for address in request.target_account_addresses:
                if not adapter.is_valid_address(address):
                    raise UserInputError(f"Invalid target address {address} for {adapter.network.name}")
                address = adapter.normalize_address(address)
                if address == adapter.normalize_address(source.address):
                    raise UserInputError("The source account cannot also be a target")
                if address in targets:
                    logger.warning(f"Ignoring duplicate target {address}")
                    continue
                targets.append(address)
        else:
            # Every other account of the source's family
            targets = [
                account.address
                for account in self.store.list_accounts(request.owner, source.network_family)
                if account.id != source.id
            ]
        if not targets:
            raise UserInputError("No target accounts to fund")
        return targets

    @staticmethod
    def amount_per_target(request: CascadeFundingRequest, adapter: ChainAdapter, target_count: int) -> int:
        """
        Per-target amount in smallest units for the request's mode.

        Raises:
            UserInputError: If the mode's required amount is missing or the
                resulting amount is zero
        """
        if request.mode == FundingMode.EQUAL:
            if request.total_amount is None:
                raise UserInputError("Equal funding needs a total amount to split")
            amount = request.total_amount // target_count
        elif request.mode == FundingMode.FIXED:
            if request.amount_per_target is None:
                raise UserInputError("Fixed funding needs an amount per target")
            amount = request.amount_per_target
        else:
            amount = adapter.minimum_viable_fee()
        if amount <= 0:
            raise UserInputError("Amount per target rounds down to zero")
        return amount


def format_cascade_results(results: List[FundingResult], network: NetworkConfig) -> str:
    """Render cascade funding results as a short human summary"""
    if len(results) == 1 and results[0].target_address is None:
        return f"Cascade funding failed: {results[0].message}"

    succeeded = [r for r in results if r.success]
    total = sum(r.amount or 0 for r in succeeded)
    lines = [
        f"Cascade funding on {network.name}: {len(succeeded)}/{len(results)} transfers succeeded, "
        f"{format_units(total, network.decimals)} {network.native_symbol} sent"
    ]
    for result in results:
        target = short_address(result.target_address or "")
        if result.success:
            link: Optional[str] = network.tx_url(result.tx_id) or result.tx_id
            lines.append(f"- {target}: {result.message} ({link})")
        else:
            lines.append(f"- {target}: failed, {result.message}")
    return "\n".join(lines)
