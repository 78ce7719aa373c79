"""
Engine: wires settings, storage, adapters and executors together.
"""
import logging
from typing import Callable, Iterable, List, Optional, Union

from ._http import build_session
from .accounts import AccountService
from .adapters import AdapterFactory, ChainAdapter
from .config import NetworkRegistry, Settings
from .context import ConversationContext
from .exceptions import ResourceNotFoundError, UserInputError
from .extraction import (
    FundingParams, GeminiExtractor, IntentExtractor, MintParams, SwapParams, TaskListExtraction,
    build_task_set,
)
from .funding import CascadeFunder, format_cascade_results
from .mint import MintExecutor, MintOptions
from .models import (
    Account, ActionResult, CascadeFundingRequest, MintKind, NetworkConfig, NetworkFamily,
    NftContractConfig, RepeatSchedule, TaskResult, TaskSet, utcnow,
)
from .notify import Notifier, NullNotifier, TelegramNotifier
from .routers import RouterResolver
from .runner import TaskSetRunner
from .scheduler import Scheduler, next_run
from .sealing import SecretSealer
from .store import JsonStore, Store
from .swap import SwapExecutor
from .tasks import TaskExecutor

logger = logging.getLogger(__name__)


class Engine:
    """
    Composition root for chainpilot.

    Every collaborator can be injected; anything not given is built from
    ``settings``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[Store] = None,
        adapter_for: Optional[Callable[[NetworkConfig], ChainAdapter]] = None,
        notifier: Optional[Notifier] = None,
        extractor: Optional[IntentExtractor] = None,
        sealer: Optional[SecretSealer] = None,
    ):
        self.settings = settings or Settings.from_env()
        s = self.settings
        self.store = store or JsonStore(s.store_path)
        self.sealer = sealer or SecretSealer(s.master_key)
        self.adapter_for = adapter_for or AdapterFactory(s)

        if notifier is not None:
            self.notifier = notifier
        elif s.telegram_bot_token:
            self.notifier = TelegramNotifier(s.telegram_bot_token)
        else:
            self.notifier = NullNotifier()

        if extractor is not None:
            self.extractor: Optional[IntentExtractor] = extractor
        elif s.gemini_api_key:
            self.extractor = GeminiExtractor(s.gemini_api_key, model=s.gemini_model, timeout=s.http_timeout)
        else:
            self.extractor = None

        self.context = ConversationContext()
        session = build_session(s.http_retries)

        self.routers = RouterResolver(self.store)
        self.accounts = AccountService(self.store, self.sealer, self.adapter_for)
        self.swaps = SwapExecutor(
            self.routers,
            self.adapter_for,
            self.sealer,
            jupiter_api_url=s.jupiter_api_url,
            session=session,
            timeout=s.http_timeout,
        )
        self.mints = MintExecutor(
            self.store,
            self.adapter_for,
            self.sealer,
            mint_api_url=s.nft_mint_api_url,
            name_commit_delay=s.name_commit_delay,
            session=session,
            timeout=s.http_timeout,
        )
        self.funder = CascadeFunder(self.store, self.adapter_for, self.sealer, self.resolve_network)
        self.tasks = TaskExecutor(self.swaps, self.mints, self.adapter_for, self.sealer)
        self.runner = TaskSetRunner(
            self.store,
            self.tasks,
            s.lock_dir,
            notifier=self.notifier,
            max_accounts=s.max_accounts_per_run,
            min_delay=s.min_delay,
            max_delay=s.max_delay,
        )

    # Networks

    def resolve_network(self, owner: Optional[str], ref: str) -> NetworkConfig:
        """
        Find a network by slug, network id or name; built-in entries first.

        Raises:
            ResourceNotFoundError: If neither a built-in nor a custom network matches
        """
        network = NetworkRegistry.find_network(ref)
        if network is not None:
            return network
        if owner is not None:
            network = self.store.get_network(owner, ref)
            if network is not None:
                return network
        raise ResourceNotFoundError(f"Unknown network '{ref}'", resource="network")

    def list_networks(self, owner: Optional[str] = None) -> List[NetworkConfig]:
        networks = NetworkRegistry.list_networks()
        if owner is not None:
            networks.extend(self.store.list_networks(owner))
        return networks

    def add_network(
        self,
        owner: str,
        name: str,
        rpc_endpoint: str,
        native_symbol: str,
        family: Union[NetworkFamily, str] = NetworkFamily.EVM,
        chain_id: Optional[int] = None,
        decimals: int = 18,
        explorer_url: Optional[str] = None,
        is_testnet: bool = False,
    ) -> NetworkConfig:
        """
        Save a custom network for an owner.

        Raises:
            UserInputError: If an EVM network has no chain id
        """
        family = NetworkFamily(family)
        if family == NetworkFamily.EVM and chain_id is None:
            raise UserInputError("EVM networks need a chain id")
        network = NetworkConfig(
            network_id=str(chain_id) if family == NetworkFamily.EVM else name.strip().lower().replace(" ", "-"),
            name=name,
            rpc_endpoint=rpc_endpoint,
            native_symbol=native_symbol,
            decimals=decimals,
            explorer_url=explorer_url,
            is_testnet=is_testnet,
            network_family=family,
            chain_id=chain_id,
            owner=owner,
        )
        return self.store.save_network(network)

    # Contracts

    def save_nft_contract(
        self,
        owner: str,
        network_ref: str,
        contract_address: str,
        name: str = "NFT Collection",
        kind: Union[MintKind, str] = MintKind.COLLECTIBLE,
        entry_point: Optional[str] = None,
        mint_price: Optional[int] = None,
    ) -> NftContractConfig:
        network = self.resolve_network(owner, network_ref)
        adapter = self.adapter_for(network)
        config = NftContractConfig(
            owner=owner,
            network_id=network.network_id,
            contract_address=adapter.normalize_address(contract_address),
            name=name,
            kind=MintKind(kind),
            entry_point=entry_point,
            mint_price=mint_price,
        )
        return self.store.save_nft_contract(config)

    # Task sets

    def create_task_set(
        self,
        owner: str,
        name: str,
        tasks: Iterable[str],
        network_ref: str,
        schedule: Union[RepeatSchedule, str] = RepeatSchedule.NONE,
        description: Optional[str] = None,
    ) -> TaskSet:
        schedule = RepeatSchedule(schedule)
        tasks = [t.strip() for t in tasks if t and t.strip()]
        if not tasks:
            raise UserInputError("A task set needs at least one task")
        task_set = TaskSet(
            owner=owner,
            name=name,
            description=description,
            network_snapshot=self.resolve_network(owner, network_ref).snapshot(),
            tasks=tasks,
            repeat_schedule=schedule,
            next_run_at=next_run(schedule, utcnow()),
        )
        return self.store.save_task_set(task_set)

    def save_extracted_task_set(
        self,
        owner: str,
        extraction: TaskListExtraction,
        name: Optional[str] = None,
        schedule: Union[RepeatSchedule, str] = RepeatSchedule.NONE,
    ) -> TaskSet:
        """Save a task set built from an announcement, plus its custom network"""
        task_set = build_task_set(owner, name, extraction, schedule)
        network = task_set.network_snapshot
        if network is not None and network.owner:
            self.store.save_network(network)
        return self.store.save_task_set(task_set)

    def extract_announcement(self, owner: str, text: str) -> Optional[TaskListExtraction]:
        """
        Extract a task list from an announcement and remember it for the owner.

        Raises:
            UserInputError: If no extractor is configured
        """
        if self.extractor is None:
            raise UserInputError("No extractor configured; set CHAINPILOT_GEMINI_API_KEY")
        self.context.add(owner, "user", text)
        extraction = self.extractor.extract_task_list(text)
        if extraction is not None:
            self.context.add(
                owner, "assistant", f"Extracted {len(extraction.tasks)} tasks", data=extraction
            )
        return extraction

    def save_last_extraction(
        self,
        owner: str,
        name: Optional[str] = None,
        schedule: Union[RepeatSchedule, str] = RepeatSchedule.NONE,
    ) -> TaskSet:
        extraction = self.context.last_data(owner, TaskListExtraction)
        if extraction is None:
            raise UserInputError("Extract an announcement first, then save it")
        return self.save_extracted_task_set(owner, extraction, name=name, schedule=schedule)

    def find_task_set(self, owner: str, ref: str) -> TaskSet:
        """
        Find an owner's task set by id or (case-insensitive) name.

        Raises:
            ResourceNotFoundError: If nothing matches
        """
        task_set = self.store.get_task_set(ref)
        if task_set is not None and task_set.owner == owner:
            return task_set
        for candidate in self.store.list_task_sets(owner):
            if candidate.name.lower() == ref.lower():
                return candidate
        raise ResourceNotFoundError(f"Task set '{ref}' not found", resource="task_set")

    def run_task_set(self, owner: str, ref: str) -> List[TaskResult]:
        return self.runner.run(self.find_task_set(owner, ref))

    def history(self, owner: str, limit: int = 20, task_set_id: Optional[str] = None) -> List[TaskResult]:
        return self.store.list_results(owner, limit=limit, task_set_id=task_set_id)

    def scheduler(self) -> Scheduler:
        return Scheduler(self.store, self.runner, self.notifier, interval=self.settings.scheduler_interval)

    # Free-text requests

    def _acting_account(self, owner: str, network: NetworkConfig, address: Optional[str]) -> Account:
        if address:
            return self.accounts.get(owner, address)
        accounts = self.store.list_accounts(owner, network.network_family)
        if not accounts:
            raise ResourceNotFoundError(
                f"No {network.network_family.value} accounts found; create or import one first",
                resource="account",
            )
        return accounts[0]

    def ask(
        self,
        owner: str,
        text: str,
        network_ref: str,
        account_address: Optional[str] = None,
    ) -> ActionResult:
        """
        Act on a free-text request such as "swap 0.1 eth for 0x...".

        The request is classified first. Swaps, mints and cascade funding
        are driven by the extracted parameters, announcements become a
        remembered task list, and anything else runs through the task
        rule table.

        Args:
            owner: Owner making the request
            text: The request
            network_ref: Network to act on
            account_address: Account to act with, defaults to the owner's
                first account of the network's family

        Raises:
            UserInputError: If no extractor is configured
        """
        if self.extractor is None:
            raise UserInputError("No extractor configured; set CHAINPILOT_GEMINI_API_KEY")
        network = self.resolve_network(owner, network_ref)
        intent = self.extractor.classify(text)
        logger.info(f"Request from {owner} classified as {intent}")

        if intent == "task_extraction":
            extraction = self.extract_announcement(owner, text)
            if extraction is None:
                return ActionResult.failed("Could not extract tasks from the announcement")
            return ActionResult(
                success=True,
                message=f"Extracted {len(extraction.tasks)} tasks; save them to run them",
            )

        self.context.add(owner, "user", text)
        account = self._acting_account(owner, network, account_address)
        if intent == "swap_tokens":
            params = self.extractor.extract_swap_params(text)
            if params is None:
                return ActionResult.failed("Could not understand the swap; name the amount and both assets")
            result = self._ask_swap(account, network, params)
        elif intent == "mint_nft":
            params = self.extractor.extract_mint_params(text)
            if params is None:
                return ActionResult.failed("Could not understand the mint; name the contract address")
            result = self._ask_mint(account, network, params)
        elif intent == "cascade_fund":
            params = self.extractor.extract_funding_params(text)
            if params is None:
                return ActionResult.failed("Could not understand the funding request; name the mode and amount")
            result = self._ask_fund(owner, account, network, params)
        else:
            task = self.tasks.execute(text, account, network)
            result = ActionResult(success=task.success, message=task.message, tx_id=task.tx_id)

        self.context.add(owner, "assistant", result.message, data=result)
        return result

    def _ask_swap(self, account: Account, network: NetworkConfig, params: SwapParams) -> ActionResult:
        return self.swaps.swap(
            account,
            params.from_token,
            params.to_token,
            params.amount,
            network,
            slippage_bps=params.slippage_bps,
        )

    def _ask_mint(self, account: Account, network: NetworkConfig, params: MintParams) -> ActionResult:
        token_type = params.type.upper()
        if token_type == "ERC1155":
            kind = MintKind.MULTI_TOKEN
        elif token_type == "DOMAIN":
            kind = MintKind.NAME_REGISTRATION
        elif token_type == "SOLANA" or network.network_family == NetworkFamily.SOLANA:
            kind = MintKind.NATIVE_NFT
        else:
            kind = MintKind.COLLECTIBLE
        options = MintOptions(quantity=params.quantity, token_id=params.token_id, name=params.domain_name)
        return self.mints.mint(kind, account, params.contract_address, network, options)

    def _ask_fund(
        self, owner: str, account: Account, network: NetworkConfig, params: FundingParams
    ) -> ActionResult:
        try:
            request = CascadeFundingRequest.from_human(
                owner=owner,
                source_account_address=params.master_address or account.address,
                mode=params.mode,
                decimals=network.decimals,
                amount_per_target=params.amount_per_wallet,
                total_amount=params.total_amount,
                network_id=network.network_id,
            )
        except UserInputError as e:
            return ActionResult.failed(f"Cascade funding failed: {e}")
        results = self.funder.cascade_fund(request)
        return ActionResult(
            success=all(r.success for r in results),
            message=format_cascade_results(results, network),
        )
