"""
Data models for the chainpilot engine.

Every monetary amount is an integer in the smallest unit of its asset.
Human decimal amounts only appear at the edges (see ``chainpilot.units``).
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .units import to_smallest_unit


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class NetworkFamily(str, Enum):
    """Ledger families sharing an execution and account model"""
    EVM = "evm"
    SOLANA = "solana"
    APTOS = "aptos"


class RepeatSchedule(str, Enum):
    NONE = "none"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class FundingMode(str, Enum):
    EQUAL = "equal"
    FIXED = "fixed"
    GAS_ONLY = "gas_only"


class MintKind(str, Enum):
    COLLECTIBLE = "collectible"
    MULTI_TOKEN = "multi_token"
    NATIVE_NFT = "native_nft"
    NAME_REGISTRATION = "name_registration"


class Account(BaseModel):
    """An owner's account on one network family"""
    id: str = Field(default_factory=new_id)
    owner: str
    network_family: NetworkFamily
    address: str
    sealed_secret: str
    sealed_seed_phrase: Optional[str] = None
    label: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class NetworkConfig(BaseModel):
    """
    Network connection details.

    ``network_id`` is the decimal chain id for EVM networks and a slug for
    the other families. Instances are frozen so a task set's snapshot can
    never drift from what was saved.
    """
    model_config = ConfigDict(frozen=True)

    network_id: str
    name: str
    rpc_endpoint: str
    native_symbol: str
    decimals: int = 18
    explorer_url: Optional[str] = None
    is_testnet: bool = False
    network_family: NetworkFamily = NetworkFamily.EVM
    chain_id: Optional[int] = None
    owner: Optional[str] = None

    def snapshot(self) -> "NetworkConfig":
        """Return a detached copy suitable for embedding in a task set"""
        return self.model_copy(deep=True)

    def tx_url(self, tx_id: Optional[str]) -> Optional[str]:
        if not tx_id or not self.explorer_url:
            return None
        base = self.explorer_url.rstrip("/")
        # Explorer URLs with a query string (cluster/network selectors) keep it
        if "?" in base:
            path, query = base.split("?", 1)
            return f"{path}/tx/{tx_id}?{query}"
        return f"{base}/tx/{tx_id}"


class RouterConfig(BaseModel):
    """Decentralized-exchange router for one network"""
    network_id: str
    name: str = "Custom router"
    router_address: str
    wrapped_native_address: str
    interface_descriptor: List[Dict[str, Any]]
    owner: Optional[str] = None


class NftContractConfig(BaseModel):
    """Saved mint configuration for a contract, upserted per owner/network/contract"""
    owner: str
    network_id: str
    contract_address: str
    name: str = "NFT Collection"
    kind: MintKind = MintKind.COLLECTIBLE
    entry_point: Optional[str] = None
    mint_price: Optional[int] = None
    interface_descriptor: Optional[List[Dict[str, Any]]] = None


class TaskSet(BaseModel):
    """A named, ordered list of free-text tasks with an optional repeat schedule"""
    id: str = Field(default_factory=new_id)
    owner: str
    name: str
    description: Optional[str] = None
    network_snapshot: Optional[NetworkConfig] = None
    tasks: List[str] = Field(default_factory=list)
    repeat_schedule: RepeatSchedule = RepeatSchedule.NONE
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class TaskResult(BaseModel):
    """One (account, task, run) outcome; append-only history record"""
    task_set_id: Optional[str] = None
    owner: Optional[str] = None
    account_address: str = ""
    task_text: str = ""
    success: bool
    message: str
    tx_id: Optional[str] = None
    executed_at: datetime = Field(default_factory=utcnow)


class ActionResult(BaseModel):
    """Normalized outcome of a single executor operation"""
    success: bool
    message: str = ""
    tx_id: Optional[str] = None
    needs_router_info: bool = False
    needs_contract: bool = False

    @classmethod
    def failed(cls, message: str, **kwargs: Any) -> "ActionResult":
        return cls(success=False, message=message, **kwargs)


class FundingResult(BaseModel):
    target_address: Optional[str] = None
    success: bool
    amount: Optional[int] = None
    tx_id: Optional[str] = None
    message: str


class CascadeFundingRequest(BaseModel):
    """
    Transient request to fund many targets from one source account.

    ``amount_per_target`` and ``total_amount`` are smallest-unit integers.
    An empty target list means every other account of the source's family.
    """
    owner: str
    source_account_address: str
    mode: FundingMode
    amount_per_target: Optional[int] = Field(default=None, ge=0)
    total_amount: Optional[int] = Field(default=None, ge=0)
    target_account_addresses: List[str] = Field(default_factory=list)
    network_id: Optional[str] = None

    @classmethod
    def from_human(
        cls,
        owner: str,
        source_account_address: str,
        mode: Union[FundingMode, str],
        decimals: int,
        amount_per_target: Optional[Union[str, Decimal]] = None,
        total_amount: Optional[Union[str, Decimal]] = None,
        target_account_addresses: Optional[Iterable[str]] = None,
        network_id: Optional[str] = None,
    ) -> "CascadeFundingRequest":
        """
        Build a request from human decimal amounts.

        Args:
            owner: Owner of the source account
            source_account_address: Account paying for the batch
            mode: Funding mode
            decimals: Native asset decimals of the network
            amount_per_target: Per-target amount for ``fixed`` mode
            total_amount: Total to split for ``equal`` mode
            target_account_addresses: Explicit targets (optional)
            network_id: Network to fund on (optional)

        Returns:
            CascadeFundingRequest with smallest-unit amounts
        """
        return cls(
            owner=owner,
            source_account_address=source_account_address,
            mode=FundingMode(mode),
            amount_per_target=(
                to_smallest_unit(amount_per_target, decimals) if amount_per_target is not None else None
            ),
            total_amount=to_smallest_unit(total_amount, decimals) if total_amount is not None else None,
            target_account_addresses=list(target_account_addresses or []),
            network_id=network_id,
        )
