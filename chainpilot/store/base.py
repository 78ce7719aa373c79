"""
Abstract durable store used by the engine.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from ..models import (
    Account, NetworkConfig, NetworkFamily, NftContractConfig, RouterConfig,
    TaskResult, TaskSet,
)


class Store(ABC):
    """
    Storage for accounts, custom networks, routers, NFT contract configs,
    task sets and task history.

    Implementations must make router and NFT contract saves upserts on
    their unique keys and keep task history append-only.
    """

    # Accounts

    @abstractmethod
    def add_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def get_account(self, owner: str, address: str) -> Optional[Account]:
        pass

    @abstractmethod
    def list_accounts(self, owner: str, family: Optional[NetworkFamily] = None) -> List[Account]:
        """List an owner's accounts in creation order"""
        pass

    @abstractmethod
    def update_account_label(self, owner: str, account_id: str, label: str) -> Account:
        pass

    @abstractmethod
    def delete_account(self, owner: str, account_id: str) -> bool:
        pass

    # Custom networks

    @abstractmethod
    def save_network(self, network: NetworkConfig) -> NetworkConfig:
        """Upsert an owner's custom network keyed by (owner, network_id)"""
        pass

    @abstractmethod
    def get_network(self, owner: str, ref: str) -> Optional[NetworkConfig]:
        """Find an owner's custom network by network id or name"""
        pass

    @abstractmethod
    def list_networks(self, owner: str) -> List[NetworkConfig]:
        pass

    @abstractmethod
    def delete_network(self, owner: str, network_id: str) -> bool:
        pass

    # Routers

    @abstractmethod
    def save_router(self, router: RouterConfig) -> RouterConfig:
        """Upsert an owner's router keyed by (owner, network_id)"""
        pass

    @abstractmethod
    def get_router(self, owner: str, network_id: str) -> Optional[RouterConfig]:
        pass

    @abstractmethod
    def list_routers(self, owner: str) -> List[RouterConfig]:
        pass

    # NFT contracts

    @abstractmethod
    def save_nft_contract(self, config: NftContractConfig) -> NftContractConfig:
        """Upsert keyed by (owner, network_id, contract_address)"""
        pass

    @abstractmethod
    def get_nft_contract(
        self, owner: str, network_id: str, contract_address: str
    ) -> Optional[NftContractConfig]:
        pass

    @abstractmethod
    def list_nft_contracts(self, owner: str, network_id: Optional[str] = None) -> List[NftContractConfig]:
        pass

    # Task sets

    @abstractmethod
    def save_task_set(self, task_set: TaskSet) -> TaskSet:
        pass

    @abstractmethod
    def get_task_set(self, task_set_id: str) -> Optional[TaskSet]:
        pass

    @abstractmethod
    def list_task_sets(self, owner: str) -> List[TaskSet]:
        pass

    @abstractmethod
    def update_task_set(self, task_set_id: str, **fields: Any) -> TaskSet:
        """
        Update fields of a task set.

        Raises:
            ResourceNotFoundError: If the task set does not exist
        """
        pass

    @abstractmethod
    def delete_task_set(self, owner: str, task_set_id: str) -> bool:
        pass

    @abstractmethod
    def due_task_sets(self, now: datetime) -> List[TaskSet]:
        """Active, repeating task sets whose next run is at or before ``now``"""
        pass

    # Task history

    @abstractmethod
    def append_result(self, result: TaskResult) -> None:
        pass

    @abstractmethod
    def list_results(
        self, owner: str, limit: int = 20, task_set_id: Optional[str] = None
    ) -> List[TaskResult]:
        """Most recent results first"""
        pass
