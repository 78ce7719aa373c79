"""
JSON-document store guarded by a process-safe file lock.
"""
import json
import logging
import os
import stat
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import portalocker

from ..exceptions import ResourceNotFoundError, StorageError, UserInputError
from ..models import (
    Account, NetworkConfig, NetworkFamily, NftContractConfig, RepeatSchedule,
    RouterConfig, TaskResult, TaskSet,
)
from .base import Store

logger = logging.getLogger(__name__)

_TABLES = ("accounts", "networks", "routers", "nft_contracts", "task_sets", "task_history")


def _same_address(a: str, b: str) -> bool:
    # Hex addresses compare case-insensitively, base58 addresses exactly
    if a.startswith("0x") and b.startswith("0x"):
        return a.lower() == b.lower()
    return a == b


def _empty() -> Dict[str, List[Dict[str, Any]]]:
    return {table: [] for table in _TABLES}


class JsonStore(Store):
    """Thread-safe and process-safe store backed by one JSON file"""

    def __init__(self, path: str, lock_timeout: float = 10):
        """
        Initialize the store.

        Args:
            path: Location of the JSON document (created if missing)
            lock_timeout: Seconds to wait for the file lock
        """
        self.path = Path(os.path.expanduser(path))
        self.lock_timeout = lock_timeout
        self._ensure_file()

    def _ensure_file(self) -> None:
        directory = self.path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            if os.name == "posix":
                os.chmod(directory, stat.S_IRWXU)  # 0700

        if not self.path.exists():
            with portalocker.Lock(self._lock_path(), timeout=self.lock_timeout):
                if not self.path.exists():
                    self._write(_empty())

        # Secrets are sealed, but the file still should not be world readable
        if os.name == "posix":
            os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def _lock_path(self) -> str:
        return str(self.path) + ".lock"

    def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Store file {self.path} missing, starting empty")
            return _empty()
        except json.JSONDecodeError as e:
            # Never overwrite an unreadable store, it holds sealed account keys
            logger.error(f"Store file {self.path} is not valid JSON: {e}")
            raise StorageError(f"Store file {self.path} is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Store file {self.path} does not hold a JSON object")
        for table in _TABLES:
            data.setdefault(table, [])
        return data

    def _write(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    @contextmanager
    def _transaction(self) -> Iterator[Dict[str, List[Dict[str, Any]]]]:
        """Read-modify-write under the file lock; written back on clean exit"""
        with portalocker.Lock(self._lock_path(), timeout=self.lock_timeout):
            data = self._read()
            yield data
            self._write(data)

    def _snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        with portalocker.Lock(self._lock_path(), timeout=self.lock_timeout):
            return self._read()

    # Accounts

    def add_account(self, account: Account) -> Account:
        with self._transaction() as data:
            for row in data["accounts"]:
                if row["owner"] == account.owner and _same_address(row["address"], account.address):
                    raise UserInputError(f"Account {account.address} is already saved")
            data["accounts"].append(account.model_dump(mode="json"))
        return account

    def get_account(self, owner: str, address: str) -> Optional[Account]:
        for row in self._snapshot()["accounts"]:
            if row["owner"] == owner and _same_address(row["address"], address):
                return Account.model_validate(row)
        return None

    def list_accounts(self, owner: str, family: Optional[NetworkFamily] = None) -> List[Account]:
        accounts = [
            Account.model_validate(row)
            for row in self._snapshot()["accounts"]
            if row["owner"] == owner
        ]
        if family is not None:
            accounts = [a for a in accounts if a.network_family == NetworkFamily(family)]
        return sorted(accounts, key=lambda a: a.created_at)

    def update_account_label(self, owner: str, account_id: str, label: str) -> Account:
        with self._transaction() as data:
            for row in data["accounts"]:
                if row["owner"] == owner and row["id"] == account_id:
                    row["label"] = label
                    return Account.model_validate(row)
        raise ResourceNotFoundError(f"Account {account_id} not found", resource="account")

    def delete_account(self, owner: str, account_id: str) -> bool:
        with self._transaction() as data:
            before = len(data["accounts"])
            data["accounts"] = [
                row for row in data["accounts"]
                if not (row["owner"] == owner and row["id"] == account_id)
            ]
            return len(data["accounts"]) < before

    # Custom networks

    def save_network(self, network: NetworkConfig) -> NetworkConfig:
        if not network.owner:
            raise UserInputError("Custom networks must have an owner")
        with self._transaction() as data:
            data["networks"] = [
                row for row in data["networks"]
                if not (row["owner"] == network.owner and row["network_id"] == network.network_id)
            ]
            data["networks"].append(network.model_dump(mode="json"))
        return network

    def get_network(self, owner: str, ref: str) -> Optional[NetworkConfig]:
        ref_lower = ref.lower()
        for row in self._snapshot()["networks"]:
            if row["owner"] == owner and (row["network_id"] == ref or row["name"].lower() == ref_lower):
                return NetworkConfig.model_validate(row)
        return None

    def list_networks(self, owner: str) -> List[NetworkConfig]:
        return [
            NetworkConfig.model_validate(row)
            for row in self._snapshot()["networks"]
            if row["owner"] == owner
        ]

    def delete_network(self, owner: str, network_id: str) -> bool:
        with self._transaction() as data:
            before = len(data["networks"])
            data["networks"] = [
                row for row in data["networks"]
                if not (row["owner"] == owner and row["network_id"] == network_id)
            ]
            return len(data["networks"]) < before

    # Routers

    def save_router(self, router: RouterConfig) -> RouterConfig:
        if not router.owner:
            raise UserInputError("Custom routers must have an owner")
        with self._transaction() as data:
            data["routers"] = [
                row for row in data["routers"]
                if not (row["owner"] == router.owner and row["network_id"] == router.network_id)
            ]
            data["routers"].append(router.model_dump(mode="json"))
        logger.info(f"Saved router {router.router_address} for network {router.network_id}")
        return router

    def get_router(self, owner: str, network_id: str) -> Optional[RouterConfig]:
        for row in self._snapshot()["routers"]:
            if row["owner"] == owner and row["network_id"] == network_id:
                return RouterConfig.model_validate(row)
        return None

    def list_routers(self, owner: str) -> List[RouterConfig]:
        return [
            RouterConfig.model_validate(row)
            for row in self._snapshot()["routers"]
            if row["owner"] == owner
        ]

    # NFT contracts

    def _nft_key_matches(self, row: Dict[str, Any], owner: str, network_id: str, contract: str) -> bool:
        return (
            row["owner"] == owner
            and row["network_id"] == network_id
            and _same_address(row["contract_address"], contract)
        )

    def save_nft_contract(self, config: NftContractConfig) -> NftContractConfig:
        with self._transaction() as data:
            data["nft_contracts"] = [
                row for row in data["nft_contracts"]
                if not self._nft_key_matches(row, config.owner, config.network_id, config.contract_address)
            ]
            data["nft_contracts"].append(config.model_dump(mode="json"))
        return config

    def get_nft_contract(
        self, owner: str, network_id: str, contract_address: str
    ) -> Optional[NftContractConfig]:
        for row in self._snapshot()["nft_contracts"]:
            if self._nft_key_matches(row, owner, network_id, contract_address):
                return NftContractConfig.model_validate(row)
        return None

    def list_nft_contracts(self, owner: str, network_id: Optional[str] = None) -> List[NftContractConfig]:
        return [
            NftContractConfig.model_validate(row)
            for row in self._snapshot()["nft_contracts"]
            if row["owner"] == owner and (network_id is None or row["network_id"] == network_id)
        ]

    # Task sets

    def save_task_set(self, task_set: TaskSet) -> TaskSet:
        with self._transaction() as data:
            data["task_sets"] = [row for row in data["task_sets"] if row["id"] != task_set.id]
            data["task_sets"].append(task_set.model_dump(mode="json"))
        return task_set

    def get_task_set(self, task_set_id: str) -> Optional[TaskSet]:
        for row in self._snapshot()["task_sets"]:
            if row["id"] == task_set_id:
                return TaskSet.model_validate(row)
        return None

    def list_task_sets(self, owner: str) -> List[TaskSet]:
        task_sets = [
            TaskSet.model_validate(row)
            for row in self._snapshot()["task_sets"]
            if row["owner"] == owner
        ]
        return sorted(task_sets, key=lambda t: t.created_at)

    def update_task_set(self, task_set_id: str, **fields: Any) -> TaskSet:
        with self._transaction() as data:
            for index, row in enumerate(data["task_sets"]):
                if row["id"] == task_set_id:
                    current = TaskSet.model_validate(row)
                    updated = TaskSet.model_validate({**current.model_dump(), **fields})
                    data["task_sets"][index] = updated.model_dump(mode="json")
                    return updated
        raise ResourceNotFoundError(f"Task set {task_set_id} not found", resource="task_set")

    def delete_task_set(self, owner: str, task_set_id: str) -> bool:
        with self._transaction() as data:
            before = len(data["task_sets"])
            data["task_sets"] = [
                row for row in data["task_sets"]
                if not (row["owner"] == owner and row["id"] == task_set_id)
            ]
            return len(data["task_sets"]) < before

    def due_task_sets(self, now: datetime) -> List[TaskSet]:
        due = []
        for row in self._snapshot()["task_sets"]:
            task_set = TaskSet.model_validate(row)
            if (
                task_set.is_active
                and task_set.repeat_schedule != RepeatSchedule.NONE
                and task_set.next_run_at is not None
                and task_set.next_run_at <= now
            ):
                due.append(task_set)
        return sorted(due, key=lambda t: t.next_run_at)

    # Task history

    def append_result(self, result: TaskResult) -> None:
        with self._transaction() as data:
            data["task_history"].append(result.model_dump(mode="json"))

    def list_results(
        self, owner: str, limit: int = 20, task_set_id: Optional[str] = None
    ) -> List[TaskResult]:
        rows = [
            row for row in self._snapshot()["task_history"]
            if row.get("owner") == owner
            and (task_set_id is None or row.get("task_set_id") == task_set_id)
        ]
        # Appended in execution order, so newest are at the end
        return [TaskResult.model_validate(row) for row in reversed(rows)][:limit]
