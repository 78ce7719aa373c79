"""
Task-set runner: every task of a set, for each of the owner's accounts.
"""
import logging
import os
import random
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

import fasteners

from .funding import short_address
from .models import Account, NetworkConfig, TaskResult, TaskSet, utcnow
from .notify import Notifier, NullNotifier
from .scheduler import next_run
from .store import Store
from .tasks import TaskExecutor

logger = logging.getLogger(__name__)


def summarize(results: List[TaskResult]) -> Tuple[int, int]:
    """
    Returns:
        Tuple of (successes, failures)
    """
    successes = sum(1 for r in results if r.success)
    return successes, len(results) - successes


class TaskSetRunner:
    """
    Runs task sets account by account, task by task.

    A task set never runs twice at once. Each run holds a thread lock
    owned by the runner and an inter-process lock named after the task
    set, both taken without blocking. File locks are per process, so the
    thread lock is what keeps a scheduled run and a manual run in the same
    process apart.
    """

    def __init__(
        self,
        store: Store,
        executor: TaskExecutor,
        lock_dir: str,
        notifier: Optional[Notifier] = None,
        max_accounts: int = 5,
        min_delay: float = 1.0,
        max_delay: float = 4.0,
    ):
        """
        Initialize the runner.

        Args:
            store: Accounts, task sets and history
            executor: Executes single tasks
            lock_dir: Directory holding the per-task-set run locks
            notifier: Progress notifications (optional)
            max_accounts: Accounts used per run, in creation order
            min_delay: Lower bound of the pause after each task, in seconds
            max_delay: Upper bound of the pause after each task, in seconds
        """
        self.store = store
        self.executor = executor
        self.lock_dir = lock_dir
        self.notifier = notifier or NullNotifier()
        self.max_accounts = max_accounts
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self._thread_locks: Dict[str, threading.Lock] = {}
        self._thread_locks_guard = threading.Lock()
        os.makedirs(lock_dir, exist_ok=True)

    def _lock_for(self, task_set_id: str) -> fasteners.InterProcessLock:
        return fasteners.InterProcessLock(os.path.join(self.lock_dir, f"taskset-{task_set_id}.lock"))

    def _thread_lock_for(self, task_set_id: str) -> threading.Lock:
        with self._thread_locks_guard:
            return self._thread_locks.setdefault(task_set_id, threading.Lock())

    @contextmanager
    def _run_lock(self, task_set_id: str) -> Iterator[bool]:
        """Yields True when this caller owns the task set's run"""
        thread_lock = self._thread_lock_for(task_set_id)
        if not thread_lock.acquire(blocking=False):
            yield False
            return
        try:
            file_lock = self._lock_for(task_set_id)
            if not file_lock.acquire(blocking=False):
                yield False
                return
            try:
                yield True
            finally:
                file_lock.release()
        finally:
            thread_lock.release()

    @staticmethod
    def _aggregate_failure(task_set: TaskSet, message: str) -> List[TaskResult]:
        return [TaskResult(task_set_id=task_set.id, owner=task_set.owner, success=False, message=message)]

    def run(self, task_set: TaskSet) -> List[TaskResult]:
        """
        Run a task set once.

        Returns:
            One result per (account, task) in that order, or a single
            aggregate failure when the run cannot start
        """
        if task_set.network_snapshot is None:
            return self._aggregate_failure(task_set, "No network saved for this task set")

        with self._run_lock(task_set.id) as acquired:
            if not acquired:
                logger.info(f"Task set {task_set.id} is already running, skipping")
                return self._aggregate_failure(task_set, f"Task set '{task_set.name}' is already running")
            return self._run_locked(task_set, task_set.network_snapshot)

    def _run_locked(self, task_set: TaskSet, network: NetworkConfig) -> List[TaskResult]:
        accounts = self.store.list_accounts(task_set.owner, network.network_family)[: self.max_accounts]
        if not accounts:
            return self._aggregate_failure(
                task_set, f"No {network.network_family.value} accounts found for {network.name}"
            )

        logger.info(
            f"Running task set {task_set.id} ({len(task_set.tasks)} tasks) "
            f"on {len(accounts)} accounts on {network.name}"
        )
        results: List[TaskResult] = []
        try:
            for account in accounts:
                for task in task_set.tasks:
                    results.append(self._run_one(task_set, network, account, task))
        finally:
            now = utcnow()
            self.store.update_task_set(
                task_set.id,
                last_run_at=now,
                next_run_at=next_run(task_set.repeat_schedule, now),
            )
        return results

    def _run_one(self, task_set: TaskSet, network: NetworkConfig, account: Account, task: str) -> TaskResult:
        self.notifier.notify(task_set.owner, f'Running "{task}" on {short_address(account.address)}')

        result = self.executor.execute(task, account, network, task_set_id=task_set.id)
        self.store.append_result(result)

        link = network.tx_url(result.tx_id)
        self.notifier.notify(task_set.owner, f"{result.message}\n{link}" if link else result.message)

        time.sleep(random.uniform(self.min_delay, self.max_delay))
        return result
