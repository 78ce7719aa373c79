"""
Tests for the task-set runner.
"""
import threading
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from chainpilot.models import NetworkFamily, RepeatSchedule, TaskResult, TaskSet
from chainpilot.runner import TaskSetRunner, summarize
from conftest import ADDR_A, ADDR_B, ADDR_C, OWNER, make_account


def _execute(task_text, account, network, task_set_id=None):
    return TaskResult(
        task_set_id=task_set_id,
        owner=account.owner,
        account_address=account.address,
        task_text=task_text,
        success=True,
        message=f"did {task_text}",
        tx_id="0xabc",
    )


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute.side_effect = _execute
    return executor


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def runner(store, executor, notifier, tmp_path):
    return TaskSetRunner(
        store, executor, str(tmp_path / "locks"), notifier=notifier, max_accounts=5, min_delay=0, max_delay=0
    )


@pytest.fixture
def task_set(store, evm_network):
    return store.save_task_set(TaskSet(
        owner=OWNER,
        name="Daily quests",
        network_snapshot=evm_network,
        tasks=["check balance", "claim faucet"],
        repeat_schedule=RepeatSchedule.DAILY,
    ))


def test_summarize():
    results = [_execute("a", MagicMock(owner=OWNER, address=ADDR_A), None), TaskResult(success=False, message="x")]
    assert summarize(results) == (1, 1)


class TestRun:
    def test_accounts_outer_tasks_inner(self, runner, store, sealer, task_set):
        make_account(store, sealer, ADDR_A)
        make_account(store, sealer, ADDR_B)

        results = runner.run(task_set)

        assert [(r.account_address, r.task_text) for r in results] == [
            (ADDR_A, "check balance"),
            (ADDR_A, "claim faucet"),
            (ADDR_B, "check balance"),
            (ADDR_B, "claim faucet"),
        ]
        assert len(store.list_results(OWNER)) == 4

    def test_updates_task_set_once(self, runner, store, sealer, task_set):
        make_account(store, sealer, ADDR_A)
        make_account(store, sealer, ADDR_B)
        with patch.object(store, "update_task_set", wraps=store.update_task_set) as update:
            runner.run(task_set)
        update.assert_called_once()
        saved = store.get_task_set(task_set.id)
        assert saved.next_run_at - saved.last_run_at == timedelta(hours=24)

    def test_account_cap_and_family(self, store, sealer, executor, tmp_path, task_set):
        make_account(store, sealer, "So1" * 14, family=NetworkFamily.SOLANA)
        for address in (ADDR_A, ADDR_B, ADDR_C):
            make_account(store, sealer, address)
        runner = TaskSetRunner(store, executor, str(tmp_path / "locks"), max_accounts=2, min_delay=0, max_delay=0)

        results = runner.run(task_set)

        assert {r.account_address for r in results} == {ADDR_A, ADDR_B}

    def test_notifies_with_tx_link(self, runner, store, sealer, task_set, notifier):
        make_account(store, sealer, ADDR_A)
        runner.run(task_set)
        messages = [c.args[1] for c in notifier.notify.call_args_list]
        assert messages[0].startswith('Running "check balance"')
        assert messages[1] == "did check balance\nhttps://etherscan.io/tx/0xabc"
        assert all(c.args[0] == OWNER for c in notifier.notify.call_args_list)

    def test_no_accounts(self, runner, executor, task_set):
        results = runner.run(task_set)
        assert len(results) == 1
        assert not results[0].success
        executor.execute.assert_not_called()

    def test_no_network(self, runner, store, executor):
        task_set = store.save_task_set(TaskSet(owner=OWNER, name="empty", tasks=["x"]))
        results = runner.run(task_set)
        assert not results[0].success
        executor.execute.assert_not_called()

    def test_already_running(self, runner, store, sealer, executor, task_set):
        make_account(store, sealer, ADDR_A)
        held = MagicMock()
        held.acquire.return_value = False
        with patch.object(runner, "_lock_for", return_value=held):
            results = runner.run(task_set)
        assert len(results) == 1
        assert "already running" in results[0].message
        executor.execute.assert_not_called()
        held.release.assert_not_called()

    def test_lock_released_after_run(self, runner, store, sealer, task_set):
        make_account(store, sealer, ADDR_A)
        lock = MagicMock()
        lock.acquire.return_value = True
        with patch.object(runner, "_lock_for", return_value=lock):
            runner.run(task_set)
        lock.acquire.assert_called_once_with(blocking=False)
        lock.release.assert_called_once()

    def test_schedule_updated_even_when_interrupted(self, runner, store, sealer, executor, task_set):
        make_account(store, sealer, ADDR_A)
        executor.execute.side_effect = [_execute("check balance", store.list_accounts(OWNER)[0], None),
                                        RuntimeError("store unavailable")]
        with pytest.raises(RuntimeError):
            runner.run(task_set)
        assert store.get_task_set(task_set.id).last_run_at is not None

    def test_same_process_runs_do_not_overlap(self, runner, store, sealer, executor, task_set):
        make_account(store, sealer, ADDR_A)
        started = threading.Event()
        release = threading.Event()
        executions = []

        def slow_execute(task_text, account, network, task_set_id=None):
            executions.append(threading.current_thread().name)
            started.set()
            release.wait(timeout=5)
            return _execute(task_text, account, network, task_set_id)

        executor.execute.side_effect = slow_execute
        scheduled = threading.Thread(target=runner.run, args=(task_set,), name="scheduled")
        scheduled.start()
        try:
            assert started.wait(timeout=5)
            results = runner.run(task_set)
        finally:
            release.set()
            scheduled.join(timeout=5)

        assert len(results) == 1
        assert "already running" in results[0].message
        assert set(executions) == {"scheduled"}

    def test_lock_reusable_after_run(self, runner, store, sealer, task_set):
        make_account(store, sealer, ADDR_A)
        assert all(r.success for r in runner.run(task_set))
        assert all(r.success for r in runner.run(task_set))
