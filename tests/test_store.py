"""
Tests for the JSON store.
"""
import json
import os
import stat
from datetime import timedelta

import pytest

from chainpilot.exceptions import ResourceNotFoundError, StorageError, UserInputError
from chainpilot.models import (
    NetworkFamily, NftContractConfig, RepeatSchedule, RouterConfig, TaskResult, TaskSet, utcnow,
)
from chainpilot.store import JsonStore
from conftest import ADDR_A, ADDR_B, CONTRACT, OWNER, make_account


class TestAccounts:
    def test_add_and_list_in_creation_order(self, store, sealer):
        first = make_account(store, sealer, ADDR_A)
        second = make_account(store, sealer, ADDR_B)
        assert [a.id for a in store.list_accounts(OWNER)] == [first.id, second.id]
        assert store.list_accounts("someone-else") == []

    def test_address_lookup_ignores_hex_case(self, store, sealer):
        make_account(store, sealer, ADDR_A)
        assert store.get_account(OWNER, ADDR_A.upper().replace("0X", "0x")) is not None

    def test_duplicate_rejected(self, store, sealer):
        make_account(store, sealer, ADDR_A)
        with pytest.raises(UserInputError):
            make_account(store, sealer, ADDR_A)

    def test_family_filter(self, store, sealer):
        make_account(store, sealer, ADDR_A)
        make_account(store, sealer, "So1anaAddre55" * 3, family=NetworkFamily.SOLANA)
        assert len(store.list_accounts(OWNER, NetworkFamily.EVM)) == 1
        assert len(store.list_accounts(OWNER, NetworkFamily.SOLANA)) == 1

    def test_rename_and_delete(self, store, sealer):
        account = make_account(store, sealer, ADDR_A)
        assert store.update_account_label(OWNER, account.id, "Main").label == "Main"
        assert store.delete_account(OWNER, account.id) is True
        assert store.delete_account(OWNER, account.id) is False
        with pytest.raises(ResourceNotFoundError):
            store.update_account_label(OWNER, account.id, "Gone")

    def test_secrets_stay_sealed_on_disk(self, store, sealer):
        make_account(store, sealer, ADDR_A)
        with open(store.path, encoding="utf-8") as f:
            raw = f.read()
        assert f"secret-{ADDR_A}" not in raw


class TestNetworksAndRouters:
    def test_network_upsert(self, store, custom_network):
        store.save_network(custom_network)
        store.save_network(custom_network.model_copy(update={"name": "Renamed"}))
        networks = store.list_networks(OWNER)
        assert len(networks) == 1
        assert store.get_network(OWNER, "renamed").network_id == "777"
        assert store.get_network(OWNER, "777").name == "Renamed"

    def test_network_requires_owner(self, store, evm_network):
        with pytest.raises(UserInputError):
            store.save_network(evm_network)

    def test_router_upsert(self, store):
        router = RouterConfig(
            network_id="777",
            router_address=ADDR_A,
            wrapped_native_address=ADDR_B,
            interface_descriptor=[],
            owner=OWNER,
        )
        store.save_router(router)
        store.save_router(router.model_copy(update={"router_address": ADDR_B}))
        assert store.get_router(OWNER, "777").router_address == ADDR_B
        assert len(store.list_routers(OWNER)) == 1
        assert store.get_router("other", "777") is None

    def test_nft_contract_upsert_by_owner_network_contract(self, store):
        config = NftContractConfig(owner=OWNER, network_id="1", contract_address=CONTRACT, mint_price=5)
        store.save_nft_contract(config)
        store.save_nft_contract(config.model_copy(update={"contract_address": CONTRACT.lower(), "mint_price": 7}))
        saved = store.list_nft_contracts(OWNER)
        assert len(saved) == 1
        assert store.get_nft_contract(OWNER, "1", CONTRACT).mint_price == 7


class TestTaskSets:
    def test_update_revalidates(self, store, custom_network):
        task_set = store.save_task_set(TaskSet(owner=OWNER, name="Daily", network_snapshot=custom_network))
        now = utcnow()
        updated = store.update_task_set(task_set.id, last_run_at=now, next_run_at=now + timedelta(hours=1))
        assert updated.last_run_at == now
        assert store.get_task_set(task_set.id).next_run_at == now + timedelta(hours=1)
        with pytest.raises(ResourceNotFoundError):
            store.update_task_set("missing", last_run_at=now)

    def test_due_task_sets(self, store):
        now = utcnow()
        later = store.save_task_set(TaskSet(
            owner=OWNER, name="later", repeat_schedule=RepeatSchedule.DAILY,
            next_run_at=now - timedelta(minutes=1),
        ))
        earlier = store.save_task_set(TaskSet(
            owner=OWNER, name="earlier", repeat_schedule=RepeatSchedule.HOURLY,
            next_run_at=now - timedelta(hours=2),
        ))
        store.save_task_set(TaskSet(
            owner=OWNER, name="future", repeat_schedule=RepeatSchedule.DAILY,
            next_run_at=now + timedelta(hours=1),
        ))
        store.save_task_set(TaskSet(
            owner=OWNER, name="paused", repeat_schedule=RepeatSchedule.DAILY,
            next_run_at=now - timedelta(hours=1), is_active=False,
        ))
        store.save_task_set(TaskSet(
            owner=OWNER, name="one-off", next_run_at=now - timedelta(hours=1),
        ))
        assert [t.id for t in store.due_task_sets(now)] == [earlier.id, later.id]

    def test_delete_only_own(self, store):
        task_set = store.save_task_set(TaskSet(owner=OWNER, name="mine"))
        assert store.delete_task_set("other", task_set.id) is False
        assert store.delete_task_set(OWNER, task_set.id) is True


class TestHistory:
    def test_newest_first_with_limit_and_filter(self, store):
        for index in range(5):
            store.append_result(TaskResult(
                task_set_id="a" if index % 2 == 0 else "b",
                owner=OWNER,
                task_text=f"task {index}",
                success=True,
                message="ok",
            ))
        assert [r.task_text for r in store.list_results(OWNER, limit=2)] == ["task 4", "task 3"]
        assert [r.task_text for r in store.list_results(OWNER, task_set_id="b")] == ["task 3", "task 1"]
        assert store.list_results("other") == []


class TestFile:
    def test_corrupt_file_is_never_overwritten(self, tmp_path, sealer):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = JsonStore(str(path))

        with pytest.raises(StorageError):
            store.list_accounts(OWNER)
        with pytest.raises(StorageError):
            make_account(store, sealer, ADDR_A)
        assert path.read_text() == "{not json"

    def test_missing_file_reads_empty(self, store):
        os.remove(store.path)
        assert store.list_accounts(OWNER) == []

    def test_persists_across_instances(self, tmp_path, sealer):
        path = str(tmp_path / "nested" / "store.json")
        make_account(JsonStore(path), sealer, ADDR_A)
        assert JsonStore(path).get_account(OWNER, ADDR_A) is not None
        with open(path, encoding="utf-8") as f:
            assert len(json.load(f)["accounts"]) == 1

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_file_permissions(self, store):
        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == 0o600
