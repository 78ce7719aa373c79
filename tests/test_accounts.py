"""
Tests for account creation and import.
"""
import pytest

from chainpilot.accounts import AccountService
from chainpilot.exceptions import ResourceNotFoundError, UserInputError
from chainpilot.models import NetworkFamily
from conftest import ADDR_A, OWNER


@pytest.fixture
def accounts(store, sealer, adapter_for):
    return AccountService(store, sealer, adapter_for)


class TestCreate:
    def test_secrets_are_sealed(self, accounts, store, sealer):
        account = accounts.create(OWNER, NetworkFamily.EVM)

        saved = store.get_account(OWNER, account.address)
        assert saved.sealed_secret != f"secret-{account.address}"
        assert sealer.unseal(saved.sealed_secret) == f"secret-{account.address}"
        assert sealer.unseal(saved.sealed_seed_phrase).endswith("last")

    def test_default_labels_count_per_family(self, accounts):
        assert accounts.create(OWNER, "evm").label == "EVM Wallet 1"
        assert accounts.create(OWNER, "evm").label == "EVM Wallet 2"
        assert accounts.create(OWNER, "solana").label == "SOLANA Wallet 1"
        assert accounts.create(OWNER, "evm", label="Main").label == "Main"

    def test_family_picks_adapter(self, accounts, adapter_for):
        accounts.create(OWNER, NetworkFamily.APTOS)
        assert set(adapter_for.adapters) == {"aptos-mainnet"}


class TestImport:
    def test_private_key(self, accounts, sealer):
        account = accounts.import_secret(OWNER, "evm", f"  secret-{ADDR_A}\n")
        assert account.address == ADDR_A
        assert sealer.unseal(account.sealed_secret) == f"secret-{ADDR_A}"
        assert account.sealed_seed_phrase is None

    def test_seed_phrase(self, accounts, sealer):
        phrase = " ".join(["abandon"] * 11 + ["about"])
        account = accounts.import_secret(OWNER, "evm", phrase)
        assert account.address == "0x" + "5e" * 20
        assert sealer.unseal(account.sealed_seed_phrase) == phrase

    def test_duplicate_rejected(self, accounts):
        accounts.import_secret(OWNER, "evm", f"secret-{ADDR_A}")
        with pytest.raises(UserInputError, match="already saved"):
            accounts.import_secret(OWNER, "evm", f"secret-{ADDR_A}")

    def test_invalid_key(self, accounts, store):
        with pytest.raises(UserInputError):
            accounts.import_secret(OWNER, "evm", "not a key")
        assert store.list_accounts(OWNER) == []


class TestManage:
    def test_rename_and_delete(self, accounts):
        account = accounts.import_secret(OWNER, "evm", f"secret-{ADDR_A}")
        assert accounts.rename(OWNER, account.address, "Farming").label == "Farming"
        assert accounts.delete(OWNER, account.address)
        assert accounts.list_accounts(OWNER) == []

    def test_missing_account(self, accounts):
        with pytest.raises(ResourceNotFoundError):
            accounts.get(OWNER, ADDR_A)

    def test_other_owner_cannot_see(self, accounts):
        accounts.import_secret(OWNER, "evm", f"secret-{ADDR_A}")
        with pytest.raises(ResourceNotFoundError):
            accounts.get("intruder", ADDR_A)
