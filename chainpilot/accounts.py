"""
Account creation, import and management.

Secrets are sealed before they reach the store; plaintext only exists
between generation (or import) and sealing.
"""
import logging
from typing import Callable, List, Optional

from .adapters import ChainAdapter
from .config import NetworkRegistry
from .exceptions import ResourceNotFoundError, UserInputError
from .models import Account, NetworkConfig, NetworkFamily
from .sealing import SecretSealer
from .store import Store

logger = logging.getLogger(__name__)

# Key handling is identical across networks of a family
_FAMILY_NETWORKS = {
    NetworkFamily.EVM: "ethereum",
    NetworkFamily.SOLANA: "solana-mainnet",
    NetworkFamily.APTOS: "aptos-mainnet",
}


class AccountService:
    """Creates, imports and manages an owner's accounts"""

    def __init__(
        self,
        store: Store,
        sealer: SecretSealer,
        adapter_for: Callable[[NetworkConfig], ChainAdapter],
    ):
        self.store = store
        self.sealer = sealer
        self.adapter_for = adapter_for

    def _adapter(self, family: NetworkFamily) -> ChainAdapter:
        return self.adapter_for(NetworkRegistry.get_network(_FAMILY_NETWORKS[NetworkFamily(family)]))

    def _default_label(self, owner: str, family: NetworkFamily) -> str:
        count = len(self.store.list_accounts(owner, family))
        return f"{NetworkFamily(family).value.upper()} Wallet {count + 1}"

    def create(self, owner: str, family: NetworkFamily, label: Optional[str] = None) -> Account:
        """
        Generate and store a new account.

        Returns:
            The stored account (secrets sealed)
        """
        family = NetworkFamily(family)
        generated = self._adapter(family).create_account()
        account = Account(
            owner=owner,
            network_family=family,
            address=generated.address,
            sealed_secret=self.sealer.seal(generated.secret),
            sealed_seed_phrase=self.sealer.seal(generated.seed_phrase) if generated.seed_phrase else None,
            label=label or self._default_label(owner, family),
        )
        self.store.add_account(account)
        logger.info(f"Created {family.value} account {account.address} for {owner}")
        return account

    def import_secret(
        self,
        owner: str,
        family: NetworkFamily,
        secret: str,
        label: Optional[str] = None,
    ) -> Account:
        """
        Import an account from a private key or (EVM only) a seed phrase.

        Raises:
            UserInputError: If the secret is invalid or the account already exists
        """
        family = NetworkFamily(family)
        adapter = self._adapter(family)
        secret = secret.strip()
        seed_phrase = None
        if len(secret.split()) >= 12:
            seed_phrase = secret
            secret = adapter.secret_from_seed_phrase(seed_phrase)
        address = adapter.address_from_secret(secret)

        if self.store.get_account(owner, address) is not None:
            raise UserInputError(f"Account {address} is already saved")
        account = Account(
            owner=owner,
            network_family=family,
            address=address,
            sealed_secret=self.sealer.seal(secret),
            sealed_seed_phrase=self.sealer.seal(seed_phrase) if seed_phrase else None,
            label=label or self._default_label(owner, family),
        )
        self.store.add_account(account)
        logger.info(f"Imported {family.value} account {address} for {owner}")
        return account

    def list_accounts(self, owner: str, family: Optional[NetworkFamily] = None) -> List[Account]:
        return self.store.list_accounts(owner, family)

    def get(self, owner: str, address: str) -> Account:
        account = self.store.get_account(owner, address)
        if account is None:
            raise ResourceNotFoundError(f"Account {address} not found", resource="account")
        return account

    def rename(self, owner: str, address: str, label: str) -> Account:
        return self.store.update_account_label(owner, self.get(owner, address).id, label)

    def delete(self, owner: str, address: str) -> bool:
        return self.store.delete_account(owner, self.get(owner, address).id)
