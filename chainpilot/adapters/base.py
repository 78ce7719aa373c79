"""
Chain adapter interface shared by every network family.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from ..exceptions import ChainPilotError, UnsupportedOperation
from ..models import NetworkConfig, NetworkFamily

logger = logging.getLogger(__name__)


class NewAccount(NamedTuple):
    """Freshly generated key material; the caller seals it before storing"""
    address: str
    secret: str
    seed_phrase: Optional[str] = None


class ChainAdapter(ABC):
    """
    Blocking primitives for one network.

    Every submission waits for confirmation (or the confirmation timeout)
    before returning, so callers can rely on strict per-account ordering.
    Library errors are translated into ``chainpilot.exceptions`` here and
    nowhere else.
    """

    family: NetworkFamily
    # Pause between consecutive transfers from the same account, in seconds
    settle_delay: float = 1.0
    # Smallest-unit fee used when the live fee query fails
    fallback_fee: int = 0

    def __init__(self, network: NetworkConfig, confirmation_timeout: float = 120):
        self.network = network
        self.confirmation_timeout = confirmation_timeout

    @abstractmethod
    def create_account(self) -> NewAccount:
        pass

    @abstractmethod
    def address_from_secret(self, secret: str) -> str:
        pass

    def secret_from_seed_phrase(self, seed_phrase: str) -> str:
        """Derive the account secret from a seed phrase"""
        raise UnsupportedOperation(f"Seed phrase import is not supported on {self.network.name}")

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        pass

    def normalize_address(self, address: str) -> str:
        """Canonical textual form of an address"""
        return address

    @abstractmethod
    def read_balance(self, address: str) -> int:
        """Native balance in smallest units"""
        pass

    @abstractmethod
    def submit_transfer(self, secret: str, to: str, amount: int) -> str:
        """Send a native transfer, wait for confirmation and return the tx id"""
        pass

    @abstractmethod
    def submit_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        pass

    @abstractmethod
    def simulate_contract_call(
        self,
        secret: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        value: int = 0,
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """
        Dry-run a contract call without broadcasting.

        Raises:
            CallRejected: If the call would revert or the method does not exist
        """
        pass

    @abstractmethod
    def call_view(
        self,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        abi: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        pass

    @abstractmethod
    def read_fee_rate(self) -> int:
        pass

    @abstractmethod
    def live_minimum_fee(self) -> int:
        """Fee budget for a handful of transfers, from live network data"""
        pass

    def minimum_viable_fee(self) -> int:
        """
        Amount that lets a fresh account pay for a few transactions.

        Falls back to ``fallback_fee`` when the live query fails.
        """
        try:
            return self.live_minimum_fee()
        except ChainPilotError as e:
            logger.warning(
                f"Live fee query failed on {self.network.name}, using fallback "
                f"{self.fallback_fee}: {e}"
            )
            return self.fallback_fee

    @abstractmethod
    def request_faucet(self, address: str) -> Optional[str]:
        """
        Request test funds for an address.

        Raises:
            UnsupportedOperation: If the network has no automatable faucet
        """
        pass
