"""
Exceptions for the chainpilot engine.

Executors translate these into result values at their boundary; only
adapters and lookups raise them past a function call.
"""
from typing import Optional


class ChainPilotError(Exception):
    """Base exception for all chainpilot errors."""
    pass


class UserInputError(ChainPilotError):
    """Raised when task text or a request is missing a required parameter."""
    pass


class ResourceNotFoundError(ChainPilotError):
    """Raised when a router, account, network or task set is unknown."""

    def __init__(self, message: str, resource: Optional[str] = None):
        self.resource = resource
        super().__init__(message)


class InsufficientFundsError(ChainPilotError):
    """Raised when a source account cannot cover a batch up front."""

    def __init__(self, message: str, have: int = 0, need: int = 0, count: int = 0):
        self.have = have
        self.need = need
        self.count = count
        super().__init__(message)


class SubmissionFailure(ChainPilotError):
    """Raised when a single on-chain action fails or times out."""

    def __init__(self, message: str, tx_id: Optional[str] = None):
        self.tx_id = tx_id
        super().__init__(message)


class CallRejected(SubmissionFailure):
    """
    Raised when a contract call is rejected before anything is broadcast.

    Covers reverts during simulation or view calls and methods absent
    from the contract interface.
    """
    pass


class TransientNetworkError(ChainPilotError):
    """Raised when an RPC endpoint or HTTP API is unreachable."""
    pass


class UnsupportedOperation(ChainPilotError):
    """Raised when a network family does not offer a capability."""
    pass


class SealingError(ChainPilotError):
    """Raised when an account secret cannot be sealed or unsealed."""
    pass


class StorageError(ChainPilotError):
    """Raised when the store document cannot be read."""
    pass
