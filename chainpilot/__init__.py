"""
chainpilot: multi-chain task automation and execution engine.

Runs saved task sets (swaps, mints, faucet claims, transfers) across an
owner's accounts on EVM, Solana and Aptos networks, and fans native
funding out from one account to many.
"""
from .engine import Engine
from .exceptions import (
    CallRejected,
    ChainPilotError,
    InsufficientFundsError,
    ResourceNotFoundError,
    SealingError,
    SubmissionFailure,
    TransientNetworkError,
    UnsupportedOperation,
    UserInputError,
)
from .models import (
    Account,
    ActionResult,
    CascadeFundingRequest,
    FundingMode,
    FundingResult,
    MintKind,
    NetworkConfig,
    NetworkFamily,
    NftContractConfig,
    RepeatSchedule,
    RouterConfig,
    TaskResult,
    TaskSet,
)
from .version import __version__

__all__ = [
    "Engine",
    "Account",
    "ActionResult",
    "CascadeFundingRequest",
    "FundingMode",
    "FundingResult",
    "MintKind",
    "NetworkConfig",
    "NetworkFamily",
    "NftContractConfig",
    "RepeatSchedule",
    "RouterConfig",
    "TaskResult",
    "TaskSet",
    "CallRejected",
    "ChainPilotError",
    "InsufficientFundsError",
    "ResourceNotFoundError",
    "SealingError",
    "SubmissionFailure",
    "TransientNetworkError",
    "UnsupportedOperation",
    "UserInputError",
    "__version__",
]
