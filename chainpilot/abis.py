"""
Contract interface definitions used by the swap and mint executors.
"""
import re
from typing import Any, Dict, List

# Uniswap V2 style router (PancakeSwap, QuickSwap and most forks share it)
UNISWAP_V2_ROUTER_ABI = [
    {
        "inputs": [
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactETHForTokens",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactTokensForETH",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactTokensForTokens",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"}
        ],
        "name": "getAmountsOut",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "WETH",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]

# Standard ERC20 subset needed for approvals
ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    }
]

# Max uint256 for unlimited approval
MAX_APPROVAL = 2**256 - 1

# Price accessors tried in order when detecting a mint price
PRICE_ACCESSORS = ["price", "mintPrice", "cost", "PRICE", "MINT_PRICE"]

# Common ERC721 mint entry points, in probing order
COLLECTIBLE_MINT_CANDIDATES = [
    "mint()",
    "mint(uint256)",
    "publicMint()",
    "publicMint(uint256)",
    "claim()",
    "claim(uint256)",
    "safeMint(address)",
]

# Common ERC1155 mint entry points, in probing order
MULTI_TOKEN_MINT_CANDIDATES = [
    "mint(uint256,uint256)",
    "mint(address,uint256,uint256,bytes)",
]


def function_abi_from_signature(signature: str, payable: bool = True) -> Dict[str, Any]:
    """
    Build a minimal ABI fragment from a signature like ``mint(uint256)``.

    Args:
        signature: Function name with a comma-separated type list
        payable: Whether the function accepts value

    Returns:
        ABI entry for the function

    Raises:
        ValueError: If the signature is malformed
    """
    match = re.fullmatch(r"\s*([A-Za-z_][A-Za-z0-9_]*)\s*\(([^()]*)\)\s*", signature)
    if not match:
        raise ValueError(f"Invalid function signature: {signature}")
    name, params = match.groups()
    types = [t.strip() for t in params.split(",") if t.strip()]
    return {
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(types)],
        "name": name,
        "outputs": [],
        "stateMutability": "payable" if payable else "nonpayable",
        "type": "function",
    }


def signature_types(signature: str) -> List[str]:
    """Return the argument types of a function signature"""
    return [entry["type"] for entry in function_abi_from_signature(signature)["inputs"]]


def _view(name: str, inputs: List[Dict[str, str]], output: str) -> Dict[str, Any]:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": [{"name": "", "type": output}],
        "stateMutability": "view",
        "type": "function",
    }


ERC721_MINT_ABI = (
    [function_abi_from_signature(sig) for sig in COLLECTIBLE_MINT_CANDIDATES]
    + [_view(accessor, [], "uint256") for accessor in PRICE_ACCESSORS]
)

ERC1155_MINT_ABI = (
    [function_abi_from_signature(sig) for sig in MULTI_TOKEN_MINT_CANDIDATES]
    + [_view(accessor, [], "uint256") for accessor in PRICE_ACCESSORS]
)

# ENS-style commit/reveal registrar controller
NAME_REGISTRAR_ABI = [
    _view("available", [{"name": "name", "type": "string"}], "bool"),
    _view(
        "rentPrice",
        [{"name": "name", "type": "string"}, {"name": "duration", "type": "uint256"}],
        "uint256",
    ),
    _view(
        "makeCommitment",
        [
            {"name": "name", "type": "string"},
            {"name": "owner", "type": "address"},
            {"name": "secret", "type": "bytes32"}
        ],
        "bytes32",
    ),
    {
        "inputs": [{"name": "commitment", "type": "bytes32"}],
        "name": "commit",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "name", "type": "string"},
            {"name": "owner", "type": "address"},
            {"name": "duration", "type": "uint256"},
            {"name": "secret", "type": "bytes32"}
        ],
        "name": "register",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    }
]
