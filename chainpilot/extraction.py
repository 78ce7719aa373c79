"""
Intent and parameter extraction from free text.

``GeminiExtractor`` asks a Gemini model for JSON and validates it with
pydantic. Extraction is advisory: every transport, parse or validation
failure yields None (or "general" for classification) rather than an
exception.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ._http import build_session
from .config import NetworkRegistry
from .exceptions import UserInputError
from .models import NetworkConfig, NetworkFamily, RepeatSchedule, TaskSet, utcnow
from .scheduler import next_run

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"

INTENTS = [
    "create_wallet", "view_wallets", "import_wallet", "check_balance", "send_tokens",
    "swap_tokens", "add_dex", "mint_nft", "add_nft_contract", "cascade_fund", "add_chain",
    "view_chains", "save_task", "view_tasks", "run_task", "check_gas", "task_extraction",
    "help", "history", "general",
]

T = TypeVar("T", bound=BaseModel)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SwapParams(_CamelModel):
    from_token: str = Field(default="native", alias="fromToken")
    to_token: str = Field(alias="toToken")
    amount: Decimal = Field(gt=0)
    slippage: Decimal = Field(default=Decimal(1), ge=0, le=100)
    chain: str = "evm"

    @property
    def slippage_bps(self) -> int:
        return int(self.slippage * 100)


class MintParams(_CamelModel):
    contract_address: Optional[str] = Field(default=None, alias="contractAddress")
    type: str = "ERC721"
    quantity: int = Field(default=1, ge=1)
    token_id: int = Field(default=0, ge=0, alias="tokenId")
    domain_name: Optional[str] = Field(default=None, alias="domainName")


class FundingParams(_CamelModel):
    mode: str = Field(pattern="^(equal|fixed|gas_only)$")
    amount_per_wallet: Optional[Decimal] = Field(default=None, alias="amountPerWallet")
    total_amount: Optional[Decimal] = Field(default=None, alias="totalAmount")
    master_address: Optional[str] = Field(default=None, alias="masterAddress")


class ExtractedNetwork(_CamelModel):
    name: str
    chain_id: Optional[Union[int, str]] = Field(default=None, alias="chainId")
    rpc_url: Optional[str] = Field(default=None, alias="rpcUrl")
    symbol: Optional[str] = None
    decimals: int = 18
    explorer_url: Optional[str] = Field(default=None, alias="explorerUrl")
    is_testnet: bool = Field(default=True, alias="isTestnet")


class TaskListExtraction(_CamelModel):
    project_name: Optional[str] = Field(default=None, alias="projectName")
    network: Optional[ExtractedNetwork] = None
    registration_url: Optional[str] = Field(default=None, alias="registrationUrl")
    tasks: List[str] = Field(default_factory=list)
    links: Dict[str, Any] = Field(default_factory=dict)


class IntentExtractor(ABC):
    """Turns free text into an intent label or typed parameters"""

    @abstractmethod
    def classify(self, text: str) -> str:
        pass

    @abstractmethod
    def extract_swap_params(self, text: str) -> Optional[SwapParams]:
        pass

    @abstractmethod
    def extract_mint_params(self, text: str) -> Optional[MintParams]:
        pass

    @abstractmethod
    def extract_funding_params(self, text: str) -> Optional[FundingParams]:
        pass

    @abstractmethod
    def extract_task_list(self, text: str) -> Optional[TaskListExtraction]:
        pass


def _strip_fences(raw: str) -> str:
    return re.sub(r"```(?:json)?", "", raw).strip()


class GeminiExtractor(IntentExtractor):
    """Extractor backed by the Gemini ``generateContent`` REST endpoint"""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        session: Optional[requests.Session] = None,
        api_url: str = GEMINI_API_URL,
        timeout: float = 30,
    ):
        if not api_key:
            raise ValueError("A Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.session = session or build_session()
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _generate(self, prompt: str, temperature: float = 0.1, max_tokens: int = 1024) -> Optional[str]:
        url = f"{self.api_url}/models/{self.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        try:
            response = self.session.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except requests.RequestException as e:
            # The request URL carries the API key, so only log the status
            status = getattr(e.response, "status_code", None)
            logger.warning(f"Gemini request failed ({type(e).__name__}, status {status})")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Unexpected Gemini response shape: {e}")
        return None

    def _extract(self, prompt: str, model_cls: Type[T]) -> Optional[T]:
        raw = self._generate(prompt)
        if raw is None:
            return None
        try:
            return model_cls.model_validate(json.loads(_strip_fences(raw)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.info(f"Could not parse {model_cls.__name__} from model output: {e}")
            return None

    def classify(self, text: str) -> str:
        prompt = (
            "Classify this user message into exactly one of these intents. "
            "Reply with ONLY the intent name, nothing else:\n\n"
            + "\n".join(INTENTS)
            + f'\n\nMessage: "{text}"'
        )
        raw = self._generate(prompt, temperature=0.1, max_tokens=20)
        if not raw:
            return "general"
        intent = raw.strip().lower().split("\n")[0].strip()
        return intent if intent in INTENTS else "general"

    def extract_swap_params(self, text: str) -> Optional[SwapParams]:
        prompt = (
            "Extract swap parameters from this text. Return ONLY valid JSON, no markdown.\n\n"
            f'Text: "{text}"\n\n'
            'Return: {"fromToken": "native or token address", "toToken": "native or token address", '
            '"amount": number, "slippage": number, "chain": "evm or solana or aptos"}\n'
            'Use "native" for ETH/BNB/SOL/MATIC. Default slippage is 1. Default chain is evm.'
        )
        return self._extract(prompt, SwapParams)

    def extract_mint_params(self, text: str) -> Optional[MintParams]:
        prompt = (
            "Extract NFT mint parameters from this text. Return ONLY valid JSON, no markdown.\n\n"
            f'Text: "{text}"\n\n'
            'Return: {"contractAddress": "address or null", "type": "ERC721 or ERC1155 or SOLANA or DOMAIN", '
            '"quantity": number, "tokenId": number, "domainName": "name or null"}'
        )
        return self._extract(prompt, MintParams)

    def extract_funding_params(self, text: str) -> Optional[FundingParams]:
        prompt = (
            "Extract cascade funding parameters from this text. Return ONLY valid JSON, no markdown.\n\n"
            f'Text: "{text}"\n\n'
            'Return: {"mode": "equal or fixed or gas_only", "amountPerWallet": number or null, '
            '"totalAmount": number or null, "masterAddress": "address or null"}'
        )
        return self._extract(prompt, FundingParams)

    def extract_task_list(self, text: str) -> Optional[TaskListExtraction]:
        prompt = (
            "Extract blockchain task information from this announcement. "
            "Return ONLY a valid JSON object, no other text, no markdown.\n\n"
            f"Announcement:\n{text}\n\n"
            "Return JSON with these fields:\n"
            '{"projectName": "string", "network": {"name": "string", "chainId": "string or null", '
            '"rpcUrl": "string or null", "symbol": "string or null", "decimals": 18, '
            '"explorerUrl": "string or null", "isTestnet": true}, '
            '"registrationUrl": "string or null", "tasks": ["task1", "task2"], "links": {}}'
        )
        return self._extract(prompt, TaskListExtraction)


def network_from_extraction(owner: str, extracted: ExtractedNetwork) -> NetworkConfig:
    """
    Turn an announced network into a NetworkConfig.

    Known chain ids and built-in network names resolve to the built-in
    entry; anything else needs an RPC URL and becomes an owner-scoped
    custom network.

    Raises:
        UserInputError: If the network is unknown and has no RPC URL
    """
    if extracted.chain_id not in (None, ""):
        builtin = NetworkRegistry.find_network(str(extracted.chain_id))
    else:
        builtin = NetworkRegistry.find_network(extracted.name.strip().lower().replace(" ", "-"))
    if builtin is not None and not extracted.rpc_url:
        return builtin

    if not extracted.rpc_url:
        raise UserInputError(f"No RPC URL given for network {extracted.name}")

    lowered = extracted.name.lower()
    if "solana" in lowered:
        family = NetworkFamily.SOLANA
    elif "aptos" in lowered:
        family = NetworkFamily.APTOS
    else:
        family = NetworkFamily.EVM

    chain_id = None
    if extracted.chain_id not in (None, ""):
        try:
            chain_id = int(str(extracted.chain_id), 0)
        except ValueError:
            raise UserInputError(f"Invalid chain id: {extracted.chain_id}")

    return NetworkConfig(
        network_id=str(chain_id) if chain_id is not None else lowered.replace(" ", "-"),
        name=extracted.name,
        rpc_endpoint=extracted.rpc_url,
        native_symbol=extracted.symbol or ("SOL" if family == NetworkFamily.SOLANA else "ETH"),
        decimals=extracted.decimals,
        explorer_url=extracted.explorer_url,
        is_testnet=extracted.is_testnet,
        network_family=family,
        chain_id=chain_id,
        owner=owner,
    )


def build_task_set(
    owner: str,
    name: Optional[str],
    extraction: TaskListExtraction,
    schedule: Union[RepeatSchedule, str] = RepeatSchedule.NONE,
) -> TaskSet:
    """
    Build a task set from an extracted announcement.

    The network is frozen into the task set as a snapshot.

    Raises:
        UserInputError: If the announcement has no network or no tasks
    """
    if extraction.network is None:
        raise UserInputError("The announcement does not say which network to use")
    if not extraction.tasks:
        raise UserInputError("The announcement does not list any tasks")

    schedule = RepeatSchedule(schedule)
    network = network_from_extraction(owner, extraction.network)
    return TaskSet(
        owner=owner,
        name=name or extraction.project_name or "My Tasks",
        description=f"From {extraction.project_name or 'announcement'}",
        network_snapshot=network.snapshot(),
        tasks=list(extraction.tasks),
        repeat_schedule=schedule,
        next_run_at=next_run(schedule, utcnow()),
    )
