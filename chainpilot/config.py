"""
Configuration for chainpilot.

Built-in networks ship as package data (``networks.json``); runtime settings
come from ``CHAINPILOT_*`` environment variables.
"""
import importlib.resources
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import appdirs
from pydantic import BaseModel, Field

from .exceptions import ResourceNotFoundError
from .models import NetworkConfig

logger = logging.getLogger(__name__)


class NetworkRegistry:
    """Lookups over the built-in network table"""

    # Class-level cache so the JSON file is parsed once per process
    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load the built-in network table.

        Returns:
            Mapping of network slug to its raw configuration
        """
        if cls._networks_cache is not None:
            return cls._networks_cache

        resource = importlib.resources.files("chainpilot").joinpath("networks.json")
        with resource.open("r", encoding="utf-8") as f:
            cls._networks_cache = json.load(f)
        logger.debug(f"Loaded {len(cls._networks_cache)} built-in networks")
        return cls._networks_cache

    @classmethod
    def _find(cls, name: str):
        networks = cls.load_networks()
        key = name.lower()
        if key in networks:
            return key, networks[key]
        # Accept the network id (chain id for EVM) as well as the slug
        for slug, entry in networks.items():
            if entry.get("network_id") == name:
                return slug, entry
        return None, None

    @classmethod
    def get_network(cls, name: str, rpc_override: Optional[str] = None) -> NetworkConfig:
        """
        Get a built-in network by slug or network id.

        Args:
            name: Slug such as "bsc" or network id such as "56"
            rpc_override: RPC endpoint to use instead of the configured one

        Returns:
            NetworkConfig for the network

        Raises:
            ResourceNotFoundError: If the network is not built in
        """
        slug, entry = cls._find(name)
        if entry is None:
            available = ", ".join(sorted(cls.load_networks()))
            raise ResourceNotFoundError(
                f"Unknown network '{name}'. Available networks: {available}",
                resource="network",
            )
        data = dict(entry)
        data["rpc_endpoint"] = cls.get_rpc_url(slug, override=rpc_override)
        return NetworkConfig(**data)

    @classmethod
    def find_network(cls, name: str) -> Optional[NetworkConfig]:
        """Like ``get_network`` but returns None for unknown networks"""
        slug, entry = cls._find(name)
        if entry is None:
            return None
        return cls.get_network(slug)

    @classmethod
    def get_rpc_url(cls, name: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC endpoint for a built-in network.

        Precedence: explicit override, then ``<SLUG>_RPC_URL`` from the
        environment (dashes become underscores), then the built-in value.
        """
        if override:
            return override
        env_var = f"{name.upper().replace('-', '_')}_RPC_URL"
        from_env = os.environ.get(env_var)
        if from_env:
            return from_env
        return cls.load_networks()[name]["rpc_endpoint"]

    @classmethod
    def list_networks(cls) -> List[NetworkConfig]:
        return [cls.get_network(slug) for slug in cls.load_networks()]


def _default_store_path() -> str:
    return os.path.expanduser("~/.chainpilot/store.json")


def _default_lock_dir() -> str:
    return str(Path(appdirs.user_data_dir("chainpilot")) / "locks")


class Settings(BaseModel):
    """Runtime settings; see ``from_env`` for the environment mapping"""
    store_path: str = Field(default_factory=_default_store_path)
    lock_dir: str = Field(default_factory=_default_lock_dir)
    master_key: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    scheduler_interval: float = Field(default=900.0, gt=0)
    max_accounts_per_run: int = Field(default=5, ge=1)
    confirmation_timeout: float = Field(default=120.0, gt=0)
    min_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=4.0, ge=0)
    name_commit_delay: float = Field(default=65.0, ge=0)
    nft_mint_api_url: str = "https://api.metaplex.com/v1"
    jupiter_api_url: str = "https://quote-api.jup.ag/v6"
    aptos_faucet_url: str = "https://faucet.testnet.aptoslabs.com"
    http_retries: int = Field(default=3, ge=0)
    http_timeout: float = Field(default=30.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``CHAINPILOT_<FIELD>`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings with unset fields at their defaults
        """
        env = os.environ if environ is None else environ
        values = {}
        for field_name in cls.model_fields:
            key = f"CHAINPILOT_{field_name.upper()}"
            if env.get(key):
                values[field_name] = env[key]
        return cls(**values)
