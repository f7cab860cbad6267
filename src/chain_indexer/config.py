"""
Indexer configuration.

Values come from the environment (a .env file is loaded by the CLI first):

    RPC_URL, CONTRACT_ADDRESS, CHAIN_ID, ABI_PATH, DATA_DIR,
    SCAN_BATCH_SIZE, SCAN_START_BLOCK, PROGRESS_INTERVAL, BATCH_RETRIES,
    RPC_TIMEOUT, RPC_MAX_ATTEMPTS, SEARCH_WINDOW, INDEXER_ANNOTATIONS

INDEXER_ANNOTATIONS is a JSON object mapping function names to "Event.field".
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from eth_utils import is_address

from chain_indexer.errors import ConfigError
from chain_indexer.variables import (
    DEFAULT_ABI_PATH,
    DEFAULT_ANNOTATIONS,
    DEFAULT_BATCH_RETRIES,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHAIN_ID,
    DEFAULT_CONTRACT_ADDRESS,
    DEFAULT_DATA_DIR,
    DEFAULT_PROGRESS_INTERVAL,
    DEFAULT_RPC_MAX_ATTEMPTS,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_SEARCH_WINDOW,
    DEFAULT_START_BLOCK,
)


def _int(env: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def _annotations(env: Mapping[str, str]) -> Dict[str, str]:
    raw = env.get("INDEXER_ANNOTATIONS")
    if raw is None or raw.strip() == "":
        return dict(DEFAULT_ANNOTATIONS)
    try:
        rules = json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"INDEXER_ANNOTATIONS is not valid JSON: {e}")
    if not isinstance(rules, dict) or not all(isinstance(v, str) for v in rules.values()):
        raise ConfigError('INDEXER_ANNOTATIONS must map function names to "Event.field" strings')
    return {str(k): v for k, v in rules.items()}


@dataclass
class IndexerConfig:
    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    chain_id: Optional[int] = DEFAULT_CHAIN_ID
    abi_path: Path = Path(DEFAULT_ABI_PATH)
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    batch_size: int = DEFAULT_BATCH_SIZE
    start_block: int = DEFAULT_START_BLOCK
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    batch_retries: int = DEFAULT_BATCH_RETRIES
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    rpc_max_attempts: int = DEFAULT_RPC_MAX_ATTEMPTS
    search_window: int = DEFAULT_SEARCH_WINDOW
    annotations: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ANNOTATIONS))

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("RPC_URL must be set")
        if not is_address(self.contract_address):
            raise ConfigError(f"CONTRACT_ADDRESS is not a valid address: {self.contract_address!r}")
        if self.batch_size < 1:
            raise ConfigError("SCAN_BATCH_SIZE must be at least 1")
        self.abi_path = Path(self.abi_path)
        self.data_dir = Path(self.data_dir)

    @property
    def contract(self) -> str:
        """Lowercase form of the target address."""
        return self.contract_address.lower()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> "IndexerConfig":
        if env is None:
            load_dotenv(env_file)
            env = os.environ

        chain_id_raw = env.get("CHAIN_ID")
        if chain_id_raw is not None and chain_id_raw.strip().lower() in ("", "any"):
            chain_id = None
        else:
            chain_id = _int(env, "CHAIN_ID", DEFAULT_CHAIN_ID)

        return cls(
            rpc_url=env.get("RPC_URL", DEFAULT_RPC_URL),
            contract_address=env.get("CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS),
            chain_id=chain_id,
            abi_path=Path(env.get("ABI_PATH", DEFAULT_ABI_PATH)),
            data_dir=Path(env.get("DATA_DIR", DEFAULT_DATA_DIR)),
            batch_size=_int(env, "SCAN_BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1),
            start_block=_int(env, "SCAN_START_BLOCK", DEFAULT_START_BLOCK),
            progress_interval=_float(env, "PROGRESS_INTERVAL", DEFAULT_PROGRESS_INTERVAL),
            batch_retries=_int(env, "BATCH_RETRIES", DEFAULT_BATCH_RETRIES),
            rpc_timeout=_float(env, "RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT),
            rpc_max_attempts=_int(env, "RPC_MAX_ATTEMPTS", DEFAULT_RPC_MAX_ATTEMPTS, minimum=1),
            search_window=_int(env, "SEARCH_WINDOW", DEFAULT_SEARCH_WINDOW, minimum=1),
            annotations=_annotations(env),
        )
