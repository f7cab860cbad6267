"""Test fixtures: a small contract ABI and an in-memory chain."""

import asyncio
import json
from collections import Counter
from typing import Dict, Iterable, List, Optional

import pytest
from eth_abi import encode

from chain_indexer.errors import ConnectivityError, FetchError
from chain_indexer.on_chain.decoder import AbiCallDecoder, EventAnnotator, abi_signature, event_topic, function_selector

CONTRACT = "0x5217c9034048b1fa9fb1e300f94fcd7002138ea5"
SENDER = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
GENESIS_TIME = 1_700_000_000

SAMPLE_ABI = [
    {
        "type": "function",
        "name": "createStrategy",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "fee", "type": "uint32"},
            {"name": "metadataURI", "type": "string"},
        ],
        "outputs": [{"name": "strategyId", "type": "uint32"}],
    },
    {
        "type": "function",
        "name": "withdraw",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "registerBApp",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokens", "type": "address[]"},
            {"name": "sharedRiskLevels", "type": "uint32[]"},
            {"name": "metadataURI", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "owner",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "event",
        "name": "StrategyCreated",
        "anonymous": False,
        "inputs": [
            {"name": "strategyId", "type": "uint32", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "fee", "type": "uint32", "indexed": False},
            {"name": "metadataURI", "type": "string", "indexed": False},
        ],
    },
    {"type": "receive", "stateMutability": "payable"},
]


def _entry(name: str) -> dict:
    return next(e for e in SAMPLE_ABI if e.get("name") == name)


def calldata(function_name: str, *args) -> str:
    entry = _entry(function_name)
    types = [i["type"] for i in entry["inputs"]]
    return function_selector(abi_signature(entry)) + encode(types, list(args)).hex()


def strategy_created_log(strategy_id: int, owner: str = SENDER, fee: int = 100, address: str = CONTRACT) -> dict:
    return {
        "address": address,
        "topics": [
            event_topic(abi_signature(_entry("StrategyCreated"))),
            "0x" + encode(["uint32"], [strategy_id]).hex(),
            "0x" + encode(["address"], [owner]).hex(),
        ],
        "data": "0x" + encode(["uint32", "string"], [fee, "ipfs://meta"]).hex(),
    }


def make_tx(tx_hash: str, to: Optional[str] = CONTRACT, data: str = "0x", sender: str = SENDER, value: int = 0) -> dict:
    return {"hash": tx_hash, "from": sender, "to": to, "data": data, "value": value}


class FakeChainReader:
    """
    Deterministic chain. Blocks without explicit transactions are empty.
    Heights above `height` are not available.
    """

    def __init__(
        self,
        height: int,
        transactions: Optional[Dict[int, List[dict]]] = None,
        receipts: Optional[Dict[str, dict]] = None,
        failing_blocks: Iterable[int] = (),
        failing_receipts: Iterable[str] = (),
        unreachable_attempts: int = 0,
        chain_id: int = 7032118028,
    ):
        self.height = height
        self.transactions = transactions or {}
        self.receipts = receipts or {}
        self.failing_blocks = set(failing_blocks)
        self.failing_receipts = set(failing_receipts)
        # number of block fetches that fail as if the node were down
        self.unreachable_attempts = unreachable_attempts
        self._chain_id = chain_id
        self.block_requests: List[int] = []
        self.receipt_requests: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    async def current_height(self) -> int:
        return self.height

    async def chain_id(self) -> int:
        return self._chain_id

    async def get_block_with_transactions(self, height: int) -> dict:
        self.block_requests.append(height)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.unreachable_attempts > 0:
                self.unreachable_attempts -= 1
                raise ConnectivityError("connection refused")
            if height in self.failing_blocks or height > self.height:
                raise FetchError(f"block {height} unavailable")
            return {
                "number": height,
                "timestamp": GENESIS_TIME + height * 12,
                "transactions": list(self.transactions.get(height, [])),
            }
        finally:
            self.in_flight -= 1

    async def get_transaction_receipt(self, tx_hash: str) -> dict:
        self.receipt_requests[tx_hash] += 1
        await asyncio.sleep(0)
        if tx_hash in self.failing_receipts:
            raise FetchError(f"receipt {tx_hash} unavailable")
        return self.receipts.get(tx_hash, {"status": True, "logs": []})


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sparse_chain(height: int, every: int = 10, contract: str = CONTRACT) -> FakeChainReader:
    """One withdraw to the contract every `every` blocks plus noise to another address."""
    txs: Dict[int, List[dict]] = {}
    for n in range(1, height + 1):
        block_txs = [make_tx(f"0x{n:04x}ff", to=OTHER)]
        if n % every == 0:
            block_txs.append(make_tx(f"0x{n:04x}aa", to=contract, data=calldata("withdraw", OTHER, n)))
        txs[n] = block_txs
    return FakeChainReader(height, transactions=txs)


@pytest.fixture
def sample_abi() -> list:
    return SAMPLE_ABI


@pytest.fixture
def decoder() -> AbiCallDecoder:
    return AbiCallDecoder(SAMPLE_ABI)


@pytest.fixture
def annotator() -> EventAnnotator:
    return EventAnnotator(SAMPLE_ABI, {"createStrategy": "StrategyCreated.strategyId"})


@pytest.fixture
def abi_file(tmp_path):
    path = tmp_path / "contract-abi.json"
    path.write_text(json.dumps(SAMPLE_ABI))
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
