"""
Async chain reader backed by the JSON-RPC client.

Blocking HTTP calls run in worker threads so a batch of block fetches can be
awaited concurrently. Results are normalized to plain dicts:

    block   {"number", "timestamp", "transactions": [{"hash", "from", "to", "data", "value"}]}
    receipt {"status": bool, "logs": [{"address", "topics", "data"}]}
"""

import asyncio
from typing import Any, Dict, List

from chain_indexer.errors import FetchError
from chain_indexer.on_chain.rpc import RpcClient, hex_to_int, to_block_hex


def _normalize_tx(tx: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "hash": (tx.get("hash") or "").lower(),
        "from": (tx.get("from") or "").lower(),
        "to": (tx.get("to") or "").lower() or None,  # None for contract creation
        "data": tx.get("input") or tx.get("data") or "0x",
        "value": hex_to_int(tx.get("value")),
    }


def _normalize_log(log: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "address": (log.get("address") or "").lower(),
        "topics": [t.lower() for t in log.get("topics") or []],
        "data": log.get("data") or "0x",
    }


class JsonRpcChainReader:

    def __init__(self, client: RpcClient):
        self.client = client

    async def _call(self, method: str, params: list) -> Any:
        return await asyncio.to_thread(self.client.call, method, params)

    async def current_height(self) -> int:
        return hex_to_int(await self._call("eth_blockNumber", []))

    async def chain_id(self) -> int:
        return hex_to_int(await self._call("eth_chainId", []))

    async def get_block_with_transactions(self, height: int) -> Dict[str, Any]:
        blk = await self._call("eth_getBlockByNumber", [to_block_hex(height), True])
        if not blk:
            raise FetchError(f"Block {height} not available")
        txs: List[Dict[str, Any]] = [
            _normalize_tx(tx) for tx in blk.get("transactions", []) if isinstance(tx, dict)
        ]
        return {
            "number": hex_to_int(blk.get("number")),
            "timestamp": hex_to_int(blk.get("timestamp")),
            "transactions": txs,
        }

    async def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        rcpt = await self._call("eth_getTransactionReceipt", [tx_hash])
        if not rcpt:
            raise FetchError(f"Receipt for {tx_hash} not available")
        return {
            "status": hex_to_int(rcpt.get("status") or "0x1") == 1,
            "logs": [_normalize_log(lg) for lg in rcpt.get("logs") or []],
        }
