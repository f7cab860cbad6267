"""
Read-only views over a TransactionStore. None of these touch the network.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from chain_indexer.models import TransactionRecord
from chain_indexer.store import TransactionStore


def most_recent(store: TransactionStore, n: int) -> List[TransactionRecord]:
    """The `n` records with the highest block height; equal heights keep insertion order."""
    if n <= 0:
        return []
    ordered = sorted(store.records, key=lambda r: r.block_height, reverse=True)
    return ordered[:n]


def by_function(store: TransactionStore, function_name: str) -> List[TransactionRecord]:
    """Records for one function, highest block first."""
    wanted = function_name.lower()
    matches = [r for r in store.records if r.function_name.lower() == wanted]
    return sorted(matches, key=lambda r: r.block_height, reverse=True)


def find_transaction(store: TransactionStore, tx_hash: str) -> Optional[TransactionRecord]:
    return store.get(tx_hash)


@dataclass
class HistorySummary:
    total: int
    checkpoint: int
    first_block: Optional[int] = None
    last_block: Optional[int] = None
    by_function: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)


def summarize(store: TransactionStore) -> HistorySummary:
    records = store.records
    heights = [r.block_height for r in records]
    return HistorySummary(
        total=len(records),
        checkpoint=store.last_scanned_height,
        first_block=min(heights) if heights else None,
        last_block=max(heights) if heights else None,
        by_function=dict(Counter(r.function_name for r in records).most_common()),
        by_status=dict(Counter(r.status.value for r in records)),
    )
