"""
chain_indexer: incremental, checkpointed indexer for transactions sent to one contract.
"""

from .config import IndexerConfig
from .models import ScanProgress, ScanResult, TransactionRecord, TxStatus
from .query import most_recent
from .scanner import Scanner
from .store import TransactionStore

__all__ = [
    "IndexerConfig",
    "ScanProgress",
    "ScanResult",
    "Scanner",
    "TransactionRecord",
    "TransactionStore",
    "TxStatus",
    "most_recent",
]
