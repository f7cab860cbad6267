"""
Records produced by the indexer and the results it reports.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from chain_indexer.variables import UNKNOWN_FUNCTION


class TxStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_receipt(cls, ok: bool) -> "TxStatus":
        return cls.SUCCESS if ok else cls.FAILED


@dataclass(frozen=True)
class TransactionRecord:
    """One indexed transaction sent to the target contract."""
    hash: str
    block_height: int
    from_address: str
    to_address: str
    function_name: str = UNKNOWN_FUNCTION
    status: TxStatus = TxStatus.SUCCESS
    timestamp: int = 0  # block time, unix seconds
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is TxStatus.SUCCESS

    @property
    def block_time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "blockHeight": self.block_height,
            "from": self.from_address,
            "to": self.to_address,
            "functionName": self.function_name,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionRecord":
        """Rebuild a record from its persisted form. Raises KeyError/ValueError/TypeError on bad input."""
        tx_hash = data["hash"]
        if not isinstance(tx_hash, str) or not tx_hash:
            raise ValueError(f"invalid transaction hash: {tx_hash!r}")
        extra = data.get("extra") or {}
        if not isinstance(extra, dict):
            raise ValueError(f"invalid extra for {tx_hash}: {extra!r}")
        return cls(
            hash=tx_hash.lower(),
            block_height=int(data["blockHeight"]),
            from_address=str(data.get("from") or "").lower(),
            to_address=str(data.get("to") or "").lower(),
            function_name=str(data.get("functionName") or UNKNOWN_FUNCTION),
            status=TxStatus(data.get("status", TxStatus.SUCCESS.value)),
            timestamp=int(data.get("timestamp", 0)),
            extra={str(k): str(v) for k, v in extra.items()},
        )


@dataclass
class ScanResult:
    blocks_scanned: int
    new_records: int
    checkpoint: int
    failed_blocks: List[int] = field(default_factory=list)


@dataclass
class ScanProgress:
    """Snapshot of a running scan or backward search."""
    processed: int
    total: int
    new_records: int
    elapsed: float
    rate: float  # blocks per second since start
    eta: Optional[float]  # seconds, None until a rate is known

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.processed / self.total * 100.0
