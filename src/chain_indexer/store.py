"""
Persisted, deduplicated transaction history for one target contract.

Document layout (one JSON file per contract, keyed by lowercase address):

    {"contract": "0x...", "lastScannedHeight": 123, "transactions": [...]}

An absent or corrupt document loads as an empty store. Writes go to a temporary
file next to the document and are moved over it only once fully flushed, so a
failed write never leaves a half-written document behind.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from chain_indexer.errors import PersistenceError
from chain_indexer.models import TransactionRecord

logger = logging.getLogger(__name__)


def store_path(data_dir: Union[str, Path], contract: str) -> Path:
    return Path(data_dir) / f"{contract.lower()}.json"


class TransactionStore:
    """Transaction records plus the scan checkpoint for one contract."""

    def __init__(self, path: Union[str, Path], contract: str):
        self.path = Path(path)
        self.contract = contract.lower()
        self.last_scanned_height = 0
        self._records: List[TransactionRecord] = []
        self._index: Dict[str, TransactionRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def load(cls, data_dir: Union[str, Path], contract: str) -> "TransactionStore":
        """Load the persisted store, or an empty one if missing or unreadable."""
        store = cls(store_path(data_dir, contract), contract)
        if not store.path.exists():
            return store

        try:
            with store.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
            checkpoint = int(payload.get("lastScannedHeight", 0))
            records = [TransactionRecord.from_dict(r) for r in payload.get("transactions", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Store {store.path} is unreadable, starting empty: {e}")
            return store

        store.last_scanned_height = max(0, checkpoint)
        for record in records:
            store.merge(record)
        logger.debug(
            f"Loaded {len(store)} transactions for {store.contract} "
            f"(checkpoint {store.last_scanned_height})"
        )
        return store

    # ---------- mutation ----------
    def merge(self, record: TransactionRecord) -> bool:
        """Insert `record` unless its hash is already stored. Returns True on insertion."""
        key = record.hash.lower()
        with self._lock:
            if key in self._index:
                return False
            self._index[key] = record
            self._records.append(record)
            return True

    def advance_checkpoint(self, height: int) -> int:
        with self._lock:
            if height > self.last_scanned_height:
                self.last_scanned_height = height
            return self.last_scanned_height

    def reset(self) -> None:
        """Clear all records and the checkpoint, then persist the empty store."""
        with self._lock:
            self._records = []
            self._index = {}
            self.last_scanned_height = 0
        self.persist()
        logger.info(f"Store for {self.contract} reset")

    # ---------- persistence ----------
    def to_document(self) -> dict:
        with self._lock:
            return {
                "contract": self.contract,
                "lastScannedHeight": self.last_scanned_height,
                "transactions": [r.to_dict() for r in self._records],
            }

    def persist(self) -> None:
        """Write the whole store. Raises PersistenceError; the previous file stays intact."""
        document = self.to_document()
        with self._atomic_write() as f:
            json.dump(document, f, ensure_ascii=False, separators=(",", ":"))
        logger.debug(
            f"Persisted {len(document['transactions'])} transactions to {self.path} "
            f"(checkpoint {document['lastScannedHeight']})"
        )

    @contextmanager
    def _atomic_write(self) -> Iterator:
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            Path(tmp_name).replace(self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Temporary file {tmp_name} already gone")

    # ---------- reads ----------
    @property
    def records(self) -> Tuple[TransactionRecord, ...]:
        """All records in insertion order."""
        with self._lock:
            return tuple(self._records)

    def get(self, tx_hash: str) -> Optional[TransactionRecord]:
        with self._lock:
            return self._index.get(tx_hash.lower())

    def __contains__(self, tx_hash: object) -> bool:
        return isinstance(tx_hash, str) and self.get(tx_hash) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
