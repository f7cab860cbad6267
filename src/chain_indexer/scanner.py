"""
Scanner: walks blocks and indexes transactions sent to the target contract.

Two walks share the per-transaction classification:

- scan_range: forward over [from, to] in batches of `batch_size` blocks fetched
  concurrently, never past the current chain head. After every batch the checkpoint
  is advanced to the highest block fetched in it and the store is persisted, so an
  interrupted scan loses at most the batch in flight.
- find_recent: backward from the chain head one block at a time, stopping as soon
  as enough transactions are found. Nothing is written to the store.

A block or receipt that cannot be fetched is logged and skipped. A batch in which
every block failed because the node was unreachable is retried; once retries are
exhausted ConnectivityError is raised and the store keeps its last persisted state.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from chain_indexer.classify import classify_transaction, is_target_transaction, normalize_address
from chain_indexer.errors import ConnectivityError, FetchError
from chain_indexer.models import ScanProgress, ScanResult, TransactionRecord
from chain_indexer.progress import ProgressTracker, describe
from chain_indexer.store import TransactionStore
from chain_indexer.variables import (
    DEFAULT_BATCH_RETRIES,
    DEFAULT_BATCH_SIZE,
    DEFAULT_PROGRESS_INTERVAL,
    DEFAULT_RETRY_DELAY,
)

logger = logging.getLogger(__name__)


@dataclass
class _BlockOutcome:
    height: int
    new_records: int = 0
    error: Optional[FetchError] = None


class _RunState:
    """Counters shared by the block tasks of one scan."""

    def __init__(self, tracker: ProgressTracker):
        self.tracker = tracker
        self.processed = 0
        self.new_records = 0


class Scanner:

    def __init__(
        self,
        reader,
        decoder,
        contract: str,
        annotator=None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
        batch_retries: int = DEFAULT_BATCH_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.reader = reader
        self.decoder = decoder
        self.contract = normalize_address(contract)
        self.annotator = annotator
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.batch_retries = max(0, batch_retries)
        self.retry_delay = retry_delay
        self.on_progress = on_progress
        self.clock = clock

    # ---------- shared helpers ----------
    def _report(self, progress: Optional[ScanProgress]) -> None:
        if progress is None:
            return
        if self.on_progress is not None:
            self.on_progress(progress)
        else:
            logger.info(describe(progress))

    async def current_height(self) -> int:
        try:
            return await self.reader.current_height()
        except FetchError as e:
            raise ConnectivityError(f"Could not read chain height: {e}") from e

    async def _collect_block(self, block: dict, limit: Optional[int] = None) -> List[TransactionRecord]:
        """Classify the target-contract transactions of one block."""
        records: List[TransactionRecord] = []
        for tx in block.get("transactions", []):
            if limit is not None and len(records) >= limit:
                break
            if not is_target_transaction(tx, self.contract):
                continue
            try:
                receipt = await self.reader.get_transaction_receipt(tx["hash"])
            except FetchError as e:
                logger.warning(f"Skipping tx {tx['hash']} in block {block['number']}: receipt unavailable ({e})")
                continue
            records.append(classify_transaction(tx, block, receipt, self.decoder, self.annotator))
        return records

    # ---------- forward scan ----------
    async def _process_height(
        self, height: int, store: TransactionStore, sem: asyncio.Semaphore, state: _RunState
    ) -> _BlockOutcome:
        async with sem:
            try:
                block = await self.reader.get_block_with_transactions(height)
            except FetchError as e:
                return _BlockOutcome(height, error=e)
            records = await self._collect_block(block)

        new = sum(1 for r in records if store.merge(r))
        state.processed += 1
        state.new_records += new
        self._report(state.tracker.update(state.processed, state.new_records))
        return _BlockOutcome(height, new_records=new)

    @staticmethod
    async def _gather(coros) -> List[_BlockOutcome]:
        """Run block tasks together; if one raises, the rest are cancelled before re-raising."""
        tasks = [asyncio.ensure_future(c) for c in coros]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_batch(self, store: TransactionStore, start: int, end: int, state: _RunState) -> List[_BlockOutcome]:
        heights = list(range(start, end + 1))

        for attempt in range(self.batch_retries + 1):
            sem = asyncio.Semaphore(self.batch_size)
            outcomes = await self._gather(
                [self._process_height(h, store, sem, state) for h in heights]
            )
            unreachable = any(isinstance(o.error, ConnectivityError) for o in outcomes)
            if not unreachable or any(o.error is None for o in outcomes):
                break
            if attempt < self.batch_retries:
                delay = self.retry_delay * (attempt + 1)
                logger.warning(
                    f"Blocks {start}..{end} unreachable, retrying batch in {delay:.1f}s "
                    f"({attempt + 1}/{self.batch_retries})"
                )
                await asyncio.sleep(delay)
        else:
            raise ConnectivityError(
                f"Chain endpoint unreachable for blocks {start}..{end} "
                f"after {self.batch_retries} retries"
            )

        for o in outcomes:
            if o.error is not None:
                logger.warning(f"Skipping block {o.height}: {o.error}")
                state.processed += 1
        return list(outcomes)

    async def scan_range(self, store: TransactionStore, from_block: int, to_block: int) -> ScanResult:
        """Index [from_block, to_block] into `store`, persisting after every batch."""
        if from_block > to_block:
            return ScanResult(blocks_scanned=0, new_records=0, checkpoint=store.last_scanned_height)
        if from_block < 0:
            raise ValueError("from_block must not be negative")

        head = await self.current_height()
        if to_block > head:
            logger.info(f"Requested range ends at {to_block}, chain head is {head}; scanning to {head}")
            to_block = head
            if from_block > to_block:
                return ScanResult(blocks_scanned=0, new_records=0, checkpoint=store.last_scanned_height)

        total = to_block - from_block + 1
        state = _RunState(ProgressTracker(total, self.progress_interval, self.clock))
        failed: List[int] = []
        logger.info(
            f"Scanning blocks {from_block}..{to_block} for {self.contract} "
            f"({total} blocks, batch size {self.batch_size})"
        )

        for start in range(from_block, to_block + 1, self.batch_size):
            end = min(start + self.batch_size - 1, to_block)
            outcomes = await self._run_batch(store, start, end, state)
            failed.extend(o.height for o in outcomes if o.error is not None)
            fetched = [o.height for o in outcomes if o.error is None]
            if fetched:
                store.advance_checkpoint(max(fetched))
            store.persist()

        self._report(state.tracker.update(state.processed, state.new_records, force=True))
        result = ScanResult(
            blocks_scanned=total - len(failed),
            new_records=state.new_records,
            checkpoint=store.last_scanned_height,
            failed_blocks=sorted(failed),
        )
        logger.info(
            f"Scan complete: {result.blocks_scanned} blocks, {result.new_records} new transactions, "
            f"checkpoint {result.checkpoint}"
        )
        if failed:
            logger.warning(f"{len(failed)} blocks could not be fetched: {result.failed_blocks}")
        return result

    async def resume(self, store: TransactionStore, start_block: int = 0) -> ScanResult:
        """Continue from the store's checkpoint up to the current chain head."""
        head = await self.current_height()
        start = max(store.last_scanned_height + 1, start_block)
        if start > head:
            logger.info(f"Store is up to date (checkpoint {store.last_scanned_height}, head {head})")
        return await self.scan_range(store, start, head)

    # ---------- backward search ----------
    async def find_recent(self, count: int, search_window: int) -> List[TransactionRecord]:
        """
        Walk back from the chain head until `count` transactions are found or
        `search_window` blocks have been examined. Records come back in
        descending block order; the store is not touched.
        """
        if count <= 0 or search_window <= 0:
            return []

        head = await self.current_height()
        lowest = max(0, head - search_window + 1)
        tracker = ProgressTracker(head - lowest + 1, self.progress_interval, self.clock)
        found: List[TransactionRecord] = []
        examined = 0
        unreachable = 0

        logger.info(f"Searching back from block {head} for {count} transactions to {self.contract}")
        for height in range(head, lowest - 1, -1):
            try:
                block = await self.reader.get_block_with_transactions(height)
            except ConnectivityError as e:
                unreachable += 1
                if unreachable > self.batch_retries:
                    raise ConnectivityError(f"Chain endpoint unreachable near block {height}: {e}") from e
                logger.warning(f"Skipping block {height}: {e}")
                examined += 1
                continue
            except FetchError as e:
                logger.warning(f"Skipping block {height}: {e}")
                examined += 1
                continue

            unreachable = 0
            examined += 1
            found.extend(await self._collect_block(block, limit=count - len(found)))
            self._report(tracker.update(examined, len(found)))
            if len(found) >= count:
                break

        logger.info(f"Found {len(found)} transactions in {examined} blocks")
        return found
