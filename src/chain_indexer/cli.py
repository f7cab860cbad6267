"""
Command line entry point.

Usage:
  chain-indexer scan [--from N] [--to N]     # default: resume from checkpoint to chain head
  chain-indexer recent [-n 10]               # latest indexed transactions
  chain-indexer find [-n 10] [--window W]    # search back from the head without indexing
  chain-indexer show <txhash>
  chain-indexer stats
  chain-indexer reset [--yes]
"""

import argparse
import asyncio
import functools
import logging
import sys
from typing import Iterable, List, Optional

from chain_indexer.config import IndexerConfig
from chain_indexer.errors import ConfigError, ConnectivityError, IndexerError, PersistenceError
from chain_indexer.models import TransactionRecord
from chain_indexer.on_chain import AbiCallDecoder, EventAnnotator, JsonRpcChainReader, RpcClient, checksum, load_abi
from chain_indexer.progress import finish_progress, render_progress
from chain_indexer.query import find_transaction, most_recent, summarize
from chain_indexer.scanner import Scanner
from chain_indexer.store import TransactionStore
from chain_indexer.variables import DEFAULT_RECENT_COUNT

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(message)s',
        filename=log_file,
        filemode='a',
    )


def build_scanner(config: IndexerConfig, reader, on_progress=None) -> Scanner:
    try:
        abi = load_abi(config.abi_path)
    except (OSError, ValueError) as e:
        logger.warning(f"ABI not loaded from {config.abi_path} ({e}); function names will be 'unknown'")
        abi = []

    return Scanner(
        reader,
        AbiCallDecoder(abi),
        config.contract,
        annotator=EventAnnotator(abi, config.annotations),
        batch_size=config.batch_size,
        progress_interval=config.progress_interval,
        batch_retries=config.batch_retries,
        on_progress=on_progress,
    )


async def check_network(reader, config: IndexerConfig) -> None:
    if config.chain_id is None:
        return
    try:
        chain_id = await reader.chain_id()
    except IndexerError as e:
        raise ConnectivityError(f"Failed to connect to RPC {config.rpc_url}: {e}") from e
    if chain_id != config.chain_id:
        raise ConfigError(f"RPC {config.rpc_url} serves chain {chain_id}, expected {config.chain_id}")


# ---------- Output ----------
def format_records(records: Iterable[TransactionRecord]) -> List[str]:
    lines = [f"{'#':>3}  {'Block':>10}  {'Time (UTC)':<19}  {'Function':<24}  {'Status':<7}  {'From':<42}  Hash"]
    for i, r in enumerate(records, 1):
        line = (
            f"{i:>3}  {r.block_height:>10}  {r.block_time:%Y-%m-%d %H:%M:%S}  "
            f"{r.function_name:<24}  {r.status.value:<7}  {checksum(r.from_address):<42}  {r.hash}"
        )
        if r.extra:
            line += "  " + " ".join(f"{k}={v}" for k, v in sorted(r.extra.items()))
        lines.append(line)
    return lines


def print_records(records: List[TransactionRecord]) -> None:
    if not records:
        print("No transactions found.")
        return
    for line in format_records(records):
        print(line)


# ---------- Commands ----------
async def _with_reader(config: IndexerConfig, fn):
    client = RpcClient(config.rpc_url, timeout=config.rpc_timeout, max_attempts=config.rpc_max_attempts)
    try:
        reader = JsonRpcChainReader(client)
        await check_network(reader, config)
        return await fn(reader)
    finally:
        client.close()


def cmd_scan(args, config: IndexerConfig) -> int:
    store = TransactionStore.load(config.data_dir, config.contract)
    on_progress = None if args.quiet else functools.partial(render_progress, prefix="scan")

    async def run(reader):
        scanner = build_scanner(config, reader, on_progress=on_progress)
        if args.from_block is None and args.to_block is None:
            return await scanner.resume(store, start_block=config.start_block)
        to_block = args.to_block if args.to_block is not None else await scanner.current_height()
        from_block = args.from_block if args.from_block is not None else max(
            store.last_scanned_height + 1, config.start_block
        )
        return await scanner.scan_range(store, from_block, to_block)

    try:
        result = asyncio.run(_with_reader(config, run))
    finally:
        if on_progress is not None:
            finish_progress()

    print(f"Blocks scanned: {result.blocks_scanned}")
    print(f"New transactions: {result.new_records}")
    print(f"Checkpoint: {result.checkpoint}")
    if result.failed_blocks:
        print(f"Blocks that could not be fetched (re-scan with --from/--to): {result.failed_blocks}")
    return 0


def cmd_find(args, config: IndexerConfig) -> int:
    window = args.window or config.search_window

    async def run(reader):
        scanner = build_scanner(config, reader)
        return await scanner.find_recent(args.count, window)

    print_records(asyncio.run(_with_reader(config, run)))
    return 0


def cmd_recent(args, config: IndexerConfig) -> int:
    store = TransactionStore.load(config.data_dir, config.contract)
    if store.last_scanned_height == 0 and len(store) == 0:
        print("No indexed history yet; searching recent blocks instead (run 'scan' to build the index).")
        args.window = None
        return cmd_find(args, config)
    print_records(most_recent(store, args.count))
    print(f"(indexed up to block {store.last_scanned_height})")
    return 0


def cmd_show(args, config: IndexerConfig) -> int:
    store = TransactionStore.load(config.data_dir, config.contract)
    record = find_transaction(store, args.tx_hash)
    if record is None:
        print(f"Transaction {args.tx_hash} is not in the index.")
        return 1
    for key, value in record.to_dict().items():
        print(f"{key:>13}: {value}")
    return 0


def cmd_stats(args, config: IndexerConfig) -> int:
    store = TransactionStore.load(config.data_dir, config.contract)
    summary = summarize(store)
    print(f"Contract:      {checksum(config.contract)}")
    print(f"Transactions:  {summary.total}")
    print(f"Checkpoint:    {summary.checkpoint}")
    if summary.total:
        print(f"Blocks:        {summary.first_block}..{summary.last_block}")
        print("By status:     " + ", ".join(f"{k}={v}" for k, v in summary.by_status.items()))
        print("By function:")
        for name, count in summary.by_function.items():
            print(f"  {name:<32} {count}")
    return 0


def cmd_reset(args, config: IndexerConfig) -> int:
    store = TransactionStore.load(config.data_dir, config.contract)
    if not args.yes:
        answer = input(f"Delete {len(store)} indexed transactions and the checkpoint? (y/n): ")
        if answer.strip().lower() != "y":
            print("Reset cancelled.")
            return 0
    store.reset()
    print("Index reset.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chain-indexer", description="Index transactions sent to a contract.")
    p.add_argument("--env-file", default=None, help="path to a .env file")
    p.add_argument("--log-file", default=None, help="append logs to this file")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="index blocks into the local store")
    s.add_argument("--from", dest="from_block", type=int, default=None)
    s.add_argument("--to", dest="to_block", type=int, default=None)
    s.add_argument("-q", "--quiet", action="store_true", help="no progress bar")
    s.set_defaults(func=cmd_scan)

    s = sub.add_parser("recent", help="latest indexed transactions")
    s.add_argument("-n", "--count", type=int, default=DEFAULT_RECENT_COUNT)
    s.set_defaults(func=cmd_recent)

    s = sub.add_parser("find", help="search back from the chain head without indexing")
    s.add_argument("-n", "--count", type=int, default=DEFAULT_RECENT_COUNT)
    s.add_argument("--window", type=int, default=None, help="blocks to examine at most")
    s.set_defaults(func=cmd_find)

    s = sub.add_parser("show", help="print one indexed transaction")
    s.add_argument("tx_hash")
    s.set_defaults(func=cmd_show)

    s = sub.add_parser("stats", help="summary of the indexed history")
    s.set_defaults(func=cmd_stats)

    s = sub.add_parser("reset", help="clear the index and checkpoint")
    s.add_argument("--yes", action="store_true", help="do not ask for confirmation")
    s.set_defaults(func=cmd_reset)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        config = IndexerConfig.from_env(env_file=args.env_file)
        return args.func(args, config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
    except ConnectivityError as e:
        logger.error(f"Chain endpoint unavailable: {e}")
    except PersistenceError as e:
        logger.error(f"Could not save the index: {e}")
    except IndexerError as e:
        logger.error(str(e))
    except KeyboardInterrupt:
        logger.warning("Interrupted; the index keeps its last saved batch")
    return 1


if __name__ == "__main__":
    sys.exit(main())
