"""
Per-transaction classification shared by the forward scan and the backward search.
"""

import logging
from typing import Any, Mapping, Optional

from chain_indexer.errors import DecodeError
from chain_indexer.models import TransactionRecord, TxStatus
from chain_indexer.variables import UNKNOWN_FUNCTION

logger = logging.getLogger(__name__)


def normalize_address(value: Optional[str]) -> str:
    """Lowercase address; "" for a missing recipient (contract creation)."""
    return (value or "").strip().lower()


def is_target_transaction(tx: Mapping[str, Any], contract: str) -> bool:
    to = normalize_address(tx.get("to"))
    return bool(to) and to == normalize_address(contract)


def classify_transaction(
    tx: Mapping[str, Any],
    block: Mapping[str, Any],
    receipt: Mapping[str, Any],
    decoder,
    annotator=None,
) -> TransactionRecord:
    """
    Build the record for a target-contract transaction.

    A call that does not decode is kept with function name "unknown"; status
    comes from the receipt and the timestamp from the block.
    """
    try:
        function_name = decoder.decode(tx.get("data"), tx.get("value") or 0)
    except DecodeError as e:
        logger.debug(f"tx {tx.get('hash')}: {e}")
        function_name = UNKNOWN_FUNCTION

    to_address = normalize_address(tx.get("to"))
    extra = {}
    if annotator is not None and function_name != UNKNOWN_FUNCTION:
        extra = annotator.annotate(function_name, receipt, to_address)

    return TransactionRecord(
        hash=(tx.get("hash") or "").lower(),
        block_height=int(block["number"]),
        from_address=normalize_address(tx.get("from")),
        to_address=to_address,
        function_name=function_name,
        status=TxStatus.from_receipt(bool(receipt.get("status"))),
        timestamp=int(block.get("timestamp") or 0),
        extra=extra,
    )
