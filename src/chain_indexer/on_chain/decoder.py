"""
ABI-driven call decoding and log annotation.

AbiCallDecoder maps the 4-byte selector of a transaction's calldata to the
contract function it invokes, and checks the arguments decode against the
function's input types.

EventAnnotator pulls a single field out of an event emitted by the target
contract (e.g. the id of a freshly created strategy) so it can be stored in
TransactionRecord.extra.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from chain_indexer.errors import DecodeError

logger = logging.getLogger(__name__)


# ---------- ABI helpers ----------
def load_abi(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read an ABI from a bare JSON list or from a build artifact with an "abi" key."""
    with Path(path).open("r", encoding="utf-8") as f:
        payload = json.load(f)
    if isinstance(payload, dict):
        payload = payload.get("abi", [])
    if not isinstance(payload, list):
        raise ValueError(f"{path} does not contain an ABI list")
    return payload


def collapse_type(param: Mapping[str, Any]) -> str:
    """Canonical type string, expanding tuples: tuple[] -> (uint256,address)[]."""
    t = param["type"]
    if t.startswith("tuple"):
        inner = ",".join(collapse_type(c) for c in param.get("components", []))
        return f"({inner}){t[len('tuple'):]}"
    return t


def abi_signature(entry: Mapping[str, Any]) -> str:
    types = ",".join(collapse_type(i) for i in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def function_selector(signature: str) -> str:
    return "0x" + bytes(keccak(text=signature)[:4]).hex()


def event_topic(signature: str) -> str:
    return "0x" + bytes(keccak(text=signature)).hex()


def _hex_to_bytes(data: Optional[str]) -> bytes:
    clean = (data or "").lower()
    if clean.startswith("0x"):
        clean = clean[2:]
    return bytes.fromhex(clean)


def _stringify(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


# ---------- Call decoding ----------
class AbiCallDecoder:
    """Resolve calldata to the name of the contract function it calls."""

    def __init__(self, abi: List[Dict[str, Any]]):
        self.functions: Dict[str, Tuple[str, List[str]]] = {}
        self.has_receive = False
        self.has_fallback = False

        for entry in abi:
            kind = entry.get("type", "function")
            if kind == "function" and entry.get("name"):
                types = [collapse_type(i) for i in entry.get("inputs", [])]
                self.functions[function_selector(abi_signature(entry))] = (entry["name"], types)
            elif kind == "receive":
                self.has_receive = True
            elif kind == "fallback":
                self.has_fallback = True

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AbiCallDecoder":
        return cls(load_abi(path))

    def decode_call(self, data: Optional[str]) -> Tuple[str, Tuple[Any, ...]]:
        """Return (function name, decoded arguments). Raises DecodeError."""
        try:
            raw = _hex_to_bytes(data)
        except ValueError as e:
            raise DecodeError(f"calldata is not hex: {e}") from e

        if len(raw) < 4:
            raise DecodeError("calldata shorter than a selector")

        selector = "0x" + raw[:4].hex()
        if selector not in self.functions:
            if self.has_fallback:
                return "fallback", ()
            raise DecodeError(f"unknown selector {selector}")

        name, types = self.functions[selector]
        try:
            args = abi_decode(types, raw[4:]) if types else ()
        except (DecodingError, ValueError, OverflowError) as e:
            raise DecodeError(f"arguments of {name} do not decode: {e}") from e
        return name, tuple(args)

    def decode(self, data: Optional[str], value: int = 0) -> str:
        """Function name for a call with `data` and `value` wei attached."""
        if not data or data == "0x":
            if self.has_receive and value > 0:
                return "receive"
            if self.has_fallback:
                return "fallback"
            raise DecodeError("empty calldata and no receive/fallback in ABI")
        name, _ = self.decode_call(data)
        return name


# ---------- Event annotation ----------
class EventAnnotator:
    """
    Copy one event field into TransactionRecord.extra per function name.

    Rules map a function name to "EventName.field", e.g.
    {"createStrategy": "StrategyCreated.strategyId"}.
    """

    def __init__(self, abi: List[Dict[str, Any]], rules: Mapping[str, str]):
        events = {e["name"]: e for e in abi if e.get("type") == "event" and e.get("name")}
        self.rules: Dict[str, Tuple[Dict[str, Any], str, str]] = {}

        for function_name, target in rules.items():
            event_name, _, field_name = target.partition(".")
            event = events.get(event_name)
            fields = [i.get("name") for i in event.get("inputs", [])] if event else []
            if not field_name or field_name not in fields:
                logger.warning(f"Annotation rule {function_name} -> {target} ignored: no such event field")
                continue
            self.rules[function_name] = (event, event_topic(abi_signature(event)), field_name)

    def annotate(self, function_name: str, receipt: Mapping[str, Any], contract: str) -> Dict[str, str]:
        rule = self.rules.get(function_name)
        if rule is None:
            return {}
        event, topic0, field_name = rule
        contract = contract.lower()

        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if (log.get("address") or "").lower() != contract or not topics:
                continue
            if topics[0].lower() != topic0:
                continue
            try:
                return {field_name: _stringify(self._extract(event, field_name, log))}
            except (DecodingError, ValueError, IndexError, OverflowError) as e:
                logger.warning(f"Could not decode {event['name']}.{field_name}: {e}")
                return {}
        return {}

    @staticmethod
    def _extract(event: Mapping[str, Any], field_name: str, log: Mapping[str, Any]) -> Any:
        inputs = event.get("inputs", [])
        indexed = [i for i in inputs if i.get("indexed")]
        plain = [i for i in inputs if not i.get("indexed")]

        for pos, param in enumerate(indexed, start=1):
            if param.get("name") != field_name:
                continue
            topic = log["topics"][pos]
            t = collapse_type(param)
            # dynamic indexed values are stored as their keccak hash
            if t in ("string", "bytes") or t.endswith("]") or t.startswith("("):
                return topic
            (value,) = abi_decode([t], _hex_to_bytes(topic))
            return value

        values = abi_decode([collapse_type(p) for p in plain], _hex_to_bytes(log.get("data")))
        for param, value in zip(plain, values):
            if param.get("name") == field_name:
                return value
        raise ValueError(f"field {field_name} missing from {event.get('name')}")
