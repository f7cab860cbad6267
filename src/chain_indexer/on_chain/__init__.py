"""
On-chain collaborators: JSON-RPC transport, chain reader and ABI decoding.
"""

from .decoder import AbiCallDecoder, EventAnnotator, load_abi
from .reader import JsonRpcChainReader
from .rpc import RpcClient, checksum, hex_to_int

__all__ = [
    "AbiCallDecoder",
    "EventAnnotator",
    "JsonRpcChainReader",
    "RpcClient",
    "checksum",
    "hex_to_int",
    "load_abi",
]
