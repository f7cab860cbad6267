"""
JSON-RPC 2.0 transport over a pooled requests session.

- Backs off on HTTP 429 (honouring Retry-After), on HTTP 5xx, on rate-limit style
  RPC errors and on network errors, doubling the delay up to MAX_BACKOFF.
- A node that cannot be reached (or keeps answering 5xx) after all attempts raises
  ConnectivityError; an RPC error object or a 4xx status raises FetchError.
"""

import itertools
import logging
import time
from typing import Any, Optional

import requests
from eth_utils import to_checksum_address
from requests.adapters import HTTPAdapter

from chain_indexer.errors import ConnectivityError, FetchError
from chain_indexer.variables import (
    DEFAULT_RPC_MAX_ATTEMPTS,
    DEFAULT_RPC_TIMEOUT,
    MAX_BACKOFF,
    ZERO_ADDRESS,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("rate limit", "too many", "capacity", "timeout")


# ---------- Utils ----------
def hex_to_int(h: Optional[Any]) -> int:
    if h is None or h == "" or h == "0x":
        return 0
    if isinstance(h, int):
        return h
    return int(h, 16)


def to_block_hex(n: int) -> str:
    return hex(int(n))


def checksum(addr_hex: Optional[str]) -> str:
    if not addr_hex:
        return ZERO_ADDRESS
    try:
        return to_checksum_address(addr_hex)
    except (ValueError, TypeError):
        return addr_hex


class RpcClient:
    """Minimal JSON-RPC client for an EVM node."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        max_attempts: int = DEFAULT_RPC_MAX_ATTEMPTS,
        backoff: float = 0.5,
        pool_size: int = 32,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self._ids = itertools.count(1)

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def call(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        backoff = self.backoff
        last_err: Optional[Exception] = None

        for _ in range(self.max_attempts):
            try:
                r = self.session.post(self.url, json=payload, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                last_err = e
                logger.debug(f"RPC {method} network error: {e}")
                time.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = float(ra) if ra and ra.isdigit() else backoff
                last_err = FetchError(f"RPC {method} rate limited (HTTP 429)")
                time.sleep(delay)
                backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            if r.status_code >= 500:
                # gateway or node overload; retried like a network error
                try:
                    r.raise_for_status()
                except requests.exceptions.HTTPError as e:
                    last_err = e
                logger.debug(f"RPC {method} HTTP {r.status_code}, retrying")
                time.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            try:
                r.raise_for_status()
                resp = r.json()
            except requests.exceptions.HTTPError as e:
                raise FetchError(f"RPC {method} failed: {e}") from e
            except ValueError as e:
                raise FetchError(f"RPC {method} returned invalid JSON: {e}") from e

            if "error" in resp:
                msg = str(resp.get("error", "")).lower()
                if any(x in msg for x in RATE_LIMIT_MARKERS):
                    last_err = FetchError(f"RPC {method} throttled: {resp['error']}")
                    time.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                    continue
                raise FetchError(f"RPC error for {method}: {resp['error']}")
            return resp.get("result")

        if isinstance(last_err, requests.exceptions.RequestException):
            raise ConnectivityError(
                f"RPC endpoint {self.url} unreachable after {self.max_attempts} attempts: {last_err}"
            ) from last_err
        raise FetchError(f"RPC {method} failed after {self.max_attempts} attempts: {last_err}")

    def close(self) -> None:
        self.session.close()
