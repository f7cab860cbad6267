"""Tests for the JSON-RPC client and chain reader with mocked HTTP."""

import json

import pytest
import requests
import responses

from chain_indexer.errors import ConnectivityError, FetchError
from chain_indexer.on_chain.reader import JsonRpcChainReader
from chain_indexer.on_chain.rpc import RpcClient, checksum, hex_to_int

RPC_URL = "http://node.local:8545"


def rpc_result(result):
    return {"jsonrpc": "2.0", "id": 1, "result": result}


@pytest.fixture
def client():
    return RpcClient(RPC_URL, timeout=5, max_attempts=3, backoff=0)


class TestHelpers:

    def test_hex_to_int(self):
        assert hex_to_int("0x1a") == 26
        assert hex_to_int("0x") == 0
        assert hex_to_int(None) == 0
        assert hex_to_int(7) == 7

    def test_checksum(self):
        assert checksum("0x5217c9034048b1fa9fb1e300f94fcd7002138ea5") == "0x5217C9034048B1Fa9Fb1e300F94fCd7002138Ea5"
        assert checksum(None) == "0x0000000000000000000000000000000000000000"
        assert checksum("not-an-address") == "not-an-address"


class TestRpcClient:

    @responses.activate
    def test_call_returns_result(self, client):
        responses.add(responses.POST, RPC_URL, json=rpc_result("0x10"), status=200)

        assert client.call("eth_blockNumber", []) == "0x10"
        body = json.loads(responses.calls[0].request.body)
        assert body["method"] == "eth_blockNumber"
        assert body["jsonrpc"] == "2.0"

    @responses.activate
    def test_rpc_error_is_fetch_error(self, client):
        responses.add(
            responses.POST, RPC_URL,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}},
        )

        with pytest.raises(FetchError) as exc:
            client.call("eth_getBlockByNumber", ["0x1", True])
        assert not isinstance(exc.value, ConnectivityError)
        assert len(responses.calls) == 1

    @responses.activate
    def test_rate_limit_is_retried(self, client):
        responses.add(responses.POST, RPC_URL, status=429, headers={"Retry-After": "0"})
        responses.add(responses.POST, RPC_URL, json=rpc_result("0x2a"))

        assert client.call("eth_blockNumber", []) == "0x2a"
        assert len(responses.calls) == 2

    @responses.activate
    def test_throttle_error_is_retried(self, client):
        responses.add(
            responses.POST, RPC_URL,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": 429, "message": "Too many requests"}},
        )
        responses.add(responses.POST, RPC_URL, json=rpc_result("0x1"))

        assert client.call("eth_chainId", []) == "0x1"

    @responses.activate
    def test_unreachable_node(self, client):
        responses.add(responses.POST, RPC_URL, body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(ConnectivityError):
            client.call("eth_blockNumber", [])
        assert len(responses.calls) == 3

    @responses.activate
    def test_client_error_is_not_retried(self, client):
        responses.add(responses.POST, RPC_URL, status=400, body="bad request")

        with pytest.raises(FetchError) as exc:
            client.call("eth_blockNumber", [])
        assert not isinstance(exc.value, ConnectivityError)
        assert len(responses.calls) == 1

    @responses.activate
    def test_gateway_errors_are_retried(self, client):
        responses.add(responses.POST, RPC_URL, status=502, body="bad gateway")
        responses.add(responses.POST, RPC_URL, json=rpc_result("0x5"))

        assert client.call("eth_blockNumber", []) == "0x5"
        assert len(responses.calls) == 2

    @responses.activate
    def test_persistent_server_error_is_connectivity_error(self, client):
        responses.add(responses.POST, RPC_URL, status=503, body="unavailable")

        with pytest.raises(ConnectivityError):
            client.call("eth_getBlockByNumber", ["0x1", True])
        assert len(responses.calls) == 3


def _dispatch(handlers):
    def callback(request):
        payload = json.loads(request.body)
        result = handlers[payload["method"]](payload["params"])
        return 200, {}, json.dumps(rpc_result(result))
    return callback


class TestJsonRpcChainReader:

    @pytest.mark.asyncio
    async def test_block_is_normalized(self, client):
        block = {
            "number": "0xa",
            "timestamp": "0x65",
            "transactions": [
                {
                    "hash": "0xAA",
                    "from": "0x1111111111111111111111111111111111111111",
                    "to": "0x5217C9034048B1Fa9Fb1e300F94fCd7002138Ea5",
                    "input": "0xa9059cbb",
                    "value": "0x3",
                },
                {"hash": "0xBB", "from": "0x11", "to": None, "input": "0x6080", "value": "0x0"},
            ],
        }
        with responses.RequestsMock() as rsps:
            rsps.add_callback(
                responses.POST, RPC_URL,
                callback=_dispatch({"eth_getBlockByNumber": lambda params: block if params == ["0xa", True] else None}),
            )
            result = await JsonRpcChainReader(client).get_block_with_transactions(10)

        assert result["number"] == 10
        assert result["timestamp"] == 101
        assert result["transactions"][0] == {
            "hash": "0xaa",
            "from": "0x1111111111111111111111111111111111111111",
            "to": "0x5217c9034048b1fa9fb1e300f94fcd7002138ea5",
            "data": "0xa9059cbb",
            "value": 3,
        }
        assert result["transactions"][1]["to"] is None

    @pytest.mark.asyncio
    async def test_missing_block(self, client):
        with responses.RequestsMock() as rsps:
            rsps.add_callback(responses.POST, RPC_URL, callback=_dispatch({"eth_getBlockByNumber": lambda p: None}))

            with pytest.raises(FetchError):
                await JsonRpcChainReader(client).get_block_with_transactions(999)

    @pytest.mark.asyncio
    async def test_receipt_and_height(self, client):
        receipt = {
            "status": "0x0",
            "logs": [{"address": "0xABC", "topics": ["0xDEAD"], "data": "0x"}],
        }
        with responses.RequestsMock() as rsps:
            rsps.add_callback(
                responses.POST, RPC_URL,
                callback=_dispatch({
                    "eth_getTransactionReceipt": lambda p: receipt,
                    "eth_blockNumber": lambda p: "0x64",
                    "eth_chainId": lambda p: "0x1a32d7c8c",
                }),
            )
            reader = JsonRpcChainReader(client)

            rcpt = await reader.get_transaction_receipt("0xaa")
            height = await reader.current_height()
            chain_id = await reader.chain_id()

        assert rcpt == {"status": False, "logs": [{"address": "0xabc", "topics": ["0xdead"], "data": "0x"}]}
        assert height == 100
        assert chain_id == 0x1A32D7C8C
