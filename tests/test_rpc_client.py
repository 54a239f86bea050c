from decimal import Decimal

import httpx
import pytest

from incubus.infrastructure.chain.rpc_client import ChainRpcError, JsonRpcClient


def _client(handler) -> JsonRpcClient:
    return JsonRpcClient(
        rpc_url="https://rpc.example.test",
        chain_label="Ethereum",
        transport=httpx.MockTransport(handler),
    )


async def test_balance_is_converted_from_hex_wei():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": hex(15 * 10**17)})

    assert await _client(handler).get_balance("0xabc") == Decimal("1.5")


@pytest.mark.parametrize(
    "body",
    [
        ["not", "an", "object"],
        "plain string",
        42,
        {"jsonrpc": "2.0", "id": 1},
        {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}},
        {"jsonrpc": "2.0", "id": 1, "result": 12345},
        {"jsonrpc": "2.0", "id": 1, "result": "0xzz"},
        {"jsonrpc": "2.0", "id": 1, "result": None},
    ],
)
async def test_malformed_responses_raise_chain_rpc_error(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    with pytest.raises(ChainRpcError):
        await _client(handler).get_balance("0xabc")


async def test_http_failures_raise_chain_rpc_error():
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    for handler in (server_error, not_json, unreachable):
        with pytest.raises(ChainRpcError):
            await _client(handler).get_balance("0xabc")
