from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any

import httpx

from incubus.core.metrics import metrics_registry

logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal(10) ** 18


class ChainRpcError(RuntimeError):
    pass


def wei_to_ether(wei: int) -> Decimal:
    return Decimal(wei) / WEI_PER_ETHER


class JsonRpcClient:
    """Minimal EVM JSON-RPC client for read-only balance queries."""

    def __init__(
        self,
        *,
        rpc_url: str,
        chain_label: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url
        self.chain_label = chain_label
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as exc:
            raise ChainRpcError(f"{method} request failed: {exc}") from exc
        finally:
            metrics_registry.record_rpc_duration(
                chain=self.chain_label,
                duration_seconds=time.perf_counter() - started,
            )
        if response.status_code >= 400:
            raise ChainRpcError(f"{method} failed ({response.status_code}): {response.text}")
        try:
            body = response.json()
        except ValueError as exc:
            raise ChainRpcError(f"{method} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ChainRpcError(f"{method} returned a non-object body: {type(body).__name__}")
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ChainRpcError(f"{method} returned error: {message}")
        if "result" not in body:
            raise ChainRpcError(f"{method} returned no result")
        return body["result"]

    async def get_balance(self, address: str) -> Decimal:
        result = await self.call("eth_getBalance", [address, "latest"])
        try:
            wei = int(result, 16)
        except (TypeError, ValueError) as exc:
            raise ChainRpcError(f"eth_getBalance returned a non-hex value: {result!r}") from exc
        logger.debug("Fetched balance chain=%s address=%s wei=%s", self.chain_label, address, wei)
        return wei_to_ether(wei)
