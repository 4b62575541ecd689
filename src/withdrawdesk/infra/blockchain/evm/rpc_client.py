"""Ethereum JSON-RPC client: reads, gas, nonces, raw submission and receipts."""

import logging
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from withdrawdesk.exceptions import ExternalServiceError
from withdrawdesk.infra.blockchain.failures import failure_from_message
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

# Node-side rejections of a transaction (revert during estimate, bad nonce, underpriced...)
EXECUTION_ERROR_CODES = {-32000, -32003, -32015, 3}


def _hex_int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


class EVMRPCClient:
    def __init__(self, rpc_url: str, http_client: RateLimitedClient) -> None:
        self._rpc_url = rpc_url
        self._http = http_client

    @retry(
        retry=retry_if_exception_type(ExternalServiceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        resp = await self._http.post(self._rpc_url, json=payload)
        data = resp.json()

        if "error" in data:
            error = data["error"]
            msg = error.get("message", str(error))
            if error.get("code") in EXECUTION_ERROR_CODES:
                raise failure_from_message(f"{method}: {msg}")
            raise ExternalServiceError(f"EVM RPC error ({method}): {msg}")

        return data.get("result")

    async def call(self, to: str, data: str) -> str:
        """eth_call against the latest block. Returns hex return data."""
        return await self._call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_transaction_count(self, address: str) -> int:
        return _hex_int(await self._call("eth_getTransactionCount", [address, "pending"]))

    async def gas_price(self) -> int:
        return _hex_int(await self._call("eth_gasPrice", []))

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return _hex_int(await self._call("eth_estimateGas", [tx]))

    async def send_raw_transaction(self, raw: bytes) -> str:
        return await self._call("eth_sendRawTransaction", ["0x" + raw.hex()])

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self._call("eth_getTransactionReceipt", [tx_hash])
