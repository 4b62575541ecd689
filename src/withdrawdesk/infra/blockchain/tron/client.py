"""TronGrid wallet API client for smart-contract calls, broadcast and receipts."""

import logging
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from withdrawdesk.exceptions import ExternalServiceError
from withdrawdesk.infra.blockchain.failures import failure_from_message
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)


def decode_message(message: str | None) -> str:
    """TronGrid returns error messages hex-encoded."""
    if not message:
        return ""
    try:
        return bytes.fromhex(message).decode("utf-8", errors="replace")
    except ValueError:
        return message


class TronGridClient:
    def __init__(self, api_url: str, http_client: RateLimitedClient, api_key: str = "") -> None:
        self._api_url = api_url.rstrip("/")
        self._http = http_client
        self._headers = {"TRON-PRO-API-KEY": api_key} if api_key else None

    @retry(
        retry=retry_if_exception_type(ExternalServiceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _post(self, path: str, payload: dict[str, Any]) -> dict:
        resp = await self._http.post(f"{self._api_url}{path}", json=payload, headers=self._headers)
        if resp.status_code >= 400:
            raise ExternalServiceError(f"TronGrid {path} returned HTTP {resp.status_code}")
        return resp.json()

    async def trigger_smart_contract(
        self,
        owner_address: str,
        contract_address: str,
        function_selector: str,
        parameter: str,
        fee_limit: int,
    ) -> dict:
        """Build an unsigned contract-call transaction. Addresses are base58 (visible=true)."""
        data = await self._post(
            "/wallet/triggersmartcontract",
            {
                "owner_address": owner_address,
                "contract_address": contract_address,
                "function_selector": function_selector,
                "parameter": parameter,
                "fee_limit": fee_limit,
                "call_value": 0,
                "visible": True,
            },
        )
        result = data.get("result") or {}
        if not result.get("result") or "transaction" not in data:
            raise failure_from_message(decode_message(result.get("message")) or "triggersmartcontract failed")
        return data["transaction"]

    async def trigger_constant_contract(
        self, owner_address: str, contract_address: str, function_selector: str, parameter: str
    ) -> str:
        """Read-only contract call. Returns the hex-encoded return data."""
        data = await self._post(
            "/wallet/triggerconstantcontract",
            {
                "owner_address": owner_address,
                "contract_address": contract_address,
                "function_selector": function_selector,
                "parameter": parameter,
                "visible": True,
            },
        )
        constant = data.get("constant_result") or []
        if not constant:
            message = decode_message((data.get("result") or {}).get("message"))
            raise ExternalServiceError(f"TronGrid constant call {function_selector} failed: {message}")
        return constant[0]

    async def broadcast_transaction(self, signed_transaction: dict) -> str:
        data = await self._post("/wallet/broadcasttransaction", signed_transaction)
        if not data.get("result"):
            message = decode_message(data.get("message")) or data.get("code", "broadcast rejected")
            raise failure_from_message(f"Broadcast failed: {message}")
        return data.get("txid") or signed_transaction["txID"]

    async def get_transaction_info(self, tx_id: str) -> dict | None:
        """Execution info of a transaction; None until it is included in a block."""
        data = await self._post("/wallet/gettransactioninfobyid", {"value": tx_id})
        return data or None
