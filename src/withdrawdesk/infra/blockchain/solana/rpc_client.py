"""Solana JSON-RPC client: blockhashes, submission, confirmation and parsed token accounts."""

import base64
import logging

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from withdrawdesk.exceptions import ExternalServiceError
from withdrawdesk.infra.blockchain.failures import failure_from_message
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

# sendTransaction preflight failures: the node simulated the TX and it would fail
PREFLIGHT_ERROR_CODES = {-32002, -32003}

COMMITMENT = "confirmed"


class SolanaRPCClient:
    """Minimal Solana JSON-RPC client for delegated SPL transfers."""

    def __init__(self, rpc_url: str, http_client: RateLimitedClient) -> None:
        self._rpc_url = rpc_url
        self._http = http_client

    @retry(
        retry=retry_if_exception_type(ExternalServiceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _call(self, method: str, params: list) -> dict | list | int | str | None:
        """Execute a JSON-RPC call and return the result field."""
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }
        resp = await self._http.post(self._rpc_url, json=payload)
        data = resp.json()

        if "error" in data:
            error = data["error"]
            msg = error.get("message", str(error))
            if error.get("code") in PREFLIGHT_ERROR_CODES:
                # Simulation failures are not transport problems: surface them without retrying here
                logs = (error.get("data") or {}).get("logs") or []
                raise failure_from_message(f"{msg} {' '.join(logs)}".strip())
            raise ExternalServiceError(f"Solana RPC error ({method}): {msg}")

        return data.get("result")

    async def get_latest_blockhash(self) -> tuple[str, int]:
        """Return (blockhash, lastValidBlockHeight)."""
        result = await self._call("getLatestBlockhash", [{"commitment": COMMITMENT}])
        value = result["value"]  # type: ignore[index]
        return value["blockhash"], int(value["lastValidBlockHeight"])

    async def get_block_height(self) -> int:
        result = await self._call("getBlockHeight", [{"commitment": COMMITMENT}])
        return int(result)  # type: ignore[arg-type]

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """Submit a signed, serialized transaction. Returns its signature."""
        opts = {
            "encoding": "base64",
            "skipPreflight": False,
            "preflightCommitment": COMMITMENT,
            "maxRetries": 0,
        }
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        result = await self._call("sendTransaction", [encoded, opts])
        return str(result)

    async def get_signature_statuses(self, signatures: list[str]) -> list[dict | None]:
        """Statuses in request order; None for signatures the node has not seen."""
        result = await self._call("getSignatureStatuses", [signatures, {"searchTransactionHistory": False}])
        if result is None:
            return [None] * len(signatures)
        return list(result["value"])  # type: ignore[index]

    async def get_parsed_account(self, address: str) -> dict | None:
        """Fetch an account with jsonParsed encoding. None if it does not exist."""
        result = await self._call("getAccountInfo", [address, {"encoding": "jsonParsed", "commitment": COMMITMENT}])
        if result is None:
            return None
        return result.get("value")  # type: ignore[union-attr]

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> list[dict]:
        """Parsed token accounts of `owner` for `mint` (including non-associated ones)."""
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": COMMITMENT}],
        )
        if result is None:
            return []
        return list(result.get("value") or [])  # type: ignore[union-attr]
