"""Tests for EVMRPCClient: payloads, hex decoding and error mapping."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from tenacity import wait_none

from withdrawdesk.exceptions import DeterministicTransferError, ExternalServiceError, TransactionFailedError
from withdrawdesk.infra.blockchain.evm.rpc_client import EVMRPCClient


@pytest.fixture()
def mock_http():
    return AsyncMock()


@pytest.fixture()
def rpc(mock_http):
    return EVMRPCClient(rpc_url="https://eth.example", http_client=mock_http)


@pytest.fixture()
def no_wait(monkeypatch):
    monkeypatch.setattr(EVMRPCClient._call.retry, "wait", wait_none())


def _mock_response(data: dict):
    resp = MagicMock()
    resp.json.return_value = data
    return resp


def _payload(mock_http) -> dict:
    return mock_http.post.call_args[1]["json"]


class TestReads:
    async def test_pending_nonce(self, rpc, mock_http):
        mock_http.post.return_value = _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0x1a"})

        assert await rpc.get_transaction_count("0xabc") == 26
        assert _payload(mock_http)["params"] == ["0xabc", "pending"]

    async def test_receipt_pending_is_none(self, rpc, mock_http):
        mock_http.post.return_value = _mock_response({"jsonrpc": "2.0", "id": 1, "result": None})
        assert await rpc.get_transaction_receipt("0xhash") is None

    async def test_send_raw_hex_prefixed(self, rpc, mock_http):
        mock_http.post.return_value = _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xhash"})

        assert await rpc.send_raw_transaction(b"\xde\xad") == "0xhash"
        assert _payload(mock_http)["params"] == ["0xdead"]


class TestErrors:
    async def test_execution_error_classified(self, rpc, mock_http):
        mock_http.post.return_value = _mock_response({
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": -32000, "message": "insufficient funds for gas * price + value"},
        })

        with pytest.raises(DeterministicTransferError):
            await rpc.estimate_gas({"to": "0xabc"})
        assert mock_http.post.await_count == 1

    async def test_revert_is_transaction_failure(self, rpc, mock_http):
        mock_http.post.return_value = _mock_response({
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": 3, "message": "execution reverted"},
        })

        with pytest.raises(TransactionFailedError, match="execution reverted"):
            await rpc.estimate_gas({"to": "0xabc"})

    async def test_exhausted_retries_surface_rpc_message(self, rpc, mock_http, no_wait):
        mock_http.post.return_value = _mock_response({
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": -32005, "message": "daily request limit reached"},
        })

        with pytest.raises(ExternalServiceError, match="daily request limit reached"):
            await rpc.gas_price()
        assert mock_http.post.await_count == 3

    async def test_transient_error_recovers(self, rpc, mock_http, no_wait):
        mock_http.post.side_effect = [
            ExternalServiceError("HTTP 503 from https://eth.example"),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0x3b9aca00"}),
        ]

        assert await rpc.gas_price() == 10**9
