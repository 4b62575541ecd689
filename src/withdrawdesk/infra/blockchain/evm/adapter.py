"""Permit2 adapter: allowance reads and batched `transferFrom` on EVM chains."""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance, TransferItem
from withdrawdesk.exceptions import InvalidAddressError, TransactionFailedError
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.infra.blockchain.evm.rpc_client import EVMRPCClient
from withdrawdesk.transfer.amounts import from_base_units

logger = logging.getLogger(__name__)

TRANSFER_DETAILS_TYPE = "(address,address,uint160,address)[]"

TRANSFER_FROM_SELECTOR = function_signature_to_4byte_selector(f"transferFrom({TRANSFER_DETAILS_TYPE})")
ALLOWANCE_SELECTOR = function_signature_to_4byte_selector("allowance(address,address,address)")
BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")
DECIMALS_SELECTOR = function_signature_to_4byte_selector("decimals()")

GAS_MULTIPLIER = Decimal("1.2")


def _checksum(address: str) -> str:
    if not is_address(address):
        raise InvalidAddressError(f"Invalid EVM address: {address}")
    return to_checksum_address(address)


def encode_transfer_from(items: list[TransferItem]) -> str:
    """Calldata for Permit2 transferFrom(AllowanceTransferDetails[])."""
    details = [
        (
            _checksum(item.source_account),
            _checksum(item.destination_account),
            item.amount_base_units,
            _checksum(item.token_address),
        )
        for item in items
    ]
    return "0x" + (TRANSFER_FROM_SELECTOR + encode([TRANSFER_DETAILS_TYPE], [details])).hex()


class EVMPermit2Adapter(ChainAdapter):
    """Moves tokens that owners approved to Permit2 with an allowance for the signer."""

    chain = Chain.ETHEREUM
    max_amount_base_units = 2**160 - 1

    def __init__(
        self,
        rpc: EVMRPCClient,
        permit2_address: str,
        chain_id: int = 1,
        max_items_per_batch: int = 50,
        receipt_poll_attempts: int = 60,
        receipt_poll_interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._rpc = rpc
        self._permit2 = _checksum(permit2_address)
        self._chain_id = chain_id
        self.max_items_per_batch = max_items_per_batch
        self._poll_attempts = receipt_poll_attempts
        self._poll_interval = receipt_poll_interval
        self._sleep = sleep
        self._clock = clock
        self._decimals_cache: dict[str, int] = {}

    def validate_address(self, address: str) -> bool:
        return is_address(address)

    async def derive_account(self, owner: str, token_address: str) -> str:
        # Tokens sit at the owner address itself
        return _checksum(owner)

    def build_transfer_instruction(self, item: TransferItem, authority: str) -> tuple[str, str, int, str]:
        """One AllowanceTransferDetails tuple. Permit2 authorizes by msg.sender, so `authority` is implicit."""
        return (
            _checksum(item.source_account),
            _checksum(item.destination_account),
            item.amount_base_units,
            _checksum(item.token_address),
        )

    def spender_address(self, signer: Signer) -> str:
        return _checksum(signer.address)

    async def submit_and_confirm(self, items: list[TransferItem], signer: Signer) -> str:
        sender = _checksum(signer.address)
        data = encode_transfer_from(items)

        call = {"from": sender, "to": self._permit2, "data": data, "value": "0x0"}
        estimated = await self._rpc.estimate_gas(call)
        nonce = await self._rpc.get_transaction_count(sender)
        gas_price = await self._rpc.gas_price()

        tx: dict[str, Any] = {
            "to": self._permit2,
            "data": data,
            "value": 0,
            "nonce": nonce,
            "gas": int(Decimal(estimated) * GAS_MULTIPLIER),
            "gasPrice": gas_price,
            "chainId": self._chain_id,
        }
        raw = await signer.sign_transaction(tx)
        tx_hash = await self._rpc.send_raw_transaction(raw)
        logger.info("Submitted Permit2 TX %s with %d transfers (nonce %d)", tx_hash, len(items), nonce)

        receipt = await self._wait_for_receipt(tx_hash)
        if int(receipt.get("status", "0x0"), 16) != 1:
            raise TransactionFailedError(f"Transaction {tx_hash} reverted")
        return tx_hash

    async def _wait_for_receipt(self, tx_hash: str) -> dict:
        for _ in range(self._poll_attempts):
            receipt = await self._rpc.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            await self._sleep(self._poll_interval)
        raise TransactionFailedError(
            f"Transaction {tx_hash} not confirmed after {self._poll_attempts} receipt checks"
        )

    async def _read(self, to: str, selector: bytes, types: list[str], args: list[Any], out: list[str]) -> tuple:
        data = "0x" + (selector + encode(types, args)).hex()
        result = await self._rpc.call(to, data)
        return decode(out, bytes.fromhex(result.removeprefix("0x")))

    async def token_decimals(self, token_address: str) -> int:
        token = _checksum(token_address)
        if token not in self._decimals_cache:
            (decimals,) = await self._read(token, DECIMALS_SELECTOR, [], [], ["uint8"])
            self._decimals_cache[token] = int(decimals)
        return self._decimals_cache[token]

    async def check_delegation(
        self, wallet_address: str, token_address: str, spender: str
    ) -> Optional[DelegationState]:
        if not all(is_address(a) for a in (wallet_address, token_address, spender)):
            return None

        amount, expiration, _nonce = await self._read(
            self._permit2,
            ALLOWANCE_SELECTOR,
            ["address", "address", "address"],
            [_checksum(wallet_address), _checksum(token_address), _checksum(spender)],
            ["uint160", "uint48", "uint48"],
        )
        # An expired allowance cannot be spent even if the amount is non-zero
        is_delegated = amount > 0 and expiration > int(self._clock())
        decimals = await self.token_decimals(token_address)
        return DelegationState(
            is_delegated=is_delegated,
            delegated_amount=from_base_units(amount, decimals) if is_delegated else Decimal(0),
            expiration=int(expiration),
        )

    async def get_balance(self, wallet_address: str, token_address: str) -> Optional[TokenBalance]:
        if not (is_address(wallet_address) and is_address(token_address)):
            return None

        (raw,) = await self._read(
            _checksum(token_address), BALANCE_OF_SELECTOR, ["address"], [_checksum(wallet_address)], ["uint256"]
        )
        decimals = await self.token_decimals(token_address)
        return TokenBalance(balance=from_base_units(raw, decimals), decimals=decimals)
