"""Tron adapter: TRC20 approvals to a batch contract that sweeps wallets to one receiver."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from eth_abi import decode, encode

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance, TransferItem
from withdrawdesk.exceptions import TransactionFailedError
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.infra.blockchain.failures import failure_from_message
from withdrawdesk.infra.blockchain.tron.address import decode_address, is_valid_address, to_evm
from withdrawdesk.infra.blockchain.tron.client import TronGridClient, decode_message
from withdrawdesk.transfer.amounts import from_base_units

logger = logging.getLogger(__name__)

BATCH_TRANSFER_SELECTOR = "batchTransferTokens(address[],address[][],address)"


def encode_batch_parameters(items: list[TransferItem]) -> str:
    """ABI parameters for batchTransferTokens, tokens grouped per wallet in first-seen order.

    The contract moves each wallet's full approved amount, so item amounts are not encoded.
    """
    receivers = {item.destination_account for item in items}
    if len(receivers) != 1:
        raise ValueError(f"Batch must target exactly one receiver, got {len(receivers)}")

    grouped: dict[str, list[str]] = {}
    for item in items:
        grouped.setdefault(item.source_account, []).append(to_evm(item.token_address))

    wallets = [to_evm(wallet) for wallet in grouped]
    tokens = list(grouped.values())
    receiver = to_evm(receivers.pop())
    return encode(["address[]", "address[][]", "address"], [wallets, tokens, receiver]).hex()


class TronAdapter(ChainAdapter):
    chain = Chain.TRON

    def __init__(
        self,
        client: TronGridClient,
        batch_contract: str,
        fee_limit: int = 150_000_000,
        max_items_per_batch: int = 40,
        receipt_poll_attempts: int = 60,
        receipt_poll_interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._contract = batch_contract
        self._fee_limit = fee_limit
        self.max_items_per_batch = max_items_per_batch
        self._poll_attempts = receipt_poll_attempts
        self._poll_interval = receipt_poll_interval
        self._sleep = sleep
        self._decimals_cache: dict[str, int] = {}

    def validate_address(self, address: str) -> bool:
        return is_valid_address(address)

    async def derive_account(self, owner: str, token_address: str) -> str:
        decode_address(owner)
        return owner

    def build_transfer_instruction(self, item: TransferItem, authority: str) -> tuple[str, str]:
        """(wallet, token) pair as the batch contract receives it."""
        return to_evm(item.source_account), to_evm(item.token_address)

    def spender_address(self, signer: Signer) -> str:
        # Wallets approve the batch contract, which only its operator (the signer) may call
        return self._contract

    def default_spender(self) -> Optional[str]:
        return self._contract or None

    async def submit_and_confirm(self, items: list[TransferItem], signer: Signer) -> str:
        if not self._contract:
            raise TransactionFailedError("Tron batch contract address is not configured")

        transaction = await self._client.trigger_smart_contract(
            owner_address=signer.address,
            contract_address=self._contract,
            function_selector=BATCH_TRANSFER_SELECTOR,
            parameter=encode_batch_parameters(items),
            fee_limit=self._fee_limit,
        )
        signed = await signer.sign_transaction(transaction)
        tx_id = await self._client.broadcast_transaction(signed)
        logger.info("Broadcast Tron TX %s with %d transfers", tx_id, len(items))

        await self._wait_for_info(tx_id)
        return tx_id

    async def _wait_for_info(self, tx_id: str) -> None:
        for _ in range(self._poll_attempts):
            info = await self._client.get_transaction_info(tx_id)
            if info is not None:
                receipt_result = (info.get("receipt") or {}).get("result", "SUCCESS")
                if info.get("result") == "FAILED" or receipt_result != "SUCCESS":
                    reason = decode_message(info.get("resMessage")) or receipt_result
                    raise failure_from_message(f"Transaction {tx_id} failed: {reason}")
                return
            await self._sleep(self._poll_interval)
        raise TransactionFailedError(f"Transaction {tx_id} not confirmed after {self._poll_attempts} checks")

    async def _constant(self, owner: str, token: str, selector: str, types: list[str], args: list, out: str) -> int:
        parameter = encode(types, args).hex() if types else ""
        result = await self._client.trigger_constant_contract(owner, token, selector, parameter)
        (value,) = decode([out], bytes.fromhex(result))
        return int(value)

    async def token_decimals(self, owner: str, token_address: str) -> int:
        if token_address not in self._decimals_cache:
            self._decimals_cache[token_address] = await self._constant(
                owner, token_address, "decimals()", [], [], "uint8"
            )
        return self._decimals_cache[token_address]

    async def check_delegation(
        self, wallet_address: str, token_address: str, spender: str
    ) -> Optional[DelegationState]:
        if not all(is_valid_address(a) for a in (wallet_address, token_address, spender)):
            return None

        allowance = await self._constant(
            wallet_address,
            token_address,
            "allowance(address,address)",
            ["address", "address"],
            [to_evm(wallet_address), to_evm(spender)],
            "uint256",
        )
        if allowance <= 0:
            return DelegationState(is_delegated=False)
        decimals = await self.token_decimals(wallet_address, token_address)
        return DelegationState(is_delegated=True, delegated_amount=from_base_units(allowance, decimals))

    async def get_balance(self, wallet_address: str, token_address: str) -> Optional[TokenBalance]:
        if not (is_valid_address(wallet_address) and is_valid_address(token_address)):
            return None

        raw = await self._constant(
            wallet_address, token_address, "balanceOf(address)", ["address"], [to_evm(wallet_address)], "uint256"
        )
        decimals = await self.token_decimals(wallet_address, token_address)
        return TokenBalance(balance=from_base_units(raw, decimals), decimals=decimals)
