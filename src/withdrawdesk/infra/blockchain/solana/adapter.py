"""SPL token delegation adapter: associated-account derivation and batched delegate transfers."""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address, transfer
from spl.token.models import TransferParams

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance, TransferItem
from withdrawdesk.exceptions import AccountDerivationError, InvalidAddressError, TransactionFailedError
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.infra.blockchain.failures import failure_from_message
from withdrawdesk.infra.blockchain.solana.rpc_client import SolanaRPCClient
from withdrawdesk.transfer.amounts import from_base_units

logger = logging.getLogger(__name__)

CONFIRMED_STATES = {"confirmed", "finalized"}

# Fallback when the mint cannot be read
KNOWN_DECIMALS: dict[str, int] = {
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": 6,  # USDT
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": 6,  # USDC
    "So11111111111111111111111111111111111111112": 9,  # wrapped SOL
}


def _pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddressError(f"Invalid Solana address: {address}") from e


def _ui_amount(token_amount: dict | None) -> Decimal:
    """Decimal human amount from an RPC tokenAmount object."""
    if not token_amount:
        return Decimal(0)
    try:
        if token_amount.get("uiAmountString") is not None:
            return Decimal(token_amount["uiAmountString"])
        return from_base_units(int(token_amount["amount"]), int(token_amount["decimals"]))
    except (InvalidOperation, KeyError, TypeError, ValueError):
        return Decimal(0)


class SolanaAdapter(ChainAdapter):
    """Moves delegated SPL tokens out of owners' associated token accounts."""

    chain = Chain.SOLANA
    max_amount_base_units = 2**64 - 1

    def __init__(
        self,
        rpc: SolanaRPCClient,
        max_items_per_batch: int = 25,
        confirm_poll_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rpc = rpc
        self.max_items_per_batch = max_items_per_batch
        self._poll_interval = confirm_poll_interval
        self._sleep = sleep

    def validate_address(self, address: str) -> bool:
        try:
            Pubkey.from_string(address)
            return True
        except ValueError:
            return False

    def can_derive_account(self, owner: str, token_address: str) -> bool:
        """Associated token accounts exist only for owners on the ed25519 curve."""
        if not (self.validate_address(owner) and self.validate_address(token_address)):
            return False
        return Pubkey.from_string(owner).is_on_curve()

    async def derive_account(self, owner: str, token_address: str) -> str:
        owner_key = _pubkey(owner)
        mint = _pubkey(token_address)
        if not owner_key.is_on_curve():
            raise AccountDerivationError(f"Wallet {owner} is not on curve for token {token_address}")
        return str(get_associated_token_address(owner_key, mint))

    def build_transfer_instruction(self, item: TransferItem, authority: str) -> Instruction:
        return transfer(
            TransferParams(
                program_id=TOKEN_PROGRAM_ID,
                source=Pubkey.from_string(item.source_account),
                dest=Pubkey.from_string(item.destination_account),
                owner=Pubkey.from_string(authority),
                amount=item.amount_base_units,
            )
        )

    def spender_address(self, signer: Signer) -> str:
        # The signer is both the SPL delegate and the fee payer
        return signer.address

    async def submit_and_confirm(self, items: list[TransferItem], signer: Signer) -> str:
        payer = _pubkey(signer.address)
        instructions = [self.build_transfer_instruction(item, signer.address) for item in items]

        blockhash, last_valid_height = await self._rpc.get_latest_blockhash()
        message = Message.new_with_blockhash(instructions, payer, Hash.from_string(blockhash))
        signed = await signer.sign_transaction(Transaction.new_unsigned(message))

        signature = await self._rpc.send_transaction(bytes(signed))
        logger.info("Submitted Solana TX %s with %d transfers", signature, len(items))
        await self._confirm(signature, last_valid_height)
        return signature

    async def _confirm(self, signature: str, last_valid_height: int) -> None:
        """Poll until confirmed, failed, or the blockhash expires."""
        while True:
            statuses = await self._rpc.get_signature_statuses([signature])
            status = statuses[0] if statuses else None
            if status is not None:
                if status.get("err") is not None:
                    raise failure_from_message(f"Transaction failed: {json.dumps(status['err'])}")
                if status.get("confirmationStatus") in CONFIRMED_STATES:
                    return

            if await self._rpc.get_block_height() > last_valid_height:
                raise TransactionFailedError(f"Transaction {signature} not confirmed before blockhash expired")
            await self._sleep(self._poll_interval)

    async def _token_account_info(self, wallet_address: str, token_address: str) -> Optional[dict]:
        """Parsed info of the wallet's associated token account, falling back to any account for the mint."""
        if self.can_derive_account(wallet_address, token_address):
            ata = await self.derive_account(wallet_address, token_address)
            account = await self._rpc.get_parsed_account(ata)
            if account is not None:
                return account["data"]["parsed"]["info"]

        accounts = await self._rpc.get_token_accounts_by_owner(wallet_address, token_address)
        if accounts:
            return accounts[0]["account"]["data"]["parsed"]["info"]
        return None

    async def check_delegation(
        self, wallet_address: str, token_address: str, spender: str
    ) -> Optional[DelegationState]:
        if not (self.validate_address(wallet_address) and self.validate_address(spender)):
            return None
        if not self.can_derive_account(wallet_address, token_address):
            logger.warning("Wallet %s is not on curve for token %s", wallet_address, token_address)
            return DelegationState(is_delegated=False)

        ata = await self.derive_account(wallet_address, token_address)
        account = await self._rpc.get_parsed_account(ata)
        if account is None:
            return DelegationState(is_delegated=False)

        info = account["data"]["parsed"]["info"]
        is_delegated = info.get("delegate") == spender
        delegated = _ui_amount(info.get("delegatedAmount")) if is_delegated else Decimal(0)
        return DelegationState(is_delegated=is_delegated, delegated_amount=delegated)

    async def get_balance(self, wallet_address: str, token_address: str) -> Optional[TokenBalance]:
        if not (self.validate_address(wallet_address) and self.validate_address(token_address)):
            return None

        info = await self._token_account_info(wallet_address, token_address)
        if info is None:
            return TokenBalance(balance=Decimal(0), decimals=await self._mint_decimals(token_address))

        token_amount = info.get("tokenAmount") or {}
        decimals = token_amount.get("decimals")
        if decimals is None:
            decimals = await self._mint_decimals(token_address)
        return TokenBalance(balance=_ui_amount(token_amount), decimals=int(decimals))

    async def _mint_decimals(self, token_address: str) -> int:
        mint = await self._rpc.get_parsed_account(token_address)
        if mint is not None:
            decimals = mint.get("data", {}).get("parsed", {}).get("info", {}).get("decimals")
            if decimals is not None:
                return int(decimals)
        return KNOWN_DECIMALS.get(token_address, self.default_decimals)
