"""In-memory chain adapter and signer for exercising the transfer engine without a network."""

from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance, TransferItem
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer


class FakeSigner:
    def __init__(self, address: str = "FeePayer1111") -> None:
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    async def sign_transaction(self, transaction):
        return transaction


class FakeAdapter(ChainAdapter):
    """Addresses starting with 'bad' are malformed; owners starting with 'offcurve' cannot hold token accounts."""

    chain = Chain.SOLANA

    def __init__(self, max_items_per_batch: int = 25) -> None:
        self.max_items_per_batch = max_items_per_batch
        self.submit = AsyncMock(side_effect=self._next_signature)
        self._submitted = 0
        self.delegations: dict[tuple[str, str], Optional[DelegationState]] = {}
        self.balances: dict[tuple[str, str], Optional[TokenBalance]] = {}
        self.derive_errors: dict[str, Exception] = {}

    async def _next_signature(self, items, signer) -> str:
        self._submitted += 1
        return f"sig-{self._submitted}"

    def validate_address(self, address: str) -> bool:
        return bool(address) and not address.startswith("bad")

    def can_derive_account(self, owner: str, token_address: str) -> bool:
        return not owner.startswith("offcurve")

    async def derive_account(self, owner: str, token_address: str) -> str:
        if owner in self.derive_errors:
            raise self.derive_errors[owner]
        return f"{owner}:{token_address}"

    def build_transfer_instruction(self, item: TransferItem, authority: str):
        return (item.source_account, item.destination_account, item.amount_base_units, authority)

    async def submit_and_confirm(self, items: list[TransferItem], signer: Signer) -> str:
        return await self.submit(items, signer)

    def spender_address(self, signer: Signer) -> str:
        return signer.address

    async def check_delegation(self, wallet_address, token_address, spender):
        return self.delegations.get(
            (wallet_address, token_address),
            DelegationState(is_delegated=True, delegated_amount=Decimal("100")),
        )

    async def get_balance(self, wallet_address, token_address):
        return self.balances.get(
            (wallet_address, token_address),
            TokenBalance(balance=Decimal("10"), decimals=6),
        )


@pytest.fixture()
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture()
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture()
def make_item():
    def _make(n: int, wallet_prefix: str = "wallet", token: str = "mint1") -> TransferItem:
        wallet = f"{wallet_prefix}{n}"
        return TransferItem(
            source_account=f"{wallet}:{token}",
            destination_account=f"receiver:{token}",
            token_address=token,
            amount_base_units=1_000_000,
            wallet_address=wallet,
        )

    return _make
