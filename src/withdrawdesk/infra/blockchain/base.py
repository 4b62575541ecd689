"""Abstract base for chain-specific transfer adapters."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol, runtime_checkable

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance, TransferItem


@runtime_checkable
class Signer(Protocol):
    """Delegated signing capability handed to the engine by a wallet connector.

    The engine never sees key material: it builds an unsigned chain-native
    transaction and asks the signer for the signed form.
    """

    @property
    def address(self) -> str: ...

    async def sign_transaction(self, transaction: Any) -> Any: ...


class ChainAdapter(ABC):
    """Strategy interface for everything chain-specific in a delegated batch transfer."""

    chain: Chain
    max_items_per_batch: int = 25
    default_decimals: int = 6
    max_amount_base_units: int = 2**128 - 1

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """True if the address is well-formed for this chain."""

    def can_derive_account(self, owner: str, token_address: str) -> bool:
        """True if a token account for (owner, token) can be derived. Chains without derived accounts always can."""
        return True

    @abstractmethod
    async def derive_account(self, owner: str, token_address: str) -> str:
        """Return the account that holds `token_address` for `owner`."""

    @abstractmethod
    def build_transfer_instruction(self, item: TransferItem, authority: str) -> Any:
        """Chain-native instruction/call moving one item, authorized by `authority`."""

    @abstractmethod
    async def submit_and_confirm(self, items: list[TransferItem], signer: Signer) -> str:
        """Build one transaction for all items, sign, submit and wait for confirmation.

        One attempt only: retries belong to the BatchExecutor. Returns the tx hash/signature.
        """

    @abstractmethod
    def spender_address(self, signer: Signer) -> str:
        """Address the wallets must have delegated to for `signer` to move their tokens."""

    def default_spender(self) -> Optional[str]:
        """Spender that does not depend on the signer, if the chain has one."""
        return None

    @abstractmethod
    async def check_delegation(
        self, wallet_address: str, token_address: str, spender: str
    ) -> Optional[DelegationState]:
        """Live delegation/allowance granted by wallet to spender. None when unknown."""

    @abstractmethod
    async def get_balance(self, wallet_address: str, token_address: str) -> Optional[TokenBalance]:
        """Live token balance of the wallet. None when unknown."""
