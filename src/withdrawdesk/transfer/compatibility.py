"""Pre-flight check that token accounts can be derived for both sides of a transfer."""

from typing import Optional

from withdrawdesk.infra.blockchain.base import ChainAdapter

SOURCE_INCOMPATIBLE = "source wallet not compatible with token for account derivation (not on curve)"
RECEIVER_INCOMPATIBLE = "receiver wallet not compatible with token for account derivation (not on curve)"


class AddressCompatibilityChecker:
    """Deterministic: a pair that fails here fails forever, so it is skipped and never retried."""

    def __init__(self, adapter: ChainAdapter) -> None:
        self._adapter = adapter

    def is_compatible(self, owner: str, token_address: str) -> bool:
        return self._adapter.can_derive_account(owner, token_address)

    def skip_reason(self, wallet_address: str, receiver: str, token_address: str) -> Optional[str]:
        """None if both sides can hold the token, else which side cannot."""
        if not self.is_compatible(wallet_address, token_address):
            return SOURCE_INCOMPATIBLE
        if not self.is_compatible(receiver, token_address):
            return RECEIVER_INCOMPATIBLE
        return None
