"""Server-held private key signer for EVM transactions."""

from typing import Any

from eth_account import Account

from withdrawdesk.exceptions import SignerRejectedError


class LocalAccountSigner:
    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_transaction(self, transaction: dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw RLP bytes."""
        try:
            signed = self._account.sign_transaction(transaction)
        except (TypeError, ValueError) as e:
            raise SignerRejectedError(f"Cannot sign transaction: {e}") from e
        return bytes(signed.raw_transaction)
