"""Server-held keypair signer for Solana delegate transfers."""

from solders.keypair import Keypair
from solders.transaction import Transaction

from withdrawdesk.exceptions import SignerRejectedError


class KeypairSigner:
    """Signs with a base58-encoded secret key loaded from settings."""

    def __init__(self, keypair: Keypair) -> None:
        self._keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        return cls(Keypair.from_base58_string(secret))

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey())

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        message = transaction.message
        required = message.account_keys[: message.header.num_required_signatures]
        if required != [self._keypair.pubkey()]:
            raise SignerRejectedError(f"Transaction requires signers {[str(k) for k in required]}, have {self.address}")
        return Transaction([self._keypair], message, message.recent_blockhash)
