"""Factory wiring each Chain to its adapter and, where configured, a server-held signer."""

from typing import Optional

from withdrawdesk.config import Settings
from withdrawdesk.domain.enums import Chain
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient


def build_chain_adapter(chain: Chain, http_client: RateLimitedClient, settings: Settings) -> ChainAdapter:
    if chain == Chain.SOLANA:
        from withdrawdesk.infra.blockchain.solana.adapter import SolanaAdapter
        from withdrawdesk.infra.blockchain.solana.rpc_client import SolanaRPCClient

        return SolanaAdapter(
            SolanaRPCClient(settings.solana_rpc_url, http_client),
            max_items_per_batch=settings.solana_max_items_per_batch,
        )

    if chain == Chain.ETHEREUM:
        from withdrawdesk.infra.blockchain.evm.adapter import EVMPermit2Adapter
        from withdrawdesk.infra.blockchain.evm.rpc_client import EVMRPCClient

        return EVMPermit2Adapter(
            EVMRPCClient(settings.evm_rpc_url, http_client),
            permit2_address=settings.permit2_address,
            chain_id=settings.evm_chain_id,
            max_items_per_batch=settings.evm_max_items_per_batch,
            receipt_poll_attempts=settings.evm_receipt_poll_attempts,
            receipt_poll_interval=settings.evm_receipt_poll_interval,
        )

    if chain == Chain.TRON:
        from withdrawdesk.infra.blockchain.tron.adapter import TronAdapter
        from withdrawdesk.infra.blockchain.tron.client import TronGridClient

        return TronAdapter(
            TronGridClient(settings.tron_api_url, http_client, api_key=settings.tron_api_key),
            batch_contract=settings.tron_batch_contract,
            fee_limit=settings.tron_fee_limit,
            max_items_per_batch=settings.tron_max_items_per_batch,
            receipt_poll_attempts=settings.tron_receipt_poll_attempts,
            receipt_poll_interval=settings.tron_receipt_poll_interval,
        )

    raise ValueError(f"Unsupported chain: {chain}")


def build_server_signer(chain: Chain, settings: Settings) -> Optional[Signer]:
    """Signer backed by a key in settings, or None when the chain has no key configured.

    Tron has no server-side signer: its transactions are signed by an external wallet.
    """
    if chain == Chain.SOLANA and settings.solana_signer_private_key:
        from withdrawdesk.infra.blockchain.solana.signer import KeypairSigner

        return KeypairSigner.from_base58(settings.solana_signer_private_key)

    if chain == Chain.ETHEREUM and settings.evm_signer_private_key:
        from withdrawdesk.infra.blockchain.evm.signer import LocalAccountSigner

        return LocalAccountSigner(settings.evm_signer_private_key)

    return None
