"""Resolve TransferRequests into chain-native TransferItems, or into skips with a reason."""

import logging

from withdrawdesk.domain.models.transfer import MAX_BASE_UNITS, SkippedTransfer, TransferItem, TransferRequest
from withdrawdesk.exceptions import InvalidAmountError, WithdrawDeskError
from withdrawdesk.infra.blockchain.base import ChainAdapter
from withdrawdesk.transfer.amounts import to_base_units
from withdrawdesk.transfer.compatibility import AddressCompatibilityChecker

logger = logging.getLogger(__name__)


class TransferItemBuilder:
    def __init__(self, adapter: ChainAdapter) -> None:
        self._adapter = adapter
        self._compatibility = AddressCompatibilityChecker(adapter)

    async def build(self, request: TransferRequest, receiver: str) -> TransferItem | SkippedTransfer:
        """Validate, check compatibility, resolve accounts, convert the amount; first failure wins."""

        def skip(reason: str) -> SkippedTransfer:
            logger.info("Skipping %s/%s: %s", request.wallet_address, request.token_address, reason)
            return SkippedTransfer(
                wallet_address=request.wallet_address,
                token_address=request.token_address,
                reason=reason,
            )

        adapter = self._adapter
        if not adapter.validate_address(request.wallet_address):
            return skip(f"invalid wallet address: {request.wallet_address}")
        if not adapter.validate_address(request.token_address):
            return skip(f"invalid token address: {request.token_address}")
        if not adapter.validate_address(receiver):
            return skip(f"invalid receiver address: {receiver}")

        reason = self._compatibility.skip_reason(request.wallet_address, receiver, request.token_address)
        if reason is not None:
            return skip(reason)

        try:
            source = await adapter.derive_account(request.wallet_address, request.token_address)
            destination = await adapter.derive_account(receiver, request.token_address)
        except WithdrawDeskError as e:
            return skip(f"account resolution failed: {e}")

        decimals = request.decimals if request.decimals is not None else adapter.default_decimals
        try:
            # TransferItem caps every chain at u128, whatever the chain itself allows
            max_units = min(adapter.max_amount_base_units, MAX_BASE_UNITS)
            amount = to_base_units(request.amount, decimals, max_units=max_units)
        except InvalidAmountError as e:
            return skip(str(e))

        return TransferItem(
            source_account=source,
            destination_account=destination,
            token_address=request.token_address,
            amount_base_units=amount,
            wallet_address=request.wallet_address,
        )

    async def build_all(
        self, requests: list[TransferRequest], receiver: str
    ) -> tuple[list[TransferItem], list[SkippedTransfer]]:
        items: list[TransferItem] = []
        skipped: list[SkippedTransfer] = []
        for request in requests:
            built = await self.build(request, receiver)
            if isinstance(built, TransferItem):
                items.append(built)
            else:
                skipped.append(built)
        return items, skipped
