"""Write run results back as execution status, best effort."""

import logging
from typing import Optional, Protocol

from withdrawdesk.domain.enums import Chain, ExecutionStatus
from withdrawdesk.domain.models.transfer import (
    BatchTransferResult,
    ExecutionStatusUpdate,
    StatusUpdateSummary,
)

logger = logging.getLogger(__name__)


class StatusStore(Protocol):
    async def apply_status_updates(self, updates: list[ExecutionStatusUpdate]) -> StatusUpdateSummary: ...


def build_status_updates(
    result: BatchTransferResult, chain: Chain, executed_by: Optional[str]
) -> list[ExecutionStatusUpdate]:
    """Succeeded pairs become executed with their own tx hash; failed pairs stay pending for a later run."""
    return [
        ExecutionStatusUpdate(
            wallet_address=r.wallet_address,
            token_address=r.token_address,
            chain_id=chain.chain_id,
            status=ExecutionStatus.EXECUTED if r.success else ExecutionStatus.PENDING,
            tx_hash=r.tx_hash if r.success else None,
            executed_by=executed_by if r.success else None,
        )
        for r in result.results
    ]


class StatusReconciler:
    """Persistence failures are logged and counted; they never fail the run or undo a transfer."""

    def __init__(self, store: StatusStore) -> None:
        self._store = store

    async def reconcile(self, updates: list[ExecutionStatusUpdate]) -> StatusUpdateSummary:
        if not updates:
            return StatusUpdateSummary()
        try:
            summary = await self._store.apply_status_updates(updates)
        except Exception as e:
            logger.exception("Failed to persist %d status updates", len(updates))
            return StatusUpdateSummary(failed_updates=len(updates), error=str(e))

        if summary.failed_updates:
            logger.warning(
                "Status reconciliation: %d updated, %d failed",
                summary.successful_updates,
                summary.failed_updates,
            )
        return summary
