"""Aggregate batch outcomes and pre-flight skips into a BatchTransferResult."""

from withdrawdesk.domain.models.transfer import (
    BatchOutcome,
    BatchTransferResult,
    SkippedTransfer,
    TransferResult,
)


def aggregate_results(outcomes: list[BatchOutcome], skipped: list[SkippedTransfer]) -> BatchTransferResult:
    """Count what actually happened: skipped pairs are failures, batch items share their batch's fate."""
    result = BatchTransferResult()

    for skip in skipped:
        result.results.append(TransferResult(
            wallet_address=skip.wallet_address,
            token_address=skip.token_address,
            success=False,
            error=skip.reason,
        ))
        result.errors.append(f"{skip.wallet_address}/{skip.token_address}: {skip.reason}")

    for outcome in outcomes:
        if outcome.succeeded:
            result.transaction_signatures.append(outcome.tx_hash)  # type: ignore[arg-type]
        else:
            result.errors.append(f"Batch {outcome.batch_index} failed: {outcome.error}")
        for item in outcome.items:
            result.results.append(TransferResult(
                wallet_address=item.wallet_address,
                token_address=item.token_address,
                success=outcome.succeeded,
                tx_hash=outcome.tx_hash if outcome.succeeded else None,
                error=None if outcome.succeeded else outcome.error,
            ))

    result.total_transfers = len(result.results)
    result.successful_transfers = sum(1 for r in result.results if r.success)
    result.failed_transfers = result.total_transfers - result.successful_transfers
    result.success = result.successful_transfers > 0
    return result
