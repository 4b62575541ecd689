"""Submit one batch as one transaction, retrying the whole batch with linear backoff."""

import asyncio
import logging
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_incrementing

from withdrawdesk.domain.models.transfer import Batch, BatchOutcome, RetryPolicy
from withdrawdesk.exceptions import DeterministicTransferError, SignerRejectedError
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.infra.blockchain.failures import is_rejection_message

logger = logging.getLogger(__name__)


class BatchExecutor:
    """Runs batches against a chain adapter. A batch succeeds or fails as a whole."""

    def __init__(
        self,
        adapter: ChainAdapter,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    def _is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, SignerRejectedError) or is_rejection_message(str(exc)):
            return False
        if isinstance(exc, DeterministicTransferError):
            return self._policy.retry_deterministic_errors
        return isinstance(exc, Exception)

    @staticmethod
    def _log_retry(batch: Batch) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Batch %d attempt %d failed (%s), retrying in %.1fs",
                batch.index,
                state.attempt_number,
                exc,
                state.next_action.sleep if state.next_action else 0.0,
            )

        return before_sleep

    async def execute(self, batch: Batch, signer: Signer) -> BatchOutcome:
        policy = self._policy
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries),
            # wait after attempt n is base_delay * n
            wait=wait_incrementing(start=policy.base_delay, increment=policy.base_delay),
            retry=retry_if_exception(self._is_retryable),
            before_sleep=self._log_retry(batch),
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    # Each attempt rebuilds the transaction, so the blockhash/nonce is fresh
                    tx_hash = await self._adapter.submit_and_confirm(batch.items, signer)
        except Exception as e:
            logger.error("Batch %d failed after %d attempt(s): %s", batch.index, attempts, e)
            return BatchOutcome(
                batch_index=batch.index, items=batch.items, error=str(e) or type(e).__name__, attempts=attempts
            )

        logger.info("Batch %d confirmed: %s (%d items, %d attempt(s))", batch.index, tx_hash, len(batch), attempts)
        return BatchOutcome(batch_index=batch.index, items=batch.items, tx_hash=tx_hash, attempts=attempts)
