"""Delegated batch transfer run: connect signer -> check delegations -> execute batches -> reconcile status."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from withdrawdesk.domain.enums import RunOutcome, RunStage
from withdrawdesk.domain.models.transfer import (
    BatchOutcome,
    BatchTransferResult,
    CandidatePair,
    DelegationCheck,
    ExcludedPair,
    ExecutionReport,
    RetryPolicy,
    StatusUpdateSummary,
    TransferRequest,
)
from withdrawdesk.exceptions import InvalidAddressError, SignerUnavailableError
from withdrawdesk.infra.blockchain.base import ChainAdapter, Signer
from withdrawdesk.transfer.batcher import make_batches
from withdrawdesk.transfer.builder import TransferItemBuilder
from withdrawdesk.transfer.delegations import DelegationChecker, flatten_pairs
from withdrawdesk.transfer.executor import BatchExecutor
from withdrawdesk.transfer.rate_limit import RateLimitedExecutor
from withdrawdesk.transfer.reconciler import StatusReconciler, StatusStore, build_status_updates
from withdrawdesk.transfer.results import aggregate_results

logger = logging.getLogger(__name__)

ABORTED_ERROR = "run aborted before batch was submitted"

ProgressCallback = Callable[[str, int, int], Any]
SignerProvider = Callable[[], Awaitable[Optional[Signer]]]
ContinueHook = Callable[[], Any]


class DelegationBatchTransferOrchestrator:
    """One instance per chain. Batches run strictly one after another against the same signer.

    Only failing to obtain a signer (or an invalid receiver) raises; every per-pair
    and per-batch problem ends up in the returned report.
    """

    def __init__(
        self,
        adapter: ChainAdapter,
        status_store: StatusStore,
        rate_limiter: RateLimitedExecutor | None = None,
        retry_policy: RetryPolicy | None = None,
        batch_delay: float = 1.2,
        progress: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._checker = DelegationChecker(adapter, rate_limiter)
        self._builder = TransferItemBuilder(adapter)
        self._executor = BatchExecutor(adapter, retry_policy, sleep=sleep)
        self._reconciler = StatusReconciler(status_store)
        self._batch_delay = batch_delay
        self._progress = progress
        self._sleep = sleep
        self.stage = RunStage.IDLE

    async def _report(self, phase: str, current: int, total: int) -> None:
        if self._progress is None:
            return
        try:
            ret = self._progress(phase, current, total)
            if inspect.isawaitable(ret):
                await ret
        except Exception:
            logger.exception("Progress callback failed at %r", phase)

    async def _enter(self, stage: RunStage, phase: str, current: int = 0, total: int = 0) -> None:
        self.stage = stage
        logger.info("Run stage: %s", stage.value)
        await self._report(phase, current, total)

    async def run(
        self,
        candidates: list[CandidatePair],
        receiver: str,
        signer_provider: SignerProvider,
        should_continue: ContinueHook | None = None,
    ) -> ExecutionReport:
        if not self._adapter.validate_address(receiver):
            raise InvalidAddressError(f"Invalid receiver address for {self._adapter.chain.value}: {receiver}")

        try:
            return await self._run(candidates, receiver, signer_provider, should_continue)
        except Exception:
            self.stage = RunStage.FAILED
            logger.exception("Transfer run failed")
            raise

    async def _run(
        self,
        candidates: list[CandidatePair],
        receiver: str,
        signer_provider: SignerProvider,
        should_continue: ContinueHook | None,
    ) -> ExecutionReport:
        chain = self._adapter.chain

        await self._enter(RunStage.CONNECTING_WALLET, "Connecting wallet", 0, 1)
        signer = await self._connect(signer_provider)
        await self._report("Wallet connected", 1, 1)

        pairs = flatten_pairs(candidates)
        await self._enter(RunStage.CHECKING_DELEGATIONS, "Checking delegations", 0, len(pairs))
        spender = self._adapter.spender_address(signer)
        checks = await self._checker.check_all(pairs, spender)
        await self._report("Delegations checked", len(pairs), len(pairs))

        requests: list[TransferRequest] = []
        excluded: list[ExcludedPair] = []
        for check in checks:
            if check.valid_amount > 0:
                requests.append(TransferRequest(
                    wallet_address=check.wallet_address,
                    token_address=check.token_address,
                    amount=str(check.valid_amount),
                    decimals=check.decimals,
                ))
            else:
                excluded.append(ExcludedPair(
                    wallet_address=check.wallet_address,
                    token_address=check.token_address,
                    reason=_exclusion_reason(check),
                ))
        logger.info("%d of %d pairs transferable, %d excluded", len(requests), len(pairs), len(excluded))

        if not requests:
            await self._enter(RunStage.COMPLETED, "No items to process")
            return ExecutionReport(
                chain=chain,
                stage=self.stage,
                outcome=RunOutcome.NO_ITEMS,
                signer=signer.address,
                result=BatchTransferResult(),
                excluded=excluded,
                status_summary=StatusUpdateSummary(),
            )

        await self._enter(RunStage.EXECUTING_TRANSFERS, "Preparing transfers", 0, len(requests))
        items, skipped = await self._builder.build_all(requests, receiver)
        batches = make_batches(items, self._adapter.max_items_per_batch)

        outcomes: list[BatchOutcome] = []
        for n, batch in enumerate(batches):
            if n > 0:
                if should_continue is not None and not await _resolve(should_continue()):
                    logger.warning("Run aborted with %d of %d batches remaining", len(batches) - n, len(batches))
                    outcomes.extend(
                        BatchOutcome(batch_index=b.index, items=b.items, error=ABORTED_ERROR)
                        for b in batches[n:]
                    )
                    break
                await self._sleep(self._batch_delay)

            await self._report(f"Executing batch {batch.index} of {len(batches)}", n, len(batches))
            outcomes.append(await self._executor.execute(batch, signer))
            await self._report(f"Batch {batch.index} of {len(batches)} done", n + 1, len(batches))

        result = aggregate_results(outcomes, skipped)

        await self._enter(RunStage.UPDATING_STATUS, "Updating status", 0, result.total_transfers)
        updates = build_status_updates(result, chain, signer.address)
        summary = await self._reconciler.reconcile(updates)
        await self._report("Status updated", summary.successful_updates, result.total_transfers)

        await self._enter(RunStage.COMPLETED, "Completed", result.successful_transfers, result.total_transfers)
        return ExecutionReport(
            chain=chain,
            stage=self.stage,
            outcome=_outcome(result),
            signer=signer.address,
            result=result,
            excluded=excluded,
            status_summary=summary,
        )

    async def _connect(self, signer_provider: SignerProvider) -> Signer:
        try:
            signer = await signer_provider()
        except Exception as e:
            raise SignerUnavailableError(f"Could not acquire a signer: {e}") from e
        if signer is None:
            raise SignerUnavailableError("No signer available")
        logger.info("Connected signer %s", signer.address)
        return signer


def _exclusion_reason(check: DelegationCheck) -> str:
    if check.error:
        return f"delegation check failed: {check.error}"
    if not check.is_delegated:
        return "not delegated"
    return "no transferable balance"


def _outcome(result: BatchTransferResult) -> RunOutcome:
    if result.total_transfers == 0:
        return RunOutcome.NO_ITEMS
    if result.successful_transfers == 0:
        return RunOutcome.TOTAL_FAILURE
    if result.failed_transfers:
        return RunOutcome.PARTIAL_FAILURE
    return RunOutcome.COMPLETED


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
