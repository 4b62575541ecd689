import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from withdrawdesk.api.deps import (
    build_delegation_checker,
    build_orchestrator,
    get_db,
    get_rpc_http_client,
    get_session_factory,
    get_settings,
)
from withdrawdesk.api.schemas.executions import (
    CheckDelegationRequest,
    CheckDelegationResponse,
    DelegationCheckResult,
    PendingCandidatesResponse,
    ResetPendingResponse,
    ResetTokenStatusRequest,
    ResetTokenStatusResponse,
    RunRequest,
    StatusUpdateRequest,
)
from withdrawdesk.config import Settings
from withdrawdesk.db.repos.delegation_snapshot_repo import DelegationSnapshotRepo
from withdrawdesk.db.repos.execution_status_repo import ExecutionStatusRepo
from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import ExecutionReport, StatusUpdateSummary
from withdrawdesk.exceptions import InvalidAddressError, SignerUnavailableError, StatusTransitionError
from withdrawdesk.infra.blockchain.registry import build_chain_adapter, build_server_signer
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient
from withdrawdesk.transfer.delegations import flatten_pairs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/executions", tags=["executions"])

DbDep = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


@router.get("/{chain}/pending", response_model=PendingCandidatesResponse)
async def list_pending(chain: Chain, db: DbDep) -> PendingCandidatesResponse:
    """Wallet/token pairs whose execution status is pending."""
    candidates = await ExecutionStatusRepo(db).list_pending_candidates(chain.chain_id)
    return PendingCandidatesResponse(
        chain=chain,
        chain_id=chain.chain_id,
        candidates=candidates,
        total_wallets=len(candidates),
        total_tokens=sum(len(c.token_addresses) for c in candidates),
    )


@router.post("/update-status", response_model=StatusUpdateSummary)
async def update_status(body: StatusUpdateRequest, db: DbDep) -> StatusUpdateSummary:
    summary = await ExecutionStatusRepo(db).apply_status_updates(body.updates)
    await db.commit()
    return summary


@router.post("/reset-token-status", response_model=ResetTokenStatusResponse)
async def reset_token_status(body: ResetTokenStatusRequest, db: DbDep) -> ResetTokenStatusResponse:
    repo = ExecutionStatusRepo(db)
    try:
        token = await repo.reset_token_status(body.wallet_address, body.token_address, body.chain_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await db.commit()
    return ResetTokenStatusResponse(
        wallet_address=body.wallet_address,
        token_address=token.token_address,
        status=token.status,
    )


@router.post("/{chain}/reset-pending", response_model=ResetPendingResponse)
async def reset_pending(chain: Chain, db: DbDep) -> ResetPendingResponse:
    count = await ExecutionStatusRepo(db).reset_all_pending(chain.chain_id)
    await db.commit()
    return ResetPendingResponse(chain=chain, reset_count=count)


@router.post("/{chain}/check-delegation", response_model=CheckDelegationResponse)
async def check_delegation(
    chain: Chain,
    body: CheckDelegationRequest,
    db: DbDep,
    settings: SettingsDep,
    http_client: Annotated[RateLimitedClient, Depends(get_rpc_http_client)],
) -> CheckDelegationResponse:
    """Read live delegations and balances, and store them on the wallet token rows."""
    adapter = build_chain_adapter(chain, http_client, settings)

    spender = body.spender
    if spender is None:
        signer = build_server_signer(chain, settings)
        spender = adapter.spender_address(signer) if signer is not None else adapter.default_spender()
    if not spender:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No spender given and none configured for {chain.value}",
        )
    if not adapter.validate_address(spender):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid spender address for {chain.value}: {spender}",
        )

    checks = await build_delegation_checker(adapter, settings).check_all(flatten_pairs(body.wallets), spender)
    persisted = await DelegationSnapshotRepo(db).record_all(chain.chain_id, checks)
    await db.commit()

    results = [
        DelegationCheckResult(**check.model_dump(), persisted=stored) for check, stored in zip(checks, persisted)
    ]
    return CheckDelegationResponse(
        chain=chain,
        spender=spender,
        results=results,
        total_checked=len(results),
        total_delegated=sum(1 for r in results if r.is_delegated),
    )


@router.post("/{chain}/run", response_model=ExecutionReport)
async def run_execution(
    chain: Chain,
    body: RunRequest,
    db: DbDep,
    settings: SettingsDep,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    http_client: Annotated[RateLimitedClient, Depends(get_rpc_http_client)],
) -> ExecutionReport:
    """Withdraw every pending pair on the chain to `receiver` with the server-held signer."""
    signer = build_server_signer(chain, settings)
    if signer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"No server signer configured for {chain.value}",
        )

    candidates = await ExecutionStatusRepo(db).list_pending_candidates(chain.chain_id, body.wallet_addresses)
    # Release the request session: the run commits status on its own session
    await db.close()

    adapter = build_chain_adapter(chain, http_client, settings)
    orchestrator = build_orchestrator(adapter, session_factory, settings)

    async def signer_provider():
        return signer

    try:
        report = await orchestrator.run(candidates, body.receiver, signer_provider)
    except InvalidAddressError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except SignerUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    logger.info(
        "Run on %s finished: %s (%d/%d succeeded)",
        chain.value,
        report.outcome.value,
        report.result.successful_transfers,
        report.result.total_transfers,
    )
    return report
