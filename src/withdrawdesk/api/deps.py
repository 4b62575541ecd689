from typing import AsyncGenerator

from dependency_injector.wiring import Provide, inject
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from withdrawdesk.config import Settings
from withdrawdesk.container import Container
from withdrawdesk.db.repos.execution_status_repo import SessionStatusStore
from withdrawdesk.domain.models.transfer import RetryPolicy
from withdrawdesk.infra.blockchain.base import ChainAdapter
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient
from withdrawdesk.transfer.delegations import DelegationChecker
from withdrawdesk.transfer.orchestrator import DelegationBatchTransferOrchestrator
from withdrawdesk.transfer.rate_limit import RateLimitedExecutor


@inject
async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(Provide[Container.session_factory]),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@inject
def get_session_factory(
    session_factory: async_sessionmaker[AsyncSession] = Depends(Provide[Container.session_factory]),
) -> async_sessionmaker[AsyncSession]:
    return session_factory


@inject
def get_settings(settings: Settings = Depends(Provide[Container.settings])) -> Settings:
    return settings


@inject
def get_rpc_http_client(
    http_client: RateLimitedClient = Depends(Provide[Container.rpc_http_client]),
) -> RateLimitedClient:
    return http_client


def build_orchestrator(
    adapter: ChainAdapter,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> DelegationBatchTransferOrchestrator:
    """Orchestrator with its own rate limiter and a status store that commits on its own session."""
    return DelegationBatchTransferOrchestrator(
        adapter=adapter,
        status_store=SessionStatusStore(session_factory),
        rate_limiter=RateLimitedExecutor(
            max_concurrency=settings.delegation_check_concurrency,
            min_interval=settings.delegation_check_interval,
        ),
        retry_policy=RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            retry_deterministic_errors=settings.retry_deterministic_errors,
        ),
        batch_delay=settings.batch_delay,
    )


def build_delegation_checker(adapter: ChainAdapter, settings: Settings) -> DelegationChecker:
    return DelegationChecker(
        adapter,
        RateLimitedExecutor(
            max_concurrency=settings.delegation_check_concurrency,
            min_interval=settings.delegation_check_interval,
        ),
    )
