"""Execution-status persistence: the write side of status reconciliation."""

import logging
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from withdrawdesk.db.models.wallet import WalletAddress, WalletToken
from withdrawdesk.db.repos.wallet_repo import WalletRepo, normalize_address
from withdrawdesk.db.session import session_scope
from withdrawdesk.domain.enums import ExecutionStatus
from withdrawdesk.domain.models.transfer import (
    CandidatePair,
    ExecutionStatusUpdate,
    StatusUpdateResult,
    StatusUpdateSummary,
)
from withdrawdesk.exceptions import StatusTransitionError

logger = logging.getLogger(__name__)


class ExecutionStatusRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._wallets = WalletRepo(session)

    async def apply_status_updates(self, updates: list[ExecutionStatusUpdate]) -> StatusUpdateSummary:
        """Write each update onto its wallet/token row. Unknown wallets count as failed.

        Re-applying the same list leaves the same persisted state.
        """
        summary = StatusUpdateSummary()
        now = datetime.now(UTC)

        for update in updates:
            wallet = await self._wallets.get_by_address(update.wallet_address, update.chain_id)
            if wallet is None:
                summary.failed_updates += 1
                summary.results.append(StatusUpdateResult(
                    wallet_address=update.wallet_address,
                    token_address=update.token_address,
                    status=update.status,
                    success=False,
                    error="Wallet not found",
                ))
                continue

            token = await self._wallets.get_or_create_token(wallet, update.token_address)
            token.status = update.status.value
            token.status_updated_at = now
            token.tx_hash = update.tx_hash
            token.executed_by = update.executed_by

            summary.successful_updates += 1
            summary.results.append(StatusUpdateResult(
                wallet_address=update.wallet_address,
                token_address=update.token_address,
                status=update.status,
                success=True,
            ))

        await self._session.flush()
        return summary

    async def list_pending_candidates(
        self, chain_id: str, wallet_addresses: Optional[list[str]] = None
    ) -> list[CandidatePair]:
        """Wallets with the tokens whose status is exactly 'pending', in wallet creation order."""
        stmt = (
            select(WalletAddress.address, WalletToken.token_address)
            .join(WalletToken, WalletToken.wallet_id == WalletAddress.id)
            .where(
                WalletAddress.chain_id == chain_id,
                WalletToken.status == ExecutionStatus.PENDING.value,
            )
            .order_by(
                WalletAddress.created_at.asc(),
                WalletAddress.address.asc(),
                WalletToken.created_at.asc(),
                WalletToken.token_address.asc(),
            )
        )
        if wallet_addresses:
            stmt = stmt.where(
                WalletAddress.address.in_([normalize_address(a, chain_id) for a in wallet_addresses])
            )

        result = await self._session.execute(stmt)
        grouped: OrderedDict[str, list[str]] = OrderedDict()
        for address, token_address in result.all():
            grouped.setdefault(address, []).append(token_address)

        return [CandidatePair(wallet_address=a, token_addresses=t) for a, t in grouped.items()]

    async def reset_token_status(self, wallet_address: str, token_address: str, chain_id: str) -> WalletToken:
        """Move one token from pending back to new."""
        wallet = await self._wallets.get_by_address(wallet_address, chain_id)
        if wallet is None:
            raise LookupError("Wallet not found")

        token = await self._wallets.get_token(wallet, token_address)
        if token is None or token.status != ExecutionStatus.PENDING.value:
            raise StatusTransitionError("Token not found or not in pending status")

        token.status = ExecutionStatus.NEW.value
        token.status_updated_at = datetime.now(UTC)
        await self._session.flush()
        return token

    async def reset_all_pending(self, chain_id: str) -> int:
        """Move every pending token on a chain back to new. Returns the number reset."""
        result = await self._session.execute(
            select(WalletToken)
            .join(WalletAddress, WalletToken.wallet_id == WalletAddress.id)
            .where(
                WalletAddress.chain_id == chain_id,
                WalletToken.status == ExecutionStatus.PENDING.value,
            )
        )
        tokens = list(result.scalars().all())
        now = datetime.now(UTC)
        for token in tokens:
            token.status = ExecutionStatus.NEW.value
            token.status_updated_at = now
        await self._session.flush()
        logger.info("Reset %d pending tokens to new on chain %s", len(tokens), chain_id)
        return len(tokens)


class SessionStatusStore:
    """Status store that owns its session, so reconciliation commits independently of the caller."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def apply_status_updates(self, updates: list[ExecutionStatusUpdate]) -> StatusUpdateSummary:
        async with session_scope(self._session_factory) as session:
            return await ExecutionStatusRepo(session).apply_status_updates(updates)
