import logging
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from withdrawdesk.db.repos.wallet_repo import WalletRepo
from withdrawdesk.domain.models.transfer import DelegationCheck

logger = logging.getLogger(__name__)


def _plain(amount: Decimal) -> str:
    return format(amount, "f")


class DelegationSnapshotRepo:
    """Stores the latest live delegation check on each wallet token row."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._wallets = WalletRepo(session)

    async def record(self, chain_id: str, check: DelegationCheck) -> bool:
        """Persist one check. Returns False (nothing written) for unknown wallets and failed lookups.

        The stored balance is only replaced when the check actually read it.
        """
        if check.error is not None:
            return False

        wallet = await self._wallets.get_by_address(check.wallet_address, chain_id)
        if wallet is None:
            return False

        token = await self._wallets.get_or_create_token(wallet, check.token_address)
        token.is_delegated = check.is_delegated
        token.delegated_amount = _plain(check.delegated_amount)
        token.approval_expiration = check.expiration
        token.delegation_checked_at = datetime.now(UTC)
        if check.decimals is not None:
            token.balance = _plain(check.balance)
            token.decimals = check.decimals
        return True

    async def record_all(self, chain_id: str, checks: list[DelegationCheck]) -> list[bool]:
        persisted = [await self.record(chain_id, check) for check in checks]
        await self._session.flush()
        logger.info("Stored %d of %d delegation checks on chain %s", sum(persisted), len(checks), chain_id)
        return persisted
