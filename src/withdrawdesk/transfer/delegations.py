"""Live delegation and balance lookups for (wallet, token) pairs."""

import logging
from decimal import Decimal

from withdrawdesk.domain.models.transfer import CandidatePair, DelegationCheck
from withdrawdesk.infra.blockchain.base import ChainAdapter
from withdrawdesk.transfer.rate_limit import RateLimitedExecutor

logger = logging.getLogger(__name__)


class DelegationChecker:
    def __init__(self, adapter: ChainAdapter, rate_limiter: RateLimitedExecutor | None = None) -> None:
        self._adapter = adapter
        self._rate_limiter = rate_limiter or RateLimitedExecutor()

    async def check_pair(self, wallet_address: str, token_address: str, spender: str) -> DelegationCheck:
        """Delegation and balance for one pair. Lookup failures come back as `error`, never raised.

        The balance is only read for delegated pairs.
        """
        try:
            delegation = await self._adapter.check_delegation(wallet_address, token_address, spender)
            if delegation is None or not delegation.is_delegated:
                return DelegationCheck(
                    wallet_address=wallet_address,
                    token_address=token_address,
                    expiration=delegation.expiration if delegation is not None else None,
                )

            balance = await self._adapter.get_balance(wallet_address, token_address)
        except Exception as e:
            logger.warning("Delegation check failed for %s/%s: %s", wallet_address, token_address, e)
            return DelegationCheck(wallet_address=wallet_address, token_address=token_address, error=str(e))

        current = balance.balance if balance is not None else Decimal(0)
        return DelegationCheck(
            wallet_address=wallet_address,
            token_address=token_address,
            balance=current,
            delegated_amount=delegation.delegated_amount,
            is_delegated=True,
            valid_amount=max(min(current, delegation.delegated_amount), Decimal(0)),
            decimals=balance.decimals if balance is not None else None,
            expiration=delegation.expiration,
        )

    async def check_all(self, pairs: list[tuple[str, str]], spender: str) -> list[DelegationCheck]:
        """Checks in input order, throttled by the rate limiter."""
        return await self._rate_limiter.map(
            [lambda w=w, t=t: self.check_pair(w, t, spender) for w, t in pairs]
        )


def flatten_pairs(candidates: list[CandidatePair]) -> list[tuple[str, str]]:
    """(wallet, token) pairs in input order, duplicates dropped."""
    seen: set[tuple[str, str]] = set()
    pairs: list[tuple[str, str]] = []
    for candidate in candidates:
        for token in candidate.token_addresses:
            pair = (candidate.wallet_address, token)
            if pair not in seen:
                seen.add(pair)
                pairs.append(pair)
    return pairs
