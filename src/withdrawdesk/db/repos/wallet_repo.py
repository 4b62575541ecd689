import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from withdrawdesk.db.models.wallet import WalletAddress, WalletToken
from withdrawdesk.domain.enums import Chain


def normalize_address(address: str, chain_id: str) -> str:
    """Lowercase for EVM chains, preserve case for base58 chains (Solana, Tron)."""
    address = address.strip()
    if chain_id in (Chain.SOLANA.chain_id, Chain.TRON.chain_id):
        return address
    return address.lower()


class WalletRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, wallet_id: uuid.UUID) -> Optional[WalletAddress]:
        result = await self._session.execute(
            select(WalletAddress).where(WalletAddress.id == wallet_id)
        )
        return result.scalar_one_or_none()

    async def get_by_address(self, address: str, chain_id: str) -> Optional[WalletAddress]:
        result = await self._session.execute(
            select(WalletAddress).where(
                WalletAddress.address == normalize_address(address, chain_id),
                WalletAddress.chain_id == chain_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_chain(self, chain_id: str) -> list[WalletAddress]:
        result = await self._session.execute(
            select(WalletAddress)
            .where(WalletAddress.chain_id == chain_id)
            .order_by(WalletAddress.created_at.asc(), WalletAddress.address.asc())
        )
        return list(result.scalars().all())

    async def create(self, address: str, chain_id: str, label: Optional[str] = None) -> WalletAddress:
        wallet = WalletAddress(
            address=normalize_address(address, chain_id),
            chain_id=chain_id,
            label=label,
        )
        self._session.add(wallet)
        await self._session.flush()
        return wallet

    async def get_or_create(self, address: str, chain_id: str) -> WalletAddress:
        wallet = await self.get_by_address(address, chain_id)
        if wallet is None:
            wallet = await self.create(address, chain_id)
        return wallet

    async def get_token(self, wallet: WalletAddress, token_address: str) -> Optional[WalletToken]:
        result = await self._session.execute(
            select(WalletToken).where(
                WalletToken.wallet_id == wallet.id,
                WalletToken.token_address == normalize_address(token_address, wallet.chain_id),
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_token(self, wallet: WalletAddress, token_address: str) -> WalletToken:
        token = await self.get_token(wallet, token_address)
        if token is None:
            token = WalletToken(
                wallet_id=wallet.id,
                token_address=normalize_address(token_address, wallet.chain_id),
            )
            self._session.add(token)
            await self._session.flush()
        return token

    async def delete(self, wallet: WalletAddress) -> None:
        await self._session.delete(wallet)
        await self._session.flush()
