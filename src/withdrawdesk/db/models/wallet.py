import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from withdrawdesk.db.session import Base, TimestampMixin, UUIDPrimaryKey
from withdrawdesk.domain.enums import ExecutionStatus


class WalletAddress(UUIDPrimaryKey, TimestampMixin, Base):
    """A user wallet tracked on one chain."""

    __tablename__ = "wallet_addresses"
    __table_args__ = (UniqueConstraint("address", "chain_id"),)

    address: Mapped[str] = mapped_column(String(255), index=True)
    chain_id: Mapped[str] = mapped_column(String(20))
    label: Mapped[Optional[str]] = mapped_column(String(255), default=None)

    tokens: Mapped[list["WalletToken"]] = relationship(
        back_populates="wallet", lazy="selectin", cascade="all, delete-orphan"
    )


class WalletToken(UUIDPrimaryKey, TimestampMixin, Base):
    """Typed per-token state of a wallet: discovery snapshot plus execution status.

    token_address is case-normalized (lowercase for EVM) so lookups never miss on checksum case.
    """

    __tablename__ = "wallet_tokens"
    __table_args__ = (UniqueConstraint("wallet_id", "token_address"),)

    wallet_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("wallet_addresses.id", ondelete="CASCADE"))
    token_address: Mapped[str] = mapped_column(String(255))

    # Last live delegation check (DelegationSnapshotRepo)
    balance: Mapped[str] = mapped_column(String(100), default="0")  # human units, decimal string
    decimals: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    is_delegated: Mapped[bool] = mapped_column(Boolean, default=False)
    delegated_amount: Mapped[str] = mapped_column(String(100), default="0")
    approval_expiration: Mapped[Optional[int]] = mapped_column(BigInteger, default=None)
    delegation_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)

    # Execution status
    status: Mapped[str] = mapped_column(String(20), default=ExecutionStatus.NEW.value, index=True)
    status_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    executed_by: Mapped[Optional[str]] = mapped_column(String(255), default=None)

    wallet: Mapped[WalletAddress] = relationship(back_populates="tokens")
