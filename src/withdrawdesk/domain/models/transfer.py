"""Domain types for delegated batch transfers."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from withdrawdesk.domain.enums import Chain, ExecutionStatus, RunOutcome, RunStage

MAX_BASE_UNITS = 2**128 - 1


class CandidatePair(BaseModel):
    """A wallet and the tokens selected for withdrawal from it."""

    wallet_address: str
    token_addresses: list[str] = []


class TransferRequest(BaseModel):
    """Logical transfer handed to the engine by the delegation stage."""

    wallet_address: str
    token_address: str
    amount: str  # human-readable decimal string
    decimals: Optional[int] = None

    model_config = {"frozen": True}


class TransferItem(BaseModel):
    """Chain-native transfer resolved from a TransferRequest."""

    source_account: str
    destination_account: str
    token_address: str
    amount_base_units: int = Field(gt=0, le=MAX_BASE_UNITS)
    wallet_address: str  # origin wallet, which may differ from source_account

    model_config = {"frozen": True}


class SkippedTransfer(BaseModel):
    """A request that never made it into a batch, with the reason why."""

    wallet_address: str
    token_address: str
    reason: str


class Batch(BaseModel):
    """Transfer items sharing one on-chain transaction."""

    index: int  # 1-based
    items: list[TransferItem]

    def __len__(self) -> int:
        return len(self.items)


class BatchOutcome(BaseModel):
    """All-or-nothing result of one batch."""

    batch_index: int
    items: list[TransferItem]
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.tx_hash is not None and self.error is None


class TransferResult(BaseModel):
    wallet_address: str
    token_address: str
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class BatchTransferResult(BaseModel):
    """What actually happened on-chain, aggregated from batch outcomes and skips."""

    success: bool = False
    total_transfers: int = 0
    successful_transfers: int = 0
    failed_transfers: int = 0
    transaction_signatures: list[str] = []
    errors: list[str] = []
    results: list[TransferResult] = []


class DelegationState(BaseModel):
    """Live delegation / allowance granted by a wallet to the spender."""

    is_delegated: bool
    delegated_amount: Decimal = Decimal(0)  # human units
    expiration: Optional[int] = None  # unix seconds, Permit2 only


class TokenBalance(BaseModel):
    balance: Decimal  # human units
    decimals: int


class DelegationCheck(BaseModel):
    """Delegation + balance snapshot for one pair."""

    wallet_address: str
    token_address: str
    balance: Decimal = Decimal(0)
    delegated_amount: Decimal = Decimal(0)
    is_delegated: bool = False
    valid_amount: Decimal = Decimal(0)  # min(balance, delegated_amount) when delegated
    decimals: Optional[int] = None  # None when the balance was not read
    expiration: Optional[int] = None
    error: Optional[str] = None


class ExcludedPair(BaseModel):
    """Pair dropped before batching because nothing is transferable."""

    wallet_address: str
    token_address: str
    reason: str


class ExecutionStatusUpdate(BaseModel):
    """The only artifact written back to persistent storage."""

    wallet_address: str
    token_address: str
    chain_id: str
    status: ExecutionStatus
    tx_hash: Optional[str] = None
    executed_by: Optional[str] = None


class StatusUpdateResult(BaseModel):
    wallet_address: str
    token_address: str
    status: ExecutionStatus
    success: bool
    error: Optional[str] = None


class StatusUpdateSummary(BaseModel):
    successful_updates: int = 0
    failed_updates: int = 0
    results: list[StatusUpdateResult] = []
    error: Optional[str] = None


class RetryPolicy(BaseModel):
    """Per-batch retry policy. max_retries counts total attempts."""

    max_retries: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)  # seconds; wait = base_delay * attempt
    retry_deterministic_errors: bool = True


class ExecutionReport(BaseModel):
    """Return value of one orchestration run."""

    chain: Chain
    stage: RunStage
    outcome: RunOutcome
    signer: Optional[str] = None
    result: BatchTransferResult
    excluded: list[ExcludedPair] = []
    status_summary: Optional[StatusUpdateSummary] = None
