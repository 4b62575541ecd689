from typing import Optional

from pydantic import BaseModel, field_validator

from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import CandidatePair, DelegationCheck, ExecutionStatusUpdate


def _known_chain_id(v: str) -> str:
    Chain.from_chain_id(v)
    return v


class PendingCandidatesResponse(BaseModel):
    chain: Chain
    chain_id: str
    candidates: list[CandidatePair]
    total_wallets: int
    total_tokens: int


class StatusUpdateRequest(BaseModel):
    updates: list[ExecutionStatusUpdate]

    @field_validator("updates")
    @classmethod
    def check_chain_ids(cls, v: list[ExecutionStatusUpdate]) -> list[ExecutionStatusUpdate]:
        for update in v:
            _known_chain_id(update.chain_id)
        return v


class ResetTokenStatusRequest(BaseModel):
    wallet_address: str
    token_address: str
    chain_id: str

    @field_validator("chain_id")
    @classmethod
    def check_chain_id(cls, v: str) -> str:
        return _known_chain_id(v)


class ResetTokenStatusResponse(BaseModel):
    wallet_address: str
    token_address: str
    status: str


class ResetPendingResponse(BaseModel):
    chain: Chain
    reset_count: int


class RunRequest(BaseModel):
    receiver: str
    wallet_addresses: Optional[list[str]] = None  # restrict the run to these wallets


class CheckDelegationRequest(BaseModel):
    wallets: list[CandidatePair]
    spender: Optional[str] = None  # defaults to the spender of the server signer (or the Tron batch contract)


class DelegationCheckResult(DelegationCheck):
    persisted: bool = False


class CheckDelegationResponse(BaseModel):
    chain: Chain
    spender: str
    results: list[DelegationCheckResult]
    total_checked: int
    total_delegated: int
