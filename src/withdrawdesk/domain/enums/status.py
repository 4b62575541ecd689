from enum import Enum


class ExecutionStatus(str, Enum):
    """Per wallet/token execution state. Values lowercase, as persisted."""

    NEW = "new"
    PENDING = "pending"
    EXECUTED = "executed"


class RunStage(str, Enum):
    """Stages of one orchestration run."""

    IDLE = "idle"
    CONNECTING_WALLET = "connecting_wallet"
    CHECKING_DELEGATIONS = "checking_delegations"
    EXECUTING_TRANSFERS = "executing_transfers"
    UPDATING_STATUS = "updating_status"
    COMPLETED = "completed"
    FAILED = "failed"


class RunOutcome(str, Enum):
    """What the caller should show for a finished run."""

    NO_ITEMS = "no_items"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"
