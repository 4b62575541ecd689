from withdrawdesk.domain.enums.chain import Chain
from withdrawdesk.domain.enums.status import ExecutionStatus, RunOutcome, RunStage

__all__ = [
    "Chain",
    "ExecutionStatus",
    "RunOutcome",
    "RunStage",
]
