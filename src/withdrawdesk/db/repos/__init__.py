from withdrawdesk.db.repos.delegation_snapshot_repo import DelegationSnapshotRepo
from withdrawdesk.db.repos.execution_status_repo import ExecutionStatusRepo, SessionStatusStore
from withdrawdesk.db.repos.wallet_repo import WalletRepo

__all__ = ["DelegationSnapshotRepo", "ExecutionStatusRepo", "SessionStatusStore", "WalletRepo"]
