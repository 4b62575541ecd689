"""Map raw chain/RPC error text onto the exception taxonomy."""

from withdrawdesk.exceptions import DeterministicTransferError, TransactionFailedError

# Failures caused by balance or authorization state that a retry will not change.
# Compared with whitespace stripped, so JSON and prose forms both match.
DETERMINISTIC_MARKERS = (
    "insufficient funds",
    "insufficient lamports",
    "insufficient balance",
    "insufficientfunds",
    "transfer amount exceeds",
    "exceeds allowance",
    "insufficient allowance",
    "owner does not match",
    "custom program error: 0x1",  # spl-token InsufficientFunds
    "custom program error: 0x4",  # spl-token OwnerMismatch
    '{"custom": 1}',
    '{"custom": 4}',
)

REJECTION_MARKERS = (
    "user rejected",
    "user denied",
    "rejected the request",
    "cancelled by the user",
)


def _squash(text: str) -> str:
    return "".join(text.lower().split())


def failure_from_message(message: str) -> TransactionFailedError:
    """Build the right TransactionFailedError subclass for an error message."""
    squashed = _squash(message)
    if any(_squash(marker) in squashed for marker in DETERMINISTIC_MARKERS):
        return DeterministicTransferError(message)
    return TransactionFailedError(message)


def is_rejection_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in REJECTION_MARKERS)
