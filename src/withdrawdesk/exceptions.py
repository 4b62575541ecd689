"""Exception hierarchy for the withdrawal engine."""


class WithdrawDeskError(Exception):
    """Base for all domain errors."""


class InvalidAddressError(WithdrawDeskError):
    """Address is not well-formed for the target chain."""


class InvalidAmountError(WithdrawDeskError):
    """Amount is non-numeric, non-positive or does not fit the chain's integer width."""


class AccountDerivationError(WithdrawDeskError):
    """A derived token account cannot exist for this (owner, token) pair.

    Deterministic: retrying never helps.
    """


class ExternalServiceError(WithdrawDeskError):
    """RPC / HTTP call failed in a way that may succeed on retry."""


class TransactionFailedError(WithdrawDeskError):
    """Transaction was rejected by the network or could not be confirmed."""


class DeterministicTransferError(TransactionFailedError):
    """Failure caused by state that will not change between attempts (funds, allowance)."""


class SignerRejectedError(WithdrawDeskError):
    """The signer declined to sign the transaction."""


class SignerUnavailableError(WithdrawDeskError):
    """No signer could be acquired for the run."""


class StatusTransitionError(WithdrawDeskError):
    """Requested execution-status change is not allowed from the current status."""
