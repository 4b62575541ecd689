"""Conversions between human-readable decimal amounts and integer base units."""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext

from withdrawdesk.domain.models.transfer import MAX_BASE_UNITS
from withdrawdesk.exceptions import InvalidAmountError

DEFAULT_DECIMALS = 6

# Enough digits for any uint256 at any token decimals, so scaling never rounds
PRECISION = 120


def from_base_units(raw: int, decimals: int) -> Decimal:
    """Exact human amount of `raw` base units."""
    with localcontext(prec=PRECISION):
        return Decimal(int(raw)).scaleb(-decimals)


def to_base_units(amount: str, decimals: int | None = None, max_units: int = MAX_BASE_UNITS) -> int:
    """round(amount * 10**decimals), rejecting non-numeric, non-positive and overflowing amounts."""
    if decimals is None:
        decimals = DEFAULT_DECIMALS
    if decimals < 0:
        raise InvalidAmountError(f"Invalid decimals: {decimals}")

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise InvalidAmountError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount: {amount!r}")

    try:
        with localcontext(prec=PRECISION):
            units = int(value.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_EVEN))
    except InvalidOperation as e:
        raise InvalidAmountError(f"Amount {amount} is out of range at {decimals} decimals") from e

    if units <= 0:
        raise InvalidAmountError(f"Amount must be positive: {amount!r}")
    if units > max_units:
        raise InvalidAmountError(f"Amount {amount} exceeds the maximum of {max_units} base units")
    return units
