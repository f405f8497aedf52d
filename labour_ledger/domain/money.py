"""
Money codec: display decimals <-> integer minor units.

Everything past this boundary is ``int``.  Amounts arrive from forms as
strings, Decimals, ints or (unfortunately) floats; floats are routed through
``str()`` so ``0.1`` becomes ``Decimal("0.1")`` rather than its binary
approximation.
"""

from dataclasses import dataclass
from decimal import Decimal, DecimalException, InvalidOperation

from labour_ledger.db.types import MAX_MINOR_UNITS, round_half_up
from labour_ledger.exceptions import InvalidAmountError

DEFAULT_DECIMAL_PLACES = 2


def _to_decimal(amount: Decimal | int | str | float) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmountError(amount, "booleans are not amounts")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, int):
        value = Decimal(amount)
    elif isinstance(amount, float):
        value = Decimal(str(amount))
    elif isinstance(amount, str):
        try:
            value = Decimal(amount.strip())
        except InvalidOperation:
            raise InvalidAmountError(amount, "not a number") from None
    else:
        raise InvalidAmountError(amount, f"unsupported type {type(amount).__name__}")
    if not value.is_finite():
        raise InvalidAmountError(amount, "not finite")
    return value


def to_minor_units(
    amount: Decimal | int | str | float,
    *,
    decimal_places: int = DEFAULT_DECIMAL_PLACES,
    allow_negative: bool = False,
) -> int:
    """
    Convert a display amount to integer minor units, rounding half-up.

    >>> to_minor_units("230.005")
    23001

    Raises:
        InvalidAmountError: non-numeric, non-finite, negative when
            ``allow_negative`` is False, or too large for a BIGINT column.
    """
    value = _to_decimal(amount)
    if value < 0 and not allow_negative:
        raise InvalidAmountError(amount, "negative amount not allowed")
    try:
        scaled = value.scaleb(decimal_places)
        if abs(scaled) > MAX_MINOR_UNITS:
            raise InvalidAmountError(amount, "amount too large")
        return round_half_up(scaled)
    except DecimalException:
        raise InvalidAmountError(amount, "amount too large") from None


def to_display(
    minor_units: int, *, decimal_places: int = DEFAULT_DECIMAL_PLACES
) -> Decimal:
    """Convert minor units back to a Decimal with ``decimal_places`` digits."""
    if isinstance(minor_units, bool) or not isinstance(minor_units, int):
        raise InvalidAmountError(minor_units, "minor units must be an int")
    if abs(minor_units) > MAX_MINOR_UNITS:
        raise InvalidAmountError(minor_units, "amount too large")
    return Decimal(minor_units).scaleb(-decimal_places).quantize(
        Decimal(1).scaleb(-decimal_places)
    )


def format_minor_units(
    minor_units: int,
    currency: str,
    *,
    decimal_places: int = DEFAULT_DECIMAL_PLACES,
) -> str:
    """Plain ``"INR 230.00"`` rendering for log lines and error messages."""
    return f"{currency} {to_display(minor_units, decimal_places=decimal_places)}"


def require_positive_minor_units(amount: int, field: str = "amount") -> int:
    """Validate an engine-boundary amount: a positive ``int``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(amount, f"{field} must be integer minor units")
    if amount <= 0:
        raise InvalidAmountError(amount, f"{field} must be positive")
    if amount > MAX_MINOR_UNITS:
        raise InvalidAmountError(amount, f"{field} too large")
    return amount


@dataclass(frozen=True)
class MoneyCodec:
    """The codec bound to one currency (``settings.currency``)."""

    currency: str = "INR"
    decimal_places: int = DEFAULT_DECIMAL_PLACES

    def to_minor_units(
        self, amount: Decimal | int | str | float, *, allow_negative: bool = False
    ) -> int:
        return to_minor_units(
            amount, decimal_places=self.decimal_places, allow_negative=allow_negative
        )

    def to_display(self, minor_units: int) -> Decimal:
        return to_display(minor_units, decimal_places=self.decimal_places)

    def format(self, minor_units: int) -> str:
        return format_minor_units(
            minor_units, self.currency, decimal_places=self.decimal_places
        )
