"""
Money storage limits and the single sanctioned rounding helper.

Amounts and balances are whole minor units in BIGINT columns (the ``int``
entry of ``Base.type_annotation_map``).  Conversions to and from display
decimals live in domain/money.py; anything outside the BIGINT range is
rejected there before it can reach a flush.
"""

from decimal import ROUND_HALF_UP, Decimal

# Signed 64-bit range of a BIGINT column
MAX_MINOR_UNITS = 2**63 - 1

DEFAULT_ROUNDING = ROUND_HALF_UP


def round_half_up(value: Decimal) -> int:
    """
    Round a Decimal to the nearest integer, halves away from zero.

    Preconditions: value is finite and its integer part fits the active
    decimal context (28 digits by default).
    """
    return int(value.quantize(Decimal(1), rounding=DEFAULT_ROUNDING))
