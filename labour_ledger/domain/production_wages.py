"""
Production-batch wage arithmetic.

Rates are minor units per 1000 pieces.  A batch pays
``production_quantity * production_rate / 1000 + thappi_quantity *
thappi_rate / 1000``, rounded half-up once at the end.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from fractions import Fraction
from uuid import UUID

from labour_ledger.domain.split_rules import (
    Allocation,
    SplitMember,
    SplitRule,
    calculate_split,
)
from labour_ledger.exceptions import InvalidAmountError, InvalidEventError

PIECES_PER_RATE = 1000


@dataclass(frozen=True)
class WageRates:
    production_rate: int
    thappi_rate: int


def _quantity(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmountError(value, f"{field} must be a non-negative int")
    return value


def calculate_batch_wages(
    production_quantity: int, thappi_quantity: int, rates: WageRates
) -> int:
    """Total wages in minor units for one production batch."""
    production_quantity = _quantity(production_quantity, "production_quantity")
    thappi_quantity = _quantity(thappi_quantity, "thappi_quantity")
    exact = Fraction(
        production_quantity * rates.production_rate
        + thappi_quantity * rates.thappi_rate,
        PIECES_PER_RATE,
    )
    return int(exact + Fraction(1, 2))


def redistribute(
    allocations: Sequence[Allocation], index: int, new_amount: int
) -> list[Allocation]:
    """
    Pin one allocation to ``new_amount`` and spread the rest of the original
    total equally over the others, remainder to the first of them.

    The total never changes.  Raises InvalidAmountError if the pinned amount
    is negative or larger than the total.
    """
    if not 0 <= index < len(allocations):
        raise IndexError(f"allocation index {index} out of range")
    total = sum(a.amount for a in allocations)
    new_amount = _quantity(new_amount, "new_amount")
    if new_amount > total:
        raise InvalidAmountError(new_amount, f"exceeds batch total {total}")
    if len(allocations) == 1:
        if new_amount != total:
            raise InvalidAmountError(
                new_amount, f"a single worker must receive the whole total {total}"
            )
        return list(allocations)

    base, remainder = divmod(total - new_amount, len(allocations) - 1)
    result: list[Allocation] = []
    other = 0
    for i, allocation in enumerate(allocations):
        if i == index:
            result.append(Allocation(allocation.worker_id, new_amount))
            continue
        amount = base + 1 if other < remainder else base
        result.append(Allocation(allocation.worker_id, amount))
        other += 1
    return result


def pinned_split(
    worker_ids: Sequence[UUID], total: int, worker_id: UUID, amount: int
) -> SplitRule:
    """
    Fixed split of a batch total where ``worker_id`` is paid ``amount`` and
    everyone else shares the rest equally.

    Starts from the equal split and applies ``redistribute``.
    """
    ids = list(worker_ids)
    if worker_id not in ids:
        raise InvalidEventError(f"pinned worker {worker_id} is not in the batch")
    equal = calculate_split(total, [SplitMember(w) for w in ids], SplitRule.equal())
    pinned = redistribute(equal, ids.index(worker_id), amount)
    return SplitRule.fixed({a.worker_id: a.amount for a in pinned})
