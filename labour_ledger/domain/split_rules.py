"""
Split Rule Calculator.

Divides one total (integer minor units) across an ordered list of workers.
Pure functions over frozen dataclasses: no session, no clock, no logging.
The mutation engine calls ``calculate_split`` to plan an event, and the
reversal engine calls it again with the recorded inputs to confirm the
stored entries still match that plan.

Remainder rules
---------------
equal
    ``base = total // n``; the remainder goes one unit each to the first
    ``total % n`` members in input order.
proportional
    Weight is the member's current balance; negative balances weigh zero,
    and an all-zero set falls back to equal.  Shares are floored and the
    leftover units go to the largest fractional remainders first, ties in
    input order.
manual
    Each share is ``round_half_up(total * pct / 100)``.  Rounding drift is
    corrected one unit at a time in largest-remainder order (largest
    shortfall first when adding, largest excess first when removing), ties
    in input order, so the allocations always sum to ``total``.
fixed
    Exact per-worker amounts for one event (a redistributed production
    batch).  They must sum to the total; members without an amount get 0.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from fractions import Fraction
from typing import Any
from uuid import UUID

from labour_ledger.exceptions import ManualSplitInvalidError, SplitError

DEFAULT_MANUAL_TOLERANCE = Decimal("0.01")
_HUNDRED = Decimal(100)


class SplitKind(str, Enum):
    """How a total is divided across members."""

    EQUAL = "equal"
    PROPORTIONAL = "proportional"
    MANUAL = "manual"
    FIXED = "fixed"


def _percentage(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ManualSplitInvalidError(f"share {value!r} is not a percentage")
    try:
        pct = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ManualSplitInvalidError(f"share {value!r} is not a number") from None
    if not pct.is_finite():
        raise ManualSplitInvalidError(f"share {value!r} is not finite")
    return pct


@dataclass(frozen=True)
class SplitRule:
    """
    A split policy.

    ``shares`` is only used by manual rules: ``(worker_id, percentage)``
    pairs in the order they were given.  ``amounts`` is only used by fixed
    rules: ``(worker_id, minor_units)`` pairs.
    """

    kind: SplitKind
    shares: tuple[tuple[UUID, Decimal], ...] = ()
    amounts: tuple[tuple[UUID, int], ...] = ()

    @classmethod
    def equal(cls) -> SplitRule:
        return cls(SplitKind.EQUAL)

    @classmethod
    def proportional(cls) -> SplitRule:
        return cls(SplitKind.PROPORTIONAL)

    @classmethod
    def manual(cls, shares: Mapping[UUID | str, Any]) -> SplitRule:
        return cls(
            SplitKind.MANUAL,
            tuple(
                (k if isinstance(k, UUID) else UUID(str(k)), _percentage(v))
                for k, v in shares.items()
            ),
        )

    @classmethod
    def fixed(cls, amounts: Mapping[UUID | str, int]) -> SplitRule:
        return cls(
            SplitKind.FIXED,
            amounts=tuple(
                (k if isinstance(k, UUID) else UUID(str(k)), v)
                for k, v in amounts.items()
            ),
        )

    @property
    def share_map(self) -> dict[UUID, Decimal]:
        return dict(self.shares)

    @property
    def amount_map(self) -> dict[UUID, int]:
        return dict(self.amounts)

    @property
    def total_percent(self) -> Decimal:
        return sum((pct for _, pct in self.shares), Decimal(0))

    def without_member(self, worker_id: UUID) -> SplitRule:
        """Same rule with one member's manual share or fixed amount dropped."""
        return SplitRule(
            self.kind,
            tuple((w, p) for w, p in self.shares if w != worker_id),
            tuple((w, a) for w, a in self.amounts if w != worker_id),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value}
        if self.kind == SplitKind.MANUAL:
            data["shares"] = {str(w): str(p) for w, p in self.shares}
        elif self.kind == SplitKind.FIXED:
            data["amounts"] = {str(w): a for w, a in self.amounts}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> SplitRule:
        if not data:
            return cls.equal()
        try:
            kind = SplitKind(data.get("type", SplitKind.EQUAL.value))
        except ValueError:
            raise SplitError(f"Unknown split rule type {data.get('type')!r}") from None
        if kind == SplitKind.MANUAL:
            return cls.manual(data.get("shares") or {})
        if kind == SplitKind.FIXED:
            amounts = data.get("amounts") or {}
            return cls.fixed({w: int(a) for w, a in amounts.items()})
        return cls(kind)


@dataclass(frozen=True)
class SplitMember:
    """A member as seen by the calculator: id plus proportional weight."""

    worker_id: UUID
    weight: int = 0


@dataclass(frozen=True)
class Allocation:
    worker_id: UUID
    amount: int


@dataclass(frozen=True)
class SplitPlan:
    """The inputs and result of one split; stored on the event header."""

    total: int
    rule: SplitRule
    members: tuple[SplitMember, ...]
    allocations: tuple[Allocation, ...] = field(default=())
    tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE

    def amounts(self) -> dict[UUID, int]:
        return {a.worker_id: a.amount for a in self.allocations}

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "rule": self.rule.to_dict(),
            "members": [
                {"worker_id": str(m.worker_id), "weight": m.weight}
                for m in self.members
            ],
            "allocations": {str(a.worker_id): a.amount for a in self.allocations},
            "tolerance": str(self.tolerance),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SplitPlan:
        return cls(
            total=int(data["total"]),
            rule=SplitRule.from_dict(data.get("rule")),
            members=tuple(
                SplitMember(UUID(m["worker_id"]), int(m.get("weight", 0)))
                for m in data.get("members", [])
            ),
            allocations=tuple(
                Allocation(UUID(w), int(a))
                for w, a in (data.get("allocations") or {}).items()
            ),
            tolerance=Decimal(str(data.get("tolerance", DEFAULT_MANUAL_TOLERANCE))),
        )


def _check_members(pairs, members: set[UUID], what: str) -> None:
    seen: set[UUID] = set()
    for worker_id, value in pairs:
        if worker_id in seen:
            raise ManualSplitInvalidError(f"duplicate {what} for worker {worker_id}")
        seen.add(worker_id)
        if worker_id not in members:
            raise ManualSplitInvalidError(f"{what} given for non-member {worker_id}")
        if value < 0:
            raise ManualSplitInvalidError(f"negative {what} for worker {worker_id}")


def validate_split_rule(
    rule: SplitRule,
    member_ids: Sequence[UUID],
    tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE,
    total: int | None = None,
) -> None:
    """
    Check a rule against a member list before anything is allocated.

    Raises:
        ManualSplitInvalidError: manual shares name a non-member, are
            negative, are missing, or do not sum to 100 within ``tolerance``;
            fixed amounts name a non-member, are not non-negative ints, or
            (when ``total`` is given) do not sum to it exactly.
    """
    members = set(member_ids)
    if rule.kind == SplitKind.MANUAL:
        if not rule.shares:
            raise ManualSplitInvalidError("manual split has no shares")
        _check_members(rule.shares, members, "share")
        percent = rule.total_percent
        if abs(percent - _HUNDRED) > tolerance:
            raise ManualSplitInvalidError(
                f"shares sum to {percent}, expected 100 (+/- {tolerance})",
                total_percent=str(percent),
            )
    elif rule.kind == SplitKind.FIXED:
        if not rule.amounts:
            raise ManualSplitInvalidError("fixed split has no amounts")
        for worker_id, amount in rule.amounts:
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise ManualSplitInvalidError(
                    f"fixed amount for worker {worker_id} must be integer minor units"
                )
        _check_members(rule.amounts, members, "amount")
        assigned = sum(a for _, a in rule.amounts)
        if total is not None and assigned != total:
            raise ManualSplitInvalidError(
                f"fixed amounts sum to {assigned}, expected {total}"
            )


def _equal(total: int, count: int) -> list[int]:
    base, remainder = divmod(total, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def _proportional(total: int, weights: list[int]) -> list[int]:
    weights = [max(w, 0) for w in weights]
    weight_sum = sum(weights)
    if weight_sum == 0:
        return _equal(total, len(weights))

    amounts: list[int] = []
    remainders: list[int] = []
    for w in weights:
        q, r = divmod(total * w, weight_sum)
        amounts.append(q)
        remainders.append(r)

    leftover = total - sum(amounts)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        amounts[i] += 1
    return amounts


def _manual(total: int, percentages: list[Decimal]) -> list[int]:
    exact = [Fraction(total) * Fraction(pct) / 100 for pct in percentages]
    # half-up on non-negative values
    amounts = [int(x + Fraction(1, 2)) for x in exact]

    drift = total - sum(amounts)
    if drift > 0:
        order = sorted(
            (i for i, pct in enumerate(percentages) if pct > 0),
            key=lambda i: (-(exact[i] - amounts[i]), i),
        )
        step = 0
        while drift > 0:
            amounts[order[step % len(order)]] += 1
            drift -= 1
            step += 1
    elif drift < 0:
        order = sorted(
            range(len(percentages)), key=lambda i: (-(amounts[i] - exact[i]), i)
        )
        step = 0
        while drift < 0:
            i = order[step % len(order)]
            if amounts[i] > 0:
                amounts[i] -= 1
                drift += 1
            step += 1
    return amounts


def calculate_split(
    total: int,
    members: Sequence[SplitMember],
    rule: SplitRule,
    tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE,
) -> list[Allocation]:
    """
    Allocate ``total`` across ``members`` under ``rule``.

    Returns one allocation per member, in input order, summing to ``total``
    exactly.  Zero allocations are included.

    Raises:
        SplitError: no members, duplicate members, or a negative total.
        ManualSplitInvalidError: see ``validate_split_rule``.
    """
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        raise SplitError(f"Split total must be a non-negative int, got {total!r}")
    if not members:
        raise SplitError("Cannot split across zero members")
    ids = [m.worker_id for m in members]
    if len(set(ids)) != len(ids):
        raise SplitError("Split members must be distinct")

    validate_split_rule(rule, ids, tolerance, total)

    if rule.kind == SplitKind.EQUAL:
        amounts = _equal(total, len(members))
    elif rule.kind == SplitKind.PROPORTIONAL:
        amounts = _proportional(total, [m.weight for m in members])
    elif rule.kind == SplitKind.FIXED:
        fixed = rule.amount_map
        amounts = [fixed.get(w, 0) for w in ids]
    else:
        shares = rule.share_map
        amounts = _manual(total, [shares.get(w, Decimal(0)) for w in ids])

    return [Allocation(w, a) for w, a in zip(ids, amounts)]


def plan_split(
    total: int,
    members: Sequence[SplitMember],
    rule: SplitRule,
    tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE,
) -> SplitPlan:
    """``calculate_split`` packaged with its inputs for the event header."""
    allocations = calculate_split(total, members, rule, tolerance)
    return SplitPlan(
        total=total,
        rule=rule,
        members=tuple(members),
        allocations=tuple(allocations),
        tolerance=tolerance,
    )
