"""
AccountAggregator -- keeps combined accounts equal to the sum of their members.

Responsibility:
    ``recompute(account_id)`` reads the members' current and opening
    balances and writes the sums onto the account.  It is the only writer of
    ``Account.current_balance`` / ``Account.opening_balance`` /
    ``Account.member_count`` and the only component that dissolves accounts.

Invariants enforced:
    - Account.current_balance == sum(member.current_balance)
    - Account.opening_balance == sum(member.opening_balance)
    - An account with fewer than two members does not survive a recompute:
      it is deleted and its remaining member's ``account_id`` is cleared.

Failure modes:
    - AccountEmptyError is raised by the membership check and consumed here;
      it never reaches a caller.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from labour_ledger.exceptions import AccountEmptyError
from labour_ledger.logging_config import get_logger
from labour_ledger.models.account import Account
from labour_ledger.models.worker import Worker
from labour_ledger.services.base import BaseService

logger = get_logger("services.account_aggregator")

MIN_MEMBERS = 2


@dataclass(frozen=True)
class AggregateResult:
    account_id: UUID
    current_balance: int
    opening_balance: int
    member_count: int
    dissolved: bool = False
    found: bool = True


class AccountAggregator(BaseService[Account]):
    """Recompute account projections from member balances."""

    def __init__(self, session: Session):
        super().__init__(session)

    def recompute(self, account_id: UUID) -> AggregateResult:
        # Pending member/balance changes must be visible to the sums below.
        self.session.flush()

        account = self.session.get(Account, account_id)
        if account is None:
            return AggregateResult(account_id, 0, 0, 0, found=False)

        try:
            self._require_members(account)
        except AccountEmptyError as exc:
            return self._dissolve(account, exc)

        member_ids = account.member_ids
        workers = self.session.scalars(
            select(Worker).where(Worker.id.in_(member_ids))
        ).all()

        current = sum(w.current_balance for w in workers)
        opening = sum(w.opening_balance for w in workers)

        account.current_balance = current
        account.opening_balance = opening
        account.member_count = len(member_ids)
        self.session.flush()

        logger.debug(
            "account_recomputed",
            extra={
                "account_id": str(account.id),
                "current_balance": current,
                "opening_balance": opening,
                "member_count": len(member_ids),
            },
        )
        return AggregateResult(account.id, current, opening, len(member_ids))

    def recompute_many(self, account_ids) -> list[AggregateResult]:
        """Recompute each distinct account once, in a stable order."""
        distinct = sorted({a for a in account_ids if a is not None}, key=str)
        return [self.recompute(a) for a in distinct]

    def _require_members(self, account: Account) -> None:
        count = len(account.members)
        if count < MIN_MEMBERS:
            raise AccountEmptyError(str(account.id), count)

    def _dissolve(self, account: Account, exc: AccountEmptyError) -> AggregateResult:
        detached: list[str] = []
        for member in list(account.members):
            worker = self.session.get(Worker, member.worker_id)
            if worker is not None and worker.account_id == account.id:
                worker.account_id = None
                detached.append(str(worker.id))
        # Clear the back-references before the parent row goes.
        self.session.flush()

        self.session.delete(account)
        self.session.flush()

        logger.info(
            "account_dissolved",
            extra={
                "account_id": str(account.id),
                "member_count": exc.member_count,
                "detached_worker_ids": detached,
            },
        )
        return AggregateResult(
            account.id, 0, 0, exc.member_count, dissolved=True
        )
