"""
AccountService -- administration of combined accounts.

Responsibility:
    Create accounts, add and remove members, and change the split rule.
    Every membership change ends with an AccountAggregator recompute, which
    also dissolves an account that has dropped below two members.

Invariants enforced:
    - Members are distinct active workers of the account's organization.
    - A worker is in at most one account; Worker.account_id mirrors the
      AccountMember row and is only written here and by the aggregator.
    - A manual split rule always names members only and sums to 100 within
      tolerance.  Removing a member drops its share; if what remains no
      longer sums to 100 the rule falls back to equal.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from labour_ledger.domain.dtos import AccountInfo
from labour_ledger.domain.split_rules import (
    DEFAULT_MANUAL_TOLERANCE,
    SplitKind,
    SplitRule,
    validate_split_rule,
)
from labour_ledger.exceptions import (
    AccountMembershipError,
    ManualSplitInvalidError,
    UnknownAccountError,
    WorkerInactiveError,
)
from labour_ledger.logging_config import get_logger
from labour_ledger.models.account import Account, AccountMember
from labour_ledger.models.worker import Worker
from labour_ledger.services.account_aggregator import AccountAggregator, AggregateResult
from labour_ledger.services.base import BaseService
from labour_ledger.services.worker_service import WorkerService, _require_text

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """Create accounts and manage their membership and split rule."""

    def __init__(
        self,
        session: Session,
        aggregator: AccountAggregator | None = None,
        workers: WorkerService | None = None,
        manual_tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE,
    ):
        super().__init__(session)
        self._aggregator = aggregator or AccountAggregator(session)
        self._workers = workers or WorkerService(session, self._aggregator)
        self._tolerance = manual_tolerance

    def load(
        self,
        account_id: UUID,
        organization_id: UUID | None = None,
        *,
        fresh: bool = False,
    ) -> Account:
        """Get an account row, raising if missing or in another organization."""
        if fresh:
            self.session.flush()
        account = self.session.get(Account, account_id, populate_existing=fresh)
        if account is None or (
            organization_id is not None and account.organization_id != organization_id
        ):
            raise UnknownAccountError(str(account_id))
        return account

    def get(self, account_id: UUID) -> AccountInfo:
        return AccountInfo.from_model(self.load(account_id))

    def list_accounts(self, organization_id: UUID) -> list[AccountInfo]:
        stmt = (
            select(Account)
            .where(Account.organization_id == organization_id)
            .order_by(Account.name)
        )
        return [AccountInfo.from_model(a) for a in self.session.scalars(stmt)]

    def _eligible_worker(self, organization_id: UUID, worker_id: UUID) -> Worker:
        worker = self._workers.load(worker_id, organization_id)
        if not worker.is_active:
            raise WorkerInactiveError(str(worker_id))
        if worker.account_id is not None:
            raise AccountMembershipError(
                str(worker.account_id),
                str(worker_id),
                "worker already belongs to an account",
            )
        return worker

    def create_account(
        self,
        organization_id: UUID,
        name: str,
        member_ids: Sequence[UUID],
        split_rule: SplitRule | None = None,
    ) -> AccountInfo:
        """
        Create an account over at least two distinct active workers.

        Raises:
            ValidationError: blank name.
            AccountMembershipError: fewer than two members, duplicates, or a
                member already in another account.
            UnknownWorkerError / WorkerInactiveError: bad member.
            ManualSplitInvalidError: manual shares don't fit the members, or
                the rule is a fixed split.
        """
        name = _require_text(name, "name")
        member_ids = list(member_ids)
        if len(set(member_ids)) != len(member_ids):
            raise AccountMembershipError(None, None, "member ids must be distinct")
        if len(member_ids) < 2:
            raise AccountMembershipError(
                None, None, "an account needs at least two members"
            )

        rule = split_rule or SplitRule.equal()
        workers = [self._eligible_worker(organization_id, w) for w in member_ids]
        self._validate_account_rule(rule, member_ids)

        account = Account(
            organization_id=organization_id,
            name=name,
            split_rule=rule.to_dict(),
            member_count=len(workers),
        )
        for position, worker in enumerate(workers):
            account.members.append(AccountMember(worker_id=worker.id, position=position))
        self.session.add(account)
        self.session.flush()

        for worker in workers:
            worker.account_id = account.id
        self._aggregator.recompute(account.id)

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "member_ids": [str(w) for w in member_ids],
                "split_rule": rule.kind.value,
            },
        )
        return AccountInfo.from_model(account)

    def add_member(self, account_id: UUID, worker_id: UUID) -> AccountInfo:
        """
        Append a worker to the account.  Under a manual rule the newcomer
        holds no share until the rule is changed.
        """
        account = self.load(account_id, fresh=True)
        worker = self._eligible_worker(account.organization_id, worker_id)

        position = max((m.position for m in account.members), default=-1) + 1
        account.members.append(AccountMember(worker_id=worker.id, position=position))
        worker.account_id = account.id
        self._aggregator.recompute(account.id)

        logger.info(
            "account_member_added",
            extra={"account_id": str(account.id), "worker_id": str(worker.id)},
        )
        return AccountInfo.from_model(account)

    def remove_member(self, account_id: UUID, worker_id: UUID) -> AggregateResult:
        """
        Remove a worker from the account and recompute it.

        Returns the aggregator result; ``dissolved`` is True when the removal
        left fewer than two members.
        """
        account = self.load(account_id, fresh=True)
        member = next((m for m in account.members if m.worker_id == worker_id), None)
        if member is None:
            raise AccountMembershipError(
                str(account_id), str(worker_id), "worker is not a member"
            )

        account.members.remove(member)
        worker = self._workers.load(worker_id)
        if worker.account_id == account.id:
            worker.account_id = None

        rule = SplitRule.from_dict(account.split_rule)
        if rule.kind == SplitKind.MANUAL:
            account.split_rule = self._rule_after_removal(account, rule, worker_id).to_dict()

        result = self._aggregator.recompute(account.id)
        logger.info(
            "account_member_removed",
            extra={
                "account_id": str(account_id),
                "worker_id": str(worker_id),
                "dissolved": result.dissolved,
            },
        )
        return result

    def _rule_after_removal(
        self, account: Account, rule: SplitRule, worker_id: UUID
    ) -> SplitRule:
        reduced = rule.without_member(worker_id)
        if abs(reduced.total_percent - Decimal(100)) <= self._tolerance:
            return reduced
        logger.warning(
            "split_rule_reset",
            extra={
                "account_id": str(account.id),
                "removed_worker_id": str(worker_id),
                "remaining_percent": str(reduced.total_percent),
            },
        )
        return SplitRule.equal()

    def change_split_rule(self, account_id: UUID, split_rule: SplitRule) -> AccountInfo:
        """Replace the stored rule.  Past events are unaffected."""
        account = self.load(account_id, fresh=True)
        self._validate_account_rule(split_rule, account.member_ids)
        account.split_rule = split_rule.to_dict()
        self.session.flush()
        logger.info(
            "split_rule_changed",
            extra={"account_id": str(account.id), "split_rule": split_rule.kind.value},
        )
        return AccountInfo.from_model(account)

    def _validate_account_rule(self, rule: SplitRule, member_ids: Sequence[UUID]) -> None:
        if rule.kind == SplitKind.FIXED:
            raise ManualSplitInvalidError(
                "fixed amounts belong to one event and cannot be an account rule"
            )
        validate_split_rule(rule, member_ids, self._tolerance)
