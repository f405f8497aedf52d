"""
BalanceMutationEngine -- applies wage credits and expense debits.

Responsibility:
    Turns a MutationRequest into ledger entries and balance changes inside
    the caller's transaction: validate, resolve targets with fresh reads,
    plan the split, write the event header and the entries, move the
    workers' balances, and recompute every account that was touched.

Architecture position:
    Ledger > Services.  Uses WorkerService / AccountService for lookups,
    domain.split_rules for planning and AccountAggregator for accounts.
    Flush-only: the transaction runner commits.

Invariants enforced:
    - Only this engine (and the reversal engine, undoing its work) changes
      Worker.current_balance or inserts LedgerEntry rows.
    - Worker-scoped entries of one event sum to exactly the event total.
    - Every validation failure is raised before the first write.
    - A reference is applied at most once until it is reversed.

Failure modes:
    - InvalidAmountError, InvalidEventError: malformed request.
    - UnknownWorkerError, UnknownAccountError, WorkerInactiveError,
      AccountMembershipError: bad target.
    - ManualSplitInvalidError: manual shares do not fit the members.
    - EventAlreadyAppliedError: duplicate reference.
    - StaleDataError (from the version counters): a concurrent writer won;
      the transaction runner retries the whole operation.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from labour_ledger.domain.clock import Clock, SystemClock
from labour_ledger.domain.dtos import (
    AccountTarget,
    Direction,
    EntryScope,
    LedgerEntryRecord,
    MutationRequest,
    WorkerTarget,
)
from labour_ledger.domain.money import MoneyCodec, require_positive_minor_units
from labour_ledger.domain.split_rules import (
    DEFAULT_MANUAL_TOLERANCE,
    Allocation,
    SplitKind,
    SplitMember,
    SplitPlan,
    SplitRule,
    plan_split,
)
from labour_ledger.exceptions import (
    AccountMembershipError,
    EventAlreadyAppliedError,
    InvalidEventError,
    ManualSplitInvalidError,
    WorkerInactiveError,
)
from labour_ledger.logging_config import get_logger
from labour_ledger.models.account import Account
from labour_ledger.models.ledger_entry import LedgerEntry, PostedEvent
from labour_ledger.models.worker import Worker
from labour_ledger.services.account_aggregator import AccountAggregator
from labour_ledger.services.account_service import AccountService
from labour_ledger.services.base import BaseService
from labour_ledger.services.worker_service import WorkerService

logger = get_logger("services.balance_mutation")

_MAX_REFERENCE_TYPE = 50
_MAX_REFERENCE_ID = 200


class _ResolvedTarget:
    """Workers to touch, in allocation order, plus the plan that split them."""

    def __init__(
        self,
        workers: list[Worker],
        allocations: list[Allocation],
        plan: SplitPlan | None,
        account: Account | None = None,
    ):
        self.workers = {w.id: w for w in workers}
        self.allocations = allocations
        self.plan = plan
        self.account = account


class BalanceMutationEngine(BaseService[LedgerEntry]):
    """Apply one business event's balance effect."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        aggregator: AccountAggregator | None = None,
        manual_tolerance: Decimal = DEFAULT_MANUAL_TOLERANCE,
        money: MoneyCodec | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._money = money or MoneyCodec()
        self._aggregator = aggregator or AccountAggregator(session)
        self._workers = WorkerService(session, self._aggregator)
        self._accounts = AccountService(
            session, self._aggregator, self._workers, manual_tolerance
        )
        self._tolerance = manual_tolerance

    # =========================================================================
    # Public API
    # =========================================================================

    def apply(self, request: MutationRequest) -> list[LedgerEntryRecord]:
        """
        Apply ``request`` and return the entries written, worker entries
        first in allocation order, then the account audit entry if any.
        """
        direction = self._validate(request)
        self._ensure_not_applied(request)

        # Step 1: resolve targets and plan the split (no writes yet)
        if isinstance(request.target, AccountTarget):
            resolved = self._resolve_account(request)
        else:
            resolved = self._resolve_workers(request)

        occurred_at = request.occurred_at or self._clock.now()
        now = self._clock.now()

        # Step 2: event header; the unique reference constraint settles races
        account_id = resolved.account.id if resolved.account is not None else None
        header = PostedEvent(
            organization_id=request.organization_id,
            reference_type=request.reference_type,
            reference_id=request.reference_id,
            direction=direction.value,
            total_amount=request.total_amount,
            target_kind=request.target.kind.value,
            account_id=account_id,
            split_plan=resolved.plan.to_dict() if resolved.plan is not None else None,
            occurred_at=occurred_at,
            created_at=now,
        )
        self.session.add(header)
        try:
            self.session.flush()
        except IntegrityError:
            raise EventAlreadyAppliedError(
                request.reference_type, request.reference_id
            ) from None

        # Step 3: one entry per non-zero allocation, balances moved in place
        entries: list[LedgerEntry] = []
        line_no = 0
        for allocation in resolved.allocations:
            if allocation.amount == 0:
                continue
            worker = resolved.workers[allocation.worker_id]
            previous = worker.current_balance
            new_balance = previous + direction.signed(allocation.amount)
            entries.append(
                LedgerEntry(
                    organization_id=request.organization_id,
                    scope=EntryScope.WORKER.value,
                    worker_id=worker.id,
                    account_id=account_id,
                    direction=direction.value,
                    amount=allocation.amount,
                    previous_balance=previous,
                    new_balance=new_balance,
                    reference_type=request.reference_type,
                    reference_id=request.reference_id,
                    occurred_at=occurred_at,
                    line_no=line_no,
                    entry_metadata=request.metadata,
                    created_at=now,
                )
            )
            worker.current_balance = new_balance
            line_no += 1

        # Step 4: account-level audit line carrying the whole total
        if resolved.account is not None:
            previous = resolved.account.current_balance
            entries.append(
                LedgerEntry(
                    organization_id=request.organization_id,
                    scope=EntryScope.ACCOUNT.value,
                    worker_id=None,
                    account_id=resolved.account.id,
                    direction=direction.value,
                    amount=request.total_amount,
                    previous_balance=previous,
                    new_balance=previous + direction.signed(request.total_amount),
                    reference_type=request.reference_type,
                    reference_id=request.reference_id,
                    occurred_at=occurred_at,
                    line_no=line_no,
                    entry_metadata=request.metadata,
                    created_at=now,
                )
            )

        self.session.add_all(entries)
        self.session.flush()

        # Step 5: every account holding a touched worker
        touched_accounts = {w.account_id for w in resolved.workers.values()}
        if account_id is not None:
            touched_accounts.add(account_id)
        self._aggregator.recompute_many(touched_accounts)

        logger.info(
            "mutation_applied",
            extra={
                "direction": direction.value,
                "total_amount": request.total_amount,
                "total_display": self._money.format(request.total_amount),
                "target_kind": request.target.kind.value,
                "account_id": str(account_id) if account_id else None,
                "entry_count": len(entries),
                "split_rule": resolved.plan.rule.kind.value if resolved.plan else None,
            },
        )
        return [LedgerEntryRecord.from_model(e) for e in entries]

    def rebuild_worker_balance(self, worker: Worker) -> tuple[int, int]:
        """
        Replay the worker's ledger onto ``current_balance``.

        Returns ``(stored, rebuilt)``.  Used by reconciliation repair only.
        """
        stored = worker.current_balance
        rebuilt = worker.opening_balance + self.ledger_sum(worker.id)
        if rebuilt != stored:
            worker.current_balance = rebuilt
            self.session.flush()
            logger.warning(
                "worker_balance_rebuilt",
                extra={
                    "worker_id": str(worker.id),
                    "stored_balance": stored,
                    "rebuilt_balance": rebuilt,
                },
            )
        return stored, rebuilt

    def ledger_sum(self, worker_id: UUID) -> int:
        """Sum of signed worker-scoped entry effects for one worker."""
        signed = case(
            (LedgerEntry.direction == Direction.CREDIT.value, LedgerEntry.amount),
            else_=-LedgerEntry.amount,
        )
        total = self.session.scalar(
            select(func.coalesce(func.sum(signed), 0)).where(
                LedgerEntry.worker_id == worker_id,
                LedgerEntry.scope == EntryScope.WORKER.value,
            )
        )
        return int(total or 0)

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _validate(self, request: MutationRequest) -> Direction:
        try:
            direction = Direction(request.direction)
        except ValueError:
            raise InvalidEventError(f"unknown direction {request.direction!r}") from None

        require_positive_minor_units(request.total_amount, "total_amount")

        for value, field, limit in (
            (request.reference_type, "reference_type", _MAX_REFERENCE_TYPE),
            (request.reference_id, "reference_id", _MAX_REFERENCE_ID),
        ):
            if not isinstance(value, str) or not value.strip():
                raise InvalidEventError(f"{field} is required")
            if len(value) > limit:
                raise InvalidEventError(f"{field} longer than {limit} characters")

        try:
            json.dumps(request.metadata, allow_nan=False)
        except (TypeError, ValueError):
            raise InvalidEventError("metadata must be JSON-serializable") from None

        target = request.target
        if isinstance(target, WorkerTarget):
            if not target.worker_ids:
                raise InvalidEventError("worker target names no workers")
            if len(set(target.worker_ids)) != len(target.worker_ids):
                raise InvalidEventError("worker target names a worker twice")
        elif not isinstance(target, AccountTarget):
            raise InvalidEventError(f"unsupported target {target!r}")
        return direction

    def _ensure_not_applied(self, request: MutationRequest) -> None:
        existing = self.session.scalar(
            select(PostedEvent.id).where(
                PostedEvent.organization_id == request.organization_id,
                PostedEvent.reference_type == request.reference_type,
                PostedEvent.reference_id == request.reference_id,
            )
        )
        if existing is not None:
            raise EventAlreadyAppliedError(request.reference_type, request.reference_id)

    def _resolve_workers(self, request: MutationRequest) -> _ResolvedTarget:
        workers = []
        for worker_id in request.target.worker_ids:
            worker = self._workers.load(worker_id, request.organization_id, fresh=True)
            if not worker.is_active:
                raise WorkerInactiveError(str(worker_id))
            workers.append(worker)

        if len(workers) == 1:
            return _ResolvedTarget(
                workers, [Allocation(workers[0].id, request.total_amount)], None
            )

        rule = request.split_rule or SplitRule.equal()
        plan = self._plan(request.total_amount, workers, rule)
        return _ResolvedTarget(workers, list(plan.allocations), plan)

    def _resolve_account(self, request: MutationRequest) -> _ResolvedTarget:
        account = self._accounts.load(
            request.target.account_id, request.organization_id, fresh=True
        )
        members = [
            self._workers.load(worker_id, request.organization_id, fresh=True)
            for worker_id in account.member_ids
        ]
        active = [w for w in members if w.is_active]
        if not active:
            raise AccountMembershipError(
                str(account.id), None, "account has no active members"
            )

        rule = request.split_rule or SplitRule.from_dict(account.split_rule)
        if rule.kind in (SplitKind.MANUAL, SplitKind.FIXED):
            inactive = {w.id for w in members if not w.is_active}
            for worker_id, value in (*rule.shares, *rule.amounts):
                if worker_id in inactive and value != 0:
                    raise ManualSplitInvalidError(
                        f"share given for inactive member {worker_id}"
                    )
            for worker_id in inactive:
                rule = rule.without_member(worker_id)

        plan = self._plan(request.total_amount, active, rule)
        return _ResolvedTarget(active, list(plan.allocations), plan, account)

    def _plan(self, total: int, workers: Sequence[Worker], rule: SplitRule) -> SplitPlan:
        members = [SplitMember(w.id, w.current_balance) for w in workers]
        return plan_split(total, members, rule, self._tolerance)
