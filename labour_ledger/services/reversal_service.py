"""
ReversalEngine -- exact undo of an applied event.

Responsibility:
    Given ``(organization_id, reference_type, reference_id)``, load every
    ledger entry written for that event, apply the inverse of each
    worker-scoped entry straight to the worker's balance, delete the
    entries and the event header, and recompute the affected accounts.

Architecture position:
    Ledger > Services.  Flush-only; runs inside the caller's transaction so
    an edit (reverse, then apply) commits or fails as one unit.

Invariants enforced:
    - Driven by the stored entries, never by the current split rule or
      membership: what was applied is exactly what is undone.
    - Idempotent: nothing stored for the reference means nothing to do.
    - Entry deletes happen only inside ``reversal_scope``; every other
      delete is rejected by the immutability listener.

Failure modes:
    - SplitPlanMismatchError: the event header records a split plan, plan
      verification is on, and re-running the calculator on the recorded
      inputs does not reproduce the stored entries.  Raised before writes.
    - UnknownWorkerError: an entry names a worker that no longer exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from labour_ledger.db.immutability import reversal_scope
from labour_ledger.domain.dtos import EntryScope
from labour_ledger.domain.split_rules import SplitPlan, calculate_split
from labour_ledger.exceptions import SplitPlanMismatchError
from labour_ledger.logging_config import get_logger
from labour_ledger.models.ledger_entry import LedgerEntry, PostedEvent
from labour_ledger.services.account_aggregator import AccountAggregator
from labour_ledger.services.base import BaseService
from labour_ledger.services.worker_service import WorkerService

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of one reversal; ``reversed`` is False for a no-op."""

    reference_type: str
    reference_id: str
    reversed: bool
    entries_removed: int = 0
    worker_ids: tuple[UUID, ...] = ()
    account_ids: tuple[UUID, ...] = ()


class ReversalEngine(BaseService[LedgerEntry]):
    """Undo an event using its stored ledger entries."""

    def __init__(
        self,
        session: Session,
        aggregator: AccountAggregator | None = None,
        verify_plan: bool = True,
    ):
        super().__init__(session)
        self._aggregator = aggregator or AccountAggregator(session)
        self._workers = WorkerService(session, self._aggregator)
        self._verify_plan = verify_plan

    def reverse(
        self, organization_id: UUID, reference_type: str, reference_id: str
    ) -> ReversalResult:
        # Step 1: the stored facts for this event
        entries = list(
            self.session.scalars(
                select(LedgerEntry)
                .where(
                    LedgerEntry.organization_id == organization_id,
                    LedgerEntry.reference_type == reference_type,
                    LedgerEntry.reference_id == reference_id,
                )
                .order_by(LedgerEntry.line_no)
            )
        )
        header = self.session.scalars(
            select(PostedEvent).where(
                PostedEvent.organization_id == organization_id,
                PostedEvent.reference_type == reference_type,
                PostedEvent.reference_id == reference_id,
            )
        ).one_or_none()

        # Step 2: nothing applied, nothing to undo
        if not entries and header is None:
            logger.info(
                "reversal_noop",
                extra={"reference_type": reference_type, "reference_id": reference_id},
            )
            return ReversalResult(reference_type, reference_id, reversed=False)

        worker_entries = [e for e in entries if e.scope == EntryScope.WORKER.value]

        # Step 3: optional plan check, before any write
        if self._verify_plan and header is not None and header.split_plan:
            self._check_plan(header, worker_entries)

        # Step 4: inverse effect, straight onto the stored balances
        workers = {}
        for entry in worker_entries:
            worker = workers.get(entry.worker_id)
            if worker is None:
                worker = self._workers.load(entry.worker_id, fresh=True)
                workers[worker.id] = worker
            worker.current_balance -= entry.signed_effect

        account_ids = {w.account_id for w in workers.values() if w.account_id}
        account_ids.update(
            e.account_id for e in entries if e.scope == EntryScope.ACCOUNT.value
        )
        if header is not None and header.account_id is not None:
            account_ids.add(header.account_id)

        # Step 5: remove the facts and the header together
        with reversal_scope(self.session):
            for entry in entries:
                self.session.delete(entry)
            if header is not None:
                self.session.delete(header)
            self.session.flush()

        # Step 6: accounts that still exist are recomputed from members
        results = self._aggregator.recompute_many(account_ids)

        logger.info(
            "reversal_completed",
            extra={
                "reference_type": reference_type,
                "reference_id": reference_id,
                "entries_removed": len(entries),
                "worker_count": len(workers),
                "accounts_recomputed": sum(1 for r in results if r.found),
            },
        )
        return ReversalResult(
            reference_type=reference_type,
            reference_id=reference_id,
            reversed=True,
            entries_removed=len(entries),
            worker_ids=tuple(workers),
            account_ids=tuple(sorted(account_ids, key=str)),
        )

    def _check_plan(self, header: PostedEvent, worker_entries: list[LedgerEntry]) -> None:
        plan = SplitPlan.from_dict(header.split_plan)
        recomputed = calculate_split(
            plan.total, plan.members, plan.rule, Decimal(plan.tolerance)
        )
        expected = {str(a.worker_id): a.amount for a in recomputed if a.amount}
        actual: dict[str, int] = {}
        for entry in worker_entries:
            key = str(entry.worker_id)
            actual[key] = actual.get(key, 0) + entry.amount

        if expected != actual or plan.total != header.total_amount:
            logger.error(
                "split_plan_mismatch",
                extra={
                    "reference_type": header.reference_type,
                    "reference_id": header.reference_id,
                    "expected": expected,
                    "actual": actual,
                },
            )
            raise SplitPlanMismatchError(
                header.reference_type, header.reference_id, expected, actual
            )
