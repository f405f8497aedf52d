"""
ReconciliationService -- verify and rebuild the balance projections.

Stored balances are a projection of the ledger.  This service checks them
against the ledger for a whole organization and, on request, repairs
drifted workers by replaying their entries and recomputing every account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from labour_ledger.domain.dtos import Direction, EntryScope
from labour_ledger.logging_config import get_logger
from labour_ledger.models.account import Account
from labour_ledger.models.ledger_entry import LedgerEntry
from labour_ledger.models.worker import Worker
from labour_ledger.services.account_aggregator import MIN_MEMBERS, AccountAggregator
from labour_ledger.services.balance_mutation_service import BalanceMutationEngine
from labour_ledger.services.base import BaseService

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class BalanceDrift:
    entity_type: str
    entity_id: UUID
    field: str
    stored: int
    expected: int

    @property
    def delta(self) -> int:
        return self.stored - self.expected


@dataclass(frozen=True)
class ReconciliationReport:
    organization_id: UUID
    workers_checked: int
    accounts_checked: int
    drifts: tuple[BalanceDrift, ...] = field(default=())
    repaired: bool = False

    @property
    def is_consistent(self) -> bool:
        return not self.drifts


class ReconciliationService(BaseService[Worker]):
    """Check stored balances against the ledger and repair drift."""

    def __init__(
        self,
        session: Session,
        mutation_engine: BalanceMutationEngine,
        aggregator: AccountAggregator | None = None,
    ):
        super().__init__(session)
        self._engine = mutation_engine
        self._aggregator = aggregator or AccountAggregator(session)

    def verify_organization(self, organization_id: UUID) -> ReconciliationReport:
        workers = self._workers(organization_id)
        sums = self._ledger_sums(organization_id)

        drifts: list[BalanceDrift] = []
        for worker in workers:
            expected = worker.opening_balance + sums.get(worker.id, 0)
            if worker.current_balance != expected:
                drifts.append(
                    BalanceDrift(
                        "worker", worker.id, "current_balance",
                        worker.current_balance, expected,
                    )
                )

        by_id = {w.id: w for w in workers}
        accounts = self._accounts(organization_id)
        for account in accounts:
            members = [by_id[m] for m in account.member_ids if m in by_id]
            checks = (
                ("current_balance", account.current_balance,
                 sum(w.current_balance for w in members)),
                ("opening_balance", account.opening_balance,
                 sum(w.opening_balance for w in members)),
                ("member_count", account.member_count, len(members)),
            )
            for field_name, stored, expected in checks:
                if stored != expected:
                    drifts.append(
                        BalanceDrift("account", account.id, field_name, stored, expected)
                    )
            if len(members) < MIN_MEMBERS:
                drifts.append(
                    BalanceDrift("account", account.id, "members", len(members), MIN_MEMBERS)
                )

        report = ReconciliationReport(
            organization_id=organization_id,
            workers_checked=len(workers),
            accounts_checked=len(accounts),
            drifts=tuple(drifts),
        )
        for drift in drifts:
            logger.warning(
                "balance_drift_detected",
                extra={
                    "entity_type": drift.entity_type,
                    "entity_id": str(drift.entity_id),
                    "field": drift.field,
                    "stored": drift.stored,
                    "expected": drift.expected,
                },
            )
        logger.info(
            "reconciliation_verified",
            extra={
                "workers_checked": report.workers_checked,
                "accounts_checked": report.accounts_checked,
                "drift_count": len(drifts),
            },
        )
        return report

    def rebuild_organization(self, organization_id: UUID) -> ReconciliationReport:
        """
        Replay drifted workers and recompute every account.

        Returns the report of what was found before the repair, with
        ``repaired`` set.
        """
        found = self.verify_organization(organization_id)
        drifted = {
            d.entity_id for d in found.drifts if d.entity_type == "worker"
        }
        for worker in self._workers(organization_id):
            if worker.id in drifted:
                self._engine.rebuild_worker_balance(worker)
        self._aggregator.recompute_many(a.id for a in self._accounts(organization_id))

        logger.info(
            "reconciliation_rebuilt",
            extra={"drift_count": len(found.drifts), "workers_rebuilt": len(drifted)},
        )
        return ReconciliationReport(
            organization_id=organization_id,
            workers_checked=found.workers_checked,
            accounts_checked=found.accounts_checked,
            drifts=found.drifts,
            repaired=True,
        )

    def _workers(self, organization_id: UUID) -> list[Worker]:
        return list(
            self.session.scalars(
                select(Worker).where(Worker.organization_id == organization_id)
            )
        )

    def _accounts(self, organization_id: UUID) -> list[Account]:
        return list(
            self.session.scalars(
                select(Account).where(Account.organization_id == organization_id)
            )
        )

    def _ledger_sums(self, organization_id: UUID) -> dict[UUID, int]:
        signed = case(
            (LedgerEntry.direction == Direction.CREDIT.value, LedgerEntry.amount),
            else_=-LedgerEntry.amount,
        )
        rows = self.session.execute(
            select(LedgerEntry.worker_id, func.sum(signed))
            .where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.scope == EntryScope.WORKER.value,
            )
            .group_by(LedgerEntry.worker_id)
        )
        return {worker_id: int(total) for worker_id, total in rows}
