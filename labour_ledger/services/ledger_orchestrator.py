"""
labour_ledger.services.ledger_orchestrator -- public entrypoint of the ledger.

Responsibility:
    Exposes every ledger operation (wage and expense events, reversals and
    edits, production batches, worker and account administration, balances,
    statements, reconciliation) as one method that runs in its own atomic
    transaction.

Architecture position:
    Ledger > Services, top of the layer.  The only place where services are
    constructed and wired together (``LedgerServices``), and the only caller
    of the transaction runner.

Invariants enforced:
    - One public call is one transaction: it commits completely or leaves
      no trace.
    - Concurrent-write conflicts are retried with fresh reads; domain errors
      are not.
    - Every call runs inside a bound ``LogContext`` carrying a fresh
      correlation id, so all log lines of one operation can be joined.

Usage:
    from labour_config import get_active_config
    from labour_ledger.db import get_session_factory, init_engine
    from labour_ledger.services import LedgerOrchestrator

    settings = get_active_config()
    init_engine(settings.database)
    ledger = LedgerOrchestrator(get_session_factory(), settings=settings)
    worker = ledger.create_worker(org_id, "Ravi", "B1")
    ledger.apply_wage_event(org_id, [worker.id], 23000, None, "wage", "w-1")
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from labour_config import LedgerSettings, get_active_config
from labour_ledger.domain.clock import Clock, SystemClock
from labour_ledger.domain.dtos import (
    AccountInfo,
    AccountTarget,
    Direction,
    LedgerEntryRecord,
    MutationRequest,
    WorkerInfo,
    WorkerTarget,
)
from labour_ledger.domain.money import MoneyCodec
from labour_ledger.domain.production_wages import (
    WageRates,
    calculate_batch_wages,
    pinned_split,
)
from labour_ledger.domain.split_rules import SplitRule
from labour_ledger.exceptions import InvalidEventError, LedgerError
from labour_ledger.logging_config import LogContext, get_logger
from labour_ledger.selectors.ledger_selector import (
    LedgerSelector,
    Statement,
    StatementFilter,
)
from labour_ledger.services.account_aggregator import AccountAggregator, AggregateResult
from labour_ledger.services.account_service import AccountService
from labour_ledger.services.balance_mutation_service import BalanceMutationEngine
from labour_ledger.services.reconciliation_service import (
    ReconciliationReport,
    ReconciliationService,
)
from labour_ledger.services.reversal_service import ReversalEngine, ReversalResult
from labour_ledger.services.transaction_runner import RetryPolicy, run_in_transaction
from labour_ledger.services.worker_service import WorkerService

logger = get_logger("services.orchestrator")

T = TypeVar("T")

PRODUCTION_BATCH_REFERENCE = "production_batch"


class LedgerServices:
    """Every service bound to one session, each created exactly once."""

    def __init__(self, session: Session, clock: Clock, settings: LedgerSettings):
        tolerance = settings.split.manual_tolerance
        self.money = MoneyCodec(
            settings.currency.code, settings.currency.decimal_places
        )
        self.session = session
        self.aggregator = AccountAggregator(session)
        self.workers = WorkerService(session, self.aggregator)
        self.accounts = AccountService(session, self.aggregator, self.workers, tolerance)
        self.mutations = BalanceMutationEngine(
            session, clock, self.aggregator, tolerance, self.money
        )
        self.reversals = ReversalEngine(
            session, self.aggregator, settings.split.verify_plan_on_reversal
        )
        self.reconciliation = ReconciliationService(
            session, self.mutations, self.aggregator
        )
        self.selector = LedgerSelector(session)


class LedgerOrchestrator:
    """Transactional facade over the ledger services."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or get_active_config()
        self._policy = RetryPolicy.from_settings(self._settings.retry)
        self._rates = WageRates(
            production_rate=self._settings.production.production_rate,
            thappi_rate=self._settings.production.thappi_rate,
        )
        self._money = MoneyCodec(
            self._settings.currency.code, self._settings.currency.decimal_places
        )
        self._sleep = sleep

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def money(self) -> MoneyCodec:
        """Display conversions in the configured currency."""
        return self._money

    # =========================================================================
    # Business events
    # =========================================================================

    def apply_wage_event(
        self,
        organization_id: UUID,
        worker_ids: Sequence[UUID],
        total_amount: int,
        split_rule: SplitRule | None,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[LedgerEntryRecord]:
        """Credit wages to one worker, or split them across several."""
        request = self._wage_request(
            organization_id, worker_ids, total_amount, split_rule,
            reference_type, reference_id, occurred_at, metadata,
        )
        return self._run(
            "apply_wage_event",
            lambda s: s.mutations.apply(request),
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def apply_expense_event(
        self,
        organization_id: UUID,
        target: WorkerTarget | AccountTarget,
        total_amount: int,
        split_rule: SplitRule | None = None,
        *,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[LedgerEntryRecord]:
        """
        Debit an expense from one worker, several workers, or an account.

        For an account target with no ``split_rule`` the account's stored
        rule applies.
        """
        request = self._expense_request(
            organization_id, target, total_amount, split_rule,
            reference_type, reference_id, occurred_at, metadata,
        )
        return self._run(
            "apply_expense_event",
            lambda s: s.mutations.apply(request),
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def reverse_event(
        self, organization_id: UUID, reference_type: str, reference_id: str
    ) -> ReversalResult:
        """Undo an applied event.  Reversing twice is a no-op."""
        return self._run(
            "reverse_event",
            lambda s: s.reversals.reverse(organization_id, reference_type, reference_id),
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def edit_wage_event(
        self,
        organization_id: UUID,
        worker_ids: Sequence[UUID],
        total_amount: int,
        split_rule: SplitRule | None,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[LedgerEntryRecord]:
        """Replace an applied wage event: reverse it and apply the new values."""
        request = self._wage_request(
            organization_id, worker_ids, total_amount, split_rule,
            reference_type, reference_id, occurred_at, metadata,
        )
        return self._run(
            "edit_wage_event",
            lambda s: self._edit(s, request),
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def edit_expense_event(
        self,
        organization_id: UUID,
        target: WorkerTarget | AccountTarget,
        total_amount: int,
        split_rule: SplitRule | None = None,
        *,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[LedgerEntryRecord]:
        """Replace an applied expense: reverse it and apply the new values."""
        request = self._expense_request(
            organization_id, target, total_amount, split_rule,
            reference_type, reference_id, occurred_at, metadata,
        )
        return self._run(
            "edit_expense_event",
            lambda s: self._edit(s, request),
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def apply_production_batch(
        self,
        organization_id: UUID,
        batch_id: UUID | str,
        worker_ids: Sequence[UUID],
        production_quantity: int,
        thappi_quantity: int = 0,
        split_rule: SplitRule | None = None,
        occurred_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
        *,
        pinned: tuple[UUID, int] | None = None,
    ) -> list[LedgerEntryRecord]:
        """
        Credit the wages of one production batch to its workers.

        The total comes from the configured per-1000 rates; the batch id is
        the event reference, so a batch is reversed with
        ``reverse_event(org, "production_batch", str(batch_id))``.

        ``pinned=(worker_id, amount)`` pays that worker exactly ``amount``
        and shares the rest of the total equally over the other workers.
        It cannot be combined with ``split_rule``.
        """
        if isinstance(worker_ids, UUID):
            worker_ids = [worker_ids]
        batch_metadata = dict(metadata or {})
        batch_metadata.update(
            production_quantity=production_quantity,
            thappi_quantity=thappi_quantity,
            production_rate=self._rates.production_rate,
            thappi_rate=self._rates.thappi_rate,
        )
        if pinned is not None:
            batch_metadata["pinned_worker_id"] = str(pinned[0])
            batch_metadata["pinned_amount"] = pinned[1]

        def work(services: LedgerServices) -> list[LedgerEntryRecord]:
            total = calculate_batch_wages(
                production_quantity, thappi_quantity, self._rates
            )
            rule = split_rule
            if pinned is not None:
                if split_rule is not None:
                    raise InvalidEventError("pinned wages replace the split rule")
                rule = pinned_split(worker_ids, total, *pinned)
            request = self._wage_request(
                organization_id, worker_ids, total, rule,
                PRODUCTION_BATCH_REFERENCE, str(batch_id), occurred_at, batch_metadata,
            )
            return services.mutations.apply(request)

        return self._run(
            "apply_production_batch",
            work,
            organization_id=organization_id,
            reference_type=PRODUCTION_BATCH_REFERENCE,
            reference_id=str(batch_id),
        )

    # =========================================================================
    # Workers
    # =========================================================================

    def create_worker(
        self,
        organization_id: UUID,
        name: str,
        labour_code: str,
        opening_balance: int = 0,
    ) -> WorkerInfo:
        return self._run(
            "create_worker",
            lambda s: s.workers.create_worker(
                organization_id, name, labour_code, opening_balance
            ),
            organization_id=organization_id,
        )

    def set_opening_balance(self, worker_id: UUID, amount: int) -> WorkerInfo:
        return self._run(
            "set_opening_balance",
            lambda s: s.workers.set_opening_balance(worker_id, amount),
        )

    def deactivate_worker(self, worker_id: UUID) -> WorkerInfo:
        return self._run("deactivate_worker", lambda s: s.workers.deactivate(worker_id))

    def reactivate_worker(self, worker_id: UUID) -> WorkerInfo:
        return self._run("reactivate_worker", lambda s: s.workers.reactivate(worker_id))

    def get_worker(self, worker_id: UUID) -> WorkerInfo:
        return self._run("get_worker", lambda s: s.workers.get(worker_id))

    def list_workers(
        self, organization_id: UUID, *, active_only: bool = True
    ) -> list[WorkerInfo]:
        return self._run(
            "list_workers",
            lambda s: s.workers.list_workers(organization_id, active_only=active_only),
            organization_id=organization_id,
        )

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(
        self,
        organization_id: UUID,
        name: str,
        member_ids: Sequence[UUID],
        split_rule: SplitRule | None = None,
    ) -> UUID:
        """Create a combined account and return its id."""
        return self._run(
            "create_account",
            lambda s: s.accounts.create_account(
                organization_id, name, member_ids, split_rule
            ).id,
            organization_id=organization_id,
        )

    def add_member(self, account_id: UUID, worker_id: UUID) -> AccountInfo:
        return self._run(
            "add_member", lambda s: s.accounts.add_member(account_id, worker_id)
        )

    def remove_member(self, account_id: UUID, worker_id: UUID) -> AggregateResult:
        """Remove a member; the result says whether the account dissolved."""
        return self._run(
            "remove_member", lambda s: s.accounts.remove_member(account_id, worker_id)
        )

    def change_split_rule(self, account_id: UUID, split_rule: SplitRule) -> AccountInfo:
        return self._run(
            "change_split_rule",
            lambda s: s.accounts.change_split_rule(account_id, split_rule),
        )

    def get_account(self, account_id: UUID) -> AccountInfo:
        return self._run("get_account", lambda s: s.accounts.get(account_id))

    def list_accounts(self, organization_id: UUID) -> list[AccountInfo]:
        return self._run(
            "list_accounts",
            lambda s: s.accounts.list_accounts(organization_id),
            organization_id=organization_id,
        )

    # =========================================================================
    # Read side and reconciliation
    # =========================================================================

    def get_current_balance(self, entity_id: UUID) -> int:
        """Stored balance of a worker or an account, in minor units."""
        return self._run(
            "get_current_balance",
            lambda s: s.selector.get_current_balance(entity_id),
        )

    def entries_for_reference(
        self, organization_id: UUID, reference_type: str, reference_id: str
    ) -> list[LedgerEntryRecord]:
        return self._run(
            "entries_for_reference",
            lambda s: s.selector.entries_for_reference(
                organization_id, reference_type, reference_id
            ),
            organization_id=organization_id,
        )

    def worker_statement(
        self, worker_id: UUID, filters: StatementFilter | None = None
    ) -> Statement:
        return self._run(
            "worker_statement", lambda s: s.selector.worker_statement(worker_id, filters)
        )

    def account_statement(
        self, account_id: UUID, filters: StatementFilter | None = None
    ) -> Statement:
        return self._run(
            "account_statement",
            lambda s: s.selector.account_statement(account_id, filters),
        )

    def verify(self, organization_id: UUID) -> ReconciliationReport:
        """Compare stored balances with the ledger; changes nothing."""
        return self._run(
            "verify",
            lambda s: s.reconciliation.verify_organization(organization_id),
            organization_id=organization_id,
        )

    def rebuild(self, organization_id: UUID) -> ReconciliationReport:
        """Repair drifted balances from the ledger."""
        return self._run(
            "rebuild",
            lambda s: s.reconciliation.rebuild_organization(organization_id),
            organization_id=organization_id,
        )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _wage_request(
        self,
        organization_id: UUID,
        worker_ids: Sequence[UUID],
        total_amount: int,
        split_rule: SplitRule | None,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None,
        metadata: Mapping[str, Any] | None,
    ) -> MutationRequest:
        if isinstance(worker_ids, UUID):
            worker_ids = [worker_ids]
        return MutationRequest(
            organization_id=organization_id,
            direction=Direction.CREDIT,
            total_amount=total_amount,
            target=WorkerTarget(tuple(worker_ids)),
            reference_type=reference_type,
            reference_id=reference_id,
            occurred_at=occurred_at,
            split_rule=split_rule,
            metadata=dict(metadata or {}),
        )

    def _expense_request(
        self,
        organization_id: UUID,
        target: WorkerTarget | AccountTarget,
        total_amount: int,
        split_rule: SplitRule | None,
        reference_type: str,
        reference_id: str,
        occurred_at: datetime | None,
        metadata: Mapping[str, Any] | None,
    ) -> MutationRequest:
        return MutationRequest(
            organization_id=organization_id,
            direction=Direction.DEBIT,
            total_amount=total_amount,
            target=target,
            reference_type=reference_type,
            reference_id=reference_id,
            occurred_at=occurred_at,
            split_rule=split_rule,
            metadata=dict(metadata or {}),
        )

    def _edit(
        self, services: LedgerServices, request: MutationRequest
    ) -> list[LedgerEntryRecord]:
        reversal = services.reversals.reverse(
            request.organization_id, request.reference_type, request.reference_id
        )
        if not reversal.reversed:
            raise InvalidEventError(
                f"nothing to edit for {request.reference_type}/{request.reference_id}"
            )
        return services.mutations.apply(request)

    def _run(
        self,
        operation: str,
        work: Callable[[LedgerServices], T],
        *,
        organization_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=uuid4(),
            operation=operation,
            organization_id=organization_id,
            reference_type=reference_type,
            reference_id=reference_id,
        ):
            logger.debug("operation_started")
            t0 = time.monotonic()
            try:
                result = run_in_transaction(
                    self._session_factory,
                    lambda session: work(
                        LedgerServices(session, self._clock, self._settings)
                    ),
                    policy=self._policy,
                    operation=operation,
                    sleep=self._sleep,
                )
            except LedgerError as exc:
                logger.warning(
                    "operation_rejected",
                    extra={
                        "error_code": exc.code,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise
            except Exception:
                logger.error(
                    "operation_failed",
                    extra={
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                "operation_completed",
                extra={
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result
