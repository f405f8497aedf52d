"""
WorkerService -- administration of individual payees.

Responsibility:
    Create workers, set their opening balance while they have no history,
    retire and reinstate them, and look them up within an organization.
    Returns WorkerInfo DTOs to callers; hands ORM rows only to sibling
    services through ``load``.

Invariants enforced:
    - labour_code is unique per organization.
    - opening_balance is frozen once any ledger entry names the worker.
    - Retiring a worker keeps its history and membership; it only stops the
      worker from being targeted or picked for new splits.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from labour_ledger.domain.dtos import WorkerInfo
from labour_ledger.exceptions import (
    DuplicateLabourCodeError,
    InvalidAmountError,
    OpeningBalanceLockedError,
    UnknownWorkerError,
    ValidationError,
)
from labour_ledger.logging_config import get_logger
from labour_ledger.models.ledger_entry import LedgerEntry
from labour_ledger.models.worker import Worker
from labour_ledger.services.account_aggregator import AccountAggregator
from labour_ledger.services.base import BaseService

logger = get_logger("services.worker")


def _require_text(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value.strip()


def _require_int(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(value, f"{field} must be integer minor units")
    return value


class WorkerService(BaseService[Worker]):
    """Create, look up and retire workers."""

    def __init__(self, session: Session, aggregator: AccountAggregator | None = None):
        super().__init__(session)
        self._aggregator = aggregator or AccountAggregator(session)

    def load(
        self,
        worker_id: UUID,
        organization_id: UUID | None = None,
        *,
        fresh: bool = False,
    ) -> Worker:
        """
        Get a worker row, raising if it is missing or belongs to another
        organization.  ``fresh`` re-reads the row from the database.
        """
        if fresh:
            # never overwrite unflushed changes with the re-read row
            self.session.flush()
        worker = self.session.get(Worker, worker_id, populate_existing=fresh)
        if worker is None or (
            organization_id is not None and worker.organization_id != organization_id
        ):
            raise UnknownWorkerError(str(worker_id))
        return worker

    def get(self, worker_id: UUID) -> WorkerInfo:
        return WorkerInfo.from_model(self.load(worker_id))

    def find_by_labour_code(
        self, organization_id: UUID, labour_code: str
    ) -> WorkerInfo | None:
        worker = self.session.scalars(
            select(Worker).where(
                Worker.organization_id == organization_id,
                Worker.labour_code == labour_code.strip(),
            )
        ).one_or_none()
        return WorkerInfo.from_model(worker) if worker is not None else None

    def list_workers(
        self, organization_id: UUID, *, active_only: bool = True
    ) -> list[WorkerInfo]:
        stmt = select(Worker).where(Worker.organization_id == organization_id)
        if active_only:
            stmt = stmt.where(Worker.is_active.is_(True))
        stmt = stmt.order_by(Worker.labour_code)
        return [WorkerInfo.from_model(w) for w in self.session.scalars(stmt)]

    def create_worker(
        self,
        organization_id: UUID,
        name: str,
        labour_code: str,
        opening_balance: int = 0,
    ) -> WorkerInfo:
        """
        Create a worker whose current balance starts at its opening balance.

        Opening balances may be negative (an advance carried over).

        Raises:
            ValidationError: blank name or labour code.
            InvalidAmountError: opening balance is not an int.
            DuplicateLabourCodeError: code already used in the organization.
        """
        name = _require_text(name, "name")
        labour_code = _require_text(labour_code, "labour_code")
        opening_balance = _require_int(opening_balance, "opening_balance")

        if self.find_by_labour_code(organization_id, labour_code) is not None:
            raise DuplicateLabourCodeError(str(organization_id), labour_code)

        worker = Worker(
            organization_id=organization_id,
            name=name,
            labour_code=labour_code,
            opening_balance=opening_balance,
            current_balance=opening_balance,
            is_active=True,
        )
        self.session.add(worker)
        try:
            self.session.flush()
        except IntegrityError:
            raise DuplicateLabourCodeError(str(organization_id), labour_code) from None

        logger.info(
            "worker_created",
            extra={
                "worker_id": str(worker.id),
                "labour_code": labour_code,
                "opening_balance": opening_balance,
            },
        )
        return WorkerInfo.from_model(worker)

    def entry_count(self, worker_id: UUID) -> int:
        return self.session.scalar(
            select(func.count(LedgerEntry.id)).where(LedgerEntry.worker_id == worker_id)
        ) or 0

    def set_opening_balance(self, worker_id: UUID, amount: int) -> WorkerInfo:
        """
        Replace the opening balance of a worker with no ledger history.

        With no entries, current_balance equals opening_balance, so both move
        together; the worker's account is recomputed.

        Raises:
            OpeningBalanceLockedError: the worker already has entries.
        """
        amount = _require_int(amount, "opening_balance")
        worker = self.load(worker_id, fresh=True)

        count = self.entry_count(worker.id)
        if count:
            raise OpeningBalanceLockedError(str(worker.id), count)

        worker.opening_balance = amount
        worker.current_balance = amount
        self.session.flush()
        if worker.account_id is not None:
            self._aggregator.recompute(worker.account_id)

        logger.info(
            "opening_balance_set",
            extra={"worker_id": str(worker.id), "opening_balance": amount},
        )
        return WorkerInfo.from_model(worker)

    def deactivate(self, worker_id: UUID) -> WorkerInfo:
        """Retire a worker.  History, balance and membership are kept."""
        worker = self.load(worker_id)
        if worker.is_active:
            worker.is_active = False
            self.session.flush()
            logger.info("worker_deactivated", extra={"worker_id": str(worker.id)})
        if worker.account_id is not None:
            self._aggregator.recompute(worker.account_id)
        return WorkerInfo.from_model(worker)

    def reactivate(self, worker_id: UUID) -> WorkerInfo:
        worker = self.load(worker_id)
        if not worker.is_active:
            worker.is_active = True
            self.session.flush()
            logger.info("worker_reactivated", extra={"worker_id": str(worker.id)})
        return WorkerInfo.from_model(worker)
