"""
Module: labour_ledger.selectors.ledger_selector
Responsibility: Read-only ledger queries: current balances, the entries of
    one event, and worker / account statements with running balances.
Architecture position: Ledger > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/.

Statement semantics:
    - Only worker-scoped entries appear; the account audit line of an
      account-targeted event would double count its members' lines.
    - ``opening_balance`` is brought forward: the entity's opening balance
      plus every entry before ``date_from``.
    - The direction and reference-type filters hide lines; the running
      balance and totals are computed over the lines shown.
    - An account statement covers its current members and includes a
      per-member breakdown over the same lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from labour_ledger.domain.dtos import Direction, EntryScope, LedgerEntryRecord
from labour_ledger.exceptions import (
    UnknownAccountError,
    UnknownEntityError,
    UnknownWorkerError,
)
from labour_ledger.models.account import Account
from labour_ledger.models.ledger_entry import LedgerEntry
from labour_ledger.models.worker import Worker
from labour_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class StatementFilter:
    date_from: datetime | None = None
    date_to: datetime | None = None
    direction: Direction | None = None
    reference_type: str | None = None


@dataclass(frozen=True)
class StatementLine:
    entry_id: UUID
    worker_id: UUID
    occurred_at: datetime
    reference_type: str
    reference_id: str
    direction: Direction
    amount: int
    running_balance: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def signed_effect(self) -> int:
        return self.direction.signed(self.amount)


@dataclass(frozen=True)
class MemberBreakdown:
    worker_id: UUID
    name: str
    opening_balance: int
    current_balance: int
    total_credits: int
    total_debits: int


@dataclass(frozen=True)
class Statement:
    entity_type: str
    entity_id: UUID
    name: str
    opening_balance: int
    lines: tuple[StatementLine, ...]
    total_credits: int
    total_debits: int
    members: tuple[MemberBreakdown, ...] = ()

    @property
    def closing_balance(self) -> int:
        return self.opening_balance + self.total_credits - self.total_debits


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Balances and statements, read straight from the ledger tables."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_current_balance(self, entity_id: UUID) -> int:
        """Stored balance of a worker or an account."""
        worker = self.session.get(Worker, entity_id)
        if worker is not None:
            return worker.current_balance
        account = self.session.get(Account, entity_id)
        if account is not None:
            return account.current_balance
        raise UnknownEntityError(str(entity_id))

    def entries_for_reference(
        self, organization_id: UUID, reference_type: str, reference_id: str
    ) -> list[LedgerEntryRecord]:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.reference_type == reference_type,
                LedgerEntry.reference_id == reference_id,
            )
            .order_by(LedgerEntry.line_no)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.scalars(stmt)]

    def worker_statement(
        self, worker_id: UUID, filters: StatementFilter | None = None
    ) -> Statement:
        worker = self.session.get(Worker, worker_id)
        if worker is None:
            raise UnknownWorkerError(str(worker_id))
        filters = filters or StatementFilter()

        opening = worker.opening_balance + self._effect_before([worker.id], filters)
        lines, credits, debits = self._lines([worker.id], opening, filters)
        return Statement(
            entity_type="worker",
            entity_id=worker.id,
            name=worker.name,
            opening_balance=opening,
            lines=tuple(lines),
            total_credits=credits,
            total_debits=debits,
        )

    def account_statement(
        self, account_id: UUID, filters: StatementFilter | None = None
    ) -> Statement:
        account = self.session.get(Account, account_id)
        if account is None:
            raise UnknownAccountError(str(account_id))
        filters = filters or StatementFilter()

        member_ids = account.member_ids
        workers = {
            w.id: w
            for w in self.session.scalars(select(Worker).where(Worker.id.in_(member_ids)))
        }
        opening = sum(w.opening_balance for w in workers.values())
        opening += self._effect_before(member_ids, filters)
        lines, credits, debits = self._lines(member_ids, opening, filters)

        members = []
        for worker_id in member_ids:
            worker = workers[worker_id]
            own = [line for line in lines if line.worker_id == worker_id]
            members.append(
                MemberBreakdown(
                    worker_id=worker_id,
                    name=worker.name,
                    opening_balance=worker.opening_balance,
                    current_balance=worker.current_balance,
                    total_credits=sum(
                        line.amount for line in own if line.direction is Direction.CREDIT
                    ),
                    total_debits=sum(
                        line.amount for line in own if line.direction is Direction.DEBIT
                    ),
                )
            )

        return Statement(
            entity_type="account",
            entity_id=account.id,
            name=account.name,
            opening_balance=opening,
            lines=tuple(lines),
            total_credits=credits,
            total_debits=debits,
            members=tuple(members),
        )

    def _effect_before(self, worker_ids: list[UUID], filters: StatementFilter) -> int:
        if filters.date_from is None or not worker_ids:
            return 0
        signed = case(
            (LedgerEntry.direction == Direction.CREDIT.value, LedgerEntry.amount),
            else_=-LedgerEntry.amount,
        )
        total = self.session.scalar(
            select(func.coalesce(func.sum(signed), 0)).where(
                LedgerEntry.worker_id.in_(worker_ids),
                LedgerEntry.scope == EntryScope.WORKER.value,
                LedgerEntry.occurred_at < filters.date_from,
            )
        )
        return int(total or 0)

    def _lines(
        self, worker_ids: list[UUID], opening: int, filters: StatementFilter
    ) -> tuple[list[StatementLine], int, int]:
        if not worker_ids:
            return [], 0, 0
        stmt = select(LedgerEntry).where(
            LedgerEntry.worker_id.in_(worker_ids),
            LedgerEntry.scope == EntryScope.WORKER.value,
        )
        if filters.date_from is not None:
            stmt = stmt.where(LedgerEntry.occurred_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(LedgerEntry.occurred_at <= filters.date_to)
        if filters.direction is not None:
            stmt = stmt.where(LedgerEntry.direction == Direction(filters.direction).value)
        if filters.reference_type is not None:
            stmt = stmt.where(LedgerEntry.reference_type == filters.reference_type)
        stmt = stmt.order_by(
            LedgerEntry.occurred_at,
            LedgerEntry.created_at,
            LedgerEntry.reference_id,
            LedgerEntry.line_no,
        )

        lines: list[StatementLine] = []
        running = opening
        credits = debits = 0
        for entry in self.session.scalars(stmt):
            direction = Direction(entry.direction)
            running += direction.signed(entry.amount)
            if direction is Direction.CREDIT:
                credits += entry.amount
            else:
                debits += entry.amount
            lines.append(
                StatementLine(
                    entry_id=entry.id,
                    worker_id=entry.worker_id,
                    occurred_at=entry.occurred_at,
                    reference_type=entry.reference_type,
                    reference_id=entry.reference_id,
                    direction=direction,
                    amount=entry.amount,
                    running_balance=running,
                    metadata=dict(entry.entry_metadata or {}),
                )
            )
        return lines, credits, debits
