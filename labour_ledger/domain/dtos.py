"""
DTOs -- immutable data transfer objects for the ledger.

Responsibility:
    Defines what flows into the mutation engine (MutationRequest and its
    targets) and what flows back out to callers (LedgerEntryRecord,
    WorkerInfo, AccountInfo).  Services return these, never ORM rows.

Architecture position:
    Ledger > Domain -- zero I/O.  from_model() class methods are boundary
    converters invoked only from services and selectors.

Data flow:
    MutationRequest -> BalanceMutationEngine -> [LedgerEntryRecord]
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from labour_ledger.domain.split_rules import SplitRule

if TYPE_CHECKING:
    from labour_ledger.models.account import Account as AccountModel
    from labour_ledger.models.ledger_entry import LedgerEntry as LedgerEntryModel
    from labour_ledger.models.worker import Worker as WorkerModel


class Direction(str, Enum):
    """Credit raises a worker's balance (wages); debit lowers it (expenses)."""

    CREDIT = "credit"
    DEBIT = "debit"

    def signed(self, amount: int) -> int:
        return amount if self is Direction.CREDIT else -amount


class EntryScope(str, Enum):
    """
    WORKER entries carry a worker's balance effect.  ACCOUNT entries are the
    single audit line written for an account-targeted event and never count
    toward any worker balance.
    """

    WORKER = "worker"
    ACCOUNT = "account"


class TargetKind(str, Enum):
    WORKERS = "workers"
    ACCOUNT = "account"


@dataclass(frozen=True)
class WorkerTarget:
    """One worker takes the whole amount; several are split by the rule."""

    worker_ids: tuple[UUID, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "worker_ids", tuple(self.worker_ids))

    @classmethod
    def single(cls, worker_id: UUID) -> WorkerTarget:
        return cls((worker_id,))

    @property
    def kind(self) -> TargetKind:
        return TargetKind.WORKERS


@dataclass(frozen=True)
class AccountTarget:
    """Amount is split across the account's active members."""

    account_id: UUID

    @property
    def kind(self) -> TargetKind:
        return TargetKind.ACCOUNT


@dataclass(frozen=True)
class MutationRequest:
    """
    One business event to apply.

    ``split_rule`` of None means: the account's stored rule for account
    targets, equal for multi-worker targets.
    """

    organization_id: UUID
    direction: Direction
    total_amount: int
    target: WorkerTarget | AccountTarget
    reference_type: str
    reference_id: str
    occurred_at: datetime | None = None
    split_rule: SplitRule | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", copy.deepcopy(dict(self.metadata or {})))


@dataclass(frozen=True)
class LedgerEntryRecord:
    """Read-only view of one ledger entry."""

    id: UUID
    organization_id: UUID
    scope: EntryScope
    worker_id: UUID | None
    account_id: UUID | None
    direction: Direction
    amount: int
    previous_balance: int
    new_balance: int
    reference_type: str
    reference_id: str
    occurred_at: datetime
    line_no: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def signed_effect(self) -> int:
        return self.direction.signed(self.amount)

    @classmethod
    def from_model(cls, entry: LedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            id=entry.id,
            organization_id=entry.organization_id,
            scope=EntryScope(entry.scope),
            worker_id=entry.worker_id,
            account_id=entry.account_id,
            direction=Direction(entry.direction),
            amount=entry.amount,
            previous_balance=entry.previous_balance,
            new_balance=entry.new_balance,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            occurred_at=entry.occurred_at,
            line_no=entry.line_no,
            metadata=dict(entry.entry_metadata or {}),
        )


@dataclass(frozen=True)
class WorkerInfo:
    id: UUID
    organization_id: UUID
    name: str
    labour_code: str
    opening_balance: int
    current_balance: int
    account_id: UUID | None
    is_active: bool

    @classmethod
    def from_model(cls, worker: WorkerModel) -> WorkerInfo:
        return cls(
            id=worker.id,
            organization_id=worker.organization_id,
            name=worker.name,
            labour_code=worker.labour_code,
            opening_balance=worker.opening_balance,
            current_balance=worker.current_balance,
            account_id=worker.account_id,
            is_active=worker.is_active,
        )


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    organization_id: UUID
    name: str
    member_ids: tuple[UUID, ...]
    split_rule: SplitRule
    opening_balance: int
    current_balance: int

    @classmethod
    def from_model(cls, account: AccountModel) -> AccountInfo:
        return cls(
            id=account.id,
            organization_id=account.organization_id,
            name=account.name,
            member_ids=tuple(account.member_ids),
            split_rule=SplitRule.from_dict(account.split_rule),
            opening_balance=account.opening_balance,
            current_balance=account.current_balance,
        )
