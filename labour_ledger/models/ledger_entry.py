"""
Module: labour_ledger.models.ledger_entry
Responsibility: ORM persistence for ledger entries and the event headers
    that group them.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - Ledger entries are never updated (db/immutability.py) and are deleted
      only inside a reversal scope.
    - amount >= 0; the signed effect comes from direction.
    - One PostedEvent per (organization_id, reference_type, reference_id):
      an event can be applied once until it is reversed.

Audit relevance:
    previous_balance / new_balance are snapshots taken when the entry was
    written.  They are for reading history, never for recomputing balances.
    account_id is a plain column so entries outlive a dissolved account.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from labour_ledger.db.base import Base, UUIDString


class LedgerEntry(Base):
    """One signed monetary effect against one worker (or one account audit line)."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_entry_amount"),
        Index(
            "idx_ledger_entry_reference",
            "organization_id",
            "reference_type",
            "reference_id",
        ),
        Index("idx_ledger_entry_worker", "worker_id", "occurred_at"),
        Index("idx_ledger_entry_account", "account_id", "occurred_at"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # "worker" or "account"
    scope: Mapped[str] = mapped_column(String(10), nullable=False)

    worker_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("workers.id"), nullable=True
    )

    account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # "credit" or "debit"
    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    amount: Mapped[int] = mapped_column(nullable=False)

    previous_balance: Mapped[int] = mapped_column(nullable=False)

    new_balance: Mapped[int] = mapped_column(nullable=False)

    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)

    reference_id: Mapped[str] = mapped_column(String(200), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # Position within the event, in allocation order
    line_no: Mapped[int] = mapped_column(nullable=False)

    entry_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    @property
    def signed_effect(self) -> int:
        return self.amount if self.direction == "credit" else -self.amount

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.reference_type}/{self.reference_id} "
            f"{self.scope} {self.direction} {self.amount}>"
        )


class PostedEvent(Base):
    """Header recording that a reference was applied, and how it was split."""

    __tablename__ = "posted_events"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "reference_type",
            "reference_id",
            name="uq_posted_event_reference",
        ),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)

    reference_id: Mapped[str] = mapped_column(String(200), nullable=False)

    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    total_amount: Mapped[int] = mapped_column(nullable=False)

    # "workers" or "account"
    target_kind: Mapped[str] = mapped_column(String(10), nullable=False)

    account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # SplitPlan.to_dict(); null for a single-worker event
    split_plan: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
