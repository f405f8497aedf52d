"""
Module: labour_ledger.models.worker
Responsibility: ORM persistence for individual payees.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - labour_code is unique per organization (uq_worker_org_labour_code).
    - current_balance == opening_balance + sum of the worker's signed
      worker-scoped ledger entries.  Only the mutation and reversal engines
      write current_balance; the version counter makes concurrent writers
      fail with StaleDataError instead of overwriting each other.
    - account_id is a weak back-reference; AccountMember rows own membership.

Audit relevance:
    Workers are never deleted once referenced by a ledger entry; they are
    retired with is_active = False.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from labour_ledger.db.base import TrackedBase, UUIDString


class Worker(TrackedBase):
    """An individual payee with its own running balance."""

    __tablename__ = "workers"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "labour_code", name="uq_worker_org_labour_code"
        ),
        Index("idx_worker_org_active", "organization_id", "is_active"),
        Index("idx_worker_account", "account_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # External labour code printed on wage slips
    labour_code: Mapped[str] = mapped_column(String(50), nullable=False)

    opening_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    current_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Worker {self.labour_code}: {self.name} balance={self.current_balance}>"
