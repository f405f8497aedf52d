"""
Module: labour_ledger.models.account
Responsibility: ORM persistence for combined multi-worker accounts and their
    ordered membership.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - A worker belongs to at most one account (uq_account_member_worker).
    - current_balance and opening_balance are the sums of the members'
      values.  Only the account aggregator writes them.
    - member_count mirrors len(members); it changes on every membership
      change, so membership changes bump the version counter and race with
      balance recomputation like any other write.
    - split_rule is the JSON form of domain.split_rules.SplitRule.
"""

from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labour_ledger.db.base import Base, TrackedBase, UUIDString


class Account(TrackedBase):
    """A combined payee whose balance is the sum of its members'."""

    __tablename__ = "accounts"
    __table_args__ = (Index("idx_account_org", "organization_id"),)

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    split_rule: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=lambda: {"type": "equal"}
    )

    opening_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    current_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    member_count: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    members: Mapped[list["AccountMember"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="AccountMember.position",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def member_ids(self) -> list[UUID]:
        return [m.worker_id for m in self.members]

    def __repr__(self) -> str:
        return f"<Account {self.name}: {self.member_count} members balance={self.current_balance}>"


class AccountMember(Base):
    """One worker's seat in an account, ordered by position."""

    __tablename__ = "account_members"
    __table_args__ = (
        UniqueConstraint("worker_id", name="uq_account_member_worker"),
        Index("idx_account_member_account", "account_id", "position"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workers.id"), nullable=False
    )

    position: Mapped[int] = mapped_column(nullable=False)

    account: Mapped[Account] = relationship(back_populates="members")
