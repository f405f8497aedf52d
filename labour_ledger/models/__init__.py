"""ORM models for the labour ledger."""

from labour_ledger.models.account import Account, AccountMember
from labour_ledger.models.ledger_entry import LedgerEntry, PostedEvent
from labour_ledger.models.worker import Worker

__all__ = [
    "Worker",
    "Account",
    "AccountMember",
    "LedgerEntry",
    "PostedEvent",
]
