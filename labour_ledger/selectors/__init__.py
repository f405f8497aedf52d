"""Read-only selectors for balances and statements."""

from labour_ledger.selectors.ledger_selector import (
    LedgerSelector,
    MemberBreakdown,
    Statement,
    StatementFilter,
    StatementLine,
)

__all__ = [
    "LedgerSelector",
    "MemberBreakdown",
    "Statement",
    "StatementFilter",
    "StatementLine",
]
