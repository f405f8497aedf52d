"""
Labour Ledger

Balance ledger and reconciliation engine for a materials-delivery business:
- Append-only wage credits and expense debits per worker
- Combined accounts whose balances are always the sum of their members
- Exact split of one payment across several workers (equal, proportional, manual)
- Exact reversal of any applied event, with optimistic-concurrency retries
"""

__version__ = "0.1.0"
