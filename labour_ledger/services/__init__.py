"""Ledger services.  ``LedgerOrchestrator`` is the public entrypoint."""

from labour_ledger.services.account_aggregator import AccountAggregator, AggregateResult
from labour_ledger.services.account_service import AccountService
from labour_ledger.services.balance_mutation_service import BalanceMutationEngine
from labour_ledger.services.ledger_orchestrator import LedgerOrchestrator, LedgerServices
from labour_ledger.services.reconciliation_service import (
    BalanceDrift,
    ReconciliationReport,
    ReconciliationService,
)
from labour_ledger.services.reversal_service import ReversalEngine, ReversalResult
from labour_ledger.services.transaction_runner import RetryPolicy, run_in_transaction
from labour_ledger.services.worker_service import WorkerService

__all__ = [
    "AccountAggregator",
    "AggregateResult",
    "AccountService",
    "BalanceMutationEngine",
    "LedgerOrchestrator",
    "LedgerServices",
    "BalanceDrift",
    "ReconciliationReport",
    "ReconciliationService",
    "ReversalEngine",
    "ReversalResult",
    "RetryPolicy",
    "run_in_transaction",
    "WorkerService",
]
