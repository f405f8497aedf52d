"""
Typed Exception Hierarchy for the Labour Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the console API, batch jobs, tests) must be able to tell a rejected
manual split from a stale balance conflict without parsing message strings.
Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (worker ids, amounts, references)

Example:
    try:
        orchestrator.apply_expense_event(...)
    except ManualSplitInvalidError as e:
        api_response(code=e.code, total=e.total_percent)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- InvalidAmountError
    +-- UnknownEntityError
    +-- ValidationError
    |
    +-- WorkerError
    |   +-- UnknownWorkerError
    |   +-- WorkerInactiveError
    |   +-- DuplicateLabourCodeError
    |   +-- OpeningBalanceLockedError
    |
    +-- AccountError
    |   +-- UnknownAccountError
    |   +-- AccountMembershipError
    |   +-- AccountEmptyError          (internal, consumed by the aggregator)
    |
    +-- SplitError
    |   +-- ManualSplitInvalidError
    |   +-- SplitPlanMismatchError
    |
    +-- EventError
    |   +-- InvalidEventError
    |   +-- EventAlreadyAppliedError
    |
    +-- ConcurrencyError
    |   +-- MutationConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|------------------------------------
Amount       | INVALID_AMOUNT             | NaN, infinite, negative, non-integer
Entity       | UNKNOWN_ENTITY             | Balance lookup for an unknown id
             | VALIDATION_ERROR           | Blank name, labour code, etc.
-------------|----------------------------|------------------------------------
Worker       | UNKNOWN_WORKER             | Worker id doesn't exist in the org
             | WORKER_INACTIVE            | Direct target is retired
             | DUPLICATE_LABOUR_CODE      | Labour code reused in the org
             | OPENING_BALANCE_LOCKED     | Opening balance edit after entries
-------------|----------------------------|------------------------------------
Account      | UNKNOWN_ACCOUNT            | Account id doesn't exist in the org
             | ACCOUNT_MEMBERSHIP         | Invalid membership change
             | ACCOUNT_EMPTY              | Fewer than two members remain
-------------|----------------------------|------------------------------------
Split        | MANUAL_SPLIT_INVALID       | Shares don't sum to 100 (+/- tol)
             | SPLIT_PLAN_MISMATCH        | Stored entries diverge from plan
-------------|----------------------------|------------------------------------
Event        | INVALID_EVENT              | Malformed mutation request
             | EVENT_ALREADY_APPLIED      | Reference applied and not reversed
-------------|----------------------------|------------------------------------
Concurrency  | MUTATION_CONFLICT          | Retries exhausted on stale balances
Immutability | IMMUTABILITY_VIOLATION     | Ledger entry updated or deleted

===============================================================================
HANDLING NOTES
===============================================================================

ConcurrencyError is the only retryable category. Everything else is raised
before the first write of an operation, so the transaction rolls back with
no partial state.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """
    Base exception for all labour ledger errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


class InvalidAmountError(LedgerError):
    """Amount is not a finite, representable, non-negative value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: Any, reason: str):
        self.value = repr(value)
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class UnknownEntityError(LedgerError):
    """Id is neither a worker nor an account."""

    code: str = "UNKNOWN_ENTITY"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"No worker or account with id {entity_id}")


class ValidationError(LedgerError):
    """Administrative input is malformed (blank names, codes)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Worker-related exceptions


class WorkerError(LedgerError):
    """Base exception for worker-related errors."""

    code: str = "WORKER_ERROR"


class UnknownWorkerError(WorkerError):
    """Worker with given ID was not found in the organization."""

    code: str = "UNKNOWN_WORKER"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker not found: {worker_id}")


class WorkerInactiveError(WorkerError):
    """Worker is retired and cannot be the target of a new event."""

    code: str = "WORKER_INACTIVE"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker is inactive: {worker_id}")


class DuplicateLabourCodeError(WorkerError):
    """Labour code is already used by another worker of the organization."""

    code: str = "DUPLICATE_LABOUR_CODE"

    def __init__(self, organization_id: str, labour_code: str):
        self.organization_id = organization_id
        self.labour_code = labour_code
        super().__init__(
            f"Labour code {labour_code!r} already exists in organization "
            f"{organization_id}"
        )


class OpeningBalanceLockedError(WorkerError):
    """Opening balance cannot change once the worker has ledger entries."""

    code: str = "OPENING_BALANCE_LOCKED"

    def __init__(self, worker_id: str, entry_count: int):
        self.worker_id = worker_id
        self.entry_count = entry_count
        super().__init__(
            f"Opening balance of worker {worker_id} is locked: "
            f"{entry_count} ledger entries exist"
        )


# Account-related exceptions


class AccountError(LedgerError):
    """Base exception for combined-account errors."""

    code: str = "ACCOUNT_ERROR"


class UnknownAccountError(AccountError):
    """Account with given ID was not found in the organization."""

    code: str = "UNKNOWN_ACCOUNT"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountMembershipError(AccountError):
    """Membership change is not allowed."""

    code: str = "ACCOUNT_MEMBERSHIP"

    def __init__(self, account_id: str | None, worker_id: str | None, reason: str):
        self.account_id = account_id
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(
            f"Membership change rejected (account={account_id}, "
            f"worker={worker_id}): {reason}"
        )


class AccountEmptyError(AccountError):
    """
    Account has fewer than two members.

    Internal signal: raised by the aggregator's membership check and
    consumed by dissolving the account. Never escapes a public operation.
    """

    code: str = "ACCOUNT_EMPTY"

    def __init__(self, account_id: str, member_count: int):
        self.account_id = account_id
        self.member_count = member_count
        super().__init__(
            f"Account {account_id} has {member_count} member(s); minimum is 2"
        )


# Split-related exceptions


class SplitError(LedgerError):
    """Base exception for split planning errors."""

    code: str = "SPLIT_ERROR"


class ManualSplitInvalidError(SplitError):
    """Manual split shares are malformed or do not sum to 100."""

    code: str = "MANUAL_SPLIT_INVALID"

    def __init__(self, reason: str, total_percent: str | None = None):
        self.reason = reason
        self.total_percent = total_percent
        super().__init__(f"Invalid manual split: {reason}")


class SplitPlanMismatchError(SplitError):
    """Stored ledger entries do not match the recorded split plan."""

    code: str = "SPLIT_PLAN_MISMATCH"

    def __init__(
        self,
        reference_type: str,
        reference_id: str,
        expected: dict[str, int],
        actual: dict[str, int],
    ):
        self.reference_type = reference_type
        self.reference_id = reference_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Split plan mismatch for {reference_type}/{reference_id}: "
            f"expected {expected}, found {actual}"
        )


# Event-related exceptions


class EventError(LedgerError):
    """Base exception for business-event errors."""

    code: str = "EVENT_ERROR"


class InvalidEventError(EventError):
    """Mutation request is malformed."""

    code: str = "INVALID_EVENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid event: {reason}")


class EventAlreadyAppliedError(EventError):
    """Reference has already been applied and not reversed."""

    code: str = "EVENT_ALREADY_APPLIED"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(
            f"Event already applied: {reference_type}/{reference_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(LedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class MutationConflictError(ConcurrencyError):
    """Concurrent modification persisted after all retry attempts."""

    code: str = "MUTATION_CONFLICT"

    def __init__(self, operation: str, attempts: int, last_error: str):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} gave up after {attempts} attempts: {last_error}"
        )


# Immutability-related exceptions


class ImmutabilityError(LedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a ledger entry outside a reversal."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
