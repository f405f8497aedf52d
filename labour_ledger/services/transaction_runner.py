"""
Transaction runner -- one atomic transaction per operation, retried on
concurrent-write conflicts.

Responsibility:
    Opens a session, runs the unit of work, commits.  A conflicting
    concurrent writer shows up as ``StaleDataError`` (version counter
    mismatch) or as a database ``OperationalError`` (lock timeout,
    deadlock, serialization failure, SQLite "database is locked").  Those
    roll back and run the whole unit again in a fresh session, so every
    balance is re-read.  After ``max_attempts`` the conflict surfaces as
    ``MutationConflictError``.

Invariants enforced:
    - All-or-nothing: a unit of work either commits completely or leaves no
      trace.
    - Domain errors (``LedgerError``) are never retried; they roll back and
      propagate unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from labour_config.schema import RetrySettings
from labour_ledger.exceptions import LedgerError, MutationConflictError
from labour_ledger.logging_config import get_logger

logger = get_logger("services.transaction")

T = TypeVar("T")

RETRYABLE_ERRORS = (StaleDataError, OperationalError)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt bound and exponential backoff, in seconds."""

    max_attempts: int = 4
    base_delay: float = 0.02
    max_delay: float = 0.5

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_ms / 1000,
            max_delay=settings.max_delay_ms / 1000,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff after the ``attempt``-th failure (0-based)."""
        return min(self.max_delay, self.base_delay * (2**attempt))


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    *,
    policy: RetryPolicy | None = None,
    operation: str = "ledger_operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work(session)`` in its own transaction and commit it.

    Raises:
        MutationConflictError: retryable failures on every attempt.
        LedgerError: whatever the unit of work raised, after rollback.
    """
    policy = policy or RetryPolicy()
    last_error: Exception | None = None

    for attempt in range(policy.max_attempts):
        session = session_factory()
        try:
            result = work(session)
            session.commit()
            if attempt:
                logger.info(
                    "transaction_succeeded_after_retry",
                    extra={"operation": operation, "attempt": attempt + 1},
                )
            return result
        except LedgerError:
            session.rollback()
            raise
        except RETRYABLE_ERRORS as exc:
            session.rollback()
            last_error = exc
            if attempt + 1 < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "transaction_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt + 1,
                        "max_attempts": policy.max_attempts,
                        "delay_ms": round(delay * 1000, 1),
                        "error_type": type(exc).__name__,
                    },
                )
                sleep(delay)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    logger.error(
        "transaction_retries_exhausted",
        extra={"operation": operation, "attempts": policy.max_attempts},
    )
    raise MutationConflictError(
        operation, policy.max_attempts, f"{type(last_error).__name__}: {last_error}"
    ) from last_error
