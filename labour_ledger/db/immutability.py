"""
ORM-Level Immutability Enforcement for ledger entries.

===============================================================================
WHY THIS EXISTS
===============================================================================

Ledger entries are the history that every balance is derived from.  A
balance is only trustworthy if the entries behind it are facts: written
once, never edited.  The only sanctioned way to undo an entry is the
reversal engine, which deletes every entry of one business event and
applies the inverse effect to the same workers in the same transaction.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush]  --> LedgerEntry in session.deleted
         |                and no reversal scope open  --> ImmutabilityViolationError
         v
    [before_update] --> any LedgerEntry UPDATE         --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The reversal engine opens a scope with ``reversal_scope(session)``; deletes
flushed while the scope is open are allowed.

===============================================================================
USAGE
===============================================================================

Called once at startup (``init_engine_from_url`` does this):

    from labour_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event
from sqlalchemy.orm import Session

from labour_ledger.exceptions import ImmutabilityViolationError
from labour_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

_REVERSAL_SCOPE_KEY = "labour_ledger.reversal_scope"


@contextmanager
def reversal_scope(session: Session) -> Generator[Session, None, None]:
    """Allow ledger-entry deletes flushed inside this block."""
    depth = session.info.get(_REVERSAL_SCOPE_KEY, 0)
    session.info[_REVERSAL_SCOPE_KEY] = depth + 1
    try:
        yield session
    finally:
        session.info[_REVERSAL_SCOPE_KEY] = depth


def _check_ledger_entry_delete_before_flush(session, flush_context, instances):
    """
    Reject ledger-entry deletes outside a reversal scope.

    Runs in SessionEvents.before_flush: mapper-level before_delete fires
    after the flush plan is fixed, which is too late to keep the session
    clean.
    """
    from labour_ledger.models.ledger_entry import LedgerEntry

    if session.info.get(_REVERSAL_SCOPE_KEY, 0) > 0:
        return

    for obj in list(session.deleted):
        if not isinstance(obj, LedgerEntry):
            continue
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "LedgerEntry",
                "entity_id": str(obj.id),
                "operation": "DELETE",
            },
        )
        raise ImmutabilityViolationError(
            entity_type="LedgerEntry",
            entity_id=str(obj.id),
            reason="Ledger entries can only be removed by reversing their event",
        )


def _check_ledger_entry_update(mapper, connection, target):
    """Ledger entries are never updated in place."""
    from sqlalchemy import inspect

    changed = [
        attr.key for attr in inspect(target).attrs if attr.history.has_changes()
    ]
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerEntry",
        entity_id=str(target.id),
        reason=f"Cannot modify fields {changed} on a ledger entry",
    )


def register_immutability_listeners() -> None:
    """Register the ledger-entry listeners (idempotent)."""
    from labour_ledger.models.ledger_entry import LedgerEntry

    if not event.contains(
        Session, "before_flush", _check_ledger_entry_delete_before_flush
    ):
        event.listen(Session, "before_flush", _check_ledger_entry_delete_before_flush)
    if not event.contains(LedgerEntry, "before_update", _check_ledger_entry_update):
        event.listen(LedgerEntry, "before_update", _check_ledger_entry_update)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. FOR TESTING ONLY."""
    from labour_ledger.models.ledger_entry import LedgerEntry

    if event.contains(Session, "before_flush", _check_ledger_entry_delete_before_flush):
        event.remove(Session, "before_flush", _check_ledger_entry_delete_before_flush)
    if event.contains(LedgerEntry, "before_update", _check_ledger_entry_update):
        event.remove(LedgerEntry, "before_update", _check_ledger_entry_update)
