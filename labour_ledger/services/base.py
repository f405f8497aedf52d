"""
BaseService -- abstract base for ledger services.

Every service receives a SQLAlchemy ``Session`` from its caller and persists
with ``session.flush()``; it never commits or rolls back.  The transaction
runner used by ``LedgerOrchestrator`` owns the boundary, which is what makes
"reverse then re-apply" a single atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from labour_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Flush-only service holding the caller's session."""

    def __init__(self, session: Session):
        self.session = session
