"""
BaseService -- abstract base for flush-only kernel services.

Responsibility:
    Common constructor for services that write inside the caller's unit of
    work.  Subclasses persist with ``session.flush()`` and never commit or
    roll back; the caller (TransactionService, a ``session_scope()`` block or
    a test) owns the boundary.

Architecture position:
    Kernel > Services.  Contact, item, stock and correlative services extend
    this class.  TransactionService is the one service that owns commits.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from commerce_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
