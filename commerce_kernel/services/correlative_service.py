"""
CorrelativeAllocator -- global correlative and document number allocation.

Responsibility:
    Hand out the next correlative shared by quotations, sales and purchases,
    and format the kind-prefixed document number derived from it
    (``COT-0001``, ``VEN-0002``, ``COM-0003``).

Architecture position:
    Kernel > Services.  Flush-only; runs inside the caller's unit so the
    correlative is consumed only if the transaction row commits.

Algorithm:
    1. Lock the ``transaction_correlative`` counter row (SELECT ... FOR
       UPDATE; BEGIN IMMEDIATE on SQLite).  Concurrent allocators queue here.
    2. Read MAX(correlative) over every transaction row, deleted ones
       included.
    3. next = max(max_seen, counter) + 1, stored back into the counter.
    Step 2 keeps the allocator correct for rows inserted without going
    through the counter (imports, restores).

Failure modes:
    - IntegrityError when two sessions create the counter row at once;
      handled with a savepoint and a locked re-read.
"""

from collections.abc import Mapping

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from commerce_kernel.domain.values import TransactionKind
from commerce_kernel.domain.workflow import get_workflow
from commerce_kernel.logging_config import get_logger
from commerce_kernel.models.sequence import SequenceCounter
from commerce_kernel.models.transaction import Transaction
from commerce_kernel.services.base import BaseService

logger = get_logger("services.correlative")

DEFAULT_PAD_WIDTH = 4


def format_document_number(
    prefix: str,
    correlative: int,
    pad_width: int = DEFAULT_PAD_WIDTH,
) -> str:
    """``format_document_number("VEN", 42) -> "VEN-0042"``.

    Correlatives wider than the padding are printed in full.
    """
    return f"{prefix}-{str(correlative).zfill(pad_width)}"


class CorrelativeAllocator(BaseService[SequenceCounter]):
    """
    Allocates correlatives from a locked counter row.

    Guarantees:
        - Values are globally unique and strictly increasing across kinds
          for committed transactions.
        - A rolled-back unit returns its value (the counter update rolls
          back with it).
    """

    SEQUENCE_NAME = "transaction_correlative"

    def __init__(
        self,
        session,
        prefixes: Mapping[str, str] | None = None,
        pad_width: int = DEFAULT_PAD_WIDTH,
    ):
        super().__init__(session)
        self._prefixes = dict(prefixes or {})
        self._pad_width = pad_width

    def prefix_for(self, kind: TransactionKind | str) -> str:
        kind = TransactionKind(kind)
        return self._prefixes.get(kind.value) or get_workflow(kind).document_prefix

    def _lock_counter(self) -> SequenceCounter:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == self.SEQUENCE_NAME)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = self.session.execute(stmt).scalar_one_or_none()
        if counter is not None:
            return counter

        savepoint = self.session.begin_nested()
        try:
            counter = SequenceCounter(name=self.SEQUENCE_NAME, current_value=0)
            self.session.add(counter)
            self.session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": self.SEQUENCE_NAME},
            )
            savepoint.rollback()
            return self.session.execute(stmt).scalar_one()

    def _max_correlative(self) -> int:
        return self.session.execute(
            select(func.max(Transaction.correlative))
        ).scalar() or 0

    def next_correlative(self) -> int:
        """
        Allocate the next correlative inside the caller's unit.

        The counter row stays locked until the caller commits or rolls back.
        """
        counter = self._lock_counter()
        value = max(self._max_correlative(), counter.current_value) + 1
        counter.current_value = value
        self.session.flush()
        logger.debug(
            "correlative_allocated",
            extra={"sequence_name": self.SEQUENCE_NAME, "value": value},
        )
        return value

    def next_document_number(self, kind_prefix: str, correlative: int) -> str:
        return format_document_number(kind_prefix, correlative, self._pad_width)

    def allocate(self, kind: TransactionKind | str) -> tuple[int, str]:
        """Allocate a correlative and its document number for ``kind``."""
        correlative = self.next_correlative()
        return correlative, self.next_document_number(self.prefix_for(kind), correlative)

    def peek_next_correlative(self) -> int:
        """Read-only preview; a concurrent creation may take the value first."""
        current = self.session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == self.SEQUENCE_NAME
            )
        ).scalar() or 0
        return max(self._max_correlative(), current) + 1

    def peek_next_document_number(self, kind: TransactionKind | str) -> str:
        return self.next_document_number(
            self.prefix_for(kind), self.peek_next_correlative()
        )
