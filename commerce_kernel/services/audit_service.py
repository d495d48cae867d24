"""
Audit recording -- best-effort, outside the rollback boundary.

Responsibility:
    Collect audit entries while a unit of work runs and hand them to an
    ``AuditSink`` once the unit has committed.  A rolled-back unit never
    produces audit rows; a committed unit whose sink fails still stands.

Architecture position:
    Kernel > Services.  ``AuditRecorder`` is attached to a Session through
    SQLAlchemy session events (``after_commit`` / ``after_soft_rollback``), so
    flush-only services can record entries without knowing who commits.

Failure modes:
    - Sink failures are caught and logged as ``audit_write_failed`` /
      ``audit_sink_error``.  They never propagate to the business caller.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from commerce_kernel.domain.values import AuditOperation, SubjectKind
from commerce_kernel.logging_config import get_logger
from commerce_kernel.models.audit_log import AuditLog

logger = get_logger("services.audit")


def to_jsonable(value: Any) -> Any:
    """Convert Decimals, UUIDs, dates and enums into JSON-safe values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class AuditEntry:
    operation: AuditOperation
    subject_kind: SubjectKind
    subject_id: UUID
    actor_id: UUID
    details: dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(Protocol):
    """Receives committed audit entries.  Must not raise."""

    def record(self, entry: AuditEntry) -> None:
        ...


class DatabaseAuditSink:
    """
    Writes each entry to ``audit_logs`` in its own short session.

    Any failure (connection, lock timeout, constraint) is logged and
    swallowed.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @classmethod
    def for_bind(cls, bind: Any) -> DatabaseAuditSink:
        return cls(sessionmaker(bind=bind, expire_on_commit=False))

    def record(self, entry: AuditEntry) -> None:
        try:
            session = self._session_factory()
            try:
                session.add(
                    AuditLog(
                        operation=entry.operation.value,
                        subject_kind=entry.subject_kind.value,
                        subject_id=entry.subject_id,
                        actor_id=entry.actor_id,
                        details=to_jsonable(entry.details),
                        created_at=entry.recorded_at,
                    )
                )
                session.commit()
            finally:
                session.close()
        except Exception:
            logger.error(
                "audit_write_failed",
                extra={
                    "operation": entry.operation.value,
                    "subject_kind": entry.subject_kind.value,
                    "subject_id": str(entry.subject_id),
                },
                exc_info=True,
            )
            return
        logger.debug(
            "audit_written",
            extra={
                "operation": entry.operation.value,
                "subject_kind": entry.subject_kind.value,
                "subject_id": str(entry.subject_id),
            },
        )


class AuditRecorder:
    """
    Per-session buffer of audit entries.

    Entries recorded during a unit are delivered to the sink after the
    session commits and dropped if it rolls back.  Use ``for_session`` so
    every service sharing a session shares one recorder.
    """

    _INFO_KEY = "commerce_kernel.audit_recorder"

    def __init__(self, session: Session, sink: AuditSink):
        self._session = session
        self._sink = sink
        self._pending: list[AuditEntry] = []
        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_soft_rollback", self._on_rollback)

    @classmethod
    def for_session(
        cls,
        session: Session,
        sink: AuditSink | None = None,
    ) -> AuditRecorder:
        recorder = session.info.get(cls._INFO_KEY)
        if recorder is None:
            recorder = cls(session, sink or DatabaseAuditSink.for_bind(session.get_bind()))
            session.info[cls._INFO_KEY] = recorder
        elif sink is not None and recorder.sink is not sink:
            raise ValueError("Session already has an audit recorder with another sink")
        return recorder

    @property
    def sink(self) -> AuditSink:
        return self._sink

    @property
    def pending(self) -> tuple[AuditEntry, ...]:
        return tuple(self._pending)

    def record(
        self,
        operation: AuditOperation,
        subject_kind: SubjectKind,
        subject_id: UUID,
        actor_id: UUID,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        self._pending.append(
            AuditEntry(
                operation=operation,
                subject_kind=subject_kind,
                subject_id=subject_id,
                actor_id=actor_id,
                details=dict(details or {}),
            )
        )

    def _on_commit(self, session: Session) -> None:
        # A released savepoint still belongs to the outer unit, which may roll back.
        if session.in_nested_transaction():
            return
        entries, self._pending = self._pending, []
        for entry in entries:
            try:
                self._sink.record(entry)
            except Exception:
                logger.error(
                    "audit_sink_error",
                    extra={
                        "operation": entry.operation.value,
                        "subject_kind": entry.subject_kind.value,
                        "subject_id": str(entry.subject_id),
                    },
                    exc_info=True,
                )

    def _on_rollback(self, session: Session, previous_transaction: Any) -> None:
        # Savepoint rollbacks leave the outer unit, and its entries, alive.
        if previous_transaction.nested:
            return
        if self._pending:
            logger.debug(
                "audit_entries_discarded",
                extra={"count": len(self._pending)},
            )
        self._pending = []
