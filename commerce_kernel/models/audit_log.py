"""
Module: commerce_kernel.models.audit_log
Responsibility: ORM persistence for audit entries written by the audit sink.
Architecture position: Kernel > Models.  May import from db/ only.

Audit rows are written in their own session after the business unit
commits, so an audit row never exists for a rolled-back operation.  A
committed operation may lack its audit row if the sink failed; the failure
is in the application log as ``audit_write_failed``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from commerce_kernel.db.base import Base, UUIDString


class AuditLog(Base):
    """One create/update/delete on a transaction, contact or item."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_subject", "subject_kind", "subject_id"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_created", "created_at"),
    )

    # create | update | delete
    operation: Mapped[str] = mapped_column(String(10), nullable=False)

    # quotation | sale | purchase | contact | item
    subject_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    subject_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.operation} {self.subject_kind}:{self.subject_id}>"
