"""
Module: commerce_kernel.selectors.audit_selector
Responsibility: Read access to the audit log: per-subject history and a
    filtered, paginated listing.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from commerce_kernel.domain.dtos import AuditEntryInfo
from commerce_kernel.domain.values import AuditOperation, SubjectKind
from commerce_kernel.models.audit_log import AuditLog
from commerce_kernel.selectors.base import BaseSelector, Page, resolve_paging


def _to_dto(row: AuditLog) -> AuditEntryInfo:
    return AuditEntryInfo(
        id=row.id,
        operation=row.operation,
        subject_kind=row.subject_kind,
        subject_id=row.subject_id,
        actor_id=row.actor_id,
        details=row.details,
        created_at=row.created_at,
    )


class AuditSelector(BaseSelector[AuditLog]):

    def history(
        self,
        subject_kind: SubjectKind | str,
        subject_id: UUID,
    ) -> list[AuditEntryInfo]:
        """Entries for one subject, oldest first."""
        rows = self.session.execute(
            select(AuditLog)
            .where(AuditLog.subject_kind == SubjectKind(subject_kind).value)
            .where(AuditLog.subject_id == subject_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        ).scalars()
        return [_to_dto(r) for r in rows]

    def list(
        self,
        subject_kind: SubjectKind | str | None = None,
        operation: AuditOperation | str | None = None,
        actor_id: UUID | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[AuditEntryInfo]:
        page, limit = resolve_paging(page, limit)
        stmt = select(AuditLog)
        if subject_kind is not None:
            stmt = stmt.where(AuditLog.subject_kind == SubjectKind(subject_kind).value)
        if operation is not None:
            stmt = stmt.where(AuditLog.operation == AuditOperation(operation).value)
        if actor_id is not None:
            stmt = stmt.where(AuditLog.actor_id == actor_id)
        if since is not None:
            stmt = stmt.where(AuditLog.created_at >= since)
        if until is not None:
            stmt = stmt.where(AuditLog.created_at <= until)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
        return Page.build([_to_dto(r) for r in rows], total, page, limit)
