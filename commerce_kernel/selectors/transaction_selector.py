"""
Module: commerce_kernel.selectors.transaction_selector
Responsibility: Filtered, sorted, paginated listing of transactions of one
    kind, the single-transaction detail view, per-counterparty metrics and
    the purchase expense breakdown.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query is scoped to one kind; an id of another kind is "not found".
    - Soft-deleted rows are excluded unless ``include_deleted`` is set; the
      detail view never returns them.
    - Ordering is total: every sort key is followed by correlative.

Failure modes:
    - InvalidInputError for unknown sort keys, bad order, bad paging or an
      inverted amount/date range.
    - TransactionNotFoundError from ``get``; ContactNotFoundError from
      ``counterparty_metrics``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from commerce_kernel.db.types import round_money
from commerce_kernel.domain.dtos import (
    CounterpartyMetrics,
    CounterpartySummary,
    ExpenseCategory,
    ExpenseSummary,
    TransactionDetail,
    TransactionInfo,
)
from commerce_kernel.domain.values import ItemType, TransactionKind, TransactionStatus
from commerce_kernel.exceptions import (
    ContactNotFoundError,
    InvalidInputError,
    TransactionNotFoundError,
)
from commerce_kernel.models.contact import Contact
from commerce_kernel.models.item import Item
from commerce_kernel.models.transaction import Transaction, TransactionLine
from commerce_kernel.selectors.base import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    BaseSelector,
    Page,
    resolve_paging,
)

SORT_COLUMNS: dict[str, Any] = {
    "correlative": Transaction.correlative,
    "document_number": Transaction.document_number,
    "date": Transaction.document_date,
    "status": Transaction.status,
    "total_amount": Transaction.total_amount,
    "counterparty": Contact.name,
}

DEFAULT_SORT = "correlative"
DEFAULT_ORDER = "desc"


@dataclass(frozen=True)
class TransactionFilter:
    """All fields optional; unset fields do not filter."""

    status: TransactionStatus | str | None = None
    counterparty_id: UUID | None = None
    created_by_id: UUID | None = None
    related_quotation_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    include_deleted: bool = False

    def validate(self) -> None:
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            raise InvalidInputError("start_date is after end_date", field="start_date")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and Decimal(self.min_amount) > Decimal(self.max_amount)
        ):
            raise InvalidInputError("min_amount is above max_amount", field="min_amount")


class TransactionSelector(BaseSelector[Transaction]):
    """Read side for quotations, sales and purchases."""

    def __init__(
        self,
        session: Session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        super().__init__(session)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def _apply_filter(self, stmt, filters: TransactionFilter):
        if not filters.include_deleted:
            stmt = stmt.where(Transaction.is_deleted == False)  # noqa: E712
        if filters.status is not None:
            status = (
                filters.status.value
                if isinstance(filters.status, TransactionStatus)
                else filters.status
            )
            stmt = stmt.where(Transaction.status == status)
        if filters.counterparty_id is not None:
            stmt = stmt.where(Transaction.counterparty_id == filters.counterparty_id)
        if filters.created_by_id is not None:
            stmt = stmt.where(Transaction.created_by_id == filters.created_by_id)
        if filters.related_quotation_id is not None:
            stmt = stmt.where(
                Transaction.related_quotation_id == filters.related_quotation_id
            )
        if filters.start_date is not None:
            stmt = stmt.where(Transaction.document_date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(Transaction.document_date <= filters.end_date)
        if filters.min_amount is not None:
            stmt = stmt.where(Transaction.total_amount >= Decimal(filters.min_amount))
        if filters.max_amount is not None:
            stmt = stmt.where(Transaction.total_amount <= Decimal(filters.max_amount))
        return stmt

    def list(
        self,
        kind: TransactionKind | str,
        filters: TransactionFilter | None = None,
        page: int = 1,
        limit: int | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> Page[TransactionInfo]:
        """
        One page of transactions of ``kind``.

        ``sort`` is one of correlative, document_number, date, status,
        total_amount, counterparty; ``order`` is asc or desc.
        """
        kind = TransactionKind(kind)
        filters = filters or TransactionFilter()
        filters.validate()
        page, limit = resolve_paging(
            page, limit, self._default_page_size, self._max_page_size
        )
        sort = sort or DEFAULT_SORT
        if sort not in SORT_COLUMNS:
            raise InvalidInputError(
                f"Unknown sort key {sort!r}; expected one of {sorted(SORT_COLUMNS)}",
                field="sort",
            )
        order = (order or DEFAULT_ORDER).lower()
        if order not in ("asc", "desc"):
            raise InvalidInputError(f"order must be asc or desc, got {order!r}", field="order")

        base = self._apply_filter(
            select(Transaction).where(Transaction.kind == kind.value), filters
        )

        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()

        column = SORT_COLUMNS[sort]
        stmt = base
        if sort == "counterparty":
            stmt = stmt.join(Contact, Contact.id == Transaction.counterparty_id)
        if order == "asc":
            stmt = stmt.order_by(column.asc(), Transaction.correlative.asc())
        else:
            stmt = stmt.order_by(column.desc(), Transaction.correlative.desc())
        stmt = stmt.offset((page - 1) * limit).limit(limit)

        rows = self.session.execute(stmt).scalars().all()
        return Page.build(
            [TransactionInfo.from_model(t) for t in rows], total, page, limit
        )

    def get(self, kind: TransactionKind | str, transaction_id: UUID) -> TransactionDetail:
        """
        Detail view with counterparty, item names and related quotation.

        Raises:
            TransactionNotFoundError: Missing, deleted or of another kind.
        """
        kind = TransactionKind(kind)
        transaction = self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .where(Transaction.kind == kind.value)
            .where(Transaction.is_deleted == False)  # noqa: E712
        ).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(str(transaction_id), kind.value)

        item_ids = {line.item_id for line in transaction.lines}
        item_names: dict[UUID, str] = {}
        if item_ids:
            item_names = dict(
                self.session.execute(
                    select(Item.id, Item.name).where(Item.id.in_(item_ids))
                ).all()
            )

        contact = self.session.get(Contact, transaction.counterparty_id)
        counterparty = None
        if contact is not None:
            counterparty = CounterpartySummary(
                id=contact.id,
                name=contact.name,
                tax_id=contact.tax_id,
                email=contact.email,
            )

        related_number = None
        if transaction.related_quotation_id is not None:
            related_number = self.session.execute(
                select(Transaction.document_number).where(
                    Transaction.id == transaction.related_quotation_id
                )
            ).scalar_one_or_none()

        return TransactionDetail(
            transaction=TransactionInfo.from_model(transaction, item_names),
            counterparty=counterparty,
            related_quotation_number=related_number,
        )

    def sales_for_quotation(self, quotation_id: UUID) -> list[TransactionInfo]:
        """Live sales converted from ``quotation_id``."""
        rows = self.session.execute(
            select(Transaction)
            .where(Transaction.kind == TransactionKind.SALE.value)
            .where(Transaction.related_quotation_id == quotation_id)
            .where(Transaction.is_deleted == False)  # noqa: E712
            .order_by(Transaction.correlative)
        ).scalars()
        return [TransactionInfo.from_model(t) for t in rows]

    def counterparty_metrics(
        self,
        contact_id: UUID,
        kind: TransactionKind | str,
    ) -> CounterpartyMetrics:
        """
        Count, total, average ticket, extremes and date span of the live
        transactions of ``kind`` with one contact, in any status.

        A contact with no such transactions gets zero amounts and no dates.
        The contact's current roles are not checked; history outlives them.

        Raises:
            ContactNotFoundError: Missing or soft-deleted contact.
        """
        kind = TransactionKind(kind)
        contact = self.session.get(Contact, contact_id)
        if contact is None or contact.is_deleted:
            raise ContactNotFoundError(str(contact_id))

        result = self.session.execute(
            select(
                func.count(Transaction.id).label("transaction_count"),
                func.sum(Transaction.total_amount).label("total_amount"),
                func.min(Transaction.total_amount).label("min_amount"),
                func.max(Transaction.total_amount).label("max_amount"),
                func.min(Transaction.document_date).label("first_date"),
                func.max(Transaction.document_date).label("last_date"),
            )
            .where(Transaction.counterparty_id == contact_id)
            .where(Transaction.kind == kind.value)
            .where(Transaction.is_deleted == False)  # noqa: E712
        ).one()

        count = result.transaction_count or 0
        total = Decimal(result.total_amount or 0)
        return CounterpartyMetrics(
            contact_id=contact_id,
            kind=kind.value,
            transaction_count=count,
            total_amount=total,
            average_ticket=round_money(total / count) if count else Decimal("0"),
            min_amount=Decimal(result.min_amount or 0),
            max_amount=Decimal(result.max_amount or 0),
            first_date=result.first_date,
            last_date=result.last_date,
        )

    def expenses_by_category(
        self,
        start_date: date,
        end_date: date,
        categories: list[ItemType | str] | None = None,
    ) -> ExpenseSummary:
        """
        Purchases dated within ``[start_date, end_date]`` grouped by the
        item type of their lines.

        Rejected and deleted purchases are not expenses and are left out.
        ``categories`` limits the breakdown, and the purchase totals, to
        purchases with at least one line of those item types.

        Raises:
            InvalidInputError: Missing or inverted dates, unknown category.
        """
        if start_date is None or end_date is None:
            raise InvalidInputError(
                "start_date and end_date are required", field="start_date"
            )
        if start_date > end_date:
            raise InvalidInputError("start_date is after end_date", field="start_date")
        wanted: list[str] | None = None
        if categories:
            try:
                wanted = sorted({ItemType(c).value for c in categories})
            except ValueError:
                raise InvalidInputError(
                    f"Unknown category in {categories!r}; expected one of "
                    f"{[t.value for t in ItemType]}",
                    field="categories",
                ) from None

        purchases = (
            select(Transaction.id)
            .where(Transaction.kind == TransactionKind.PURCHASE.value)
            .where(Transaction.is_deleted == False)  # noqa: E712
            .where(Transaction.status != TransactionStatus.REJECTED.value)
            .where(Transaction.document_date >= start_date)
            .where(Transaction.document_date <= end_date)
        )
        if wanted is not None:
            purchases = purchases.where(
                Transaction.id.in_(
                    select(TransactionLine.transaction_id)
                    .join(Item, Item.id == TransactionLine.item_id)
                    .where(Item.item_type.in_(wanted))
                )
            )
        purchase_ids = purchases

        totals = self.session.execute(
            select(
                func.count(Transaction.id).label("purchase_count"),
                func.sum(Transaction.total_amount).label("total_amount"),
            ).where(Transaction.id.in_(purchase_ids))
        ).one()

        breakdown = (
            select(
                Item.item_type,
                func.count(Transaction.id.distinct()).label("purchase_count"),
                func.sum(TransactionLine.subtotal).label("net_amount"),
            )
            .join(Transaction, Transaction.id == TransactionLine.transaction_id)
            .join(Item, Item.id == TransactionLine.item_id)
            .where(Transaction.id.in_(purchase_ids))
            .group_by(Item.item_type)
            .order_by(Item.item_type)
        )
        if wanted is not None:
            breakdown = breakdown.where(Item.item_type.in_(wanted))

        return ExpenseSummary(
            start_date=start_date,
            end_date=end_date,
            purchase_count=totals.purchase_count or 0,
            total_amount=Decimal(totals.total_amount or 0),
            categories=tuple(
                ExpenseCategory(
                    category=row.item_type,
                    purchase_count=row.purchase_count,
                    net_amount=round_money(Decimal(row.net_amount or 0)),
                )
                for row in self.session.execute(breakdown)
            ),
        )
