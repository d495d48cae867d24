"""
DTOs -- immutable records returned by services and selectors.

Services never hand ORM instances to callers.  Each DTO has a
``from_model`` boundary converter; these are the only places that read
ORM attributes outside services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class ContactInfo:
    id: UUID
    name: str
    tax_id: str
    email: str | None
    phone: str | None
    address: str | None
    is_customer: bool
    is_supplier: bool
    is_deleted: bool
    needs_review: bool

    @classmethod
    def from_model(cls, contact: Any) -> ContactInfo:
        return cls(
            id=contact.id,
            name=contact.name,
            tax_id=contact.tax_id,
            email=contact.email,
            phone=contact.phone,
            address=contact.address,
            is_customer=contact.is_customer,
            is_supplier=contact.is_supplier,
            is_deleted=contact.is_deleted,
            needs_review=contact.needs_review,
        )


@dataclass(frozen=True)
class ItemInfo:
    id: UUID
    name: str
    description: str | None
    dimensions: str | None
    item_type: str
    net_price: Decimal
    stock: Decimal | None
    is_inventoried: bool
    is_deleted: bool

    @classmethod
    def from_model(cls, item: Any) -> ItemInfo:
        return cls(
            id=item.id,
            name=item.name,
            description=item.description,
            dimensions=item.dimensions,
            item_type=item.item_type,
            net_price=item.net_price,
            stock=item.stock,
            is_inventoried=item.is_inventoried,
            is_deleted=item.is_deleted,
        )


@dataclass(frozen=True)
class TransactionLineInfo:
    position: int
    item_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal
    item_name: str | None = None


@dataclass(frozen=True)
class TransactionInfo:
    """A transaction as returned by every write operation and by list()."""

    id: UUID
    correlative: int
    document_number: str
    kind: str
    document_type: str
    document_date: date
    counterparty_id: UUID
    status: str
    tax_rate: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    related_quotation_id: UUID | None
    observations: str | None
    is_deleted: bool
    lines: tuple[TransactionLineInfo, ...]
    created_by_id: UUID
    updated_by_id: UUID | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_model(
        cls,
        transaction: Any,
        item_names: dict[UUID, str] | None = None,
    ) -> TransactionInfo:
        names = item_names or {}
        return cls(
            id=transaction.id,
            correlative=transaction.correlative,
            document_number=transaction.document_number,
            kind=transaction.kind,
            document_type=transaction.document_type,
            document_date=transaction.document_date,
            counterparty_id=transaction.counterparty_id,
            status=transaction.status,
            tax_rate=transaction.tax_rate,
            net_amount=transaction.net_amount,
            tax_amount=transaction.tax_amount,
            total_amount=transaction.total_amount,
            related_quotation_id=transaction.related_quotation_id,
            observations=transaction.observations,
            is_deleted=transaction.is_deleted,
            lines=tuple(
                TransactionLineInfo(
                    position=line.position,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount=line.discount,
                    subtotal=line.subtotal,
                    item_name=names.get(line.item_id),
                )
                for line in transaction.lines
            ),
            created_by_id=transaction.created_by_id,
            updated_by_id=transaction.updated_by_id,
            created_at=transaction.created_at,
            updated_at=transaction.updated_at,
        )


@dataclass(frozen=True)
class CounterpartySummary:
    id: UUID
    name: str
    tax_id: str
    email: str | None


@dataclass(frozen=True)
class TransactionDetail:
    """Single-transaction read view hydrated with related display data."""

    transaction: TransactionInfo
    counterparty: CounterpartySummary | None
    related_quotation_number: str | None


@dataclass(frozen=True)
class AuditEntryInfo:
    id: UUID
    operation: str
    subject_kind: str
    subject_id: UUID
    actor_id: UUID
    details: dict | None
    created_at: datetime | None


@dataclass(frozen=True)
class CounterpartyMetrics:
    """Totals of one contact's live transactions of one kind."""

    contact_id: UUID
    kind: str
    transaction_count: int
    total_amount: Decimal
    average_ticket: Decimal
    min_amount: Decimal
    max_amount: Decimal
    first_date: date | None
    last_date: date | None


@dataclass(frozen=True)
class ExpenseCategory:
    category: str
    purchase_count: int
    net_amount: Decimal


@dataclass(frozen=True)
class ExpenseSummary:
    """
    Purchases in a date range broken down by item type.

    ``total_amount`` is the gross total of the matching purchases; each
    category carries the net subtotal of its own lines, so a purchase
    mixing item types counts once in every category it touches.
    """

    start_date: date
    end_date: date
    purchase_count: int
    total_amount: Decimal
    categories: tuple[ExpenseCategory, ...]
