"""
Values -- enumerations and input value objects for the commerce domain.

Responsibility:
    Canonical string enums for transaction kind, document type, status,
    audit operation and subject kind, plus the ``LineInput`` value object a
    caller submits for each transaction line.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Failure modes:
    - InvalidDocumentTypeError from DocumentType.parse() on unknown values.
    - InvalidInputError from LineInput.create() on non-numeric fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from commerce_kernel.db.types import to_decimal
from commerce_kernel.exceptions import InvalidDocumentTypeError, InvalidInputError


class TransactionKind(str, Enum):
    """The three transaction kinds sharing one table.  Fixed at creation."""

    QUOTATION = "quotation"
    SALE = "sale"
    PURCHASE = "purchase"

    @property
    def subject_kind(self) -> SubjectKind:
        return SubjectKind(self.value)


class DocumentType(str, Enum):
    """
    Whether submitted prices already include tax.

    ``boleta`` (retail receipt) prices include tax; ``factura`` (invoice)
    prices are net and tax is added on top.
    """

    TAX_INCLUSIVE = "tax_inclusive"
    TAX_EXCLUSIVE = "tax_exclusive"

    @classmethod
    def parse(cls, value: DocumentType | str) -> DocumentType:
        """Accept the enum, its value, or the ``boleta``/``factura`` aliases."""
        if isinstance(value, DocumentType):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            resolved = _DOCUMENT_TYPE_ALIASES.get(key)
            if resolved is not None:
                return resolved
        raise InvalidDocumentTypeError(value)


_DOCUMENT_TYPE_ALIASES: dict[str, DocumentType] = {
    "tax_inclusive": DocumentType.TAX_INCLUSIVE,
    "boleta": DocumentType.TAX_INCLUSIVE,
    "tax_exclusive": DocumentType.TAX_EXCLUSIVE,
    "factura": DocumentType.TAX_EXCLUSIVE,
}


class TransactionStatus(str, Enum):
    """Union of all statuses; each kind's workflow uses a subset."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"
    INVOICED = "invoiced"
    PAID = "paid"
    RECEIVED = "received"


class AuditOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SubjectKind(str, Enum):
    """What an audit entry is about."""

    QUOTATION = "quotation"
    SALE = "sale"
    PURCHASE = "purchase"
    CONTACT = "contact"
    ITEM = "item"


class ContactRole(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class ItemType(str, Enum):
    PRODUCT = "product"
    CONSUMABLE = "consumable"


@dataclass(frozen=True)
class LineInput:
    """
    One submitted transaction line.

    ``unit_price`` and ``discount`` are interpreted according to the
    transaction's document type; range checks happen in the calculator so
    errors can name the line position.
    """

    item_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = Decimal("0")

    @classmethod
    def create(
        cls,
        item_id: UUID | str,
        quantity: object,
        unit_price: object,
        discount: object = 0,
    ) -> LineInput:
        """Build a LineInput from loosely typed values (str ids, ints, floats)."""
        try:
            parsed_id = item_id if isinstance(item_id, UUID) else UUID(str(item_id))
        except ValueError as exc:
            raise InvalidInputError(
                f"Invalid item id: {item_id!r}", field="item_id"
            ) from exc
        try:
            return cls(
                item_id=parsed_id,
                quantity=to_decimal(quantity, "quantity"),
                unit_price=to_decimal(unit_price, "unit_price"),
                discount=to_decimal(discount if discount is not None else 0, "discount"),
            )
        except ValueError as exc:
            raise InvalidInputError(str(exc), field="lines") from exc
