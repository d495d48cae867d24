"""
Amount calculator -- pure line and total computation.

Responsibility:
    Turn submitted lines, a document type and a tax rate into normalized
    lines plus net, tax and total amounts.  The same function backs the
    preview operation and every persisted write, so previewed and stored
    amounts cannot diverge.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    tax-inclusive (boleta):
        net_unit     = unit_price / (1 + rate)
        net_discount = discount / (1 + rate)
        subtotal     = max(0, round(q * net_unit) - net_discount)
        the stored line keeps round(net_unit) and round(net_discount)
    tax-exclusive (factura):
        subtotal     = max(0, q * unit_price - discount)
        the stored line keeps the submitted values
    totals:
        net   = round(sum(subtotals))
        tax   = round(net * rate)
        total = net + tax

Failure modes:
    - EmptyLinesError if no lines were submitted.
    - InvalidDocumentTypeError for unknown document types.
    - InvalidLineError for quantity <= 0 or negative price/discount.
    - InvalidTaxRateError for rates outside [0, 1).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from commerce_kernel.db.types import round_money, to_decimal
from commerce_kernel.domain.values import DocumentType, LineInput
from commerce_kernel.exceptions import (
    EmptyLinesError,
    InvalidLineError,
    InvalidTaxRateError,
)

DEFAULT_TAX_RATE = Decimal("0.19")

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True)
class NormalizedLine:
    """A line as it is stored: prices net of tax, subtotal derived."""

    position: int
    item_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class AmountBreakdown:
    """Calculator output."""

    document_type: DocumentType
    tax_rate: Decimal
    lines: tuple[NormalizedLine, ...]
    net_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    def quantities_by_item(self) -> dict[UUID, Decimal]:
        """Total quantity per item across lines (items may repeat)."""
        totals: dict[UUID, Decimal] = {}
        for line in self.lines:
            totals[line.item_id] = totals.get(line.item_id, _ZERO) + line.quantity
        return totals


def validate_tax_rate(tax_rate: object) -> Decimal:
    """Return the rate as Decimal, rejecting values outside [0, 1)."""
    if tax_rate is None:
        return DEFAULT_TAX_RATE
    try:
        rate = to_decimal(tax_rate, "tax_rate")
    except ValueError as exc:
        raise InvalidTaxRateError(tax_rate) from exc
    if rate < _ZERO or rate >= _ONE:
        raise InvalidTaxRateError(tax_rate)
    return rate


def _validate_line(position: int, line: LineInput) -> None:
    if line.item_id is None:
        raise InvalidLineError(position, "item is required")
    if line.quantity <= _ZERO:
        raise InvalidLineError(position, f"quantity must be > 0, got {line.quantity}")
    if line.unit_price < _ZERO:
        raise InvalidLineError(
            position, f"unit_price must be >= 0, got {line.unit_price}"
        )
    if line.discount < _ZERO:
        raise InvalidLineError(position, f"discount must be >= 0, got {line.discount}")


def _inclusive_line(position: int, line: LineInput, divisor: Decimal) -> NormalizedLine:
    net_unit = line.unit_price / divisor
    net_discount = line.discount / divisor
    # The discount is only rounded for storage; the subtotal keeps its fraction
    subtotal = max(_ZERO, round_money(line.quantity * net_unit) - net_discount)
    return NormalizedLine(
        position=position,
        item_id=line.item_id,
        quantity=line.quantity,
        unit_price=round_money(net_unit),
        discount=round_money(net_discount),
        subtotal=subtotal,
    )


def _exclusive_line(position: int, line: LineInput) -> NormalizedLine:
    subtotal = max(_ZERO, line.quantity * line.unit_price - line.discount)
    return NormalizedLine(
        position=position,
        item_id=line.item_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        discount=line.discount,
        subtotal=subtotal,
    )


def calculate_amounts(
    lines: Sequence[LineInput],
    document_type: DocumentType | str,
    tax_rate: object = DEFAULT_TAX_RATE,
) -> AmountBreakdown:
    """
    Compute normalized lines and totals.

    Example:
        lines 3 x 1000 and 1 x 500 at 0.19
        factura -> net 3500, tax 665, total 4165
        boleta  -> net 2941, tax 559, total 3500
    """
    doc_type = DocumentType.parse(document_type)
    rate = validate_tax_rate(tax_rate)
    if not lines:
        raise EmptyLinesError()

    for position, line in enumerate(lines, start=1):
        _validate_line(position, line)

    if doc_type is DocumentType.TAX_INCLUSIVE:
        divisor = _ONE + rate
        normalized = tuple(
            _inclusive_line(position, line, divisor)
            for position, line in enumerate(lines, start=1)
        )
    else:
        normalized = tuple(
            _exclusive_line(position, line)
            for position, line in enumerate(lines, start=1)
        )

    net_amount = round_money(sum((line.subtotal for line in normalized), _ZERO))
    tax_amount = round_money(net_amount * rate)

    return AmountBreakdown(
        document_type=doc_type,
        tax_rate=rate,
        lines=normalized,
        net_amount=net_amount,
        tax_amount=tax_amount,
        total_amount=net_amount + tax_amount,
    )
