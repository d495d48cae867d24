"""
Module: commerce_kernel.models.transaction
Responsibility: ORM persistence for quotations, sales and purchases.  All three
    kinds live in one table tagged by ``kind``; lines live in
    ``transaction_lines``.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - correlative is globally unique across kinds (uq_transaction_correlative).
    - document_number is unique (uq_transaction_document_number).
    - kind never changes after insert (services never assign it).
    - Amount columns are only ever written from calculator output.

Failure modes:
    - IntegrityError on a duplicate correlative or document number; the
      transaction service maps it to DuplicateDocumentNumberError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commerce_kernel.db.base import Base, TrackedBase, UUIDString


class Transaction(TrackedBase):
    """
    A quotation, sale or purchase.

    ``status`` values are validated against the kind's workflow by the
    service layer; the column itself is a plain string.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint("correlative", name="uq_transaction_correlative"),
        UniqueConstraint("document_number", name="uq_transaction_document_number"),
        Index("idx_transaction_kind_status", "kind", "status"),
        Index("idx_transaction_counterparty", "counterparty_id"),
        Index("idx_transaction_document_date", "document_date"),
        Index("idx_transaction_related_quotation", "related_quotation_id"),
    )

    correlative: Mapped[int] = mapped_column(BigInteger, nullable=False)

    document_number: Mapped[str] = mapped_column(String(30), nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    document_type: Mapped[str] = mapped_column(String(20), nullable=False)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contacts.id"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    tax_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)

    net_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Sales only: the quotation this sale was converted from
    related_quotation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    observations: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lines: Mapped[list["TransactionLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.position",
        lazy="selectin",
    )

    counterparty: Mapped["Contact"] = relationship(  # noqa: F821
        foreign_keys=[counterparty_id],
    )

    related_quotation: Mapped["Transaction | None"] = relationship(
        remote_side="Transaction.id",
        foreign_keys=[related_quotation_id],
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.document_number} {self.kind} status={self.status}>"


class TransactionLine(Base):
    """One ordered line of a transaction; prices stored net of tax."""

    __tablename__ = "transaction_lines"

    __table_args__ = (
        UniqueConstraint("transaction_id", "position", name="uq_line_position"),
        Index("idx_line_item", "item_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=0)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    transaction: Mapped["Transaction"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<TransactionLine #{self.position} item={self.item_id} qty={self.quantity}>"
