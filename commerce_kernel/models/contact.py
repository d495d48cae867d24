"""
Module: commerce_kernel.models.contact
Responsibility: ORM persistence for contacts, who act as customers, suppliers
    or both.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - tax_id is unique (uq_contact_tax_id) and stored normalized (body-DV).
    - At least one of is_customer / is_supplier is true (ck_contact_role).
    - needs_review is only set by bulk import and cleared by manual edits.
"""

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commerce_kernel.db.base import TrackedBase


class Contact(TrackedBase):
    """A customer and/or supplier."""

    __tablename__ = "contacts"

    __table_args__ = (
        UniqueConstraint("tax_id", name="uq_contact_tax_id"),
        CheckConstraint("is_customer OR is_supplier", name="ck_contact_role"),
        Index("idx_contact_name", "name"),
        Index("idx_contact_deleted", "is_deleted"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Chilean RUT, normalized as 12345678-9
    tax_id: Mapped[str] = mapped_column(String(12), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_customer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_supplier: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Contact {self.tax_id}: {self.name}>"
