"""
Module: commerce_kernel.models.item
Responsibility: ORM persistence for sellable products and consumables.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - stock is never negative (ck_item_stock_non_negative).  The stock
      service is the only writer after creation.
    - stock is NULL for items that have never been inventoried.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from commerce_kernel.db.base import TrackedBase


class Item(TrackedBase):
    """A product or consumable that transaction lines reference."""

    __tablename__ = "items"

    __table_args__ = (
        CheckConstraint(
            "stock IS NULL OR stock >= 0", name="ck_item_stock_non_negative"
        ),
        CheckConstraint("net_price >= 0", name="ck_item_price_non_negative"),
        Index("idx_item_name", "name"),
        Index("idx_item_type", "item_type"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    dimensions: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # product | consumable
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)

    net_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    stock: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    is_inventoried: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Item {self.name} stock={self.stock}>"
