"""
Service layer for items (products and consumables).

Flush-only; callers own commit.  Stock is not writable here except through
``toggle_inventory``, which delegates to StockService.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from commerce_kernel.db.types import to_decimal
from commerce_kernel.domain.dtos import ItemInfo
from commerce_kernel.domain.values import AuditOperation, ItemType, SubjectKind
from commerce_kernel.exceptions import InvalidInputError, ItemNotFoundError
from commerce_kernel.logging_config import get_logger
from commerce_kernel.models.item import Item
from commerce_kernel.services.audit_service import AuditRecorder, AuditSink
from commerce_kernel.services.base import BaseService
from commerce_kernel.services.stock_service import StockService

logger = get_logger("services.item")

NAME_MAX_LENGTH = 100


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("Item name is required", field="name")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise InvalidInputError(
            f"Item name cannot exceed {NAME_MAX_LENGTH} characters", field="name"
        )
    return cleaned


def _clean_price(value: object) -> Decimal:
    try:
        price = to_decimal(value, "net_price")
    except ValueError as exc:
        raise InvalidInputError(str(exc), field="net_price") from exc
    if price < 0:
        raise InvalidInputError(f"net_price must be >= 0, got {price}", field="net_price")
    return price


def _parse_item_type(value: ItemType | str) -> ItemType:
    try:
        return ItemType(value)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown item type: {value!r}", field="item_type") from exc


class ItemService(BaseService[Item]):
    """Item directory plus the inventory toggle."""

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session)
        self._actor_id = actor_id
        self._audit = AuditRecorder.for_session(session, audit_sink)
        self._stock = StockService(session)

    def _get_live(self, item_id: UUID) -> Item:
        item = self.session.get(Item, item_id)
        if item is None or item.is_deleted:
            raise ItemNotFoundError(str(item_id))
        return item

    def get(self, item_id: UUID) -> ItemInfo:
        return ItemInfo.from_model(self._get_live(item_id))

    def find_by_id(self, item_id: UUID) -> ItemInfo | None:
        item = self.session.get(Item, item_id)
        if item is None or item.is_deleted:
            return None
        return ItemInfo.from_model(item)

    def list_items(
        self,
        item_type: ItemType | str | None = None,
        inventoried_only: bool = False,
    ) -> list[ItemInfo]:
        stmt = select(Item).where(Item.is_deleted == False)  # noqa: E712
        if item_type is not None:
            stmt = stmt.where(Item.item_type == _parse_item_type(item_type).value)
        if inventoried_only:
            stmt = stmt.where(Item.is_inventoried == True)  # noqa: E712
        stmt = stmt.order_by(Item.name)
        return [ItemInfo.from_model(i) for i in self.session.execute(stmt).scalars()]

    def create(
        self,
        name: str,
        net_price: Decimal | int,
        item_type: ItemType | str = ItemType.PRODUCT,
        description: str | None = None,
        dimensions: str | None = None,
        is_inventoried: bool = False,
        initial_stock: Decimal | int | None = None,
    ) -> ItemInfo:
        """
        Create an item.

        ``initial_stock`` is only accepted together with ``is_inventoried``.
        """
        parsed_type = _parse_item_type(item_type)
        stock = None
        if initial_stock is not None:
            if not is_inventoried:
                raise InvalidInputError(
                    "initial_stock requires is_inventoried", field="initial_stock"
                )
            try:
                stock = to_decimal(initial_stock, "initial_stock")
            except ValueError as exc:
                raise InvalidInputError(str(exc), field="initial_stock") from exc
            if stock < 0:
                raise InvalidInputError(
                    f"initial_stock must be >= 0, got {stock}", field="initial_stock"
                )

        item = Item(
            name=_clean_name(name),
            net_price=_clean_price(net_price),
            item_type=parsed_type.value,
            description=(description or "").strip() or None,
            dimensions=(dimensions or "").strip() or None,
            is_inventoried=is_inventoried,
            stock=stock,
            created_by_id=self._actor_id,
        )
        self.session.add(item)
        self.session.flush()

        self._audit.record(
            AuditOperation.CREATE,
            SubjectKind.ITEM,
            item.id,
            self._actor_id,
            {
                "name": item.name,
                "item_type": item.item_type,
                "net_price": item.net_price,
                "is_inventoried": item.is_inventoried,
                "stock": item.stock,
            },
        )
        logger.info(
            "item_created",
            extra={"item_id": str(item.id), "item_type": item.item_type},
        )
        return ItemInfo.from_model(item)

    def update(
        self,
        item_id: UUID,
        name: str | None = None,
        net_price: Decimal | int | None = None,
        description: str | None = None,
        dimensions: str | None = None,
    ) -> ItemInfo:
        """Update descriptive fields.  Stock and tracking are not editable here."""
        item = self._get_live(item_id)
        before = {"name": item.name, "net_price": item.net_price}

        if name is not None:
            item.name = _clean_name(name)
        if net_price is not None:
            item.net_price = _clean_price(net_price)
        if description is not None:
            item.description = description.strip() or None
        if dimensions is not None:
            item.dimensions = dimensions.strip() or None
        item.updated_by_id = self._actor_id
        self.session.flush()

        self._audit.record(
            AuditOperation.UPDATE,
            SubjectKind.ITEM,
            item.id,
            self._actor_id,
            {"before": before, "after": {"name": item.name, "net_price": item.net_price}},
        )
        logger.info("item_updated", extra={"item_id": str(item.id)})
        return ItemInfo.from_model(item)

    def delete(self, item_id: UUID) -> None:
        """Soft delete.  Existing transaction lines keep their reference."""
        item = self._get_live(item_id)
        item.is_deleted = True
        item.updated_by_id = self._actor_id
        self.session.flush()
        self._audit.record(
            AuditOperation.DELETE,
            SubjectKind.ITEM,
            item.id,
            self._actor_id,
            {"name": item.name, "item_type": item.item_type},
        )
        logger.info("item_deleted", extra={"item_id": str(item.id)})

    def toggle_inventory(
        self,
        item_id: UUID,
        is_inventoried: bool,
        initial_stock: Decimal | int | None = None,
    ) -> ItemInfo:
        before = self._get_live(item_id)
        previous = {"is_inventoried": before.is_inventoried, "stock": before.stock}
        info = self._stock.toggle_inventory(item_id, is_inventoried, initial_stock)
        self._audit.record(
            AuditOperation.UPDATE,
            SubjectKind.ITEM,
            info.id,
            self._actor_id,
            {
                "action": "inventory_toggled",
                "before": previous,
                "after": {"is_inventoried": info.is_inventoried, "stock": info.stock},
            },
        )
        return info
