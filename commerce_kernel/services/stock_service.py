"""
StockService -- the only writer of ``Item.stock``.

Responsibility:
    Row-locked read-modify-write of item stock, applied as a side effect of
    transaction create/update/delete/convert and of purchase rejection.
    The explicit inventory toggle is the single admin path that sets stock
    directly.

Architecture position:
    Kernel > Services.  Flush-only; the caller's unit commits or rolls back
    every adjustment together with the transaction write.

Invariants enforced:
    - Tracked stock never goes negative.  An overdraw raises
      InsufficientStockError and nothing is clamped.
    - Untracked items (is_inventoried = False) are never touched.
    - Rows are locked in ascending id order so two units adjusting the
      same items cannot deadlock.

Failure modes:
    - ItemNotFoundError: item missing or soft-deleted.
    - InsufficientStockError: the delta would leave stock below zero.
    - InvalidInputError: negative initial stock on toggle.
"""

from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from commerce_kernel.db.types import to_decimal
from commerce_kernel.domain.dtos import ItemInfo
from commerce_kernel.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    ItemNotFoundError,
)
from commerce_kernel.logging_config import get_logger
from commerce_kernel.models.item import Item
from commerce_kernel.services.base import BaseService

logger = get_logger("services.stock")

_ZERO = Decimal("0")


class StockService(BaseService[Item]):
    """Stock adjustments under row locks."""

    def _lock_item(self, item_id: UUID) -> Item | None:
        return self.session.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _adjust_locked(self, item: Item, delta: Decimal) -> ItemInfo:
        if not item.is_inventoried or delta == _ZERO:
            return ItemInfo.from_model(item)

        current = item.stock if item.stock is not None else _ZERO
        new_stock = current + delta
        if new_stock < _ZERO:
            logger.warning(
                "stock_insufficient",
                extra={
                    "item_id": str(item.id),
                    "available": str(current),
                    "requested": str(-delta),
                },
            )
            raise InsufficientStockError(str(item.id), item.name, current, -delta)

        item.stock = new_stock
        self.session.flush()
        logger.debug(
            "stock_adjusted",
            extra={
                "item_id": str(item.id),
                "delta": str(delta),
                "stock": str(new_stock),
            },
        )
        return ItemInfo.from_model(item)

    def adjust_stock(self, item_id: UUID, delta: Decimal | int) -> ItemInfo:
        """
        Apply ``delta`` to one item's stock.

        Returns the item unchanged when it is not inventoried.  A null
        stock counts as zero.

        Raises:
            ItemNotFoundError: Missing or soft-deleted item.
            InsufficientStockError: Result would be negative.
        """
        item = self._lock_item(item_id)
        if item is None or item.is_deleted:
            raise ItemNotFoundError(str(item_id))
        return self._adjust_locked(item, to_decimal(delta, "delta"))

    def apply_deltas(
        self,
        deltas: Mapping[UUID, Decimal],
        skip_deleted: bool = False,
    ) -> dict[UUID, ItemInfo]:
        """
        Apply several per-item deltas in one unit.

        Zero deltas are dropped.  Rows are locked in sorted id order.  With
        ``skip_deleted`` a missing or deleted item is ignored instead of
        raising; reversal paths use this so that restoring stock into an
        item that no longer exists does not block a deletion.
        """
        results: dict[UUID, ItemInfo] = {}
        for item_id in sorted(deltas, key=str):
            delta = deltas[item_id]
            if delta == _ZERO:
                continue
            item = self._lock_item(item_id)
            if item is None or item.is_deleted:
                if skip_deleted:
                    logger.info(
                        "stock_adjustment_skipped",
                        extra={"item_id": str(item_id), "delta": str(delta)},
                    )
                    continue
                raise ItemNotFoundError(str(item_id))
            results[item_id] = self._adjust_locked(item, delta)
        return results

    def toggle_inventory(
        self,
        item_id: UUID,
        is_inventoried: bool,
        initial_stock: Decimal | int | None = None,
    ) -> ItemInfo:
        """
        Switch stock tracking on or off.

        Turning tracking on with ``initial_stock`` sets the stock to that
        value.  Turning it off keeps the last count for reference.
        """
        item = self._lock_item(item_id)
        if item is None or item.is_deleted:
            raise ItemNotFoundError(str(item_id))

        item.is_inventoried = is_inventoried
        if is_inventoried and initial_stock is not None:
            try:
                stock = to_decimal(initial_stock, "initial_stock")
            except ValueError as exc:
                raise InvalidInputError(str(exc), field="initial_stock") from exc
            if stock < _ZERO:
                raise InvalidInputError(
                    f"Initial stock must be >= 0, got {stock}",
                    field="initial_stock",
                )
            item.stock = stock

        self.session.flush()
        logger.info(
            "inventory_toggled",
            extra={
                "item_id": str(item.id),
                "is_inventoried": is_inventoried,
                "stock": str(item.stock) if item.stock is not None else None,
            },
        )
        return ItemInfo.from_model(item)
