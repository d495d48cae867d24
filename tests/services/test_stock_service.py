"""Tests for StockService adjustments."""

from decimal import Decimal
from uuid import uuid4

import pytest

from commerce_kernel.exceptions import InsufficientStockError, ItemNotFoundError
from commerce_kernel.services.stock_service import StockService


@pytest.fixture
def stock_service(session):
    return StockService(session)


class TestAdjust:

    def test_decrement(self, session, create_item, stock_service):
        item = create_item(stock=5)
        info = stock_service.adjust_stock(item.id, -3)
        session.commit()
        assert info.stock == Decimal("2")

    def test_drain_to_zero(self, create_item, stock_service):
        item = create_item(stock=5)
        assert stock_service.adjust_stock(item.id, -5).stock == Decimal("0")

    def test_overdraw_raises_and_does_not_clamp(self, session, create_item, stock_service):
        item = create_item(stock=5)
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.adjust_stock(item.id, -6)
        assert exc_info.value.available == "5"
        assert exc_info.value.requested == "6"
        session.rollback()
        assert stock_service.adjust_stock(item.id, 0).stock == Decimal("5")

    def test_untracked_item_untouched(self, create_item, stock_service):
        item = create_item()
        info = stock_service.adjust_stock(item.id, -100)
        assert info.stock is None

    def test_missing_item(self, stock_service):
        with pytest.raises(ItemNotFoundError):
            stock_service.adjust_stock(uuid4(), 1)


class TestApplyDeltas:

    def test_multiple_items(self, create_item, stock_service):
        a = create_item("A", stock=5)
        b = create_item("B", stock=1)
        results = stock_service.apply_deltas({a.id: Decimal("-2"), b.id: Decimal("4")})
        assert results[a.id].stock == Decimal("3")
        assert results[b.id].stock == Decimal("5")

    def test_zero_delta_skipped(self, create_item, stock_service):
        a = create_item("A", stock=5)
        assert stock_service.apply_deltas({a.id: Decimal("0")}) == {}

    def test_deleted_item_strict(self, session, create_item, item_service, stock_service):
        a = create_item("A", stock=5)
        item_service.delete(a.id)
        session.commit()
        with pytest.raises(ItemNotFoundError):
            stock_service.apply_deltas({a.id: Decimal("1")})

    def test_deleted_item_skipped_on_reversal(
        self, session, create_item, item_service, stock_service, captured_logs
    ):
        a = create_item("A", stock=5)
        item_service.delete(a.id)
        session.commit()
        assert stock_service.apply_deltas({a.id: Decimal("1")}, skip_deleted=True) == {}
        assert any(r["message"] == "stock_adjustment_skipped" for r in captured_logs())
