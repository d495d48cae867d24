"""
Tests for TransactionSelector listing, pagination and aggregates.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import DUAL_TAX_ID, line
from commerce_kernel.exceptions import ContactNotFoundError, InvalidInputError
from commerce_kernel.selectors.transaction_selector import (
    TransactionFilter,
    TransactionSelector,
)


@pytest.fixture
def five_quotations(customer, create_contact, create_item, quotation_service):
    other = create_contact(DUAL_TAX_ID, "Zeta Comercial")
    item = create_item("Widget", 100)
    created = []
    for day, (counterparty, price) in enumerate(
        [(customer, 100), (other, 500), (customer, 300), (other, 200), (customer, 400)],
        start=1,
    ):
        created.append(
            quotation_service.create(
                counterparty.id,
                "factura",
                [line(item, 1, price)],
                document_date=date(2024, 1, day),
            )
        )
    return created, other


class TestList:

    def test_default_sort_is_newest_first(self, five_quotations, quotation_service):
        created, _ = five_quotations
        page = quotation_service.list()
        assert [t.correlative for t in page.items] == [5, 4, 3, 2, 1]
        assert page.total == 5
        assert page.pages == 1
        assert not page.has_next and not page.has_prev

    def test_pagination(self, five_quotations, quotation_service):
        page = quotation_service.list(page=2, limit=2, sort="correlative", order="asc")
        assert [t.correlative for t in page.items] == [3, 4]
        assert (page.total, page.pages, page.page, page.limit) == (5, 3, 2, 2)
        assert page.has_next and page.has_prev

    def test_page_past_end_is_empty(self, five_quotations, quotation_service):
        page = quotation_service.list(page=9, limit=2)
        assert page.items == ()
        assert not page.has_next

    def test_limit_is_clamped(self, five_quotations, quotation_service):
        assert quotation_service.list(limit=10_000).limit == 100

    def test_sort_by_total(self, five_quotations, quotation_service):
        page = quotation_service.list(sort="total_amount", order="asc")
        totals = [t.total_amount for t in page.items]
        assert totals == sorted(totals)

    def test_sort_by_counterparty(self, five_quotations, quotation_service):
        _, other = five_quotations
        page = quotation_service.list(sort="counterparty", order="desc")
        assert [t.counterparty_id for t in page.items[:2]] == [other.id, other.id]

    def test_filter_by_counterparty(self, five_quotations, quotation_service):
        _, other = five_quotations
        page = quotation_service.list(TransactionFilter(counterparty_id=other.id))
        assert page.total == 2

    def test_filter_by_date_range(self, five_quotations, quotation_service):
        page = quotation_service.list(
            TransactionFilter(start_date=date(2024, 1, 2), end_date=date(2024, 1, 4))
        )
        assert sorted(t.correlative for t in page.items) == [2, 3, 4]

    def test_filter_by_amount(self, five_quotations, quotation_service):
        # totals: 119, 595, 357, 238, 476
        page = quotation_service.list(
            TransactionFilter(min_amount=Decimal("238"), max_amount=Decimal("476"))
        )
        assert sorted(t.total_amount for t in page.items) == [
            Decimal("238"),
            Decimal("357"),
            Decimal("476"),
        ]

    def test_filter_by_status(self, five_quotations, quotation_service):
        created, _ = five_quotations
        quotation_service.change_status(created[0].id, "approved")
        page = quotation_service.list(TransactionFilter(status="approved"))
        assert [t.id for t in page.items] == [created[0].id]

    def test_kinds_do_not_mix(self, five_quotations, sale_service):
        assert sale_service.list().total == 0


class TestListValidation:

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sort": "color"},
            {"order": "sideways"},
            {"page": 0},
            {"limit": 0},
        ],
    )
    def test_bad_arguments(self, quotation_service, kwargs):
        with pytest.raises(InvalidInputError):
            quotation_service.list(**kwargs)

    def test_inverted_range(self, quotation_service):
        with pytest.raises(InvalidInputError):
            quotation_service.list(
                TransactionFilter(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))
            )


class TestCounterpartyMetrics:

    def test_sales_metrics(self, session, customer, create_item, sale_service):
        item = create_item("Widget", 100)
        sale_service.create(
            customer.id, "factura", [line(item, 1, 100)], document_date=date(2024, 1, 5)
        )
        sale_service.create(
            customer.id, "factura", [line(item, 1, 300)], document_date=date(2024, 1, 2)
        )
        dropped = sale_service.create(
            customer.id, "factura", [line(item, 1, 900)], document_date=date(2024, 1, 1)
        )
        sale_service.delete(dropped.id)

        metrics = TransactionSelector(session).counterparty_metrics(customer.id, "sale")
        assert metrics.transaction_count == 2
        assert metrics.total_amount == Decimal("476")
        assert metrics.average_ticket == Decimal("238")
        assert (metrics.min_amount, metrics.max_amount) == (Decimal("119"), Decimal("357"))
        assert (metrics.first_date, metrics.last_date) == (date(2024, 1, 2), date(2024, 1, 5))

    def test_average_ticket_rounds_half_up(self, session, customer, create_item, quotation_service):
        item = create_item("Widget", 100)
        for price in (100, 101):
            quotation_service.create(customer.id, "tax_exclusive", [line(item, 1, price)], tax_rate=0)
        metrics = TransactionSelector(session).counterparty_metrics(customer.id, "quotation")
        assert metrics.total_amount == Decimal("201")
        assert metrics.average_ticket == Decimal("101")

    def test_no_transactions(self, session, customer):
        metrics = TransactionSelector(session).counterparty_metrics(customer.id, "purchase")
        assert metrics.transaction_count == 0
        assert metrics.total_amount == Decimal("0")
        assert metrics.average_ticket == Decimal("0")
        assert metrics.first_date is None and metrics.last_date is None

    def test_unknown_contact(self, session):
        with pytest.raises(ContactNotFoundError):
            TransactionSelector(session).counterparty_metrics(uuid4(), "sale")


class TestExpensesByCategory:

    @pytest.fixture
    def march_purchases(self, supplier, create_item, purchase_service):
        panel = create_item("Panel", 1000)
        screws = create_item("Screws", 10, item_type="consumable")

        def buy(day, *lines):
            return purchase_service.create(
                supplier.id, "factura", list(lines), document_date=day
            )

        buy(date(2024, 3, 1), line(panel, 2, 1000), line(screws, 10, 10))
        buy(date(2024, 3, 10), line(screws, 5, 10))
        buy(date(2024, 4, 1), line(panel, 1, 1000))
        rejected = buy(date(2024, 3, 5), line(panel, 1, 1000))
        purchase_service.change_status(rejected.id, "rejected")

    def test_breakdown(self, session, march_purchases):
        summary = TransactionSelector(session).expenses_by_category(
            date(2024, 3, 1), date(2024, 3, 31)
        )
        assert summary.purchase_count == 2
        assert summary.total_amount == Decimal("2559")
        assert [(c.category, c.purchase_count, c.net_amount) for c in summary.categories] == [
            ("consumable", 2, Decimal("150")),
            ("product", 1, Decimal("2000")),
        ]

    def test_category_filter_limits_purchases(self, session, march_purchases):
        summary = TransactionSelector(session).expenses_by_category(
            date(2024, 3, 1), date(2024, 3, 31), categories=["product"]
        )
        assert summary.purchase_count == 1
        assert summary.total_amount == Decimal("2499")
        assert [c.category for c in summary.categories] == ["product"]

    def test_empty_range(self, session, march_purchases):
        summary = TransactionSelector(session).expenses_by_category(
            date(2023, 1, 1), date(2023, 12, 31)
        )
        assert summary.purchase_count == 0
        assert summary.total_amount == Decimal("0")
        assert summary.categories == ()

    @pytest.mark.parametrize(
        "start,end,categories",
        [
            (None, date(2024, 3, 31), None),
            (date(2024, 4, 1), date(2024, 3, 1), None),
            (date(2024, 3, 1), date(2024, 3, 31), ["furniture"]),
        ],
    )
    def test_invalid_arguments(self, session, start, end, categories):
        with pytest.raises(InvalidInputError):
            TransactionSelector(session).expenses_by_category(start, end, categories)
