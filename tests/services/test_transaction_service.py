"""
Tests for TransactionService (quotations, sales, purchases).

Covers:
- Creation: amounts, correlatives, document numbers, counterparty roles
- Stock effects of create, update, delete and purchase rejection
- Status changes along each workflow
- Rollback on failure (no correlative, stock or row survives)
- Preview and peek
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import line
from commerce_kernel.domain.values import AuditOperation, SubjectKind
from commerce_kernel.exceptions import (
    ContactNotFoundError,
    CounterpartyRoleError,
    EmptyLinesError,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidInputError,
    InvalidStateError,
    InvalidTaxRateError,
    ItemNotFoundError,
    TransactionNotFoundError,
)
from commerce_kernel.models.transaction import Transaction


def _stock(item_service, item):
    return item_service.get(item.id).stock


class TestCreate:

    def test_quotation_amounts_and_number(self, customer, create_item, quotation_service):
        a = create_item("A", 1000)
        b = create_item("B", 500)
        info = quotation_service.create(
            counterparty_id=customer.id,
            document_type="factura",
            lines=[line(a, 3, 1000), line(b, 1, 500)],
        )
        assert info.kind == "quotation"
        assert info.status == "pending"
        assert info.correlative == 1
        assert info.document_number == "COT-0001"
        assert info.net_amount == Decimal("3500")
        assert info.tax_amount == Decimal("665")
        assert info.total_amount == Decimal("4165")
        assert [l.position for l in info.lines] == [1, 2]

    def test_inclusive_document_stores_net_lines(self, customer, create_item, sale_service):
        a = create_item("A", 1000)
        info = sale_service.create(customer.id, "boleta", [line(a, 1, 1190)])
        assert info.document_type == "tax_inclusive"
        assert info.lines[0].unit_price == Decimal("1000")
        assert info.total_amount == Decimal("1190")

    def test_correlative_shared_across_kinds(
        self, customer, supplier, create_item, quotation_service, sale_service, purchase_service
    ):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        s = sale_service.create(customer.id, "factura", [line(a, 1, 100)])
        p = purchase_service.create(supplier.id, "factura", [line(a, 1, 100)])
        assert (q.correlative, s.correlative, p.correlative) == (1, 2, 3)
        assert (q.document_number, s.document_number, p.document_number) == (
            "COT-0001",
            "VEN-0002",
            "COM-0003",
        )

    def test_date_defaults_to_clock(self, customer, create_item, quotation_service, deterministic_clock):
        a = create_item("A", 100)
        info = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        assert info.document_date == deterministic_clock.today()

    def test_explicit_date_and_observations(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        info = quotation_service.create(
            customer.id,
            "factura",
            [line(a, 1, 100)],
            document_date=date(2024, 3, 15),
            observations="  despacho en bodega ",
        )
        assert info.document_date == date(2024, 3, 15)
        assert info.observations == "despacho en bodega"

    def test_custom_tax_rate(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        info = quotation_service.create(
            customer.id, "factura", [line(a, 1, 1000)], tax_rate=Decimal("0.10")
        )
        assert info.tax_amount == Decimal("100")

    def test_sale_may_start_invoiced(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        info = sale_service.create(customer.id, "factura", [line(a, 1, 100)], status="invoiced")
        assert info.status == "invoiced"

    def test_sale_cannot_start_paid(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        with pytest.raises(InvalidInputError):
            sale_service.create(customer.id, "factura", [line(a, 1, 100)], status="paid")

    def test_audit_entry_after_commit(self, customer, create_item, quotation_service, audit_sink):
        a = create_item("A", 100)
        info = quotation_service.create(customer.id, "factura", [line(a, 2, 100)])
        (entry,) = audit_sink.for_subject(info.id)
        assert entry.operation is AuditOperation.CREATE
        assert entry.subject_kind is SubjectKind.QUOTATION
        assert entry.details["document_number"] == "COT-0001"
        assert entry.details["items_count"] == 1
        assert entry.details["is_from_quotation"] is False

    def test_logs_started_and_completed(self, customer, create_item, quotation_service, captured_logs):
        a = create_item("A", 100)
        quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        logs = captured_logs()
        messages = [r["message"] for r in logs]
        assert "quotation_create_started" in messages
        completed = next(r for r in logs if r["message"] == "quotation_create_completed")
        assert completed["document_number"] == "COT-0001"
        assert "duration_ms" in completed
        assert completed["kind"] == "quotation"
        assert "correlation_id" in completed


class TestCreateValidation:

    def test_counterparty_must_be_customer(self, supplier, create_item, sale_service):
        a = create_item("A", 100)
        with pytest.raises(CounterpartyRoleError):
            sale_service.create(supplier.id, "factura", [line(a, 1, 100)])

    def test_counterparty_must_be_supplier(self, customer, create_item, purchase_service):
        a = create_item("A", 100)
        with pytest.raises(CounterpartyRoleError):
            purchase_service.create(customer.id, "factura", [line(a, 1, 100)])

    def test_unknown_counterparty(self, create_item, quotation_service):
        a = create_item("A", 100)
        with pytest.raises(ContactNotFoundError):
            quotation_service.create(uuid4(), "factura", [line(a, 1, 100)])

    def test_bad_counterparty_id(self, create_item, quotation_service):
        a = create_item("A", 100)
        with pytest.raises(InvalidInputError) as exc_info:
            quotation_service.create("nope", "factura", [line(a, 1, 100)])
        assert exc_info.value.field == "counterparty_id"

    def test_empty_lines(self, customer, quotation_service):
        with pytest.raises(EmptyLinesError):
            quotation_service.create(customer.id, "factura", [])

    def test_deleted_item(self, session, customer, create_item, item_service, quotation_service):
        a = create_item("A", 100)
        item_service.delete(a.id)
        session.commit()
        with pytest.raises(ItemNotFoundError):
            quotation_service.create(customer.id, "factura", [line(a, 1, 100)])

    def test_bad_tax_rate(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        with pytest.raises(InvalidTaxRateError):
            quotation_service.create(customer.id, "factura", [line(a, 1, 100)], tax_rate=1)

    def test_observations_too_long(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        with pytest.raises(InvalidInputError):
            quotation_service.create(
                customer.id, "factura", [line(a, 1, 100)], observations="x" * 501
            )

    def test_failure_consumes_no_correlative(
        self, customer, create_item, sale_service, quotation_service
    ):
        a = create_item("A", 100, stock=1)
        with pytest.raises(InsufficientStockError):
            sale_service.create(customer.id, "factura", [line(a, 2, 100)])
        info = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        assert info.correlative == 1

    def test_failure_logs_failed(self, customer, create_item, sale_service, captured_logs):
        a = create_item("A", 100, stock=1)
        with pytest.raises(InsufficientStockError):
            sale_service.create(customer.id, "factura", [line(a, 2, 100)])
        failed = [r for r in captured_logs() if r["message"] == "sale_create_failed"]
        assert failed
        assert failed[0]["exc_code"] == "INSUFFICIENT_STOCK"


class TestStockEffects:

    def test_sale_decrements(self, customer, create_item, item_service, sale_service):
        a = create_item("A", 100, stock=10)
        sale_service.create(customer.id, "factura", [line(a, 3, 100), line(a, 2, 100)])
        assert _stock(item_service, a) == Decimal("5")

    def test_purchase_increments(self, supplier, create_item, item_service, purchase_service):
        a = create_item("A", 100, stock=1)
        purchase_service.create(supplier.id, "factura", [line(a, 4, 100)])
        assert _stock(item_service, a) == Decimal("5")

    def test_quotation_leaves_stock(self, customer, create_item, item_service, quotation_service):
        a = create_item("A", 100, stock=1)
        quotation_service.create(customer.id, "factura", [line(a, 50, 100)])
        assert _stock(item_service, a) == Decimal("1")

    def test_untracked_item_never_blocks(self, customer, create_item, item_service, sale_service):
        a = create_item("A", 100)
        sale_service.create(customer.id, "factura", [line(a, 1000, 100)])
        assert _stock(item_service, a) is None

    def test_insufficient_stock_rolls_back_everything(
        self, session, customer, create_item, item_service, sale_service, audit_sink
    ):
        a = create_item("A", 100, stock=10)
        b = create_item("B", 100, stock=1)
        with pytest.raises(InsufficientStockError):
            sale_service.create(customer.id, "factura", [line(a, 5, 100), line(b, 2, 100)])
        assert _stock(item_service, a) == Decimal("10")
        assert _stock(item_service, b) == Decimal("1")
        assert session.execute(select(func.count(Transaction.id))).scalar() == 0
        assert not any(e.subject_kind is SubjectKind.SALE for e in audit_sink.entries)

    def test_sale_update_moves_net_difference(
        self, customer, create_item, item_service, sale_service
    ):
        a = create_item("A", 100, stock=10)
        b = create_item("B", 100, stock=10)
        sale = sale_service.create(customer.id, "factura", [line(a, 3, 100)])
        sale_service.update(sale.id, lines=[line(a, 1, 100), line(b, 4, 100)])
        assert _stock(item_service, a) == Decimal("9")
        assert _stock(item_service, b) == Decimal("6")

    def test_sale_update_beyond_stock_fails(self, customer, create_item, item_service, sale_service):
        a = create_item("A", 100, stock=5)
        sale = sale_service.create(customer.id, "factura", [line(a, 3, 100)])
        with pytest.raises(InsufficientStockError):
            sale_service.update(sale.id, lines=[line(a, 6, 100)])
        assert _stock(item_service, a) == Decimal("2")
        assert len(sale_service.get(sale.id).transaction.lines) == 1

    def test_sale_delete_restores(self, customer, create_item, item_service, sale_service):
        a = create_item("A", 100, stock=5)
        sale = sale_service.create(customer.id, "factura", [line(a, 5, 100)])
        assert _stock(item_service, a) == Decimal("0")
        deleted = sale_service.delete(sale.id)
        assert deleted.is_deleted
        assert _stock(item_service, a) == Decimal("5")

    def test_purchase_rejection_takes_stock_back(
        self, supplier, create_item, item_service, purchase_service
    ):
        a = create_item("A", 100, stock=0)
        purchase = purchase_service.create(supplier.id, "factura", [line(a, 4, 100)])
        purchase_service.change_status(purchase.id, "rejected")
        assert _stock(item_service, a) == Decimal("0")

    def test_purchase_rejection_fails_when_stock_was_sold(
        self, customer, supplier, create_item, item_service, purchase_service, sale_service
    ):
        a = create_item("A", 100, stock=0)
        purchase = purchase_service.create(supplier.id, "factura", [line(a, 4, 100)])
        sale_service.create(customer.id, "factura", [line(a, 3, 100)])
        with pytest.raises(InsufficientStockError):
            purchase_service.change_status(purchase.id, "rejected")
        assert purchase_service.get(purchase.id).transaction.status == "pending"

    def test_purchase_receive_leaves_stock(
        self, supplier, create_item, item_service, purchase_service
    ):
        a = create_item("A", 100, stock=0)
        purchase = purchase_service.create(supplier.id, "factura", [line(a, 4, 100)])
        purchase_service.change_status(purchase.id, "received")
        assert _stock(item_service, a) == Decimal("4")

    def test_delete_with_deleted_item_still_succeeds(
        self, session, customer, create_item, item_service, sale_service
    ):
        a = create_item("A", 100, stock=5)
        sale = sale_service.create(customer.id, "factura", [line(a, 2, 100)])
        item_service.delete(a.id)
        session.commit()
        assert sale_service.delete(sale.id).is_deleted


class TestUpdate:

    def test_replace_lines_recomputes(self, customer, create_item, quotation_service, audit_sink):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 1000)])
        updated = quotation_service.update(q.id, lines=[line(a, 2, 1000), line(a, 1, 500)])
        assert updated.net_amount == Decimal("2500")
        assert updated.total_amount == Decimal("2975")
        assert [l.position for l in updated.lines] == [1, 2]
        assert updated.document_number == q.document_number
        entry = audit_sink.for_subject(q.id)[-1]
        assert entry.operation is AuditOperation.UPDATE
        assert entry.details["previous_values"]["total_amount"] == Decimal("1190")

    def test_change_document_type_with_lines(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 1190)])
        updated = quotation_service.update(q.id, document_type="boleta", lines=[line(a, 1, 1190)])
        assert updated.document_type == "tax_inclusive"
        assert updated.total_amount == Decimal("1190")

    def test_document_type_without_lines(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        with pytest.raises(InvalidInputError) as exc_info:
            quotation_service.update(q.id, document_type="boleta")
        assert exc_info.value.field == "lines"

    def test_nothing_to_update(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        with pytest.raises(InvalidInputError):
            quotation_service.update(q.id)

    def test_counterparty_and_observations(
        self, customer, create_contact, create_item, quotation_service
    ):
        from conftest import DUAL_TAX_ID

        other = create_contact(DUAL_TAX_ID, "Otro")
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        updated = quotation_service.update(q.id, counterparty_id=other.id, observations="nota")
        assert updated.counterparty_id == other.id
        assert updated.observations == "nota"
        assert updated.total_amount == q.total_amount

    def test_not_editable(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        quotation_service.change_status(q.id, "approved")
        with pytest.raises(InvalidStateError):
            quotation_service.update(q.id, observations="late")

    def test_invoiced_sale_is_editable(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        s = sale_service.create(customer.id, "factura", [line(a, 1, 100)], status="invoiced")
        assert sale_service.update(s.id, observations="ok").observations == "ok"

    def test_wrong_kind_is_not_found(self, customer, create_item, quotation_service, sale_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        with pytest.raises(TransactionNotFoundError):
            sale_service.update(q.id, observations="x")


class TestDelete:

    def test_soft_delete_hides_from_get_and_list(self, customer, create_item, quotation_service):
        from commerce_kernel.selectors.transaction_selector import TransactionFilter

        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        quotation_service.delete(q.id)
        with pytest.raises(TransactionNotFoundError):
            quotation_service.get(q.id)
        assert quotation_service.list().total == 0
        assert quotation_service.list(TransactionFilter(include_deleted=True)).total == 1

    def test_delete_twice(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        quotation_service.delete(q.id)
        with pytest.raises(TransactionNotFoundError):
            quotation_service.delete(q.id)

    def test_not_deletable(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        s = sale_service.create(customer.id, "factura", [line(a, 1, 100)], status="invoiced")
        with pytest.raises(InvalidStateError) as exc_info:
            sale_service.delete(s.id)
        assert exc_info.value.operation == "delete"

    def test_deleted_correlative_is_not_reused(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        first = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        quotation_service.delete(first.id)
        second = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        assert second.correlative == first.correlative + 1


class TestChangeStatus:

    def test_quotation_path(self, customer, create_item, quotation_service, audit_sink):
        a = create_item("A", 100)
        q = quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        assert quotation_service.change_status(q.id, "rejected").status == "rejected"
        assert quotation_service.change_status(q.id, "pending").status == "pending"
        assert quotation_service.change_status(q.id, "approved").status == "approved"
        entry = audit_sink.for_subject(q.id)[-1]
        assert entry.details["operation_type"] == "STATUS_CHANGE"
        assert entry.details["status_transition"] == {"from": "pending", "to": "approved"}

    def test_sale_path(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        s = sale_service.create(customer.id, "factura", [line(a, 1, 100)])
        sale_service.change_status(s.id, "invoiced")
        assert sale_service.change_status(s.id, "paid").status == "paid"

    def test_illegal(self, customer, create_item, sale_service):
        a = create_item("A", 100)
        s = sale_service.create(customer.id, "factura", [line(a, 1, 100)])
        with pytest.raises(IllegalTransitionError):
            sale_service.change_status(s.id, "paid")
        assert sale_service.get(s.id).transaction.status == "pending"

    def test_unknown_transaction(self, sale_service):
        with pytest.raises(TransactionNotFoundError):
            sale_service.change_status(uuid4(), "invoiced")


class TestPreviewAndPeek:

    def test_preview_matches_create(self, customer, create_item, quotation_service):
        a = create_item("A", 100)
        lines = [line(a, 3, 999, 10)]
        preview = quotation_service.preview(lines, "boleta")
        created = quotation_service.create(customer.id, "boleta", lines)
        assert preview.total_amount == created.total_amount
        assert preview.net_amount == created.net_amount

    def test_preview_writes_nothing(self, session, create_item, quotation_service):
        a = create_item("A", 100)
        quotation_service.preview([line(a, 1, 100)], "factura")
        assert session.execute(select(func.count(Transaction.id))).scalar() == 0

    def test_peek(self, customer, create_item, quotation_service, sale_service):
        a = create_item("A", 100)
        assert sale_service.peek_next_document_number() == "VEN-0001"
        quotation_service.create(customer.id, "factura", [line(a, 1, 100)])
        assert sale_service.peek_next_document_number() == "VEN-0002"
        assert quotation_service.peek_next_document_number() == "COT-0002"


class TestAutoCommitOff:

    def test_caller_owns_commit(
        self, session, customer, create_item, test_actor_id, audit_sink
    ):
        from commerce_kernel.services.transaction_service import QuotationService

        a = create_item("A", 100)
        service = QuotationService(
            session, test_actor_id, audit_sink=audit_sink, auto_commit=False
        )
        info = service.create(customer.id, "factura", [line(a, 1, 100)])
        assert audit_sink.for_subject(info.id) == []
        session.rollback()
        assert session.execute(select(func.count(Transaction.id))).scalar() == 0
        assert audit_sink.for_subject(info.id) == []
