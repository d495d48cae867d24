"""
TransactionService -- quotations, sales and purchases as atomic units.

Responsibility:
    Create, update, soft-delete and move through their workflows the three
    transaction kinds, keeping amounts, correlatives, stock and audit
    consistent.  ``SaleService.convert_from_quotation`` turns an approved
    quotation into a sale.

Architecture position:
    Kernel > Services.  This is the outermost kernel service: it owns the
    unit of work (``auto_commit=True``) and composes the flush-only
    CorrelativeAllocator, StockService and ContactService on one session.

Invariants enforced:
    - Each mutating call is one atomic unit.  On any error the session is
      rolled back, so no correlative, stock movement or row survives.
    - Amounts are always produced by ``calculate_amounts``; callers never
      supply them.
    - Status changes follow the kind's workflow table.
    - Stock moves by ``stock_direction * quantity`` on create and convert,
      by the net difference on update, and back on delete and purchase
      rejection.  Quotations never move stock.
    - Audit entries are delivered only after commit.

Failure modes:
    - InvalidInputError (and subclasses): bad lines, document type, tax
      rate, status or ids.  Raised before any write.
    - NotFoundError: transaction, counterparty or item missing or deleted.
    - InvalidStateError / IllegalTransitionError: operation not allowed in
      the current status.
    - InsufficientStockError: a tracked item would go negative.
    - DuplicateDocumentNumberError: unique correlative or number collision.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commerce_kernel.domain.calculator import (
    DEFAULT_TAX_RATE,
    AmountBreakdown,
    calculate_amounts,
)
from commerce_kernel.domain.clock import Clock, SystemClock
from commerce_kernel.domain.dtos import TransactionDetail, TransactionInfo
from commerce_kernel.domain.values import (
    AuditOperation,
    DocumentType,
    LineInput,
    SubjectKind,
    TransactionKind,
    TransactionStatus,
)
from commerce_kernel.domain.workflow import (
    ensure_creation_state,
    ensure_deletable,
    ensure_editable,
    ensure_transition,
    get_workflow,
)
from commerce_kernel.exceptions import (
    DuplicateDocumentNumberError,
    InvalidInputError,
    InvalidStateError,
    ItemNotFoundError,
    TransactionNotFoundError,
)
from commerce_kernel.logging_config import LogContext, get_logger
from commerce_kernel.models.item import Item
from commerce_kernel.models.transaction import Transaction, TransactionLine
from commerce_kernel.selectors.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page
from commerce_kernel.selectors.transaction_selector import (
    TransactionFilter,
    TransactionSelector,
)
from commerce_kernel.services.audit_service import AuditRecorder, AuditSink
from commerce_kernel.services.contact_service import ContactService
from commerce_kernel.services.correlative_service import (
    DEFAULT_PAD_WIDTH,
    CorrelativeAllocator,
)
from commerce_kernel.services.stock_service import StockService

if TYPE_CHECKING:
    from commerce_config.schema import CommerceConfig

logger = get_logger("services.transaction")

OBSERVATIONS_MAX_LENGTH = 500

QUOTATION_CONVERSION = "QUOTATION_CONVERSION"
STATUS_CHANGE = "STATUS_CHANGE"

LineSpec = LineInput | Mapping[str, Any]


def _parse_uuid(value: UUID | str, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise InvalidInputError(f"Invalid {field}: {value!r}", field=field) from exc


def _coerce_lines(lines: Iterable[LineSpec] | None) -> list[LineInput]:
    coerced: list[LineInput] = []
    for line in lines or ():
        if isinstance(line, LineInput):
            coerced.append(line)
        elif isinstance(line, Mapping):
            coerced.append(
                LineInput.create(
                    item_id=line.get("item_id"),
                    quantity=line.get("quantity"),
                    unit_price=line.get("unit_price"),
                    discount=line.get("discount", 0),
                )
            )
        else:
            raise InvalidInputError(
                f"Unsupported line value: {type(line).__name__}", field="lines"
            )
    return coerced


def _clean_observations(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if len(cleaned) > OBSERVATIONS_MAX_LENGTH:
        raise InvalidInputError(
            f"Observations cannot exceed {OBSERVATIONS_MAX_LENGTH} characters",
            field="observations",
        )
    return cleaned or None


def _quantities(lines: Iterable[TransactionLine]) -> dict[UUID, Decimal]:
    totals: dict[UUID, Decimal] = {}
    for line in lines:
        totals[line.item_id] = totals.get(line.item_id, Decimal("0")) + line.quantity
    return totals


def _scaled(quantities: Mapping[UUID, Decimal], factor: int) -> dict[UUID, Decimal]:
    return {item_id: qty * factor for item_id, qty in quantities.items()}


def _difference(
    new: Mapping[UUID, Decimal],
    old: Mapping[UUID, Decimal],
    factor: int,
) -> dict[UUID, Decimal]:
    zero = Decimal("0")
    return {
        item_id: (new.get(item_id, zero) - old.get(item_id, zero)) * factor
        for item_id in set(new) | set(old)
    }


def _build_lines(breakdown: AmountBreakdown) -> list[TransactionLine]:
    return [
        TransactionLine(
            position=line.position,
            item_id=line.item_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount=line.discount,
            subtotal=line.subtotal,
        )
        for line in breakdown.lines
    ]


def _is_document_number_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "document_number" in message or "correlative" in message


class TransactionService:
    """
    Kind-agnostic transaction service.

    Contract:
        Each public mutating method is one atomic unit: it commits on success
        and rolls back on any exception (with ``auto_commit=True``).  With
        ``auto_commit=False`` the caller owns commit and rollback, and audit
        delivery follows the caller's commit.

    Guarantees:
        - Returned DTOs reflect the committed state.
        - ``*_started`` / ``*_completed`` / ``*_failed`` log events carry a
          correlation id and ``duration_ms``.
    """

    def __init__(
        self,
        session: Session,
        kind: TransactionKind | str,
        actor_id: UUID,
        clock: Clock | None = None,
        config: CommerceConfig | None = None,
        audit_sink: AuditSink | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self.kind = TransactionKind(kind)
        self.workflow = get_workflow(self.kind)
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        if config is not None:
            self._default_tax_rate = config.default_tax_rate
            prefixes = config.document_prefixes
            pad_width = config.document_pad_width
            page_size = config.pagination.default_page_size
            max_page_size = config.pagination.max_page_size
        else:
            self._default_tax_rate = DEFAULT_TAX_RATE
            prefixes = None
            pad_width = DEFAULT_PAD_WIDTH
            page_size = DEFAULT_PAGE_SIZE
            max_page_size = MAX_PAGE_SIZE

        self._audit = AuditRecorder.for_session(session, audit_sink)
        self._correlatives = CorrelativeAllocator(session, prefixes, pad_width)
        self._stock = StockService(session)
        self._contacts = ContactService(session, actor_id, audit_sink)
        self._selector = TransactionSelector(session, page_size, max_page_size)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run_unit(
        self,
        operation: str,
        body: Callable[[], TransactionInfo],
        transaction_id: UUID | None = None,
        **log_fields: Any,
    ) -> TransactionInfo:
        event = f"{self.kind.value}_{operation}"
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(self._actor_id),
            kind=self.kind.value,
            transaction_id=str(transaction_id) if transaction_id else None,
        ):
            logger.info(f"{event}_started", extra=log_fields)
            t0 = time.monotonic()
            try:
                result = body()
                if self._auto_commit:
                    self.session.commit()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    f"{event}_completed",
                    extra={
                        "transaction_id": str(result.id),
                        "document_number": result.document_number,
                        "status": result.status,
                        "total_amount": str(result.total_amount),
                        "duration_ms": duration_ms,
                    },
                )
                return result

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    f"{event}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

    def _flush_new(self, transaction: Transaction) -> None:
        self.session.add(transaction)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if _is_document_number_conflict(exc):
                raise DuplicateDocumentNumberError(transaction.document_number) from exc
            raise

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _select_for_update(
        self,
        transaction_id: UUID,
        kind: TransactionKind,
    ) -> Transaction | None:
        return self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .where(Transaction.kind == kind.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_live(
        self,
        transaction_id: UUID | str,
        kind: TransactionKind | None = None,
    ) -> Transaction:
        kind = kind or self.kind
        parsed = _parse_uuid(transaction_id, "transaction_id")
        transaction = self._select_for_update(parsed, kind)
        if transaction is None or transaction.is_deleted:
            raise TransactionNotFoundError(str(parsed), kind.value)
        return transaction

    def _require_items(self, item_ids: Iterable[UUID]) -> None:
        wanted = list(dict.fromkeys(item_ids))
        live = set(
            self.session.execute(
                select(Item.id)
                .where(Item.id.in_(wanted))
                .where(Item.is_deleted == False)  # noqa: E712
            ).scalars()
        )
        for item_id in wanted:
            if item_id not in live:
                raise ItemNotFoundError(str(item_id))

    def _calculate(
        self,
        lines: Iterable[LineSpec],
        document_type: DocumentType | str,
        tax_rate: Decimal | None,
    ) -> AmountBreakdown:
        return calculate_amounts(
            _coerce_lines(lines),
            document_type,
            self._default_tax_rate if tax_rate is None else tax_rate,
        )

    def _move_stock(self, deltas: Mapping[UUID, Decimal], reversal: bool) -> None:
        if not deltas:
            return
        self._stock.apply_deltas(deltas, skip_deleted=reversal)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, transaction_id: UUID | str) -> TransactionDetail:
        """
        Raises:
            TransactionNotFoundError: Missing, deleted or of another kind.
        """
        return self._selector.get(self.kind, _parse_uuid(transaction_id, "transaction_id"))

    def list(
        self,
        filters: TransactionFilter | None = None,
        page: int = 1,
        limit: int | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> Page[TransactionInfo]:
        return self._selector.list(self.kind, filters, page, limit, sort, order)

    def preview(
        self,
        lines: Iterable[LineSpec],
        document_type: DocumentType | str,
        tax_rate: Decimal | None = None,
    ) -> AmountBreakdown:
        """Amounts a create with these inputs would store.  Writes nothing."""
        return self._calculate(lines, document_type, tax_rate)

    def peek_next_document_number(self) -> str:
        """Informational; a concurrent creation may take the number first."""
        return self._correlatives.peek_next_document_number(self.kind)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        counterparty_id: UUID | str,
        document_type: DocumentType | str,
        lines: Iterable[LineSpec],
        tax_rate: Decimal | None = None,
        document_date: date | None = None,
        observations: str | None = None,
        status: TransactionStatus | str | None = None,
    ) -> TransactionInfo:
        """
        Create a transaction of this service's kind.

        ``status`` defaults to the workflow's initial state; sales may also
        start as invoiced.  Sales take stock out, purchases put it in.
        """
        line_specs = list(lines or ())

        def body() -> TransactionInfo:
            initial = ensure_creation_state(
                self.kind, status if status is not None else self.workflow.initial_state
            )
            breakdown = self._calculate(line_specs, document_type, tax_rate)
            cleaned_observations = _clean_observations(observations)
            counterparty = self._contacts.require_counterparty(
                _parse_uuid(counterparty_id, "counterparty_id"), self.kind
            )
            self._require_items(line.item_id for line in breakdown.lines)

            correlative, document_number = self._correlatives.allocate(self.kind)
            transaction = Transaction(
                correlative=correlative,
                document_number=document_number,
                kind=self.kind.value,
                document_type=breakdown.document_type.value,
                document_date=document_date or self._clock.today(),
                counterparty_id=counterparty.id,
                status=initial,
                tax_rate=breakdown.tax_rate,
                net_amount=breakdown.net_amount,
                tax_amount=breakdown.tax_amount,
                total_amount=breakdown.total_amount,
                observations=cleaned_observations,
                is_deleted=False,
                created_by_id=self._actor_id,
                lines=_build_lines(breakdown),
            )
            self._flush_new(transaction)

            if self.workflow.stock_direction:
                self._move_stock(
                    _scaled(breakdown.quantities_by_item(), self.workflow.stock_direction),
                    reversal=False,
                )

            self._audit.record(
                AuditOperation.CREATE,
                self.kind.subject_kind,
                transaction.id,
                self._actor_id,
                {
                    "document_number": transaction.document_number,
                    "document_type": transaction.document_type,
                    "counterparty_id": transaction.counterparty_id,
                    "net_amount": transaction.net_amount,
                    "tax_amount": transaction.tax_amount,
                    "total_amount": transaction.total_amount,
                    "items_count": len(transaction.lines),
                    "status": transaction.status,
                    "related_quotation_id": None,
                    "is_from_quotation": False,
                },
            )
            return TransactionInfo.from_model(transaction)

        return self._run_unit("create", body, line_count=len(line_specs))

    def update(
        self,
        transaction_id: UUID | str,
        counterparty_id: UUID | str | None = None,
        document_type: DocumentType | str | None = None,
        lines: Iterable[LineSpec] | None = None,
        tax_rate: Decimal | None = None,
        document_date: date | None = None,
        observations: str | None = None,
    ) -> TransactionInfo:
        """
        Update an editable transaction.  ``None`` leaves a field unchanged.

        Supplying ``lines`` replaces every line and recomputes amounts.
        Changing ``document_type`` or ``tax_rate`` requires ``lines`` too,
        because stored lines are net and cannot be reinterpreted.
        Stock moves by the net quantity difference per item.
        """
        line_specs = list(lines) if lines is not None else None

        def body() -> TransactionInfo:
            if line_specs is None and (document_type is not None or tax_rate is not None):
                raise InvalidInputError(
                    "Changing document_type or tax_rate requires lines",
                    field="lines",
                )
            if all(
                value is None
                for value in (counterparty_id, line_specs, document_date, observations)
            ):
                raise InvalidInputError("No fields to update")

            transaction = self._lock_live(transaction_id)
            ensure_editable(self.kind, transaction.status, str(transaction.id))

            previous = {
                "total_amount": transaction.total_amount,
                "net_amount": transaction.net_amount,
                "status": transaction.status,
            }
            changes: dict[str, Any] = {}

            breakdown = None
            if line_specs is not None:
                breakdown = self._calculate(
                    line_specs,
                    document_type if document_type is not None else transaction.document_type,
                    tax_rate if tax_rate is not None else transaction.tax_rate,
                )
                self._require_items(line.item_id for line in breakdown.lines)

            if counterparty_id is not None:
                counterparty = self._contacts.require_counterparty(
                    _parse_uuid(counterparty_id, "counterparty_id"), self.kind
                )
                if counterparty.id != transaction.counterparty_id:
                    transaction.counterparty_id = counterparty.id
                    changes["counterparty_id"] = counterparty.id

            if breakdown is not None:
                if self.workflow.stock_direction:
                    self._move_stock(
                        _difference(
                            breakdown.quantities_by_item(),
                            _quantities(transaction.lines),
                            self.workflow.stock_direction,
                        ),
                        reversal=True,
                    )
                transaction.lines.clear()
                self.session.flush()
                transaction.lines.extend(_build_lines(breakdown))

                transaction.document_type = breakdown.document_type.value
                transaction.tax_rate = breakdown.tax_rate
                transaction.net_amount = breakdown.net_amount
                transaction.tax_amount = breakdown.tax_amount
                transaction.total_amount = breakdown.total_amount
                changes.update(
                    {
                        "document_type": transaction.document_type,
                        "tax_rate": transaction.tax_rate,
                        "net_amount": transaction.net_amount,
                        "tax_amount": transaction.tax_amount,
                        "total_amount": transaction.total_amount,
                        "items_count": len(breakdown.lines),
                    }
                )

            if document_date is not None:
                transaction.document_date = document_date
                changes["document_date"] = document_date
            if observations is not None:
                transaction.observations = _clean_observations(observations)
                changes["observations"] = transaction.observations

            transaction.updated_by_id = self._actor_id
            self.session.flush()

            self._audit.record(
                AuditOperation.UPDATE,
                self.kind.subject_kind,
                transaction.id,
                self._actor_id,
                {
                    "document_number": transaction.document_number,
                    "changes": changes,
                    "previous_values": previous,
                },
            )
            return TransactionInfo.from_model(transaction)

        return self._run_unit("update", body, transaction_id=transaction_id)

    def delete(self, transaction_id: UUID | str) -> TransactionInfo:
        """
        Soft-delete a deletable transaction and reverse its stock effect.

        Deleting a sale converted from a quotation puts that quotation back
        to approved.
        """

        def body() -> TransactionInfo:
            transaction = self._lock_live(transaction_id)
            ensure_deletable(self.kind, transaction.status, str(transaction.id))

            if self.workflow.stock_direction:
                self._move_stock(
                    _scaled(_quantities(transaction.lines), -self.workflow.stock_direction),
                    reversal=True,
                )

            transaction.is_deleted = True
            transaction.updated_by_id = self._actor_id
            self.session.flush()

            if transaction.related_quotation_id is not None:
                self._revert_quotation(transaction)

            self._audit.record(
                AuditOperation.DELETE,
                self.kind.subject_kind,
                transaction.id,
                self._actor_id,
                {
                    "document_number": transaction.document_number,
                    "deleted_data": {
                        "status": transaction.status,
                        "counterparty_id": transaction.counterparty_id,
                        "total_amount": transaction.total_amount,
                        "items_count": len(transaction.lines),
                        "related_quotation_id": transaction.related_quotation_id,
                    },
                },
            )
            return TransactionInfo.from_model(transaction)

        return self._run_unit("delete", body, transaction_id=transaction_id)

    def _revert_quotation(self, sale: Transaction) -> None:
        quotation = self._select_for_update(
            sale.related_quotation_id, TransactionKind.QUOTATION
        )
        if (
            quotation is None
            or quotation.is_deleted
            or quotation.status != TransactionStatus.CONVERTED.value
        ):
            logger.warning(
                "related_quotation_not_reverted",
                extra={
                    "sale_id": str(sale.id),
                    "quotation_id": str(sale.related_quotation_id),
                    "quotation_status": quotation.status if quotation else None,
                },
            )
            return

        quotation.status = TransactionStatus.APPROVED.value
        quotation.updated_by_id = self._actor_id
        self.session.flush()
        self._audit.record(
            AuditOperation.UPDATE,
            SubjectKind.QUOTATION,
            quotation.id,
            self._actor_id,
            {
                "document_number": quotation.document_number,
                "operation_type": STATUS_CHANGE,
                "status_transition": {
                    "from": TransactionStatus.CONVERTED.value,
                    "to": TransactionStatus.APPROVED.value,
                },
                "reason": "sale_deleted",
                "sale_id": sale.id,
                "sale_document_number": sale.document_number,
            },
        )
        logger.info(
            "quotation_reverted",
            extra={"quotation_id": str(quotation.id), "sale_id": str(sale.id)},
        )

    def change_status(
        self,
        transaction_id: UUID | str,
        target_status: TransactionStatus | str,
    ) -> TransactionInfo:
        """
        Move a transaction along its workflow.

        Raises:
            IllegalTransitionError: ``target_status`` is not reachable.
        """

        def body() -> TransactionInfo:
            transaction = self._lock_live(transaction_id)
            source = transaction.status
            transition = ensure_transition(
                self.kind, source, target_status, transaction_id=str(transaction.id)
            )

            if transition.stock_effect and self.workflow.stock_direction:
                self._move_stock(
                    _scaled(
                        _quantities(transaction.lines),
                        transition.stock_effect * self.workflow.stock_direction,
                    ),
                    reversal=True,
                )

            transaction.status = transition.to_state
            transaction.updated_by_id = self._actor_id
            self.session.flush()

            self._audit.record(
                AuditOperation.UPDATE,
                self.kind.subject_kind,
                transaction.id,
                self._actor_id,
                {
                    "document_number": transaction.document_number,
                    "operation_type": STATUS_CHANGE,
                    "action": transition.action,
                    "status_transition": {"from": source, "to": transition.to_state},
                },
            )
            return TransactionInfo.from_model(transaction)

        return self._run_unit(
            "status_change",
            body,
            transaction_id=transaction_id,
            target_status=str(getattr(target_status, "value", target_status)),
        )


class QuotationService(TransactionService):
    """Quotations: no stock effect; convertible into sales."""

    def __init__(self, session: Session, actor_id: UUID, **kwargs: Any):
        super().__init__(session, TransactionKind.QUOTATION, actor_id, **kwargs)


class PurchaseService(TransactionService):
    """Purchases: stock arrives on creation and leaves again on rejection."""

    def __init__(self, session: Session, actor_id: UUID, **kwargs: Any):
        super().__init__(session, TransactionKind.PURCHASE, actor_id, **kwargs)


class SaleService(TransactionService):
    """Sales: stock leaves on creation."""

    def __init__(self, session: Session, actor_id: UUID, **kwargs: Any):
        super().__init__(session, TransactionKind.SALE, actor_id, **kwargs)

    def convert_from_quotation(
        self,
        quotation_id: UUID | str,
        allow_pending: bool = False,
        status: TransactionStatus | str = TransactionStatus.INVOICED,
    ) -> TransactionInfo:
        """
        Create a sale from an approved quotation in one unit.

        The sale copies the quotation's counterparty, document type, tax
        rate, date, observations, lines and amounts, takes a fresh
        correlative and decrements stock.  The quotation becomes converted.
        Any failure, insufficient stock included, leaves the quotation
        untouched.

        Args:
            quotation_id: The quotation to convert.
            allow_pending: Also accept a pending quotation.
            status: Initial sale status, invoiced unless stated.

        Raises:
            TransactionNotFoundError: Quotation missing or deleted.
            InvalidStateError: Quotation is not approved (or pending with
                ``allow_pending``).
            InsufficientStockError: A tracked item lacks stock.
        """

        def body() -> TransactionInfo:
            initial = ensure_creation_state(self.kind, status)
            quotation = self._lock_live(quotation_id, TransactionKind.QUOTATION)
            convertible = {TransactionStatus.APPROVED.value}
            if allow_pending:
                convertible.add(TransactionStatus.PENDING.value)
            if quotation.status not in convertible:
                raise InvalidStateError(str(quotation.id), quotation.status, "convert")

            counterparty = self._contacts.require_counterparty(
                quotation.counterparty_id, self.kind
            )
            self._require_items(line.item_id for line in quotation.lines)

            correlative, document_number = self._correlatives.allocate(self.kind)
            sale = Transaction(
                correlative=correlative,
                document_number=document_number,
                kind=self.kind.value,
                document_type=quotation.document_type,
                document_date=quotation.document_date,
                counterparty_id=counterparty.id,
                status=initial,
                tax_rate=quotation.tax_rate,
                net_amount=quotation.net_amount,
                tax_amount=quotation.tax_amount,
                total_amount=quotation.total_amount,
                related_quotation_id=quotation.id,
                observations=quotation.observations,
                is_deleted=False,
                created_by_id=self._actor_id,
                lines=[
                    TransactionLine(
                        position=line.position,
                        item_id=line.item_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        discount=line.discount,
                        subtotal=line.subtotal,
                    )
                    for line in quotation.lines
                ],
            )
            self._flush_new(sale)

            self._move_stock(
                _scaled(_quantities(quotation.lines), self.workflow.stock_direction),
                reversal=False,
            )

            original_status = quotation.status
            quotation.status = TransactionStatus.CONVERTED.value
            quotation.updated_by_id = self._actor_id
            self.session.flush()

            self._audit.record(
                AuditOperation.UPDATE,
                SubjectKind.QUOTATION,
                quotation.id,
                self._actor_id,
                {
                    "document_number": quotation.document_number,
                    "operation_type": QUOTATION_CONVERSION,
                    "status_transition": {
                        "from": original_status,
                        "to": TransactionStatus.CONVERTED.value,
                    },
                    "sale_id": sale.id,
                    "sale_document_number": sale.document_number,
                },
            )
            self._audit.record(
                AuditOperation.CREATE,
                SubjectKind.SALE,
                sale.id,
                self._actor_id,
                {
                    "document_number": sale.document_number,
                    "document_type": sale.document_type,
                    "counterparty_id": sale.counterparty_id,
                    "net_amount": sale.net_amount,
                    "tax_amount": sale.tax_amount,
                    "total_amount": sale.total_amount,
                    "items_count": len(sale.lines),
                    "status": sale.status,
                    "related_quotation_id": quotation.id,
                    "is_from_quotation": True,
                    "operation_type": QUOTATION_CONVERSION,
                    "converted_from": {
                        "document_number": quotation.document_number,
                        "quotation_id": quotation.id,
                        "original_status": original_status,
                    },
                    "conversion_data": {
                        "total_amount": sale.total_amount,
                        "items_count": len(sale.lines),
                        "document_type": sale.document_type,
                    },
                },
            )
            return TransactionInfo.from_model(sale)

        return self._run_unit(
            "conversion",
            body,
            transaction_id=quotation_id,
            allow_pending=allow_pending,
        )


SERVICE_CLASSES: dict[TransactionKind, type[TransactionService]] = {
    TransactionKind.QUOTATION: QuotationService,
    TransactionKind.SALE: SaleService,
    TransactionKind.PURCHASE: PurchaseService,
}


def service_for(
    kind: TransactionKind | str,
    session: Session,
    actor_id: UUID,
    **kwargs: Any,
) -> TransactionService:
    """Return the service class for ``kind`` bound to ``session``."""
    return SERVICE_CLASSES[TransactionKind(kind)](session, actor_id, **kwargs)
