"""Kernel services.  Only TransactionService subclasses own a unit of work."""

from commerce_kernel.services.audit_service import (
    AuditEntry,
    AuditRecorder,
    AuditSink,
    DatabaseAuditSink,
)
from commerce_kernel.services.contact_service import ContactService
from commerce_kernel.services.correlative_service import (
    CorrelativeAllocator,
    format_document_number,
)
from commerce_kernel.services.item_service import ItemService
from commerce_kernel.services.stock_service import StockService
from commerce_kernel.services.transaction_service import (
    PurchaseService,
    QuotationService,
    SaleService,
    TransactionService,
    service_for,
)

__all__ = [
    "AuditEntry",
    "AuditRecorder",
    "AuditSink",
    "ContactService",
    "CorrelativeAllocator",
    "DatabaseAuditSink",
    "ItemService",
    "PurchaseService",
    "QuotationService",
    "SaleService",
    "StockService",
    "TransactionService",
    "format_document_number",
    "service_for",
]
