"""Read-only query selectors."""

from commerce_kernel.selectors.audit_selector import AuditSelector
from commerce_kernel.selectors.base import BaseSelector, Page
from commerce_kernel.selectors.transaction_selector import (
    TransactionFilter,
    TransactionSelector,
)

__all__ = [
    "AuditSelector",
    "BaseSelector",
    "Page",
    "TransactionFilter",
    "TransactionSelector",
]
