"""ORM models.  Importing this package registers every table on Base.metadata."""

from commerce_kernel.models.audit_log import AuditLog
from commerce_kernel.models.contact import Contact
from commerce_kernel.models.item import Item
from commerce_kernel.models.sequence import SequenceCounter
from commerce_kernel.models.transaction import Transaction, TransactionLine

__all__ = [
    "AuditLog",
    "Contact",
    "Item",
    "SequenceCounter",
    "Transaction",
    "TransactionLine",
]
