"""
Typed exception hierarchy for the commerce kernel.

Every error a caller can act on has its own class, a machine-readable
``code`` class attribute and structured attributes.  The boundary layer
maps categories to responses without parsing messages:

    CommerceKernelError (base)
    |
    +-- InvalidInputError                 INVALID_INPUT
    |   +-- InvalidDocumentTypeError      INVALID_DOCUMENT_TYPE
    |   +-- EmptyLinesError               EMPTY_LINES
    |   +-- InvalidLineError              INVALID_LINE
    |   +-- InvalidTaxRateError           INVALID_TAX_RATE
    |   +-- InvalidTaxIdError             INVALID_TAX_ID
    |   +-- InvalidContactError           INVALID_CONTACT
    |   +-- CounterpartyRoleError         COUNTERPARTY_ROLE
    |
    +-- NotFoundError                     NOT_FOUND
    |   +-- TransactionNotFoundError      TRANSACTION_NOT_FOUND
    |   +-- ContactNotFoundError          CONTACT_NOT_FOUND
    |   +-- ItemNotFoundError             ITEM_NOT_FOUND
    |
    +-- InvalidStateError                 INVALID_STATE
    |   +-- IllegalTransitionError        ILLEGAL_TRANSITION
    |
    +-- InsufficientStockError            INSUFFICIENT_STOCK
    |
    +-- ConflictError                     CONFLICT
        +-- DuplicateDocumentNumberError  DUPLICATE_DOCUMENT_NUMBER
        +-- DuplicateTaxIdError           DUPLICATE_TAX_ID

All of these are raised inside the caller's atomic unit and cause a full
rollback.  Audit sink failures never surface here: they are logged and
swallowed by the sink.
"""

from decimal import Decimal


class CommerceKernelError(Exception):
    """
    Base exception for all commerce kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "COMMERCE_KERNEL_ERROR"


# Input validation


class InvalidInputError(CommerceKernelError):
    """Malformed or missing input; always rejected before any write."""

    code: str = "INVALID_INPUT"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidDocumentTypeError(InvalidInputError):
    """Document type is not tax-inclusive or tax-exclusive."""

    code: str = "INVALID_DOCUMENT_TYPE"

    def __init__(self, document_type: object):
        self.document_type = str(document_type)
        super().__init__(
            f"Unrecognized document type: {document_type!r}",
            field="document_type",
        )


class EmptyLinesError(InvalidInputError):
    """A transaction needs at least one line."""

    code: str = "EMPTY_LINES"

    def __init__(self):
        super().__init__("At least one line item is required", field="lines")


class InvalidLineError(InvalidInputError):
    """A line item has an out-of-range quantity, price or discount."""

    code: str = "INVALID_LINE"

    def __init__(self, position: int, reason: str):
        self.position = position
        self.reason = reason
        super().__init__(f"Invalid line {position}: {reason}", field="lines")


class InvalidTaxRateError(InvalidInputError):
    """Tax rate outside [0, 1)."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, tax_rate: object):
        self.tax_rate = str(tax_rate)
        super().__init__(f"Invalid tax rate: {tax_rate}", field="tax_rate")


class InvalidTaxIdError(InvalidInputError):
    """Tax id does not match the expected format or check digit."""

    code: str = "INVALID_TAX_ID"

    def __init__(self, tax_id: str):
        self.tax_id = tax_id
        super().__init__(f"Invalid tax id: {tax_id!r}", field="tax_id")


class InvalidContactError(InvalidInputError):
    """Contact data violates a contact rule (roles, email, name)."""

    code: str = "INVALID_CONTACT"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        super().__init__(f"Invalid contact: {reason}", field=field)


class CounterpartyRoleError(InvalidInputError):
    """Counterparty does not hold the role the transaction kind requires."""

    code: str = "COUNTERPARTY_ROLE"

    def __init__(self, contact_id: str, required_role: str):
        self.contact_id = contact_id
        self.required_role = required_role
        super().__init__(
            f"Contact {contact_id} is not a {required_role}",
            field="counterparty_id",
        )


# Lookups


class NotFoundError(CommerceKernelError):
    """Referenced record does not exist or is soft-deleted."""

    code: str = "NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    """Transaction not found (or deleted, or of another kind)."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str, kind: str | None = None):
        self.transaction_id = transaction_id
        self.kind = kind
        label = kind or "transaction"
        super().__init__(f"{label.capitalize()} not found: {transaction_id}")


class ContactNotFoundError(NotFoundError):
    """Contact not found or deleted."""

    code: str = "CONTACT_NOT_FOUND"

    def __init__(self, contact_id: str):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class ItemNotFoundError(NotFoundError):
    """Item not found or deleted."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


# Lifecycle


class InvalidStateError(CommerceKernelError):
    """Operation not permitted in the entity's current status."""

    code: str = "INVALID_STATE"

    def __init__(self, transaction_id: str, status: str, operation: str):
        self.transaction_id = transaction_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} transaction {transaction_id} in status {status}"
        )


class IllegalTransitionError(InvalidStateError):
    """Target status is not reachable from the current status."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, kind: str, from_status: str, to_status: str,
                 transaction_id: str | None = None):
        self.kind = kind
        self.from_status = from_status
        self.to_status = to_status
        self.transaction_id = transaction_id
        self.status = from_status
        self.operation = "change_status"
        Exception.__init__(
            self,
            f"Illegal {kind} transition: {from_status} -> {to_status}",
        )


# Stock


class InsufficientStockError(CommerceKernelError):
    """A stock decrement would leave a tracked item negative."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, item_name: str, available: Decimal,
                 requested: Decimal):
        self.item_id = item_id
        self.item_name = item_name
        self.available = str(available)
        self.requested = str(requested)
        super().__init__(
            f"Insufficient stock for {item_name}: "
            f"available={available}, requested={requested}"
        )


# Uniqueness


class ConflictError(CommerceKernelError):
    """Duplicate unique key on create/update."""

    code: str = "CONFLICT"


class DuplicateDocumentNumberError(ConflictError):
    """Document number (or correlative) already taken."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, document_number: str):
        self.document_number = document_number
        super().__init__(f"Document number already exists: {document_number}")


class DuplicateTaxIdError(ConflictError):
    """Another contact already uses this tax id."""

    code: str = "DUPLICATE_TAX_ID"

    def __init__(self, tax_id: str):
        self.tax_id = tax_id
        super().__init__(f"A contact with tax id {tax_id} already exists")
