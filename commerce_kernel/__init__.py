"""
Commerce Kernel

Back-office transaction core for a small commerce operation:
- Quotations, sales and purchases as one polymorphic Transaction
- Global correlative and document-number allocation
- Tax-inclusive / tax-exclusive amount calculation
- Stock side effects applied atomically with the transaction write
- Best-effort audit trail
"""

__version__ = "0.1.0"
