"""Pure domain logic: values, calculator, workflows, tax id rules, clock."""

from commerce_kernel.domain.calculator import (
    DEFAULT_TAX_RATE,
    AmountBreakdown,
    NormalizedLine,
    calculate_amounts,
)
from commerce_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commerce_kernel.domain.values import (
    AuditOperation,
    ContactRole,
    DocumentType,
    ItemType,
    LineInput,
    SubjectKind,
    TransactionKind,
    TransactionStatus,
)
from commerce_kernel.domain.workflow import WORKFLOWS, Transition, Workflow, get_workflow

__all__ = [
    "AmountBreakdown",
    "AuditOperation",
    "Clock",
    "ContactRole",
    "DEFAULT_TAX_RATE",
    "DeterministicClock",
    "DocumentType",
    "ItemType",
    "LineInput",
    "NormalizedLine",
    "SubjectKind",
    "SystemClock",
    "Transition",
    "TransactionKind",
    "TransactionStatus",
    "WORKFLOWS",
    "Workflow",
    "calculate_amounts",
    "get_workflow",
]
