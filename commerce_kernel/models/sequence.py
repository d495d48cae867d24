"""
Module: commerce_kernel.models.sequence
Responsibility: Named counter rows.  Locking a counter row FOR UPDATE is how
    concurrent correlative allocations are serialized.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from commerce_kernel.db.base import Base


class SequenceCounter(Base):
    """One row per named sequence, holding the last value handed out."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
