"""
Module: gescom_kernel.models.numbering
Responsibility: Per-document-type numbering counters.
Architecture position: Kernel > Models.

Invariant: ``current_number`` is the number the NEXT allocation will use.  It
only moves forward, except through SequenceAllocator.reset() (admin).
"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gescom_kernel.db.base import TrackedBase


class NumberingState(TrackedBase):
    """Numbering counter row for one document type."""

    __tablename__ = "numbering_states"

    document_type: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    start_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    current_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    include_year: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<NumberingState {self.document_type} {self.prefix} next={self.current_number}>"
