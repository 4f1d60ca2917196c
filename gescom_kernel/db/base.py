"""
Module: gescom_kernel.db.base
Responsibility: Declarative base for the engine's tables (documents,
    numbering counters, taxes, stock ledger, settings).
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Every row has a uuid4 primary key stored as String(36), so SQLite and
      PostgreSQL databases hold identical ids.
    - Quantities, prices, rates and amounts map to Numeric(38, 9).  Amounts
      are rounded to the currency's decimals (3 for TND) before they are
      stored; the extra scale keeps fractional quantities and rates exact.
    - Constraint and index names follow one convention, so schema diffs
      between the two backends stay stable.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all engine models.

    ``int`` maps to BigInteger for document counters and per-product ledger
    sequences.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Base for rows edited after creation (documents, taxes, settings).

    ``updated_at`` is bookkeeping: it may change on a document whose totals
    are frozen (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


UUID = PyUUID
