"""
SequenceAllocator -- unique formatted document numbers via locked counter rows.

Responsibility:
    Hand out the next externally visible document number per document type,
    formatted ``prefix[-year]-NNN``, and persist the advanced counter.

Architecture position:
    Kernel > Services -- imperative shell.  Called by DocumentService inside
    the save transaction; scripts call reset().

Invariants enforced:
    - Uniqueness: the counter row is read with ``SELECT ... FOR UPDATE``
      (PostgreSQL) or inside a ``BEGIN IMMEDIATE`` transaction (SQLite), so
      two concurrent saves never read the same value.
    - Monotonicity: ``current_number`` only moves forward.  The aggregate
      max-plus-one pattern over saved documents is never used; numbers of
      deleted documents are not reused.
    - All-or-nothing: the allocator never commits.  If the caller's
      transaction rolls back, the counter has not advanced.
    - Reset isolation: reset() is a separate administrative operation and is
      never called from next_number().

Failure modes:
    - UnknownDocumentTypeError for an unknown tag.
    - IntegrityError on a concurrent first-use counter creation (handled via
      savepoint rollback and re-read).
"""

from __future__ import annotations

from typing import Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gescom_config.loader import get_default_config
from gescom_config.schema import NumberingConfig
from gescom_kernel.domain.clock import Clock, SystemClock
from gescom_kernel.domain.documents import DocumentType
from gescom_kernel.logging_config import get_logger
from gescom_kernel.models.numbering import NumberingState

logger = get_logger("services.sequence_allocator")

NUMBER_WIDTH = 3


def format_number(prefix: str, number: int, year: int | None = None) -> str:
    """``FA-2024-001`` with a year, ``FA-001`` without."""
    padded = str(number).zfill(NUMBER_WIDTH)
    if year is None:
        return f"{prefix}-{padded}"
    return f"{prefix}-{year}-{padded}"


class SequenceAllocator:
    """
    Allocate document numbers.

    Contract:
        next_number(type) returns the formatted current value and stores
        current + 1.  The caller owns the transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT reset counters at year change; with ``include_year`` the
          year is part of the number and the counter keeps increasing.

    Usage:
        with session_scope() as session:
            number = SequenceAllocator(session, clock).next_number("facture")
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        numbering_defaults: Mapping[str, NumberingConfig] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._defaults = (
            numbering_defaults
            if numbering_defaults is not None
            else get_default_config().numbering
        )

    def _select(self, doc_type: DocumentType, *, lock: bool):
        stmt = select(NumberingState).where(NumberingState.document_type == doc_type.value)
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _new_state(self, doc_type: DocumentType) -> NumberingState:
        default = self._defaults.get(doc_type.value)
        if default is None:
            default = get_default_config().numbering[doc_type.value]
        return NumberingState(
            document_type=doc_type.value,
            prefix=default.prefix,
            start_number=default.start_number,
            current_number=default.current_number,
            include_year=default.include_year,
        )

    def _locked_state(self, doc_type: DocumentType) -> NumberingState:
        """Lock the counter row, creating it from defaults on first use."""
        state = self._select(doc_type, lock=True)
        if state is not None:
            return state

        # Another transaction may create the row at the same time; the
        # savepoint keeps the caller's work intact if we lose the race.
        savepoint = self._session.begin_nested()
        try:
            state = self._new_state(doc_type)
            self._session.add(state)
            self._session.flush()
            savepoint.commit()
            logger.info(
                "numbering_state_created",
                extra={"document_type": doc_type.value, "prefix": state.prefix},
            )
            return state
        except IntegrityError:
            logger.debug(
                "numbering_state_race_retry",
                extra={"document_type": doc_type.value},
            )
            savepoint.rollback()
            state = self._select(doc_type, lock=True)
            assert state is not None
            return state

    def _format(self, state: NumberingState, number: int) -> str:
        year = self._clock.year() if state.include_year else None
        return format_number(state.prefix, number, year)

    def next_number(self, document_type: DocumentType | str) -> str:
        """
        Allocate the next number for ``document_type``.

        Postconditions:
            - Returns the formatted current value.
            - current_number is advanced by one (visible after commit).
            - The counter row stays locked until the transaction ends.
        """
        doc_type = DocumentType.parse(document_type)
        state = self._locked_state(doc_type)

        allocated = state.current_number
        number = self._format(state, allocated)
        state.current_number = allocated + 1
        self._session.flush()

        logger.info(
            "document_number_allocated",
            extra={
                "document_type": doc_type.value,
                "number": number,
                "counter": allocated,
            },
        )
        return number

    def peek_number(self, document_type: DocumentType | str) -> str:
        """The number next_number() would return now.  No side effect."""
        doc_type = DocumentType.parse(document_type)
        state = self._select(doc_type, lock=False)
        if state is None:
            state = self._new_state(doc_type)
        return self._format(state, state.current_number)

    def current_number(self, document_type: DocumentType | str) -> int | None:
        """Stored counter value (the next number to hand out), or None."""
        state = self._select(DocumentType.parse(document_type), lock=False)
        return state.current_number if state else None

    def initialize(self, numbering: Mapping[str, NumberingConfig] | None = None) -> list[str]:
        """
        Create missing counter rows from numbering configuration.

        Existing rows are left untouched.  Returns the created type tags.
        """
        numbering = numbering if numbering is not None else self._defaults
        created = []
        for doc_type in DocumentType:
            if self._select(doc_type, lock=False) is not None:
                continue
            config = numbering.get(doc_type.value) or get_default_config().numbering[doc_type.value]
            self._session.add(
                NumberingState(
                    document_type=doc_type.value,
                    prefix=config.prefix,
                    start_number=config.start_number,
                    current_number=config.current_number,
                    include_year=config.include_year,
                )
            )
            created.append(doc_type.value)
        self._session.flush()
        if created:
            logger.info("numbering_initialized", extra={"document_types": created})
        return created

    def configure(self, document_type: DocumentType | str, *, prefix: str | None = None,
                  include_year: bool | None = None) -> None:
        """Change prefix / year inclusion.  The counter is untouched."""
        doc_type = DocumentType.parse(document_type)
        state = self._locked_state(doc_type)
        if prefix is not None:
            if not prefix:
                raise ValueError("Numbering prefix cannot be empty")
            state.prefix = prefix
        if include_year is not None:
            state.include_year = include_year
        self._session.flush()
        logger.info(
            "numbering_configured",
            extra={
                "document_type": doc_type.value,
                "prefix": state.prefix,
                "include_year": state.include_year,
            },
        )

    def reset(self, document_type: DocumentType | str) -> int:
        """
        Administrative reset: current_number = start_number.

        WARNING: numbers already issued since start_number will be handed out
        again.  Only the reset_numbering script calls this.

        Returns:
            The counter value before the reset.
        """
        doc_type = DocumentType.parse(document_type)
        state = self._locked_state(doc_type)
        previous = state.current_number
        state.current_number = state.start_number
        self._session.flush()
        logger.warning(
            "numbering_reset",
            extra={
                "document_type": doc_type.value,
                "previous_number": previous,
                "start_number": state.start_number,
            },
        )
        return previous
