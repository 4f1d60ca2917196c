"""
Tests for the ORM immutability listeners on documents.

Covers:
- Number and type of a saved document cannot change
- Frozen totals change only with a revision bump
- Revision snapshots are append-only
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from gescom_kernel.domain.dtos import DocumentDraft, LineInput
from gescom_kernel.exceptions import ImmutabilityViolationError
from gescom_kernel.models.document import DocumentRevision


@pytest.fixture
def saved_invoice(document_service):
    result = document_service.save(DocumentDraft(
        document_type="facture",
        lines=(LineInput(quantity=Decimal("1"), unit_price=Decimal("100")),),
    ))
    return document_service.get(result.document_id)


class TestDocumentGuards:

    def test_number_frozen(self, session, saved_invoice):
        saved_invoice.number = "FA-2024-999"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_type_frozen(self, session, saved_invoice):
        saved_invoice.document_type = "devis"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_totals_frozen_without_revision(self, session, saved_invoice):
        saved_invoice.grand_total = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_totals_change_with_revision_bump(self, session, saved_invoice):
        saved_invoice.grand_total = Decimal("1")
        saved_invoice.revision = saved_invoice.revision + 1
        session.flush()

    def test_status_change_allowed(self, session, saved_invoice):
        saved_invoice.status = "envoyee"
        session.flush()


class TestRevisionGuards:

    def test_revision_rows_append_only(self, session, document_service, saved_invoice):
        document_service.amend_lines(
            saved_invoice.id,
            [LineInput(quantity=Decimal("2"), unit_price=Decimal("100"))],
        )
        revision = session.execute(select(DocumentRevision)).scalar_one()

        revision.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_revision_rows_cannot_be_deleted(self, session, document_service, saved_invoice):
        document_service.amend_lines(
            saved_invoice.id,
            [LineInput(quantity=Decimal("2"), unit_price=Decimal("100"))],
        )
        session.delete(session.execute(select(DocumentRevision)).scalar_one())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
