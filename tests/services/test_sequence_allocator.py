"""
Tests for SequenceAllocator.

Covers:
- Number formatting with and without year
- Sequential allocation per document type
- peek_number has no side effect
- Rolled-back allocations do not consume the counter
- Administrative reset, configure and initialize
"""

from datetime import datetime, timedelta, timezone

import pytest

from gescom_config.schema import NumberingConfig
from gescom_kernel.domain.clock import DeterministicClock
from gescom_kernel.exceptions import UnknownDocumentTypeError
from gescom_kernel.services.sequence_allocator import SequenceAllocator, format_number


class TestFormatNumber:

    def test_with_year(self):
        assert format_number("FA", 1, 2024) == "FA-2024-001"

    def test_without_year(self):
        assert format_number("DV", 12) == "DV-012"

    def test_wide_number_not_truncated(self):
        assert format_number("FA", 1000, 2024) == "FA-2024-1000"


class TestNextNumber:

    def test_first_invoice(self, allocator):
        assert allocator.next_number("facture") == "FA-2024-001"

    def test_sequential(self, allocator):
        numbers = [allocator.next_number("facture") for _ in range(3)]
        assert numbers == ["FA-2024-001", "FA-2024-002", "FA-2024-003"]
        assert allocator.current_number("facture") == 4

    def test_types_are_independent(self, allocator):
        allocator.next_number("facture")
        allocator.next_number("facture")
        assert allocator.next_number("devis") == "DV-2024-001"
        assert allocator.next_number("bonLivraison") == "BL-2024-001"

    def test_legacy_tag(self, allocator):
        assert allocator.next_number("factures") == "FA-2024-001"

    def test_unknown_type(self, allocator):
        with pytest.raises(UnknownDocumentTypeError):
            allocator.next_number("proforma")

    def test_year_change_does_not_reset_counter(self, allocator, deterministic_clock):
        allocator.next_number("facture")
        deterministic_clock.set_time(datetime(2025, 1, 2, tzinfo=timezone.utc))
        assert allocator.next_number("facture") == "FA-2025-002"

    def test_year_taken_in_business_timezone(self, session):
        # 23:30 UTC on 31 December is already 00:30 on 1 January in UTC+1
        clock = DeterministicClock(
            datetime(2024, 12, 31, 23, 30, tzinfo=timezone.utc),
            tz=timezone(timedelta(hours=1)),
        )
        assert SequenceAllocator(session, clock).next_number("facture") == "FA-2025-001"

    def test_custom_defaults(self, session, deterministic_clock):
        allocator = SequenceAllocator(session, deterministic_clock, {
            "facture": NumberingConfig(prefix="INV", current_number=42, include_year=False),
        })
        assert allocator.next_number("facture") == "INV-042"
        # types missing from the mapping fall back to the bundled defaults
        assert allocator.next_number("avoir") == "AV-2024-001"

    def test_allocation_logged(self, allocator, captured_logs):
        allocator.next_number("facture")
        records = [r for r in captured_logs() if r["message"] == "document_number_allocated"]
        assert records[-1]["number"] == "FA-2024-001"
        assert records[-1]["counter"] == 1


class TestPeek:

    def test_peek_has_no_side_effect(self, allocator):
        assert allocator.peek_number("facture") == "FA-2024-001"
        assert allocator.peek_number("facture") == "FA-2024-001"
        assert allocator.current_number("facture") is None

    def test_peek_matches_next(self, allocator):
        allocator.next_number("facture")
        preview = allocator.peek_number("facture")
        assert allocator.next_number("facture") == preview


class TestRollback:

    def test_rolled_back_allocation_is_not_consumed(self, session, allocator):
        allocator.next_number("facture")

        savepoint = session.begin_nested()
        assert allocator.next_number("facture") == "FA-2024-002"
        savepoint.rollback()

        assert allocator.next_number("facture") == "FA-2024-002"


class TestAdministration:

    def test_reset(self, allocator, captured_logs):
        for _ in range(3):
            allocator.next_number("facture")

        previous = allocator.reset("facture")

        assert previous == 4
        assert allocator.next_number("facture") == "FA-2024-001"
        assert any(
            r["message"] == "numbering_reset" and r["level"] == "WARNING"
            for r in captured_logs()
        )

    def test_reset_only_touches_one_type(self, allocator):
        allocator.next_number("facture")
        allocator.next_number("devis")
        allocator.reset("facture")
        assert allocator.next_number("devis") == "DV-2024-002"

    def test_configure_prefix_and_year(self, allocator):
        allocator.next_number("facture")
        allocator.configure("facture", prefix="FAC", include_year=False)
        assert allocator.next_number("facture") == "FAC-002"

    def test_configure_rejects_empty_prefix(self, allocator):
        with pytest.raises(ValueError):
            allocator.configure("facture", prefix="")

    def test_initialize_creates_missing_rows_once(self, allocator):
        created = allocator.initialize()
        assert sorted(created) == sorted(
            ["facture", "devis", "bonLivraison", "commandeFournisseur", "avoir"]
        )
        assert allocator.initialize() == []
        assert allocator.current_number("avoir") == 1

    def test_initialize_keeps_existing_counters(self, allocator):
        allocator.next_number("facture")
        allocator.initialize()
        assert allocator.current_number("facture") == 2
