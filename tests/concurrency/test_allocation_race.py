"""
Concurrent number allocation.

Many threads allocate document numbers at the same time, each in its own
session and transaction.  Every number must be distinct, the sequence must
have no holes, and the stored counter must have advanced once per commit.

Run with: pytest tests/concurrency/test_allocation_race.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from gescom_kernel.domain.dtos import DocumentDraft, LineInput
from gescom_kernel.services.document_service import DocumentService
from gescom_kernel.services.sequence_allocator import SequenceAllocator

pytestmark = pytest.mark.slow_locks

NUM_THREADS = 8


class TestConcurrentAllocation:

    def test_concurrent_first_use_numbers_unique(self, session_factory, deterministic_clock):
        """No counter row exists yet: threads also race to create it."""
        barrier = Barrier(NUM_THREADS, timeout=30)

        def allocate(thread_id: int) -> str:
            barrier.wait()
            session = session_factory()
            number = SequenceAllocator(session, deterministic_clock).next_number("facture")
            session.commit()
            return number

        with ThreadPoolExecutor(max_workers=NUM_THREADS) as executor:
            futures = [executor.submit(allocate, i) for i in range(NUM_THREADS)]
            numbers = [f.result() for f in futures]

        assert len(set(numbers)) == NUM_THREADS, "Duplicate numbers detected!"
        assert sorted(numbers) == [f"FA-2024-{i:03d}" for i in range(1, NUM_THREADS + 1)]

        check = session_factory()
        assert SequenceAllocator(check, deterministic_clock).current_number("facture") == (
            NUM_THREADS + 1
        )

    def test_rolled_back_allocations_are_reissued(self, session_factory, deterministic_clock):
        setup = session_factory()
        SequenceAllocator(setup, deterministic_clock).initialize()
        setup.commit()

        barrier = Barrier(NUM_THREADS, timeout=30)

        def allocate(thread_id: int) -> str | None:
            barrier.wait()
            session = session_factory()
            number = SequenceAllocator(session, deterministic_clock).next_number("devis")
            if thread_id % 2:
                session.rollback()
                return None
            session.commit()
            return number

        with ThreadPoolExecutor(max_workers=NUM_THREADS) as executor:
            futures = [executor.submit(allocate, i) for i in range(NUM_THREADS)]
            committed = [n for n in (f.result() for f in futures) if n is not None]

        # only committed allocations advance the counter: no holes
        assert sorted(committed) == [f"DV-2024-{i:03d}" for i in range(1, len(committed) + 1)]

    def test_concurrent_saves_get_distinct_numbers(
        self, session_factory, engine_config, standard_catalog, deterministic_clock,
    ):
        barrier = Barrier(NUM_THREADS, timeout=30)

        def save(thread_id: int) -> str:
            barrier.wait()
            session = session_factory()
            service = DocumentService(session, engine_config, standard_catalog, deterministic_clock)
            result = service.save(DocumentDraft(
                document_type="facture",
                lines=(LineInput(quantity=Decimal(thread_id + 1), unit_price=Decimal("10")),),
            ))
            assert result.success, result.error
            session.commit()
            return result.number

        with ThreadPoolExecutor(max_workers=NUM_THREADS) as executor:
            futures = [executor.submit(save, i) for i in range(NUM_THREADS)]
            numbers = [f.result() for f in futures]

        assert len(set(numbers)) == NUM_THREADS
