"""
Concurrent stock movements.

With negative stock forbidden, threads competing for the last units must not
oversell: the balance row is locked before the policy check, so exactly as
many movements succeed as the stock allows, and the cached balance still
equals the movement history afterwards.

Run with: pytest tests/concurrency/test_stock_race.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from gescom_kernel.domain.dtos import StockOrigin
from gescom_kernel.services.stock_ledger import StockLedger

pytestmark = pytest.mark.slow_locks

NUM_THREADS = 10


def _stock(session_factory, clock, product_id, quantity):
    session = session_factory()
    StockLedger(session, clock=clock).adjust(product_id, Decimal(quantity))
    session.commit()


class TestConcurrentStock:

    def test_no_oversell(self, session_factory, deterministic_clock):
        _stock(session_factory, deterministic_clock, "P-1", "10")
        barrier = Barrier(NUM_THREADS, timeout=30)

        def take_two(thread_id: int) -> bool:
            barrier.wait()
            session = session_factory()
            ledger = StockLedger(session, allow_negative_stock=False, clock=deterministic_clock)
            result = ledger.record_movement(
                "P-1", "out", Decimal("2"), StockOrigin.manual(f"picker {thread_id}"),
            )
            if result.success:
                session.commit()
            else:
                session.rollback()
            return result.success

        with ThreadPoolExecutor(max_workers=NUM_THREADS) as executor:
            futures = [executor.submit(take_two, i) for i in range(NUM_THREADS)]
            outcomes = [f.result() for f in futures]

        assert outcomes.count(True) == 5

        check = StockLedger(session_factory(), clock=deterministic_clock)
        assert check.balance("P-1") == Decimal("0")
        (result,) = check.reconcile("P-1")
        assert result.is_consistent
        assert result.movement_count == 6

    def test_no_lost_updates(self, session_factory, deterministic_clock):
        barrier = Barrier(NUM_THREADS, timeout=30)

        def receive(thread_id: int) -> None:
            barrier.wait()
            session = session_factory()
            StockLedger(session, clock=deterministic_clock).record_movement(
                "P-2", "in", Decimal("1.5"), StockOrigin.manual(),
            )
            session.commit()

        with ThreadPoolExecutor(max_workers=NUM_THREADS) as executor:
            for future in [executor.submit(receive, i) for i in range(NUM_THREADS)]:
                future.result()

        check = StockLedger(session_factory(), clock=deterministic_clock)
        assert check.balance("P-2") == Decimal("15")
        history = check.history("P-2")
        assert [m.balance_after for m in history] == [
            Decimal("1.5") * i for i in range(1, NUM_THREADS + 1)
        ]
